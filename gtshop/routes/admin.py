"""
Admin console
Order review plus shop configuration. Every route requires an admin JWT.
"""

import logging

from flask import Blueprint, request
from flask_jwt_extended import current_user

from gtshop.errors import NotFoundError, ValidationError
from gtshop.extensions import db, get_services
from gtshop.models.user import User
from gtshop.routes import admin_required, already_processed, json_body, ok
from gtshop.services.order_service import DEFAULT_LIST_LIMIT

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__)


# --- orders -----------------------------------------------------------------

@admin_bp.route("/orders", methods=["GET"])
@admin_required
def list_orders():
    """
    All orders, newest first
    ---
    tags:
      - Admin
    security:
      - Bearer: []
    parameters:
      - in: query
        name: status
        type: string
        enum: [pending_confirmation, awaiting_admin_review, accepted, declined]
      - in: query
        name: limit
        type: integer
    responses:
      200:
        description: List of orders
      403:
        description: Not an admin
    """
    limit = request.args.get("limit", DEFAULT_LIST_LIMIT, type=int)
    orders = get_services().orders.list_orders(status=request.args.get("status"), limit=max(1, min(limit, 500)))
    return ok([o.to_dict() for o in orders])


@admin_bp.route("/orders/<order_id>", methods=["GET"])
@admin_required
def get_order(order_id):
    order = get_services().orders.get_order(order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return ok(order.to_dict())


@admin_bp.route("/orders/<order_id>/accept", methods=["POST"])
@admin_required
def accept_order(order_id):
    """
    Accept an order under review
    ---
    tags:
      - Admin
    security:
      - Bearer: []
    responses:
      200:
        description: Accepted, or already_processed when another admin got there first
      404:
        description: Order not found
    """
    result = get_services().orders.accept_order(
        order_id, actor=current_user.user_id, via="console", actor_label=current_user.email
    )
    if not result.applied:
        return already_processed(result.order)
    return ok(result.order.to_dict())


@admin_bp.route("/orders/<order_id>/decline", methods=["POST"])
@admin_required
def decline_order(order_id):
    """
    Decline an order under review
    ---
    tags:
      - Admin
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - reason
          properties:
            reason:
              type: string
    responses:
      200:
        description: Declined, or already_processed
      400:
        description: Missing reason
      404:
        description: Order not found
    """
    result = get_services().orders.decline_order(
        order_id,
        actor=current_user.user_id,
        reason=json_body().get("reason"),
        via="console",
        actor_label=current_user.email,
    )
    if not result.applied:
        return already_processed(result.order)
    return ok(result.order.to_dict())


@admin_bp.route("/orders/<order_id>/resend", methods=["POST"])
@admin_required
def resend_notification(order_id):
    order = get_services().orders.resend_proof_notification(current_user, order_id)
    return ok(order.to_dict())


# --- configuration ----------------------------------------------------------

@admin_bp.route("/config", methods=["GET"])
@admin_required
def get_config():
    settings = get_services().settings
    config = settings.public_config()
    config["captcha_list"] = settings.captcha_list()
    return ok(config)


@admin_bp.route("/config/website", methods=["PUT"])
@admin_required
def update_website():
    data = json_body()
    get_services().settings.update_website(name=data.get("websiteName"), fee_percent=data.get("feePercent"))
    logger.info("Website settings updated by %s", current_user.email)
    return get_config()


@admin_bp.route("/config/prices/rgt", methods=["PUT"])
@admin_required
def update_rgt_prices():
    """
    Set Diamond Lock / Blue Gem Lock unit prices
    ---
    tags:
      - Admin
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            dl:
              type: integer
            bgl:
              type: integer
    responses:
      200:
        description: Updated configuration
      400:
        description: Unknown purchase type or non-positive price
    """
    data = json_body()
    if not data:
        raise ValidationError("No prices given")
    get_services().settings.update_rgt_prices(data)
    logger.info("RGT prices updated by %s: %s", current_user.email, data)
    return get_config()


@admin_bp.route("/config/rps-items/<item_key>", methods=["PUT"])
@admin_required
def upsert_rps_item(item_key):
    get_services().settings.upsert_rps_item(item_key, json_body())
    return get_config()


@admin_bp.route("/config/rps-items/<item_key>", methods=["DELETE"])
@admin_required
def remove_rps_item(item_key):
    get_services().settings.remove_rps_item(item_key)
    return get_config()


@admin_bp.route("/config/payment-methods/<key>", methods=["PUT"])
@admin_required
def upsert_payment_method(key):
    get_services().settings.upsert_payment_method(key, json_body())
    return get_config()


@admin_bp.route("/config/payment-methods/<key>", methods=["DELETE"])
@admin_required
def remove_payment_method(key):
    get_services().settings.remove_payment_method(key)
    return get_config()


@admin_bp.route("/captcha", methods=["POST"])
@admin_required
def add_captcha():
    """
    Add a captcha image; only the answer hash is stored
    ---
    tags:
      - Admin
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - captchaId
            - imageUrl
            - answer
          properties:
            captchaId:
              type: string
            imageUrl:
              type: string
            answer:
              type: string
    responses:
      201:
        description: Captcha stored
    """
    data = json_body()
    get_services().captcha.add_asset(data.get("captchaId"), data.get("imageUrl"), data.get("answer"))
    return ok({"captchaId": data.get("captchaId")}, 201)


@admin_bp.route("/captcha/<captcha_id>", methods=["DELETE"])
@admin_required
def remove_captcha(captcha_id):
    get_services().captcha.remove_asset(captcha_id)
    return ok({"captchaId": captcha_id})


# --- knowledge base and tickets ---------------------------------------------

@admin_bp.route("/kb", methods=["GET"])
@admin_required
def list_kb():
    return ok([e.to_dict() for e in get_services().chat.list_entries()])


@admin_bp.route("/kb/<entry_id>", methods=["PUT"])
@admin_required
def upsert_kb(entry_id):
    entry = get_services().chat.upsert_entry(entry_id, json_body())
    return ok(entry.to_dict())


@admin_bp.route("/kb/<entry_id>", methods=["DELETE"])
@admin_required
def remove_kb(entry_id):
    get_services().chat.remove_entry(entry_id)
    return ok({"id": entry_id})


@admin_bp.route("/tickets", methods=["GET"])
@admin_required
def list_tickets():
    tickets = get_services().chat.list_tickets(status=request.args.get("status"))
    return ok([t.to_dict() for t in tickets])


# --- admin directory --------------------------------------------------------

@admin_bp.route("/users", methods=["GET"])
@admin_required
def list_users():
    users = User.query.order_by(User.created_at.desc()).all()
    return ok([dict(u.to_dict(), telegram_id=u.telegram_id) for u in users])


@admin_bp.route("/users/<user_id>", methods=["PUT"])
@admin_required
def update_user(user_id):
    """
    Grant or revoke admin rights and link a Telegram account
    ---
    tags:
      - Admin
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            is_admin:
              type: boolean
            telegram_id:
              type: string
    responses:
      200:
        description: Updated user
      404:
        description: User not found
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    data = json_body()
    if "is_admin" in data:
        if user.user_id == current_user.user_id and not data["is_admin"]:
            raise ValidationError("You cannot revoke your own admin rights")
        user.is_admin = bool(data["is_admin"])
    if "telegram_id" in data:
        telegram_id = str(data["telegram_id"] or "").strip()
        if telegram_id and not telegram_id.isdigit():
            raise ValidationError("Telegram id must be numeric")
        user.telegram_id = telegram_id or None
    db.session.commit()
    logger.info("User %s updated by %s: %s", user_id, current_user.email, data)
    return ok(dict(user.to_dict(), telegram_id=user.telegram_id))
