from flask import Blueprint
from flask_jwt_extended import current_user, jwt_required

from gtshop.errors import ValidationError
from gtshop.extensions import get_services
from gtshop.routes import json_body, ok

notifications_bp = Blueprint("notifications", __name__)


@notifications_bp.route("/telegram", methods=["POST"])
@jwt_required()
def send_telegram_notification():
    """
    Send an order message to the operator chat
    ---
    tags:
      - Notifications
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - orderId
            - action
          properties:
            orderId:
              type: string
            action:
              type: string
              enum: [proof_uploaded, accepted, declined, status]
            reason:
              type: string
    responses:
      200:
        description: Message sent
      401:
        description: Not authenticated
      404:
        description: Order not found
      409:
        description: Order is not in the state the action describes, or Telegram is not configured
      500:
        description: Telegram rejected the message
    """
    data = json_body()
    if not data.get("orderId") or not data.get("action"):
        raise ValidationError("Missing orderId or action")
    get_services().orders.send_notification(
        current_user, data["orderId"], data["action"], reason=data.get("reason")
    )
    return ok({"orderId": data["orderId"], "sent": True})
