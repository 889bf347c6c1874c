from flask import Blueprint, request
from flask_jwt_extended import current_user, jwt_required

from gtshop.errors import NotFoundError
from gtshop.extensions import get_services
from gtshop.routes import json_body, ok

orders_bp = Blueprint("orders", __name__)


@orders_bp.route("", methods=["POST"])
@jwt_required()
def create_order():
    """
    Place an order
    ---
    tags:
      - Orders
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - category
            - world
            - growId
            - customerName
            - whatsappNumber
            - quantity
            - paymentMethod
          properties:
            category:
              type: string
              enum: [RGT, RPS]
            purchaseType:
              type: string
              enum: [dl, bgl]
            itemKey:
              type: string
            world:
              type: string
            growId:
              type: string
            customerName:
              type: string
            whatsappNumber:
              type: string
            quantity:
              type: integer
            paymentMethod:
              type: string
            notes:
              type: string
            captchaToken:
              type: string
    responses:
      201:
        description: Order created in pending_confirmation
      400:
        description: Validation failed or captcha missing
      403:
        description: Email not verified
      409:
        description: Price not configured
      429:
        description: Too many orders
    """
    data = json_body()
    order = get_services().orders.create_order(current_user, data, captcha_token=data.get("captchaToken"))
    return ok(order.to_dict(), 201)


@orders_bp.route("", methods=["GET"])
@jwt_required()
def list_my_orders():
    """
    Orders placed by the caller, newest first
    ---
    tags:
      - Orders
    security:
      - Bearer: []
    responses:
      200:
        description: List of orders
    """
    orders = get_services().orders.list_orders_for_buyer(current_user.user_id)
    return ok([o.to_dict() for o in orders])


@orders_bp.route("/<order_id>", methods=["GET"])
@jwt_required()
def get_order(order_id):
    order = get_services().orders.get_order(order_id)
    # other buyers' orders are reported as missing
    if order is None or (order.buyer_uid != current_user.user_id and not current_user.is_admin):
        raise NotFoundError("Order not found")
    return ok(order.to_dict())


@orders_bp.route("/<order_id>/proof", methods=["POST"])
@jwt_required()
def upload_proof(order_id):
    """
    Upload a payment proof image
    ---
    tags:
      - Orders
    security:
      - Bearer: []
    consumes:
      - multipart/form-data
    parameters:
      - in: path
        name: order_id
        type: string
        required: true
      - in: formData
        name: file
        type: file
        required: true
    responses:
      200:
        description: Order moved to awaiting_admin_review
      400:
        description: Missing, oversized or non-image file
      403:
        description: Not the buyer of this order
      404:
        description: Order not found
      409:
        description: Order already accepted or declined
    """
    order = get_services().orders.submit_proof(current_user, order_id, request.files.get("file"))
    return ok(order.to_dict())
