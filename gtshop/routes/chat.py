from flask import Blueprint
from flask_jwt_extended import current_user, jwt_required

from gtshop.extensions import get_services
from gtshop.routes import json_body, ok

chat_bp = Blueprint("chat", __name__)


@chat_bp.route("/messages", methods=["POST"])
@jwt_required()
def process_chat_message():
    """
    Ask the help assistant a question
    ---
    tags:
      - Chat
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - message
          properties:
            message:
              type: string
            sessionId:
              type: string
    responses:
      200:
        description: Assistant reply, with ticketId when handed to a human
      400:
        description: Empty message
      429:
        description: More than 20 messages a minute
    """
    data = json_body()
    result = get_services().chat.process_message(current_user, data.get("message"), data.get("sessionId"))
    return ok(result)
