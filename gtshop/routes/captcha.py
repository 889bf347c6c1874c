from flask import Blueprint, request

from gtshop.extensions import get_services
from gtshop.routes import json_body, ok

captcha_bp = Blueprint("captcha", __name__)


def client_id():
    """Budgets follow the connecting address, never a caller-chosen header."""
    return request.remote_addr or "anonymous"


@captcha_bp.route("/challenge", methods=["GET"])
def challenge():
    """
    Pick a captcha image for this client
    ---
    tags:
      - Captcha
    responses:
      200:
        description: challengeId, captchaId and imageUrl
      404:
        description: No captcha images configured
    """
    return ok(get_services().captcha.new_challenge(client_id()))


@captcha_bp.route("/verify", methods=["POST"])
def verify():
    """
    Check a captcha answer and issue a one-time token
    ---
    tags:
      - Captcha
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            challengeId:
              type: string
            captchaId:
              type: string
            answer:
              type: string
    responses:
      200:
        description: Token for order creation
      400:
        description: Missing input or wrong answer
      404:
        description: Unknown captcha id or expired challenge
      429:
        description: Too many attempts
    """
    data = json_body()
    result = get_services().captcha.verify(
        client_id(), data.get("captchaId"), data.get("answer"), challenge_id=data.get("challengeId")
    )
    return ok({"token": result["token"]})
