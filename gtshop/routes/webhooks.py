import hmac
import logging

from flask import Blueprint, current_app, jsonify, request

from gtshop.errors import InternalError
from gtshop.extensions import get_services

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def _secret_matches():
    expected = current_app.config.get("TELEGRAM_WEBHOOK_SECRET")
    if not expected:
        return True
    return hmac.compare_digest(request.headers.get(SECRET_HEADER, ""), expected)


@webhooks_bp.route("/telegram", methods=["POST"])
def telegram_webhook():
    """
    Handle Telegram Webhooks
    Only callback queries from the Accept/Decline buttons are acted on.
    ---
    tags:
      - Webhooks
    responses:
      200:
        description: Update received (also when ignored or denied)
      405:
        description: Method not allowed
      500:
        description: Update could not be processed
    """
    if not _secret_matches():
        # Telegram retries non-2xx answers, so a bad secret is acknowledged and dropped
        logger.warning("Telegram webhook with wrong secret token from %s", request.remote_addr)
        return jsonify({"success": True, "data": {"handled": False}}), 200

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        logger.info("Telegram webhook without a JSON body")
        return jsonify({"success": True, "data": {"handled": False}}), 200

    try:
        outcome = get_services().callbacks.handle_update(payload)
    except Exception as e:
        logger.exception("Telegram webhook error: %s", e)
        raise InternalError(f"Telegram webhook error: {e}")

    return jsonify({"success": True, "data": {"handled": outcome is not None, "outcome": outcome}}), 200
