from flask import Blueprint

from gtshop.extensions import get_services
from gtshop.routes import ok

settings_bp = Blueprint("settings", __name__)


@settings_bp.route("", methods=["GET"])
def public_config():
    """
    Storefront configuration
    ---
    tags:
      - Config
    responses:
      200:
        description: Website name, fee, prices, RPS items, payment methods and captcha mode
    """
    return ok(get_services().settings.public_config())
