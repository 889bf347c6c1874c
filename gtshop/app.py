"""
GT Shop API
Storefront, order review console and Telegram webhook in one Flask app.
"""

import logging
from datetime import datetime, timezone

from flasgger import Swagger
from flask import Flask, jsonify, send_from_directory

from gtshop.config import Config
from gtshop.errors import register_error_handlers
from gtshop.extensions import BLOCKLIST, db, jwt
from gtshop.models import User
from gtshop.services import build_services

SWAGGER_TEMPLATE = {
    "info": {"title": "GT Shop API", "version": "0.1.0"},
    "securityDefinitions": {
        "Bearer": {"type": "apiKey", "name": "Authorization", "in": "header"},
    },
}


def _jwt_error(message):
    return jsonify({"success": False, "error_code": "unauthenticated", "message": message}), 401


def _register_jwt_callbacks():
    @jwt.user_lookup_loader
    def load_user(jwt_header, jwt_data):
        return db.session.get(User, jwt_data["sub"])

    @jwt.user_lookup_error_loader
    def user_missing(jwt_header, jwt_data):
        return _jwt_error("User not found")

    @jwt.token_in_blocklist_loader
    def check_if_token_in_blocklist(jwt_header, jwt_payload):
        return jwt_payload["jti"] in BLOCKLIST

    # email verification tokens are only good for /verify-email
    @jwt.token_verification_loader
    def reject_purpose_tokens(jwt_header, jwt_data):
        return "purpose" not in jwt_data

    @jwt.token_verification_failed_loader
    def purpose_token_used(jwt_header, jwt_data):
        return _jwt_error("Token cannot be used here")

    @jwt.unauthorized_loader
    def missing_token(reason):
        return _jwt_error("User not authenticated")

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return _jwt_error(f"Invalid token: {reason}")

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return _jwt_error("Token has expired")

    @jwt.revoked_token_loader
    def revoked_token(jwt_header, jwt_payload):
        return _jwt_error("Token has been revoked")


def create_app(config=None, telegram_bot=None):
    app = Flask(__name__)

    # Configuration
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Initialize Extensions
    db.init_app(app)
    jwt.init_app(app)
    _register_jwt_callbacks()

    Swagger(app, template=SWAGGER_TEMPLATE)
    register_error_handlers(app)

    # Register Blueprints
    from gtshop.routes.auth import auth_bp
    app.register_blueprint(auth_bp, url_prefix="/api/auth")

    from gtshop.routes.settings import settings_bp
    app.register_blueprint(settings_bp, url_prefix="/api/config")

    from gtshop.routes.captcha import captcha_bp
    app.register_blueprint(captcha_bp, url_prefix="/api/captcha")

    from gtshop.routes.orders import orders_bp
    app.register_blueprint(orders_bp, url_prefix="/api/orders")

    from gtshop.routes.notifications import notifications_bp
    app.register_blueprint(notifications_bp, url_prefix="/api/notifications")

    from gtshop.routes.webhooks import webhooks_bp
    app.register_blueprint(webhooks_bp, url_prefix="/api/webhooks")

    from gtshop.routes.chat import chat_bp
    app.register_blueprint(chat_bp, url_prefix="/api/chat")

    from gtshop.routes.admin import admin_bp
    app.register_blueprint(admin_bp, url_prefix="/admin")

    services = build_services(app.config, bot=telegram_bot)
    app.extensions["gtshop"] = services

    with app.app_context():
        db.create_all()
        services.settings.ensure_defaults()
        services.chat.seed_defaults()

    if not services.notifier.enabled:
        app.logger.warning("TELEGRAM_BOT_TOKEN or TELEGRAM_ADMIN_CHAT_ID not set; operator notifications are off")

    @app.route("/uploads/<path:filename>")
    def uploaded_file(filename):
        return send_from_directory(app.config["UPLOAD_FOLDER"], filename)

    @app.route("/health")
    def health():
        try:
            db.session.execute(db.text("SELECT 1"))
        except Exception as e:
            app.logger.error("Health check failed: %s", e)
            return jsonify({
                "service": "gtshop",
                "status": "unhealthy",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }), 503
        return jsonify({
            "service": "gtshop",
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {
                "database": "ok",
                "telegram": "configured" if services.notifier.enabled else "not_configured",
            },
        })

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=5000)
