from flask import current_app
from flask_jwt_extended import JWTManager
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
jwt = JWTManager()

# Revoked token ids (jti). Process-local, cleared on restart.
BLOCKLIST = set()


def get_services():
    """Return the ShopServices container bound to the running app."""
    return current_app.extensions["gtshop"]
