import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///gtshop.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JWT_SECRET_KEY = os.environ.get("JWT_SECRET", "dev-secret-change-me")

    # Comma separated; matching accounts are flagged admin on register/login
    ADMIN_EMAILS = [e.strip().lower() for e in os.environ.get("ADMIN_EMAILS", "").split(",") if e.strip()]

    # Telegram operator channel
    TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN")
    TELEGRAM_ADMIN_CHAT_ID = os.environ.get("TELEGRAM_ADMIN_CHAT_ID")
    TELEGRAM_WEBHOOK_SECRET = os.environ.get("TELEGRAM_WEBHOOK_SECRET")

    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", os.path.abspath("uploads"))
    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:5000")
    MAX_CONTENT_LENGTH = 12 * 1024 * 1024

    CAPTCHA_REQUIRED = _flag("CAPTCHA_REQUIRED", True)
    CAPTCHA_TOKEN_TTL = int(os.environ.get("CAPTCHA_TOKEN_TTL", "600"))

    PHONE_COUNTRY_CODE = os.environ.get("PHONE_COUNTRY_CODE", "62")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
