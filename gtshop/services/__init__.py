from dataclasses import dataclass

from gtshop.services.captcha_service import CaptchaService
from gtshop.services.chat_service import ChatService
from gtshop.services.notification_service import (
    OperatorCallbackHandler,
    TelegramNotifier,
    build_bot,
)
from gtshop.services.order_service import OrderService
from gtshop.services.rate_limit import RateLimiter
from gtshop.services.settings_service import SettingsService
from gtshop.services.storage_service import ProofStorage


@dataclass
class ShopServices:
    settings: SettingsService
    limiter: RateLimiter
    captcha: CaptchaService
    storage: ProofStorage
    notifier: TelegramNotifier
    orders: OrderService
    callbacks: OperatorCallbackHandler
    chat: ChatService


def build_services(config, bot=None):
    """
    Wire the services from app config. A bot passed in (tests) takes the
    place of the one built from TELEGRAM_BOT_TOKEN.
    """
    settings = SettingsService()
    limiter = RateLimiter()
    captcha = CaptchaService(settings, limiter, token_ttl=config["CAPTCHA_TOKEN_TTL"])
    storage = ProofStorage(config["UPLOAD_FOLDER"], config["PUBLIC_BASE_URL"])
    if bot is None:
        bot = build_bot(config.get("TELEGRAM_BOT_TOKEN"))
    notifier = TelegramNotifier(bot=bot, admin_chat_id=config.get("TELEGRAM_ADMIN_CHAT_ID"))
    orders = OrderService(
        settings,
        captcha,
        limiter,
        storage,
        notifier,
        captcha_required=config["CAPTCHA_REQUIRED"],
        country_code=config["PHONE_COUNTRY_CODE"],
    )
    return ShopServices(
        settings=settings,
        limiter=limiter,
        captcha=captcha,
        storage=storage,
        notifier=notifier,
        orders=orders,
        callbacks=OperatorCallbackHandler(orders, notifier),
        chat=ChatService(limiter, notifier),
    )


__all__ = ["ShopServices", "build_services"]
