"""
Settings Service: config store
Prices, item catalog, payment methods, captcha assets and limits live in the
settings table as a small key -> JSON tree. Every read goes to the database so
an admin edit is visible to the next request; there is no process cache.
"""

import copy
import logging
import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from gtshop.errors import NotFoundError, ValidationError
from gtshop.extensions import db
from gtshop.models.setting import Setting

logger = logging.getLogger(__name__)

RGT_PURCHASE_TYPES = ("dl", "bgl")
DEFAULT_MAX_QUANTITY = 100

DEFAULT_SETTINGS = {
    "website_name": "Growtopia Shop",
    "fee_percent": 0,
    "prices": {
        "rgt": {"dl": 35000, "bgl": 70000},
        "rps": {},
    },
    "rps_items": [
        {"key": "MPS", "label_en": "Magic Pickaxe Seed", "label_id": "Magic Pickaxe Seed", "price": 50000},
        {"key": "CLOCK", "label_en": "Clock", "label_id": "Clock", "price": 25000},
        {"key": "RAYMAN", "label_en": "Rayman's Fist", "label_id": "Rayman's Fist", "price": 100000},
        {"key": "ZEUS", "label_en": "Zeus Lightning Bolt", "label_id": "Zeus Lightning Bolt", "price": 150000},
    ],
    "payment_methods": {
        "dana": {
            "providerLabel": "DANA",
            "accountNumber": "081234567890",
            "accountName": "GT SHOP",
            "instructions": "Transfer to DANA number above, then upload proof",
            "qrImageUrl": "",
        },
        "gopay": {
            "providerLabel": "GoPay",
            "accountNumber": "081234567890",
            "accountName": "GT SHOP",
            "instructions": "Transfer to GoPay number above, then upload proof",
            "qrImageUrl": "",
        },
    },
    "captcha_mode": "manual",
    "captcha_list": {},
    "max_quantity": {"rgt": 100, "rps": 50},
}


def _positive_int(value, field):
    try:
        number = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{field} must be a number")
    if number <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    try:
        return int(number.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        raise ValidationError(f"{field} is too large")


class SettingsService:
    def ensure_defaults(self):
        """Write any missing top-level key with its default value."""
        existing = {row.key for row in Setting.query.all()}
        missing = [key for key in DEFAULT_SETTINGS if key not in existing]
        for key in missing:
            db.session.add(Setting(key=key, value=copy.deepcopy(DEFAULT_SETTINGS[key])))
        if missing:
            db.session.commit()
            logger.info("Initialised default settings: %s", ", ".join(missing))

    # --- raw access ---------------------------------------------------------

    def get(self, key):
        row = db.session.get(Setting, key)
        if row is None or row.value is None:
            return copy.deepcopy(DEFAULT_SETTINGS.get(key))
        return copy.deepcopy(row.value)

    def set(self, key, value):
        row = db.session.get(Setting, key)
        if row is None:
            row = Setting(key=key)
            db.session.add(row)
        # always assign a fresh object so the JSON column is flagged dirty
        row.value = copy.deepcopy(value)
        db.session.commit()

    # --- reads --------------------------------------------------------------

    def website_name(self):
        return self.get("website_name") or DEFAULT_SETTINGS["website_name"]

    def fee_percent(self):
        return float(self.get("fee_percent") or 0)

    def rgt_price(self, purchase_type):
        prices = (self.get("prices") or {}).get("rgt") or {}
        return int(prices.get(str(purchase_type or "").lower()) or 0)

    def rps_items(self):
        return self.get("rps_items") or []

    def rps_item(self, item_key):
        for item in self.rps_items():
            if item.get("key") == item_key:
                return item
        return None

    def rps_price(self, item_key):
        item = self.rps_item(item_key)
        return int(item.get("price") or 0) if item else 0

    def payment_methods(self):
        return self.get("payment_methods") or {}

    def payment_method(self, key):
        return self.payment_methods().get(key)

    def captcha_mode(self):
        return self.get("captcha_mode") or "manual"

    def captcha_list(self):
        return self.get("captcha_list") or {}

    def max_quantity(self, category):
        limits = self.get("max_quantity") or {}
        return int(limits.get(str(category).lower()) or DEFAULT_MAX_QUANTITY)

    def calculate_total(self, unit_price, quantity):
        total = Decimal(unit_price) * Decimal(quantity)
        fee = Decimal(str(self.fee_percent()))
        if fee > 0:
            total *= 1 + fee / 100
        return int(total.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def public_config(self):
        """Everything a storefront needs; captcha answer hashes stay server-side."""
        return {
            "website_name": self.website_name(),
            "fee_percent": self.fee_percent(),
            "prices": self.get("prices"),
            "rps_items": self.rps_items(),
            "payment_methods": self.payment_methods(),
            "captcha_mode": self.captcha_mode(),
            "max_quantity": self.get("max_quantity"),
        }

    # --- admin writes -------------------------------------------------------

    def update_website(self, name=None, fee_percent=None):
        if name is not None:
            name = str(name).replace("<", "").replace(">", "").strip()[:100]
            if not name:
                raise ValidationError("Website name must not be empty")
            self.set("website_name", name)
        if fee_percent is not None:
            try:
                fee = float(fee_percent)
            except (TypeError, ValueError):
                raise ValidationError("Fee percent must be a number")
            if not math.isfinite(fee):
                raise ValidationError("Fee percent must be a number")
            if fee < 0 or fee > 100:
                raise ValidationError("Fee percent must be between 0 and 100")
            self.set("fee_percent", fee)

    def update_rgt_prices(self, prices):
        current = self.get("prices") or {"rgt": {}, "rps": {}}
        rgt = current.setdefault("rgt", {})
        for purchase_type, price in prices.items():
            key = str(purchase_type).lower()
            if key not in RGT_PURCHASE_TYPES:
                raise ValidationError(f"Unknown purchase type: {purchase_type}")
            rgt[key] = _positive_int(price, f"{key} price")
        self.set("prices", current)

    def upsert_rps_item(self, item_key, data):
        if not item_key:
            raise ValidationError("Item key is required")
        items = self.rps_items()
        update = {k: v for k, v in data.items() if k in ("label_en", "label_id", "price")}
        if "price" in update:
            update["price"] = _positive_int(update["price"], "Item price")
        for item in items:
            if item.get("key") == item_key:
                item.update(update)
                break
        else:
            if "price" not in update:
                raise ValidationError("Item price is required")
            items.append({"key": item_key, **update})
        self.set("rps_items", items)

    def remove_rps_item(self, item_key):
        items = self.rps_items()
        remaining = [item for item in items if item.get("key") != item_key]
        if len(remaining) == len(items):
            raise NotFoundError("Item not found")
        self.set("rps_items", remaining)

    def upsert_payment_method(self, key, data):
        missing = [f for f in ("providerLabel", "accountNumber", "accountName") if not data.get(f)]
        if not key or missing:
            raise ValidationError("Invalid payment method", details=[f"{f} is required" for f in missing])
        methods = self.payment_methods()
        methods[key] = {
            "providerLabel": str(data["providerLabel"]),
            "accountNumber": str(data["accountNumber"]),
            "accountName": str(data["accountName"]),
            "instructions": str(data.get("instructions", "")),
            "qrImageUrl": str(data.get("qrImageUrl", "")),
        }
        self.set("payment_methods", methods)

    def remove_payment_method(self, key):
        methods = self.payment_methods()
        if key not in methods:
            raise NotFoundError("Payment method not found")
        del methods[key]
        self.set("payment_methods", methods)

    def set_captcha_asset(self, captcha_id, image_url, answer_hash):
        assets = self.captcha_list()
        assets[captcha_id] = {"imageUrl": image_url, "answerHash": answer_hash}
        self.set("captcha_list", assets)

    def remove_captcha_asset(self, captcha_id):
        assets = self.captcha_list()
        if captcha_id not in assets:
            raise NotFoundError("Invalid captcha ID")
        del assets[captcha_id]
        self.set("captcha_list", assets)
