"""
Order Validation
Cleans and checks a buyer submission. Every failing field is reported in one
ValidationError so the form can show all problems at once.
"""

import re
from dataclasses import dataclass
from typing import Optional

from gtshop.errors import ValidationError
from gtshop.services.settings_service import RGT_PURCHASE_TYPES

CATEGORIES = ("RGT", "RPS")

WORLD_MAX = 30
GROW_ID_MAX = 30
CUSTOMER_NAME_MAX = 50
NOTES_MAX = 500

_TAG_RE = re.compile(r"<[^>]*>")
_GROW_ID_RE = re.compile(r"^[A-Za-z0-9]+$")


def sanitize_input(value):
    """Strip HTML tags and stray angle brackets, then surrounding whitespace."""
    if not isinstance(value, str):
        return ""
    value = _TAG_RE.sub("", value)
    return value.replace("<", "").replace(">", "").strip()


def normalize_phone(phone, country_code="62"):
    """
    Convert a local number to +<country code><subscriber>.
    '081234567890' and '6281234567890' both become '+6281234567890'.
    """
    digits = re.sub(r"\D", "", str(phone or ""))
    if digits.startswith("0"):
        digits = country_code + digits[1:]
    elif digits.startswith(country_code):
        pass
    elif digits.startswith("8"):
        digits = country_code + digits
    return "+" + digits


def validate_phone(phone, country_code="62"):
    return re.fullmatch(rf"\+{re.escape(country_code)}[0-9]{{9,13}}", phone or "") is not None


def _parse_quantity(raw):
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


@dataclass
class ValidatedOrder:
    category: str
    purchase_type: Optional[str]
    item_key: Optional[str]
    world: str
    grow_id: str
    customer_name: str
    whatsapp_number: str
    quantity: int
    notes: str
    payment_method: str
    payment_target: dict
    unit_price: int = 0
    total_price: int = 0


def validate_order_data(data, settings, country_code="62"):
    """
    Returns a ValidatedOrder with prices left at 0; pricing is the caller's job
    because a missing price is a configuration problem, not a user mistake.
    """
    errors = []
    data = data or {}

    world = sanitize_input(data.get("world"))
    if not world or len(world) > WORLD_MAX:
        errors.append(f"World name is required and must be 1-{WORLD_MAX} characters")

    grow_id = sanitize_input(data.get("growId"))
    if not grow_id or len(grow_id) > GROW_ID_MAX or not _GROW_ID_RE.match(grow_id):
        errors.append(f"GrowID must be alphanumeric and 1-{GROW_ID_MAX} characters")

    customer_name = sanitize_input(data.get("customerName"))
    if not customer_name or len(customer_name) > CUSTOMER_NAME_MAX:
        errors.append(f"Customer name is required and must be 1-{CUSTOMER_NAME_MAX} characters")

    raw_phone = data.get("whatsappNumber")
    whatsapp_number = ""
    if not raw_phone or not str(raw_phone).strip():
        errors.append("WhatsApp number is required")
    else:
        whatsapp_number = normalize_phone(raw_phone, country_code)
        if not validate_phone(whatsapp_number, country_code):
            errors.append("Invalid WhatsApp number format")

    notes = sanitize_input(data.get("notes") or "")
    if len(notes) > NOTES_MAX:
        errors.append(f"Notes must be at most {NOTES_MAX} characters")

    category = str(data.get("category") or "").strip().upper()
    purchase_type = None
    item_key = None
    if category not in CATEGORIES:
        errors.append("Category must be RGT or RPS")
    elif category == "RGT":
        purchase_type = str(data.get("purchaseType") or "").strip().lower()
        if purchase_type not in RGT_PURCHASE_TYPES:
            errors.append("Purchase type must be one of: " + ", ".join(RGT_PURCHASE_TYPES))
    else:
        item_key = str(data.get("itemKey") or "").strip()
        if not item_key or settings.rps_item(item_key) is None:
            errors.append("Selected item is not available")

    quantity = _parse_quantity(data.get("quantity"))
    if quantity is None or quantity < 1:
        errors.append("Quantity must be at least 1")
    elif category in CATEGORIES:
        max_quantity = settings.max_quantity(category)
        if quantity > max_quantity:
            errors.append(f"Maximum quantity is {max_quantity}")

    payment_method = str(data.get("paymentMethod") or "").strip()
    method = settings.payment_method(payment_method) if payment_method else None
    if method is None:
        errors.append("Please select a payment method")

    if errors:
        raise ValidationError("Please fix the highlighted fields", details=errors)

    return ValidatedOrder(
        category=category,
        purchase_type=purchase_type,
        item_key=item_key,
        world=world,
        grow_id=grow_id,
        customer_name=customer_name,
        whatsapp_number=whatsapp_number,
        quantity=quantity,
        notes=notes,
        payment_method=payment_method,
        payment_target={
            "provider": method.get("providerLabel", ""),
            "accountNumber": method.get("accountNumber", ""),
            "accountName": method.get("accountName", ""),
        },
    )
