"""
Order Model: order store
Status: pending_confirmation | awaiting_admin_review | accepted | declined
"""

import enum
from datetime import datetime, timezone

from gtshop.extensions import db


class OrderStatus(str, enum.Enum):
    PENDING_CONFIRMATION = "pending_confirmation"
    AWAITING_ADMIN_REVIEW = "awaiting_admin_review"
    ACCEPTED = "accepted"
    DECLINED = "declined"

    @classmethod
    def parse(cls, value):
        """Accept enum values, member names and the legacy Indonesian literals."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        if text in LEGACY_STATUS_NAMES:
            return LEGACY_STATUS_NAMES[text]
        try:
            return cls(text.lower())
        except ValueError:
            raise ValueError(f"Unknown order status: {value!r}")

    @property
    def is_terminal(self):
        return self in (OrderStatus.ACCEPTED, OrderStatus.DECLINED)

    @property
    def label(self):
        return STATUS_LABELS[self]


LEGACY_STATUS_NAMES = {
    "PESANAN SUDAH DI PROSES": OrderStatus.ACCEPTED,
    "PESANAN DI TOLAK": OrderStatus.DECLINED,
}

STATUS_LABELS = {
    OrderStatus.PENDING_CONFIRMATION: "Pending",
    OrderStatus.AWAITING_ADMIN_REVIEW: "Under Review",
    OrderStatus.ACCEPTED: "Processing",
    OrderStatus.DECLINED: "Declined",
}

# Shown to buyers and in operator messages
STATUS_LABELS_ID = {
    OrderStatus.ACCEPTED: "PESANAN SUDAH DI PROSES",
    OrderStatus.DECLINED: "PESANAN DI TOLAK",
}


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class Order(db.Model):
    __tablename__ = "orders"

    order_id = db.Column(db.String(40), primary_key=True)
    buyer_uid = db.Column(db.String(36), nullable=False, index=True)
    buyer_email = db.Column(db.String(255), nullable=False)

    category = db.Column(db.String(8), nullable=False)
    purchase_type = db.Column(db.String(32), nullable=True)
    item_key = db.Column(db.String(64), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)
    total_price = db.Column(db.Integer, nullable=False)

    world = db.Column(db.String(30), nullable=False)
    grow_id = db.Column(db.String(30), nullable=False)
    customer_name = db.Column(db.String(50), nullable=False)
    whatsapp_number = db.Column(db.String(20), nullable=False)
    notes = db.Column(db.Text, nullable=False, default="")

    payment_method = db.Column(db.String(64), nullable=False)
    payment_target = db.Column(db.JSON, nullable=False)  # snapshot taken at order time

    proof_url = db.Column(db.Text, nullable=True)
    proof_uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    status = db.Column(
        db.Enum(
            OrderStatus,
            name="order_status",
            native_enum=False,
            length=32,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=OrderStatus.PENDING_CONFIRMATION,
        index=True,
    )
    accepted_by = db.Column(db.String(64), nullable=True)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    declined_by = db.Column(db.String(64), nullable=True)
    declined_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decline_reason = db.Column(db.Text, nullable=True)

    # Where the proof notification with Accept/Decline buttons was posted
    notification_chat_id = db.Column(db.String(32), nullable=True)
    notification_message_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    status_history = db.relationship(
        "OrderStatusEntry",
        order_by="OrderStatusEntry.id",
        lazy="select",
        cascade="save-update, merge",
    )

    def to_dict(self):
        return {
            "orderId": self.order_id,
            "buyerUID": self.buyer_uid,
            "buyerEmail": self.buyer_email,
            "category": self.category,
            "purchaseType": self.purchase_type,
            "itemKey": self.item_key,
            "world": self.world,
            "growId": self.grow_id,
            "customerName": self.customer_name,
            "whatsappNumber": self.whatsapp_number,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "totalPrice": self.total_price,
            "paymentMethod": self.payment_method,
            "paymentTarget": dict(self.payment_target or {}),
            "notes": self.notes or "",
            "proofUrl": self.proof_url,
            "proofUploadedAt": _iso(self.proof_uploaded_at),
            "status": self.status.value,
            "statusLabel": self.status.label,
            "statusHistory": [entry.to_dict() for entry in self.status_history],
            "acceptedBy": self.accepted_by,
            "acceptedAt": _iso(self.accepted_at),
            "declinedBy": self.declined_by,
            "declinedAt": _iso(self.declined_at),
            "declineReason": self.decline_reason,
            "timestamp": _iso(self.created_at),
        }


class OrderStatusEntry(db.Model):
    """Append-only audit trail. Rows are never updated or deleted."""

    __tablename__ = "order_status_history"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    order_id = db.Column(db.String(40), db.ForeignKey("orders.order_id"), nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    actor = db.Column(db.String(64), nullable=True)
    note = db.Column(db.Text, nullable=False, default="")

    def to_dict(self):
        return {
            "status": self.status,
            "timestamp": _iso(self.timestamp),
            "actor": self.actor,
            "note": self.note,
        }
