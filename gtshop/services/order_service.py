"""
Order Service: order lifecycle engine
Handles create, proof upload and admin review.

Every status change is a single conditional UPDATE keyed on the expected prior
status; the row count decides which of several concurrent callers wins, and the
history entry is written in the same transaction.
"""

import logging
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from gtshop.errors import (
    ConfigurationError,
    FailedPreconditionError,
    InternalError,
    NotFoundError,
    NotificationError,
    PermissionDeniedError,
    RateLimitError,
    ValidationError,
)
from gtshop.extensions import db
from gtshop.models.order import Order, OrderStatus, OrderStatusEntry
from gtshop.services.captcha_service import random_suffix
from gtshop.services.notification_service import (
    ACTION_ACCEPTED,
    ACTION_DECLINED,
    ACTION_PROOF_UPLOADED,
)
from gtshop.services.order_validation import sanitize_input, validate_order_data

logger = logging.getLogger(__name__)

ORDER_LIMIT = 5
ORDER_WINDOW_SECONDS = 300
DEFAULT_LIST_LIMIT = 100

VALID_TRANSITIONS = {
    OrderStatus.PENDING_CONFIRMATION: {OrderStatus.AWAITING_ADMIN_REVIEW},
    # re-upload replaces the proof while the order is still under review
    OrderStatus.AWAITING_ADMIN_REVIEW: {
        OrderStatus.AWAITING_ADMIN_REVIEW,
        OrderStatus.ACCEPTED,
        OrderStatus.DECLINED,
    },
    OrderStatus.ACCEPTED: set(),
    OrderStatus.DECLINED: set(),
}

# notifications that describe a review state may only be sent from that state
NOTIFY_ACTION_STATUS = {
    ACTION_PROOF_UPLOADED: OrderStatus.AWAITING_ADMIN_REVIEW,
    ACTION_ACCEPTED: OrderStatus.ACCEPTED,
    ACTION_DECLINED: OrderStatus.DECLINED,
}

SUPERSEDED_OUTCOME = "↪️ Superseded by a newer notification"

_BASE36 = string.digits + string.ascii_uppercase


def _to_base36(number):
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_order_id(now_ms=None):
    """GT-<base36 milliseconds>-<6 random base36>, upper case."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"GT-{_to_base36(now_ms)}-{random_suffix(6).upper()}"


def allowed_sources(new_status):
    """Statuses from which new_status may be entered."""
    return [status for status, targets in VALID_TRANSITIONS.items() if new_status in targets]


@dataclass
class TransitionResult:
    applied: bool
    order: Optional[Order]
    reason: Optional[str] = None


class OrderService:
    def __init__(
        self,
        settings,
        captcha,
        limiter,
        storage,
        notifier,
        captcha_required=True,
        country_code="62",
    ):
        self.settings = settings
        self.captcha = captcha
        self.limiter = limiter
        self.storage = storage
        self.notifier = notifier
        self.captcha_required = captcha_required
        self.country_code = country_code

    # --- queries ------------------------------------------------------------

    def get_order(self, order_id):
        return self._get_order(order_id)

    def _get_order(self, order_id):
        if not order_id:
            return None
        return db.session.get(Order, order_id)

    def list_orders(self, status=None, limit=DEFAULT_LIST_LIMIT):
        query = Order.query
        if status:
            try:
                query = query.filter(Order.status == OrderStatus.parse(status))
            except ValueError:
                raise ValidationError(f"Unknown order status: {status}")
        return query.order_by(Order.created_at.desc()).limit(limit).all()

    def list_orders_for_buyer(self, buyer_uid):
        return (
            Order.query.filter_by(buyer_uid=buyer_uid)
            .order_by(Order.created_at.desc())
            .all()
        )

    # --- buyer operations ---------------------------------------------------

    def create_order(self, user, payload, captcha_token=None):
        """
        Called by the storefront checkout form.
        Prices are looked up here; any total the client sent is ignored.
        """
        if not user.email_verified:
            raise PermissionDeniedError("Please verify your email before placing an order")

        if not self.limiter.hit(f"order:{user.user_id}", ORDER_LIMIT, ORDER_WINDOW_SECONDS):
            raise RateLimitError("Too many orders. Please wait a few minutes and try again.")

        payload = payload or {}
        if self.captcha_required:
            token = captcha_token or payload.get("captchaToken")
            if not self.captcha.consume_token(token):
                raise ValidationError("Please complete the captcha verification")

        validated = validate_order_data(payload, self.settings, self.country_code)

        if validated.category == "RGT":
            unit_price = self.settings.rgt_price(validated.purchase_type)
        else:
            unit_price = self.settings.rps_price(validated.item_key)
        if unit_price <= 0:
            logger.error(
                "No price configured for %s %s",
                validated.category,
                validated.purchase_type or validated.item_key,
            )
            raise ConfigurationError()

        order = Order(
            order_id=generate_order_id(),
            buyer_uid=user.user_id,
            buyer_email=user.email,
            category=validated.category,
            purchase_type=validated.purchase_type,
            item_key=validated.item_key,
            quantity=validated.quantity,
            unit_price=unit_price,
            total_price=self.settings.calculate_total(unit_price, validated.quantity),
            world=validated.world,
            grow_id=validated.grow_id,
            customer_name=validated.customer_name,
            whatsapp_number=validated.whatsapp_number,
            notes=validated.notes,
            payment_method=validated.payment_method,
            payment_target=validated.payment_target,
            status=OrderStatus.PENDING_CONFIRMATION,
        )
        db.session.add(order)
        db.session.add(
            OrderStatusEntry(
                order_id=order.order_id,
                status=OrderStatus.PENDING_CONFIRMATION.value,
                actor=user.user_id,
                note="Order created",
            )
        )
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise InternalError(f"Failed to save order: {e}")

        logger.info("Order %s created by %s (total %s)", order.order_id, user.user_id, order.total_price)
        return order

    def submit_proof(self, user, order_id, upload):
        order = self._get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if order.buyer_uid != user.user_id and not user.is_admin:
            raise PermissionDeniedError("You can only upload proof for your own orders")
        if order.status.is_terminal:
            raise FailedPreconditionError("Order has already been processed")

        proof_url = self.storage.save(order_id, upload)

        try:
            applied = self._transition(
                order_id,
                OrderStatus.AWAITING_ADMIN_REVIEW,
                actor=user.user_id,
                note="Payment proof uploaded",
                proof_url=proof_url,
                proof_uploaded_at=datetime.now(timezone.utc),
            )
        except SQLAlchemyError:
            self.storage.delete(proof_url)
            raise
        if not applied:
            # settled while the file was being written
            self.storage.delete(proof_url)
            raise FailedPreconditionError("Order has already been processed")

        order = db.session.get(Order, order_id)
        if order.notification_message_id:
            # a re-upload; the earlier keyboard must not stay live
            self.notifier.clear_actions(order, SUPERSEDED_OUTCOME)
        try:
            sent = self.notifier.dispatch(order, ACTION_PROOF_UPLOADED)
        except NotificationError as e:
            logger.warning("Proof notification for %s failed: %s", order_id, e)
        else:
            if sent:
                self._record_notification(order_id, sent)
                order = db.session.get(Order, order_id)
        return order

    # --- admin review -------------------------------------------------------

    def accept_order(self, order_id, actor, via="console", actor_label=None):
        if self._get_order(order_id) is None:
            raise NotFoundError("Order not found")

        applied = self._transition(
            order_id,
            OrderStatus.ACCEPTED,
            actor=actor,
            note=f"Accepted via {via}",
            accepted_by=actor,
            accepted_at=datetime.now(timezone.utc),
        )
        order = db.session.get(Order, order_id)
        if not applied:
            logger.info("Accept of %s by %s ignored; status is %s", order_id, actor, order.status.value)
            return TransitionResult(False, order, "already_processed")

        logger.info("Order %s accepted by %s via %s", order_id, actor, via)
        self._after_review(order, ACTION_ACCEPTED, via, actor_label or actor)
        return TransitionResult(True, order)

    def decline_order(self, order_id, actor, reason, via="console", actor_label=None):
        reason = sanitize_input(reason or "")
        if not reason:
            raise ValidationError("Decline reason is required")
        if self._get_order(order_id) is None:
            raise NotFoundError("Order not found")

        applied = self._transition(
            order_id,
            OrderStatus.DECLINED,
            actor=actor,
            note=reason,
            declined_by=actor,
            declined_at=datetime.now(timezone.utc),
            decline_reason=reason,
        )
        order = db.session.get(Order, order_id)
        if not applied:
            logger.info("Decline of %s by %s ignored; status is %s", order_id, actor, order.status.value)
            return TransitionResult(False, order, "already_processed")

        logger.info("Order %s declined by %s via %s: %s", order_id, actor, via, reason)
        self._after_review(order, ACTION_DECLINED, via, actor_label or actor, reason)
        return TransitionResult(True, order)

    def send_notification(self, user, order_id, action, reason=None):
        """
        Push an order message to the operator chat on request.
        Buyers may only notify about their own orders. The message content
        comes from the stored order: accepted/declined/proof_uploaded are only
        sent while the order is actually in that state, and the reviewer and
        reason are the recorded ones, not the caller's.
        """
        order = self._get_order(order_id)
        if order is None or (order.buyer_uid != user.user_id and not user.is_admin):
            raise NotFoundError("Order not found")
        if not self.notifier.enabled:
            raise ConfigurationError("Telegram notifications are not configured")

        action = action or "status"
        actor_label, expected = user.email, NOTIFY_ACTION_STATUS.get(action)
        if expected is not None and order.status != expected:
            raise FailedPreconditionError(
                f"Cannot send a {action} notification for an order that is {order.status.value}"
            )
        if action == ACTION_ACCEPTED:
            actor_label = order.accepted_by
        elif action == ACTION_DECLINED:
            actor_label, reason = order.declined_by, order.decline_reason
        elif action == ACTION_PROOF_UPLOADED:
            if order.notification_message_id and not user.is_admin:
                raise FailedPreconditionError("Operators have already been notified about this order")
            self.notifier.clear_actions(order, SUPERSEDED_OUTCOME)

        try:
            sent = self.notifier.dispatch(order, action, actor_label=actor_label, reason=reason)
        except NotificationError as e:
            logger.error("Notification for %s failed: %s", order_id, e)
            raise InternalError("Failed to send notification")
        if sent:
            self._record_notification(order_id, sent)
        return db.session.get(Order, order_id)

    def resend_proof_notification(self, user, order_id):
        order = self._get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        action = ACTION_PROOF_UPLOADED if order.status == OrderStatus.AWAITING_ADMIN_REVIEW else "status"
        return self.send_notification(user, order_id, action)

    # --- internals ----------------------------------------------------------

    def _transition(self, order_id, new_status, actor, note, **values):
        """
        Compare-and-set on the status column. Returns False when the order was
        not in any status that may move to new_status.
        """
        stmt = (
            update(Order)
            .where(Order.order_id == order_id, Order.status.in_(allowed_sources(new_status)))
            .values(status=new_status, **values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = db.session.execute(stmt)
            if result.rowcount != 1:
                db.session.rollback()
                return False
            db.session.add(
                OrderStatusEntry(order_id=order_id, status=new_status.value, actor=actor, note=note)
            )
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        return True

    def _record_notification(self, order_id, sent):
        chat_id, message_id = sent
        db.session.execute(
            update(Order)
            .where(Order.order_id == order_id)
            .values(notification_chat_id=chat_id, notification_message_id=message_id)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()

    def _after_review(self, order, action, via, actor_label, reason=None):
        if action == ACTION_ACCEPTED:
            outcome = f"✅ Accepted by {actor_label}"
        else:
            outcome = f"❌ Declined by {actor_label}\nReason: {reason}"
        self.notifier.clear_actions(order, outcome)

        if via == "telegram":
            return
        try:
            self.notifier.dispatch(order, action, actor_label=actor_label, reason=reason)
        except NotificationError as e:
            logger.warning("Review notification for %s failed: %s", order.order_id, e)
