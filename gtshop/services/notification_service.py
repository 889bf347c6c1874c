"""
Notification Service: Telegram operator channel
Outbound: templated order messages, with Accept/Decline inline buttons when a
payment proof arrives.
Inbound: callback queries from those buttons are authorised against the admin
directory and turned into accept/decline transitions.
"""

import html
import logging

import requests
from telebot import TeleBot, types
from telebot.apihelper import ApiTelegramException

from gtshop.errors import NotificationError
from gtshop.models.order import STATUS_LABELS_ID, OrderStatus
from gtshop.models.user import User

logger = logging.getLogger(__name__)

ACTION_PROOF_UPLOADED = "proof_uploaded"
ACTION_ACCEPTED = "accepted"
ACTION_DECLINED = "declined"
ACTION_NEW_TICKET = "new_ticket"

CALLBACK_PREFIX = "order"
TELEGRAM_DECLINE_REASON = "Declined via Telegram"

_TELEGRAM_ERRORS = (ApiTelegramException, requests.RequestException)


def format_currency(amount):
    """Whole rupiah in id-ID style: 70000 -> 'Rp 70.000'."""
    return "Rp " + f"{int(round(amount or 0)):,}".replace(",", ".")


def build_review_keyboard(order_id):
    kb = types.InlineKeyboardMarkup(row_width=2)
    kb.add(
        types.InlineKeyboardButton("Accept", callback_data=f"{CALLBACK_PREFIX}:accept:{order_id}"),
        types.InlineKeyboardButton("Decline", callback_data=f"{CALLBACK_PREFIX}:decline:{order_id}"),
    )
    return kb


def parse_callback_data(data):
    """'order:accept:GT-1' -> ('accept', 'GT-1'); anything else -> None."""
    parts = (data or "").split(":", 2)
    if len(parts) != 3:
        return None
    prefix, operation, order_id = parts
    if prefix != CALLBACK_PREFIX or operation not in ("accept", "decline") or not order_id:
        return None
    return operation, order_id


def _order_summary(order):
    e = html.escape
    return (
        f"📋 Order: {e(order.order_id)}\n"
        "🎮 Game: Growtopia\n"
        f"📦 Category: {e(order.category)}\n"
        f"👤 GrowID: {e(order.grow_id)}\n"
        f"🌍 World: {e(order.world)}\n"
        f"💰 Amount: {format_currency(order.total_price)}\n"
        f"👨‍💼 Buyer: {e(order.buyer_email)}"
    )


def format_order_message(order, action, actor_label=None, reason=None):
    e = html.escape
    if action == ACTION_PROOF_UPLOADED:
        return (
            "🔔 New Payment Proof Uploaded\n\n"
            f"{_order_summary(order)}\n\n"
            "Click Accept or Decline below."
        )
    if action == ACTION_ACCEPTED:
        return (
            "✅ Order Accepted\n\n"
            f"📋 Order: {e(order.order_id)}\n"
            f"Status: {STATUS_LABELS_ID[OrderStatus.ACCEPTED]}\n"
            f"Accepted by: {e(actor_label or '-')}"
        )
    if action == ACTION_DECLINED:
        return (
            "❌ Order Declined\n\n"
            f"📋 Order: {e(order.order_id)}\n"
            f"Status: {STATUS_LABELS_ID[OrderStatus.DECLINED]}\n"
            f"Reason: {e(reason or order.decline_reason or '-')}\n"
            f"Declined by: {e(actor_label or '-')}"
        )
    return (
        f"📋 Order Update: {e(order.order_id)}\n"
        f"Status: {e(order.status.label)}\n"
        f"💰 Amount: {format_currency(order.total_price)}"
    )


class TelegramNotifier:
    """
    Sends operator messages through a telebot.TeleBot.
    With no bot or no admin chat configured every call is a logged no-op.
    """

    def __init__(self, bot=None, admin_chat_id=None):
        self.bot = bot
        self.admin_chat_id = admin_chat_id

    @property
    def enabled(self):
        return self.bot is not None and bool(self.admin_chat_id)

    def dispatch(self, order, action, actor_label=None, reason=None):
        """
        Send the message for action. Returns (chat_id, message_id) of the
        message carrying the inline buttons for proof_uploaded, else None.
        Raises NotificationError when Telegram rejects the message.
        """
        if not self.enabled:
            logger.warning("Telegram configuration missing; skipped %s for order %s", action, order.order_id)
            return None

        text = format_order_message(order, action, actor_label=actor_label, reason=reason)
        markup = build_review_keyboard(order.order_id) if action == ACTION_PROOF_UPLOADED else None
        try:
            sent = self.bot.send_message(self.admin_chat_id, text, reply_markup=markup)
        except _TELEGRAM_ERRORS as e:
            raise NotificationError(f"Telegram send failed for order {order.order_id}: {e}") from e

        # the keyboard message is out; a missing photo must not lose its id
        if action == ACTION_PROOF_UPLOADED and order.proof_url:
            try:
                self.bot.send_photo(self.admin_chat_id, order.proof_url, caption="Payment Proof")
            except _TELEGRAM_ERRORS as e:
                logger.warning("Proof photo for order %s not delivered: %s", order.order_id, e)

        logger.info("Telegram %s notification sent for order %s", action, order.order_id)
        if markup is None:
            return None
        return str(sent.chat.id), sent.message_id

    def notify_ticket(self, ticket):
        if not self.enabled:
            logger.warning("Telegram configuration missing; skipped ticket %s", ticket.id)
            return
        text = (
            "🎫 New Support Ticket\n\n"
            f"Ticket: {html.escape(ticket.id)}\n"
            f"User: {html.escape(ticket.user_email)}\n"
            f"Subject: {html.escape(ticket.subject)}"
        )
        try:
            self.bot.send_message(self.admin_chat_id, text)
        except _TELEGRAM_ERRORS as e:
            raise NotificationError(f"Telegram send failed for ticket {ticket.id}: {e}") from e
        logger.info("Telegram %s notification sent for ticket %s", ACTION_NEW_TICKET, ticket.id)

    def clear_actions(self, order, outcome):
        """
        Rewrite the stored proof message with the review outcome and drop its
        Accept/Decline keyboard so the buttons cannot be pressed again.
        """
        text = (
            "🔔 Payment Proof Reviewed\n\n"
            f"{_order_summary(order)}\n\n"
            f"{html.escape(outcome)}"
        )
        return self.edit_message(order.notification_chat_id, order.notification_message_id, text)

    def edit_message(self, chat_id, message_id, text):
        """Replace a message's text; the keyboard goes with it. Never raises."""
        if self.bot is None or not chat_id or not message_id:
            return False
        try:
            self.bot.edit_message_text(text, chat_id=chat_id, message_id=message_id)
            return True
        except _TELEGRAM_ERRORS as e:
            logger.warning("Could not edit Telegram message %s/%s: %s", chat_id, message_id, e)
            return False

    def answer_callback(self, callback_query_id, text):
        if self.bot is None:
            return
        try:
            self.bot.answer_callback_query(callback_query_id, text=text, show_alert=True)
        except _TELEGRAM_ERRORS as e:
            logger.warning("Telegram answer callback error: %s", e)


def is_telegram_admin(telegram_user_id):
    """Checked against the users table on every callback, never cached."""
    return (
        User.query.filter_by(telegram_id=str(telegram_user_id), is_admin=True).first()
        is not None
    )


class OperatorCallbackHandler:
    """Turns Accept/Decline button presses into order transitions."""

    def __init__(self, orders, notifier):
        self.orders = orders
        self.notifier = notifier

    def handle_update(self, payload):
        update = types.Update.de_json(payload)
        if update is None or update.callback_query is None:
            return None
        return self.handle_callback(update.callback_query)

    def handle_callback(self, callback_query):
        parsed = parse_callback_data(callback_query.data)
        if parsed is None:
            logger.info("Ignoring callback data %r", callback_query.data)
            return None
        operation, order_id = parsed
        from_id = callback_query.from_user.id

        if not is_telegram_admin(from_id):
            logger.warning("Telegram user %s tried to %s order %s", from_id, operation, order_id)
            return self._reply(callback_query, "Access denied. Admin privileges required.", "denied")

        if self.orders.get_order(order_id) is None:
            return self._reply(callback_query, "Order not found", "not_found")

        actor = f"telegram:{from_id}"
        if operation == "accept":
            result = self.orders.accept_order(order_id, actor=actor, via="telegram")
            response, outcome = "✅ Order accepted successfully", "accepted"
        else:
            result = self.orders.decline_order(
                order_id, actor=actor, reason=TELEGRAM_DECLINE_REASON, via="telegram"
            )
            response, outcome = "❌ Order declined", "declined"

        if not result.applied:
            return self._reply(callback_query, "Order already processed", "already_processed")

        # the engine already cleared the stored message; an older copy (e.g.
        # before a resend) still carries live buttons
        message = callback_query.message
        order = result.order
        if message is not None and (
            str(message.chat.id) != str(order.notification_chat_id)
            or message.message_id != order.notification_message_id
        ):
            original = html.escape(message.text or message.caption or "")
            self.notifier.edit_message(message.chat.id, message.message_id, f"{original}\n\n{response}")
        return self._reply(callback_query, response, outcome)

    def _reply(self, callback_query, text, outcome):
        self.notifier.answer_callback(callback_query.id, text)
        return outcome


def build_bot(token):
    """Synchronous bot; webhook requests are answered inline, no polling thread."""
    if not token:
        return None
    return TeleBot(token, parse_mode="HTML", threaded=False)
