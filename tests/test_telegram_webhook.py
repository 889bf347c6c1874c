import unittest
from unittest import mock

from gtshop.extensions import db
from gtshop.models import Order, OrderStatus, OrderStatusEntry, User
from gtshop.services.notification_service import format_currency, parse_callback_data
from gtshop.services.order_service import OrderService
from tests.base import ADMIN_CHAT_ID, ShopTestCase

OPERATOR_TELEGRAM_ID = 4242


def callback_update(data, from_id, message_id=1, update_id=1):
    return {
        "update_id": update_id,
        "callback_query": {
            "id": f"cb-{update_id}",
            "from": {"id": from_id, "is_bot": False, "first_name": "Operator"},
            "chat_instance": "instance-1",
            "data": data,
            "message": {
                "message_id": message_id,
                "date": 1700000000,
                "chat": {"id": int(ADMIN_CHAT_ID), "type": "supergroup", "title": "Orders"},
                "text": "New Payment Proof Uploaded",
            },
        },
    }


class TestHelpers(unittest.TestCase):
    def test_format_currency(self):
        self.assertEqual(format_currency(70000), "Rp 70.000")
        self.assertEqual(format_currency(1234567), "Rp 1.234.567")
        self.assertEqual(format_currency(0), "Rp 0")

    def test_parse_callback_data(self):
        self.assertEqual(parse_callback_data("order:accept:GT-1-ABC"), ("accept", "GT-1-ABC"))
        self.assertEqual(parse_callback_data("order:decline:GT-1-ABC"), ("decline", "GT-1-ABC"))
        self.assertIsNone(parse_callback_data("order:refund:GT-1"))
        self.assertIsNone(parse_callback_data("accept_GT-1"))
        self.assertIsNone(parse_callback_data(None))


class TestTelegramWebhook(ShopTestCase):
    def setUp(self):
        super().setUp()
        self.buyer = self.make_user()
        self.operator = self.make_user("operator@example.com", admin=True, telegram_id=str(OPERATOR_TELEGRAM_ID))
        self.order_id = self.order_under_review(self.buyer)["orderId"]
        self.proof_message_id = self.bot.sent[0]["message_id"]

    def press(self, operation, from_id=OPERATOR_TELEGRAM_ID, order_id=None, update_id=1, headers=None):
        payload = callback_update(
            f"order:{operation}:{order_id or self.order_id}",
            from_id,
            message_id=self.proof_message_id,
            update_id=update_id,
        )
        return self.client.post("/api/webhooks/telegram", json=payload, headers=headers or {})

    def order(self):
        db.session.expire_all()
        return db.session.get(Order, self.order_id)

    def test_get_is_not_allowed(self):
        resp = self.client.get("/api/webhooks/telegram")
        self.assertEqual(resp.status_code, 405)

    def test_accept_via_button(self):
        resp = self.press("accept")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["data"]["outcome"], "accepted")

        order = self.order()
        self.assertEqual(order.status, OrderStatus.ACCEPTED)
        self.assertEqual(order.accepted_by, f"telegram:{OPERATOR_TELEGRAM_ID}")
        self.assertEqual(self.bot.answers[-1]["text"], "✅ Order accepted successfully")
        self.assertTrue(self.bot.answers[-1]["show_alert"])
        # the proof message loses its buttons
        self.assertEqual([e["message_id"] for e in self.bot.edits], [self.proof_message_id])

    def test_decline_via_button(self):
        self.press("decline")
        order = self.order()
        self.assertEqual(order.status, OrderStatus.DECLINED)
        self.assertEqual(order.decline_reason, "Declined via Telegram")
        self.assertEqual(self.bot.answers[-1]["text"], "❌ Order declined")

    def test_redelivered_callback_is_idempotent(self):
        self.press("accept", update_id=7)
        resp = self.press("accept", update_id=7)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["data"]["outcome"], "already_processed")
        self.assertEqual(self.bot.answers[-1]["text"], "Order already processed")

        statuses = [e.status for e in OrderStatusEntry.query.filter_by(order_id=self.order_id)]
        self.assertEqual(statuses.count("accepted"), 1)

    def test_decline_after_accept_changes_nothing(self):
        self.press("accept")
        self.press("decline", update_id=2)
        self.assertEqual(self.order().status, OrderStatus.ACCEPTED)
        self.assertEqual(self.bot.answers[-1]["text"], "Order already processed")

    def test_non_admin_is_denied(self):
        resp = self.press("accept", from_id=999)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["data"]["outcome"], "denied")
        self.assertEqual(self.bot.answers[-1]["text"], "Access denied. Admin privileges required.")
        self.assertEqual(self.order().status, OrderStatus.AWAITING_ADMIN_REVIEW)

    def test_revoked_admin_is_denied_on_next_callback(self):
        user = db.session.get(User, self.operator)
        user.is_admin = False
        db.session.commit()

        self.press("accept")
        self.assertEqual(self.bot.answers[-1]["text"], "Access denied. Admin privileges required.")
        self.assertEqual(self.order().status, OrderStatus.AWAITING_ADMIN_REVIEW)

    def test_unknown_order(self):
        resp = self.press("accept", order_id="GT-NOPE-000000")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.bot.answers[-1]["text"], "Order not found")

    def test_updates_without_callback_are_ignored(self):
        payload = {
            "update_id": 5,
            "message": {
                "message_id": 3,
                "date": 1700000000,
                "chat": {"id": 1, "type": "private"},
                "text": "/start",
            },
        }
        resp = self.client.post("/api/webhooks/telegram", json=payload)
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(resp.get_json()["data"]["handled"])
        self.assertEqual(self.bot.answers, [])

    def test_unknown_callback_data_is_ignored(self):
        payload = callback_update("something:else", OPERATOR_TELEGRAM_ID)
        resp = self.client.post("/api/webhooks/telegram", json=payload)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.order().status, OrderStatus.AWAITING_ADMIN_REVIEW)

    def test_processing_error_is_internal(self):
        with mock.patch.object(OrderService, "accept_order", side_effect=RuntimeError("boom")):
            resp = self.press("accept")
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.get_json()["error_code"], "internal")


class TestWebhookSecret(ShopTestCase):
    def make_config(self):
        config = super().make_config()
        config["TELEGRAM_WEBHOOK_SECRET"] = "s3cret"
        return config

    def setUp(self):
        super().setUp()
        buyer = self.make_user()
        self.make_user("operator@example.com", admin=True, telegram_id=str(OPERATOR_TELEGRAM_ID))
        self.order_id = self.order_under_review(buyer)["orderId"]

    def post(self, secret):
        headers = {"X-Telegram-Bot-Api-Secret-Token": secret} if secret else {}
        payload = callback_update(f"order:accept:{self.order_id}", OPERATOR_TELEGRAM_ID)
        return self.client.post("/api/webhooks/telegram", json=payload, headers=headers)

    def test_wrong_secret_is_acknowledged_and_dropped(self):
        for secret in (None, "guess"):
            resp = self.post(secret)
            self.assertEqual(resp.status_code, 200)
            self.assertFalse(resp.get_json()["data"]["handled"])
        self.assertEqual(db.session.get(Order, self.order_id).status, OrderStatus.AWAITING_ADMIN_REVIEW)

    def test_correct_secret(self):
        resp = self.post("s3cret")
        self.assertTrue(resp.get_json()["data"]["handled"])
        db.session.expire_all()
        self.assertEqual(db.session.get(Order, self.order_id).status, OrderStatus.ACCEPTED)


if __name__ == "__main__":
    unittest.main()
