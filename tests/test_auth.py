import unittest

from gtshop.extensions import db
from gtshop.models import User
from tests.base import ShopTestCase


class TestAuth(ShopTestCase):
    def make_config(self):
        config = super().make_config()
        config["ADMIN_EMAILS"] = ["owner@example.com"]
        return config

    def register(self, email="new@example.com", password="password123"):
        return self.client.post("/api/auth/register", json={"email": email, "password": password})

    def login(self, email="new@example.com", password="password123"):
        return self.client.post("/api/auth/login", json={"email": email, "password": password})

    def test_register_login_and_verify(self):
        resp = self.register()
        self.assertEqual(resp.status_code, 201)
        data = resp.get_json()["data"]
        user_id = data["user_id"]
        self.assertFalse(db.session.get(User, user_id).email_verified)

        resp = self.login()
        self.assertEqual(resp.status_code, 200)
        access = resp.get_json()["data"]["access_token"]

        # unverified buyers cannot order yet
        resp = self.client.post(
            "/api/orders", json=self.order_payload(), headers={"Authorization": f"Bearer {access}"}
        )
        self.assertEqual(resp.status_code, 403)

        resp = self.client.post("/api/auth/verify-email", json={"token": data["verification_token"]})
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.get_json()["data"]["email_verified"])

        resp = self.client.post(
            "/api/orders", json=self.order_payload(), headers={"Authorization": f"Bearer {access}"}
        )
        self.assertEqual(resp.status_code, 201)

    def test_verification_token_is_not_an_access_token(self):
        token = self.register().get_json()["data"]["verification_token"]
        resp = self.client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(resp.status_code, 401)

    def test_access_token_does_not_verify_email(self):
        self.register()
        access = self.login().get_json()["data"]["access_token"]
        resp = self.client.post("/api/auth/verify-email", json={"token": access})
        self.assertEqual(resp.status_code, 401)

    def test_garbage_verification_token(self):
        resp = self.client.post("/api/auth/verify-email", json={"token": "not-a-jwt"})
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.get_json()["error_code"], "unauthenticated")

    def test_register_validation(self):
        self.assertEqual(self.register(email="not-an-email").status_code, 400)
        self.assertEqual(self.register(password="short").status_code, 400)
        self.register()
        resp = self.register()
        self.assertEqual(resp.status_code, 409)

    def test_wrong_password(self):
        self.register()
        resp = self.login(password="wrong-password")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.get_json()["error_code"], "unauthenticated")

    def test_refresh_and_logout(self):
        self.register()
        tokens = self.login().get_json()["data"]

        resp = self.client.post("/api/auth/refresh", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
        self.assertEqual(resp.status_code, 200)
        access = resp.get_json()["data"]["access_token"]

        headers = {"Authorization": f"Bearer {access}"}
        self.assertEqual(self.client.get("/api/auth/me", headers=headers).status_code, 200)
        self.assertEqual(self.client.post("/api/auth/logout", headers=headers).status_code, 200)
        self.assertEqual(self.client.get("/api/auth/me", headers=headers).status_code, 401)

    def test_admin_emails_are_promoted(self):
        user_id = self.register(email="owner@example.com").get_json()["data"]["user_id"]
        self.assertTrue(db.session.get(User, user_id).is_admin)


class TestHealth(ShopTestCase):
    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertEqual(body["status"], "healthy")
        self.assertEqual(body["checks"]["telegram"], "configured")

    def test_unknown_route_is_json(self):
        resp = self.client.get("/api/nothing-here")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json()["error_code"], "not-found")

    def test_public_config(self):
        data = self.client.get("/api/config").get_json()["data"]
        self.assertEqual(data["prices"]["rgt"], {"dl": 35000, "bgl": 70000})
        self.assertIn("dana", data["payment_methods"])


if __name__ == "__main__":
    unittest.main()
