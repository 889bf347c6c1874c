import unittest
from unittest import mock

from gtshop.errors import NotFoundError, RateLimitError, ValidationError
from gtshop.services.captcha_service import CaptchaService, hash_answer, normalize_answer
from gtshop.services.rate_limit import RateLimiter
from tests.base import ShopTestCase


class TestHashAnswer(unittest.TestCase):
    def test_matches_known_values(self):
        self.assertEqual(hash_answer(""), "0")
        self.assertEqual(hash_answer("a"), "97")
        self.assertEqual(hash_answer("ab"), str(97 * 31 + 98))
        self.assertEqual(hash_answer("hello"), "99162322")

    def test_wraps_to_signed_32_bit(self):
        self.assertEqual(hash_answer("polygenelubricants"), "-2147483648")

    def test_case_and_whitespace_are_normalised_first(self):
        self.assertEqual(hash_answer(normalize_answer("  ABC123 ")), hash_answer("abc123"))


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestCaptchaService(ShopTestCase):
    def setUp(self):
        super().setUp()
        self.clock = FakeClock()
        self.limiter = RateLimiter(clock=self.clock)
        self.captcha = CaptchaService(self.services.settings, self.limiter, token_ttl=600, clock=self.clock)
        self.captcha.add_asset("cap1", "http://img.test/cap1.png", "ABC123")

    def challenge(self, client="client-1"):
        return self.captcha.new_challenge(client)["challengeId"]

    def answer(self, challenge_id, answer, client="client-1", captcha_id="cap1"):
        return self.captcha.verify(client, captcha_id, answer, challenge_id=challenge_id)

    def test_only_the_hash_is_stored(self):
        stored = self.services.settings.captcha_list()["cap1"]
        self.assertEqual(stored["answerHash"], hash_answer("abc123"))
        self.assertNotIn("answer", stored)

    def test_challenge_returns_configured_image(self):
        challenge = self.captcha.new_challenge("client-1")
        self.assertEqual(challenge["captchaId"], "cap1")
        self.assertEqual(challenge["imageUrl"], "http://img.test/cap1.png")
        self.assertTrue(challenge["challengeId"])

    def test_challenge_without_assets(self):
        self.captcha.remove_asset("cap1")
        with self.assertRaises(NotFoundError):
            self.captcha.new_challenge("client-1")

    def test_uppercase_answer_is_accepted(self):
        result = self.answer(self.challenge(), "ABC123")
        self.assertTrue(result["success"])
        self.assertTrue(result["token"].startswith("cap1-"))

    def test_wrong_answer(self):
        with self.assertRaises(ValidationError):
            self.answer(self.challenge(), "abc124")

    def test_captcha_removed_after_challenge(self):
        challenge_id = self.challenge()
        self.captcha.remove_asset("cap1")
        with self.assertRaises(NotFoundError):
            self.answer(challenge_id, "abc123")

    def test_missing_input(self):
        with self.assertRaises(ValidationError):
            self.answer(self.challenge(), "   ")
        with self.assertRaises(ValidationError):
            self.answer(None, "abc123")

    def test_answer_for_another_image_is_refused(self):
        self.captcha.add_asset("cap2", "http://img.test/cap2.png", "zzz999")
        with mock.patch("gtshop.services.captcha_service.random.choice", return_value="cap1"):
            challenge_id = self.challenge()
        with self.assertRaises(ValidationError) as ctx:
            self.answer(challenge_id, "zzz999", captcha_id="cap2")
        self.assertIn("does not match", ctx.exception.message)

    def test_unknown_challenge(self):
        with self.assertRaises(NotFoundError):
            self.answer("made-up", "abc123")

    def test_challenge_belongs_to_its_client(self):
        challenge_id = self.challenge("client-1")
        with self.assertRaises(NotFoundError):
            self.answer(challenge_id, "abc123", client="client-2")

    def test_new_challenge_replaces_the_previous_one(self):
        first = self.challenge()
        second = self.challenge()
        with self.assertRaises(NotFoundError):
            self.answer(first, "abc123")
        self.assertTrue(self.answer(second, "abc123")["success"])
        self.assertEqual(self.captcha.open_challenges(), 0)

    def test_challenge_expires(self):
        challenge_id = self.challenge()
        self.clock.now += 601
        with self.assertRaises(NotFoundError):
            self.answer(challenge_id, "abc123")

    def test_sixth_attempt_is_refused_even_if_correct(self):
        challenge_id = self.challenge()
        for _ in range(5):
            with self.assertRaises(ValidationError):
                self.answer(challenge_id, "wrong")
        with self.assertRaises(RateLimitError) as ctx:
            self.answer(challenge_id, "abc123")
        self.assertIn("Maximum captcha attempts exceeded", ctx.exception.message)

    def test_fresh_challenge_gets_a_fresh_budget(self):
        challenge_id = self.challenge()
        for _ in range(5):
            with self.assertRaises(ValidationError):
                self.answer(challenge_id, "wrong")
        with self.assertRaises(RateLimitError):
            self.answer(challenge_id, "wrong")
        self.assertTrue(self.answer(self.challenge(), "abc123")["success"])

    def test_client_rate_limit(self):
        for _ in range(10):
            challenge_id = self.challenge()
            with self.assertRaises(ValidationError):
                self.answer(challenge_id, "wrong")
        with self.assertRaises(RateLimitError) as ctx:
            self.answer(self.challenge(), "abc123")
        self.assertIn("Too many captcha attempts", ctx.exception.message)

        self.clock.now += 301
        self.assertTrue(self.answer(self.challenge(), "abc123")["success"])

    def test_expired_challenges_are_purged(self):
        for i in range(20):
            self.challenge(f"client-{i}")
        self.assertEqual(self.captcha.open_challenges(), 20)
        self.clock.now += 601
        self.challenge("late")
        self.assertEqual(self.captcha.open_challenges(), 1)

    def test_token_is_consumed_once(self):
        token = self.answer(self.challenge(), "abc123")["token"]
        self.assertTrue(self.captcha.consume_token(token))
        self.assertFalse(self.captcha.consume_token(token))

    def test_token_expires(self):
        token = self.answer(self.challenge(), "abc123")["token"]
        self.clock.now += 601
        self.assertFalse(self.captcha.consume_token(token))

    def test_google_mode_accepts_provider_token(self):
        self.services.settings.set("captcha_mode", "google")
        self.assertIsNone(self.captcha.new_challenge("client-1")["challengeId"])
        result = self.captcha.verify("client-1", None, "provider-token")
        self.assertEqual(result["token"], "provider-token")
        self.assertTrue(self.captcha.consume_token("provider-token"))


class TestCaptchaRoutes(ShopTestCase):
    def make_config(self):
        config = super().make_config()
        config["CAPTCHA_REQUIRED"] = True
        return config

    def setUp(self):
        super().setUp()
        self.services.captcha.add_asset("cap1", "http://img.test/cap1.png", "abc123")
        self.buyer = self.make_user()

    def challenge(self, headers=None):
        resp = self.client.get("/api/captcha/challenge", headers=headers or {})
        self.assertEqual(resp.status_code, 200)
        self.assertNotIn("answerHash", str(resp.get_json()))
        return resp.get_json()["data"]

    def answer(self, challenge, answer, headers=None):
        body = {"challengeId": challenge["challengeId"], "captchaId": challenge["captchaId"], "answer": answer}
        return self.client.post("/api/captcha/verify", json=body, headers=headers or {})

    def solve(self):
        resp = self.answer(self.challenge(), "ABC123")
        self.assertEqual(resp.status_code, 200)
        return resp.get_json()["data"]["token"]

    def test_order_requires_captcha_token(self):
        resp = self.client.post("/api/orders", json=self.order_payload(), headers=self.auth_headers(self.buyer))
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["error_code"], "invalid-argument")

    def test_order_with_token_and_token_reuse(self):
        token = self.solve()
        payload = self.order_payload(captchaToken=token)
        resp = self.client.post("/api/orders", json=payload, headers=self.auth_headers(self.buyer))
        self.assertEqual(resp.status_code, 201)

        resp = self.client.post("/api/orders", json=payload, headers=self.auth_headers(self.buyer))
        self.assertEqual(resp.status_code, 400)

    def test_wrong_answer_over_http(self):
        resp = self.answer(self.challenge(), "nope")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["message"], "Invalid captcha answer")

    def test_answer_without_challenge(self):
        resp = self.client.post("/api/captcha/verify", json={"captchaId": "cap1", "answer": "abc123"})
        self.assertEqual(resp.status_code, 400)

    def test_client_id_header_does_not_reset_budgets(self):
        statuses = set()
        for i in range(10):
            headers = {"X-Client-Id": f"c{i}"}
            statuses.add(self.answer(self.challenge(headers), "nope", headers).status_code)
        self.assertEqual(statuses, {400})

        headers = {"X-Client-Id": "c-fresh"}
        resp = self.answer(self.challenge(headers), "abc123", headers)
        self.assertEqual(resp.status_code, 429)
        self.assertEqual(len(self.services.limiter), 1)


if __name__ == "__main__":
    unittest.main()
