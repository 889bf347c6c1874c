"""
Captcha Service
Two modes, chosen by the captcha_mode setting:
  - manual: the answer is hashed and compared with the stored answerHash
  - google: the provider token is opaque and accepted as-is

The answer hash is a 32-bit rolling integer hash. It is NOT a cryptographic
commitment: collisions are easy and short answers can be brute-forced.
"""

import logging
import random
import secrets
import string
import threading
import time

from gtshop.errors import NotFoundError, RateLimitError, ValidationError

logger = logging.getLogger(__name__)

MAX_ATTEMPTS_PER_CHALLENGE = 5
CLIENT_LIMIT = 10
CLIENT_WINDOW_SECONDS = 300
CHALLENGE_TTL_SECONDS = 600

_BASE36 = string.digits + string.ascii_lowercase


def hash_answer(text):
    """h = h * 31 + code unit over UTF-16, wrapped to a signed 32-bit int."""
    value = 0
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        value = (value * 31 + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return str(value)


def normalize_answer(answer):
    return str(answer).lower().strip()


def random_suffix(length=6):
    return "".join(secrets.choice(_BASE36) for _ in range(length))


class _Challenge:
    __slots__ = ("captcha_id", "client_id", "expires_at", "attempts")

    def __init__(self, captcha_id, client_id, expires_at):
        self.captcha_id = captcha_id
        self.client_id = client_id
        self.expires_at = expires_at
        self.attempts = 0


class CaptchaService:
    """
    Challenges are issued server-side: each client (keyed by its address) holds
    at most one open challenge, bound to one captcha image, and answers are
    only checked against the challenge they were issued for.
    """

    def __init__(self, settings, limiter, token_ttl=600, clock=time.time, challenge_ttl=CHALLENGE_TTL_SECONDS):
        self.settings = settings
        self.limiter = limiter
        self.token_ttl = token_ttl
        self.challenge_ttl = challenge_ttl
        self._clock = clock
        self._challenges = {}
        self._client_challenge = {}
        self._tokens = {}
        self._lock = threading.Lock()

    def new_challenge(self, client_id):
        mode = self.settings.captcha_mode()
        if mode == "google":
            return {"mode": mode, "challengeId": None, "captchaId": None, "imageUrl": None}

        captchas = self.settings.captcha_list()
        if not captchas:
            raise NotFoundError("No captcha images available. Please contact admin.")
        captcha_id = random.choice(sorted(captchas))
        challenge_id = secrets.token_urlsafe(16)
        now = self._clock()
        with self._lock:
            self._purge_challenges(now)
            self._drop_client_challenge(client_id)
            self._challenges[challenge_id] = _Challenge(captcha_id, client_id, now + self.challenge_ttl)
            self._client_challenge[client_id] = challenge_id
        return {
            "mode": mode,
            "challengeId": challenge_id,
            "captchaId": captcha_id,
            "imageUrl": captchas[captcha_id].get("imageUrl"),
        }

    def verify(self, client_id, captcha_id, answer, challenge_id=None):
        mode = self.settings.captcha_mode()
        if mode == "google":
            if not answer:
                raise ValidationError("Missing required parameters")
        elif not challenge_id or not captcha_id or not answer or not str(answer).strip():
            raise ValidationError("Missing required parameters")

        if not self.limiter.hit(f"captcha:{client_id}", CLIENT_LIMIT, CLIENT_WINDOW_SECONDS):
            raise RateLimitError("Too many captcha attempts. Please try again later.")

        if mode == "google":
            token = str(answer)
        else:
            self._count_attempt(client_id, challenge_id, captcha_id)
            captcha = self.settings.captcha_list().get(captcha_id)
            if captcha is None:
                raise NotFoundError("Invalid captcha ID")
            if hash_answer(normalize_answer(answer)) != captcha.get("answerHash"):
                raise ValidationError("Invalid captcha answer")
            token = self._issue_token(captcha_id)

        with self._lock:
            if challenge_id is not None:
                self._challenges.pop(challenge_id, None)
                self._client_challenge.pop(client_id, None)
            self._tokens[token] = self._clock() + self.token_ttl
        return {"success": True, "token": token}

    def consume_token(self, token):
        """True once per issued, unexpired token."""
        if not token:
            return False
        now = self._clock()
        with self._lock:
            expired = [t for t, expires in self._tokens.items() if expires < now]
            for t in expired:
                del self._tokens[t]
            return self._tokens.pop(token, None) is not None

    def open_challenges(self):
        with self._lock:
            return len(self._challenges)

    def _count_attempt(self, client_id, challenge_id, captcha_id):
        now = self._clock()
        with self._lock:
            challenge = self._challenges.get(challenge_id)
            if challenge is None or challenge.client_id != client_id or challenge.expires_at < now:
                raise NotFoundError("Captcha challenge expired. Please refresh and try again.")
            challenge.attempts += 1
            if challenge.attempts > MAX_ATTEMPTS_PER_CHALLENGE:
                raise RateLimitError("Maximum captcha attempts exceeded. Please refresh and try again.")
        if challenge.captcha_id != captcha_id:
            raise ValidationError("Captcha does not match the issued challenge")

    def _drop_client_challenge(self, client_id):
        previous = self._client_challenge.pop(client_id, None)
        if previous is not None:
            self._challenges.pop(previous, None)

    def _purge_challenges(self, now):
        expired = [cid for cid, c in self._challenges.items() if c.expires_at < now]
        for cid in expired:
            challenge = self._challenges.pop(cid)
            if self._client_challenge.get(challenge.client_id) == cid:
                del self._client_challenge[challenge.client_id]

    def _issue_token(self, captcha_id):
        return f"{captcha_id}-{int(self._clock() * 1000)}-{random_suffix()}"

    # --- admin --------------------------------------------------------------

    def add_asset(self, captcha_id, image_url, answer):
        if not captcha_id or not image_url or not answer or not str(answer).strip():
            raise ValidationError("Captcha ID, image URL and answer are required")
        self.settings.set_captcha_asset(captcha_id, image_url, hash_answer(normalize_answer(answer)))
        logger.info("Captcha asset %s saved", captcha_id)

    def remove_asset(self, captcha_id):
        self.settings.remove_captcha_asset(captcha_id)
        logger.info("Captcha asset %s removed", captcha_id)
