"""
Signed arithmetic captcha.

The challenge id is a JWT (python-jose, HS256) carrying a keyed digest of the
expected answer and the issue time, so no server-side state is needed.
Verification rejects forged ids, wrong answers and ids older than the window.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from announcer.core.ports.captcha import DEFAULT_CAPTCHA_WINDOW, CaptchaChallenge

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


class SignedArithmeticCaptcha:
    def __init__(self, secret: str, max_operand: int = 20):
        self._secret = secret
        self._max_operand = max_operand

    def _digest(self, answer: str, nonce: str) -> str:
        message = f"{nonce}:{answer.strip()}".encode()
        return hmac.new(self._secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

    def issue(self, now: datetime) -> CaptchaChallenge:
        a = secrets.randbelow(self._max_operand) + 1
        b = secrets.randbelow(self._max_operand) + 1
        nonce = secrets.token_urlsafe(8)
        claims: dict[str, Any] = {
            "iat": int(now.timestamp()),
            "n": nonce,
            "d": self._digest(str(a + b), nonce),
        }
        token: str = jwt.encode(claims, self._secret, algorithm=ALGORITHM)
        return CaptchaChallenge(id=token, question=f"{a} + {b} = ?")

    def verify(
        self,
        challenge_id: str,
        answer: str,
        now: datetime,
        window: timedelta = DEFAULT_CAPTCHA_WINDOW,
    ) -> bool:
        if not challenge_id or not answer:
            return False
        try:
            claims = jwt.decode(challenge_id, self._secret, algorithms=[ALGORITHM])
        except JWTError:
            logger.info("Rejected captcha with invalid signature")
            return False
        issued = claims.get("iat")
        nonce = claims.get("n")
        digest = claims.get("d")
        if not isinstance(issued, int) or not isinstance(nonce, str) or not isinstance(digest, str):
            return False
        age = now.timestamp() - issued
        if age < 0 or age > window.total_seconds():
            return False
        return hmac.compare_digest(digest, self._digest(answer, nonce))
