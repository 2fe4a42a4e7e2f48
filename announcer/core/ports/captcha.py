"""
Captcha port.

The subscribe form asks a question issued by a captcha collaborator and
posts back the challenge id and the answer. Challenges are only valid
inside a time window (one hour by default).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

DEFAULT_CAPTCHA_WINDOW = timedelta(hours=1)


@dataclass(frozen=True)
class CaptchaChallenge:
    """Opaque id to echo back plus the question shown to the user."""

    id: str
    question: str


class CaptchaPort(Protocol):
    def issue(self, now: datetime) -> CaptchaChallenge:
        """Create a new challenge."""
        ...

    def verify(
        self,
        challenge_id: str,
        answer: str,
        now: datetime,
        window: timedelta = DEFAULT_CAPTCHA_WINDOW,
    ) -> bool:
        """True if the answer solves the challenge and the challenge is still fresh."""
        ...
