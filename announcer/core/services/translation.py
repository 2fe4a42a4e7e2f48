"""
User-facing strings.

Each language is a YAML document under translations/ loaded with
yaml.safe_load and validated into the Translation model. Strings missing
from a language fall back to English.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError

TRANSLATIONS_DIR = Path(__file__).parent / "translations"
DEFAULT_LANGUAGE = "en"


class Translation(BaseModel):
    language: str = ""
    subject: str = ""
    message: str = ""
    publish_announcement: str = ""
    announcement_published: str = ""
    published_announcements: str = ""
    login: str = ""
    logout: str = ""
    password: str = ""
    created_by: str = ""
    impressum: str = ""
    privacy_policy: str = ""
    accept_privacy_policy: str = ""
    history: str = ""
    back: str = ""
    errors: str = ""
    delete_messages: str = ""
    captcha_text_before: str = ""
    captcha_text_after: str = ""
    bot_answer_message: str = ""
    bot_send_on_this_channel: str = ""
    bot_user_greetings: str = ""
    register_mail_register: str = ""
    register_mail_register_captcha_failure: str = ""
    register_mail_register_now: str = ""
    register_mail_register_success: str = ""
    register_mail_validation_success: str = ""
    register_mail_unregister: str = ""
    register_mail_unregister_successful: str = ""
    register_mail_registration_closed: str = ""
    register_mail_email: str = ""
    register_mail_captcha: str = ""
    register_mail_deleted: str = ""
    register_mail_banned: str = ""


def available_languages() -> list[str]:
    return sorted(p.stem for p in TRANSLATIONS_DIR.glob("*.yaml"))


def _read(language: str) -> dict[str, str]:
    path = TRANSLATIONS_DIR / f"{language}.yaml"
    if not path.exists():
        raise ValueError(f"Unknown language {language!r} (available: {available_languages()})")
    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML syntax in translation {language!r}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Translation {language!r} must be a mapping")
    return data


@lru_cache
def load_translation(language: str = DEFAULT_LANGUAGE) -> Translation:
    """
    Load a language, filling missing strings from English.

    Raises ValueError for unknown languages or malformed files.
    """
    language = language or DEFAULT_LANGUAGE
    merged = _read(DEFAULT_LANGUAGE)
    if language != DEFAULT_LANGUAGE:
        merged.update({k: v for k, v in _read(language).items() if v})
    try:
        return Translation.model_validate(merged)
    except ValidationError as e:
        raise ValueError(f"Translation validation failed:\n{e}") from e
