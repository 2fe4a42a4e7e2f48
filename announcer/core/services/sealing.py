"""
Field-level sealing of plugin secrets.

Plugin configurations are pydantic models persisted as JSON through the
DataSafe. Fields listed in a model's `secret_fields` (SMTP passwords, bot
tokens) are encrypted on write and decrypted on read by ConfigStore, so a
copy of the data directory does not leak credentials and plugins only ever
see plain values.

Sealing uses JWE compact serialization (python-jose, direct key agreement,
A256GCM) with a key derived from the process secret.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import ClassVar, Generic, TypeVar

from jose import jwe
from jose.constants import ALGORITHMS
from jose.exceptions import JOSEError
from pydantic import BaseModel, ConfigDict

from announcer.core.ports.datasafe import DataSafePort

logger = logging.getLogger(__name__)

SEALED_PREFIX = "sealed:"


class SealError(Exception):
    """Sealed value can not be opened with the current key."""


class SecretCodec:
    def __init__(self, secret: str):
        self._key = hashlib.sha256(secret.encode("utf-8")).digest()

    def seal(self, value: str) -> str:
        token = jwe.encrypt(
            value.encode("utf-8"),
            self._key,
            algorithm=ALGORITHMS.DIR,
            encryption=ALGORITHMS.A256GCM,
        )
        if isinstance(token, bytes):
            token = token.decode("ascii")
        return SEALED_PREFIX + token

    def open(self, value: str) -> str:
        """Decrypt a sealed value. Unsealed values are returned unchanged."""
        if not value.startswith(SEALED_PREFIX):
            return value
        try:
            plain = jwe.decrypt(value[len(SEALED_PREFIX):], self._key)
        except JOSEError as e:
            raise SealError(str(e)) from e
        if plain is None:
            raise SealError("empty sealed value")
        return plain.decode("utf-8")


class PluginConfig(BaseModel):
    """Base class for persisted plugin configuration."""

    model_config = ConfigDict(populate_by_name=True)

    secret_fields: ClassVar[tuple[str, ...]] = ()


M = TypeVar("M", bound=PluginConfig)


class ConfigStore(Generic[M]):
    """Load/save one plugin's configuration blob with sealed secret fields."""

    def __init__(
        self,
        datasafe: DataSafePort,
        key: str,
        plugin: str,
        model: type[M],
        codec: SecretCodec,
    ):
        self.datasafe = datasafe
        self.key = key
        self.plugin = plugin
        self.model = model
        self.codec = codec

    def _alias(self, field_name: str) -> str:
        info = self.model.model_fields[field_name]
        return info.alias or field_name

    def load(self) -> M:
        raw = self.datasafe.get_config(self.key, self.plugin)
        if not raw:
            return self.model()
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValueError(f"{self.plugin} ({self.key}): stored configuration is not JSON: {e}") from e
        for name in self.model.secret_fields:
            alias = self._alias(name)
            value = data.get(alias)
            if isinstance(value, str) and value:
                try:
                    data[alias] = self.codec.open(value)
                except SealError as e:
                    logger.warning(
                        "%s (%s): can not open %s, clearing it: %s", self.plugin, self.key, alias, e
                    )
                    data[alias] = ""
        return self.model.model_validate(data)

    def save(self, config: M) -> None:
        data = config.model_dump(mode="json", by_alias=True)
        for name in self.model.secret_fields:
            alias = self._alias(name)
            value = data.get(alias)
            if isinstance(value, str) and value:
                data[alias] = self.codec.seal(value)
        self.datasafe.set_config(self.key, self.plugin, json.dumps(data).encode("utf-8"))
