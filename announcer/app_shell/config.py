import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

SECRET_ENV = "ANNOUNCER_SECRET_KEY"
DEV_SECRET = "dev-secret-unsafe"
DEFAULT_CONFIG_PATH = "./config.json"


class ServerConfig(BaseModel):
    """Process configuration (config.json)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    language: str = Field(default="en", alias="Language")
    address: str = Field(default="127.0.0.1:8080", alias="Address")
    log_failed_login: bool = Field(default=False, alias="LogFailedLogin")
    login_minutes: int = Field(default=60 * 24, alias="LoginMinutes", gt=0)
    path_config: str = Field(default="./config", alias="PathConfig")
    path_impressum: str = Field(default="", alias="PathImpressum")
    path_dsgvo: str = Field(default="", alias="PathDSGVO")
    datasafe: str = Field(default="file", alias="DataSafe")
    datasafe_config: str = Field(default="", alias="DataSafeConfig")


def load_server_config(path: Path) -> ServerConfig:
    """
    Load and validate config.json.
    Raises FileNotFoundError if file missing.
    Raises ValueError if JSON or schema invalid.
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found at: {path}")

    with open(path, encoding="utf-8") as f:
        content = f.read()

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}") from e

    try:
        return ServerConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ValueError(f"Config validation failed:\n{e}") from e


def resolve(base_dir: Path, value: str) -> Path:
    """Relative paths in config.json are relative to the config file."""
    path = Path(value)
    return path if path.is_absolute() else base_dir / path


def read_datasafe_config(config: ServerConfig, base_dir: Path) -> bytes:
    """DataSafeConfig names a file whose content is handed to the backend."""
    if not config.datasafe_config:
        return b""
    return resolve(base_dir, config.datasafe_config).read_bytes()


def read_document(base_dir: Path, value: str) -> str:
    """Impressum / privacy policy text; missing path yields an empty page."""
    if not value:
        return ""
    return resolve(base_dir, value).read_text(encoding="utf-8")


def parse_address(address: str) -> tuple[str, int]:
    """
    Split host:port. An empty host listens on all interfaces.
    Raises ValueError on a malformed address.
    """
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid Address {address!r}, expected host:port")
    number = int(port)
    if not 0 < number <= 65535:
        raise ValueError(f"Port {number} out of range")
    host = host.strip("[]") or "0.0.0.0"
    return host, number


def get_secret_key() -> str:
    secret = os.environ.get(SECRET_ENV)
    if not secret:
        logger.warning("%s is not set, using an unsafe development secret", SECRET_ENV)
        return DEV_SECRET
    return secret
