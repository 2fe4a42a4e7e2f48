import argparse
import getpass
import json
import logging
import sys
from pathlib import Path

import uvicorn

from announcer.adapters.auth.password_methods import PASSWORD_METHODS, hash_password
from announcer.api.main import create_app
from announcer.app_shell.config import (
    DEFAULT_CONFIG_PATH,
    ServerConfig,
    get_secret_key,
    load_server_config,
    parse_address,
)
from announcer.app_shell.wiring import build_default_registry, build_runtime, open_datasafe
from announcer.components.host import TenantConfigError
from announcer.core.entities import Announcement
from announcer.core.ports.datasafe import DataSafeError, DataSafePort

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def handle_dump(datasafe: DataSafePort, key: str) -> None:
    announcements = datasafe.get_all_announcements(key)
    json.dump([a.to_dict() for a in announcements], sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")


def handle_insert(datasafe: DataSafePort, key: str) -> int:
    """Save every announcement from stdin without fan-out. Returns the number saved."""
    try:
        items = json.load(sys.stdin)
    except json.JSONDecodeError as e:
        logger.error("Invalid JSON on stdin: %s", e)
        sys.exit(1)
    if not isinstance(items, list):
        logger.error("Expected a JSON list of announcements")
        sys.exit(1)

    saved = 0
    for i, item in enumerate(items):
        try:
            announcement = Announcement.from_dict(item)
            datasafe.save_announcement(key, announcement)
        except (KeyError, TypeError, ValueError, AttributeError, DataSafeError) as e:
            logger.error("Skipping announcement %d: %s", i, e)
            continue
        saved += 1
    logger.info("Inserted %d of %d announcements into %s", saved, len(items), key)
    return saved


def handle_hash_password(method: str) -> None:
    password = getpass.getpass("Password: ")
    print(hash_password(method, password))


def serve(config: ServerConfig, base_dir: Path, secret: str) -> None:
    registry = build_default_registry(secret)
    try:
        host, port = parse_address(config.address)
        runtime = build_runtime(config, base_dir, registry, secret)
    except (ValueError, OSError, DataSafeError, TenantConfigError) as e:
        logger.error("Startup failed: %s", e)
        sys.exit(1)

    uvicorn.run(create_app(runtime), host=host, port=port)


def main() -> None:
    parser = argparse.ArgumentParser(description="Announcer - self-hosted announcement broadcaster")
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG_PATH, help="Path to the JSON configuration file"
    )

    oneshot = parser.add_mutually_exclusive_group()
    oneshot.add_argument(
        "--dump-announcements", metavar="KEY", help="Print all announcements of KEY as JSON"
    )
    oneshot.add_argument(
        "--insert-announcements",
        metavar="KEY",
        help="Read a JSON list of announcements from stdin and store them for KEY",
    )
    oneshot.add_argument(
        "--hash-password",
        metavar="METHOD",
        choices=sorted(m for m in PASSWORD_METHODS if m),
        help="Prompt for a password and print the credential for METHOD",
    )

    args = parser.parse_args()

    if args.hash_password:
        handle_hash_password(args.hash_password)
        return

    config_path = Path(args.config)
    try:
        config = load_server_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        sys.exit(1)

    base_dir = config_path.parent
    secret = get_secret_key()

    if args.dump_announcements or args.insert_announcements:
        registry = build_default_registry(secret)
        try:
            datasafe = open_datasafe(registry, config, base_dir)
        except (ValueError, OSError, DataSafeError) as e:
            logger.error("Can not open data safe: %s", e)
            sys.exit(1)
        try:
            if args.dump_announcements:
                handle_dump(datasafe, args.dump_announcements)
            else:
                handle_insert(datasafe, args.insert_announcements)
        except DataSafeError as e:
            logger.error("%s", e)
            sys.exit(1)
        finally:
            datasafe.close()
        return

    serve(config, base_dir, secret)


if __name__ == "__main__":
    main()
