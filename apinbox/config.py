import os
from pathlib import Path

import pydantic
import tomli

ROOT_DIR = Path().parent.resolve()

_CONFIG_FILE = os.getenv("APINBOX_CONFIG_FILE", "config.toml")

VERSION = "1.0.0"
USER_AGENT = f"apinbox/{VERSION}"
AP_CONTENT_TYPE = "application/activity+json"


class _BlockedServer(pydantic.BaseModel):
    hostname: str
    reason: str | None = None


class _VapidKeys(pydantic.BaseModel):
    public_key: str
    private_key: str


class Config(pydantic.BaseModel):
    domain: str
    https: bool = True
    admin_email: str
    vapid_keys: _VapidKeys
    debug: bool = False
    blocked_servers: list[_BlockedServer] = []
    disabled_notifications: list[str] = []

    # Object types that can be cached from Create/Announce activities
    supported_object_types: list[str] = ["Note"]

    # Config items to make tests easier
    sqlalchemy_database: str | None = None


def load_config() -> Config:
    try:
        return Config.model_validate(
            tomli.loads((ROOT_DIR / "data" / _CONFIG_FILE).read_text())
        )
    except FileNotFoundError:
        raise ValueError(
            f"Please create a configuration file, {_CONFIG_FILE} is missing"
        )


CONFIG = load_config()
DOMAIN = CONFIG.domain
_SCHEME = "https" if CONFIG.https else "http"
BASE_URL = f"{_SCHEME}://{DOMAIN}"

ADMIN_EMAIL = CONFIG.admin_email
VAPID_KEYS = CONFIG.vapid_keys

BLOCKED_SERVERS = {blocked_server.hostname for blocked_server in CONFIG.blocked_servers}
DISABLED_NOTIFICATIONS = set(CONFIG.disabled_notifications)
SUPPORTED_OBJECT_TYPES = CONFIG.supported_object_types

DEBUG = CONFIG.debug
DB_PATH = CONFIG.sqlalchemy_database or ROOT_DIR / "data" / "apinbox.db"
SQLALCHEMY_DATABASE_URL = f"sqlite:///{DB_PATH}"
