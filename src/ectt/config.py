# =============================================================================
# Configuration Management
# =============================================================================
# Handles locating, loading and validating the ectt configuration.
#
# XDG Base Directory Compliance (https://specifications.freedesktop.org/basedir-spec/):
#   - Config:  $XDG_CONFIG_HOME/ectt/  (default: ~/.config/ectt/)
#   - State:   $XDG_STATE_HOME/ectt/   (default: ~/.local/state/ectt/)
#
# Files:
#   - config.toml or config.json: the account (in the config directory)
#   - ectt.log: rolling log file (in the state directory)
#
# The file describes one account as two backends, `read` (IMAP) and `send`
# (SMTP), each with its own `auth` table. JSON is read when the file ends
# in .json, TOML otherwise.
# =============================================================================

import json
import os
import tomllib  # Built into Python 3.11+
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import keyring
import tomli_w  # For writing TOML (tomllib is read-only)
from keyring.errors import KeyringError

from ectt.core.account import BackendConfig, ImapConfig, SmtpConfig
from ectt.core.credentials import Credentials, OAuthAuth, PasswordAuth
from ectt.core.errors import ConfigError


# =============================================================================
# XDG Directory Management
# =============================================================================

# Application identifier used in all XDG paths (and as the keyring service)
APP_NAME = "ectt"

CONFIG_FILE_NAMES = ("config.toml", "config.json")


def get_xdg_config_home() -> Path:
    """
    Returns the XDG config directory for ectt.

    Respects $XDG_CONFIG_HOME if set, otherwise uses ~/.config/ectt/
    """
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        base = Path(xdg_config)
    else:
        base = Path.home() / ".config"
    return base / APP_NAME


def get_xdg_state_home() -> Path:
    """
    Returns the XDG state directory for ectt.

    Respects $XDG_STATE_HOME if set, otherwise uses ~/.local/state/ectt/
    This is where the log file lives.
    """
    xdg_state = os.environ.get("XDG_STATE_HOME")
    if xdg_state:
        base = Path(xdg_state)
    else:
        base = Path.home() / ".local" / "state"
    return base / APP_NAME


def resolve_config_path(path: str | Path | None = None) -> Path:
    """
    Find the configuration file.

    Order: the explicit path, then config.toml and config.json in the XDG
    config directory, then ./config.json.

    Raises:
        ConfigError: If no candidate exists.
    """
    if path is not None:
        return Path(path)

    candidates = [get_xdg_config_home() / name for name in CONFIG_FILE_NAMES]
    candidates.append(Path.cwd() / "config.json")

    for candidate in candidates:
        if candidate.exists():
            return candidate

    searched = ", ".join(str(c) for c in candidates)
    raise ConfigError(f"No configuration file found (looked in: {searched})")


# =============================================================================
# Configuration Data Structures
# =============================================================================

@dataclass
class UIConfig:
    """
    Configuration for the user interface.

    Attributes:
        page_size: Messages fetched per inbox page.
        date_format: strftime format for the inbox date column.
    """
    page_size: int = 5
    date_format: str = "%Y-%m-%d %H:%M"


@dataclass
class Config:
    """
    Main configuration container for ectt.

    Attributes:
        read: The IMAP backend.
        send: The SMTP backend.
        ui: User interface configuration.
        path: Where this config was loaded from.

    Usage:
        >>> config = Config.load()
        >>> config.read.host
        'imap.gmail.com'
    """
    read: ImapConfig
    send: SmtpConfig
    ui: UIConfig = field(default_factory=UIConfig)
    path: Path | None = None

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls, path: str | Path | None = None) -> "Config":
        """
        Load configuration from a file.

        Args:
            path: Explicit file, or None to search the default locations.

        Raises:
            ConfigError: If the file is missing, unreadable or invalid.
        """
        config_path = resolve_config_path(path)

        try:
            with open(config_path, "rb") as f:
                if config_path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = tomllib.load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config file {config_path}: {e}") from e
        except (tomllib.TOMLDecodeError, json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ConfigError(f"Invalid config file {config_path}: {e}") from e

        config = cls._from_dict(data)
        config.path = config_path
        return config

    @classmethod
    def _from_dict(cls, data: Any) -> "Config":
        """
        Create a Config object from a dictionary (parsed TOML or JSON).
        """
        data = _require_table(data, "config")

        read = _parse_backend(data.get("read"), "read", "imap", ImapConfig)
        send = _parse_backend(data.get("send"), "send", "smtp", SmtpConfig)

        ui = _require_table(data.get("ui", {}), "ui")
        defaults = UIConfig()
        page_size = ui.get("page_size", defaults.page_size)
        if not isinstance(page_size, int) or isinstance(page_size, bool) or page_size < 1:
            raise ConfigError("ui.page_size must be a positive integer")

        return cls(
            read=read,
            send=send,
            ui=UIConfig(
                page_size=page_size,
                date_format=str(ui.get("date_format", defaults.date_format)),
            ),
        )


def _require_table(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"`{where}` must be a table")
    return value


def _require_str(table: dict[str, Any], key: str, where: str) -> str:
    value = table.get(key)
    if not isinstance(value, str) or not value:
        raise ConfigError(f"`{where}.{key}` is required and must be a string")
    return value


def _parse_backend(
    value: Any,
    where: str,
    expected_type: str,
    config_cls: type[BackendConfig],
) -> BackendConfig:
    table = _require_table(value, where)

    backend_type = table.get("type")
    if backend_type != expected_type:
        raise ConfigError(f"`{where}.type` must be \"{expected_type}\", got {backend_type!r}")

    port = table.get("port")
    if not isinstance(port, int) or isinstance(port, bool) or not 0 < port < 65536:
        raise ConfigError(f"`{where}.port` must be a port number")

    security = table.get("security", "")
    if security not in ("", "ssl", "starttls"):
        raise ConfigError(f"`{where}.security` must be \"ssl\" or \"starttls\"")

    timeout = table.get("timeout", 30)
    if not isinstance(timeout, (int, float)) or isinstance(timeout, bool) or timeout <= 0:
        raise ConfigError(f"`{where}.timeout` must be a positive number")

    login = _require_str(table, "login", where)

    return config_cls(
        host=_require_str(table, "host", where),
        port=port,
        login=login,
        auth=_parse_auth(table.get("auth"), f"{where}.auth", login),
        security=security,
        timeout=timeout,
    )


def _parse_auth(value: Any, where: str, login: str) -> Credentials:
    table = _require_table(value, where)
    auth_type = table.get("type")

    if auth_type == "password":
        raw = table.get("raw")
        if raw is None:
            raw = _keyring_password(login, where)
        if not isinstance(raw, str):
            raise ConfigError(f"`{where}.raw` must be a string")
        return PasswordAuth(secret=raw)

    if auth_type == "oauth":
        return OAuthAuth(
            client_id=_require_str(table, "client_id", where),
            client_secret=_require_str(table, "client_secret", where),
            access_token=_require_str(table, "access_token", where),
            refresh_token=_require_str(table, "refresh_token", where),
            auth_url=_aliased_url(table, "auth_url", "auth_uri", where),
            token_url=_aliased_url(table, "token_url", "token_uri", where),
        )

    raise ConfigError(f"`{where}.type` must be \"password\" or \"oauth\", got {auth_type!r}")


def _aliased_url(table: dict[str, Any], key: str, alias: str, where: str) -> str:
    if key not in table and alias in table:
        return _require_str(table, alias, where)
    return _require_str(table, key, where)


def _keyring_password(login: str, where: str) -> str:
    """Look a password up in the system keyring (service "ectt")."""
    try:
        password = keyring.get_password(APP_NAME, login)
    except KeyringError as e:
        raise ConfigError(f"Cannot read the password for {login} from the keyring: {e}") from e

    if not password:
        raise ConfigError(
            f"`{where}` has no `raw` password and none is stored in the keyring for {login}. "
            f"Set it with: keyring set {APP_NAME} {login}"
        )
    return password


def auth_table(auth: OAuthAuth) -> dict[str, str]:
    """The `auth` table for OAuth credentials, as written in the config."""
    return {
        "type": "oauth",
        "client_id": auth.client_id,
        "client_secret": auth.client_secret,
        "access_token": auth.access_token,
        "refresh_token": auth.refresh_token,
        "auth_url": auth.auth_url,
        "token_url": auth.token_url,
    }


def dump_auth_toml(auth: OAuthAuth) -> str:
    """Render OAuth credentials as a TOML `[auth]` table for pasting."""
    return tomli_w.dumps({"auth": auth_table(auth)})


# =============================================================================
# Utility Functions
# =============================================================================

def print_paths() -> None:
    """
    Print all XDG paths for debugging.
    Useful for users wondering where their config and logs are stored.
    """
    print(f"Config:  {get_xdg_config_home()}")
    print(f"State:   {get_xdg_state_home()}")
    print()
    for name in CONFIG_FILE_NAMES:
        print(f"Config file:  {get_xdg_config_home() / name}")
    print(f"Log file:     {get_xdg_state_home() / 'ectt.log'}")


__all__ = [
    "APP_NAME",
    "Config",
    "ConfigError",
    "UIConfig",
    "auth_table",
    "dump_auth_toml",
    "get_xdg_config_home",
    "get_xdg_state_home",
    "print_paths",
    "resolve_config_path",
]
