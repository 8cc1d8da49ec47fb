"""Runtime settings for the QuickBooks MCP server."""

import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

from .auth.session import DEFAULT_MINOR_VERSION

DEFAULT_REDIRECT_URI = "http://localhost:8743/callback"
DEFAULT_FETCH_ALL_MAX_RECORDS = 100_000


def _get_keychain_password_macos(service: str) -> str | None:
    """Retrieve password from macOS Keychain.

    Args:
        service: Keychain service name

    Returns:
        Password if found, None otherwise
    """
    try:
        result = subprocess.run(
            ["security", "find-generic-password", "-s", service, "-w"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0:
            return result.stdout.strip()
    except (subprocess.TimeoutExpired, FileNotFoundError):
        pass

    return None


def _get_secret_tool_password_linux(name: str) -> str | None:
    """Retrieve password from Linux secret storage using secret-tool (libsecret).

    Args:
        name: Secret name (e.g., 'qbo-client-id')

    Returns:
        Password if found, None otherwise
    """
    try:
        result = subprocess.run(
            ["secret-tool", "lookup", "service", "mcp-quickbooks", "name", name],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
    except (subprocess.TimeoutExpired, FileNotFoundError):
        pass

    return None


def get_secure_credential(name: str) -> str | None:
    """Retrieve credential from platform-specific secure storage.

    Platform support:
        - macOS: Keychain (security command)
        - Linux: libsecret via secret-tool (GNOME Keyring, KDE Wallet)
    """
    if sys.platform == "darwin":
        return _get_keychain_password_macos(name)
    elif sys.platform.startswith("linux"):
        return _get_secret_tool_password_linux(name)
    return None


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


@dataclass
class Settings:
    """Server settings resolved from arguments, secure storage and environment."""

    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = DEFAULT_REDIRECT_URI
    sandbox: bool = False
    minor_version: int = DEFAULT_MINOR_VERSION
    debug: bool = False
    token_path: Path | None = None
    fetch_all_max_records: int = DEFAULT_FETCH_ALL_MAX_RECORDS

    @property
    def is_configured(self) -> bool:
        """Check if OAuth credentials are configured."""
        return bool(self.client_id and self.client_secret)

    @classmethod
    def from_env(cls, client_id: str | None = None, client_secret: str | None = None) -> "Settings":
        """Build settings.

        Credential lookup order:
            1. Explicit parameter
            2. Platform secure storage (qbo-client-id, qbo-client-secret)
            3. Environment variable (QBO_CLIENT_ID, QBO_CLIENT_SECRET)
        """
        token_path = os.environ.get("QBO_TOKEN_PATH")
        return cls(
            client_id=(
                client_id
                or get_secure_credential("qbo-client-id")
                or os.environ.get("QBO_CLIENT_ID", "")
            ),
            client_secret=(
                client_secret
                or get_secure_credential("qbo-client-secret")
                or os.environ.get("QBO_CLIENT_SECRET", "")
            ),
            redirect_uri=os.environ.get("QBO_REDIRECT_URI", DEFAULT_REDIRECT_URI),
            sandbox=_env_flag("QBO_SANDBOX"),
            minor_version=_env_int("QBO_MINOR_VERSION", DEFAULT_MINOR_VERSION),
            debug=_env_flag("QBO_DEBUG"),
            token_path=Path(token_path).expanduser() if token_path else None,
            fetch_all_max_records=_env_int("QBO_FETCH_ALL_MAX_RECORDS", DEFAULT_FETCH_ALL_MAX_RECORDS),
        )
