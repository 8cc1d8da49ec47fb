"""Secure token storage for QuickBooks OAuth tokens."""

import getpass
import json
import logging
import os
from base64 import b64encode
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Self

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)


@dataclass
class TokenSet:
    """OAuth token set for one realm."""

    access_token: str
    refresh_token: str
    expires_at: float
    refresh_expires_at: float | None = None
    token_type: str = "bearer"
    realm_id: str | None = None

    @property
    def is_expired(self) -> bool:
        """Check if the access token is expired."""
        return datetime.now().timestamp() >= self.expires_at - 60  # 60s buffer

    @property
    def refresh_expired(self) -> bool:
        """Check if the refresh token is expired."""
        if self.refresh_expires_at is None:
            return False
        return datetime.now().timestamp() >= self.refresh_expires_at

    @classmethod
    def from_response(cls, data: dict[str, Any], realm_id: str | None = None) -> Self:
        """Create from a token endpoint response."""
        now = datetime.now().timestamp()
        refresh_expires_in = data.get("x_refresh_token_expires_in")
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=now + float(data.get("expires_in", 3600)),
            refresh_expires_at=now + float(refresh_expires_in) if refresh_expires_in else None,
            token_type=data.get("token_type", "bearer"),
            realm_id=realm_id,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create from dictionary."""
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=data["expires_at"],
            refresh_expires_at=data.get("refresh_expires_at"),
            token_type=data.get("token_type", "bearer"),
            realm_id=data.get("realm_id"),
        )


class TokenStore:
    """Secure storage for OAuth tokens using encryption."""

    def __init__(self, storage_path: Path | None = None):
        """Initialize token store.

        Args:
            storage_path: Path to token storage file. Defaults to ~/.quickbooks/tokens.enc
        """
        if storage_path is None:
            storage_path = Path.home() / ".quickbooks" / "tokens.enc"
        self.storage_path = Path(storage_path)
        self._fernet: Fernet | None = None

    def _get_fernet(self) -> Fernet:
        """Get or create Fernet cipher using machine-specific key."""
        if self._fernet is None:
            # Use machine-specific salt derived from hostname and username
            machine_id = f"{os.uname().nodename}:{getpass.getuser()}".encode()
            salt = machine_id[:16].ljust(16, b"\x00")

            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=salt,
                iterations=480000,
            )
            key = b64encode(kdf.derive(b"mcp-quickbooks-token-encryption"))
            self._fernet = Fernet(key)

        return self._fernet

    def save(self, tokens: TokenSet) -> None:
        """Save tokens to encrypted storage.

        Args:
            tokens: Token set to save
        """
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)

        data = json.dumps(tokens.to_dict()).encode()
        encrypted = self._get_fernet().encrypt(data)
        self.storage_path.write_bytes(encrypted)

        # Owner read/write only
        self.storage_path.chmod(0o600)

    def load(self) -> TokenSet | None:
        """Load tokens from encrypted storage.

        Returns:
            Token set if exists and valid, None otherwise
        """
        if not self.storage_path.exists():
            return None

        try:
            encrypted = self.storage_path.read_bytes()
            data = self._get_fernet().decrypt(encrypted)
            return TokenSet.from_dict(json.loads(data))
        except (InvalidToken, ValueError, KeyError) as e:
            logger.warning(f"Ignoring unreadable token file {self.storage_path}: {e}")
            return None

    def delete(self) -> None:
        """Delete stored tokens."""
        if self.storage_path.exists():
            self.storage_path.unlink()

    def exists(self) -> bool:
        """Check if tokens exist in storage."""
        return self.storage_path.exists()
