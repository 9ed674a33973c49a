"""
Encrypted, file-backed cache of the remote store bearer credential.
"""

from __future__ import annotations

import base64
import json
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from shared.errors import CredentialError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from .identity_client import IdentityClient


@dataclass(frozen=True)
class Credential:
    """A bearer token and the moment it stops being usable."""

    token: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class CredentialCache:
    """
    Read-through cache for the application bearer credential.

    The credential is persisted encrypted with a Fernet key derived from the
    client secret, so a copied cache file is useless without configuration.
    Any failure reading the file counts as a miss. Concurrent refreshes are
    allowed to race; the last write wins.
    """

    def __init__(
        self,
        identity: IdentityClient,
        path: Union[str, Path],
        *,
        secret: str,
        salt: str,
        expiry_margin: int = 600,
        metrics: Optional[MetricsCollector] = None,
        clock=time.time,
    ):
        self.identity = identity
        self.path = Path(path)
        self.expiry_margin = expiry_margin
        self.metrics = metrics
        self.logger = get_logger("proxy.auth.credentials")
        self._secret = secret
        self._salt = salt
        self._clock = clock
        self._fernet: Optional[Fernet] = None

    def _cipher(self) -> Fernet:
        """Derive the Fernet key once from the client secret."""
        if self._fernet is None:
            if not self._secret:
                raise CredentialError("Client secret is not configured")
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=(self._salt or "content-proxy").encode(),
                iterations=100000,
            )
            key = base64.urlsafe_b64encode(kdf.derive(self._secret.encode()))
            self._fernet = Fernet(key)
        return self._fernet

    async def get_credential(self) -> Credential:
        """Return a non-expired credential, refreshing it when needed."""
        cached = self._read()
        if cached is not None and cached.is_valid(self._clock()):
            return cached

        return await self._refresh()

    def _read(self) -> Optional[Credential]:
        if not self.path.exists():
            return None
        try:
            decrypted = self._cipher().decrypt(self.path.read_bytes())
            payload = json.loads(decrypted)
            return Credential(token=str(payload["token"]), expires_at=float(payload["expires_at"]))
        except Exception as e:
            self.logger.warning("Credential cache unreadable", path=str(self.path), error=str(e))
            return None

    async def _refresh(self) -> Credential:
        try:
            token, expires_in = await self.identity.request_token()
        except CredentialError:
            if self.metrics:
                self.metrics.increment_counter("credential_refresh_total", status="error")
            raise

        lifetime = max(expires_in - self.expiry_margin, 0)
        credential = Credential(token=token, expires_at=self._clock() + lifetime)
        if self.metrics:
            self.metrics.increment_counter("credential_refresh_total", status="ok")
        self.logger.info("Credential refreshed", expires_in=expires_in, cached_for=lifetime)

        self._write(credential)
        return credential

    def _write(self, credential: Credential) -> None:
        """Persist atomically with owner-only permissions; failures are logged."""
        tmp_name = None
        try:
            payload = json.dumps({"token": credential.token, "expires_at": credential.expires_at})
            encrypted = self._cipher().encrypt(payload.encode())

            self.path.parent.mkdir(parents=True, exist_ok=True)
            # mkstemp creates the file with mode 0600
            fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), prefix=".credential-")
            with os.fdopen(fd, "wb") as handle:
                handle.write(encrypted)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except Exception as e:
            self.logger.error("Credential cache write failed", path=str(self.path), error=str(e))
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
