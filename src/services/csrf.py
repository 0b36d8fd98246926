"""HMAC-signed CSRF tokens bound to an operator session."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac

from src.utils.clock import Clock, utcnow


class CSRFProtection:
    """Issue and check tokens of the form ``b64(session:ts_ms:signature)``."""

    def __init__(
        self,
        secret: str,
        *,
        max_age_seconds: int = 3600,
        clock: Clock = utcnow,
    ) -> None:
        self._secret = secret.encode("utf-8")
        self.max_age_seconds = max_age_seconds
        self._clock = clock

    def _sign(self, data: str) -> str:
        return hmac.new(
            self._secret, data.encode("utf-8"), hashlib.sha256
        ).hexdigest()

    def _now_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)

    def generate_token(self, session_id: str) -> str:
        data = f"{session_id}:{self._now_ms()}"
        raw = f"{data}:{self._sign(data)}".encode("utf-8")
        return base64.b64encode(raw).decode("ascii")

    def validate_token(self, token: str | None, session_id: str | None) -> bool:
        if not token or not session_id:
            return False
        try:
            decoded = base64.b64decode(token, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return False
        # Session ids may themselves contain ':'; the last two fields are fixed.
        parts = decoded.rsplit(":", 2)
        if len(parts) != 3:
            return False
        received_session, timestamp, signature = parts
        if not hmac.compare_digest(received_session, session_id):
            return False
        try:
            issued_ms = int(timestamp)
        except ValueError:
            return False
        age_ms = self._now_ms() - issued_ms
        if age_ms < 0 or age_ms > self.max_age_seconds * 1000:
            return False
        expected = self._sign(f"{received_session}:{timestamp}")
        return hmac.compare_digest(signature, expected)


__all__ = ["CSRFProtection"]
