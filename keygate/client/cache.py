"""Local cache of the last server-confirmed entitlement.

Advisory only: it lets the UI unlock immediately on start-up while the
server is asked again. Anything unreadable or expired is deleted on load.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from keygate.client.config import get_client_settings
from keygate.client.device import write_json_atomic

logger = logging.getLogger(__name__)

CACHE_FILE = "entitlement.json"


@dataclass(frozen=True)
class CachedEntitlement:
    token_id: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class EntitlementCache:
    def __init__(self, state_dir: str | Path | None = None):
        base = state_dir or get_client_settings().STATE_DIR
        self.path = Path(base).expanduser() / CACHE_FILE

    def load(self, now: datetime | None = None) -> CachedEntitlement | None:
        """Return the cached entry, deleting it if malformed or expired."""
        now = now or datetime.now(timezone.utc)
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            logger.warning("Entitlement cache unreadable, discarding")
            self.clear()
            return None

        try:
            entry = CachedEntitlement(
                token_id=_require_str(data["tokenId"]),
                expires_at=_parse_timestamp(data["expiresAt"]),
            )
        except (KeyError, TypeError, ValueError):
            logger.warning("Entitlement cache malformed, discarding")
            self.clear()
            return None

        if entry.is_expired(now):
            self.clear()
            return None
        return entry

    def save(self, entry: CachedEntitlement) -> None:
        write_json_atomic(
            self.path,
            {"tokenId": entry.token_id, "expiresAt": entry.expires_at.isoformat()},
        )

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


def _require_str(value: object) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError("expected a non-empty string")
    return value


def _parse_timestamp(value: object) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"expected an ISO 8601 string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
