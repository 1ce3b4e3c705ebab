"""Per-installation device identity.

The device id is a random 128-bit value generated once and persisted in the
client state directory. It binds tokens to this installation. It is not a
hardware fingerprint and not a security boundary.
"""

import json
import logging
import os
import re
import secrets
from pathlib import Path

from keygate.client.config import get_client_settings

logger = logging.getLogger(__name__)

DEVICE_FILE = "device.json"
DEVICE_ID_PATTERN = re.compile(r"^[a-f0-9]{32}$")


def write_json_atomic(path: Path, payload: dict) -> None:
    """Write JSON via a temp file and rename so readers never see half a file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload), encoding="utf-8")
    os.replace(tmp, path)


class DeviceIdentityProvider:
    """Load or create the persisted device id."""

    def __init__(self, state_dir: str | Path | None = None):
        base = state_dir or get_client_settings().STATE_DIR
        self.path = Path(base).expanduser() / DEVICE_FILE
        self._device_id: str | None = None

    def get_device_id(self) -> str:
        if self._device_id is None:
            self._device_id = self._load() or self._create()
        return self._device_id

    def _load(self) -> str | None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            logger.warning("Device identity file unreadable, regenerating")
            return None

        device_id = data.get("deviceId") if isinstance(data, dict) else None
        if not isinstance(device_id, str) or not DEVICE_ID_PATTERN.fullmatch(device_id):
            logger.warning("Device identity malformed, regenerating")
            return None
        return device_id

    def _create(self) -> str:
        device_id = secrets.token_hex(16)
        write_json_atomic(self.path, {"deviceId": device_id})
        logger.info("Generated new device identity")
        return device_id
