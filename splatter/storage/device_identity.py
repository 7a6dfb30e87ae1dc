"""Opaque per-device identifier kept in the local data directory."""

import json
import logging
import random
import string
import time
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def generate_device_id() -> str:
    """device_<epoch ms>_<9 random base36 characters>."""
    suffix = ''.join(random.choices(_BASE36, k=9))
    return f"device_{int(time.time() * 1000)}_{suffix}"


class DeviceIdentity:
    """Loads the device id from ``<data_dir>/device.json``, creating it on first use."""

    def __init__(self, data_dir: str = "./data"):
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / "device.json"
        self._device_id: Optional[str] = None

    def get_or_create(self) -> str:
        if self._device_id:
            return self._device_id

        device_id = self._read()
        if not device_id:
            device_id = generate_device_id()
            self._write(device_id)
            logger.info(f"Created device id {device_id}")
        self._device_id = device_id
        return device_id

    def _read(self) -> Optional[str]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Unreadable device id file {self.path}: {e}")
            return None
        return data.get("device_id") or None

    def _write(self, device_id: str) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps({"device_id": device_id}, indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not persist device id to {self.path}: {e}")
