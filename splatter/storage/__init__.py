"""Local identity and remote conversation storage."""

from .device_identity import DeviceIdentity, generate_device_id
from .session_store import SupabaseSessionStore

__all__ = ["DeviceIdentity", "generate_device_id", "SupabaseSessionStore"]
