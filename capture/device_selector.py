"""Resolve a facing preference into a concrete capture request."""

from __future__ import annotations

from typing import List, Optional

from contracts import DeviceDescriptor, DeviceInfo
from exceptions import EnumerationError
from log_config.logger import get_logger

from .providers import CaptureProvider

logger = get_logger(__name__)

# Facing preferences whose device labels use a different word
FACING_KEYWORDS = {
    "environment": "back",
    "back": "back",
    "rear": "back",
    "user": "front",
    "front": "front",
}


def facing_keyword(facing: str) -> str:
    facing = facing.strip().lower()
    return FACING_KEYWORDS.get(facing, facing)


def match_device(devices: List[DeviceInfo], facing: str) -> Optional[DeviceInfo]:
    """First video-input device whose label contains the facing keyword."""
    keyword = facing_keyword(facing)
    for device in devices:
        if device.kind == "videoinput" and keyword in device.label.lower():
            return device
    return None


class DeviceSelector:
    def __init__(self, provider: CaptureProvider, facing: str, debug: bool = False) -> None:
        self._provider = provider
        self._facing = facing
        self._debug = debug

    def resolve(self) -> DeviceDescriptor:
        """Resolve to a matching device, or to a facing-only request.

        Never raises: enumeration failures fall back to facing-only.
        """
        fallback = DeviceDescriptor(facing=self._facing)

        if not self._provider.supports_enumeration:
            if self._debug:
                logger.debug(f"{self._provider.name} provider has no device enumeration, using facing={self._facing}")
            return fallback

        try:
            devices = self._provider.enumerate_devices()
        except EnumerationError as e:
            if self._debug:
                logger.debug(f"Device enumeration failed, using facing={self._facing}: {e}")
            return fallback
        except Exception as e:
            if self._debug:
                logger.debug(
                    f"Device enumeration failed unexpectedly, using facing={self._facing}: "
                    f"{e.__class__.__name__}: {e}"
                )
            return fallback

        device = match_device(devices, self._facing)
        if device is None:
            if self._debug:
                logger.debug(
                    f"No device label matched '{facing_keyword(self._facing)}' "
                    f"among {[d.label for d in devices]}, using facing={self._facing}"
                )
            return fallback

        if self._debug:
            logger.debug(f"Selected device {device.device_id} ({device.label}) for facing={self._facing}")
        return DeviceDescriptor(facing=self._facing, device_id=device.device_id, label=device.label)
