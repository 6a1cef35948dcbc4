"""Device detection and factory layer.

Picks the model class for the connected mouse (or a requested model name)
and creates it bound to the matching vid/pid.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from mouse_m913 import MouseM913
from mouse_models import (EmptyMouse, GenericMouse, MouseM607, MouseM709, MouseM711, MouseM715,
                          MouseM719, MouseM721, MouseM908, MouseM990, MouseM990Chroma)
from mouse_transport import UsbDeviceInfo, enumerate_usb_devices
from rd_mouse import RdMouse

log = logging.getLogger(__name__)


# Detection tries the specific models first; the catch-all generic model
# stays last in listings.
KNOWN_MODELS: tuple[type[RdMouse], ...] = (
    MouseM607, MouseM709, MouseM711, MouseM715, MouseM719, MouseM721,
    MouseM908, MouseM913, MouseM990, MouseM990Chroma, GenericMouse,
)

# (vid, pid, name) for every model with fixed ids
DEVICE_TABLE: tuple[tuple[int, int, str], ...] = tuple(
    (vid, pid, model.name) for model in KNOWN_MODELS for vid, pid in model.ids
)


def supported_models() -> list[str]:
    return [model.name for model in KNOWN_MODELS]


def _model_class(name: str) -> Optional[type[RdMouse]]:
    for model in KNOWN_MODELS:
        if model.name == name.strip().lower():
            return model
    return None


def model_by_name(name: str, vid: int | None = None, pid: int | None = None) -> RdMouse:
    """Create a model by name without looking at the bus.

    Unknown names give an ``EmptyMouse``.
    """
    model = _model_class(name)
    if model is None:
        return EmptyMouse()
    return model(vid=vid, pid=pid)


def detect(name: str | None = None, devices: Iterable[UsbDeviceInfo] | None = None) -> RdMouse:
    """Return a model object for the first matching attached device.

    With ``name`` only that model is considered and an ``EmptyMouse`` is
    returned if no attached device matches it. Without ``name`` every known
    model is tried and an unbound ``GenericMouse`` is the fallback.
    ``devices`` defaults to the USB bus.
    """
    if devices is None:
        devices = enumerate_usb_devices()

    if name is not None:
        model = _model_class(name)
        if model is None:
            log.warning("Unknown model %r, known: %s", name, ", ".join(supported_models()))
            return EmptyMouse()
        candidates: tuple[type[RdMouse], ...] = (model,)
    else:
        candidates = KNOWN_MODELS

    # The generic model claims any Holtek id, so it only gets a device once
    # no specific model matched anything on the bus.
    devices = list(devices)
    specific = tuple(model for model in candidates if model is not GenericMouse)
    fallback = tuple(model for model in candidates if model is GenericMouse)
    for models in (specific, fallback):
        for device in devices:
            for model in models:
                if model.has_vid_pid(device.vendor_id, device.product_id):
                    log.info("Detected %s (%04X:%04X)", model.name, device.vendor_id, device.product_id)
                    return model(vid=device.vendor_id, pid=device.product_id,
                                 bus=device.bus, address=device.address)

    if name is not None:
        log.info("No %s found", name)
        return EmptyMouse()
    log.info("No supported mouse found, using the generic model")
    return GenericMouse()
