"""Gateways y catálogo en memoria."""

from .catalog import DeviceCatalog, load_catalog
from .models import Device, DeviceState

__all__ = ["DeviceCatalog", "load_catalog", "Device", "DeviceState"]
