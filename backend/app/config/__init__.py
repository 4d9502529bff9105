"""Config package exporting loader helpers."""

from .loader import (
    ConfigurationError,
    ImageHostConfig,
    Settings,
    StoreConfig,
    StreamingConfig,
    load_settings,
    require_image_host,
)

__all__ = [
    "ConfigurationError",
    "ImageHostConfig",
    "Settings",
    "StoreConfig",
    "StreamingConfig",
    "load_settings",
    "require_image_host",
]
