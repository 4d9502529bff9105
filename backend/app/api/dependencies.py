"""Shared API dependencies."""

from __future__ import annotations

import threading
from typing import Any, Callable

from fastapi import FastAPI, Request

from ..config import Settings, require_image_host
from ..domain.catalog.gateway import BookStoreGateway, build_book_store_gateway
from ..infra.image_host import ImageHostClient, ImageUploader

__all__ = [
    "close_book_gateway",
    "get_book_gateway",
    "get_image_uploader",
    "get_settings",
]

_state_lock = threading.Lock()


def get_settings(request: Request) -> Settings:
    """Return the settings the app was created with."""

    return request.app.state.settings


def get_book_gateway(request: Request) -> BookStoreGateway:
    """Return the process-wide book store gateway instance."""

    settings = get_settings(request)
    return _app_singleton(request, "book_gateway", lambda: build_book_store_gateway(settings))


def get_image_uploader(request: Request) -> ImageUploader:
    """Return the image host client shared by the form endpoints."""

    settings = get_settings(request)
    return _app_singleton(
        request, "image_uploader", lambda: ImageHostClient(require_image_host(settings))
    )


def close_book_gateway(app: FastAPI) -> bool:
    """Close the gateway built for ``app``, if any; returns whether one existed."""

    with _state_lock:
        gateway = getattr(app.state, "book_gateway", None)
        app.state.book_gateway = None
    if gateway is None:
        return False
    gateway.close()
    return True


def _app_singleton(request: Request, name: str, factory: Callable[[], Any]) -> Any:
    state = request.app.state
    with _state_lock:
        instance = getattr(state, name, None)
        if instance is None:
            instance = factory()
            setattr(state, name, instance)
    return instance
