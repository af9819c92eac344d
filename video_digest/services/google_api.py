from __future__ import annotations

from importlib import import_module
from typing import Any

from video_digest.errors import ConfigError

SHEETS_SCOPES: tuple[str, ...] = ("https://www.googleapis.com/auth/spreadsheets",)


def load_google_module(name: str) -> Any:
    try:
        return import_module(name)
    except ImportError as exc:  # pragma: no cover - dependency controlled at runtime
        raise ConfigError(
            "Google API access requires google-api-python-client, google-auth and "
            f"google-auth-oauthlib (failed to import {name})"
        ) from exc


def build_google_service(api_name: str, version: str, **kwargs: Any) -> Any:
    discovery_module = load_google_module("googleapiclient.discovery")
    build_fn: Any = discovery_module.build
    return build_fn(api_name, version, cache_discovery=False, **kwargs)


def http_status_of(exc: Exception) -> int | None:
    """Status code carried by a googleapiclient `HttpError`, if any."""
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        return status_code
    response = getattr(exc, "resp", None)
    raw_status = getattr(response, "status", None)
    if isinstance(raw_status, int):
        return raw_status
    if isinstance(raw_status, str) and raw_status.isdigit():
        return int(raw_status)
    return None


def summarize_exception_message(exc: Exception, *, max_length: int = 400) -> str:
    raw = str(exc).strip()
    if not raw:
        raw = repr(exc)
    if len(raw) <= max_length:
        return raw
    return f"{raw[: max_length - 3]}..."
