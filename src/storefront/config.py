"""Runtime configuration for storefront.

Values come from the environment; ``STOREFRONT_BACKEND_CONFIG`` may hold a
JSON object overriding ``backend``, ``data_dir`` and ``app_id``.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .errors import InitializationError

BACKENDS = ("json", "memory")
DEFAULT_APP_ID = "default-app-id"
DEFAULT_DATA_DIR = Path("data")
DEFAULT_SESSION_IDLE_TIMEOUT = 1800.0
DEFAULT_MAX_SESSIONS = 1000


@dataclass(frozen=True)
class StorefrontConfig:
    """Backend selection and collection namespace."""

    backend: str = "json"
    data_dir: Path = DEFAULT_DATA_DIR
    app_id: str = DEFAULT_APP_ID
    initial_auth_token: str | None = None
    log_level: str = "WARNING"
    session_idle_timeout: float = DEFAULT_SESSION_IDLE_TIMEOUT
    max_sessions: int = DEFAULT_MAX_SESSIONS

    @property
    def products_collection(self) -> str:
        return f"artifacts/{self.app_id}/public/data/products"

    @property
    def orders_collection(self) -> str:
        return f"artifacts/{self.app_id}/public/data/orders"

    @property
    def identity_namespace(self) -> str:
        return f"artifacts/{self.app_id}/identity"


def load_config(environ: Mapping[str, str] | None = None) -> StorefrontConfig:
    """
    Build a StorefrontConfig from environment variables.

    Raises:
        InitializationError: If the backend config is not valid JSON, names
            an unknown backend, or a session limit is not a positive number.
    """
    env = os.environ if environ is None else environ

    backend = env.get("STOREFRONT_BACKEND", "json")
    data_dir = env.get("STOREFRONT_DATA_DIR", str(DEFAULT_DATA_DIR))
    app_id = env.get("STOREFRONT_APP_ID", DEFAULT_APP_ID)

    raw = env.get("STOREFRONT_BACKEND_CONFIG")
    if raw:
        try:
            overrides = json.loads(raw)
        except ValueError as e:
            raise InitializationError(f"STOREFRONT_BACKEND_CONFIG is not valid JSON ({e})") from e
        if not isinstance(overrides, dict):
            raise InitializationError("STOREFRONT_BACKEND_CONFIG must be a JSON object")
        backend = overrides.get("backend", backend)
        data_dir = overrides.get("data_dir", data_dir)
        app_id = overrides.get("app_id", app_id)

    if backend not in BACKENDS:
        raise InitializationError(
            f"unknown backend '{backend}' (expected one of: {', '.join(BACKENDS)})"
        )
    if not app_id or "/" in app_id:
        raise InitializationError(f"invalid app id: {app_id!r}")

    try:
        idle_timeout = float(
            env.get("STOREFRONT_SESSION_IDLE_TIMEOUT", DEFAULT_SESSION_IDLE_TIMEOUT)
        )
        max_sessions = int(env.get("STOREFRONT_MAX_SESSIONS", DEFAULT_MAX_SESSIONS))
    except ValueError as e:
        raise InitializationError(f"invalid session limit ({e})") from e
    if not idle_timeout > 0 or max_sessions < 1:
        raise InitializationError("session limits must be positive")

    return StorefrontConfig(
        backend=backend,
        data_dir=Path(data_dir),
        app_id=app_id,
        initial_auth_token=env.get("STOREFRONT_INITIAL_AUTH_TOKEN") or None,
        log_level=env.get("STOREFRONT_LOG_LEVEL", "WARNING").upper(),
        session_idle_timeout=idle_timeout,
        max_sessions=max_sessions,
    )
