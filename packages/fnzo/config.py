"""Runtime settings read from the environment.

Entry points call ``load_dotenv(override=False)`` first so a local ``.env``
can supply the Supabase connection parameters. Malformed numeric values fall
back to their defaults.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .errors import ConfigurationError

_MAX_JITTER = 1 / 3


def _env_str(env: Mapping[str, str], *names: str) -> str | None:
    for name in names:
        raw = env.get(name)
        if raw is not None and raw.strip():
            return raw.strip()
    return None


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass(frozen=True, slots=True)
class Settings:
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    session_file: str | None = None
    database_url: str | None = None
    user_id: str | None = None
    max_attempts: int = 5
    backoff_base_sec: float = 1.0
    backoff_jitter: float = 0.2
    session_ttl_sec: float = 30.0
    auth_timeout_sec: float = 10.0
    transactions_ttl_sec: float = 60.0
    categories_ttl_sec: float = 30.0
    templates_ttl_sec: float = 300.0
    recent_categories_ttl_sec: float = 60.0
    import_row_delay_sec: float = 0.1
    product_name: str = "fnzo"
    log_level: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``env`` (defaults to ``os.environ``)."""

        e = os.environ if env is None else env
        jitter = min(max(_env_float(e, "FNZO_BACKOFF_JITTER", 0.2), 0.0), _MAX_JITTER)
        return cls(
            supabase_url=_env_str(e, "SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"),
            supabase_anon_key=_env_str(
                e, "SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"
            ),
            session_file=_env_str(e, "FNZO_SESSION_FILE"),
            database_url=_env_str(e, "DATABASE_URL"),
            user_id=_env_str(e, "FNZO_USER_ID"),
            max_attempts=_env_int(e, "FNZO_MAX_ATTEMPTS", 5),
            backoff_base_sec=_env_float(e, "FNZO_BACKOFF_BASE_SEC", 1.0),
            backoff_jitter=jitter,
            session_ttl_sec=_env_float(e, "FNZO_SESSION_TTL_SEC", 30.0),
            auth_timeout_sec=_env_float(e, "FNZO_AUTH_TIMEOUT_SEC", 10.0),
            transactions_ttl_sec=_env_float(e, "FNZO_TRANSACTIONS_TTL_SEC", 60.0),
            categories_ttl_sec=_env_float(e, "FNZO_CATEGORIES_TTL_SEC", 30.0),
            templates_ttl_sec=_env_float(e, "FNZO_TEMPLATES_TTL_SEC", 300.0),
            recent_categories_ttl_sec=_env_float(e, "FNZO_RECENT_CATEGORIES_TTL_SEC", 60.0),
            import_row_delay_sec=_env_float(e, "FNZO_IMPORT_ROW_DELAY_SEC", 0.1),
            product_name=_env_str(e, "FNZO_PRODUCT_NAME") or "fnzo",
            log_level=_env_str(e, "FNZO_LOG_LEVEL"),
        )

    def require_supabase(self) -> tuple[str, str]:
        """Return ``(url, anon_key)`` or raise ``ConfigurationError``."""

        url, key = self.supabase_url, self.supabase_anon_key
        if not url or not key:
            missing = [
                name
                for name, value in (("SUPABASE_URL", url), ("SUPABASE_ANON_KEY", key))
                if not value
            ]
            raise ConfigurationError(
                "Missing Supabase connection settings: " + ", ".join(missing)
            )
        return url.rstrip("/"), key
