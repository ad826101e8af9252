"""
Same-origin check for state-changing requests (CSRF protection without cookies or sessions).

The allow-list is compared by exact string equality. Prefix matching would let
"https://survey.example.com.evil.net" through for "https://survey.example.com".
"""
import logging
from urllib.parse import urlsplit

from wage_survey import config
from wage_survey.errors import OriginMismatch

logger = logging.getLogger(__name__)

PROTECTED_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

DEV_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:3001",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:3001",
)


def requires_origin_check(method: str) -> bool:
    return method.upper() in PROTECTED_METHODS


def allowed_origins(host: str) -> set[str]:
    """Own origin (https in production), ALLOWED_ORIGINS, and local dev servers in development."""
    scheme = "https" if config.is_production() else "http"
    origins = {f"{scheme}://{host.strip().lower()}"}
    origins.update(o.rstrip("/").lower() for o in config.ALLOWED_ORIGINS)
    if config.is_development():
        origins.update(DEV_ORIGINS)
    return origins


def origin_from_referer(referer: str | None) -> str | None:
    """scheme://netloc part of a Referer URL, or None if it is not an absolute http(s) URL."""
    if not referer or not referer.strip():
        return None
    try:
        parts = urlsplit(referer.strip())
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}".lower()


def check_origin(origin: str | None, referer: str | None, host: str | None) -> None:
    """Raise OriginMismatch unless Origin (or, without it, the Referer's origin) is in the allow-list."""
    if not host or not host.strip():
        raise OriginMismatch("missing Host header")
    allowed = allowed_origins(host)

    if origin and origin.strip():
        candidate = origin.strip().lower()
        source = "Origin"
    else:
        candidate = origin_from_referer(referer)
        source = "Referer"
        if candidate is None:
            raise OriginMismatch("missing Origin and Referer headers")

    if candidate not in allowed:
        raise OriginMismatch(f"{source} not allowed: {candidate}")
