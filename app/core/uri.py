from __future__ import annotations

from app.core.errors import ConfigurationError


def production_uri(path: str, base: str | None = None) -> str:
    """Return an absolute URL for *path* under the configured install URI.

    Inputs that are already absolute ``http(s)://`` URLs are returned as-is.
    """
    if path.startswith(("http://", "https://")):
        return path

    if base is None:
        from app.core.settings import get_settings

        base = get_settings().production_uri

    base = (base or "").rstrip("/")
    if not base:
        raise ConfigurationError("PRODUCTION_URI is not configured")

    if not path.startswith("/"):
        path = "/" + path
    return base + path
