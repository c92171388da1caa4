import logging
import logging.config
import re

# package+<id>+<hash>@domain: keep the package id, drop the signing hash.
REPLY_ADDRESS_PATTERN = re.compile(r"\b(package\+\d+\+)[0-9a-f]+@[A-Za-z0-9.-]+")
ADDRESS_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")


def redact_addresses(text: str) -> str:
    """Mask mail addresses in *text*; PHIDs and outbound mail ids pass through."""
    text = REPLY_ADDRESS_PATTERN.sub(r"\1[REDACTED]", text)
    return ADDRESS_PATTERN.sub("[REDACTED]", text)


class AddressRedactFilter(logging.Filter):
    """Render each record once and strip recipient and reply addresses from it."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if "@" in message:
            record.msg = redact_addresses(message)
            record.args = None
        return True


def setup_logging() -> None:
    from app.core.settings import get_settings

    settings = get_settings()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "address_redact": {"()": "app.core.logging.AddressRedactFilter"},
            },
            "formatters": {
                "default": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["address_redact"],
                }
            },
            "loggers": {
                "": {"handlers": ["console"], "level": settings.log_level.upper()},
                "uvicorn.access": {"handlers": ["console"], "level": "WARNING", "propagate": False},
            },
        }
    )
