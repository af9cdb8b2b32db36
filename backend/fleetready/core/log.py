import logging
from typing import Optional


def configure_logging_if_needed(level: Optional[str] = None) -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level or "INFO",
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


def mask_secret(value: Optional[str]) -> Optional[str]:
    """Mask an Authorization-style header value, keeping the scheme and last 4 chars."""
    if not value:
        return value
    parts = value.split(" ", 1)
    if len(parts) != 2:
        token = parts[0]
        return "****" if len(token) <= 6 else f"****{token[-4:]}"
    scheme, token = parts
    if len(token) <= 6:
        return f"{scheme} ****"
    return f"{scheme} ****{token[-4:]}"
