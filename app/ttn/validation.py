from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

VALID_REGIONS = ("eu1", "nam1", "au1", "as1")

_APP_ID_RE = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")
_DEV_EUI_RE = re.compile(r"^[0-9A-Fa-f]{16}$")

MIN_API_KEY_LENGTH = 32


@dataclass(frozen=True)
class TTNConfig:
    app_id: str = ""
    api_key: str = ""
    region: str = ""
    webhook_url: Optional[str] = None


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: Optional[list[str]] = None


def _blank(value: Optional[str]) -> bool:
    return value is None or value.strip() == ""


def _check_url(url: str) -> Optional[str]:
    try:
        parts = urlsplit(url)
        # urlsplit is lenient; a usable URL has both a scheme and a host
        if not parts.scheme or not parts.netloc:
            return "Webhook URL is not a valid URL"
        parts.port  # raises ValueError on a bad port
    except ValueError:
        return "Webhook URL is not a valid URL"
    if parts.scheme.lower() not in ("http", "https"):
        return "Webhook URL must use HTTP or HTTPS protocol"
    return None


def validate_ttn_config(config: TTNConfig) -> ValidationResult:
    """Check a TTN application config, collecting every violated rule.

    Rules are checked in a fixed order (application id, API key, webhook URL,
    region) and nothing short-circuits, so the caller sees all problems at
    once.
    """
    errors: list[str] = []

    if _blank(config.app_id):
        errors.append("Application ID is required")
    elif not _APP_ID_RE.fullmatch(config.app_id):
        errors.append("Application ID must be lowercase alphanumeric with hyphens")

    if _blank(config.api_key):
        errors.append("API Key is required")
    elif len(config.api_key) < MIN_API_KEY_LENGTH:
        errors.append("API Key appears to be invalid (too short)")

    if not _blank(config.webhook_url):
        problem = _check_url(config.webhook_url)
        if problem:
            errors.append(problem)

    if _blank(config.region):
        errors.append("Region is required")
    elif config.region not in VALID_REGIONS:
        errors.append(f"Region must be one of: {', '.join(VALID_REGIONS)}")

    return ValidationResult(valid=not errors, errors=errors or None)


def validate_dev_eui(dev_eui: str) -> bool:
    # fullmatch: "$" would also accept a trailing newline
    return bool(_DEV_EUI_RE.fullmatch(dev_eui or ""))
