"""
Auth configuration - deploy-time settings for the authentication pipeline.

Non-secret settings come from the ``auth`` section of a YAML file; secrets
(JWT signing secret, integration API key) come from read_secret. Both are
read once at startup.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

import yaml

from src.utils.env import read_secret
from src.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AuthSettings:
    """Settings consumed by AuthService and the Flask app."""

    jwt_secret: str = ""
    api_key: str = ""
    jwt_algorithm: str = "HS256"
    access_token_expires_minutes: int = 60

    # Sensitive operation throttling
    sensitive_window_seconds: int = 300
    sensitive_max_attempts: int = 3


class ConfigValidationError(Exception):
    """Raised when config validation fails."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


_INT_FIELDS = {
    "access_token_expires_minutes",
    "sensitive_window_seconds",
    "sensitive_max_attempts",
}


def _validate(settings: AuthSettings) -> None:
    for name in _INT_FIELDS:
        value = getattr(settings, name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise ConfigValidationError(name, f"must be a positive integer, got {value!r}")

    if settings.jwt_algorithm not in ("HS256", "HS384", "HS512"):
        raise ConfigValidationError("jwt_algorithm", f"unsupported algorithm {settings.jwt_algorithm!r}")


def _find_config_file(config_path: Optional[str]) -> Optional[str]:
    search_paths = [
        config_path,
        os.environ.get("SHOPKEEPER_AUTH_CONFIG"),
        os.path.join(os.getcwd(), "configs", "auth.yaml"),
    ]
    for path in search_paths:
        if path and os.path.isfile(path):
            return path
    return None


def settings_from_dict(section: Dict[str, Any], **secrets) -> AuthSettings:
    """
    Build settings from an ``auth`` config section plus secrets.

    Unknown keys (such as ``roles``, read by the RBAC registry) are ignored.
    """
    known = {f.name for f in fields(AuthSettings)} - {"jwt_secret", "api_key"}
    values = {k: v for k, v in (section or {}).items() if k in known}
    settings = AuthSettings(**values, **secrets)
    _validate(settings)
    return settings


def load_auth_config(config_path: Optional[str] = None) -> AuthSettings:
    """
    Load auth settings from YAML and secrets.

    Args:
        config_path: Optional path to the YAML file. Falls back to
                     $SHOPKEEPER_AUTH_CONFIG, then configs/auth.yaml.

    Returns:
        AuthSettings (defaults for anything not configured)

    Raises:
        ConfigValidationError: If a configured value is invalid
    """
    section: Dict[str, Any] = {}
    config_file = _find_config_file(config_path)
    if config_file:
        logger.info(f"Loading auth configuration from: {config_file}")
        with open(config_file, "r") as f:
            section = (yaml.safe_load(f) or {}).get("auth") or {}
    else:
        logger.warning("No auth configuration file found, using defaults")

    settings = settings_from_dict(
        section,
        jwt_secret=read_secret("JWT_SECRET"),
        api_key=read_secret("API_KEY"),
    )

    if not settings.jwt_secret:
        logger.warning("JWT_SECRET not set; every bearer token will be rejected")
    if not settings.api_key:
        logger.warning("API_KEY not set; integration endpoints will reject every request")

    return settings
