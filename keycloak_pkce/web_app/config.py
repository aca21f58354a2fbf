"""
Keycloak client configuration.

Settings are read from environment variables. Browser-facing URLs use
KEYCLOAK_URL; back-channel calls (token, userinfo) use KEYCLOAK_INTERNAL_URL,
which differs when Keycloak is reachable under another host name from inside
the container network (e.g. http://keycloak:8080).
"""

import os
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

REQUIRED_ENV_VARS = [
    "KEYCLOAK_URL",
    "KEYCLOAK_REALM",
    "KEYCLOAK_CLIENT_ID",
    "KEYCLOAK_CLIENT_SECRET",
    "SESSION_SECRET",
]

DEFAULT_SCOPE = "openid email profile"
CALLBACK_PATH = "/auth/callback"

ENV_VARS_BY_FIELD = {
    "keycloak_url": "KEYCLOAK_URL",
    "keycloak_realm": "KEYCLOAK_REALM",
    "client_id": "KEYCLOAK_CLIENT_ID",
    "client_secret": "KEYCLOAK_CLIENT_SECRET",
    "session_secret": "SESSION_SECRET",
    "keycloak_internal_url": "KEYCLOAK_INTERNAL_URL",
    "app_base_url": "APP_BASE_URL",
    "port": "PORT",
    "session_max_age": "SESSION_MAX_AGE",
    "http_timeout": "HTTP_TIMEOUT",
}


class ConfigurationError(Exception):
    """Raised when required settings are missing or invalid."""

    def __init__(self, missing: List[str], invalid: Optional[Dict[str, str]] = None):
        self.missing = missing
        self.invalid = invalid or {}

        problems = []
        if self.missing:
            problems.append("Missing required environment variables: " + ", ".join(self.missing))
        if self.invalid:
            problems.append("Invalid environment variables: " + ", ".join(
                f"{name} ({reason})" for name, reason in self.invalid.items()
            ))
        super().__init__("; ".join(problems))


class KeycloakSettings(BaseModel):
    """
    Settings for the relying party and the Keycloak realm it trusts.
    """
    model_config = ConfigDict(frozen=True)

    keycloak_url: str = Field(..., min_length=1)
    keycloak_realm: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    client_secret: str = Field(..., min_length=1)
    session_secret: str = Field(..., min_length=1)
    keycloak_internal_url: Optional[str] = None
    app_base_url: str = "http://localhost:3000"
    port: int = Field(default=3000, ge=1, le=65535)
    session_max_age: int = Field(default=24 * 60 * 60, ge=1)
    http_timeout: float = Field(default=10.0, gt=0)
    scope: str = DEFAULT_SCOPE

    @field_validator('keycloak_url', 'keycloak_internal_url', 'app_base_url')
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip('/') if v else v

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "KeycloakSettings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            KeycloakSettings: Validated settings

        Raises:
            ConfigurationError: If a required variable is missing or empty, or
                a variable holds a value that fails validation
        """
        env = os.environ if environ is None else environ

        missing = [name for name in REQUIRED_ENV_VARS if not env.get(name)]
        if missing:
            raise ConfigurationError(missing)

        values = {
            field: env[name] for field, name in ENV_VARS_BY_FIELD.items() if env.get(name)
        }
        try:
            return cls(**values)
        except ValidationError as e:
            invalid = {}
            for error in e.errors():
                field = error["loc"][0] if error["loc"] else ""
                invalid[ENV_VARS_BY_FIELD.get(field, str(field))] = error["msg"]
            raise ConfigurationError([], invalid) from e

    def _realm_url(self, base: str) -> str:
        return f"{base}/realms/{self.keycloak_realm}/protocol/openid-connect"

    @property
    def backchannel_url(self) -> str:
        return self.keycloak_internal_url or self.keycloak_url

    @property
    def authorization_endpoint(self) -> str:
        return f"{self._realm_url(self.keycloak_url)}/auth"

    @property
    def token_endpoint(self) -> str:
        return f"{self._realm_url(self.backchannel_url)}/token"

    @property
    def userinfo_endpoint(self) -> str:
        return f"{self._realm_url(self.backchannel_url)}/userinfo"

    @property
    def end_session_endpoint(self) -> str:
        return f"{self._realm_url(self.keycloak_url)}/logout"

    @property
    def redirect_uri(self) -> str:
        return f"{self.app_base_url}{CALLBACK_PATH}"
