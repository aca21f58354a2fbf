"""
OAuth 2.0 / OpenID Connect Pydantic models for the Keycloak PKCE flow.

This module defines the data models exchanged with the identity provider:
PKCE proof material, authorization and token requests, token and error
responses, and the authenticated identity built from the userinfo response.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, Optional
from enum import Enum


class PKCEMethod(str, Enum):
    """PKCE code challenge methods as defined in RFC 7636."""
    S256 = "S256"


class GrantType(str, Enum):
    """OAuth grant types used by the relying party."""
    AUTHORIZATION_CODE = "authorization_code"


class ResponseType(str, Enum):
    """OAuth response types."""
    CODE = "code"


class PKCEParameters(BaseModel):
    """
    Proof material for a single authorization attempt.

    Stored in the session between the authorization redirect and the
    token exchange, then discarded.
    """
    model_config = ConfigDict(use_enum_values=True, validate_default=True, frozen=True)

    code_verifier: str = Field(
        ...,
        min_length=43,
        max_length=128,
        description="PKCE code verifier"
    )
    code_challenge: str = Field(
        ...,
        min_length=43,
        max_length=128,
        description="PKCE code challenge"
    )
    code_challenge_method: PKCEMethod = Field(
        default=PKCEMethod.S256,
        description="PKCE challenge method (always S256)"
    )

    @field_validator('code_verifier', 'code_challenge')
    @classmethod
    def validate_pkce_value(cls, v):
        """Validate PKCE values use the unpadded base64url alphabet."""
        if not v.isascii() or not v.replace('-', '').replace('_', '').isalnum():
            raise ValueError("PKCE values must be base64url encoded without padding")
        return v


class AuthorizationRequest(BaseModel):
    """
    Authorization endpoint query parameters.

    Includes the mandatory PKCE challenge for every request.
    """
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    response_type: ResponseType = Field(
        default=ResponseType.CODE,
        description="OAuth response type (must be 'code')"
    )
    client_id: str = Field(..., min_length=1, description="OAuth client identifier")
    redirect_uri: str = Field(..., min_length=1, description="Client redirect URI")
    scope: str = Field(..., min_length=1, description="Requested scopes")
    code_challenge: str = Field(
        ...,
        min_length=43,
        max_length=128,
        description="PKCE code challenge"
    )
    code_challenge_method: PKCEMethod = Field(
        default=PKCEMethod.S256,
        description="PKCE challenge method (must be S256)"
    )

    @field_validator('redirect_uri')
    @classmethod
    def validate_redirect_uri(cls, v):
        """Only absolute http(s) redirect URIs are accepted."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Redirect URI must be an absolute http(s) URL")
        return v

    def to_query_params(self) -> Dict[str, str]:
        """Return the request as an ordered query parameter mapping."""
        return self.model_dump()


class TokenRequest(BaseModel):
    """
    Token endpoint form body for the authorization code grant.

    Client credentials travel in the body, alongside the PKCE verifier.
    """
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    grant_type: GrantType = Field(
        default=GrantType.AUTHORIZATION_CODE,
        description="OAuth grant type"
    )
    code: str = Field(..., min_length=1, description="Authorization code")
    redirect_uri: str = Field(..., min_length=1, description="Client redirect URI")
    client_id: str = Field(..., min_length=1, description="OAuth client identifier")
    client_secret: str = Field(..., min_length=1, description="OAuth client secret")
    code_verifier: str = Field(
        ...,
        min_length=43,
        max_length=128,
        description="PKCE code verifier"
    )

    def to_form(self) -> Dict[str, str]:
        """Return the form-encoded body fields."""
        return self.model_dump()


class TokenResponse(BaseModel):
    """
    Token endpoint success body.

    Keycloak adds provider-specific fields; those are ignored.
    """
    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1, description="OAuth access token")
    token_type: str = Field(default="Bearer", description="Token type")
    expires_in: Optional[int] = Field(default=None, ge=0, description="Token lifetime in seconds")
    refresh_token: Optional[str] = Field(default=None, description="Refresh token")
    id_token: Optional[str] = Field(default=None, description="OpenID Connect ID token")
    scope: Optional[str] = Field(default=None, description="Granted scopes")


class OAuthError(BaseModel):
    """
    OAuth error response body as defined in RFC 6749 section 5.2.
    """
    model_config = ConfigDict(extra="ignore")

    error: str = Field(..., min_length=1, description="Error code")
    error_description: Optional[str] = Field(
        default=None,
        description="Human-readable error description"
    )
    error_uri: Optional[str] = Field(
        default=None,
        description="URI with error information"
    )


class AuthenticatedIdentity(BaseModel):
    """
    The end user's verified profile, built from the userinfo response.
    """
    sub: str = Field(..., min_length=1, description="Subject identifier")
    email: Optional[str] = Field(default=None, description="Email address")
    name: Optional[str] = Field(default=None, description="Display name")
    preferred_username: Optional[str] = Field(default=None, description="Username")
    claims: Dict[str, Any] = Field(default_factory=dict, description="All provider claims")

    @classmethod
    def from_userinfo(cls, userinfo: Dict[str, Any]) -> "AuthenticatedIdentity":
        """Build an identity from a userinfo response body."""
        return cls(
            sub=userinfo.get("sub", ""),
            email=userinfo.get("email"),
            name=userinfo.get("name"),
            preferred_username=userinfo.get("preferred_username"),
            claims=dict(userinfo),
        )

    @property
    def display_name(self) -> str:
        return self.name or self.preferred_username or self.email or self.sub
