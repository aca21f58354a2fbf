"""
PKCE Authorization Code Flow against Keycloak

This module drives the relying-party side of the OAuth 2.0 authorization code
flow with PKCE:

1. begin_authorization() makes sure a verifier/challenge pair is pending in the
   session and returns the Keycloak authorization URL carrying the challenge.
2. complete_authorization() consumes the pending verifier, exchanges the
   authorization code for tokens and fetches the user's profile.

The flow object only holds configuration. Everything that belongs to one
browser lives in the session passed to each call, so concurrent requests for
different sessions never share PKCE state.
"""

from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from ..shared.crypto_utils import PKCEGenerator
from ..shared.logging_utils import ComponentType, OAuthLogger, PKCEEvent
from ..shared.oauth_models import (
    AuthenticatedIdentity,
    AuthorizationRequest,
    OAuthError,
    PKCEParameters,
    TokenRequest,
    TokenResponse,
)
from .config import KeycloakSettings

logger = OAuthLogger(ComponentType.WEB_APP)

PKCE_SESSION_KEY = "pkce"


class AuthorizationFlowError(Exception):
    """Base class for errors surfaced by the authorization flow."""

    def __init__(self, error: str, description: str, status_code: Optional[int] = None):
        self.error = error
        self.description = description
        self.status_code = status_code
        super().__init__(description)


class FlowStateError(AuthorizationFlowError):
    """Callback arrived without pending PKCE state (expired, forged or replayed)."""

    def __init__(self, description: str, error: str = "invalid_flow_state"):
        super().__init__(error, description)


class TokenExchangeError(AuthorizationFlowError):
    """The token endpoint rejected the code/verifier or could not be reached."""


class UserInfoError(AuthorizationFlowError):
    """The userinfo endpoint failed after a successful token exchange."""


def _parse_oauth_error(response: httpx.Response) -> Optional[OAuthError]:
    try:
        return OAuthError.model_validate(response.json())
    except ValueError:
        return None


class AuthorizationFlow:
    """
    Authorization code flow with mandatory S256 PKCE.

    The session argument must provide get/set/setdefault/delete/take, where
    take() reads and removes a value in one atomic step (see ServerSession).
    """

    def __init__(self, settings: KeycloakSettings,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            settings: Keycloak realm and client settings
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self.settings = settings
        self._transport = transport

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self.settings.http_timeout)

    def generate_pkce_parameters(self) -> PKCEParameters:
        return PKCEGenerator.generate_parameters()

    def begin_authorization(self, session) -> str:
        """
        Ensure PKCE state is pending and build the authorization URL.

        A pair that is already pending (e.g. the user hit /login twice) is
        reused instead of being replaced, so the first redirect stays valid.

        Args:
            session: The browser's session

        Returns:
            str: Keycloak authorization URL for a 302 redirect
        """
        stored = session.get(PKCE_SESSION_KEY)

        generated = None
        if stored is None:
            generated = self.generate_pkce_parameters().model_dump()
            # A concurrent request for the same session may have stored a pair first.
            stored = session.setdefault(PKCE_SESSION_KEY, generated)

        if stored is generated:
            logger.log_pkce_operation(
                PKCEEvent.GENERATION,
                {
                    "code_challenge": stored["code_challenge"],
                    "method": stored["code_challenge_method"],
                    "verifier_length": len(stored["code_verifier"])
                }
            )
        else:
            logger.log_pkce_operation(
                PKCEEvent.REUSE,
                {
                    "code_challenge": stored["code_challenge"],
                    "reason": "authorization already pending for this session"
                }
            )

        pkce = PKCEParameters.model_validate(stored)

        auth_request = AuthorizationRequest(
            client_id=self.settings.client_id,
            redirect_uri=self.settings.redirect_uri,
            scope=self.settings.scope,
            code_challenge=pkce.code_challenge,
            code_challenge_method=pkce.code_challenge_method,
        )
        authorization_url = (
            f"{self.settings.authorization_endpoint}?{urlencode(auth_request.to_query_params())}"
        )

        logger.log_oauth_message(
            ComponentType.WEB_APP, ComponentType.USER_BROWSER,
            "Authorization Redirect",
            {
                "client_id": self.settings.client_id,
                "redirect_uri": self.settings.redirect_uri,
                "scope": self.settings.scope,
                "code_challenge": pkce.code_challenge,
                "code_challenge_method": pkce.code_challenge_method,
                "authorization_endpoint": self.settings.authorization_endpoint
            }
        )

        return authorization_url

    async def complete_authorization(self, session, code: str) -> AuthenticatedIdentity:
        """
        Exchange an authorization code for tokens and fetch the user's profile.

        The pending PKCE value is taken out of the session before the token
        request. It is put back if the token exchange fails, and stays
        removed once the exchange succeeds.

        Args:
            session: The browser's session
            code: Authorization code from the callback query string

        Returns:
            AuthenticatedIdentity: Profile built from the userinfo response

        Raises:
            FlowStateError: Empty code, or no pending PKCE state
            TokenExchangeError: Token endpoint failure
            UserInfoError: Userinfo endpoint failure
        """
        if not code:
            raise FlowStateError("Missing authorization code", error="missing_code")

        stored = session.take(PKCE_SESSION_KEY)
        if stored is None:
            logger.log_error(
                "invalid_flow_state",
                "Callback received without pending PKCE state",
                {"code": code, "possible_cause": "expired session or replayed callback"}
            )
            raise FlowStateError(
                "No authorization is pending for this session. Please restart the login."
            )

        pkce = PKCEParameters.model_validate(stored)

        try:
            token = await self._exchange_code(code, pkce)
        except TokenExchangeError:
            try:
                session.setdefault(PKCE_SESSION_KEY, stored)
            except KeyError:
                # Session expired or was logged out during the token call.
                logger.log_error(
                    "session_gone",
                    "Pending PKCE state not restored: session no longer exists"
                )
            raise

        logger.log_pkce_operation(
            PKCEEvent.CONSUMPTION,
            {
                "code_challenge": pkce.code_challenge,
                "pkce_cleared": True
            }
        )

        return await self._fetch_userinfo(token)

    def abandon_authorization(self, session) -> None:
        """Drop any pending PKCE state so the next login starts fresh."""
        session.delete(PKCE_SESSION_KEY)

    def build_logout_url(self) -> str:
        """
        Build the Keycloak end-session URL that returns the user to the app.
        """
        params = {
            "client_id": self.settings.client_id,
            "post_logout_redirect_uri": self.settings.app_base_url,
        }
        return f"{self.settings.end_session_endpoint}?{urlencode(params)}"

    async def _exchange_code(self, code: str, pkce: PKCEParameters) -> TokenResponse:
        token_request = TokenRequest(
            code=code,
            redirect_uri=self.settings.redirect_uri,
            client_id=self.settings.client_id,
            client_secret=self.settings.client_secret,
            code_verifier=pkce.code_verifier,
        )

        logger.log_oauth_message(
            ComponentType.WEB_APP, ComponentType.KEYCLOAK,
            "Token Exchange Request",
            {
                "grant_type": token_request.grant_type,
                "code": code,
                "redirect_uri": token_request.redirect_uri,
                "client_id": token_request.client_id,
                "client_secret": token_request.client_secret,
                "code_verifier": token_request.code_verifier,
                "endpoint": self.settings.token_endpoint
            }
        )

        try:
            async with self._http_client() as client:
                response = await client.post(
                    self.settings.token_endpoint,
                    data=token_request.to_form(),
                    headers={"Accept": "application/json"}
                )
        except httpx.HTTPError as e:
            logger.log_error(
                "network_error",
                f"Failed to connect to token endpoint: {e}",
                {"endpoint": self.settings.token_endpoint}
            )
            raise TokenExchangeError(
                "network_error", f"Failed to connect to token endpoint: {e}"
            ) from e

        if not response.is_success:
            oauth_error = _parse_oauth_error(response)
            error = oauth_error.error if oauth_error else "token_exchange_failed"
            description = (
                oauth_error.error_description
                if oauth_error and oauth_error.error_description
                else f"Token exchange failed with status {response.status_code}"
            )

            logger.log_oauth_message(
                ComponentType.KEYCLOAK, ComponentType.WEB_APP,
                "Token Exchange Failed",
                {
                    "status_code": response.status_code,
                    "error": error,
                    "error_description": description
                },
                success=False
            )
            raise TokenExchangeError(error, description, response.status_code)

        try:
            token = TokenResponse.model_validate(response.json())
        except ValueError as e:
            logger.log_error(
                "invalid_token_response",
                "Token endpoint returned a malformed body",
                {"status_code": response.status_code}
            )
            raise TokenExchangeError(
                "invalid_token_response",
                "Token endpoint returned a malformed body",
                response.status_code
            ) from e

        logger.log_oauth_message(
            ComponentType.KEYCLOAK, ComponentType.WEB_APP,
            "Token Exchange Success",
            {
                "access_token": token.access_token,
                "token_type": token.token_type,
                "expires_in": token.expires_in,
                "scope": token.scope
            }
        )
        return token

    async def _fetch_userinfo(self, token: TokenResponse) -> AuthenticatedIdentity:
        logger.log_oauth_message(
            ComponentType.WEB_APP, ComponentType.KEYCLOAK,
            "User Info Request",
            {
                "endpoint": self.settings.userinfo_endpoint,
                "method": "GET",
                "access_token": token.access_token
            }
        )

        try:
            async with self._http_client() as client:
                response = await client.get(
                    self.settings.userinfo_endpoint,
                    headers={"Authorization": f"Bearer {token.access_token}"}
                )
        except httpx.HTTPError as e:
            logger.log_error(
                "network_error",
                f"Failed to connect to userinfo endpoint: {e}",
                {"endpoint": self.settings.userinfo_endpoint}
            )
            raise UserInfoError(
                "network_error", f"Failed to connect to userinfo endpoint: {e}"
            ) from e

        if not response.is_success:
            logger.log_oauth_message(
                ComponentType.KEYCLOAK, ComponentType.WEB_APP,
                "User Info Access Failed",
                {"status_code": response.status_code},
                success=False
            )
            raise UserInfoError(
                "userinfo_failed",
                f"Failed to fetch user info: HTTP {response.status_code}",
                response.status_code
            )

        try:
            userinfo: Dict[str, Any] = response.json()
            if not isinstance(userinfo, dict):
                raise ValueError("userinfo body is not a JSON object")
            identity = AuthenticatedIdentity.from_userinfo(userinfo)
        except ValueError as e:
            logger.log_error(
                "invalid_userinfo_response",
                "Userinfo endpoint returned a malformed body",
                {"status_code": response.status_code}
            )
            raise UserInfoError(
                "invalid_userinfo_response",
                "Userinfo endpoint returned a malformed body",
                response.status_code
            ) from e

        logger.log_oauth_message(
            ComponentType.KEYCLOAK, ComponentType.WEB_APP,
            "User Info Response",
            {
                "sub": identity.sub,
                "email": identity.email,
                "name": identity.name
            }
        )
        return identity
