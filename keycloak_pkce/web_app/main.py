"""
Keycloak PKCE Web Application

This FastAPI application authenticates end users against a Keycloak realm
using the OAuth 2.0 authorization code flow with PKCE.

Routes:
- `/login` - start the flow (302 to Keycloak with the PKCE challenge)
- `/auth/callback` - exchange the code (with the PKCE verifier) and sign in
- `/dashboard`, `/profile` - pages for signed-in users
- `/api/protected` - JSON resource for signed-in users
- `/logout` - end the local session and the Keycloak session
- `/health` - health check

The browser holds only a signed cookie with an opaque session id; PKCE state
and the user's identity are kept server-side in the SessionStore.
"""

import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.sessions import SessionMiddleware

from ..shared.logging_utils import ComponentType, OAuthLogger
from ..shared.oauth_models import AuthenticatedIdentity
from ..shared.security import SecurityHeaders
from .config import ConfigurationError, KeycloakSettings, REQUIRED_ENV_VARS
from .flow import AuthorizationFlow, AuthorizationFlowError, TokenExchangeError
from .session_store import ServerSession, SessionStore

logger = OAuthLogger(ComponentType.WEB_APP)

SESSION_COOKIE_NAME = "oauth-session"
SESSION_ID_KEY = "sid"
USER_SESSION_KEY = "user"

router = APIRouter()


def get_flow(request: Request) -> AuthorizationFlow:
    return request.app.state.flow


def get_session(request: Request) -> ServerSession:
    """
    Resolve the caller's server-side session, creating one if needed.

    Only routes that write session state depend on this, so anonymous
    page views do not allocate sessions.
    """
    store: SessionStore = request.app.state.session_store
    session_id = request.session.get(SESSION_ID_KEY)

    if not store.exists(session_id):
        session_id = store.create_session()
        request.session[SESSION_ID_KEY] = session_id

    return ServerSession(store, session_id)


def get_current_user(request: Request) -> Optional[Dict[str, Any]]:
    store: SessionStore = request.app.state.session_store
    session_id = request.session.get(SESSION_ID_KEY)
    if not session_id:
        return None
    return store.get(session_id, USER_SESSION_KEY)


def _rotate_session(request: Request, session: ServerSession) -> ServerSession:
    # A fresh session id after sign-in prevents session fixation.
    store = session.store
    new_session_id = store.create_session()
    store.destroy(session.session_id)
    request.session[SESSION_ID_KEY] = new_session_id
    return ServerSession(store, new_session_id)


def _error_redirect(reason: str) -> RedirectResponse:
    return RedirectResponse(f"/error?{urlencode({'reason': reason})}", status_code=302)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/")
async def index(request: Request):
    """Landing page: report whether the browser is signed in."""
    user = get_current_user(request)
    return {
        "authenticated": user is not None,
        "user": user,
        "logout": request.query_params.get("logout")
    }


@router.get("/login")
async def login(session: ServerSession = Depends(get_session),
                flow: AuthorizationFlow = Depends(get_flow)):
    """
    Start the authorization code flow.

    Generates (or reuses) the session's PKCE pair and redirects the
    browser to Keycloak with the code challenge.
    """
    authorization_url = flow.begin_authorization(session)
    return RedirectResponse(authorization_url, status_code=302)


@router.get("/auth/callback")
async def auth_callback(request: Request,
                        code: Optional[str] = None,
                        error: Optional[str] = None,
                        session: ServerSession = Depends(get_session),
                        flow: AuthorizationFlow = Depends(get_flow)):
    """
    Handle the redirect back from Keycloak.

    This endpoint demonstrates:
    - Provider error handling (e.g. the user denied consent)
    - Token exchange with the pending PKCE verifier
    - Storing the authenticated identity in a fresh session
    """
    logger.log_oauth_message(
        ComponentType.KEYCLOAK, ComponentType.WEB_APP,
        "Authorization Callback Received",
        {
            "code": code,
            "error": error,
            "error_description": request.query_params.get("error_description")
        }
    )

    if error:
        logger.log_error(
            error,
            request.query_params.get("error_description", "No description provided")
        )
        return _error_redirect(error)

    try:
        identity = await flow.complete_authorization(session, code or "")
    except AuthorizationFlowError as e:
        # Keycloak reports used, expired and verifier-mismatched codes as
        # invalid_grant; none of those can succeed on retry.
        if isinstance(e, TokenExchangeError) and e.error == "invalid_grant":
            flow.abandon_authorization(session)

        logger.log_error(
            e.error,
            e.description,
            {"status_code": e.status_code, "error_class": type(e).__name__}
        )
        return _error_redirect(e.error)

    session = _rotate_session(request, session)
    session.set(USER_SESSION_KEY, identity.model_dump())

    logger.log_oauth_message(
        ComponentType.WEB_APP, ComponentType.USER_BROWSER,
        "Authentication Successful",
        {
            "sub": identity.sub,
            "email": identity.email,
            "redirect": "/dashboard"
        }
    )
    return RedirectResponse("/dashboard", status_code=302)


@router.get("/dashboard")
async def dashboard(request: Request):
    user = get_current_user(request)
    if user is None:
        return RedirectResponse("/login", status_code=302)

    identity = AuthenticatedIdentity.model_validate(user)
    return {
        "page": "dashboard",
        "welcome": f"Welcome, {identity.display_name}",
        "user": user
    }


@router.get("/profile")
async def profile(request: Request):
    user = get_current_user(request)
    if user is None:
        return RedirectResponse("/login", status_code=302)

    identity = AuthenticatedIdentity.model_validate(user)
    return {
        "page": "profile",
        "sub": identity.sub,
        "email": identity.email,
        "name": identity.name,
        "preferred_username": identity.preferred_username,
        "claims": identity.claims
    }


@router.get("/logout")
async def logout(request: Request, flow: AuthorizationFlow = Depends(get_flow)):
    """
    Sign out locally, then send the browser to Keycloak's end-session
    endpoint so the single sign-on session is closed as well.
    """
    store: SessionStore = request.app.state.session_store
    store.destroy(request.session.get(SESSION_ID_KEY))
    request.session.clear()

    logout_url = flow.build_logout_url()

    logger.log_oauth_message(
        ComponentType.WEB_APP, ComponentType.KEYCLOAK,
        "Logout Redirect",
        {"local_session_destroyed": True, "logout_url": logout_url}
    )
    return RedirectResponse(logout_url, status_code=302)


@router.get("/error")
async def auth_error(reason: Optional[str] = None):
    return JSONResponse(
        status_code=401,
        content={
            "error": "authentication_failed",
            "message": "Authentication failed",
            "reason": reason
        }
    )


@router.get("/api/protected")
async def protected_resource(request: Request):
    """Demonstrate a JSON resource that requires a signed-in user."""
    user = get_current_user(request)
    if user is None:
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    return {
        "message": "This is a protected resource",
        "user": user,
        "timestamp": _now()
    }


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "OK", "timestamp": _now()}


def create_app(settings: Optional[KeycloakSettings] = None,
               flow: Optional[AuthorizationFlow] = None,
               session_store: Optional[SessionStore] = None) -> FastAPI:
    """
    Build the web application.

    Args:
        settings: Keycloak settings (read from the environment if omitted)
        flow: Authorization flow (built from settings if omitted)
        session_store: Server-side session store (in-memory if omitted)

    Returns:
        FastAPI: Configured application
    """
    if settings is None:
        settings = KeycloakSettings.from_env()

    https = settings.app_base_url.startswith("https://")

    app = FastAPI(
        title="Keycloak PKCE Web Application",
        description="OAuth 2.0 authorization code flow with PKCE against Keycloak",
        version="1.0.0"
    )
    app.state.settings = settings
    app.state.flow = flow or AuthorizationFlow(settings)
    app.state.session_store = session_store or SessionStore(ttl_seconds=settings.session_max_age)

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=SESSION_COOKIE_NAME,
        max_age=settings.session_max_age,
        same_site="lax",
        https_only=https
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        """Add security headers to all HTTP responses."""
        response = await call_next(request)
        for header_name, header_value in SecurityHeaders.get_oauth_security_headers(https).items():
            response.headers[header_name] = header_value
        return response

    app.include_router(router)
    return app


def main():
    """Load .env, validate configuration and serve the application."""
    import uvicorn

    load_dotenv()

    try:
        settings = KeycloakSettings.from_env()
    except ConfigurationError as e:
        logger.log_error(
            "configuration_error",
            str(e),
            {"required_variables": ", ".join(REQUIRED_ENV_VARS)}
        )
        print("Please check your .env file and ensure all required variables are set and valid.")
        sys.exit(1)

    logger.log_startup(settings.port, {
        "keycloak_url": settings.keycloak_url,
        "realm": settings.keycloak_realm,
        "client_id": settings.client_id,
        "redirect_uri": settings.redirect_uri,
        "environment": os.getenv("APP_ENV", "development")
    })

    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
