"""
Unit tests for the colored OAuth logger.

Tests message formatting, sanitization of secrets and tokens, and the
PKCE/error helpers used throughout the flow.
"""

import logging
from unittest.mock import patch

import pytest

from keycloak_pkce.shared.logging_utils import (
    ComponentType,
    OAuthLogger,
    PKCEEvent,
    sanitize_log_data
)


def _printed(mock_print) -> str:
    return " ".join(str(call) for call in mock_print.call_args_list)


class TestSanitizeLogData:
    """Test cases for sanitize_log_data."""

    def test_secrets_are_redacted(self):
        sanitized = sanitize_log_data({
            "client_id": "web-app",
            "client_secret": "very_secret",
            "password": "hunter2",
            "Authorization": "Bearer abcdefghijklmnop",
            "cookie": "oauth-session=abc"
        })

        assert sanitized == {
            "client_id": "web-app",
            "client_secret": "[REDACTED]",
            "password": "[REDACTED]",
            "Authorization": "[REDACTED]",
            "cookie": "[REDACTED]"
        }

    def test_tokens_and_pkce_values_are_truncated(self):
        sanitized = sanitize_log_data({
            "access_token": "very_long_access_token_string_here",
            "code": "auth_code_123456789",
            "code_challenge": "challenge_string_here",
            "code_verifier": "verifier_string_here",
            "session_id": "session_identifier_value",
            "short_token": "short",
            "expires_in": 300
        })

        assert sanitized["access_token"] == "very_long_..."
        assert sanitized["code"] == "auth_code_..."
        assert sanitized["code_challenge"] == "challenge_..."
        assert sanitized["code_verifier"] == "verifier_s..."
        assert sanitized["session_id"] == "session_id..."
        assert sanitized["short_token"] == "short"
        assert sanitized["expires_in"] == 300

    def test_authorization_url_is_not_redacted(self):
        url = "http://localhost:8080/realms/demo/protocol/openid-connect/auth"

        assert sanitize_log_data({"authorization_endpoint": url}) == {"authorization_endpoint": url}

    def test_input_is_not_modified(self):
        data = {"client_secret": "very_secret"}

        sanitize_log_data(data)

        assert data == {"client_secret": "very_secret"}


class TestOAuthLogger:
    """Test cases for OAuthLogger class."""

    @pytest.mark.parametrize("component", ["web-app", "Web-App", ComponentType.WEB_APP])
    def test_component_name_normalized(self, component):
        logger = OAuthLogger(component)

        assert logger.component_name == "WEB-APP"
        assert logger.logger.name == "oauth.web-app"
        assert isinstance(logger.logger, logging.Logger)

    @patch('builtins.print')
    def test_log_oauth_message(self, mock_print):
        logger = OAuthLogger(ComponentType.WEB_APP)

        logger.log_oauth_message(
            ComponentType.WEB_APP, ComponentType.KEYCLOAK,
            "Token Exchange Request",
            {"client_id": "web-app", "client_secret": "top-secret-value"}
        )

        logged = _printed(mock_print)
        assert "WEB-APP" in logged
        assert "KEYCLOAK" in logged
        assert "Token Exchange Request" in logged
        assert "[REDACTED]" in logged
        assert "top-secret-value" not in logged

    @patch('builtins.print')
    def test_log_oauth_message_mirrors_to_logging(self, mock_print):
        logger = OAuthLogger(ComponentType.SESSION_STORE)

        with patch.object(logger.logger, "debug") as mock_debug:
            logger.log_oauth_message("SESSION-STORE", "WEB-APP", "Session Created",
                                     {"session_id": "abcdefghijklmnop"})

        args = mock_debug.call_args[0]
        assert args[1:4] == ("SESSION-STORE", "WEB-APP", "Session Created")
        assert args[4] == {"session_id": "abcdefghij..."}

    @patch('builtins.print')
    def test_log_pkce_operation(self, mock_print):
        logger = OAuthLogger(ComponentType.WEB_APP)

        logger.log_pkce_operation(PKCEEvent.GENERATION, {
            "code_challenge": "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
        })

        logged = _printed(mock_print)
        assert "PKCE-GENERATION" in logged
        assert "E9Melhoa2O..." in logged
        assert "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM" not in logged

    @patch('builtins.print')
    def test_log_error_forwards_to_logging(self, mock_print):
        logger = OAuthLogger(ComponentType.WEB_APP)

        with patch.object(logger.logger, "warning") as mock_warning:
            logger.log_error("invalid_grant", "Code not valid", {"status_code": 400})

        logged = _printed(mock_print)
        assert "ERROR" in logged
        assert "invalid_grant" in logged
        assert "400" in logged
        mock_warning.assert_called_once_with("%s: %s", "invalid_grant", "Code not valid")

    @patch('builtins.print')
    def test_log_startup(self, mock_print):
        logger = OAuthLogger(ComponentType.WEB_APP)

        logger.log_startup(3000, {"realm": "demo", "client_secret": "nope"})

        logged = _printed(mock_print)
        assert "3000" in logged
        assert "demo" in logged
        assert "nope" not in logged
