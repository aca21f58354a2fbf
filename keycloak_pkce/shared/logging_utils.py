"""
Colored console logging for the Keycloak PKCE web application.

Each hop of the authorization flow (browser, web app, Keycloak, session
store) is printed as a colored block with a timestamp and a
source → destination arrow, so the flow can be followed while the app runs.
Payloads pass through sanitize_log_data first. Every block is mirrored to
the standard ``logging`` hierarchy under ``oauth.<component>``.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from colorama import Fore, Style, init

init(autoreset=True)


class ComponentType(str, Enum):
    """Components that take part in the authorization flow."""
    WEB_APP = "WEB-APP"
    KEYCLOAK = "KEYCLOAK"
    USER_BROWSER = "USER-BROWSER"
    SESSION_STORE = "SESSION-STORE"


class PKCEEvent(str, Enum):
    """Lifecycle events of a session's PKCE pair."""
    GENERATION = "PKCE-GENERATION"
    REUSE = "PKCE-REUSE"
    CONSUMPTION = "PKCE-CONSUMPTION"


Component = Union[ComponentType, str]

COMPONENT_COLORS = {
    ComponentType.WEB_APP.value: Fore.BLUE + Style.BRIGHT,
    ComponentType.KEYCLOAK.value: Fore.GREEN + Style.BRIGHT,
    ComponentType.USER_BROWSER.value: Fore.YELLOW + Style.BRIGHT,
    ComponentType.SESSION_STORE.value: Fore.CYAN + Style.BRIGHT,
}
ERROR_COLOR = Fore.RED + Style.BRIGHT
SUCCESS_COLOR = Fore.GREEN + Style.BRIGHT
DETAIL_COLOR = Fore.CYAN
SEPARATOR = Style.DIM + "-" * 60 + Style.RESET_ALL

# Matched as substrings of the lower-cased key, except REDACTED_HEADERS
# which must match exactly (authorization_endpoint is not a secret).
SENSITIVE_KEYS = ('password', 'secret', 'cookie')
REDACTED_HEADERS = ('authorization',)
TRUNCATED_KEYS = ('token', 'code', 'challenge', 'verifier', 'session_id')
TRUNCATE_AT = 10


def sanitize_log_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Make a payload safe to print.

    Secrets, cookies and Authorization headers are replaced with
    ``[REDACTED]``; tokens, codes, PKCE values and session ids are cut to
    their first ten characters.
    """
    sanitized = {}
    for key, value in data.items():
        name = key.lower()
        if name in REDACTED_HEADERS or any(word in name for word in SENSITIVE_KEYS):
            value = '[REDACTED]'
        elif (any(word in name for word in TRUNCATED_KEYS)
              and isinstance(value, str) and len(value) > TRUNCATE_AT):
            value = f"{value[:TRUNCATE_AT]}..."
        sanitized[key] = value
    return sanitized


def _component_name(component: Component) -> str:
    return getattr(component, "value", component).upper()


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


class OAuthLogger:
    """
    Console logger bound to one component of the flow.

    Usage:
        logger = OAuthLogger(ComponentType.WEB_APP)
        logger.log_oauth_message(ComponentType.WEB_APP, ComponentType.KEYCLOAK,
                                 "Token Exchange Request", {"code": code})
    """

    def __init__(self, component: Component):
        self.component_name = _component_name(component)
        self.logger = logging.getLogger(f"oauth.{self.component_name.lower()}")

    @staticmethod
    def _emit(lines: List[str]):
        for line in lines:
            print(line)
        print()

    @staticmethod
    def _detail_lines(data: Dict[str, Any], indent: str = "  ") -> List[str]:
        return [
            f"{indent}{DETAIL_COLOR}{key}:{Style.RESET_ALL} {value}"
            for key, value in sanitize_log_data(data).items()
        ]

    def log_oauth_message(self,
                          source: Component,
                          destination: Component,
                          message_type: str,
                          data: Dict[str, Any],
                          success: bool = True):
        """
        Print one message travelling between two components.

        Args:
            source: Sending component
            destination: Receiving component
            message_type: Short title, e.g. "Token Exchange Request"
            data: Message payload (sanitized before printing)
            success: False prints the title in the error color
        """
        source, destination = _component_name(source), _component_name(destination)
        title_color = DETAIL_COLOR if success else ERROR_COLOR

        lines = [
            f"{Style.BRIGHT}[{_timestamp()}] "
            f"{COMPONENT_COLORS.get(source, DETAIL_COLOR)}{source}{Style.RESET_ALL} → "
            f"{COMPONENT_COLORS.get(destination, DETAIL_COLOR)}{destination}{Style.RESET_ALL}",
            f"{title_color}{message_type}:{Style.RESET_ALL}",
        ]
        lines.extend(self._detail_lines(data))
        lines.append(SEPARATOR)
        self._emit(lines)

        self.logger.debug("%s -> %s %s %s", source, destination, message_type,
                          sanitize_log_data(data))

    def log_pkce_operation(self,
                           event: PKCEEvent,
                           details: Dict[str, Any],
                           success: bool = True):
        """Log a PKCE lifecycle event of the current component."""
        self.log_oauth_message(
            self.component_name, self.component_name,
            PKCEEvent(event).value, details, success
        )

    def log_error(self,
                  error_type: str,
                  message: str,
                  details: Optional[Dict[str, Any]] = None):
        """
        Log an error with its context.

        Printed like any other message (addressed to ERROR-HANDLER) and
        forwarded to ``logging`` at WARNING level.
        """
        self.log_oauth_message(
            self.component_name, "ERROR-HANDLER", "ERROR",
            {"error_type": error_type, "message": message, **(details or {})},
            success=False
        )
        self.logger.warning("%s: %s", error_type, message)

    def log_startup(self, port: int, details: Optional[Dict[str, Any]] = None):
        """Print the startup banner with the (sanitized) effective settings."""
        lines = [f"{SUCCESS_COLOR}🚀 {self.component_name} started on port {port}{Style.RESET_ALL}"]
        lines.extend(self._detail_lines(details or {}, indent="   "))
        lines.append(SEPARATOR)
        self._emit(lines)
        self.logger.info("%s started on port %s", self.component_name, port)
