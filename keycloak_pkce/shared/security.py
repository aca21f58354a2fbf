"""
HTTP security headers for the web application.
"""

from typing import Dict


class SecurityHeaders:
    """
    Security headers for HTTP responses.

    Provides standard security headers to protect against
    common web vulnerabilities.
    """

    @staticmethod
    def get_oauth_security_headers(https: bool = False) -> Dict[str, str]:
        """
        Get security headers for pages that take part in the login flow.

        Args:
            https: Whether the app is served over HTTPS (adds HSTS)

        Returns:
            dict: Dictionary of security headers
        """
        headers = {
            'X-Content-Type-Options': 'nosniff',
            'X-Frame-Options': 'DENY',
            'X-XSS-Protection': '1; mode=block',
            'Referrer-Policy': 'no-referrer',
            'Cache-Control': 'no-cache, no-store, must-revalidate',
            'Pragma': 'no-cache',
            'Expires': '0'
        }
        if https:
            headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return headers
