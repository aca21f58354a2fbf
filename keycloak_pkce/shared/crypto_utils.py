"""
PKCE (Proof Key for Code Exchange) cryptographic utilities.

This module implements the client side of RFC 7636: secure code verifier
generation and S256 challenge derivation.
"""

import secrets
import hashlib
import base64

from .oauth_models import PKCEParameters, PKCEMethod

# 32 bytes -> 43 characters, 96 bytes -> 128 characters (RFC 7636 section 4.1)
MIN_VERIFIER_BYTES = 32
MAX_VERIFIER_BYTES = 96


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode('ascii').rstrip('=')


class PKCEGenerator:
    """
    PKCE code verifier and challenge generator.

    Only the S256 method is produced; the plain method is never used.
    """

    @staticmethod
    def compute_challenge(verifier: str) -> str:
        """
        Derive the S256 code challenge for a verifier.

        Args:
            verifier: The PKCE code verifier

        Returns:
            str: base64url (no padding) SHA256 digest of the verifier
        """
        return _b64url(hashlib.sha256(verifier.encode('ascii')).digest())

    @staticmethod
    def generate_parameters(num_bytes: int = MIN_VERIFIER_BYTES) -> PKCEParameters:
        """
        Generate the proof material for one authorization attempt.

        Creates a cryptographically secure random code verifier and derives
        the corresponding SHA256 challenge using base64url encoding.

        Args:
            num_bytes: Number of random bytes behind the verifier (32-96)

        Returns:
            PKCEParameters: verifier, challenge and the S256 method

        Raises:
            ValueError: If num_bytes would produce a verifier outside 43-128 chars

        Example:
            params = PKCEGenerator.generate_parameters()
            # params.code_verifier: 43-character base64url string
            # params.code_challenge: SHA256 hash of verifier, base64url encoded
        """
        if not MIN_VERIFIER_BYTES <= num_bytes <= MAX_VERIFIER_BYTES:
            raise ValueError(
                f"num_bytes must be between {MIN_VERIFIER_BYTES} and {MAX_VERIFIER_BYTES}"
            )

        verifier = _b64url(secrets.token_bytes(num_bytes))

        return PKCEParameters(
            code_verifier=verifier,
            code_challenge=PKCEGenerator.compute_challenge(verifier),
            code_challenge_method=PKCEMethod.S256,
        )
