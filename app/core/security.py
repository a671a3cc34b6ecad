"""Security related functions."""

import logging

import jwt
from jwt import InvalidTokenError

from app.core.config import Settings, settings as default_settings
from app.exceptions.base import UnauthorizedError

logger = logging.getLogger(__name__)


class TokenVerifier:
    """
    Verifies bearer tokens issued by the authentication provider.

    When ``auth_secret_key`` is configured the token signature and expiry are
    checked with it; otherwise the token is decoded without verification,
    which is only meant for local development and tests.

    :ivar secret_key: The shared secret used to verify JWT signatures.
    :type secret_key: str | None
    :ivar algorithm: The JWT signing algorithm.
    :type algorithm: str
    """

    def __init__(self, config: Settings | None = None):
        config = config or default_settings
        self.secret_key = config.auth_secret_key
        self.algorithm = config.algorithm

    def verify_token(self, token: str) -> dict:
        """
        Decodes the given JSON Web Token and returns its payload.

        :param token: The JWT token to be verified.
        :return: The decoded payload; it always carries a ``sub`` claim.
        :raises UnauthorizedError: If the token is invalid, expired or has no subject.
        """
        try:
            if self.secret_key:
                payload = jwt.decode(
                    token,
                    key=self.secret_key,
                    algorithms=[self.algorithm],
                    options={"verify_aud": False},
                )
            else:
                payload = jwt.decode(
                    token,
                    key="",
                    options={"verify_signature": False, "verify_aud": False, "verify_exp": False},
                )
        except InvalidTokenError as e:
            logger.info(f"Rejected bearer token: {str(e)}")
            raise UnauthorizedError("Invalid authentication token") from e

        if not payload.get("sub"):
            raise UnauthorizedError("Invalid token payload - missing user ID")
        return payload
