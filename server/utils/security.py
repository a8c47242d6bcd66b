# Security helpers (admin JWT, password hashing)

import logging
import jwt
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional
from passlib.context import CryptContext

logger = logging.getLogger(__name__)

TOKEN_ISSUER = "bakery-orders-admin"


class JWTManager:
    """
    Issues and verifies admin bearer tokens.

    Tokens carry admin_id/username plus exp, iat and a fixed issuer; a token
    missing any of those, or minted by another service with the same
    secret, is rejected.
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256",
                 access_token_expire_minutes: int = 720):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_expire_minutes = access_token_expire_minutes

    def create_access_token(self, data: Dict[str, Any]) -> str:
        """
        Args:
            data: claims (admin_id, username)

        Returns:
            encoded JWT
        """
        to_encode = data.copy()

        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
            "iat": now,
            "iss": TOKEN_ISSUER,
        })

        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Decode and verify a token

        Returns:
            claims, or None when expired/invalid
        """
        try:
            return jwt.decode(
                token, self.secret_key, algorithms=[self.algorithm],
                issuer=TOKEN_ISSUER, options={"require": ["exp", "iat", "iss"]}
            )
        except jwt.ExpiredSignatureError:
            logger.debug("Admin token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.debug(f"Admin token rejected: {e}")
            return None


# passlib's bcrypt handler does not load against bcrypt>=5
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)
