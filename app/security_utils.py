"""
Security Utilities
Password hashing, session/mobile tokens, credential encryption and input sanitization
"""

import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Any, Optional

# Input sanitization
import bleach
from cryptography.fernet import Fernet, InvalidToken

# Token generation and validation
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from jose import JWTError
from jose import jwt as jose_jwt

# Password hashing
from passlib.context import CryptContext

from .config import CREDENTIALS_ENCRYPTION_KEY, SECRET_KEY

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
SESSION_SALT = "session"

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# ============================================================================
# PASSWORD SECURITY
# ============================================================================


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify password against bcrypt hash"""
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception as e:
        logger.error(f"Password verification error: {e}")
        return False


# ============================================================================
# TOKEN GENERATION & VALIDATION
# ============================================================================


def create_session_token(user_id: int) -> str:
    """Signed, timestamped value stored in the web session cookie"""
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    return serializer.dumps({"uid": user_id}, salt=SESSION_SALT)


def verify_session_token(token: str, max_age: int) -> Optional[int]:
    """
    Verify a session cookie value.

    Returns:
        The user id if valid, None if invalid or expired
    """
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    try:
        data = serializer.loads(token, salt=SESSION_SALT, max_age=max_age)
    except SignatureExpired:
        logger.info("Session token expired")
        return None
    except BadSignature:
        logger.warning("Invalid session token signature")
        return None
    return data.get("uid") if isinstance(data, dict) else None


def create_jwt_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT token

    Args:
        data: Data to encode in the token
        expires_delta: Token expiration time (default 15 minutes)
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=15)

    to_encode.update({"exp": expire})
    return jose_jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_jwt_token(token: str) -> Optional[dict[str, Any]]:
    """
    Verify and decode a JWT token

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    try:
        return jose_jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None


def generate_random_code(length: int) -> str:
    """Uppercase alphanumeric code from a CSPRNG"""
    alphabet = string.ascii_uppercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


# ============================================================================
# CREDENTIAL ENCRYPTION
# ============================================================================


def _get_fernet() -> Fernet:
    if CREDENTIALS_ENCRYPTION_KEY:
        return Fernet(CREDENTIALS_ENCRYPTION_KEY.encode())
    # Derive a dev key from SECRET_KEY when no dedicated key is configured
    import base64
    import hashlib

    digest = hashlib.sha256(SECRET_KEY.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_credential(value: str) -> str:
    return _get_fernet().encrypt(value.encode()).decode()


def decrypt_credential(encrypted: str) -> str:
    """Decrypt a stored provider secret. Raises ValueError if it cannot be decrypted."""
    try:
        return _get_fernet().decrypt(encrypted.encode()).decode()
    except InvalidToken as e:
        raise ValueError("Stored credential could not be decrypted") from e


# ============================================================================
# INPUT SANITIZATION
# ============================================================================


def sanitize_text(value: Optional[str]) -> Optional[str]:
    """Strip all HTML from free-text input (notes, message bodies)"""
    if value is None:
        return None
    return bleach.clean(value, tags=[], attributes={}, strip=True).strip()
