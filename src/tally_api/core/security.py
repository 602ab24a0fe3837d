"""JWT tokens, password hashing, one-time codes and secret comparison.

Uses PyJWT for JWT operations and passlib with bcrypt for password hashing.
Declaration tokens are signed with the shared results secret rather than the
session key, so rotating that secret revokes every outstanding token.
"""

import hashlib
import hmac
import secrets
import uuid
from datetime import UTC, datetime, timedelta

import jwt
from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

DECLARATION_TOKEN_PURPOSE = "results-declaration"
OTP_LENGTH = 6


def hash_password(password: str) -> str:
    """Hash a plaintext password using bcrypt.

    Args:
        password: The plaintext password to hash.

    Returns:
        The bcrypt-hashed password string.
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against a bcrypt hash.

    Args:
        plain_password: The plaintext password to verify.
        hashed_password: The bcrypt hash to verify against.

    Returns:
        True if the password matches, False otherwise.
    """
    return pwd_context.verify(plain_password, hashed_password)


def secrets_match(provided: str, expected: str) -> bool:
    """Compare two secrets in constant time."""
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def create_access_token(
    subject: str,
    role: str,
    secret_key: str,
    algorithm: str = "HS256",
    expires_minutes: int = 30,
) -> str:
    """Create a JWT access token.

    Args:
        subject: The token subject (typically username).
        role: The user's role.
        secret_key: Secret key for signing.
        algorithm: JWT signing algorithm.
        expires_minutes: Token expiration in minutes.

    Returns:
        The encoded JWT string.
    """
    expire = datetime.now(UTC) + timedelta(minutes=expires_minutes)
    payload = {
        "sub": subject,
        "role": role,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def create_refresh_token(
    subject: str,
    secret_key: str,
    algorithm: str = "HS256",
    expires_days: int = 7,
) -> str:
    """Create a JWT refresh token.

    Args:
        subject: The token subject (typically username).
        secret_key: Secret key for signing.
        algorithm: JWT signing algorithm.
        expires_days: Token expiration in days.

    Returns:
        The encoded JWT string.
    """
    expire = datetime.now(UTC) + timedelta(days=expires_days)
    payload = {
        "sub": subject,
        "exp": expire,
        "type": "refresh",
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def decode_token(
    token: str,
    secret_key: str,
    algorithm: str = "HS256",
) -> dict:
    """Decode and validate a JWT token.

    Args:
        token: The JWT string to decode.
        secret_key: Secret key used for signing.
        algorithm: JWT signing algorithm.

    Returns:
        The decoded token payload.

    Raises:
        jwt.ExpiredSignatureError: If the token has expired.
        jwt.InvalidTokenError: If the token is invalid.
    """
    return jwt.decode(token, secret_key, algorithms=[algorithm])


def create_declaration_token(
    challenge_id: uuid.UUID,
    token_id: str,
    secret: str,
    expires_minutes: int = 120,
) -> str:
    """Create the capability token that authorizes declare/revoke.

    Args:
        challenge_id: The completed declaration challenge.
        token_id: Unique token identifier recorded on the challenge.
        secret: The shared declaration secret used to start the challenge.
        expires_minutes: Token lifetime in minutes.

    Returns:
        The encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "purpose": DECLARATION_TOKEN_PURPOSE,
        "cid": str(challenge_id),
        "jti": token_id,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def decode_declaration_token(token: str, secret: str) -> dict:
    """Decode a declaration token and check its purpose.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or minted
            for another purpose.
    """
    payload = jwt.decode(token, secret, algorithms=["HS256"], options={"require": ["exp", "jti"]})
    if payload.get("purpose") != DECLARATION_TOKEN_PURPOSE:
        msg = "Token was not issued for results declaration"
        raise jwt.InvalidTokenError(msg)
    return payload


def generate_otp_code() -> str:
    """Generate a uniformly random six-digit one-time code."""
    return f"{secrets.randbelow(10**OTP_LENGTH):0{OTP_LENGTH}d}"


def hash_otp_code(code: str) -> str:
    """Digest a one-time code for storage."""
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


def is_well_formed_otp(code: str) -> bool:
    """Return True when ``code`` is exactly six ASCII digits."""
    return len(code) == OTP_LENGTH and code.isascii() and code.isdigit()
