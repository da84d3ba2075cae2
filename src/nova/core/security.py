"""
Security module for NOVA

Password hashing, session tokens, security headers and input validation.
"""

import hashlib
import re
import secrets
from typing import Optional

import structlog
from fastapi import HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

from nova.core.config import config

logger = structlog.get_logger()

# Shared rate limiter; main.py registers it on app.state
limiter = Limiter(key_func=get_remote_address, enabled=config.RATE_LIMIT_ENABLED)

# Session token configuration
SESSION_TOKEN_LENGTH = 32

# PBKDF2 parameters
PASSWORD_HASH_ALGORITHM = "pbkdf2_sha256"
PASSWORD_HASH_ITERATIONS = 260_000
PASSWORD_SALT_BYTES = 16
MIN_PASSWORD_LENGTH = 6


def hash_password(password: str, iterations: int = PASSWORD_HASH_ITERATIONS) -> str:
    """
    Hash a password with a random salt

    Returns:
        Encoded hash: ``pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>``
    """
    salt = secrets.token_bytes(PASSWORD_SALT_BYTES)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return f"{PASSWORD_HASH_ALGORITHM}${iterations}${salt.hex()}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    """Check a password against an encoded hash in constant time"""
    try:
        algorithm, iterations, salt_hex, digest_hex = encoded.split("$")
        if algorithm != PASSWORD_HASH_ALGORITHM:
            return False
        digest = hashlib.pbkdf2_hmac(
            "sha256",
            password.encode("utf-8"),
            bytes.fromhex(salt_hex),
            int(iterations),
        )
    except (ValueError, AttributeError):
        logger.warning("security.malformed_hash")
        return False

    return secrets.compare_digest(digest.hex(), digest_hex)


def generate_session_token() -> str:
    """
    Generate a cryptographically secure session token

    Returns:
        Random token string suitable for the session cookie
    """
    return secrets.token_urlsafe(SESSION_TOKEN_LENGTH)


class SecurityConfig:
    """Security configuration and utilities"""

    # Rate limiting
    DEFAULT_RATE_LIMIT = "60/minute"
    AUTH_RATE_LIMIT = "10/minute"
    ASK_RATE_LIMIT = "30/minute"
    UPLOAD_RATE_LIMIT = "10/minute"

    # Allowed image extensions (whitelist)
    ALLOWED_IMAGE_EXTENSIONS = {'.png', '.jpg', '.jpeg', '.gif', '.webp'}

    # Allowed MIME types (strict)
    ALLOWED_IMAGE_MIME_TYPES = {
        'image/png',
        'image/jpeg', 'image/jpg',
        'image/gif',
        'image/webp',
    }

    @staticmethod
    def is_production() -> bool:
        """Check if running in production environment"""
        return config.ENV.lower() == "production"

    @staticmethod
    def require_https() -> bool:
        """Check if HTTPS should be enforced"""
        return SecurityConfig.is_production()


def get_security_headers() -> dict:
    """
    Get recommended security headers for HTTP responses

    Returns:
        Dictionary of security headers
    """
    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        # The client loads avatar images from the image host
        "Content-Security-Policy": "default-src 'self'; img-src 'self' https: data:",
    }

    if SecurityConfig.require_https():
        headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    return headers


def validate_input_string(value: Optional[str], field_name: str, max_length: int = 255) -> str:
    """
    Validate and sanitize input string

    Args:
        value: Input string to validate
        field_name: Field name for error messages
        max_length: Maximum allowed length

    Returns:
        Validated and stripped string

    Raises:
        HTTPException: If validation fails
    """
    if not value or not value.strip():
        raise HTTPException(
            status_code=400,
            detail=f"{field_name} cannot be empty"
        )

    value = value.strip()

    if len(value) > max_length:
        raise HTTPException(
            status_code=400,
            detail=f"{field_name} exceeds maximum length of {max_length} characters"
        )

    # Basic XSS prevention - reject HTML tags
    if '<' in value or '>' in value:
        raise HTTPException(
            status_code=400,
            detail=f"{field_name} contains invalid characters"
        )

    return value


def safe_error_response(error_message: str, include_detail: bool = False) -> str:
    """
    Create safe error response that doesn't leak sensitive information

    Args:
        error_message: Original error message
        include_detail: Whether to include detailed error (dev mode only)

    Returns:
        Sanitized error message
    """
    if SecurityConfig.is_production() and not include_detail:
        return "An error occurred while processing your request"

    safe_message = error_message

    # Remove file system paths
    safe_message = re.sub(r'/[a-zA-Z0-9/_-]+', '/[path-hidden]', safe_message)

    # Remove potential secrets (anything that looks like a key)
    safe_message = re.sub(r'[a-zA-Z0-9]{20,}', '[key-hidden]', safe_message)

    return safe_message
