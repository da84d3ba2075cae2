"""
Authentication API

Sign-up, sign-in and logout with an opaque session token. The token travels
in an httponly cookie; an Authorization: Bearer header is accepted too.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from nova.core.config import config
from nova.core.security import (
    MIN_PASSWORD_LENGTH,
    SecurityConfig,
    generate_session_token,
    hash_password,
    limiter,
    validate_input_string,
    verify_password,
)
from nova.models.messages import SignInRequest, SignUpRequest, UserResponse
from nova.services.database import DatabaseService, DuplicateEmailError, get_database_service

logger = structlog.get_logger()

router = APIRouter(prefix="/api/auth", tags=["auth"])

bearer = HTTPBearer(auto_error=False)


def extract_token(request: Request,
                  credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    """Session token from the cookie, falling back to the bearer header"""
    token = request.cookies.get(config.SESSION_COOKIE_NAME)
    if token:
        return token
    if credentials and credentials.credentials:
        return credentials.credentials
    return None


async def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: DatabaseService = Depends(get_database_service),
) -> str:
    """
    Resolve the signed-in user

    Raises:
        HTTPException: 401 when the token is missing, unknown or expired
    """
    token = extract_token(request, credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = await db.get_session_user_id(token)
    if not user_id:
        logger.warning("auth.invalid_token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user_id


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=config.SESSION_COOKIE_NAME,
        value=token,
        max_age=config.SESSION_MAX_AGE_SEC,
        httponly=True,
        samesite="strict",
        secure=config.SESSION_COOKIE_SECURE or SecurityConfig.require_https(),
    )


async def start_session(db: DatabaseService, response: Response, user_id: str) -> None:
    token = generate_session_token()
    await db.create_session(token, user_id, config.SESSION_MAX_AGE_SEC)
    set_session_cookie(response, token)


@router.post("/signup", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(SecurityConfig.AUTH_RATE_LIMIT)
async def sign_up(
    request: Request,
    response: Response,
    body: SignUpRequest,
    db: DatabaseService = Depends(get_database_service),
):
    """Register a user and sign them in"""
    name = validate_input_string(body.name, "Name", max_length=100)
    email = validate_input_string(body.email, "Email", max_length=254).lower()

    if "@" not in email:
        raise HTTPException(status_code=400, detail="Enter a valid email address")
    if len(body.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )

    try:
        password_hash = await run_in_threadpool(hash_password, body.password)
        user = await db.create_user(name, email, password_hash)
    except DuplicateEmailError:
        raise HTTPException(status_code=400, detail="Email already exists")

    await start_session(db, response, user["id"])
    logger.info("auth.signup", user_id=user["id"])
    return UserResponse.from_record(user)


@router.post("/signin", response_model=UserResponse)
@limiter.limit(SecurityConfig.AUTH_RATE_LIMIT)
async def sign_in(
    request: Request,
    response: Response,
    body: SignInRequest,
    db: DatabaseService = Depends(get_database_service),
):
    """Check credentials and start a session"""
    email = validate_input_string(body.email, "Email", max_length=254)

    credentials = await db.get_user_credentials(email)
    if not credentials:
        raise HTTPException(status_code=400, detail="Email does not exist")

    if not await run_in_threadpool(verify_password, body.password, credentials["password_hash"]):
        logger.warning("auth.signin_failed", user_id=credentials["id"])
        raise HTTPException(status_code=400, detail="Incorrect password")

    await start_session(db, response, credentials["id"])
    user = await db.get_user(credentials["id"])
    history = await db.get_history(credentials["id"])

    logger.info("auth.signin", user_id=credentials["id"])
    return UserResponse.from_record(user, history)


@router.get("/logout")
async def log_out(
    request: Request,
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: DatabaseService = Depends(get_database_service),
):
    """End the current session; succeeds even without one"""
    token = extract_token(request, credentials)
    if token:
        await db.delete_session(token)

    response.delete_cookie(config.SESSION_COOKIE_NAME, httponly=True, samesite="strict")
    logger.info("auth.logout", had_session=bool(token))
    return {"message": "Log out successfully"}
