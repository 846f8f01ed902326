import logging
import os
from datetime import datetime, timedelta

from passlib.context import CryptContext
from jose import JWTError, jwt
from google.oauth2 import id_token as google_id_token
from google.auth.transport import requests as google_requests
from starlette.concurrency import run_in_threadpool

from rescue_hub.shared.errors import AuthError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
ALGORITHM = "HS256"
USER_TYPES = ("user", "volunteer", "admin")
SELF_REGISTER_TYPES = ("user", "volunteer")


def _jwt_secret() -> str:
    secret = os.getenv("JWT_SECRET")
    if not secret:
        logger.error("JWT_SECRET environment variable is not set.")
        raise RuntimeError("JWT_SECRET environment variable is not set.")
    return secret


def hash_password(password: str) -> str:
    """Hash password using bcrypt"""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash"""
    result = pwd_context.verify(plain_password, hashed_password)
    logger.debug(f"Password verification result: {result}")
    return result


def create_access_token(user_id, expires_delta: timedelta = None) -> str:
    """Create JWT carrying the user id"""
    if expires_delta is None:
        expires_delta = timedelta(days=int(os.getenv("JWT_EXPIRE_DAYS", "30")))
    expire = datetime.utcnow() + expires_delta
    token = jwt.encode({"sub": str(user_id), "exp": expire}, _jwt_secret(), algorithm=ALGORITHM)
    logger.debug(f"Access token created for {user_id}. Expires at: {expire}")
    return token


def decode_token(token: str) -> dict:
    """Decode JWT token, returning None when invalid or expired"""
    try:
        return jwt.decode(token, _jwt_secret(), algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"Failed to decode token: {e}")
        return None


async def verify_google_credential(credential: str) -> dict:
    """
    Verify a Google Sign-In ID token and return its claims
    (email, name, picture, sub).
    """
    client_id = os.getenv("GOOGLE_CLIENT_ID")
    if not client_id:
        logger.error("GOOGLE_CLIENT_ID is not set in environment variables")
        raise RuntimeError("Server configuration error: Google Client ID not set")
    try:
        return await run_in_threadpool(
            google_id_token.verify_oauth2_token,
            credential,
            google_requests.Request(),
            client_id,
        )
    except ValueError as e:
        logger.warning(f"Google token verification failed: {e}")
        raise AuthError(f"Google authentication failed: {e}")
