import logging
import secrets
from uuid import uuid4

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from rescue_hub.auth.models import UserRegister, UserLogin, GoogleLogin, FcmTokenUpdate
from rescue_hub.auth.utils import (
    SELF_REGISTER_TYPES,
    hash_password,
    verify_password,
    decode_token,
    create_access_token,
    verify_google_credential,
)
from rescue_hub.shared.db import Database, get_db
from rescue_hub.shared.errors import AuthError, ForbiddenError, ConflictError, NotFoundError, ValidationError
from rescue_hub.shared.response import success_response
from rescue_hub.shared.utils import parse_uuid

logger = logging.getLogger("auth.manager")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

USER_COLUMNS = """
    id, name, email, user_type, is_available, fcm_token, contact_number,
    google_id, profile_picture, created_at
"""


def serialize_user(row) -> dict:
    """Public view of a user row (never includes the password hash)"""
    return {
        "id": row["id"],
        "name": row["name"],
        "email": row["email"],
        "userType": row["user_type"],
        "isAvailable": row["is_available"],
        "contactNumber": row["contact_number"],
        "profilePicture": row.get("profile_picture"),
        "createdAt": row["created_at"],
    }


def _auth_payload(row) -> dict:
    data = serialize_user(row)
    data["token"] = create_access_token(row["id"])
    return data


async def register_user(user: UserRegister, db: Database):
    """Register a new user"""
    if not user.name or not user.email or not user.password:
        raise ValidationError("Please fill all required fields")
    user_type = user.user_type or "user"
    if user_type not in SELF_REGISTER_TYPES:
        raise ValidationError(f"Invalid user type: {user_type}")

    email = user.email.strip().lower()
    logger.info(f"Attempting to register user: {email}")
    # The unique email index decides duplicates, including concurrent registrations
    result = await db.execute_query(
        f"""
        INSERT INTO users (id, name, email, password_hash, user_type, contact_number, created_at)
        VALUES ($1, $2, $3, $4, $5, $6, NOW())
        ON CONFLICT (email) DO NOTHING
        RETURNING {USER_COLUMNS}
        """,
        (uuid4(), user.name.strip(), email, hash_password(user.password), user_type, user.contact_number),
        fetch_one=True
    )
    if not result:
        logger.warning(f"Registration failed: {email} already exists")
        raise ConflictError("User already exists")
    logger.info(f"User registered successfully: {result['email']} (id: {result['id']})")
    return success_response(_auth_payload(result), "User registered successfully", status_code=201)


async def login_user(user: UserLogin, db: Database):
    """Authenticate user and return JWT and user data"""
    if not user.email or not user.password:
        raise ValidationError("Please provide email and password")

    email = user.email.strip().lower()
    logger.info(f"Attempting login for user: {email}")
    result = await db.execute_query(
        f"SELECT {USER_COLUMNS}, password_hash FROM users WHERE email = $1",
        (email,),
        fetch_one=True
    )
    if not result or not verify_password(user.password, result["password_hash"]):
        logger.warning(f"Login failed: invalid credentials for '{email}'")
        raise AuthError("Invalid credentials")
    if user.user_type and result["user_type"] != user.user_type:
        raise AuthError(f"This account is registered as {result['user_type']}, not {user.user_type}")

    logger.info(f"User '{email}' authenticated successfully")
    return success_response(_auth_payload(result), "Login successful")


async def google_login(body: GoogleLogin, db: Database):
    """Sign in with a Google ID token, linking or creating the account"""
    if not body.credential:
        raise ValidationError("No credential provided")

    claims = await verify_google_credential(body.credential)
    email = claims["email"].lower()
    logger.info(f"Google token verified for {email}")

    existing = await db.execute_query(
        f"SELECT {USER_COLUMNS} FROM users WHERE email = $1",
        (email,),
        fetch_one=True
    )
    if existing:
        result = await db.execute_query(
            f"""
            UPDATE users
            SET google_id = COALESCE(google_id, $2),
                profile_picture = COALESCE(profile_picture, $3)
            WHERE id = $1
            RETURNING {USER_COLUMNS}
            """,
            (existing["id"], claims.get("sub"), claims.get("picture")),
            fetch_one=True
        )
    else:
        user_type = body.user_type or "user"
        if user_type not in SELF_REGISTER_TYPES:
            raise ValidationError(f"Invalid user type: {user_type}")
        logger.info(f"Creating new account for Google user {email}")
        result = await db.execute_query(
            f"""
            INSERT INTO users (id, name, email, password_hash, user_type, google_id, profile_picture, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, NOW())
            RETURNING {USER_COLUMNS}
            """,
            (
                uuid4(),
                claims.get("name") or email,
                email,
                hash_password(secrets.token_urlsafe(16)),
                user_type,
                claims.get("sub"),
                claims.get("picture"),
            ),
            fetch_one=True
        )
    return success_response(_auth_payload(result), "Google authentication successful")


async def get_current_user(token: str = Depends(oauth2_scheme), db: Database = Depends(get_db)) -> dict:
    """Resolve the bearer token to the stored user"""
    if not token:
        raise AuthError("Not authorized, no token")
    payload = decode_token(token)
    if not payload or "sub" not in payload:
        raise AuthError("Not authorized, token failed")

    user_id = parse_uuid(payload["sub"], "token subject")
    result = await db.execute_query(f"SELECT {USER_COLUMNS} FROM users WHERE id = $1", (user_id,), fetch_one=True)
    if not result:
        logger.warning(f"User not found for id: {user_id}")
        raise AuthError("User not found")
    return dict(result)


async def require_volunteer_or_admin(current_user: dict = Depends(get_current_user)) -> dict:
    if current_user["user_type"] not in ("volunteer", "admin"):
        logger.warning(f"Volunteer/admin route denied for user {current_user['id']}")
        raise ForbiddenError("Access denied. Volunteers or Admins only.")
    return current_user


async def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    if current_user["user_type"] != "admin":
        logger.warning(f"Admin route denied for user {current_user['id']}")
        raise ForbiddenError("Access denied. Admin only.")
    return current_user


async def save_fcm_token(body: FcmTokenUpdate, current_user: dict, db: Database):
    """Store the device push token for the current user"""
    if not body.fcm_token:
        raise ValidationError("FCM token is required")
    result = await db.execute_query(
        "UPDATE users SET fcm_token = $2 WHERE id = $1 RETURNING id",
        (current_user["id"], body.fcm_token),
        fetch_one=True
    )
    if not result:
        raise NotFoundError("User not found")
    logger.info(f"FCM token saved for user {current_user['id']}")
    return success_response(None, "FCM token saved successfully")
