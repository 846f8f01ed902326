from fastapi import APIRouter, Depends
from .models import UserRegister, UserLogin, GoogleLogin, FcmTokenUpdate
from .manager import register_user, login_user, google_login, get_current_user, save_fcm_token, serialize_user
from rescue_hub.shared.db import Database, get_db
from rescue_hub.shared.response import success_response

router = APIRouter()


@router.post("/register")
async def register(user: UserRegister, db: Database = Depends(get_db)):
    """Register new user"""
    return await register_user(user, db)


@router.post("/login")
async def login(user: UserLogin, db: Database = Depends(get_db)):
    """Authenticate user"""
    return await login_user(user, db)


@router.post("/google")
async def google(body: GoogleLogin, db: Database = Depends(get_db)):
    """Sign in with Google"""
    return await google_login(body, db)


@router.get("/me")
async def get_me(current_user: dict = Depends(get_current_user)):
    """Get current user details"""
    return success_response(serialize_user(current_user), "User details retrieved")


@router.post("/fcm-token")
async def fcm_token(body: FcmTokenUpdate, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    """Register the device push token for the current user"""
    return await save_fcm_token(body, current_user, db)
