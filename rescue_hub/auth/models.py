from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class UserRegister(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    user_type: Optional[str] = Field("user", alias="userType")
    contact_number: Optional[str] = Field(None, alias="contactNumber")


class UserLogin(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    password: Optional[str] = None
    user_type: Optional[str] = Field(None, alias="userType")


class GoogleLogin(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    credential: Optional[str] = None
    user_type: Optional[str] = Field(None, alias="userType")


class FcmTokenUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    fcm_token: Optional[str] = Field(None, alias="fcmToken")
