from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class UserUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    user_type: Optional[str] = Field(None, alias="userType")
    is_available: Optional[bool] = Field(None, alias="isAvailable")
    contact_number: Optional[str] = Field(None, alias="contactNumber")
