from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Union, List, Any


class LocationInput(BaseModel):
    coordinates: Optional[List[Any]] = None
    address: Optional[str] = None


class EmergencyCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    emergency_type: Optional[str] = Field(None, alias="emergencyType")
    description: Optional[str] = None
    urgency: Optional[str] = "medium"
    location: Optional[Union[str, LocationInput]] = None
    contact_number: Optional[str] = Field(None, alias="contactNumber")


class StatusUpdate(BaseModel):
    status: Optional[str] = None


class NoteCreate(BaseModel):
    text: Optional[str] = None
