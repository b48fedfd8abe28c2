"""
Pydantic schemas for actors.
"""
from typing import List
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from gatekeeper.features.permissions.schemas import RoleResponse


class UserCreate(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)
    user_type: str = Field("user", min_length=1, max_length=50)


class UserTypeUpdate(BaseModel):
    user_type: str = Field(..., min_length=1, max_length=50)


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    user_type: str
    is_active: bool
    roles: List[RoleResponse] = []

    model_config = ConfigDict(from_attributes=True)
