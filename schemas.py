from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Literal, Optional
import re

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


class SignupSchema(BaseModel):
    model_config = ConfigDict(
        extra='ignore',
        json_schema_extra={
            "example": {
                "email": "client@example.com",
                "password": "correct-horse",
                "name": "Jamie Client"
            }
        }
    )

    email: str = Field(..., min_length=3, max_length=255, description="Login email")
    password: str = Field(..., min_length=8, max_length=128, description="Password must be at least 8 characters")
    name: Optional[str] = Field(None, max_length=120, description="Display name")

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value):
        value = value.strip().lower()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Invalid email format")
        return value

    @field_validator('name')
    @classmethod
    def blank_name_is_none(cls, value):
        return value.strip() if value and value.strip() else None


class UpdateRolesSchema(BaseModel):
    model_config = ConfigDict(extra='forbid')

    # CLIENT is the floor role and cannot be edited here
    action: Literal['add', 'remove']
    role: Literal['COACH', 'ADMIN']


class LoginSchema(BaseModel):
    model_config = ConfigDict(extra='ignore')

    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator('email')
    @classmethod
    def lower_email(cls, value):
        return value.strip().lower()
