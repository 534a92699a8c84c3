from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: str = Field(min_length=2, max_length=100)


class LoginRequest(BaseModel):
    email: str
    password: str


class TestLoginRequest(BaseModel):
    email: str | None = None


class TokenResponse(BaseModel):
    access_token: str | None = None
    token_type: str = "bearer"


class UserResponse(BaseModel):
    id: int
    email: str
    name: str | None = None
    date_of_birth: datetime | None = None
    gender: str | None = None
    height: float | None = None
    activity_level: str | None = None
    health_goal: str | None = None
    target_weight: float | None = None
    custom_alert_thresholds: dict | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
