from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Literal

from app.utils import normalize_username


class Credentials(BaseModel):
    """
    Username/password pair used by login, registration and password reset
    """
    username: str = Field(..., min_length=1, max_length=255, description="Username")
    password: str = Field(..., min_length=1, description="Plain-text password")

    @field_validator("username")
    @classmethod
    def normalize(cls, value: str) -> str:
        value = normalize_username(value)
        if not value:
            raise ValueError("Username must not be blank")
        return value


class UserCreate(Credentials):
    """
    Schema for registering a new user
    """
    password: str = Field(..., min_length=6, description="Plain-text password")


class User(BaseModel):
    """
    Public identity of a user
    """
    id: int = Field(description="ID of the user")
    username: str = Field(description="Username of the user")
    role: Literal["user", "admin"] = Field(description="Role of the user")

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(User):
    """
    Identity returned on login together with the issued tokens
    """
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RoleInfo(BaseModel):
    """
    Role of the current user
    """
    role: str = Field(description="Role of the user")
    is_admin: bool = Field(description="True for administrators")


class RefreshTokenRequest(BaseModel):
    """
    Schema for exchanging a refresh token
    """
    refresh_token: str = Field(..., description="Refresh token issued at login")


class Profile(BaseModel):
    """
    Profile details of a user
    """
    id: int = Field(description="ID of the user")
    username: str = Field(description="Username of the user")
    role: str = Field(description="Role of the user")
    profile_image: str | None = Field(None, description="Asset reference of the profile image")
    description: str = Field("", description="Free-text description")
    favorite_book_id: int | None = Field(None, description="ID of the favorite book")

    model_config = ConfigDict(from_attributes=True)

    @field_validator("description", mode="before")
    @classmethod
    def empty_description(cls, value):
        return value or ""
