"""Authentication schemas."""
from pydantic import BaseModel, ConfigDict, Field

# Field constraints (length, email syntax, password size) are enforced by the
# session service so every entry point reports them the same way.


class RegisterRequest(BaseModel):
    """User registration request."""

    name: str
    email: str
    password: str


class LoginRequest(BaseModel):
    """User login request."""

    email: str
    password: str


class UserResponse(BaseModel):
    """Public user profile."""

    id: str
    name: str
    email: str

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    """Login response; the refresh token travels in a cookie, never in the body."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    user: UserResponse


class RefreshResponse(BaseModel):
    """Refresh response."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")


class ProblemResponse(BaseModel):
    """Problem document returned for every failed request."""

    model_config = ConfigDict(populate_by_name=True)

    type: str
    title: str
    status: int
    detail: str | None = None
    code: str
    instance: str
    correlation_id: str | None = Field(default=None, alias="correlationId")
    errors: dict[str, list[str]] | None = None
