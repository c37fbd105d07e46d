from pydantic import EmailStr, Field, model_validator
from typing import Optional

from carbonsurvey.schemas.common import CamelModel


class SignupRequest(CamelModel):
    name: str = Field(min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=r"^\+?[0-9][0-9 \-]{5,19}$")
    password: str = Field(min_length=6)

    @model_validator(mode="after")
    def require_email_or_phone(self) -> "SignupRequest":
        if not self.email and not self.phone:
            raise ValueError("Either email or phone is required")
        return self


class LoginRequest(CamelModel):
    identifier: str = Field(min_length=1, description="Email or phone number")
    password: str = Field(min_length=1)


class AuthUser(CamelModel):
    id: int
    username: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


class AuthResponse(CamelModel):
    user: AuthUser
    token: str


class UserStats(CamelModel):
    templates_count: int
    surveys_count: int
