"""Pydantic schemas for authentication and user management."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Credentials(BaseModel):
    """Login form input."""
    email: str = ""
    password: str = ""


class TokenPair(BaseModel):
    """Access/refresh pair issued by ``auth/token/``."""
    model_config = ConfigDict(extra="ignore")

    access: str
    refresh: Optional[str] = None


class UserProfile(BaseModel):
    """User record as returned by ``auth/profile/`` and ``admin/users/``."""
    model_config = ConfigDict(extra="ignore")

    id: int
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    is_admin: bool = False
    is_staff: bool = False
    is_active: bool = True

    @property
    def has_admin_rights(self) -> bool:
        """Staff accounts count as admins."""
        return self.is_admin or self.is_staff

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class AuthenticatedUser(BaseModel):
    """Identity and tokens of the signed-in user.

    Attributes:
        email: Login email
        token: Bearer access token
        refresh_token: Token used to obtain a new access token
        is_admin: Whether admin surfaces are accessible
        id: Backend user identifier
    """
    email: str
    token: str
    refresh_token: Optional[str] = None
    is_admin: bool = False
    id: Optional[int] = None


class LoginResult(BaseModel):
    """Outcome of a login attempt."""
    success: bool
    error: Optional[str] = None


class UserUpdate(BaseModel):
    """Editable user fields in the admin console."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    is_admin: Optional[bool] = None
    is_active: Optional[bool] = None


class Registration(BaseModel):
    """Account registration form."""
    email: str
    password: str = Field(..., min_length=1)
    password2: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
