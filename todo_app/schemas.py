from datetime import datetime
from typing import List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    ValidationError,
    constr,
    field_validator,
    model_validator,
)

TRUE_VALUES = {"on", "true", "1"}
FALSE_VALUES = {"off", "false", "0", ""}


class ValidationResult(BaseModel):
    loc: str
    msg: str


class RegisterForm(BaseModel):
    username: constr(strip_whitespace=True, min_length=3, max_length=50)
    email: EmailStr
    password: constr(min_length=8, max_length=128)
    confirm_password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        if not any(ch.isalpha() for ch in value) or not any(ch.isdigit() for ch in value):
            raise ValueError("Password must contain at least one letter and one digit")
        return value

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class LoginForm(BaseModel):
    email: constr(strip_whitespace=True, to_lower=True)
    password: str


def parse_checkbox(value) -> bool:
    """Interpret an HTML checkbox / JSON flag as a bool."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ValueError(f"Invalid checkbox value {value!r}")


class TodoForm(BaseModel):
    title: constr(strip_whitespace=True, min_length=1, max_length=255)
    description: constr(strip_whitespace=True, max_length=2000) = ""


class TodoUpdate(BaseModel):
    """Fields a client may change on a todo; anything else is rejected."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[constr(strip_whitespace=True, min_length=1, max_length=255)] = None
    description: Optional[constr(strip_whitespace=True, max_length=2000)] = None
    status: Optional[bool] = None

    @field_validator("status", mode="before")
    @classmethod
    def checkbox_status(cls, value):
        if value is None:
            return None
        return parse_checkbox(value)

    def changes(self) -> dict:
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None
        }


class TodoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_by: str
    title: str
    description: str
    status: bool
    created_at: datetime


def format_errors(exc: ValidationError) -> List[ValidationResult]:
    results = []
    for error in exc.errors():
        msg = error["msg"]
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        results.append(
            ValidationResult(loc=".".join(str(p) for p in error["loc"]), msg=msg)
        )
    return results
