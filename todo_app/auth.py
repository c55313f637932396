import enum
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from . import crud, errors
from .config import Settings
from .database import get_db
from .security import PasswordHasher, TokenService

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_hasher(request: Request) -> PasswordHasher:
    return request.app.state.hasher


def get_tokens(request: Request) -> TokenService:
    return request.app.state.tokens


@dataclass(frozen=True)
class CurrentUser:
    """Identity of the authenticated caller, handed to every protected handler."""

    id: str
    username: str
    email: str


class SessionState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    VALIDATING = "validating"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


@dataclass
class SessionResult:
    state: SessionState
    user: Optional[CurrentUser] = None
    error: Optional[errors.AuthError] = None


def extract_token(request: Request, cookie_name: str) -> Optional[str]:
    token = request.cookies.get(cookie_name)
    if token:
        return token
    header = request.headers.get("authorization", "")
    if header.lower().startswith(BEARER_PREFIX):
        return header[len(BEARER_PREFIX):].strip() or None
    return None


def authenticate(
    token: Optional[str], db: Session, tokens: TokenService
) -> SessionResult:
    """Run a request's token through validation and the user existence check."""
    result = SessionResult(state=SessionState.UNAUTHENTICATED)
    if not token:
        result.state = SessionState.REJECTED
        result.error = errors.AuthError("Please log in to continue.")
        return result

    result.state = SessionState.VALIDATING
    try:
        user_id = tokens.validate(token)
    except errors.TokenError as exc:
        logger.debug("Rejected session token: %s", type(exc).__name__)
        result.state = SessionState.REJECTED
        result.error = exc
        return result

    user = crud.get_user_by_id(db, user_id)
    if user is None:
        logger.info("Rejected session token for missing user %s", user_id)
        result.state = SessionState.REJECTED
        result.error = errors.AuthError("The user belonging to this token no longer exists.")
        return result

    result.state = SessionState.AUTHENTICATED
    result.user = CurrentUser(id=user.id, username=user.username, email=user.email)
    return result


def get_session(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    tokens: TokenService = Depends(get_tokens),
) -> SessionResult:
    return authenticate(extract_token(request, settings.cookie_name), db, tokens)


def get_current_user(session: SessionResult = Depends(get_session)) -> Optional[CurrentUser]:
    return session.user


def require_user(session: SessionResult = Depends(get_session)) -> CurrentUser:
    if session.state is not SessionState.AUTHENTICATED:
        raise session.error or errors.AuthError("Please log in to continue.")
    return session.user


def set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.cookie_name,
        value=token,
        max_age=settings.token_ttl_seconds,
        path="/",
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.cookie_name,
        path="/",
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
    )


def set_timezone_cookie(response: Response, zone_name: str, settings: Settings) -> None:
    # Display preference only; not part of the session's authority.
    response.set_cookie(
        key=settings.timezone_cookie_name,
        value=zone_name,
        max_age=settings.token_ttl_seconds,
        path="/",
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
    )


def clear_timezone_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.timezone_cookie_name,
        path="/",
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
    )
