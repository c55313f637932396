import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from .. import crud, errors, schemas
from ..auth import (
    CurrentUser,
    clear_session_cookie,
    clear_timezone_cookie,
    get_current_user,
    get_hasher,
    get_settings,
    get_tokens,
    require_user,
    set_session_cookie,
    set_timezone_cookie,
)
from ..config import Settings
from ..database import get_db
from ..security import PasswordHasher, TokenService
from ..templating import read_payload, render, resolve_timezone

router = APIRouter(tags=["auth"])
logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password."


def _form_values(data: dict) -> dict:
    # Never echo passwords back into the page.
    return {key: value for key, value in data.items() if "password" not in key}


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request, current_user: Optional[CurrentUser] = Depends(get_current_user)):
    if current_user:
        return RedirectResponse(url="/todos", status_code=status.HTTP_303_SEE_OTHER)
    return render(
        request,
        "auth/register.html",
        {"errors": [], "form_values": {}, "page_title": "Register"},
    )


@router.post("/register", response_class=HTMLResponse)
def register(
    request: Request,
    data: dict = Depends(read_payload),
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
):
    payload = {
        "username": data.get("username") or "",
        "email": data.get("email") or "",
        "password": data.get("password") or "",
        "confirm_password": data.get("confirm_password") or "",
    }

    error_messages = []
    try:
        form = schemas.RegisterForm(**payload)
    except ValidationError as exc:
        error_messages = [item.msg for item in schemas.format_errors(exc)]
    else:
        try:
            crud.create_user(db, form.username, form.email, hasher.hash(form.password))
        except errors.ValidationError as exc:
            error_messages = exc.messages

    if error_messages:
        return render(
            request,
            "auth/register.html",
            {
                "errors": error_messages,
                "form_values": _form_values(data),
                "page_title": "Register",
            },
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    return RedirectResponse(url="/login?registered=1", status_code=status.HTTP_303_SEE_OTHER)


@router.get("/login", response_class=HTMLResponse)
def login_form(
    request: Request,
    registered: bool = False,
    current_user: Optional[CurrentUser] = Depends(get_current_user),
):
    if current_user:
        return RedirectResponse(url="/todos", status_code=status.HTTP_303_SEE_OTHER)
    return render(
        request,
        "auth/login.html",
        {
            "errors": [],
            "form_values": {},
            "registered": registered,
            "page_title": "Login",
        },
    )


def _check_credentials(
    db: Session, hasher: PasswordHasher, email: str, password: str
):
    """Return the matching user or raise AuthError, without saying which part was wrong."""
    user = crud.get_user_by_email(db, email)
    if user is None:
        hasher.dummy_verify(password)
        raise errors.AuthError(INVALID_CREDENTIALS)

    try:
        valid, new_hash = hasher.verify_and_update(password, user.password)
    except errors.IntegrityError:
        logger.error("Unreadable password hash for user %s", user.id)
        raise errors.AuthError(INVALID_CREDENTIALS)
    if not valid:
        raise errors.AuthError(INVALID_CREDENTIALS)

    if new_hash:
        crud.update_password_hash(db, user, new_hash)
    return user


@router.post("/login", response_class=HTMLResponse)
def login(
    request: Request,
    data: dict = Depends(read_payload),
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    tokens: TokenService = Depends(get_tokens),
    settings: Settings = Depends(get_settings),
):
    form = schemas.LoginForm(
        email=str(data.get("email") or ""),
        password=str(data.get("password") or ""),
    )

    try:
        user = _check_credentials(db, hasher, form.email, form.password)
    except errors.AuthError:
        logger.info("Failed login attempt")
        return render(
            request,
            "auth/login.html",
            {
                "errors": [INVALID_CREDENTIALS],
                "form_values": _form_values(data),
                "registered": False,
                "page_title": "Login",
            },
            status_code=status.HTTP_401_UNAUTHORIZED,
        )

    response = RedirectResponse(url="/todos", status_code=status.HTTP_303_SEE_OTHER)
    set_session_cookie(response, tokens.issue(user.id), settings)
    zone = resolve_timezone(request.headers.get("x-timezone") or data.get("timezone"))
    if zone is not None:
        set_timezone_cookie(response, zone.key, settings)
    logger.info("User %s logged in", user.id)
    return response


@router.post("/logout")
def logout(
    current_user: CurrentUser = Depends(require_user),
    settings: Settings = Depends(get_settings),
):
    # Tokens are stateless: dropping the cookie is all logout can do.
    response = RedirectResponse(url="/login", status_code=status.HTTP_303_SEE_OTHER)
    clear_session_cookie(response, settings)
    clear_timezone_cookie(response, settings)
    logger.info("User %s logged out", current_user.id)
    return response
