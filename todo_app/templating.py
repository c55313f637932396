from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import Request
from fastapi.templating import Jinja2Templates

from . import errors

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))

UTC = ZoneInfo("UTC")


def resolve_timezone(name: Optional[str]) -> Optional[ZoneInfo]:
    """Return the IANA zone called ``name``, or None if there is no such zone."""
    if not isinstance(name, str) or not name.strip():
        return None
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return None


def client_timezone(request: Request) -> ZoneInfo:
    cookie_name = request.app.state.settings.timezone_cookie_name
    return resolve_timezone(request.cookies.get(cookie_name)) or UTC


def format_datetime(value: datetime, tz: ZoneInfo = UTC, fmt: str = "%Y-%m-%d %H:%M") -> str:
    """Render a stored (naive, UTC) timestamp in the reader's timezone."""
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return f"{value.astimezone(tz).strftime(fmt)} {tz.key}"


templates.env.filters["datetime"] = format_datetime


def wants_html(request: Request) -> bool:
    accept = request.headers.get("accept", "")
    return "text/html" in accept or "*/*" in accept or not accept


def is_json_body(request: Request) -> bool:
    return request.headers.get("content-type", "").startswith("application/json")


async def read_payload(request: Request) -> dict:
    """Read a JSON or form-encoded request body into a plain dict.

    Used as a dependency so the handlers themselves can stay synchronous.
    """
    if is_json_body(request):
        try:
            data = await request.json()
        except ValueError as exc:
            raise errors.ValidationError(["Request body is not valid JSON."]) from exc
        if not isinstance(data, dict):
            raise errors.ValidationError(["Request body must be a JSON object."])
        return data
    form = await request.form()
    return {key: value for key, value in form.multi_items()}


def render(request: Request, template: str, context: dict, status_code: int = 200):
    base_context = {
        "current_user": None,
        "app_name": request.app.state.settings.app_name,
        "timezone": client_timezone(request),
    }
    base_context.update(context)
    return templates.TemplateResponse(request, template, base_context, status_code=status_code)
