from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from ..auth import CurrentUser, get_current_user
from ..templating import render

router = APIRouter(tags=["pages"])


@router.get("/", response_class=HTMLResponse)
def home(request: Request, current_user: Optional[CurrentUser] = Depends(get_current_user)):
    if current_user:
        return RedirectResponse(url="/todos", status_code=status.HTTP_303_SEE_OTHER)
    return render(request, "home.html", {"page_title": "Home"})


@router.get("/healthchecker")
def health_checker():
    return {
        "status": "success",
        "message": "Multi-user to-do list with JWT sessions and an SQL store",
    }
