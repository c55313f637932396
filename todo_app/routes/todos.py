from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session

from .. import crud, errors, models, schemas
from ..auth import CurrentUser, require_user
from ..database import get_db
from ..templating import read_payload, render, wants_html

router = APIRouter(prefix="/todos", tags=["todos"])


def _to_json(todo: models.Todo) -> dict:
    return schemas.TodoOut.model_validate(todo).model_dump(mode="json")


def _messages(exc: ValidationError) -> list:
    messages = []
    for item in schemas.format_errors(exc):
        messages.append(f"{item.loc}: {item.msg}" if item.loc else item.msg)
    return messages


def _back_to_list() -> RedirectResponse:
    return RedirectResponse(url="/todos", status_code=status.HTTP_303_SEE_OTHER)


def _render_form(
    request: Request,
    current_user: CurrentUser,
    todo: Optional[models.Todo],
    form_values: dict,
    error_messages: list,
    status_code: int = status.HTTP_200_OK,
):
    return render(
        request,
        "todos/form.html",
        {
            "current_user": current_user,
            "todo": todo,
            "form_values": form_values,
            "errors": error_messages,
            "page_title": f"Edit task #{todo.id}" if todo else "New task",
        },
        status_code=status_code,
    )


def _todo_form_values(todo: models.Todo) -> dict:
    return {
        "title": todo.title,
        "description": todo.description,
        "status": "on" if todo.status else "",
    }


def _parse_changes(data: dict, partial: bool) -> dict:
    if not partial:
        # A full update; an unchecked HTML checkbox is simply absent.
        # Unknown keys are kept so the model still rejects them.
        data = {
            **data,
            "title": data.get("title") or "",
            "description": data.get("description") or "",
            "status": data.get("status") or False,
        }
    try:
        update = schemas.TodoUpdate(**data)
    except ValidationError as exc:
        raise errors.ValidationError(_messages(exc)) from exc
    return update.changes()


@router.get("", response_class=HTMLResponse)
def list_todos(
    request: Request,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_user),
):
    todos = crud.list_todos(db, current_user.id)
    if not wants_html(request):
        return JSONResponse([_to_json(todo) for todo in todos])

    title = f"{current_user.username.capitalize()}'s Task List"
    return render(
        request,
        "todos/list.html",
        {"current_user": current_user, "todos": todos, "page_title": title},
    )


@router.get("/new", response_class=HTMLResponse)
def create_todo_form(request: Request, current_user: CurrentUser = Depends(require_user)):
    return _render_form(request, current_user, None, {}, [])


@router.post("", response_class=HTMLResponse)
def create_todo(
    request: Request,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_user),
    data: dict = Depends(read_payload),
):
    try:
        form = schemas.TodoForm(
            title=data.get("title") or "",
            description=data.get("description") or "",
        )
    except ValidationError as exc:
        if wants_html(request):
            return _render_form(
                request,
                current_user,
                None,
                data,
                _messages(exc),
                status_code=status.HTTP_400_BAD_REQUEST,
            )
        raise errors.ValidationError(_messages(exc)) from exc

    todo = crud.create_todo(db, current_user.id, form.title, form.description)
    if wants_html(request):
        return _back_to_list()
    return JSONResponse(_to_json(todo), status_code=status.HTTP_201_CREATED)


@router.get("/{todo_id}", response_class=HTMLResponse)
def todo_detail(
    request: Request,
    todo_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_user),
):
    todo = crud.get_todo(db, current_user.id, todo_id)
    if not wants_html(request):
        return JSONResponse(_to_json(todo))
    return _render_form(request, current_user, todo, _todo_form_values(todo), [])


@router.get("/{todo_id}/edit", response_class=HTMLResponse)
def edit_todo_form(
    request: Request,
    todo_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_user),
):
    todo = crud.get_todo(db, current_user.id, todo_id)
    return _render_form(request, current_user, todo, _todo_form_values(todo), [])


def _apply_update(
    request: Request,
    data: dict,
    db: Session,
    current_user: CurrentUser,
    todo_id: int,
    partial: bool,
):
    try:
        changes = _parse_changes(data, partial)
    except errors.ValidationError as exc:
        if wants_html(request) and not partial:
            # Ownership first, so a stranger's id still answers 404.
            todo = crud.get_todo(db, current_user.id, todo_id)
            return _render_form(
                request,
                current_user,
                todo,
                data,
                exc.messages,
                status_code=status.HTTP_400_BAD_REQUEST,
            )
        raise

    todo = crud.update_todo(db, current_user.id, todo_id, changes)
    if wants_html(request):
        return _back_to_list()
    return JSONResponse(_to_json(todo))


@router.post("/{todo_id}/edit", response_class=HTMLResponse)
def edit_todo(
    request: Request,
    todo_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_user),
    data: dict = Depends(read_payload),
):
    return _apply_update(request, data, db, current_user, todo_id, partial=False)


@router.put("/{todo_id}")
def replace_todo(
    request: Request,
    todo_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_user),
    data: dict = Depends(read_payload),
):
    return _apply_update(request, data, db, current_user, todo_id, partial=False)


@router.patch("/{todo_id}")
def patch_todo(
    request: Request,
    todo_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_user),
    data: dict = Depends(read_payload),
):
    return _apply_update(request, data, db, current_user, todo_id, partial=True)


def _delete(request: Request, db: Session, current_user: CurrentUser, todo_id: int):
    crud.delete_todo(db, current_user.id, todo_id)
    if wants_html(request):
        return _back_to_list()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{todo_id}")
def delete_todo(
    request: Request,
    todo_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_user),
):
    return _delete(request, db, current_user, todo_id)


@router.post("/{todo_id}/delete")
def delete_todo_form(
    request: Request,
    todo_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_user),
):
    return _delete(request, db, current_user, todo_id)
