import logging
from typing import List, Optional

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Query, Session

from . import errors, models

logger = logging.getLogger(__name__)

UPDATABLE_TODO_FIELDS = frozenset({"title", "description", "status"})
# Largest id a 64-bit signed INTEGER column can hold.
MAX_TODO_ID = 2**63 - 1


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except sa_exc.SQLAlchemyError as exc:
        db.rollback()
        # Re-raise a simplified error for the web layer to handle.
        raise errors.StorageError(f"Database commit failed while trying to {action}") from exc


# Users ---------------------------------------------------------------------


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    try:
        return (
            db.query(models.User)
            .filter(models.User.email == email.strip().lower())
            .first()
        )
    except sa_exc.SQLAlchemyError as exc:
        raise errors.StorageError("Failed to look up user by email") from exc


def get_user_by_id(db: Session, user_id: str) -> Optional[models.User]:
    try:
        return db.query(models.User).filter(models.User.id == user_id).first()
    except sa_exc.SQLAlchemyError as exc:
        raise errors.StorageError("Failed to look up user by id") from exc


def create_user(db: Session, username: str, email: str, password_hash: str) -> models.User:
    """Insert a new user.

    Raises:
        ValidationError: if the email is already registered.
        StorageError: if the database commit fails for any other reason.
    """
    email = email.strip().lower()
    if get_user_by_email(db, email) is not None:
        raise errors.ValidationError(["This email is already registered."])

    user = models.User(username=username, email=email, password=password_hash)
    db.add(user)
    try:
        db.commit()
    except sa_exc.IntegrityError as exc:
        # Lost a race with a concurrent registration for the same email.
        db.rollback()
        raise errors.ValidationError(["This email is already registered."]) from exc
    except sa_exc.SQLAlchemyError as exc:
        db.rollback()
        raise errors.StorageError("Database commit failed while trying to create user") from exc

    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


def update_password_hash(db: Session, user: models.User, password_hash: str) -> None:
    user.password = password_hash
    _commit(db, "upgrade a password hash")


# Todos ---------------------------------------------------------------------


def _owned_todos(db: Session, owner_id: str, todo_id: int) -> Query:
    if not -MAX_TODO_ID - 1 <= todo_id <= MAX_TODO_ID:
        raise errors.NotFound(f"Todo {todo_id} not found")
    # Id and owner always travel in one predicate, so a todo that belongs to
    # someone else looks exactly like one that does not exist.
    return db.query(models.Todo).filter(
        models.Todo.id == todo_id,
        models.Todo.created_by == owner_id,
    )


def create_todo(db: Session, owner_id: str, title: str, description: str) -> models.Todo:
    todo = models.Todo(
        created_by=owner_id,
        title=title,
        description=description,
        status=False,
    )
    db.add(todo)
    _commit(db, "create a todo")
    db.refresh(todo)
    return todo


def list_todos(db: Session, owner_id: str) -> List[models.Todo]:
    """Return the owner's todos, most recent first."""
    try:
        return (
            db.query(models.Todo)
            .filter(models.Todo.created_by == owner_id)
            .order_by(models.Todo.created_at.desc(), models.Todo.id.desc())
            .all()
        )
    except sa_exc.SQLAlchemyError as exc:
        raise errors.StorageError("Failed to list todos") from exc


def get_todo(db: Session, owner_id: str, todo_id: int) -> models.Todo:
    try:
        todo = _owned_todos(db, owner_id, todo_id).first()
    except sa_exc.SQLAlchemyError as exc:
        raise errors.StorageError("Failed to load todo") from exc
    if todo is None:
        raise errors.NotFound(f"Todo {todo_id} not found")
    return todo


def update_todo(db: Session, owner_id: str, todo_id: int, fields: dict) -> models.Todo:
    """Apply a partial update of title / description / status.

    Raises:
        ValidationError: if ``fields`` names anything else.
        NotFound: if the todo does not exist or belongs to another user.
    """
    unknown = set(fields) - UPDATABLE_TODO_FIELDS
    if unknown:
        raise errors.ValidationError(
            [f"Field '{name}' cannot be changed." for name in sorted(unknown)]
        )

    todo = get_todo(db, owner_id, todo_id)
    for name, value in fields.items():
        setattr(todo, name, value)
    _commit(db, "update a todo")
    db.refresh(todo)
    return todo


def delete_todo(db: Session, owner_id: str, todo_id: int) -> None:
    try:
        deleted = _owned_todos(db, owner_id, todo_id).delete(synchronize_session=False)
    except sa_exc.SQLAlchemyError as exc:
        db.rollback()
        raise errors.StorageError("Failed to delete todo") from exc
    if not deleted:
        db.rollback()
        raise errors.NotFound(f"Todo {todo_id} not found")
    _commit(db, "delete a todo")
