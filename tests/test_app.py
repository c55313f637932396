import inspect

from fastapi.routing import APIRoute
from fastapi.testclient import TestClient
from sqlalchemy.schema import CreateTable

from todo_app import models
from todo_app.main import create_app


def test_route_handlers_run_off_the_event_loop(app):
    # Password hashing and database calls block, so every endpoint is a plain
    # function that FastAPI runs in its threadpool.
    blocking_async = [
        route.path
        for route in app.routes
        if isinstance(route, APIRoute) and inspect.iscoroutinefunction(route.endpoint)
    ]

    assert blocking_async == []


def test_each_app_renders_its_own_name(settings, tmp_path):
    first = create_app(settings.model_copy(update={"app_name": "First Board"}))
    second = create_app(
        settings.model_copy(
            update={
                "app_name": "Second Board",
                "database_url": f"sqlite:///{tmp_path / 'second.db'}",
            }
        )
    )

    with TestClient(first) as first_client, TestClient(second) as second_client:
        first_page = first_client.get("/")
        second_page = second_client.get("/")

    assert "First Board" in first_page.text
    assert "Second Board" not in first_page.text
    assert "Second Board" in second_page.text


def test_created_at_has_a_database_default(app):
    ddl = str(CreateTable(models.Todo.__table__).compile(app.state.engine))

    assert "CURRENT_TIMESTAMP" in ddl
