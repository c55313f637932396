import pytest

JSON = {"Accept": "application/json"}


@pytest.fixture()
def switch_user(client, register_user, login):
    """Register (once) and log in as another user on the same client."""

    def _switch(username: str, email: str, password: str = "Secret123!"):
        register_user(username=username, email=email, password=password)
        assert login(email=email, password=password).status_code == 303
        return client

    return _switch


def _create(client, title="Buy milk", description=""):
    resp = client.post("/todos", json={"title": title, "description": description}, headers=JSON)
    assert resp.status_code == 201
    return resp.json()


def test_buy_milk_scenario(logged_in):
    resp = logged_in.post(
        "/todos", data={"title": "Buy milk", "description": ""}, follow_redirects=False
    )
    assert resp.status_code == 303
    assert resp.headers["location"] == "/todos"

    listed = logged_in.get("/todos", headers=JSON).json()
    assert [todo["title"] for todo in listed] == ["Buy milk"]
    assert listed[0]["status"] is False
    todo_id = listed[0]["id"]

    resp = logged_in.post(
        f"/todos/{todo_id}/edit",
        data={"title": "Buy milk", "description": "", "status": "on"},
        follow_redirects=False,
    )
    assert resp.status_code == 303

    assert logged_in.get(f"/todos/{todo_id}", headers=JSON).json()["status"] is True


def test_list_page_shows_the_users_tasks(logged_in):
    _create(logged_in, "Buy milk", "semi-skimmed")

    page = logged_in.get("/todos")

    assert page.status_code == 200
    assert "Buy milk" in page.text
    assert "semi-skimmed" in page.text
    assert " UTC" in page.text


def test_json_create_returns_the_record(logged_in):
    todo = _create(logged_in, "Write report", "quarterly")

    assert set(todo) == {"id", "created_by", "title", "description", "status", "created_at"}
    assert todo["title"] == "Write report"
    assert todo["description"] == "quarterly"
    assert todo["status"] is False


def test_list_is_newest_first(logged_in):
    first = _create(logged_in, "first")
    second = _create(logged_in, "second")

    listed = logged_in.get("/todos", headers=JSON).json()

    assert [todo["id"] for todo in listed] == [second["id"], first["id"]]
    assert logged_in.get("/todos", headers=JSON).json() == listed


def test_new_and_edit_forms_render(logged_in):
    todo = _create(logged_in, "Buy milk")

    assert logged_in.get("/todos/new").status_code == 200
    edit = logged_in.get(f"/todos/{todo['id']}/edit")
    assert edit.status_code == 200
    assert 'value="Buy milk"' in edit.text
    assert logged_in.get(f"/todos/{todo['id']}").status_code == 200


@pytest.mark.parametrize("title", ["", "   ", "x" * 256])
def test_invalid_title_rerenders_the_form(logged_in, title):
    resp = logged_in.post("/todos", data={"title": title, "description": "keep me"})

    assert resp.status_code == 400
    assert "keep me" in resp.text
    assert logged_in.get("/todos", headers=JSON).json() == []


def test_invalid_title_over_json_is_a_400(logged_in):
    resp = logged_in.post("/todos", json={"title": ""}, headers=JSON)

    assert resp.status_code == 400
    assert isinstance(resp.json()["detail"], list)


def test_patch_changes_only_the_given_fields(logged_in):
    todo = _create(logged_in, "Buy milk", "semi-skimmed")

    resp = logged_in.patch(f"/todos/{todo['id']}", json={"status": True}, headers=JSON)

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] is True
    assert body["title"] == "Buy milk"
    assert body["description"] == "semi-skimmed"
    assert body["created_at"] == todo["created_at"]


def test_put_replaces_editable_fields(logged_in):
    todo = _create(logged_in, "Buy milk", "semi-skimmed")
    logged_in.patch(f"/todos/{todo['id']}", json={"status": True}, headers=JSON)

    resp = logged_in.put(f"/todos/{todo['id']}", json={"title": "Buy bread"}, headers=JSON)

    assert resp.status_code == 200
    body = resp.json()
    assert body["title"] == "Buy bread"
    assert body["description"] == ""
    assert body["status"] is False


@pytest.mark.parametrize("field", ["id", "created_by", "created_at"])
def test_immutable_fields_are_rejected(logged_in, field):
    todo = _create(logged_in)

    resp = logged_in.patch(f"/todos/{todo['id']}", json={field: "x"}, headers=JSON)

    assert resp.status_code == 400
    assert logged_in.get(f"/todos/{todo['id']}", headers=JSON).json() == todo


def test_bad_checkbox_value_is_rejected(logged_in):
    todo = _create(logged_in)

    resp = logged_in.patch(f"/todos/{todo['id']}", json={"status": "maybe"}, headers=JSON)

    assert resp.status_code == 400


def test_edit_form_with_blank_title_rerenders(logged_in):
    todo = _create(logged_in)

    resp = logged_in.post(f"/todos/{todo['id']}/edit", data={"title": ""})

    assert resp.status_code == 400
    assert f"Edit task #{todo['id']}" in resp.text


def test_delete_over_json_returns_204(logged_in):
    todo = _create(logged_in)

    resp = logged_in.delete(f"/todos/{todo['id']}", headers=JSON)

    assert resp.status_code == 204
    assert logged_in.get(f"/todos/{todo['id']}", headers=JSON).status_code == 404
    assert logged_in.delete(f"/todos/{todo['id']}", headers=JSON).status_code == 404


def test_delete_form_redirects_to_list(logged_in):
    todo = _create(logged_in)

    resp = logged_in.post(f"/todos/{todo['id']}/delete", follow_redirects=False)

    assert resp.status_code == 303
    assert resp.headers["location"] == "/todos"
    assert logged_in.get("/todos", headers=JSON).json() == []


def test_other_users_todos_are_not_found(logged_in, switch_user):
    todo = _create(logged_in, "alice only")

    bob = switch_user("bob", "bob@example.com")
    path = f"/todos/{todo['id']}"

    assert bob.get("/todos", headers=JSON).json() == []
    for resp in (
        bob.get(path, headers=JSON),
        bob.patch(path, json={"status": True}, headers=JSON),
        bob.put(path, json={"title": "mine now"}, headers=JSON),
        bob.delete(path, headers=JSON),
    ):
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Task not found"}

    # Even an invalid edit answers 404 rather than revealing the task.
    assert bob.post(f"{path}/edit", data={"title": ""}).status_code == 404

    alice = switch_user("alice", "alice@example.com")
    unchanged = alice.get(path, headers=JSON).json()
    assert unchanged["title"] == "alice only"
    assert unchanged["status"] is False


def test_missing_todo_renders_404_page(logged_in):
    resp = logged_in.get("/todos/4242")

    assert resp.status_code == 404
    assert "Task not found" in resp.text


def test_unknown_route_renders_404_page(client):
    resp = client.get("/definitely/not/here")

    assert resp.status_code == 404
    assert "Nothing to see here" in resp.text


def test_healthchecker(client):
    resp = client.get("/healthchecker")

    assert resp.status_code == 200
    assert resp.json()["status"] == "success"


@pytest.mark.parametrize("todo_id", [99999999999999999999, 2**63])
def test_out_of_range_id_is_not_found(logged_in, todo_id):
    path = f"/todos/{todo_id}"

    for resp in (
        logged_in.get(path, headers=JSON),
        logged_in.patch(path, json={"status": True}, headers=JSON),
        logged_in.delete(path, headers=JSON),
    ):
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Task not found"}
    assert logged_in.get(f"{path}/edit").status_code == 404


def test_put_rejects_immutable_fields_like_patch(logged_in):
    todo = _create(logged_in, "Buy milk")

    resp = logged_in.put(
        f"/todos/{todo['id']}",
        json={"title": "Buy bread", "created_by": "someone-else"},
        headers=JSON,
    )

    assert resp.status_code == 400
    assert logged_in.get(f"/todos/{todo['id']}", headers=JSON).json() == todo
