import pytest


@pytest.fixture
def owner(login, people):
    return login(people.client)


def _category_id(c, name):
    return next(cat["id"] for cat in c.get("/api/categories").get_json()["items"] if cat["name"] == name)


def _create(c, name, price, category="Garden"):
    resp = c.post("/api/tasks", json={
        "name": name,
        "description": f"{name} for a small terraced house.",
        "price": price,
        "category_id": _category_id(c, category),
        "images": ["https://img.example.com/1.jpg"],
    })
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["task"]


def test_create_task(owner, people):
    task = _create(owner, "Mow Lawn", "50")
    assert task["price"] == "50.00"
    assert task["created_by"] == people.client.id
    assert task["category"]["name"] == "Garden"
    assert task["images"] == ["https://img.example.com/1.jpg"]


def test_create_task_validation(owner):
    resp = owner.post("/api/tasks", json={"name": "x", "description": "short", "category_id": 1})
    assert resp.status_code == 400
    details = resp.get_json()["details"]
    assert "name" in details and "description" in details


def test_create_task_requires_login(client):
    resp = client.post("/api/tasks", json={"name": "Mow Lawn"})
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Authentication required"}


def test_unknown_category(owner):
    resp = owner.post("/api/tasks", json={
        "name": "Mow Lawn", "description": "Front and back lawn please.", "price": "10", "category_id": 999,
    })
    assert resp.status_code == 400


def test_search_filters_and_sorts(owner):
    _create(owner, "Mow Lawn", "50")
    _create(owner, "Weed Beds", "20")
    _create(owner, "Maths Tutoring", "35", category="Tutoring")

    names = lambda resp: [t["name"] for t in resp.get_json()["items"]]

    assert names(owner.get("/api/tasks?sort=lowest")) == ["Weed Beds", "Maths Tutoring", "Mow Lawn"]
    assert names(owner.get("/api/tasks?sort=highest")) == ["Mow Lawn", "Maths Tutoring", "Weed Beds"]
    assert names(owner.get("/api/tasks?q=lawn")) == ["Mow Lawn"]
    assert sorted(names(owner.get("/api/tasks?category=Garden"))) == ["Mow Lawn", "Weed Beds"]
    assert names(owner.get("/api/tasks?price=30-40")) == ["Maths Tutoring"]
    assert sorted(names(owner.get("/api/tasks?price=-40"))) == ["Maths Tutoring", "Weed Beds"]

    page = owner.get("/api/tasks").get_json()
    assert page["total"] == 3 and page["page"] == 1


def test_bad_price_range(owner):
    assert owner.get("/api/tasks?price=abc-10").status_code == 400


def test_category_counts(owner):
    _create(owner, "Mow Lawn", "50")
    cats = {c["name"]: c["task_count"] for c in owner.get("/api/categories").get_json()["items"]}
    assert cats["Garden"] == 1
    assert cats["Tutoring"] == 0


def test_update_by_owner_only(app, login, owner, people):
    task = _create(owner, "Mow Lawn", "50")
    resp = owner.put(f"/api/tasks/{task['id']}", json={"price": "60"})
    assert resp.status_code == 200
    assert resp.get_json()["task"]["price"] == "60.00"
    assert resp.get_json()["task"]["name"] == "Mow Lawn"

    other = login(people.contractor, app.test_client())
    assert other.put(f"/api/tasks/{task['id']}", json={"price": "1"}).status_code == 403


def test_archive_hides_task(app, login, owner, people):
    task = _create(owner, "Mow Lawn", "50")
    assert owner.post(f"/api/tasks/{task['id']}/archive").get_json()["task"]["is_archived"] is True

    assert owner.get("/api/tasks").get_json()["total"] == 0
    assert owner.get("/api/tasks/latest").get_json()["items"] == []
    assert owner.get(f"/api/tasks/{task['id']}").status_code == 200
    assert [t["id"] for t in owner.get("/api/tasks/mine").get_json()["items"]] == [task["id"]]

    other = login(people.contractor, app.test_client())
    assert other.get(f"/api/tasks/{task['id']}").status_code == 404

    admin = login(people.admin, app.test_client())
    assert admin.get("/api/admin/tasks").get_json()["total"] == 1


def test_task_assignments_listing(app, login, owner, people):
    task = _create(owner, "Mow Lawn", "50")
    owner.post("/api/task-assignments", json={"task_id": task["id"], "contractor_id": people.contractor.id})
    rows = owner.get(f"/api/tasks/{task['id']}/assignments").get_json()["items"]
    assert [r["contractor"]["id"] for r in rows] == [people.contractor.id]

    other = login(people.contractor, app.test_client())
    assert other.get(f"/api/tasks/{task['id']}/assignments").status_code == 403
    assert [r["task"]["id"] for r in other.get("/api/task-assignments?role=contractor").get_json()["items"]] == [task["id"]]
    assert other.get("/api/task-assignments?role=boss").status_code == 400
