from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

from main import app


def new_topic(**overrides):
    payload = {
        "topic": "Adding fractions",
        "class": ["Class 6"],
        "category": "Maths",
        "subCategory": "Fractions",
        "description": "<p>Line up the denominators first</p>",
    }
    payload.update(overrides)
    return payload


def test_root(client):
    assert client.get("/").json() == {"message": "Topic Catalog API"}


def test_schema_lists_collections(client):
    data = client.get("/schema").json()
    assert set(data) == {"topics", "classes", "comments", "drafts"}
    assert "class" in data["topics"]["properties"]


def test_create_topic_joins_classes(client, store):
    res = client.post("/api/topics", json=new_topic(**{"class": ["Class 6", "Class 7"]}))

    assert res.status_code == 201
    body = res.json()
    assert body["class"] == "Class 6, Class 7"
    assert body["fileURL"] == []
    assert body["timestamp"]
    assert store.get_document("topics", body["id"])["subCategory"] == "Fractions"


def test_create_topic_requires_class(client):
    assert client.post("/api/topics", json=new_topic(**{"class": []})).status_code == 400
    payload = new_topic()
    payload.pop("class")
    assert client.post("/api/topics", json=payload).status_code == 422


def test_list_topics_includes_excerpt(client):
    long_text = " ".join(f"word{i}" for i in range(30))
    client.post("/api/topics", json=new_topic(description=long_text))
    client.post("/api/topics", json=new_topic(topic="Second", description=""))

    topics = client.get("/api/topics").json()

    assert [t["topic"] for t in topics] == ["Adding fractions", "Second"]
    assert topics[0]["excerpt"] == " ".join(f"word{i}" for i in range(8)) + "..."
    assert topics[1]["excerpt"] == "No description available"


def test_get_topic_with_neighbours(client, add_topic):
    a = add_topic(1, "x", "8")
    b = add_topic(2, "x", "8")
    add_topic(3, "x", "9")

    body = client.get(f"/api/topics/{b}").json()

    assert body["previous"]["id"] == a
    assert body["next"] is None

    first = client.get(f"/api/topics/{a}").json()
    assert first["previous"] is None
    assert first["next"]["id"] == b


def test_get_topic_errors(client):
    assert client.get("/api/topics/not-an-id").status_code == 400
    assert client.get("/api/topics/0123456789abcdef01234567").status_code == 404


def test_update_topic(client, add_topic):
    topic_id = add_topic(1, "x", "8")

    res = client.put(f"/api/topics/{topic_id}", json={"topic": "Renamed", "class": ["8", "9"]})

    assert res.status_code == 200
    assert res.json()["topic"] == "Renamed"
    assert res.json()["class"] == "8, 9"
    assert res.json()["subCategory"] == "x"


def test_update_topic_rejects_empty_payload(client, add_topic):
    topic_id = add_topic(1, "x", "8")
    assert client.put(f"/api/topics/{topic_id}", json={}).status_code == 400
    assert client.put("/api/topics/0123456789abcdef01234567", json={"topic": "t"}).status_code == 404


def test_delete_topic(client, store, add_topic):
    topic_id = add_topic(1, "x", "8")

    assert client.delete(f"/api/topics/{topic_id}").json() == {"ok": True}
    assert store.get_document("topics", topic_id) is None
    assert client.delete(f"/api/topics/{topic_id}").status_code == 404


def test_navbar_window(client, add_topic):
    for i in range(10):
        add_topic(i, f"sub{i}", f"Group {i}")

    first = client.get("/api/navbar").json()
    assert [c["class"] for c in first["classes"]] == [f"Group {i}" for i in range(6)]
    assert first["can_scroll_left"] is False
    assert first["can_scroll_right"] is True

    moved = client.get("/api/navbar", params={"start": 0, "direction": "right"}).json()
    assert moved["start"] == 1

    end = client.get("/api/navbar", params={"start": 4, "direction": "right"}).json()
    assert end["start"] == 4
    assert end["can_scroll_right"] is False

    narrow = client.get("/api/navbar", params={"start": 3, "width": 600}).json()
    assert len(narrow["classes"]) == 10
    assert narrow["can_scroll_left"] is False


def test_navbar_hides_reserved_classes(client, add_topic):
    add_topic(1, "Algebra", "Class 10")
    add_topic(2, "Fractions", "Class 6")

    classes = client.get("/api/navbar").json()["classes"]

    assert classes == [{"class": "Class 6", "subCategories": ["Fractions"]}]


def test_sidebar_tree_and_search(client, add_topic):
    add_topic(1, "Fractions", "Class 6", "Maths")
    add_topic(2, "Fractions", "Class 6", "Maths")
    add_topic(3, "Algebra", "Class 10", "Maths")

    tree = client.get("/api/sidebar").json()
    assert tree[0] == {"title": "Class 6", "content": [{"category": "Maths", "subCategories": ["Fractions"]}]}
    assert tree[1]["title"] == "Class 10"

    assert [n["title"] for n in client.get("/api/sidebar", params={"search": "10"}).json()] == ["Class 10"]


def test_store_failure_is_reported_once(client, store, monkeypatch):
    def boom(*args, **kwargs):
        raise ServerSelectionTimeoutError("no servers")

    monkeypatch.setattr(store, "list_documents", boom)

    res = client.get("/api/topics")

    assert res.status_code == 503
    assert res.json() == {"detail": "Document store unavailable"}


def test_unconfigured_database_returns_503():
    res = TestClient(app).get("/api/topics")
    assert res.status_code == 503


def test_update_of_topic_deleted_meanwhile_is_404(client, store, add_topic, monkeypatch):
    topic_id = add_topic(1, "x", "8")
    monkeypatch.setattr(store, "get_document", lambda *args: None)

    res = client.put(f"/api/topics/{topic_id}", json={"topic": "Renamed"})

    assert res.status_code == 404


def test_create_topic_deleted_before_reread_is_404(client, store, monkeypatch):
    monkeypatch.setattr(store, "get_document", lambda *args: None)

    assert client.post("/api/topics", json=new_topic()).status_code == 404


def test_neighbours_match_despite_padded_labels(client, add_topic):
    a = add_topic(1, "Fractions ", "Class 6 ")
    b = add_topic(2, "Fractions", "Class 6")

    body = client.get(f"/api/topics/{b}").json()

    assert body["previous"]["id"] == a


def test_edit_keeps_creation_timestamp(client, store, add_topic):
    first = add_topic(1, "x", "8")
    second = add_topic(2, "x", "8")

    client.put(f"/api/topics/{first}", json={"topic": "Renamed", "timestamp": 99})

    assert store.get_document("topics", first)["timestamp"] == 1
    assert client.get(f"/api/topics/{first}").json()["next"]["id"] == second
