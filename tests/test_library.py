import itertools

import pytest

import library

_ids = itertools.count(1)


class FakeSnapshot:
    def __init__(self, ref, data):
        self.reference = ref
        self.id = ref.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeDocument:
    def __init__(self, store, path, doc_id):
        self.store = store
        self.path = path
        self.id = doc_id

    def collection(self, name):
        return FakeCollection(self.store, self.path + (name,))

    def set(self, data):
        self.store[self.path] = dict(data)

    def get(self):
        return FakeSnapshot(self, self.store.get(self.path))

    def delete(self):
        self.store.pop(self.path, None)


class FakeCollection:
    def __init__(self, store, path):
        self.store = store
        self.path = path

    def document(self, doc_id=None):
        doc_id = doc_id or f"doc{next(_ids)}"
        return FakeDocument(self.store, self.path + (doc_id,), doc_id)

    def order_by(self, field):
        return self

    def stream(self):
        for path in sorted(self.store):
            if len(path) == len(self.path) + 1 and path[:-1] == self.path:
                yield FakeSnapshot(FakeDocument(self.store, path, path[-1]), self.store[path])


class FakeFirestore:
    def __init__(self):
        self.store = {}

    def collection(self, name):
        return FakeCollection(self.store, (name,))


@pytest.fixture
def db(monkeypatch):
    fake = FakeFirestore()
    monkeypatch.setattr(library, "get_db", lambda: fake)
    return fake


@pytest.fixture
def client():
    library.app.config["TESTING"] = True
    with library.app.test_client() as c:
        yield c


def create_class(client, name="Pharmacology"):
    resp = client.post("/classes/u1", json={"name": name})
    assert resp.status_code == 201
    return resp.get_json()["id"]


def test_class_lifecycle(client, db):
    class_id = create_class(client)
    listed = client.get("/classes/u1").get_json()
    assert [c["name"] for c in listed] == ["Pharmacology"]
    assert listed[0]["id"] == class_id
    assert client.post("/classes/u1", json={"name": " "}).status_code == 400
    assert client.delete(f"/classes/u1/{class_id}").status_code == 200
    assert client.get("/classes/u1").get_json() == []
    assert client.delete(f"/classes/u1/{class_id}").status_code == 404


def test_study_set_normalizes_questions(client, db):
    class_id = create_class(client)
    resp = client.post(f"/classes/u1/{class_id}/sets", json={
        "title": "Diuretics",
        "notes": "Furosemide...",
        "questions": [
            {"id": "7", "type": "fill_in_blank", "question": "Loop ___", "answer": "diuretic"},
            {"id": "8", "type": "essay", "question": "dropped"},
            {"id": "9", "type": "sata", "question": "Pick", "options": ["a", "b"], "correctAnswers": ["b"]},
        ],
    })
    assert resp.status_code == 201
    set_id = resp.get_json()["id"]
    assert resp.get_json()["questions"] == 2

    stored = client.get(f"/classes/u1/{class_id}/sets/{set_id}").get_json()
    assert stored["title"] == "Diuretics"
    assert [q["id"] for q in stored["questions"]] == ["1", "2"]
    assert stored["questions"][0]["correctAnswer"] == "diuretic"
    assert stored["types"] == ["fill_in_blank", "sata"]

    sets = client.get(f"/classes/u1/{class_id}/sets").get_json()
    assert [s["id"] for s in sets] == [set_id]


def test_study_set_drops_malformed_questions(client, db):
    class_id = create_class(client)
    resp = client.post(f"/classes/u1/{class_id}/sets", json={
        "title": "Abbreviations",
        "questions": [
            {"type": "matching", "question": "M", "pairs": 5},
            {"type": "sata", "question": "Pick", "options": "a, b", "correctAnswers": ["a"]},
            {"type": "fill_in_blank", "question": "q.d. means ___", "answer": "daily"},
        ],
    })
    assert resp.status_code == 201
    assert resp.get_json()["questions"] == 1
    set_id = resp.get_json()["id"]
    stored = client.get(f"/classes/u1/{class_id}/sets/{set_id}").get_json()
    assert [q["type"] for q in stored["questions"]] == ["fill_in_blank"]


def test_study_set_validation(client, db):
    class_id = create_class(client)
    assert client.post(f"/classes/u1/{class_id}/sets", json={"questions": []}).status_code == 400
    assert client.post(f"/classes/u1/{class_id}/sets",
                       json={"title": "x", "questions": "nope"}).status_code == 400
    assert client.post("/classes/u1/missing/sets", json={"title": "x"}).status_code == 404
    assert client.get("/classes/u1/missing/sets").status_code == 404
    assert client.get(f"/classes/u1/{class_id}/sets/nope").status_code == 404


def test_deleting_class_removes_sets(client, db):
    class_id = create_class(client)
    client.post(f"/classes/u1/{class_id}/sets", json={"title": "One"})
    client.post(f"/classes/u1/{class_id}/sets", json={"title": "Two"})
    body = client.delete(f"/classes/u1/{class_id}").get_json()
    assert body["deletedSets"] == 2
    assert db.store == {}


def test_delete_set(client, db):
    class_id = create_class(client)
    set_id = client.post(f"/classes/u1/{class_id}/sets", json={"title": "One"}).get_json()["id"]
    assert client.delete(f"/classes/u1/{class_id}/sets/{set_id}").status_code == 200
    assert client.delete(f"/classes/u1/{class_id}/sets/{set_id}").status_code == 404


def test_unavailable_store_returns_503(client, monkeypatch):
    def unavailable():
        raise library.StoreUnavailable("Firebase admin is not initialized")
    monkeypatch.setattr(library, "get_db", unavailable)
    assert client.get("/classes/u1").status_code == 503
    assert client.post("/classes/u1", json={"name": "x"}).status_code == 503
