import firebase_admin
from werkzeug.test import Client

import app as composed


def test_init_firebase_without_credentials(monkeypatch, tmp_path):
    monkeypatch.delenv("SERVICE_ACCOUNT_JSON", raising=False)
    monkeypatch.chdir(tmp_path)
    assert composed.init_firebase() is False


def test_init_firebase_with_garbage_credentials(monkeypatch):
    monkeypatch.setenv("SERVICE_ACCOUNT_JSON", "!!!")
    assert composed.init_firebase() is False


def test_make_app_initializes_firebase(monkeypatch):
    calls = []
    monkeypatch.setattr(composed, "init_firebase", lambda: calls.append(1) or False)
    monkeypatch.setattr(firebase_admin, "_apps", {})
    composed.make_app()
    assert calls == [1]


def test_make_app_reuses_existing_firebase_app(monkeypatch):
    calls = []
    monkeypatch.setattr(composed, "init_firebase", lambda: calls.append(1) or False)
    monkeypatch.setattr(firebase_admin, "_apps", {"[DEFAULT]": object()})
    composed.make_app()
    assert calls == []


def test_mounts(monkeypatch):
    monkeypatch.setattr(composed, "init_firebase", lambda: False)
    monkeypatch.setattr(firebase_admin, "_apps", {})
    c = Client(composed.make_app())
    assert c.get("/health").status_code == 200
    assert c.get("/quiz/health").status_code == 200
    assert c.post("/scanner/scan", json={}).status_code == 400
    # No firebase app in tests, so the library reports the store as unavailable
    assert c.get("/library/classes/u1").status_code == 503
