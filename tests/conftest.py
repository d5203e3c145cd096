import pytest

from nodue_app import create_app, db

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "secret"


@pytest.fixture()
def temp_db_path(tmp_path, monkeypatch):
    path = tmp_path / "test.db"
    uri_path = str(path).replace("\\", "/")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{uri_path}")
    monkeypatch.setenv("ADMIN_USERNAME", ADMIN_USERNAME)
    monkeypatch.setenv("ADMIN_PASSWORD", ADMIN_PASSWORD)
    monkeypatch.setenv("RATELIMIT_ENABLED", "false")
    for name in ("ADMIN_PASSWORD_HASH", "NODUE_ENV", "REDIS_URL", "SUBJECT_CATALOG_FILE", "CSRF_ENABLED"):
        monkeypatch.delenv(name, raising=False)
    return path


@pytest.fixture()
def app(temp_db_path):
    app = create_app()
    app.config["TESTING"] = True
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


def login(client, username=ADMIN_USERNAME, password=ADMIN_PASSWORD):
    resp = client.post("/login", json={"username": username, "password": password})
    if resp.status_code == 200:
        client.environ_base["HTTP_X_CSRF_TOKEN"] = resp.get_json()["data"]["csrf_token"]
    return resp


@pytest.fixture()
def admin_client(client):
    resp = login(client)
    assert resp.status_code == 200
    return client


@pytest.fixture()
def register(client):
    def _register(register_number, year=2, semester=3, name="Test Student", department="Information Technology"):
        body = {"name": name, "register_number": register_number, "year": year, "department": department}
        if semester is not None:
            body["semester"] = semester
        resp = client.post("/api/students/register", json=body)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()["data"]
    return _register
