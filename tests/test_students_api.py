from nodue_app import store


def test_index(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["service"] == "nodue"


def test_register_student(client, register):
    data = register("21IT001", name="Priya")
    assert data["register_number"] == "21IT001"
    assert data["year"] == 2
    assert data["semester"] == 3


def test_register_requires_all_fields(client):
    resp = client.post("/api/students/register", json={"name": "Priya", "register_number": "21IT002", "year": 2})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["success"] is False
    assert body["error"]["code"] == "validation_error"


def test_register_rejects_out_of_range_year(client):
    resp = client.post("/api/students/register", json={
        "name": "Priya", "register_number": "21IT003", "year": 7, "department": "Civil Engineering",
    })
    assert resp.status_code == 400
    assert "Year" in resp.get_json()["error"]["message"]


def test_register_duplicate_is_conflict(client, register):
    register("21IT004")
    resp = client.post("/api/students/register", json={
        "name": "Other", "register_number": "21IT004", "year": 3, "department": "Civil Engineering",
    })
    assert resp.status_code == 409
    assert resp.get_json()["error"]["code"] == "already_registered"


def test_register_accepts_form_data(client):
    resp = client.post("/api/students/register", data={
        "name": "Form Student", "register_number": "21IT005", "year": "3", "department": "Civil Engineering",
    })
    assert resp.status_code == 201
    assert resp.get_json()["data"]["semester"] is None


def test_certificate_unknown_student(client):
    resp = client.get("/api/students/NOPE/certificate")
    assert resp.status_code == 404


def test_certificate_for_fresh_student_is_all_pending(client, register):
    register("21IT006")
    resp = client.get("/api/students/21IT006/certificate")
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["subjects"] == ["DM", "DPCO", "DSA", "FDS", "Oops", "Office", "Library"]
    assert data["subjects_configured"] is True
    assert data["overall_status"] == "Pending"
    assert all(row["due_status"] == "Pending" for row in data["rows"])
    assert all(row["department_fine"] == 0 for row in data["rows"])


def test_certificate_reflects_stored_marks(app, client, register):
    student = register("21IT007")
    with app.app_context():
        store.upsert_mark(student["student_id"], "DM", {"assignment_submitted": True, "department_fine": 0, "iat1": 88})
        store.upsert_mark(student["student_id"], "Office", {"signed": True})

    data = client.get("/api/students/21IT007/certificate").get_json()["data"]
    rows = {r["subject"]: r for r in data["rows"]}
    assert rows["DM"]["due_status"] == "Completed"
    assert rows["DM"]["iat1"] == 88
    assert rows["Office"]["due_status"] == "Completed"
    assert rows["Office"]["columns"]["show_marks"] is False
    assert rows["DPCO"]["due_status"] == "Pending"
    assert data["overall_status"] == "Pending"


def test_certificate_with_unconfigured_semester(client, register):
    register("21IT008", year=4, semester=7)
    data = client.get("/api/students/21IT008/certificate").get_json()["data"]
    assert data["subjects"] == []
    assert data["subjects_configured"] is False
    assert data["rows"] == []


def test_catalog_endpoint(client):
    data = client.get("/api/catalog?year=3&semester=5").get_json()["data"]
    names = [s["name"] for s in data["subjects"]]
    assert names[0] == "Computer Network"
    assert data["subjects"][-1]["category"] == "administrative"
    assert "Information Technology" in data["departments"]

    everything = client.get("/api/catalog").get_json()["data"]
    assert {"year": 2, "semester": 3} in [{"year": e["year"], "semester": e["semester"]} for e in everything["entries"]]
