import pytest
from sqlalchemy import create_engine, text

from nodue_app import create_app, db, store


def _student(register_number, **extra):
    fields = {"name": "Asha", "register_number": register_number, "year": 2, "department": "Civil Engineering"}
    fields.update(extra)
    return fields


def test_insert_and_find_student(app):
    with app.app_context():
        created = store.insert_student(_student("REG001", semester=3))
        assert created["student_id"] is not None
        found = store.find_student_by_register_number("REG001")
        assert found["name"] == "Asha"
        assert found["semester"] == 3
        assert store.find_student_by_register_number("NOPE") is None


def test_duplicate_register_number(app):
    with app.app_context():
        store.insert_student(_student("REG002"))
        with pytest.raises(store.StudentAlreadyExists):
            store.insert_student(_student("REG002", name="Someone Else"))


def test_upsert_mark_creates_then_updates_single_row(app):
    with app.app_context():
        student = store.insert_student(_student("REG003", semester=3))
        sid = student["student_id"]
        store.upsert_mark(sid, "DM", {"iat1": 40, "signed": False, "assignment_submitted": True, "department_fine": 0})
        store.upsert_mark(sid, "DM", {"iat1": 45, "department_fine": 1})
        marks = store.find_marks_by_student_id(sid)
        assert len(marks) == 1
        assert marks[0]["iat1"] == 45
        assert marks[0]["assignment_submitted"] is True
        assert marks[0]["department_fine"] == 1


def test_update_student_ignores_register_number(app):
    with app.app_context():
        student = store.insert_student(_student("REG004"))
        store.update_student(student["student_id"], {"name": "Asha K", "semester": 4, "register_number": "X"})
        found = store.find_student_by_register_number("REG004")
        assert found["name"] == "Asha K"
        assert found["semester"] == 4


def test_list_students_by_semester(app):
    with app.app_context():
        store.insert_student(_student("B2", semester=3))
        store.insert_student(_student("A1", semester=3))
        store.insert_student(_student("C3", semester=5, year=3))
        assert [s["register_number"] for s in store.list_students(semester=3)] == ["A1", "B2"]
        assert len(store.list_students()) == 3


def test_find_marks_by_student_ids_groups_rows(app):
    with app.app_context():
        a = store.insert_student(_student("G1"))["student_id"]
        b = store.insert_student(_student("G2"))["student_id"]
        store.upsert_mark(a, "DM", {"iat1": 10})
        store.upsert_mark(a, "FDS", {"iat1": 20})
        grouped = store.find_marks_by_student_ids([a, b])
        assert len(grouped[a]) == 2
        assert grouped[b] == []


def test_full_schema_has_no_missing_columns(app):
    with app.app_context():
        caps = store.current_capabilities()
        assert caps.missing_columns == []
        assert store.migration_sql(caps) == ""


@pytest.fixture()
def legacy_app(temp_db_path):
    # Tables as they existed before semester and the clearance fields were added
    engine = create_engine(f"sqlite:///{temp_db_path.as_posix()}")
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE students (student_id INTEGER PRIMARY KEY, register_number VARCHAR(32) NOT NULL UNIQUE, "
            "name VARCHAR(128) NOT NULL, department VARCHAR(128), year INTEGER NOT NULL, created_at DATETIME)"
        ))
        conn.execute(text(
            "CREATE TABLE marks (mark_id INTEGER PRIMARY KEY, student_id_fk INTEGER NOT NULL, "
            "subject VARCHAR(128) NOT NULL, iat1 INTEGER, iat2 INTEGER, model INTEGER, "
            "signed BOOLEAN NOT NULL DEFAULT 0, created_at DATETIME, updated_at DATETIME)"
        ))
    engine.dispose()
    app = create_app()
    app.config["TESTING"] = True
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def test_legacy_schema_is_detected(legacy_app):
    with legacy_app.app_context():
        caps = store.current_capabilities()
        assert not caps.students_has_semester
        assert not caps.marks_has_clearance_fields
        sql = store.migration_sql(caps)
        assert "ADD COLUMN semester" in sql
        assert "ADD COLUMN department_fine" in sql


def test_legacy_schema_writes_drop_unsupported_fields(legacy_app):
    with legacy_app.app_context():
        student = store.insert_student(_student("OLD1", semester=3))
        assert "semester" not in student
        store.upsert_mark(student["student_id"], "Office", {
            "signed": True, "assignment_submitted": True, "department_fine": 0, "iat1": None,
        })
        marks = store.find_marks_by_student_id(student["student_id"])
        assert marks[0]["signed"] is True
        assert "department_fine" not in marks[0]
        assert store.list_students(semester=3) == []
