"""
Persistence boundary for students and their per-subject mark rows.

The live schema is probed once at startup (``probe_capabilities``). Reads
select only the columns that exist and writes drop fields the schema lacks,
so older databases keep working until they are migrated. Database errors are
not caught here; they reach the caller unchanged.
"""
import logging
from dataclasses import dataclass
from flask import current_app
from sqlalchemy import inspect, select, insert, update
from . import db
from .models import Student, Mark

logger = logging.getLogger(__name__)

# Columns added after the first deployment
OPTIONAL_STUDENT_COLUMNS = ("semester",)
OPTIONAL_MARK_COLUMNS = ("assignment_submitted", "department_fine")

_MIGRATION_DDL = {
    ("students", "semester"): "ALTER TABLE students ADD COLUMN semester INTEGER;",
    ("marks", "assignment_submitted"): "ALTER TABLE marks ADD COLUMN assignment_submitted BOOLEAN NOT NULL DEFAULT FALSE;",
    ("marks", "department_fine"): "ALTER TABLE marks ADD COLUMN department_fine INTEGER NOT NULL DEFAULT 0;",
}


class StudentAlreadyExists(Exception):
    def __init__(self, register_number):
        super().__init__(f"Register number {register_number} is already registered")
        self.register_number = register_number


@dataclass(frozen=True)
class StoreCapabilities:
    student_columns: frozenset
    mark_columns: frozenset

    @classmethod
    def full(cls):
        return cls(
            student_columns=frozenset(c.name for c in Student.__table__.c),
            mark_columns=frozenset(c.name for c in Mark.__table__.c),
        )

    @property
    def students_has_semester(self):
        return "semester" in self.student_columns

    @property
    def marks_has_clearance_fields(self):
        return all(c in self.mark_columns for c in OPTIONAL_MARK_COLUMNS)

    @property
    def missing_columns(self):
        missing = [("students", c) for c in OPTIONAL_STUDENT_COLUMNS if c not in self.student_columns]
        missing += [("marks", c) for c in OPTIONAL_MARK_COLUMNS if c not in self.mark_columns]
        return missing

    def as_dict(self):
        return {
            "students_has_semester": self.students_has_semester,
            "marks_has_clearance_fields": self.marks_has_clearance_fields,
            "missing_columns": [f"{t}.{c}" for t, c in self.missing_columns],
        }


def probe_capabilities(engine):
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())

    def _columns(table):
        if table.name not in tables:
            return frozenset()
        return frozenset(c["name"] for c in inspector.get_columns(table.name))

    caps = StoreCapabilities(
        student_columns=_columns(Student.__table__),
        mark_columns=_columns(Mark.__table__),
    )
    if caps.missing_columns:
        logger.warning(
            "Database schema is missing %s; those fields will be read as defaults and not saved. "
            "Run `flask db upgrade` or apply migration_sql().",
            ", ".join(f"{t}.{c}" for t, c in caps.missing_columns),
        )
    return caps


def current_capabilities():
    caps = current_app.extensions.get("nodue_capabilities")
    if caps is None:
        caps = probe_capabilities(db.engine)
        current_app.extensions["nodue_capabilities"] = caps
    return caps


def migration_sql(caps=None):
    """DDL bringing an older database up to the current schema."""
    missing = caps.missing_columns if caps is not None else list(_MIGRATION_DDL)
    return "\n".join(_MIGRATION_DDL[key] for key in missing)


def _columns(table, available):
    return [c for c in table.c if c.name in available]


def _writable(fields, available):
    values = {k: v for k, v in fields.items() if k in available}
    dropped = sorted(set(fields) - set(values))
    if dropped:
        logger.debug("Skipping fields not present in the schema: %s", ", ".join(dropped))
    return values


# ==========================================
# STUDENTS
# ==========================================

def find_student_by_register_number(register_number):
    students = Student.__table__
    caps = current_capabilities()
    row = db.session.execute(
        select(*_columns(students, caps.student_columns)).where(students.c.register_number == register_number)
    ).mappings().first()
    return dict(row) if row else None


def list_students(semester=None):
    students = Student.__table__
    caps = current_capabilities()
    q = select(*_columns(students, caps.student_columns)).order_by(students.c.register_number)
    if semester is not None:
        if not caps.students_has_semester:
            return []
        q = q.where(students.c.semester == semester)
    return [dict(r) for r in db.session.execute(q).mappings().all()]


def insert_student(fields):
    register_number = fields["register_number"]
    if find_student_by_register_number(register_number) is not None:
        raise StudentAlreadyExists(register_number)
    caps = current_capabilities()
    values = _writable(fields, caps.student_columns - {"student_id"})
    db.session.execute(insert(Student.__table__).values(**values))
    db.session.commit()
    logger.info("Registered student %s", register_number)
    return find_student_by_register_number(register_number)


def update_student(student_id, fields):
    caps = current_capabilities()
    values = _writable(fields, caps.student_columns - {"student_id", "register_number"})
    if not values:
        return
    students = Student.__table__
    db.session.execute(update(students).where(students.c.student_id == student_id).values(**values))
    db.session.commit()


# ==========================================
# MARKS
# ==========================================

def find_marks_by_student_id(student_id):
    marks = Mark.__table__
    caps = current_capabilities()
    rows = db.session.execute(
        select(*_columns(marks, caps.mark_columns)).where(marks.c.student_id_fk == student_id)
    ).mappings().all()
    return [dict(r) for r in rows]


def find_marks_by_student_ids(student_ids):
    """Marks for many students in one query, grouped by student id."""
    grouped = {sid: [] for sid in student_ids}
    if not grouped:
        return grouped
    marks = Mark.__table__
    caps = current_capabilities()
    rows = db.session.execute(
        select(*_columns(marks, caps.mark_columns)).where(marks.c.student_id_fk.in_(list(grouped)))
    ).mappings().all()
    for r in rows:
        grouped.setdefault(r["student_id_fk"], []).append(dict(r))
    return grouped


def upsert_mark(student_id, subject, fields):
    """Insert or update the single row keyed by (student_id, subject)."""
    marks = Mark.__table__
    caps = current_capabilities()
    values = _writable(fields, caps.mark_columns - {"mark_id", "student_id_fk", "subject"})
    existing_id = db.session.execute(
        select(marks.c.mark_id).where(marks.c.student_id_fk == student_id, marks.c.subject == subject)
    ).scalar()
    if existing_id is None:
        db.session.execute(insert(marks).values(student_id_fk=student_id, subject=subject, **values))
    elif values:
        db.session.execute(update(marks).where(marks.c.mark_id == existing_id).values(**values))
    db.session.commit()


def load_student_record(register_number):
    """Student row plus its mark rows; (None, []) when unknown."""
    student = find_student_by_register_number(register_number)
    if student is None:
        return None, []
    return student, find_marks_by_student_id(student["student_id"])
