from flask import request, current_app
from sqlalchemy.exc import SQLAlchemyError
from . import students_bp
from .. import db, limiter, store
from ..api_utils import api_success, api_error, request_data
from ..catalog import get_catalog
from ..clearance.services import reconcile, clearance_summary

YEAR_RANGE = (2, 4)
SEMESTER_RANGE = (1, 8)


def _bounded_int(raw, label, low, high):
    if isinstance(raw, bool):
        raise ValueError(f"{label} must be a number")
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        raise ValueError(f"{label} must be a number")
    if not low <= value <= high:
        raise ValueError(f"{label} must be between {low} and {high}")
    return value


def parse_student_fields(data, *, partial=False, require_semester=False, require_department=True):
    """
    Validate student fields from a request body.
    With partial=True only the keys present are validated and returned.
    """
    fields = {}

    def _present(key):
        value = data.get(key)
        return value is not None and str(value).strip() != ""

    for key in ("name", "register_number"):
        if _present(key):
            fields[key] = str(data[key]).strip()
        elif not partial:
            raise ValueError(f"{key.replace('_', ' ').capitalize()} is required")

    if _present("department"):
        fields["department"] = str(data["department"]).strip()
    elif not partial and require_department:
        raise ValueError("Department is required")

    if _present("year"):
        fields["year"] = _bounded_int(data["year"], "Year", *YEAR_RANGE)
    elif not partial:
        raise ValueError("Year is required")

    if _present("semester"):
        fields["semester"] = _bounded_int(data["semester"], "Semester", *SEMESTER_RANGE)
    elif not partial and require_semester:
        raise ValueError("Semester is required")

    return fields


def student_payload(student):
    created = student.get("created_at")
    return {
        "student_id": student.get("student_id"),
        "register_number": student.get("register_number"),
        "name": student.get("name"),
        "department": student.get("department"),
        "year": student.get("year"),
        "semester": student.get("semester"),
        "created_at": created.isoformat() if hasattr(created, "isoformat") else created,
    }


def build_view(student, marks, catalog=None):
    catalog = catalog or get_catalog()
    subjects = catalog.subjects_for(student.get("year"), student.get("semester"))
    return reconcile(subjects, marks)


@students_bp.route("/register", methods=["POST"])
@limiter.limit("10 per minute", methods=["POST"])
def register():
    """Student self-service registration."""
    data = request_data(request)
    try:
        fields = parse_student_fields(data)
    except ValueError as e:
        return api_error("validation_error", str(e), 400)

    try:
        student = store.insert_student(fields)
    except store.StudentAlreadyExists as e:
        return api_error("already_registered", str(e), 409)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to register student %s", fields.get("register_number"))
        return api_error("store_error", "Failed to register student", 500)

    return api_success(student_payload(student), status=201)


@students_bp.route("/<register_number>/certificate", methods=["GET"])
def certificate(register_number):
    """No-due certificate data: every catalog subject with its clearance status."""
    try:
        student, marks = store.load_student_record(register_number.strip())
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to load certificate for %s", register_number)
        return api_error("store_error", "Failed to load student data", 500)

    if student is None:
        return api_error("not_found", "Student not found", 404)

    catalog = get_catalog()
    view = build_view(student, marks, catalog)
    data = {"student": student_payload(student)}
    data.update(clearance_summary(view, catalog))
    return api_success(data)
