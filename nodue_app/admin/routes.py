from io import BytesIO
from flask import request, current_app, Response
from flask_login import login_required
from openpyxl import Workbook
from openpyxl.styles import Font
from sqlalchemy.exc import SQLAlchemyError
from . import admin_bp
from .. import db, csrf_required, store
from ..api_utils import api_success, api_error, request_data
from ..catalog import get_catalog
from ..decorators import role_required
from ..clearance.services import (
    SCORE_FIELDS,
    apply_patch,
    build_save_patch,
    clearance_summary,
    reconcile,
    sheet_row,
    fee_status,
)
from ..students.routes import parse_student_fields, student_payload, build_view, SEMESTER_RANGE


def _semester_arg():
    raw = (request.args.get("semester") or "").strip()
    if not raw.isdigit():
        raise ValueError("semester query parameter is required")
    semester = int(raw)
    low, high = SEMESTER_RANGE
    if not low <= semester <= high:
        raise ValueError(f"Semester must be between {low} and {high}")
    return semester


def _store_failure(message):
    db.session.rollback()
    current_app.logger.exception(message)
    return api_error("store_error", message, 500)


def _editor_payload(student, view, catalog):
    data = {"student": student_payload(student)}
    data.update(clearance_summary(view, catalog))
    return data


def save_clearance(student, data, catalog, progress):
    """
    Apply bulk and per-subject edits to a student's view and upsert each
    touched subject, one row at a time.

    progress["saved"] counts rows written so far, so a caller can report how
    far a failed save got. Rows are committed individually; a failure part
    way leaves earlier subjects saved.
    """
    subjects = catalog.subjects_for(student.get("year"), student.get("semester"))
    patch = build_save_patch(subjects, data, catalog)
    view = reconcile(subjects, store.find_marks_by_student_id(student["student_id"]))
    updated = apply_patch(view, patch)

    touched = [s for s in updated.subjects if s in patch]
    progress["total"] = len(touched)
    for subject in touched:
        store.upsert_mark(student["student_id"], subject, updated.record_for(subject).fields())
        progress["saved"] += 1
    return updated


# --- STUDENTS ---

@admin_bp.route("/students", methods=["GET"])
@login_required
@role_required("admin")
def list_students():
    semester = None
    if request.args.get("semester"):
        try:
            semester = _semester_arg()
        except ValueError as e:
            return api_error("validation_error", str(e), 400)
    try:
        students = store.list_students(semester=semester)
    except SQLAlchemyError:
        return _store_failure("Failed to fetch registered students")
    return api_success([student_payload(s) for s in students], meta={"count": len(students)})


@admin_bp.route("/students", methods=["POST"])
@login_required
@role_required("admin")
@csrf_required
def create_student():
    data = request_data(request)
    try:
        fields = parse_student_fields(data, require_semester=True)
    except ValueError as e:
        return api_error("validation_error", str(e), 400)
    try:
        student = store.insert_student(fields)
    except store.StudentAlreadyExists as e:
        return api_error("already_registered", str(e), 409)
    except SQLAlchemyError:
        return _store_failure("Failed to register student")
    current_app.logger.info("Admin created student %s", student["register_number"])
    return api_success(student_payload(student), status=201)


@admin_bp.route("/students/<register_number>", methods=["GET"])
@login_required
@role_required("admin")
def student_detail(register_number):
    try:
        student, marks = store.load_student_record(register_number.strip())
    except SQLAlchemyError:
        return _store_failure("Failed to fetch student marks")
    if student is None:
        return api_error("not_found", "Student not found. You can create a new student.", 404)
    catalog = get_catalog()
    return api_success(_editor_payload(student, build_view(student, marks, catalog), catalog))


@admin_bp.route("/students/<register_number>", methods=["PATCH"])
@login_required
@role_required("admin")
@csrf_required
def update_student(register_number):
    data = request_data(request)
    if "register_number" in data and str(data["register_number"]).strip() != register_number.strip():
        return api_error("validation_error", "Register number cannot be changed", 400)
    try:
        fields = parse_student_fields(data, partial=True)
    except ValueError as e:
        return api_error("validation_error", str(e), 400)
    fields.pop("register_number", None)

    try:
        student = store.find_student_by_register_number(register_number.strip())
        if student is None:
            return api_error("not_found", "Student not found", 404)
        store.update_student(student["student_id"], fields)
        student, marks = store.load_student_record(student["register_number"])
    except SQLAlchemyError:
        return _store_failure("Failed to save student details")

    catalog = get_catalog()
    return api_success(_editor_payload(student, build_view(student, marks, catalog), catalog))


@admin_bp.route("/students/<register_number>/marks", methods=["PUT"])
@login_required
@role_required("admin")
@csrf_required
def save_marks(register_number):
    """
    Save per-subject edits for one student.

    Body: {"marks": [{"subject": "DM", "iat1": 42, "assignment_submitted": true}, ...],
           "department_fees_paid": true, "assignments_submitted": false,
           "bulk_scores": {"iat1": 40}}
    """
    data = request_data(request)
    catalog = get_catalog()
    progress = {"saved": 0, "total": 0}
    try:
        student = store.find_student_by_register_number(register_number.strip())
        if student is None:
            return api_error("not_found", "Student not found", 404)
        save_clearance(student, data, catalog, progress)
        student, marks = store.load_student_record(student["register_number"])
    except ValueError as e:
        return api_error("validation_error", str(e), 400)
    except SQLAlchemyError:
        return _store_failure(
            f"Failed to save marks ({progress['saved']} of {progress['total']} subjects saved)"
        )

    current_app.logger.info("Saved %d subject(s) for %s", progress["saved"], register_number)
    return api_success(
        _editor_payload(student, build_view(student, marks, catalog), catalog),
        meta={"saved_subjects": progress["saved"]},
    )


# --- SEMESTER SHEET ---

def _load_sheet(semester, catalog):
    students = store.list_students(semester=semester)
    marks_by_student = store.find_marks_by_student_ids([s["student_id"] for s in students])
    rows = []
    for student in students:
        view = build_view(student, marks_by_student.get(student["student_id"], []), catalog)
        rows.append((student, view))
    return rows


@admin_bp.route("/sheet", methods=["GET"])
@login_required
@role_required("admin")
def sheet():
    """All students of a semester, one summary row each."""
    try:
        semester = _semester_arg()
    except ValueError as e:
        return api_error("validation_error", str(e), 400)
    catalog = get_catalog()
    try:
        rows = _load_sheet(semester, catalog)
    except SQLAlchemyError:
        return _store_failure("Failed to load student marks")

    subjects = list(rows[0][1].subjects) if rows else []
    return api_success(
        {"semester": semester, "subjects": subjects, "students": [sheet_row(s, v, catalog) for s, v in rows]},
        meta={"count": len(rows)},
    )


@admin_bp.route("/sheet", methods=["PUT"])
@login_required
@role_required("admin")
@csrf_required
def save_sheet():
    """
    Bulk save for many students. A failure for one student is logged and
    counted; the remaining students are still saved.
    """
    data = request_data(request)
    entries = data.get("students")
    if not isinstance(entries, list):
        return api_error("validation_error", "students must be a list", 400)

    catalog = get_catalog()
    saved, failed, errors = 0, 0, []
    for entry in entries:
        reg_no = str((entry or {}).get("register_number") or "").strip() if isinstance(entry, dict) else ""
        progress = {"saved": 0, "total": 0}
        try:
            if not reg_no:
                raise ValueError("register_number is required")
            student = store.find_student_by_register_number(reg_no)
            if student is None:
                raise LookupError("Student not found")
            save_clearance(student, entry, catalog, progress)
            saved += 1
        except (ValueError, LookupError) as e:
            failed += 1
            errors.append({"register_number": reg_no, "message": str(e)})
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Error saving marks for %s", reg_no)
            failed += 1
            errors.append({
                "register_number": reg_no,
                "message": f"Failed to save ({progress['saved']} of {progress['total']} subjects saved)",
            })

    if failed:
        current_app.logger.warning("Sheet save: %d saved, %d failed", saved, failed)
    return api_success({"saved": saved, "failed": failed, "errors": errors}, meta={"partial": failed > 0})


@admin_bp.route("/sheet/export.xlsx", methods=["GET"])
@login_required
@role_required("admin")
def export_sheet():
    try:
        semester = _semester_arg()
    except ValueError as e:
        return api_error("validation_error", str(e), 400)
    catalog = get_catalog()
    try:
        rows = _load_sheet(semester, catalog)
    except SQLAlchemyError:
        return _store_failure("Failed to load student marks")

    wb = Workbook()
    ws = wb.active
    ws.title = f"Semester {semester}"
    header = ["Register Number", "Name", "Subject", "Category", "IAT1", "IAT2", "Model",
              "Assignment", "Department Fees", "Signed", "Due Status"]
    ws.append(header)
    for cell in ws[1]:
        cell.font = Font(bold=True)

    for student, view in rows:
        summary = clearance_summary(view, catalog)
        for row in summary["rows"]:
            academic = row["columns"]["show_marks"]
            ws.append([
                student["register_number"],
                student["name"],
                row["subject"],
                row["category"],
                *[(row[f] if academic else None) for f in SCORE_FIELDS],
                ("Submitted" if row["assignment_submitted"] else "Not Submitted") if academic else None,
                fee_status(view.record_for(row["subject"])) if academic else None,
                "Yes" if row["signed"] else "No",
                row["due_status"],
            ])
        ws.append([student["register_number"], student["name"], "Overall", None, None, None, None,
                   None, None, None, summary["overall_status"]])

    bio = BytesIO()
    wb.save(bio)
    bio.seek(0)
    filename = f"nodue_sheet_sem{semester}.xlsx"
    return Response(bio.read(), mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", headers={
        "Content-Disposition": f"attachment; filename={filename}"
    })


# --- SCHEMA ---

@admin_bp.route("/schema", methods=["GET"])
@login_required
@role_required("admin")
def schema_report():
    caps = store.current_capabilities()
    data = caps.as_dict()
    data["migration_sql"] = store.migration_sql(caps)
    return api_success(data)
