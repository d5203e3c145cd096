"""
Clearance engine.

Reconciles a student's sparse mark rows against the catalog's expected
subjects and derives per-subject and overall due status. Everything here is
pure: views are immutable and updates return new values.
"""
import math
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Optional

from ..catalog import DEFAULT_CATALOG

COMPLETED = "Completed"
PENDING = "Pending"

SCORE_FIELDS = ("iat1", "iat2", "model")
MARK_FIELDS = SCORE_FIELDS + ("signed", "assignment_submitted", "department_fine")


def _value(row, name):
    if isinstance(row, Mapping):
        return row.get(name)
    return getattr(row, name, None)


@dataclass(frozen=True)
class MarkRecord:
    subject: str
    iat1: Optional[int] = None
    iat2: Optional[int] = None
    model: Optional[int] = None
    signed: bool = False
    assignment_submitted: bool = False
    department_fine: int = 0

    @classmethod
    def from_row(cls, row, subject=None):
        """
        Build a record from a store row (mapping or object), defaulting
        fields the row does not carry: signed/assignment_submitted to False,
        department_fine to 0.
        """
        if isinstance(row, cls) and (subject is None or subject == row.subject):
            return row
        signed = _value(row, "signed")
        submitted = _value(row, "assignment_submitted")
        fine = _value(row, "department_fine")
        return cls(
            subject=subject if subject is not None else _value(row, "subject"),
            iat1=_value(row, "iat1"),
            iat2=_value(row, "iat2"),
            model=_value(row, "model"),
            signed=bool(signed) if signed is not None else False,
            assignment_submitted=bool(submitted) if submitted is not None else False,
            department_fine=int(fine) if fine is not None else 0,
        )

    def fields(self):
        return {name: getattr(self, name) for name in MARK_FIELDS}

    def as_dict(self):
        data = {"subject": self.subject}
        data.update(self.fields())
        return data


@dataclass(frozen=True)
class CompleteView:
    """Every expected subject paired with a record, in catalog order."""

    subjects: tuple = ()
    records: tuple = ()
    _index: dict = field(init=False, repr=False, compare=False, default=None)

    def __post_init__(self):
        object.__setattr__(self, "_index", {r.subject: r for r in self.records})

    def record_for(self, subject):
        return self._index.get(subject)

    def as_list(self):
        return [r.as_dict() for r in self.records]


def reconcile(expected_subjects, raw_marks):
    """
    Left-join the expected subjects with the raw rows by subject name.

    Missing rows become default records; rows for subjects outside the
    expected list are dropped. The result follows the catalog order.
    """
    by_subject = {}
    for row in raw_marks or ():
        record = MarkRecord.from_row(row)
        by_subject.setdefault(record.subject, record)

    subjects = tuple(expected_subjects or ())
    records = tuple(by_subject.get(s) or MarkRecord(subject=s) for s in subjects)
    return CompleteView(subjects=subjects, records=records)


def due_status(subject, mark, catalog=None):
    """
    Administrative subjects clear on signature alone. Academic subjects clear
    when the assignment is submitted and the department fine is 0. Scores
    never take part.
    """
    catalog = catalog or DEFAULT_CATALOG
    record = MarkRecord.from_row(mark, subject=subject) if mark is not None else MarkRecord(subject=subject)
    if catalog.is_administrative(subject):
        return COMPLETED if record.signed else PENDING
    if record.assignment_submitted and record.department_fine == 0:
        return COMPLETED
    return PENDING


def subject_statuses(view, catalog=None):
    return {s: due_status(s, view.record_for(s), catalog) for s in view.subjects}


def overall_status(expected_subjects, view, catalog=None, empty_status=COMPLETED):
    subjects = tuple(expected_subjects or ())
    if not subjects:
        return empty_status
    for subject in subjects:
        if due_status(subject, view.record_for(subject), catalog) != COMPLETED:
            return PENDING
    return COMPLETED


# --- Patches: {subject: {field: value}} ---

def merge_patches(*patches):
    merged = {}
    for patch in patches:
        for subject, changes in (patch or {}).items():
            merged.setdefault(subject, {}).update(changes)
    return merged


def apply_patch(view, patch):
    """Return a new view with the patch applied; unknown subjects are ignored."""
    records = []
    for record in view.records:
        changes = (patch or {}).get(record.subject)
        if changes:
            unknown = set(changes) - set(MARK_FIELDS)
            if unknown:
                raise ValueError(f"Unknown mark fields: {', '.join(sorted(unknown))}")
            record = replace(record, **changes)
        records.append(record)
    return CompleteView(subjects=view.subjects, records=tuple(records))


def apply_bulk_fee_update(expected_subjects, is_paid, catalog=None):
    """Fan a whole-student fee status out to every academic subject."""
    catalog = catalog or DEFAULT_CATALOG
    fine = 0 if is_paid else 1
    return {s: {"department_fine": fine} for s in catalog.academic_subjects(expected_subjects)}


def apply_bulk_assignment_update(expected_subjects, submitted, catalog=None):
    catalog = catalog or DEFAULT_CATALOG
    return {s: {"assignment_submitted": bool(submitted)} for s in catalog.academic_subjects(expected_subjects)}


def apply_bulk_score_update(expected_subjects, score_field, value, catalog=None):
    if score_field not in SCORE_FIELDS:
        raise ValueError(f"Unknown score field: {score_field}")
    catalog = catalog or DEFAULT_CATALOG
    score = coerce_score(value)
    return {s: {score_field: score} for s in catalog.academic_subjects(expected_subjects)}


# --- Roll-ups used by the sheet view ---

def average_score(view, score_field, catalog=None):
    """Mean of entered scores over academic subjects, rounded half-up."""
    catalog = catalog or DEFAULT_CATALOG
    values = [
        getattr(r, score_field) for r in view.records
        if not catalog.is_administrative(r.subject) and getattr(r, score_field) is not None
    ]
    if not values:
        return None
    return int(math.floor(sum(values) / len(values) + 0.5))


def overall_assignment_submitted(view, catalog=None):
    catalog = catalog or DEFAULT_CATALOG
    return all(r.assignment_submitted for r in view.records if not catalog.is_administrative(r.subject))


def overall_fees_paid(view, catalog=None):
    catalog = catalog or DEFAULT_CATALOG
    return all(r.department_fine == 0 for r in view.records if not catalog.is_administrative(r.subject))


def fee_status(record):
    return "Paid" if record.department_fine == 0 else "Pending"


# --- Input coercion ---

def coerce_score(value):
    """Blank means "not entered"; anything else must be an integer 0..100."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if value == "":
            return None
    if isinstance(value, bool):
        raise ValueError("Score must be a number")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError("Score must be a whole number")
    try:
        score = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid score: {value!r}")
    if not 0 <= score <= 100:
        raise ValueError(f"Score out of range 0-100: {score}")
    return score


def coerce_flag(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        v = value.strip().lower()
        if v in ("true", "1", "yes", "on"):
            return True
        if v in ("false", "0", "no", "off"):
            return False
    raise ValueError(f"Invalid boolean: {value!r}")


def coerce_fine(value):
    if value is None or (isinstance(value, str) and not value.strip()):
        return 0
    if isinstance(value, bool):
        raise ValueError("Department fine must be a number")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError("Department fine must be a whole number")
    try:
        fine = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid department fine: {value!r}")
    if fine < 0:
        raise ValueError("Department fine cannot be negative")
    return fine


def parse_mark_edits(entries, expected_subjects):
    """
    Turn request entries like {"subject": "DM", "iat1": "45", "signed": true}
    into a patch. Only keys present in an entry are changed.
    """
    expected = set(expected_subjects)
    patch = {}
    for entry in entries or ():
        if not isinstance(entry, Mapping):
            raise ValueError("Each mark entry must be an object")
        subject = entry.get("subject")
        if not isinstance(subject, str) or not subject.strip():
            raise ValueError("Mark entry is missing a subject")
        subject = subject.strip()
        if subject not in expected:
            raise ValueError(f"Unknown subject for this student: {subject}")
        changes = {}
        for name in SCORE_FIELDS:
            if name in entry:
                changes[name] = coerce_score(entry[name])
        if "signed" in entry:
            changes["signed"] = coerce_flag(entry["signed"])
        if "assignment_submitted" in entry:
            changes["assignment_submitted"] = coerce_flag(entry["assignment_submitted"])
        if "department_fees_paid" in entry:
            changes["department_fine"] = 0 if coerce_flag(entry["department_fees_paid"]) else 1
        if "department_fine" in entry:
            changes["department_fine"] = coerce_fine(entry["department_fine"])
        patch.setdefault(subject, {}).update(changes)
    return patch


def build_save_patch(expected_subjects, data, catalog=None):
    """
    Combine whole-student bulk settings with per-subject edits.
    Bulk fan-outs apply first; explicit per-subject edits override them.
    """
    catalog = catalog or DEFAULT_CATALOG
    patches = []
    if data.get("department_fees_paid") is not None:
        patches.append(apply_bulk_fee_update(expected_subjects, coerce_flag(data["department_fees_paid"]), catalog))
    if data.get("assignments_submitted") is not None:
        patches.append(apply_bulk_assignment_update(expected_subjects, coerce_flag(data["assignments_submitted"]), catalog))
    bulk_scores = data.get("bulk_scores") or {}
    if not isinstance(bulk_scores, Mapping):
        raise ValueError("bulk_scores must be an object")
    for score_field, value in bulk_scores.items():
        patches.append(apply_bulk_score_update(expected_subjects, score_field, value, catalog))
    marks = data.get("marks") or []
    if not isinstance(marks, list):
        raise ValueError("marks must be a list")
    patches.append(parse_mark_edits(marks, expected_subjects))
    return merge_patches(*patches)


# --- Presentation-ready summaries ---

def certificate_rows(view, catalog=None):
    catalog = catalog or DEFAULT_CATALOG
    rows = []
    for record in view.records:
        row = record.as_dict()
        row.update({
            "category": catalog.category_of(record.subject),
            "columns": catalog.column_config(record.subject),
            "fee_status": fee_status(record),
            "due_status": due_status(record.subject, record, catalog),
        })
        rows.append(row)
    return rows


def clearance_summary(view, catalog=None):
    catalog = catalog or DEFAULT_CATALOG
    return {
        "subjects": list(view.subjects),
        "subjects_configured": bool(view.subjects),
        "rows": certificate_rows(view, catalog),
        "overall_status": overall_status(view.subjects, view, catalog),
    }


def sheet_row(student, view, catalog=None):
    catalog = catalog or DEFAULT_CATALOG
    return {
        "register_number": student.get("register_number"),
        "name": student.get("name"),
        "year": student.get("year"),
        "semester": student.get("semester"),
        "subjects": list(view.subjects),
        "averages": {f: average_score(view, f, catalog) for f in SCORE_FIELDS},
        "assignments_submitted": overall_assignment_submitted(view, catalog),
        "department_fees_paid": overall_fees_paid(view, catalog),
        "signatures": {
            r.subject: r.signed for r in view.records if catalog.is_administrative(r.subject)
        },
        "statuses": subject_statuses(view, catalog),
        "overall_status": overall_status(view.subjects, view, catalog),
    }
