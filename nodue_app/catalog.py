"""
Subject catalog: which subjects a student of a given (year, semester) must
clear, and whether each one is academic or administrative.
"""
import json
from flask import current_app, has_app_context

ADMINISTRATIVE = "administrative"
ACADEMIC = "academic"

# Cleared by signature alone
ADMINISTRATIVE_SUBJECTS = ("Office", "Library")

YEAR_TWO_SUBJECTS = ("DM", "DPCO", "DSA", "FDS", "Oops", "Office", "Library")
YEAR_THREE_SUBJECTS = (
    "Computer Network",
    "Distributing Computing",
    "Es&IoT",
    "Full Stack WebDevelopment",
    "Software Testing & Automation",
    "Cloud Computing",
    "Office",
    "Library",
)

# Keys are (year, semester); (year, None) is the year-level list used when a
# student has no semester on record.
DEFAULT_SUBJECTS = {
    (2, 3): YEAR_TWO_SUBJECTS,
    (3, 5): YEAR_THREE_SUBJECTS,
    (2, None): YEAR_TWO_SUBJECTS,
    (3, None): YEAR_THREE_SUBJECTS,
}

DEPARTMENTS = [
    "Computer Science and Engineering",
    "Information Technology",
    "Electronics and Communication Engineering",
    "Electrical and Electronics Engineering",
    "Mechanical Engineering",
    "Civil Engineering",
]


def _parse_key(key):
    """Accepts (year, semester), "year:semester", "year" or an int year."""
    if isinstance(key, tuple):
        year, semester = key
    elif isinstance(key, int):
        year, semester = key, None
    else:
        parts = str(key).split(":", 1)
        year = parts[0]
        semester = parts[1] if len(parts) > 1 and parts[1].strip() else None
    return int(year), (int(semester) if semester is not None else None)


class SubjectCatalog:
    def __init__(self, subjects, administrative=ADMINISTRATIVE_SUBJECTS):
        self._subjects = {_parse_key(k): tuple(v) for k, v in subjects.items()}
        self._administrative = frozenset(administrative)

    def subjects_for(self, year, semester=None):
        """
        Ordered subject names for a (year, semester).
        With no semester the year-level list applies. An unknown pair is a
        configuration gap and yields an empty tuple, never an error.
        """
        try:
            key = (int(year), int(semester) if semester is not None else None)
        except (TypeError, ValueError):
            return ()
        return self._subjects.get(key, ())

    def category_of(self, subject):
        return ADMINISTRATIVE if subject in self._administrative else ACADEMIC

    def is_administrative(self, subject):
        return self.category_of(subject) == ADMINISTRATIVE

    def column_config(self, subject):
        academic = not self.is_administrative(subject)
        return {
            "show_marks": academic,  # IAT1, IAT2, Model
            "show_assignment": academic,
            "show_department_fees": academic,
            "show_due_status": academic,
            "show_signature": True,
        }

    def academic_subjects(self, subjects):
        return tuple(s for s in subjects if not self.is_administrative(s))

    def entries(self):
        out = []
        for (year, semester), subjects in sorted(self._subjects.items(), key=lambda kv: (kv[0][0], kv[0][1] or 0)):
            out.append({"year": year, "semester": semester, "subjects": list(subjects)})
        return out


DEFAULT_CATALOG = SubjectCatalog(DEFAULT_SUBJECTS)


def load_catalog(path=None):
    """
    Build the catalog from a JSON file, or return the built-in one.

    File format::

        {"administrative": ["Office", "Library"],
         "subjects": {"2:3": ["DM", "DPCO", "Office", "Library"], "2": [...]}}
    """
    if not path:
        return DEFAULT_CATALOG
    with open(path, encoding="utf-8") as fh:
        raw = json.load(fh)
    return SubjectCatalog(
        raw.get("subjects") or {},
        administrative=raw.get("administrative") or ADMINISTRATIVE_SUBJECTS,
    )


def get_catalog():
    if has_app_context():
        return current_app.extensions.get("nodue_catalog") or DEFAULT_CATALOG
    return DEFAULT_CATALOG
