import json

from nodue_app.catalog import (
    ACADEMIC,
    ADMINISTRATIVE,
    DEFAULT_CATALOG,
    YEAR_THREE_SUBJECTS,
    YEAR_TWO_SUBJECTS,
    SubjectCatalog,
    load_catalog,
)


def test_subjects_for_known_pairs():
    assert DEFAULT_CATALOG.subjects_for(2, 3) == YEAR_TWO_SUBJECTS
    assert DEFAULT_CATALOG.subjects_for(3, 5) == YEAR_THREE_SUBJECTS
    assert DEFAULT_CATALOG.subjects_for("2", "3") == YEAR_TWO_SUBJECTS


def test_missing_semester_uses_year_list():
    assert DEFAULT_CATALOG.subjects_for(3, None) == YEAR_THREE_SUBJECTS


def test_unknown_pair_is_an_empty_list():
    assert DEFAULT_CATALOG.subjects_for(4, 7) == ()
    assert DEFAULT_CATALOG.subjects_for(2, 4) == ()
    assert DEFAULT_CATALOG.subjects_for("x", 1) == ()


def test_categories():
    assert DEFAULT_CATALOG.category_of("Office") == ADMINISTRATIVE
    assert DEFAULT_CATALOG.category_of("Library") == ADMINISTRATIVE
    assert DEFAULT_CATALOG.category_of("DSA") == ACADEMIC
    assert DEFAULT_CATALOG.academic_subjects(YEAR_TWO_SUBJECTS) == ("DM", "DPCO", "DSA", "FDS", "Oops")


def test_column_config():
    office = DEFAULT_CATALOG.column_config("Office")
    assert office == {
        "show_marks": False,
        "show_assignment": False,
        "show_department_fees": False,
        "show_due_status": False,
        "show_signature": True,
    }
    assert all(DEFAULT_CATALOG.column_config("DM").values())


def test_custom_catalog_keys():
    cat = SubjectCatalog({"4:7": ["AI", "Office"], "4": ["AI"], (1, 1): ["Maths"]}, administrative=["Office"])
    assert cat.subjects_for(4, 7) == ("AI", "Office")
    assert cat.subjects_for(4) == ("AI",)
    assert cat.subjects_for(1, 1) == ("Maths",)
    assert [e["year"] for e in cat.entries()] == [1, 4, 4]


def test_load_catalog_from_file(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({
        "administrative": ["Hostel"],
        "subjects": {"2:4": ["OS", "Hostel"]},
    }), encoding="utf-8")
    cat = load_catalog(str(path))
    assert cat.subjects_for(2, 4) == ("OS", "Hostel")
    assert cat.is_administrative("Hostel")
    assert not cat.is_administrative("Office")


def test_load_catalog_defaults():
    assert load_catalog(None) is DEFAULT_CATALOG


def test_load_catalog_without_administrative_list(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"subjects": {"3": ["OS", "Library"]}}), encoding="utf-8")
    cat = load_catalog(str(path))
    assert cat.subjects_for(3) == ("OS", "Library")
    assert cat.is_administrative("Library")
