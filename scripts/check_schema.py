import sys
import os

# Add project root to sys.path
sys.path.append(os.getcwd())

from nodue_app import create_app
from nodue_app.store import current_capabilities, migration_sql

app = create_app()

with app.app_context():
    caps = current_capabilities()
    report = caps.as_dict()
    print("students.semester present:", report["students_has_semester"])
    print("marks clearance fields present:", report["marks_has_clearance_fields"])
    if report["missing_columns"]:
        print("Missing columns:", ", ".join(report["missing_columns"]))
        print("\nRun `flask --app nodue_app db upgrade`, or apply manually:\n")
        print(migration_sql(caps))
        sys.exit(1)
    print("Schema is up to date.")
