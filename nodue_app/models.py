from datetime import datetime, timezone
from flask_login import UserMixin
from sqlalchemy import false, text
from . import db


def utc_now():
    return datetime.now(timezone.utc)


class AdminUser(UserMixin):
    """The single configured administrator; not stored in the database."""

    role = "admin"

    def __init__(self, username):
        self.username = username

    def get_id(self):
        return str(self.username)


# ==========================================
# STUDENTS & CLEARANCE
# ==========================================

class Student(db.Model):
    __tablename__ = "students"
    student_id = db.Column(db.Integer, primary_key=True)
    register_number = db.Column(db.String(32), unique=True, nullable=False)
    name = db.Column(db.String(128), nullable=False)
    department = db.Column(db.String(128))
    year = db.Column(db.Integer, nullable=False)
    # Added after first deployment; older databases may lack it (see store.probe_capabilities)
    semester = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utc_now)

    marks = db.relationship("Mark", backref="student", lazy=True)

    def __repr__(self):
        return f"<Student {self.register_number}>"


class Mark(db.Model):
    __tablename__ = "marks"
    mark_id = db.Column(db.Integer, primary_key=True)
    student_id_fk = db.Column(db.Integer, db.ForeignKey("students.student_id"), nullable=False)
    subject = db.Column(db.String(128), nullable=False)
    iat1 = db.Column(db.Integer)
    iat2 = db.Column(db.Integer)
    model = db.Column(db.Integer)
    signed = db.Column(db.Boolean, nullable=False, default=False)
    # Server-side defaults only: these columns may be absent from older databases,
    # so Core inserts must not emit them unless the store asks for them.
    assignment_submitted = db.Column(db.Boolean, nullable=False, server_default=false())
    # 0 = fees paid / no due, any positive value = pending
    department_fine = db.Column(db.Integer, nullable=False, server_default=text("0"))
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, onupdate=utc_now)

    __table_args__ = (
        db.UniqueConstraint("student_id_fk", "subject", name="uq_mark_student_subject"),
    )

    def __repr__(self):
        return f"<Mark student={self.student_id_fk} subject={self.subject}>"
