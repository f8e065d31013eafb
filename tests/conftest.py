"""Shared fixtures and utilities for tests."""

import os

# Must be set before the application settings are first loaded
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-chars-long-for-hs256")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from io import BytesIO
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from placement_api.config.database import Base, get_db
from placement_api.main import app
from placement_api.models import Application, Drive, DriveStage, Student, UploadMethod
from placement_api.services.audit import AuditLogger, get_audit_logger
from placement_api.services.cutoff import evaluate
from placement_api.services.rbac import Actor
from placement_api.services.result_store import ResultStore
from placement_api.services.token import issue_token


EMPLOYER_ID = "emp-1"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def audit_logger(session_factory):
    return AuditLogger(session_factory=session_factory, max_pending=10)


@pytest.fixture
def staff_actor():
    return Actor(id=EMPLOYER_ID, role="employer")


@pytest.fixture
def seed(db):
    """
    One drive posted by ``emp-1`` with three stages:

    1. Aptitude Test - 60% of 100
    2. Technical Interview - 30 marks of 50
    3. HR Interview - 50% of 100

    Students S001-S005 have applied; S999 exists but has not.
    """
    drive = Drive(
        drive_code="ACME-2026",
        company_name="Acme Corp",
        title="Graduate Engineer",
        posted_by_employer=EMPLOYER_ID,
        stages_enabled=True,
    )
    drive.stages.append(DriveStage(
        stage_name="Aptitude",
        stage_type="Aptitude Test",
        cutoff_type="percentage",
        cutoff_value=60,
        cutoff_total_marks=100,
    ))
    drive.stages.append(DriveStage(
        stage_name="Technical",
        stage_type="Technical Interview",
        cutoff_type="marks",
        cutoff_value=30,
        cutoff_total_marks=50,
        location="Block A",
    ))
    drive.stages.append(DriveStage(
        stage_name="HR",
        stage_type="HR Interview",
        cutoff_type="percentage",
        cutoff_value=50,
        cutoff_total_marks=100,
    ))
    db.add(drive)

    students = {}
    for i in range(1, 6):
        code = f"S00{i}"
        students[code] = Student(
            student_id=code,
            full_name=f"Student {i}",
            university_email=f"s{i}@uni.edu",
            branch="CSE",
        )
    students["S999"] = Student(student_id="S999", full_name="Outsider", university_email="s999@uni.edu")
    db.add_all(students.values())
    db.flush()

    applications = {}
    for code, student in students.items():
        if code == "S999":
            continue
        applications[code] = Application(drive_id=drive.id, student_id=student.id)
    db.add_all(applications.values())
    db.commit()

    return SimpleNamespace(
        drive=drive,
        stages=list(drive.stages),
        students=students,
        applications=applications,
    )


@pytest.fixture
def client(session_factory, audit_logger):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_audit_logger] = lambda: audit_logger
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build an Authorization header for a role and subject."""
    def _headers(role: str, sub: str = None) -> dict:
        token = issue_token(sub or f"{role}-1", role)
        return {"Authorization": f"Bearer {token}"}
    return _headers


def make_csv(rows: list[tuple], header: tuple = ("Student ID", "Marks Obtained")) -> bytes:
    lines = [",".join(header)] + [",".join(str(v) for v in row) for row in rows]
    return ("\n".join(lines) + "\n").encode("utf-8")


def make_xlsx(rows: list[tuple], header: tuple = ("Student ID", "Marks Obtained")) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(list(header))
    for row in rows:
        sheet.append(list(row))
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def csv_file():
    return make_csv


@pytest.fixture
def xlsx_file():
    return make_xlsx


@pytest.fixture
def result_factory(db, seed, staff_actor):
    """Store and commit one evaluated result for a seeded student."""
    def _make(code="S001", marks=70, stage_index=0, status_on_evaluation=None, **kwargs):
        stage = seed.stages[stage_index]
        total = stage.cutoff_total_marks
        store = ResultStore(db, status_on_evaluation=status_on_evaluation)
        result, created = store.upsert_result(
            seed.applications[code],
            seed.students[code],
            stage,
            marks,
            total,
            evaluate(marks, total, stage.cutoff_rule),
            staff_actor,
            UploadMethod.MANUAL.value,
            **kwargs,
        )
        db.commit()
        return result, created
    return _make


@pytest.fixture
def ids(seed):
    """Primary keys of the seeded rows, for building request URLs and bodies."""
    return SimpleNamespace(
        drive=seed.drive.id,
        stages=[stage.id for stage in seed.stages],
        students={code: student.id for code, student in seed.students.items()},
    )


@pytest.fixture
def employer_headers(auth_headers):
    return auth_headers("employer", EMPLOYER_ID)
