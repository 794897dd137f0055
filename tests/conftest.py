import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("PERPLEXITY_AI_API_KEY", "test-llm-key")
os.environ.setdefault("OPENAI_API_KEY", "test-stt-key")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from wellness_api.core import security
from wellness_api.db import models, session
from wellness_api.main import app

PASSWORD = "secret123"
_BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)
_hash_cache = {}


def password_hash() -> str:
    if "hash" not in _hash_cache:
        _hash_cache["hash"] = security.get_password_hash(PASSWORD)
    return _hash_cache["hash"]


@pytest.fixture
def db():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    models.Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False)
    db = TestingSession()
    yield db
    db.close()
    engine.dispose()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[session.get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Seeds a user with consistent hierarchy caches unless chain= overrides them."""
    created = {"n": 0}

    def _make(user_id, role="employee", company_id="acme", manager=None, level=None, chain=None,
              department=None, **flags):
        if db.get(models.Company, company_id) is None:
            db.add(models.Company(id=company_id, name=company_id.title()))
        created["n"] += 1
        if level is None:
            level = manager.hierarchy_level + 1 if manager is not None else 0
        if chain is None:
            chain = [manager.id] + list(manager.reporting_chain or []) if manager is not None else []
        user = models.User(
            id=user_id,
            email=f"{user_id}@{company_id}.com",
            hashed_password=password_hash(),
            first_name=user_id.title(),
            last_name="Tester",
            role=role,
            company_id=company_id,
            department=department,
            manager_id=manager.id if manager is not None else None,
            hierarchy_level=level,
            reporting_chain=chain,
            direct_reports=[],
            created_at=_BASE_TIME + timedelta(minutes=created["n"]),
            **flags,
        )
        db.add(user)
        if manager is not None:
            manager.direct_reports = list(manager.direct_reports or []) + [user_id]
        db.commit()
        return user

    return _make


@pytest.fixture
def make_report(db):
    def _make(employee, days_ago=0.0, overall=7.0, risk="low", session_type="text", analysis="Doing fine.",
              **scores):
        values = dict(
            mood_rating=7, stress_level=4, anxiety_level=3, work_satisfaction=7,
            work_life_balance=6, energy_level=7, confidence_level=7, sleep_quality=6,
        )
        values.update(scores)
        report = models.WellnessReport(
            employee_id=employee.id,
            company_id=employee.company_id,
            overall_wellness=overall,
            risk_level=risk,
            session_type=session_type,
            session_duration=600,
            ai_analysis=analysis,
            created_at=datetime.now(timezone.utc) - timedelta(days=days_ago),
            **values,
        )
        db.add(report)
        db.commit()
        return report

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        token = security.create_access_token(data={"sub": user.email})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def org(make_user):
    """CEO(0) -> VP(1) -> Manager(3) -> E1, E2, E3 (4)."""
    ceo = make_user("ceo", role="employer", level=0, department="Executive",
                    can_view_team_reports=True, can_manage_employees=True, skip_level_access=True)
    vp = make_user("vp", role="manager", manager=ceo, level=1, department="Sales")
    mgr = make_user("mgr", role="manager", manager=vp, level=3, department="Sales")
    e1 = make_user("e1", manager=mgr, level=4, department="Sales")
    e2 = make_user("e2", manager=mgr, level=4, department="Support")
    e3 = make_user("e3", manager=mgr, level=4, department="Sales")
    return {"ceo": ceo, "vp": vp, "mgr": mgr, "e1": e1, "e2": e2, "e3": e3}
