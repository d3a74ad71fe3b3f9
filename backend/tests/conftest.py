"""Shared fixtures: an in-memory SQLite database plus a company and employee."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import expense_approvals.models  # noqa: F401  (registers every table on Base.metadata)
from expense_approvals.db.base import Base
from expense_approvals.models.company import Company
from expense_approvals.services.locks import ExpenseLockRegistry

from factories import make_user


@pytest.fixture
def engine():
    # StaticPool + check_same_thread: the API tests hand this session to
    # FastAPI's threadpool
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    factory = sessionmaker(engine, expire_on_commit=False, autoflush=False)
    with factory() as session:
        yield session


@pytest.fixture
def locks():
    return ExpenseLockRegistry()


@pytest.fixture
def company(db_session):
    company = Company(name="Acme", default_currency="USD", country="US")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture
def employee(db_session, company):
    return make_user(db_session, company, role="EMPLOYEE", name="employee")
