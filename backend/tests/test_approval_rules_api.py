"""HTTP tests for approval rule administration."""
import pytest
from httpx import AsyncClient, ASGITransport

from expense_approvals.core.deps import get_current_user
from expense_approvals.db.session import get_session
from expense_approvals.main import app
from expense_approvals.models.company import Company

from factories import make_user


@pytest.fixture(autouse=True)
def _clear_overrides():
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def admin(db_session, company):
    user = make_user(db_session, company, role="ADMIN")

    def _session():
        yield db_session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_current_user] = lambda: user
    return user


def client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _payload(*approvers, **overrides):
    body = {
        "name": "Travel over 10k",
        "category": "Travel",
        "min_amount": "10000",
        "approvers": [{"approver_id": str(u.id)} for u in approvers],
        "min_approval_percentage": "60",
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_create_and_list_rules(db_session, company, admin):
    m1, m2 = make_user(db_session, company), make_user(db_session, company)

    async with client() as c:
        created = await c.post("/api/v1/approval-rules", json=_payload(m1, m2))
        listed = await c.get("/api/v1/approval-rules")

    assert created.status_code == 201
    data = created.json()
    assert data["company_id"] == str(company.id)
    assert [a["step_number"] for a in data["approvers"]] == [1, 2]
    assert listed.status_code == 200
    assert [r["id"] for r in listed.json()] == [data["id"]]


@pytest.mark.asyncio
async def test_create_rule_without_approvers_returns_422(admin):
    async with client() as c:
        response = await c.post("/api/v1/approval-rules", json=_payload())

    assert response.status_code == 422
    assert response.json()["error"] == "InvalidRuleConfigurationError"


@pytest.mark.asyncio
async def test_create_rule_with_other_company_approver_returns_422(db_session, company, admin):
    other = Company(name="Globex", default_currency="EUR", country="DE")
    db_session.add(other)
    db_session.commit()
    outsider = make_user(db_session, other)

    async with client() as c:
        response = await c.post("/api/v1/approval-rules", json=_payload(outsider))
        listed = await c.get("/api/v1/approval-rules", params={"include_inactive": "true"})

    assert response.status_code == 422
    assert response.json()["error"] == "InvalidRuleConfigurationError"
    assert listed.json() == []


@pytest.mark.asyncio
async def test_percentage_out_of_range_rejected_by_schema(db_session, company, admin):
    m1 = make_user(db_session, company)
    async with client() as c:
        response = await c.post(
            "/api/v1/approval-rules", json=_payload(m1, min_approval_percentage="150"),
        )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_toggle_and_delete(db_session, company, admin):
    m1 = make_user(db_session, company)
    async with client() as c:
        rule_id = (await c.post("/api/v1/approval-rules", json=_payload(m1))).json()["id"]

        updated = await c.put(
            f"/api/v1/approval-rules/{rule_id}",
            json={"name": "Travel, any amount", "min_amount": None},
        )
        toggled = await c.put(f"/api/v1/approval-rules/{rule_id}/activate")
        deleted = await c.delete(f"/api/v1/approval-rules/{rule_id}")
        remaining = await c.get("/api/v1/approval-rules", params={"include_inactive": "true"})

    assert updated.status_code == 200
    assert updated.json()["name"] == "Travel, any amount"
    assert updated.json()["min_amount"] is None
    assert updated.json()["min_approval_percentage"] is not None
    assert toggled.json()["is_active"] is False
    assert deleted.status_code == 204
    assert [r["is_active"] for r in remaining.json()] == [False]


@pytest.mark.asyncio
async def test_other_company_rule_is_not_found(db_session, admin):
    async with client() as c:
        response = await c.put(
            "/api/v1/approval-rules/00000000-0000-0000-0000-000000000000/activate",
        )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_manager_cannot_manage_rules(db_session, company):
    manager = make_user(db_session, company, role="MANAGER")

    def _session():
        yield db_session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_current_user] = lambda: manager
    async with client() as c:
        response = await c.get("/api/v1/approval-rules")
    assert response.status_code == 403
