"""HTTP tests for the approval and expense endpoints."""
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport

from expense_approvals.core.deps import get_current_user
from expense_approvals.core.limiter import limiter
from expense_approvals.db.session import get_session
from expense_approvals.main import app
from expense_approvals.services.approval import get_requests_for_expense

from factories import make_expense, make_rule, make_user


@pytest.fixture(autouse=True)
def _reset_app():
    limiter.reset()
    yield
    app.dependency_overrides.clear()


def login_as(db_session, user):
    """Route the app to the test session and authenticate as ``user``."""
    def _session():
        yield db_session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_current_user] = lambda: user


def client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def flow(db_session, company, employee):
    """Expense with a started require-all flow for two managers."""
    m1, m2 = make_user(db_session, company), make_user(db_session, company)
    make_rule(db_session, company, [m1, m2], require_all_approvers=True, min_amount=Decimal("10000"))
    expense = make_expense(db_session, company, employee, amount="12000")
    return expense, m1, m2


async def _start(db_session, employee, expense):
    login_as(db_session, employee)
    async with client() as c:
        return await c.post(f"/api/v1/expenses/{expense.id}/approval-flow")


# ─── POST /api/v1/expenses/{id}/approval-flow ─────────────────────────────────

@pytest.mark.asyncio
async def test_start_flow_returns_201(db_session, employee, flow):
    expense, _, _ = flow
    response = await _start(db_session, employee, expense)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "PENDING"
    assert data["requests_created"] == 2
    assert data["current_approval_step"] == 0


@pytest.mark.asyncio
async def test_start_flow_twice_returns_409(db_session, employee, flow):
    expense, _, _ = flow
    await _start(db_session, employee, expense)
    response = await _start(db_session, employee, expense)

    assert response.status_code == 409
    assert response.json()["error"] == "AlreadyInitiatedError"


@pytest.mark.asyncio
async def test_start_flow_by_other_employee_returns_403(db_session, company, flow):
    expense, _, _ = flow
    stranger = make_user(db_session, company, role="EMPLOYEE")
    response = await _start(db_session, stranger, expense)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_start_flow_unknown_expense_returns_404(db_session, employee):
    login_as(db_session, employee)
    async with client() as c:
        response = await c.post("/api/v1/expenses/00000000-0000-0000-0000-000000000000/approval-flow")
    assert response.status_code == 404


# ─── GET /api/v1/approvals ────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_pending_inbox_lists_own_requests(db_session, employee, flow):
    expense, m1, _ = flow
    await _start(db_session, employee, expense)

    login_as(db_session, m1)
    async with client() as c:
        response = await c.get("/api/v1/approvals")

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["items"][0]["approver_id"] == str(m1.id)
    assert data["items"][0]["category"] == "Travel"
    assert data["items"][0]["expense_status"] == "PENDING"


@pytest.mark.asyncio
async def test_employee_cannot_list_approvals(db_session, employee):
    login_as(db_session, employee)
    async with client() as c:
        response = await c.get("/api/v1/approvals")
    assert response.status_code == 403


# ─── POST /api/v1/approvals/{id}/action ───────────────────────────────────────

@pytest.mark.asyncio
async def test_approve_then_approve_finalises(db_session, employee, flow):
    expense, m1, m2 = flow
    await _start(db_session, employee, expense)
    ledger = get_requests_for_expense(db_session, expense.id)

    login_as(db_session, m1)
    async with client() as c:
        first = await c.post(f"/api/v1/approvals/{ledger[0].id}/action", json={"action": "approve"})
    login_as(db_session, m2)
    async with client() as c:
        second = await c.post(
            f"/api/v1/approvals/{ledger[1].id}/action",
            json={"action": "APPROVE", "comments": "ok"},
        )

    assert first.status_code == 200
    assert first.json()["status"] == "PENDING"
    assert first.json()["message"] == "Approved. Awaiting additional approvals."
    assert second.status_code == 200
    body = second.json()
    assert body["status"] == "APPROVED"
    assert body["message"] == "Expense fully approved"
    assert body["approval_request"]["status"] == "APPROVED"
    assert body["approval_request"]["comments"] == "ok"


@pytest.mark.asyncio
async def test_non_approver_gets_403(db_session, company, employee, flow):
    expense, _, _ = flow
    await _start(db_session, employee, expense)
    ledger = get_requests_for_expense(db_session, expense.id)
    outsider = make_user(db_session, company, role="MANAGER")

    login_as(db_session, outsider)
    async with client() as c:
        response = await c.post(f"/api/v1/approvals/{ledger[0].id}/action", json={"action": "APPROVE"})

    assert response.status_code == 403
    assert response.json()["detail"] == "You are not authorized to approve this request."
    assert get_requests_for_expense(db_session, expense.id)[0].status == "PENDING"


@pytest.mark.asyncio
async def test_invalid_action_returns_422(db_session, employee, flow):
    expense, m1, _ = flow
    await _start(db_session, employee, expense)
    ledger = get_requests_for_expense(db_session, expense.id)

    login_as(db_session, m1)
    async with client() as c:
        response = await c.post(f"/api/v1/approvals/{ledger[0].id}/action", json={"action": "ESCALATE"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_engine_errors_map_to_409(db_session, employee, flow):
    expense, m1, m2 = flow
    await _start(db_session, employee, expense)
    ledger = get_requests_for_expense(db_session, expense.id)

    login_as(db_session, m1)
    async with client() as c:
        await c.post(f"/api/v1/approvals/{ledger[0].id}/action", json={"action": "REJECT"})
        again = await c.post(f"/api/v1/approvals/{ledger[0].id}/action", json={"action": "APPROVE"})
    login_as(db_session, m2)
    async with client() as c:
        late = await c.post(f"/api/v1/approvals/{ledger[1].id}/action", json={"action": "APPROVE"})

    assert again.status_code == 409
    assert again.json()["error"] == "AlreadyProcessedError"
    assert late.status_code == 409
    assert late.json()["error"] == "ExpenseAlreadyFinalizedError"


@pytest.mark.asyncio
async def test_unknown_request_returns_404(db_session, company):
    manager = make_user(db_session, company)
    login_as(db_session, manager)
    async with client() as c:
        response = await c.post(
            "/api/v1/approvals/00000000-0000-0000-0000-000000000000/action",
            json={"action": "APPROVE"},
        )
    assert response.status_code == 404
    assert response.json()["error"] == "NotFoundError"


# ─── GET /api/v1/expenses/{id}/approvals ──────────────────────────────────────

@pytest.mark.asyncio
async def test_expense_ledger_visible_to_owner(db_session, employee, flow):
    expense, m1, m2 = flow
    await _start(db_session, employee, expense)

    login_as(db_session, employee)
    async with client() as c:
        response = await c.get(f"/api/v1/expenses/{expense.id}/approvals")

    assert response.status_code == 200
    data = response.json()
    assert [i["approver_id"] for i in data["items"]] == [str(m1.id), str(m2.id)]
    assert [i["step_number"] for i in data["items"]] == [0, 1]


@pytest.mark.asyncio
async def test_expense_ledger_hidden_from_strangers(db_session, company, employee, flow):
    expense, _, _ = flow
    await _start(db_session, employee, expense)
    stranger = make_user(db_session, company, role="EMPLOYEE")

    login_as(db_session, stranger)
    async with client() as c:
        response = await c.get(f"/api/v1/expenses/{expense.id}/approvals")
    assert response.status_code == 403
