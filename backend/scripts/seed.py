"""Seed script: a demo company, its org chart and a few approval rules.

Idempotent: checks for existing records before inserting. Prints a bearer
token per user so the API can be exercised straight away.
Run: python scripts/seed.py   (from backend/)
"""
import sys
import os
from decimal import Decimal

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_approvals.core.security import create_access_token
from expense_approvals.db.session import SessionLocal
from expense_approvals.models.company import Company
from expense_approvals.models.user import User
from expense_approvals.services.rule_store import RuleStore


# ─── Upsert helpers ───────────────────────────────────────────────────────────

def _upsert_company(db: Session, name: str) -> Company:
    company = db.execute(select(Company).where(Company.name == name)).scalars().first()
    if company:
        print(f"  [skip] Company {name}")
        return company
    company = Company(name=name, default_currency="USD", country="United States")
    db.add(company)
    db.flush()
    print(f"  [new]  Company {name}")
    return company


def _upsert_user(
    db: Session,
    company: Company,
    email: str,
    name: str,
    role: str,
    manager: User | None = None,
    is_manager_approver: bool = False,
) -> User:
    user = db.execute(select(User).where(User.email == email)).scalars().first()
    if user:
        print(f"  [skip] User {email}")
        return user
    user = User(
        company_id=company.id,
        email=email,
        name=name,
        role=role,
        manager_id=manager.id if manager else None,
        is_manager_approver=is_manager_approver,
    )
    db.add(user)
    db.flush()
    print(f"  [new]  User {email} ({role})")
    return user


def _ensure_rule(store: RuleStore, company: Company, data: dict) -> None:
    existing = {r.name for r in store.list_rules(company.id, include_inactive=True)}
    if data["name"] in existing:
        print(f"  [skip] Rule {data['name']}")
        return
    store.create_rule(company.id, data)
    print(f"  [new]  Rule {data['name']}")


# ─── Main ─────────────────────────────────────────────────────────────────────

def seed() -> None:
    with SessionLocal() as db:
        print("Company & users")
        company = _upsert_company(db, "Acme Corp")
        admin = _upsert_user(db, company, "admin@acme.test", "Ada Admin", "ADMIN")
        cfo = _upsert_user(db, company, "cfo@acme.test", "Carl CFO", "MANAGER")
        lead = _upsert_user(
            db, company, "lead@acme.test", "Lena Lead", "MANAGER", is_manager_approver=True,
        )
        finance = _upsert_user(db, company, "finance@acme.test", "Finn Finance", "MANAGER")
        employee = _upsert_user(db, company, "emp@acme.test", "Eve Employee", "EMPLOYEE", manager=lead)
        db.commit()

        print("Approval rules")
        store = RuleStore(db)
        _ensure_rule(store, company, {
            "name": "Travel over 10k",
            "category": "Travel",
            "min_amount": Decimal("10000"),
            "approvers": [{"approver_id": finance.id}, {"approver_id": cfo.id}],
            "require_all_approvers": True,
            "is_manager_first": True,
        })
        _ensure_rule(store, company, {
            "name": "Equipment quorum",
            "category": "Equipment",
            "approvers": [{"approver_id": u.id} for u in (lead, finance, cfo, admin)],
            "min_approval_percentage": Decimal("50"),
            "specific_approver_id": cfo.id,
        })
        _ensure_rule(store, company, {
            "name": "Everything else",
            "category": None,
            "min_amount": Decimal("500"),
            "approvers": [{"approver_id": lead.id}],
            "require_all_approvers": True,
        })

        print("Tokens")
        for user in (admin, cfo, lead, finance, employee):
            token = create_access_token(str(user.id), user.role, company_id=str(company.id))
            print(f"  {user.email:<20} {token}")


if __name__ == "__main__":
    seed()
