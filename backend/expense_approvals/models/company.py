from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from expense_approvals.db.base import Base, TimestampMixin, UUIDMixin


class Company(Base, UUIDMixin, TimestampMixin):
    """Tenant. Only the default currency matters to the approval engine."""

    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    default_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False)
