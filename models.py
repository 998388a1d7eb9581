from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import NewType, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base

# Opaque owner reference; the analytics never look inside it.
OwnerId = NewType("OwnerId", str)

CENT = Decimal("0.01")


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class BudgetStatus(str, Enum):
    good = "good"
    warning = "warning"
    exceeded = "exceeded"


def cents_to_decimal(cents: int) -> Decimal:
    return (Decimal(cents) * CENT).quantize(CENT)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(200))
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_transactions_owner_date", "owner_id", "date"),
        Index("ix_transactions_owner_type", "owner_id", "type"),
        CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
    )

    @property
    def amount(self) -> Decimal:
        return cents_to_decimal(self.amount_cents)


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    monthly_limit_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "owner_id",
            "category",
            "month",
            "year",
            name="uq_budget_owner_category_month",
        ),
        Index("ix_budgets_owner_month", "owner_id", "month", "year"),
        CheckConstraint(
            "monthly_limit_cents >= 0", name="ck_budgets_limit_positive"
        ),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_budgets_month_range"),
        CheckConstraint("year BETWEEN 2000 AND 2100", name="ck_budgets_year_range"),
    )

    @property
    def monthly_limit(self) -> Decimal:
        return cents_to_decimal(self.monthly_limit_cents)


def decimal_to_cents(value: Decimal) -> int:
    return int((value / CENT).to_integral_value())
