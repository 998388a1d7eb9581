from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import ConflictError, NotFoundError, ValidationError
from models import Budget, OwnerId, Transaction, decimal_to_cents
from periods import local_now, to_local
from schemas import BudgetIn, BudgetUpdate, TransactionIn, TransactionUpdate
from stores import TransactionFilters, apply_transaction_filters

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

DUPLICATE_BUDGET = "Budget already exists for this category, month, and year"

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit)

    def pagination(self) -> dict[str, int]:
        return {
            "total": self.total,
            "page": self.page,
            "pages": self.pages,
            "limit": self.limit,
        }


def clamp_paging(page: Optional[int], limit: Optional[int]) -> tuple[int, int]:
    page = max(page or 1, 1)
    limit = min(max(limit or DEFAULT_PAGE_SIZE, 1), MAX_PAGE_SIZE)
    return page, limit


def _reject_nulls(fields: dict[str, object], required: tuple[str, ...]) -> None:
    for name in required:
        if name in fields and fields[name] is None:
            raise ValidationError(f"{name} cannot be empty")


class TransactionService:
    def __init__(self, session: Session, owner_id: OwnerId) -> None:
        self.session = session
        self.owner_id = owner_id

    def create(self, data: TransactionIn) -> Transaction:
        txn = Transaction(
            owner_id=self.owner_id,
            type=data.type,
            amount_cents=decimal_to_cents(data.amount),
            category=data.category,
            description=data.description or None,
            date=to_local(data.date) if data.date else local_now(),
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(f"transaction_created: owner={self.owner_id} id={txn.id}")
        return txn

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction).where(
                Transaction.owner_id == self.owner_id,
                Transaction.id == transaction_id,
            )
        )
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        fields = data.model_dump(exclude_unset=True)
        _reject_nulls(fields, ("type", "amount", "category", "date"))

        if "type" in fields:
            txn.type = fields["type"]
        if "amount" in fields:
            txn.amount_cents = decimal_to_cents(fields["amount"])
        if "category" in fields:
            txn.category = fields["category"]
        if "description" in fields:
            txn.description = fields["description"] or None
        if "date" in fields:
            txn.date = to_local(fields["date"])
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()
        logger.info(f"transaction_deleted: owner={self.owner_id} id={transaction_id}")

    def list(
        self,
        filters: Optional[TransactionFilters] = None,
        *,
        sort: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Page[Transaction]:
        page, limit = clamp_paging(page, limit)
        base = apply_transaction_filters(
            select(Transaction), self.owner_id, filters or TransactionFilters()
        )
        total = int(
            self.session.execute(
                select(func.count()).select_from(base.subquery())
            ).scalar_one()
        )
        if sort == "amount":
            order = (Transaction.amount_cents.desc(), Transaction.id.desc())
        else:
            order = (Transaction.date.desc(), Transaction.id.desc())
        items = self.session.scalars(
            base.order_by(*order).offset((page - 1) * limit).limit(limit)
        ).all()
        return Page(items=list(items), total=total, page=page, limit=limit)


class BudgetService:
    def __init__(self, session: Session, owner_id: OwnerId) -> None:
        self.session = session
        self.owner_id = owner_id

    def _find_duplicate(
        self, category: str, month: int, year: int, *, exclude_id: Optional[int] = None
    ) -> Optional[Budget]:
        stmt = select(Budget).where(
            Budget.owner_id == self.owner_id,
            Budget.category == category,
            Budget.month == month,
            Budget.year == year,
        )
        if exclude_id is not None:
            stmt = stmt.where(Budget.id != exclude_id)
        return self.session.scalar(stmt)

    def _commit(self) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError(DUPLICATE_BUDGET) from exc

    def create(self, data: BudgetIn) -> Budget:
        if self._find_duplicate(data.category, data.month, data.year):
            raise ConflictError(DUPLICATE_BUDGET)
        budget = Budget(
            owner_id=self.owner_id,
            category=data.category,
            monthly_limit_cents=decimal_to_cents(data.monthly_limit),
            month=data.month,
            year=data.year,
        )
        self.session.add(budget)
        self._commit()
        self.session.refresh(budget)
        logger.info(
            f"budget_created: owner={self.owner_id} id={budget.id} "
            f"period={budget.year:04d}-{budget.month:02d}"
        )
        return budget

    def get(self, budget_id: int) -> Budget:
        budget = self.session.scalar(
            select(Budget).where(
                Budget.owner_id == self.owner_id, Budget.id == budget_id
            )
        )
        if not budget:
            raise NotFoundError("Budget not found")
        return budget

    def update(self, budget_id: int, data: BudgetUpdate) -> Budget:
        budget = self.get(budget_id)
        fields = data.model_dump(exclude_unset=True)
        _reject_nulls(fields, ("category", "monthly_limit", "month", "year"))

        category = fields.get("category", budget.category)
        month = fields.get("month", budget.month)
        year = fields.get("year", budget.year)
        if self._find_duplicate(category, month, year, exclude_id=budget.id):
            raise ConflictError(DUPLICATE_BUDGET)

        budget.category = category
        budget.month = month
        budget.year = year
        if "monthly_limit" in fields:
            budget.monthly_limit_cents = decimal_to_cents(fields["monthly_limit"])
        self._commit()
        self.session.refresh(budget)
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()
        logger.info(f"budget_deleted: owner={self.owner_id} id={budget_id}")

    def list(
        self,
        *,
        category: Optional[str] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
        sort: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Page[Budget]:
        page, limit = clamp_paging(page, limit)
        base = select(Budget).where(Budget.owner_id == self.owner_id)
        if category:
            base = base.where(
                Budget.category.icontains(category, autoescape=True)
            )
        if month is not None:
            base = base.where(Budget.month == month)
        if year is not None:
            base = base.where(Budget.year == year)

        total = int(
            self.session.execute(
                select(func.count()).select_from(base.subquery())
            ).scalar_one()
        )
        if sort == "monthlyLimit":
            order = (Budget.monthly_limit_cents.desc(), Budget.id.desc())
        else:
            order = (Budget.year.desc(), Budget.month.desc(), Budget.id.desc())
        items = self.session.scalars(
            base.order_by(*order).offset((page - 1) * limit).limit(limit)
        ).all()
        return Page(items=list(items), total=total, page=page, limit=limit)
