import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from errors import StoreError
from models import Budget, OwnerId, Transaction, TransactionType
from periods import Period

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionFilters:
    type: Optional[TransactionType] = None
    # case-insensitive substring
    category: Optional[str] = None
    exact_category: Optional[str] = None
    period: Optional[Period] = None


def apply_transaction_filters(
    stmt: Select, owner_id: OwnerId, filters: TransactionFilters
) -> Select:
    stmt = stmt.where(Transaction.owner_id == owner_id)
    if filters.type is not None:
        stmt = stmt.where(Transaction.type == filters.type)
    if filters.category:
        stmt = stmt.where(
            Transaction.category.icontains(filters.category, autoescape=True)
        )
    if filters.exact_category is not None:
        stmt = stmt.where(Transaction.category == filters.exact_category)
    if filters.period is not None:
        if filters.period.start is not None:
            stmt = stmt.where(Transaction.date >= filters.period.start)
        if filters.period.end is not None:
            stmt = stmt.where(Transaction.date <= filters.period.end)
    return stmt


class LedgerStore:
    """Read-only access to an owner's transactions.

    Every query runs in its own short-lived session, so one store can serve
    several worker threads at once.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def query_transactions(
        self, owner_id: OwnerId, filters: Optional[TransactionFilters] = None
    ) -> list[Transaction]:
        stmt = apply_transaction_filters(
            select(Transaction), owner_id, filters or TransactionFilters()
        ).order_by(Transaction.date.asc(), Transaction.id.asc())
        try:
            with self.session_factory() as session:
                return list(session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            logger.exception(f"ledger_query_failed: owner={owner_id}")
            raise StoreError("Failed to query transactions") from exc


class BudgetStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def query_budgets(self, owner_id: OwnerId, month: int, year: int) -> list[Budget]:
        stmt = (
            select(Budget)
            .where(
                Budget.owner_id == owner_id,
                Budget.month == month,
                Budget.year == year,
            )
            .order_by(Budget.category.asc(), Budget.id.asc())
        )
        try:
            with self.session_factory() as session:
                return list(session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            logger.exception(
                f"budget_query_failed: owner={owner_id} month={month} year={year}"
            )
            raise StoreError("Failed to query budgets") from exc
