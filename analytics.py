"""Analytics computed from an owner's transactions and budgets.

Every result is derived fresh from the stores on each call. Monetary values
are ``Decimal`` and are rounded half-up to cents at the output points only.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from config import get_settings
from models import Budget, BudgetStatus, OwnerId, TransactionType
from periods import Period, month_period, resolve_period, resolve_trend_period
from stores import BudgetStore, LedgerStore, TransactionFilters

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
WARNING_RATIO = Decimal("0.8")


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return round_money(part / whole * HUNDRED)


def classify_budget(actual: Decimal, budgeted: Decimal) -> BudgetStatus:
    if actual > budgeted:
        return BudgetStatus.exceeded
    # spending the limit exactly is on budget
    if actual == budgeted:
        return BudgetStatus.good
    if actual > budgeted * WARNING_RATIO:
        return BudgetStatus.warning
    return BudgetStatus.good


@dataclass(frozen=True)
class BudgetScope:
    budget_id: int
    category: str
    limit: Decimal


@dataclass(frozen=True)
class BudgetActual:
    scope: BudgetScope
    actual: Decimal
    transaction_count: int

    @property
    def status(self) -> BudgetStatus:
        return classify_budget(self.actual, self.scope.limit)

    @property
    def percentage(self) -> Decimal:
        return percent_of(self.actual, self.scope.limit)


def merge_budgets(budgets: Iterable[Budget]) -> list[BudgetScope]:
    """Collapse budgets sharing a category into one scope with a summed limit.

    The first budget seen keeps its id; spend for the category is then looked
    up once.
    """
    merged: dict[str, BudgetScope] = {}
    for budget in budgets:
        scope = merged.get(budget.category)
        if scope is None:
            merged[budget.category] = BudgetScope(
                budget_id=budget.id,
                category=budget.category,
                limit=budget.monthly_limit,
            )
            continue
        logger.warning(
            f"duplicate_budget_merged: category={budget.category!r} "
            f"kept={scope.budget_id} merged={budget.id}"
        )
        merged[budget.category] = replace(scope, limit=scope.limit + budget.monthly_limit)
    return list(merged.values())


class AnalyticsService:
    def __init__(
        self,
        ledger: LedgerStore,
        budgets: BudgetStore,
        *,
        max_workers: Optional[int] = None,
    ) -> None:
        self.ledger = ledger
        self.budgets = budgets
        self.max_workers = max_workers or get_settings().budget_workers

    def spending_by_category(
        self,
        owner_id: OwnerId,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> dict[str, object]:
        period = resolve_period(start_date, end_date, now=now)
        transactions = self.ledger.query_transactions(
            owner_id, TransactionFilters(type=TransactionType.expense, period=period)
        )

        totals: dict[str, Decimal] = {}
        counts: dict[str, int] = {}
        for txn in transactions:
            totals[txn.category] = totals.get(txn.category, ZERO) + txn.amount
            counts[txn.category] = counts.get(txn.category, 0) + 1

        # sorted() is stable, so equal totals keep first-seen order
        ordered = sorted(totals.items(), key=lambda item: item[1], reverse=True)
        grand_total = sum(totals.values(), ZERO)
        categories = [
            {
                "category": category,
                "totalAmount": round_money(amount),
                "transactionCount": counts[category],
                "percentage": percent_of(amount, grand_total),
            }
            for category, amount in ordered
        ]
        logger.debug(
            f"spending_by_category: owner={owner_id} categories={len(categories)}"
        )
        return {
            "categories": categories,
            "totalSpending": round_money(grand_total),
            "period": period.as_dict(),
        }

    def monthly_trends(
        self,
        owner_id: OwnerId,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> dict[str, object]:
        period = resolve_trend_period(start_date, end_date, now=now)
        transactions = self.ledger.query_transactions(
            owner_id, TransactionFilters(period=period)
        )

        groups: dict[tuple[int, int, TransactionType], list] = {}
        for txn in transactions:
            key = (txn.date.year, txn.date.month, txn.type)
            group = groups.setdefault(key, [ZERO, 0])
            group[0] += txn.amount
            group[1] += 1

        months: dict[tuple[int, int], dict[str, object]] = {}
        for (year, month, txn_type), (amount, count) in groups.items():
            bucket = months.setdefault(
                (year, month),
                {"income": ZERO, "expense": ZERO, "incomeCount": 0, "expenseCount": 0},
            )
            bucket[txn_type.value] += amount
            bucket[f"{txn_type.value}Count"] += count

        trends = []
        for year, month in sorted(months):
            bucket = months[(year, month)]
            income = round_money(bucket["income"])
            expense = round_money(bucket["expense"])
            trends.append(
                {
                    "year": year,
                    "month": month,
                    "income": income,
                    "expense": expense,
                    "balance": round_money(income - expense),
                    "incomeCount": bucket["incomeCount"],
                    "expenseCount": bucket["expenseCount"],
                }
            )
        logger.debug(f"monthly_trends: owner={owner_id} months={len(trends)}")
        return {"trends": trends, "period": period.as_dict()}

    def budget_actuals(
        self, owner_id: OwnerId, month: int, year: int
    ) -> list[BudgetActual]:
        period = month_period(month, year)
        scopes = merge_budgets(self.budgets.query_budgets(owner_id, month, year))
        if not scopes:
            return []

        def lookup(scope: BudgetScope) -> BudgetActual:
            return self._actual_spend(owner_id, scope, period)

        workers = min(self.max_workers, len(scopes))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            # map() yields in submission order and re-raises worker errors
            return list(pool.map(lookup, scopes))

    def _actual_spend(
        self, owner_id: OwnerId, scope: BudgetScope, period: Period
    ) -> BudgetActual:
        transactions = self.ledger.query_transactions(
            owner_id,
            TransactionFilters(
                type=TransactionType.expense,
                exact_category=scope.category,
                period=period,
            ),
        )
        return BudgetActual(
            scope=scope,
            actual=sum((txn.amount for txn in transactions), ZERO),
            transaction_count=len(transactions),
        )

    def budget_vs_actual(
        self, owner_id: OwnerId, month: int, year: int
    ) -> dict[str, object]:
        actuals = self.budget_actuals(owner_id, month, year)

        categories = []
        for row in actuals:
            budgeted = round_money(row.scope.limit)
            actual = round_money(row.actual)
            categories.append(
                {
                    "budgetId": row.scope.budget_id,
                    "category": row.scope.category,
                    "budgeted": budgeted,
                    "actual": actual,
                    "difference": round_money(row.actual - row.scope.limit),
                    "percentage": row.percentage,
                    "status": row.status.value,
                    "transactionCount": row.transaction_count,
                }
            )

        total_budgeted = round_money(sum((row.scope.limit for row in actuals), ZERO))
        total_actual = round_money(sum((row.actual for row in actuals), ZERO))
        logger.debug(
            f"budget_vs_actual: owner={owner_id} month={month} year={year} "
            f"budgets={len(categories)}"
        )
        return {
            "month": month,
            "year": year,
            "categories": categories,
            "totals": {
                "totalBudgeted": total_budgeted,
                "totalActual": total_actual,
                "totalDifference": round_money(total_actual - total_budgeted),
            },
        }

    def budget_progress(
        self, owner_id: OwnerId, month: int, year: int
    ) -> dict[str, object]:
        actuals = self.budget_actuals(owner_id, month, year)
        budgets = [
            {
                "budgetId": row.scope.budget_id,
                "category": row.scope.category,
                "monthlyLimit": round_money(row.scope.limit),
                "actualSpending": round_money(row.actual),
                "remaining": round_money(row.scope.limit - row.actual),
                "percentage": row.percentage,
                "status": row.status.value,
            }
            for row in actuals
        ]
        return {"month": month, "year": year, "budgets": budgets}

    def transaction_summary(
        self, owner_id: OwnerId, filters: Optional[TransactionFilters] = None
    ) -> dict[str, object]:
        transactions = self.ledger.query_transactions(
            owner_id, filters or TransactionFilters()
        )
        totals = {TransactionType.income: ZERO, TransactionType.expense: ZERO}
        counts = {TransactionType.income: 0, TransactionType.expense: 0}
        for txn in transactions:
            totals[txn.type] += txn.amount
            counts[txn.type] += 1

        income = totals[TransactionType.income]
        expense = totals[TransactionType.expense]
        return {
            "totalIncome": round_money(income),
            "incomeCount": counts[TransactionType.income],
            "totalExpense": round_money(expense),
            "expenseCount": counts[TransactionType.expense],
            "balance": round_money(income - expense),
        }
