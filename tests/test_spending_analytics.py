from datetime import datetime
from decimal import Decimal

import pytest

from analytics import AnalyticsService
from database import Base, make_engine, make_session_factory
from errors import ValidationError
from models import Transaction, TransactionType
from periods import resolve_filter_period
from stores import BudgetStore, LedgerStore, TransactionFilters


def make_analytics(tmp_path) -> tuple[AnalyticsService, object]:
    engine = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(engine)
    factory = make_session_factory(engine)
    service = AnalyticsService(LedgerStore(factory), BudgetStore(factory))
    return service, factory


def add_txn(
    session,
    when: datetime,
    txn_type: TransactionType,
    amount: str,
    category: str,
    owner: str = "alice",
) -> None:
    session.add(
        Transaction(
            owner_id=owner,
            type=txn_type,
            amount_cents=int(Decimal(amount) * 100),
            category=category,
            date=when,
        )
    )


class NoQueryLedger:
    def query_transactions(self, owner_id, filters=None):
        raise AssertionError("store must not be queried")


def test_spending_by_category_example(tmp_path) -> None:
    analytics, factory = make_analytics(tmp_path)
    with factory() as session:
        add_txn(session, datetime(2024, 3, 2), TransactionType.expense, "50", "Food")
        add_txn(session, datetime(2024, 3, 5), TransactionType.expense, "30", "Food")
        add_txn(session, datetime(2024, 3, 1), TransactionType.expense, "100", "Rent")
        session.commit()

    result = analytics.spending_by_category("alice", "2024-03-01", "2024-03-31")

    assert result["categories"] == [
        {
            "category": "Rent",
            "totalAmount": Decimal("100.00"),
            "transactionCount": 1,
            "percentage": Decimal("55.56"),
        },
        {
            "category": "Food",
            "totalAmount": Decimal("80.00"),
            "transactionCount": 2,
            "percentage": Decimal("44.44"),
        },
    ]
    assert result["totalSpending"] == Decimal("180.00")
    assert result["period"] == {
        "startDate": datetime(2024, 3, 1),
        "endDate": datetime(2024, 3, 31, 23, 59, 59, 999000),
    }


def test_spending_ignores_income_other_owners_and_outside_window(tmp_path) -> None:
    analytics, factory = make_analytics(tmp_path)
    with factory() as session:
        add_txn(session, datetime(2024, 3, 3), TransactionType.expense, "12.50", "Food")
        add_txn(session, datetime(2024, 3, 3), TransactionType.income, "900", "Salary")
        add_txn(
            session, datetime(2024, 3, 4), TransactionType.expense, "70", "Food", "bob"
        )
        add_txn(session, datetime(2024, 4, 1), TransactionType.expense, "40", "Food")
        session.commit()

    result = analytics.spending_by_category("alice", "2024-03-01", "2024-03-31")

    assert [c["category"] for c in result["categories"]] == ["Food"]
    assert result["categories"][0]["totalAmount"] == Decimal("12.50")
    assert result["categories"][0]["percentage"] == Decimal("100.00")
    assert result["totalSpending"] == Decimal("12.50")


def test_spending_defaults_to_current_month(tmp_path) -> None:
    analytics, factory = make_analytics(tmp_path)
    with factory() as session:
        add_txn(session, datetime(2024, 2, 29, 23, 59), TransactionType.expense, "5", "Food")
        add_txn(session, datetime(2024, 3, 1, 0, 0), TransactionType.expense, "7", "Food")
        add_txn(
            session,
            datetime(2024, 3, 31, 23, 59, 59),
            TransactionType.expense,
            "3",
            "Fuel",
        )
        session.commit()

    result = analytics.spending_by_category("alice", now=datetime(2024, 3, 15, 12, 0))

    assert result["totalSpending"] == Decimal("10.00")
    assert result["period"]["startDate"] == datetime(2024, 3, 1)
    assert result["period"]["endDate"] == datetime(2024, 3, 31, 23, 59, 59, 999000)


def test_spending_percentages_sum_close_to_hundred(tmp_path) -> None:
    analytics, factory = make_analytics(tmp_path)
    with factory() as session:
        for category in ("Food", "Fuel", "Fun"):
            add_txn(session, datetime(2024, 5, 2), TransactionType.expense, "10", category)
        session.commit()

    result = analytics.spending_by_category("alice", "2024-05-01", "2024-05-31")

    percentages = [c["percentage"] for c in result["categories"]]
    assert percentages == [Decimal("33.33")] * 3
    assert abs(sum(percentages) - 100) <= Decimal("0.1")


def test_spending_ties_keep_first_seen_order(tmp_path) -> None:
    analytics, factory = make_analytics(tmp_path)
    with factory() as session:
        add_txn(session, datetime(2024, 5, 9), TransactionType.expense, "20", "Books")
        add_txn(session, datetime(2024, 5, 1), TransactionType.expense, "20", "Gym")
        add_txn(session, datetime(2024, 5, 3), TransactionType.expense, "45", "Travel")
        session.commit()

    first = analytics.spending_by_category("alice", "2024-05-01", "2024-05-31")
    second = analytics.spending_by_category("alice", "2024-05-01", "2024-05-31")

    assert [c["category"] for c in first["categories"]] == ["Travel", "Gym", "Books"]
    assert first == second


def test_spending_with_only_free_transactions_has_zero_percentages(tmp_path) -> None:
    analytics, factory = make_analytics(tmp_path)
    with factory() as session:
        add_txn(session, datetime(2024, 5, 2), TransactionType.expense, "0", "Samples")
        session.commit()

    result = analytics.spending_by_category("alice", "2024-05-01", "2024-05-31")

    assert result["totalSpending"] == Decimal("0.00")
    assert result["categories"][0]["percentage"] == Decimal("0.00")
    assert result["categories"][0]["transactionCount"] == 1


def test_spending_empty_window(tmp_path) -> None:
    analytics, _ = make_analytics(tmp_path)
    result = analytics.spending_by_category("alice", "2024-05-01", "2024-05-31")
    assert result["categories"] == []
    assert result["totalSpending"] == Decimal("0.00")


def test_spending_rejects_bad_dates_before_querying() -> None:
    analytics = AnalyticsService(NoQueryLedger(), BudgetStore(None), max_workers=1)
    with pytest.raises(ValidationError):
        analytics.spending_by_category("alice", "yesterday", None)


def test_monthly_trend_with_only_expenses(tmp_path) -> None:
    analytics, factory = make_analytics(tmp_path)
    with factory() as session:
        add_txn(session, datetime(2024, 3, 12), TransactionType.expense, "200", "Rent")
        session.commit()

    result = analytics.monthly_trends("alice", "2024-01-01", "2024-06-30")

    assert result["trends"] == [
        {
            "year": 2024,
            "month": 3,
            "income": Decimal("0.00"),
            "expense": Decimal("200.00"),
            "balance": Decimal("-200.00"),
            "incomeCount": 0,
            "expenseCount": 1,
        }
    ]


def test_monthly_trends_pivot_and_sort(tmp_path) -> None:
    analytics, factory = make_analytics(tmp_path)
    with factory() as session:
        add_txn(session, datetime(2024, 2, 1), TransactionType.income, "1000", "Salary")
        add_txn(session, datetime(2024, 2, 3), TransactionType.expense, "99.99", "Food")
        add_txn(session, datetime(2024, 2, 20), TransactionType.expense, "0.02", "Food")
        add_txn(session, datetime(2023, 12, 24), TransactionType.income, "50", "Gift")
        add_txn(session, datetime(2024, 1, 5), TransactionType.income, "10.10", "Refund")
        add_txn(session, datetime(2024, 1, 6), TransactionType.income, "5", "Refund")
        session.commit()

    result = analytics.monthly_trends("alice", "2023-12-01", "2024-02-29")
    trends = result["trends"]

    assert [(t["year"], t["month"]) for t in trends] == [(2023, 12), (2024, 1), (2024, 2)]
    feb = trends[2]
    assert feb["income"] == Decimal("1000.00")
    assert feb["expense"] == Decimal("100.01")
    assert feb["balance"] == Decimal("899.99")
    assert (feb["incomeCount"], feb["expenseCount"]) == (1, 2)
    assert trends[1]["income"] == Decimal("15.10")
    assert trends[1]["incomeCount"] == 2
    for bucket in trends:
        assert bucket["balance"] == bucket["income"] - bucket["expense"]


def test_monthly_trends_default_to_trailing_year(tmp_path) -> None:
    analytics, factory = make_analytics(tmp_path)
    with factory() as session:
        add_txn(session, datetime(2023, 6, 30, 23, 0), TransactionType.expense, "1", "Old")
        add_txn(session, datetime(2023, 7, 1, 0, 0), TransactionType.expense, "2", "Edge")
        add_txn(session, datetime(2024, 6, 15, 9, 0), TransactionType.income, "3", "Now")
        add_txn(session, datetime(2024, 6, 15, 11, 0), TransactionType.income, "4", "Later")
        session.commit()

    now = datetime(2024, 6, 15, 10, 0)
    result = analytics.monthly_trends("alice", now=now)

    assert [(t["year"], t["month"]) for t in result["trends"]] == [(2023, 7), (2024, 6)]
    assert result["trends"][1]["income"] == Decimal("3.00")
    assert result["period"] == {"startDate": datetime(2023, 7, 1), "endDate": now}


def test_summary_totals_without_filters(tmp_path) -> None:
    analytics, factory = make_analytics(tmp_path)
    with factory() as session:
        add_txn(session, datetime(2024, 1, 1), TransactionType.income, "2500.50", "Salary")
        add_txn(session, datetime(2024, 1, 2), TransactionType.expense, "20.25", "Food")
        add_txn(session, datetime(2025, 7, 2), TransactionType.expense, "100", "Rent")
        add_txn(session, datetime(2024, 1, 2), TransactionType.expense, "999", "Rent", "bob")
        session.commit()

    summary = analytics.transaction_summary("alice")

    assert summary == {
        "totalIncome": Decimal("2500.50"),
        "incomeCount": 1,
        "totalExpense": Decimal("120.25"),
        "expenseCount": 2,
        "balance": Decimal("2380.25"),
    }


def test_summary_applies_filters_conjunctively(tmp_path) -> None:
    analytics, factory = make_analytics(tmp_path)
    with factory() as session:
        add_txn(session, datetime(2024, 1, 2), TransactionType.expense, "10", "Fast Food")
        add_txn(session, datetime(2024, 1, 3), TransactionType.expense, "15", "FOOD")
        add_txn(session, datetime(2024, 2, 3), TransactionType.expense, "30", "Food")
        add_txn(session, datetime(2024, 1, 4), TransactionType.expense, "40", "Rent")
        add_txn(session, datetime(2024, 1, 5), TransactionType.income, "50", "Food refund")
        session.commit()

    filters = TransactionFilters(
        type=TransactionType.expense,
        category="food",
        period=resolve_filter_period("2024-01-01", "2024-01-31"),
    )
    summary = analytics.transaction_summary("alice", filters)

    assert summary["totalExpense"] == Decimal("25.00")
    assert summary["expenseCount"] == 2
    assert summary["totalIncome"] == Decimal("0.00")
    assert summary["incomeCount"] == 0
    assert summary["balance"] == Decimal("-25.00")


def test_summary_category_filter_escapes_wildcards(tmp_path) -> None:
    analytics, factory = make_analytics(tmp_path)
    with factory() as session:
        add_txn(session, datetime(2024, 1, 2), TransactionType.expense, "10", "100% juice")
        add_txn(session, datetime(2024, 1, 3), TransactionType.expense, "15", "1000 cuts")
        session.commit()

    summary = analytics.transaction_summary(
        "alice", TransactionFilters(category="100%")
    )
    assert summary["expenseCount"] == 1
    assert summary["totalExpense"] == Decimal("10.00")


def test_summary_of_empty_ledger_is_zero(tmp_path) -> None:
    analytics, _ = make_analytics(tmp_path)
    summary = analytics.transaction_summary("nobody")
    assert summary["balance"] == Decimal("0.00")
    assert summary["incomeCount"] == summary["expenseCount"] == 0
