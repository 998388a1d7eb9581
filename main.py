import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session, sessionmaker

from analytics import AnalyticsService
from database import SessionLocal
from errors import (
    AuthorizationError,
    ConflictError,
    LedgerError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from models import Budget, OwnerId, Transaction, TransactionType
from periods import local_now, resolve_filter_period, validate_month
from schemas import BudgetIn, BudgetUpdate, TransactionIn, TransactionUpdate
from services import BudgetService, TransactionService
from stores import BudgetStore, LedgerStore, TransactionFilters
from tokens import read_owner_token

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Ledger Analytics")


def get_session_factory() -> sessionmaker[Session]:
    return SessionLocal


def get_db(factory: sessionmaker[Session] = Depends(get_session_factory)):
    db = factory()
    try:
        yield db
    finally:
        db.close()


def get_analytics(
    factory: sessionmaker[Session] = Depends(get_session_factory),
) -> AnalyticsService:
    return AnalyticsService(LedgerStore(factory), BudgetStore(factory))


def current_owner(request: Request) -> OwnerId:
    token = request.cookies.get("token")
    if not token:
        header = request.headers.get("authorization", "")
        if header.startswith("Bearer "):
            token = header.split(" ", 1)[1].strip()
    try:
        return read_owner_token(token)
    except AuthorizationError as exc:
        raise http_error(exc) from exc


def http_error(exc: LedgerError) -> HTTPException:
    if isinstance(exc, ValidationError):
        status = 400
    elif isinstance(exc, AuthorizationError):
        status = 401
    elif isinstance(exc, NotFoundError):
        status = 404
    elif isinstance(exc, ConflictError):
        status = 400
    elif isinstance(exc, StoreError):
        status = 503
    else:
        status = 500
    return HTTPException(status_code=status, detail=str(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400, content={"detail": "Validation failed", "errors": errors}
    )


def int_param(request: Request, name: str) -> Optional[int]:
    raw = (request.query_params.get(name) or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise http_error(ValidationError(f"{name} must be a whole number")) from exc


def month_year_from_request(request: Request) -> tuple[int, int]:
    now = local_now()
    month = int_param(request, "month") or now.month
    year = int_param(request, "year") or now.year
    try:
        validate_month(month, year)
    except ValidationError as exc:
        raise http_error(exc) from exc
    return month, year


def filters_from_request(request: Request) -> TransactionFilters:
    type_param = request.query_params.get("type")
    txn_type = None
    if type_param:
        try:
            txn_type = TransactionType(type_param)
        except ValueError:
            txn_type = None
    try:
        period = resolve_filter_period(
            request.query_params.get("startDate"),
            request.query_params.get("endDate"),
        )
    except ValidationError as exc:
        raise http_error(exc) from exc
    return TransactionFilters(
        type=txn_type,
        category=request.query_params.get("category") or None,
        period=period,
    )


def transaction_to_dict(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "type": txn.type.value,
        "amount": txn.amount,
        "category": txn.category,
        "description": txn.description,
        "date": txn.date,
        "createdAt": txn.created_at,
        "updatedAt": txn.updated_at,
    }


def budget_to_dict(budget: Budget) -> dict[str, object]:
    return {
        "id": budget.id,
        "category": budget.category,
        "monthlyLimit": budget.monthly_limit,
        "month": budget.month,
        "year": budget.year,
        "createdAt": budget.created_at,
        "updatedAt": budget.updated_at,
    }


@app.get("/health")
def health():
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/api/transactions")
def list_transactions(
    request: Request,
    db: Session = Depends(get_db),
    owner_id: OwnerId = Depends(current_owner),
):
    filters = filters_from_request(request)
    result = TransactionService(db, owner_id).list(
        filters,
        sort=request.query_params.get("sort"),
        page=int_param(request, "page"),
        limit=int_param(request, "limit"),
    )
    return {
        "items": [transaction_to_dict(txn) for txn in result.items],
        "pagination": result.pagination(),
    }


@app.post("/api/transactions", status_code=201)
def create_transaction(
    data: TransactionIn,
    db: Session = Depends(get_db),
    owner_id: OwnerId = Depends(current_owner),
):
    txn = TransactionService(db, owner_id).create(data)
    return transaction_to_dict(txn)


@app.get("/api/transactions/summary")
def transaction_summary(
    request: Request,
    analytics: AnalyticsService = Depends(get_analytics),
    owner_id: OwnerId = Depends(current_owner),
):
    filters = filters_from_request(request)
    try:
        return analytics.transaction_summary(owner_id, filters)
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.get("/api/transactions/{transaction_id}")
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    owner_id: OwnerId = Depends(current_owner),
):
    try:
        txn = TransactionService(db, owner_id).get(transaction_id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return transaction_to_dict(txn)


@app.put("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    data: TransactionUpdate,
    db: Session = Depends(get_db),
    owner_id: OwnerId = Depends(current_owner),
):
    try:
        txn = TransactionService(db, owner_id).update(transaction_id, data)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return transaction_to_dict(txn)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    owner_id: OwnerId = Depends(current_owner),
):
    try:
        TransactionService(db, owner_id).delete(transaction_id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/budgets")
def list_budgets(
    request: Request,
    db: Session = Depends(get_db),
    owner_id: OwnerId = Depends(current_owner),
):
    month = int_param(request, "month")
    year = int_param(request, "year")
    # out-of-range filters are ignored rather than rejected
    if month is not None and not 1 <= month <= 12:
        month = None
    if year is not None and not 2000 <= year <= 2100:
        year = None
    result = BudgetService(db, owner_id).list(
        category=request.query_params.get("category") or None,
        month=month,
        year=year,
        sort=request.query_params.get("sort"),
        page=int_param(request, "page"),
        limit=int_param(request, "limit"),
    )
    return {
        "items": [budget_to_dict(budget) for budget in result.items],
        "pagination": result.pagination(),
    }


@app.post("/api/budgets", status_code=201)
def create_budget(
    data: BudgetIn,
    db: Session = Depends(get_db),
    owner_id: OwnerId = Depends(current_owner),
):
    try:
        budget = BudgetService(db, owner_id).create(data)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return budget_to_dict(budget)


@app.get("/api/budgets/progress")
def budget_progress(
    request: Request,
    analytics: AnalyticsService = Depends(get_analytics),
    owner_id: OwnerId = Depends(current_owner),
):
    month, year = month_year_from_request(request)
    try:
        return analytics.budget_progress(owner_id, month, year)
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.get("/api/budgets/{budget_id}")
def get_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    owner_id: OwnerId = Depends(current_owner),
):
    try:
        budget = BudgetService(db, owner_id).get(budget_id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return budget_to_dict(budget)


@app.put("/api/budgets/{budget_id}")
def update_budget(
    budget_id: int,
    data: BudgetUpdate,
    db: Session = Depends(get_db),
    owner_id: OwnerId = Depends(current_owner),
):
    try:
        budget = BudgetService(db, owner_id).update(budget_id, data)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return budget_to_dict(budget)


@app.delete("/api/budgets/{budget_id}", status_code=204)
def delete_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    owner_id: OwnerId = Depends(current_owner),
):
    try:
        BudgetService(db, owner_id).delete(budget_id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/analytics/spending-by-category")
def spending_by_category(
    request: Request,
    analytics: AnalyticsService = Depends(get_analytics),
    owner_id: OwnerId = Depends(current_owner),
):
    try:
        return analytics.spending_by_category(
            owner_id,
            request.query_params.get("startDate"),
            request.query_params.get("endDate"),
        )
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.get("/api/analytics/monthly-trends")
def monthly_trends(
    request: Request,
    analytics: AnalyticsService = Depends(get_analytics),
    owner_id: OwnerId = Depends(current_owner),
):
    try:
        return analytics.monthly_trends(
            owner_id,
            request.query_params.get("startDate"),
            request.query_params.get("endDate"),
        )
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.get("/api/analytics/budget-vs-actual")
def budget_vs_actual(
    request: Request,
    analytics: AnalyticsService = Depends(get_analytics),
    owner_id: OwnerId = Depends(current_owner),
):
    month, year = month_year_from_request(request)
    try:
        return analytics.budget_vs_actual(owner_id, month, year)
    except LedgerError as exc:
        raise http_error(exc) from exc


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
