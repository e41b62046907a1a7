import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import current_user_id
from config import get_settings
from database import get_db, session_scope
from errors import DependencyError, NotFoundError, UploadError, ValidationError
from periods import resolve_expense_window
from recurrence import local_today
from scheduler import SchedulerManager
from schemas import (
    AccountIn,
    BillIn,
    CategoryIn,
    ContributionIn,
    GoalIn,
    GoalUpdateIn,
    TransactionIn,
)
from services import (
    AccountService,
    AnalyticsService,
    BillService,
    CategoryService,
    DashboardService,
    GoalService,
    TransactionService,
    seed_default_categories,
)
from uploads import URL_PREFIX, ReceiptStorage

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title="Finance Tracker")
app.mount(
    URL_PREFIX,
    StaticFiles(directory=str(settings.upload_dir), check_dir=False),
    name="uploads",
)

scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    with session_scope() as session:
        seed_default_categories(session)
    if settings.enable_scheduler:
        scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"message": _first_error(exc)})


@app.exception_handler(SQLAlchemyError)
@app.exception_handler(DependencyError)
async def dependency_error_handler(request: Request, exc: Exception):
    logger.exception(f"dependency_error: {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"message": "Database error"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"unexpected_error: {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"message": "Something went wrong"})


def _first_error(exc) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg", "Invalid value"))
    return f"{location}: {message}" if location else message


def _not_found(exc: NotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))


@app.get("/health")
def health():
    return {"status": "ok"}


# Accounts


@app.get("/accounts")
def list_accounts(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return [account.to_dict() for account in AccountService(db, user_id).list_all()]


@app.post("/accounts", status_code=201)
def create_account(
    data: AccountIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return AccountService(db, user_id).create(data).to_dict()


@app.put("/accounts/{account_id}")
def update_account(
    account_id: int,
    data: AccountIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return AccountService(db, user_id).update(account_id, data).to_dict()
    except NotFoundError as exc:
        raise _not_found(exc) from exc


@app.delete("/accounts/{account_id}")
def delete_account(
    account_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        AccountService(db, user_id).delete(account_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    return {"message": "Account deleted successfully"}


# Bills


@app.get("/bills")
def list_bills(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return [bill.to_dict() for bill in BillService(db, user_id).list()]


@app.post("/bills", status_code=201)
def create_bill(
    data: BillIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return BillService(db, user_id).create(data).to_dict()


@app.put("/bills/{bill_id}")
def update_bill(
    bill_id: int,
    data: BillIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return BillService(db, user_id).update(bill_id, data).to_dict()
    except NotFoundError as exc:
        raise _not_found(exc) from exc


@app.delete("/bills/{bill_id}")
def delete_bill(
    bill_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        BillService(db, user_id).delete(bill_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    return {"message": "Bill deleted successfully"}


def _pay_bill(bill_id: int, user_id: int, db: Session) -> dict[str, object]:
    try:
        bill, successor, txn = BillService(db, user_id).pay(bill_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    return {
        "message": "Bill marked as paid successfully",
        "bill": bill.to_dict(),
        "next_bill": successor.to_dict() if successor else None,
        "transaction": txn.to_dict(),
    }


@app.patch("/bills/{bill_id}/pay")
def pay_bill(
    bill_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return _pay_bill(bill_id, user_id, db)


# Goals


@app.get("/goals")
def list_goals(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return [goal.to_dict() for goal in GoalService(db, user_id).list()]


@app.post("/goals", status_code=201)
def create_goal(
    data: GoalIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return GoalService(db, user_id).create(data).to_dict()


@app.put("/goals/{goal_id}")
def update_goal(
    goal_id: int,
    data: GoalUpdateIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return GoalService(db, user_id).update(goal_id, data).to_dict()
    except NotFoundError as exc:
        raise _not_found(exc) from exc


@app.delete("/goals/{goal_id}")
def delete_goal(
    goal_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        GoalService(db, user_id).delete(goal_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    return {"message": "Goal deleted successfully"}


@app.patch("/goals/{goal_id}/contribute")
def contribute_to_goal(
    goal_id: int,
    data: ContributionIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        goal = GoalService(db, user_id).contribute(goal_id, data.amount_cents)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return goal.to_dict()


# Categories


@app.get("/categories")
def list_categories(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return CategoryService(db, user_id).list_grouped()


@app.post("/categories", status_code=201)
def create_category(
    data: CategoryIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return CategoryService(db, user_id).create(data).to_dict()
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.delete("/categories/{category_id}")
def delete_category(
    category_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        CategoryService(db, user_id).delete(category_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"message": "Category deleted"}


# Transactions


@app.get("/transactions")
def list_transactions(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return [txn.to_dict() for txn in TransactionService(db, user_id).list()]


@app.get("/transactions/stats")
def transaction_stats(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return AnalyticsService(db, user_id).transaction_stats(local_today())


@app.post("/transactions", status_code=201)
async def create_transaction(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    upload: Optional[UploadFile] = None
    try:
        if request.headers.get("content-type", "").startswith("application/json"):
            payload = await request.json()
        else:
            form = await request.form()
            payload = {
                key: value
                for key, value in form.items()
                if not isinstance(value, UploadFile)
            }
            field = form.get("receiptImage")
            if isinstance(field, UploadFile) and field.filename:
                upload = field
        data = TransactionIn.model_validate(payload)
    except PydanticValidationError as exc:
        raise HTTPException(status_code=400, detail=_first_error(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid request body") from exc

    storage = ReceiptStorage()
    receipt = None
    if upload is not None:
        try:
            receipt = storage.save(
                upload.filename, upload.content_type, await upload.read()
            )
        except UploadError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        txn = TransactionService(db, user_id).create(data, receipt)
    except Exception:
        if receipt is not None:
            storage.delete(receipt.public_id)
        raise
    return txn.to_dict()


@app.put("/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    data: TransactionIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).update(transaction_id, data).to_dict()
    except NotFoundError as exc:
        raise _not_found(exc) from exc


@app.delete("/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    return {"message": "Transaction deleted successfully"}


# Dashboard


@app.get("/dashboard/stats")
def dashboard_stats(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return {
        "data": DashboardService(db, user_id).stats(local_today()),
        "message": "Dashboard statistics fetched successfully",
    }


@app.patch("/dashboard/bills/{bill_id}/pay")
def dashboard_pay_bill(
    bill_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return _pay_bill(bill_id, user_id, db)


@app.patch("/dashboard/goals/{goal_id}/progress")
def update_goal_progress(
    goal_id: int,
    data: ContributionIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        goal, txn = GoalService(db, user_id).progress(goal_id, data.amount_cents)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    return {
        "message": "Goal progress updated successfully",
        "goal": goal.to_dict(),
        "transaction": txn.to_dict(),
    }


# Analytics


@app.get("/analytics/expenses")
def expense_analytics(
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        period = resolve_expense_window(start_date, end_date, today=local_today())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return AnalyticsService(db, user_id).expenses(period)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
