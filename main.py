import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Optional
from urllib.parse import quote
from zoneinfo import ZoneInfo

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from aggregation import goal_progress
from auth import SESSION_COOKIE, Unauthenticated, token_from_headers
from config import get_settings
from database import SessionLocal
from models import Category, SavingsGoal, TransactionType, User
from periods import Period, resolve_period
from reports import build_report, render_report_pdf
from schemas import (
    AuthOut,
    CategoryTotalOut,
    GoalAdjustIn,
    GoalProgressOut,
    LoginIn,
    MessageOut,
    MonthBucketOut,
    RegisterIn,
    SavingsGoalIn,
    SavingsGoalOut,
    SavingsGoalUpdate,
    TotalsOut,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
    UserOut,
    UserSettingsIn,
    UserSettingsOut,
)
from services import (
    AuthService,
    ConflictError,
    InvalidCredentials,
    MetricsService,
    NotFoundError,
    SavingsGoalService,
    SettingsService,
    TransactionFilters,
    TransactionService,
    local_today,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="DompetKu")


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open(Path(__file__).resolve().parent / "pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def session_token(request: Request) -> str:
    return token_from_headers(
        request.cookies.get(SESSION_COOKIE), request.headers.get("Authorization")
    )


def current_user_id(request: Request, db: Session = Depends(get_db)) -> int:
    try:
        return AuthService(db).authenticate(session_token(request))
    except Unauthenticated as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def period_from_request(request: Request) -> Period:
    try:
        return resolve_period(
            request.query_params.get("period"),
            request.query_params.get("start"),
            request.query_params.get("end"),
            today=local_today(),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def goal_out(goal: SavingsGoal) -> SavingsGoalOut:
    progress = goal_progress(goal.target_amount, goal.current_amount)
    return SavingsGoalOut(
        id=goal.id,
        title=goal.title,
        target_amount=goal.target_amount,
        current_amount=goal.current_amount,
        deadline=goal.deadline,
        created_at=goal.created_at,
        progress=GoalProgressOut(
            percent=progress.percent, remaining=progress.remaining
        ),
    )


def _attach_session(response: Response, service: AuthService, user: User) -> None:
    token = service.open_session(user)
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=settings.session_max_age_hours * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )


def _attachment_disposition(stem: str) -> str:
    # latin-1 header: plain ASCII filename plus the UTF-8 form for clients that read it
    ascii_stem = re.sub(r"[^A-Za-z0-9_-]+", "_", stem)
    ascii_stem = re.sub(r"_+", "_", ascii_stem).strip("_") or "laporan"
    utf8_name = quote(f"{stem.replace(' ', '_')}.pdf", safe="")
    return (
        f'attachment; filename="{ascii_stem}.pdf"; '
        f"filename*=UTF-8''{utf8_name}"
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400, content={"detail": jsonable_encoder(exc.errors())}
    )


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"storage_failure: path={request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Storage failure"})


@app.post("/api/auth/register", response_model=AuthOut)
def register(payload: RegisterIn, response: Response, db: Session = Depends(get_db)):
    service = AuthService(db)
    try:
        user = service.register(payload)
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    _attach_session(response, service, user)
    return AuthOut(user=UserOut.model_validate(user))


@app.post("/api/auth/login", response_model=AuthOut)
def login(payload: LoginIn, response: Response, db: Session = Depends(get_db)):
    service = AuthService(db)
    try:
        user = service.login(payload)
    except InvalidCredentials as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    _attach_session(response, service, user)
    return AuthOut(user=UserOut.model_validate(user))


@app.post("/api/auth/logout", response_model=MessageOut)
def logout(request: Request, response: Response, db: Session = Depends(get_db)):
    try:
        AuthService(db).close_session(session_token(request))
    except Unauthenticated as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        logger.exception("Error closing session")
        raise HTTPException(status_code=500, detail="Could not log out") from exc
    response.delete_cookie(SESSION_COOKIE)
    return MessageOut(message="Logged out successfully")


@app.get("/api/auth/me", response_model=AuthOut)
def me(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    try:
        user = AuthService(db).get_user(user_id)
    except Unauthenticated as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return AuthOut(user=UserOut.model_validate(user))


@app.get("/api/transactions", response_model=list[TransactionOut])
def list_transactions(
    request: Request,
    category: Optional[Category] = None,
    type: Optional[TransactionType] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    filters = TransactionFilters(type=type, category=category)
    return TransactionService(db, user_id).list(period, filters)


@app.post("/api/transactions", response_model=TransactionOut)
def create_transaction(
    payload: TransactionIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return TransactionService(db, user_id).create(payload)


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).get(transaction_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TransactionService(db, user_id).update(transaction_id, payload)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.delete("/api/transactions/{transaction_id}", response_model=MessageOut)
def delete_transaction(
    transaction_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return MessageOut(message="Transaction deleted successfully")


@app.get("/api/savings-goals", response_model=list[SavingsGoalOut])
def list_goals(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return [goal_out(goal) for goal in SavingsGoalService(db, user_id).list()]


@app.post("/api/savings-goals", response_model=SavingsGoalOut)
def create_goal(
    payload: SavingsGoalIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return goal_out(SavingsGoalService(db, user_id).create(payload))


@app.get("/api/savings-goals/{goal_id}", response_model=SavingsGoalOut)
def get_goal(
    goal_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return goal_out(SavingsGoalService(db, user_id).get(goal_id))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.put("/api/savings-goals/{goal_id}", response_model=SavingsGoalOut)
def update_goal(
    goal_id: int,
    payload: SavingsGoalUpdate,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return goal_out(SavingsGoalService(db, user_id).update(goal_id, payload))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.delete("/api/savings-goals/{goal_id}", response_model=MessageOut)
def delete_goal(
    goal_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        SavingsGoalService(db, user_id).delete(goal_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return MessageOut(message="Goal deleted successfully")


@app.post("/api/savings-goals/{goal_id}/adjust", response_model=SavingsGoalOut)
def adjust_goal(
    goal_id: int,
    payload: GoalAdjustIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return goal_out(SavingsGoalService(db, user_id).adjust(goal_id, payload.delta))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/user-settings", response_model=UserSettingsOut)
def get_user_settings(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return SettingsService(db, user_id).get()


@app.put("/api/user-settings", response_model=UserSettingsOut)
def update_user_settings(
    payload: UserSettingsIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return SettingsService(db, user_id).update(payload)


@app.get("/api/stats/summary", response_model=TotalsOut)
def stats_summary(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    return TotalsOut.model_validate(MetricsService(db, user_id).summary(period))


@app.get("/api/stats/categories", response_model=list[CategoryTotalOut])
def stats_categories(
    request: Request,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    breakdown = MetricsService(db, user_id).category_breakdown(period)
    return [CategoryTotalOut.model_validate(item) for item in breakdown]


@app.get("/api/stats/monthly", response_model=list[MonthBucketOut])
def stats_monthly(
    months: int = Query(6, ge=1, le=36),
    reference: Optional[date] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        series = MetricsService(db, user_id).monthly_series(reference, months)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [MonthBucketOut.model_validate(bucket) for bucket in series]


@app.get("/api/reports/transactions.pdf")
def transactions_report_pdf(
    request: Request,
    title: str = Query("Laporan Transaksi", min_length=1, max_length=120),
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    transactions = list(reversed(TransactionService(db, user_id).list(period)))
    generated_at = datetime.now(ZoneInfo(settings.timezone))
    report = build_report(
        transactions,
        title,
        generated_at,
        rows_per_page=settings.report_rows_per_page,
        max_rows=settings.report_max_rows,
        app_version=APP_VERSION,
    )
    logger.info(
        f"report_requested: user_id={user_id} period={period.slug} "
        f"rows={report.total_rows} truncated={report.truncated}"
    )
    try:
        pdf_bytes = render_report_pdf(report, base_url=str(request.base_url))
    except Exception as exc:
        logger.exception("Error generating PDF report")
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    stem = f"{title}_{generated_at.date().isoformat()}"
    return StreamingResponse(
        iter([pdf_bytes]),
        media_type="application/pdf",
        headers={
            "Content-Disposition": _attachment_disposition(stem),
            "Content-Length": str(len(pdf_bytes)),
        },
    )
