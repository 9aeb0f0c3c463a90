from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import case, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import aggregation
from auth import (
    Unauthenticated,
    hash_password,
    new_session_key,
    sign_session_token,
    unsign_session_token,
    verify_password,
)
from config import get_settings
from models import (
    Category,
    SavingsGoal,
    Transaction,
    TransactionType,
    User,
    UserSession,
    UserSettings,
    amount_to_cents,
)
from periods import Period
from schemas import (
    LoginIn,
    RegisterIn,
    SavingsGoalIn,
    SavingsGoalUpdate,
    TransactionIn,
    TransactionUpdate,
    UserSettingsIn,
)

logger = logging.getLogger(__name__)


class NotFoundError(ValueError):
    pass


class ConflictError(ValueError):
    pass


class InvalidCredentials(ValueError):
    pass


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category: Optional[Category] = None


class AuthService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def register(self, data: RegisterIn) -> User:
        user = User(
            username=data.username,
            email=data.email,
            password_hash=hash_password(data.password),
            full_name=data.full_name,
        )
        self.session.add(user)
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError(self._conflict_message(data)) from exc

        self.session.add(UserSettings(user_id=user.id))
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_registered: user_id={user.id}")
        return user

    def _conflict_message(self, data: RegisterIn) -> str:
        email_taken = self.session.scalar(
            select(User.id).where(User.email == data.email)
        )
        if email_taken is not None:
            return "Email already registered"
        return "Username already taken"

    def login(self, data: LoginIn) -> User:
        user = self.session.scalar(select(User).where(User.email == data.email))
        stored_hash = user.password_hash if user else None
        if not verify_password(data.password, stored_hash) or user is None:
            logger.info("login_failed")
            raise InvalidCredentials("Invalid credentials")
        logger.info(f"login_succeeded: user_id={user.id}")
        return user

    def open_session(self, user: User) -> str:
        now = datetime.utcnow()
        self.session.execute(
            delete(UserSession).where(
                UserSession.user_id == user.id, UserSession.expires_at <= now
            )
        )
        max_age = timedelta(hours=get_settings().session_max_age_hours)
        row = UserSession(
            user_id=user.id,
            token=new_session_key(),
            created_at=now,
            expires_at=now + max_age,
        )
        self.session.add(row)
        self.session.commit()
        return sign_session_token(row.token)

    def authenticate(self, token: str) -> int:
        session_key = unsign_session_token(token)
        row = self.session.scalar(
            select(UserSession).where(UserSession.token == session_key)
        )
        if row is None or row.expires_at <= datetime.utcnow():
            raise Unauthenticated("Not authenticated")
        return row.user_id

    def close_session(self, token: str) -> None:
        session_key = unsign_session_token(token)
        result = self.session.execute(
            delete(UserSession).where(UserSession.token == session_key)
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise Unauthenticated("Not authenticated")
        self.session.commit()
        logger.info("session_closed")

    def get_user(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise Unauthenticated("Not authenticated")
        return user


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(
        self,
        period: Optional[Period] = None,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        if period is not None and period.slug != "all":
            stmt = stmt.where(Transaction.date.between(period.start, period.end))
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category:
            stmt = stmt.where(Transaction.category == filters.category)
        return list(self.session.scalars(stmt).all())

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction).where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        txn = Transaction(
            user_id=self.user_id,
            type=data.type,
            category=data.category,
            amount_cents=amount_to_cents(data.amount),
            description=data.description,
            date=data.date or local_today(),
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        changes = data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            if value is None and field != "description":
                continue
            if field == "amount":
                txn.amount_cents = amount_to_cents(value)
            else:
                setattr(txn, field, value)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()


class SavingsGoalService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self) -> list[SavingsGoal]:
        stmt = (
            select(SavingsGoal)
            .where(SavingsGoal.user_id == self.user_id)
            .order_by(SavingsGoal.created_at.asc(), SavingsGoal.id.asc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, goal_id: int) -> SavingsGoal:
        goal = self.session.scalar(
            select(SavingsGoal).where(
                SavingsGoal.user_id == self.user_id, SavingsGoal.id == goal_id
            )
        )
        if not goal:
            raise NotFoundError("Savings goal not found")
        return goal

    def create(self, data: SavingsGoalIn) -> SavingsGoal:
        goal = SavingsGoal(
            user_id=self.user_id,
            title=data.title,
            target_cents=amount_to_cents(data.target_amount),
            current_cents=amount_to_cents(data.current_amount),
            deadline=data.deadline,
        )
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def update(self, goal_id: int, data: SavingsGoalUpdate) -> SavingsGoal:
        goal = self.get(goal_id)
        changes = data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            if value is None and field != "deadline":
                continue
            if field == "target_amount":
                goal.target_cents = amount_to_cents(value)
            elif field == "current_amount":
                goal.current_cents = amount_to_cents(value)
            elif field == "title":
                goal.title = value
            else:
                setattr(goal, field, value)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def delete(self, goal_id: int) -> None:
        goal = self.get(goal_id)
        self.session.delete(goal)
        self.session.commit()

    def adjust(self, goal_id: int, delta: Decimal) -> SavingsGoal:
        """Add ``delta`` to the saved amount, clamping at zero.

        Runs as one UPDATE evaluated by the database so concurrent
        adjustments of the same goal all land; see
        ``aggregation.adjust_goal_amount`` for the arithmetic.
        """
        delta_cents = amount_to_cents(delta)
        new_value = SavingsGoal.current_cents + delta_cents
        stmt = (
            update(SavingsGoal)
            .where(SavingsGoal.id == goal_id, SavingsGoal.user_id == self.user_id)
            .values(current_cents=case((new_value < 0, 0), else_=new_value))
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount == 0:
            self.session.rollback()
            raise NotFoundError("Savings goal not found")
        self.session.commit()
        logger.info(
            f"goal_adjusted: user_id={self.user_id} goal_id={goal_id} "
            f"delta_cents={delta_cents}"
        )
        return self.session.get(SavingsGoal, goal_id, populate_existing=True)


class SettingsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self) -> UserSettings:
        settings = self.session.scalar(
            select(UserSettings).where(UserSettings.user_id == self.user_id)
        )
        if settings is None:
            settings = UserSettings(
                user_id=self.user_id, dark_mode=False, privacy_mode=False
            )
            self.session.add(settings)
            self.session.commit()
            self.session.refresh(settings)
        return settings

    def update(self, data: UserSettingsIn) -> UserSettings:
        settings = self.get()
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        for field, value in changes.items():
            setattr(settings, field, value)
        self.session.commit()
        self.session.refresh(settings)
        return settings


class MetricsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.txn_service = TransactionService(session, user_id)

    def summary(self, period: Optional[Period] = None) -> aggregation.Totals:
        return aggregation.totals(self.txn_service.list(period))

    def category_breakdown(
        self, period: Optional[Period] = None
    ) -> list[aggregation.CategoryTotal]:
        return aggregation.category_breakdown(self.txn_service.list(period))

    def monthly_series(
        self, reference_date: Optional[date] = None, months: int = 6
    ) -> list[aggregation.MonthBucket]:
        reference_date = reference_date or local_today()
        return aggregation.monthly_series(
            self.txn_service.list(), reference_date, months
        )
