import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from models import Category, TransactionType

MAX_AMOUNT = Decimal("9999999999999.99")
# bcrypt only looks at the first 72 bytes of a password.
MAX_PASSWORD_BYTES = 72


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"must be at most {MAX_PASSWORD_BYTES} bytes in UTF-8")
    return value


def _strip_required(value: str) -> str:
    clean = value.strip()
    if not clean:
        raise ValueError("must not be blank")
    return clean


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class RegisterIn(ApiModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=64)
    confirm_password: str
    full_name: str = Field(..., min_length=1, max_length=120)

    @field_validator("username", "full_name")
    @classmethod
    def _strip(cls, value: str) -> str:
        return _strip_required(value)

    @field_validator("password")
    @classmethod
    def _password_bytes(cls, value: str) -> str:
        return _check_password_bytes(value)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.lower()

    @model_validator(mode="after")
    def _passwords_match(self) -> "RegisterIn":
        if self.password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


class LoginIn(ApiModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=64)

    @field_validator("password")
    @classmethod
    def _password_bytes(cls, value: str) -> str:
        return _check_password_bytes(value)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.lower()


class UserOut(ApiModel):
    id: int
    username: str
    email: str
    full_name: str
    created_at: datetime


class TransactionIn(ApiModel):
    type: TransactionType
    category: Category
    amount: Decimal = Field(..., ge=0, le=MAX_AMOUNT, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=200)
    date: Optional[dt.date] = None


class TransactionUpdate(ApiModel):
    type: Optional[TransactionType] = None
    category: Optional[Category] = None
    amount: Optional[Decimal] = Field(
        default=None, ge=0, le=MAX_AMOUNT, decimal_places=2
    )
    description: Optional[str] = Field(default=None, max_length=200)
    date: Optional[dt.date] = None


class TransactionOut(ApiModel):
    id: int
    type: TransactionType
    category: Category
    amount: Decimal
    description: Optional[str]
    date: dt.date
    created_at: datetime


class SavingsGoalIn(ApiModel):
    title: str = Field(..., min_length=1, max_length=120)
    target_amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT, decimal_places=2)
    current_amount: Decimal = Field(
        default=Decimal("0"), ge=0, le=MAX_AMOUNT, decimal_places=2
    )
    deadline: Optional[date] = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        return _strip_required(value)


class SavingsGoalUpdate(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=120)
    target_amount: Optional[Decimal] = Field(
        default=None, gt=0, le=MAX_AMOUNT, decimal_places=2
    )
    current_amount: Optional[Decimal] = Field(
        default=None, ge=0, le=MAX_AMOUNT, decimal_places=2
    )
    deadline: Optional[date] = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _strip_required(value)


class GoalAdjustIn(ApiModel):
    delta: Decimal = Field(..., ge=-MAX_AMOUNT, le=MAX_AMOUNT, decimal_places=2)


class GoalProgressOut(ApiModel):
    percent: Optional[Decimal]
    remaining: Decimal


class SavingsGoalOut(ApiModel):
    id: int
    title: str
    target_amount: Decimal
    current_amount: Decimal
    deadline: Optional[date]
    created_at: datetime
    progress: GoalProgressOut


class UserSettingsIn(ApiModel):
    model_config = ConfigDict(extra="forbid")

    dark_mode: Optional[bool] = None
    privacy_mode: Optional[bool] = None


class UserSettingsOut(ApiModel):
    dark_mode: bool
    privacy_mode: bool


class TotalsOut(ApiModel):
    income: Decimal
    expense: Decimal
    balance: Decimal


class CategoryTotalOut(ApiModel):
    category: str
    total: Decimal
    percent: Decimal


class MonthBucketOut(ApiModel):
    year: int
    month: int
    label: str
    income: Decimal
    expense: Decimal
    net: Decimal


class AuthOut(ApiModel):
    user: UserOut


class MessageOut(ApiModel):
    message: str
