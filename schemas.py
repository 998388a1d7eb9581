from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import TransactionType


class TransactionIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    type: TransactionType
    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    category: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    date: Optional[datetime] = None


class TransactionUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=12, decimal_places=2
    )
    category: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    date: Optional[datetime] = None


class BudgetIn(BaseModel):
    model_config = ConfigDict(
        str_strip_whitespace=True, extra="forbid", populate_by_name=True
    )

    category: str = Field(..., min_length=1, max_length=50)
    monthly_limit: Decimal = Field(
        ..., ge=0, max_digits=12, decimal_places=2, alias="monthlyLimit"
    )
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)


class BudgetUpdate(BaseModel):
    model_config = ConfigDict(
        str_strip_whitespace=True, extra="forbid", populate_by_name=True
    )

    category: Optional[str] = Field(default=None, min_length=1, max_length=50)
    monthly_limit: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=12, decimal_places=2, alias="monthlyLimit"
    )
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = Field(default=None, ge=2000, le=2100)
