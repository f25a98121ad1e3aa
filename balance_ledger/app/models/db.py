from __future__ import annotations
from datetime import datetime, UTC
from typing import Optional
from sqlalchemy import BigInteger, CheckConstraint
from sqlmodel import Field, SQLModel

# Largest value a BIGINT balance column can hold.
MAX_BALANCE = 2**63 - 1

class Account(SQLModel, table=True):
    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(unique=True, index=True)
    balance: int = Field(
        default=0,
        ge=0,
        le=MAX_BALANCE,
        sa_type=BigInteger,
        description="Balance in minor units (e.g. cents)",
    )
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
