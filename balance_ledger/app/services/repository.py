from __future__ import annotations

from typing import Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..core.errors import AccountNotFoundError, DuplicateEmailError, ValidationError
from ..models import MAX_BALANCE, AccountModel


def _is_minor_units(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class AccountRepository:
    """Thin data access layer around the SQLModel session.

    Carries no financial rules: the balance primitives at the bottom are used
    by the transfer engine, which owns the invariants.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    # Account records ----------------------------------------------------
    def create(self, name: str, email: str, initial_balance: int = 0) -> AccountModel:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Account name must not be empty")
        try:
            email = validate_email(email or "", check_deliverability=False).normalized
        except EmailNotValidError as exc:
            raise ValidationError(f"Invalid email address: {exc}") from exc
        if not _is_minor_units(initial_balance):
            raise ValidationError("Initial balance must be an integer amount of minor units")
        if initial_balance < 0:
            raise ValidationError("Initial balance must not be negative")
        if initial_balance > MAX_BALANCE:
            raise ValidationError(f"Initial balance must not exceed {MAX_BALANCE}")

        if self.find_by_email(email) is not None:
            raise DuplicateEmailError(f"Account with email {email} already exists")

        account = AccountModel(name=name, email=email, balance=initial_balance)
        self.session.add(account)
        try:
            self.session.flush()
        except IntegrityError as exc:
            # Lost the race against a concurrent create with the same email.
            raise DuplicateEmailError(f"Account with email {email} already exists") from exc
        self.session.refresh(account)
        return account

    def get_by_id(self, account_id: int) -> AccountModel:
        account = self.session.get(AccountModel, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def find_by_email(self, email: str) -> Optional[AccountModel]:
        stmt = select(AccountModel).where(func.lower(AccountModel.email) == email.lower())
        return self.session.exec(stmt).first()

    def list(self, limit: Optional[int] = None, offset: int = 0) -> list[AccountModel]:
        stmt = select(AccountModel).order_by(AccountModel.id).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.exec(stmt))

    # Balance primitives -------------------------------------------------
    def get_for_update(self, account_id: int) -> Optional[AccountModel]:
        stmt = (
            select(AccountModel)
            .where(AccountModel.id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.exec(stmt).first()

    def exists(self, account_id: int) -> bool:
        stmt = select(AccountModel.id).where(AccountModel.id == account_id)
        return self.session.exec(stmt).first() is not None

    def debit(self, account_id: int, amount: int) -> bool:
        stmt = (
            update(AccountModel)
            .where(AccountModel.id == account_id)
            .where(AccountModel.balance >= amount)
            .values(balance=AccountModel.balance - amount)
            .execution_options(synchronize_session=False)
        )
        return self.session.exec(stmt).rowcount == 1

    def credit(self, account_id: int, amount: int) -> bool:
        stmt = (
            update(AccountModel)
            .where(AccountModel.id == account_id)
            .where(AccountModel.balance <= MAX_BALANCE - amount)
            .values(balance=AccountModel.balance + amount)
            .execution_options(synchronize_session=False)
        )
        return self.session.exec(stmt).rowcount == 1

    def balance_of(self, account_id: int) -> int:
        stmt = select(AccountModel.balance).where(AccountModel.id == account_id)
        return self.session.exec(stmt).one()
