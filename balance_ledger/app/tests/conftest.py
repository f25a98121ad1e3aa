import pytest
from sqlmodel import Session

from ..core.config import Settings
from ..core.db import create_engine_for_url, init_db
from ..models import AccountModel
from ..services import AccountRepository, TransactionManager, TransferEngine


@pytest.fixture
def settings() -> Settings:
    return Settings(transfer_backoff_base=0.0, transfer_backoff_max=0.0)


@pytest.fixture
def db_engine(tmp_path, settings):
    engine = create_engine_for_url(f"sqlite:///{tmp_path / 'test.db'}", settings)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def transactions(db_engine) -> TransactionManager:
    return TransactionManager(db_engine)


@pytest.fixture
def transfer_engine(transactions) -> TransferEngine:
    return TransferEngine(transactions)


@pytest.fixture
def make_account(transactions):
    def _make_account(name: str, email: str, balance: int = 0) -> int:
        with transactions.unit_of_work() as uow:
            return AccountRepository(uow.session).create(name, email, balance).id

    return _make_account


@pytest.fixture
def balances(db_engine):
    def _balances(*account_ids: int) -> list[int]:
        with Session(db_engine) as session:
            return [session.get(AccountModel, account_id).balance for account_id in account_ids]

    return _balances
