import random
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from types import SimpleNamespace

import pytest

from ..core.config import Settings
from ..core.db import create_engine_for_url
from ..core.errors import (
    AccountNotFoundError,
    ConflictError,
    InsufficientFundsError,
    LedgerError,
    TransferTimeoutError,
    ValidationError,
)
from ..models import MAX_BALANCE
from ..services import AccountRepository, TransactionManager, TransferEngine


def test_end_to_end_scenario(transfer_engine, make_account, balances) -> None:
    a = make_account("Arman", "arman@kbtu.kz", 1000)
    b = make_account("Anara", "anara@kbtu.kz", 500)

    result = transfer_engine.transfer(a, b, 200)
    assert (result.from_balance, result.to_balance) == (800, 700)
    assert balances(a, b) == [800, 700]

    with pytest.raises(InsufficientFundsError) as excinfo:
        transfer_engine.transfer(a, b, 10000)
    assert (excinfo.value.have, excinfo.value.need) == (800, 10000)
    assert balances(a, b) == [800, 700]


@pytest.mark.parametrize("amount", [1, 250, 999, 1000])
def test_conservation(transfer_engine, make_account, balances, amount) -> None:
    a = make_account("Arman", "arman@kbtu.kz", 1000)
    b = make_account("Anara", "anara@kbtu.kz", 500)
    bystander = make_account("Other", "other@kbtu.kz", 42)

    transfer_engine.transfer(a, b, amount)

    after_a, after_b, after_other = balances(a, b, bystander)
    assert after_a == 1000 - amount
    assert after_b == 500 + amount
    assert after_a + after_b == 1500
    assert after_other == 42


@pytest.mark.parametrize("amount", [0, -5, 10.0, True, MAX_BALANCE + 1])
def test_rejects_invalid_amounts(transfer_engine, make_account, balances, amount) -> None:
    a = make_account("Arman", "arman@kbtu.kz", 1000)
    b = make_account("Anara", "anara@kbtu.kz", 500)

    with pytest.raises(ValidationError):
        transfer_engine.transfer(a, b, amount)
    assert balances(a, b) == [1000, 500]


def test_rejects_self_transfer(transfer_engine, make_account, balances) -> None:
    a = make_account("Arman", "arman@kbtu.kz", 1000)

    with pytest.raises(ValidationError, match="same account"):
        transfer_engine.transfer(a, a, 100)
    assert balances(a) == [1000]


def test_unknown_sender_is_noop(transfer_engine, make_account, balances) -> None:
    b = make_account("Anara", "anara@kbtu.kz", 500)

    with pytest.raises(AccountNotFoundError) as excinfo:
        transfer_engine.transfer(9999, b, 100)
    assert excinfo.value.who == "sender"
    assert balances(b) == [500]


def test_unknown_receiver_is_noop(transfer_engine, make_account, balances) -> None:
    a = make_account("Arman", "arman@kbtu.kz", 1000)

    with pytest.raises(AccountNotFoundError) as excinfo:
        transfer_engine.transfer(a, 9999, 100)
    assert excinfo.value.who == "receiver"
    assert balances(a) == [1000]


def test_concurrent_oversubscription(transfer_engine, make_account, balances) -> None:
    a = make_account("Arman", "arman@kbtu.kz", 1000)
    receivers = [make_account(f"R{i}", f"r{i}@kbtu.kz", 0) for i in range(10)]

    def attempt(receiver: int) -> str:
        try:
            transfer_engine.transfer(a, receiver, 200)
        except InsufficientFundsError:
            return "insufficient"
        return "ok"

    with ThreadPoolExecutor(max_workers=10) as pool:
        outcomes = list(pool.map(attempt, receivers))

    assert outcomes.count("ok") == 5
    assert outcomes.count("insufficient") == 5
    assert balances(a) == [0]
    assert sum(balances(*receivers)) == 1000


def test_concurrent_transfers_never_go_negative(transfer_engine, make_account, balances) -> None:
    ids = [make_account(f"U{i}", f"u{i}@kbtu.kz", 300) for i in range(4)]
    rng = random.Random(7)
    jobs = []
    for _ in range(40):
        src, dst = rng.sample(ids, 2)
        jobs.append((src, dst, rng.randint(1, 250)))

    def run(job) -> None:
        try:
            transfer_engine.transfer(*job)
        except InsufficientFundsError:
            pass

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(run, jobs))

    final = balances(*ids)
    assert all(balance >= 0 for balance in final)
    assert sum(final) == 1200


def test_deadline_elapsing_mid_transfer_rolls_back(transactions, make_account, balances) -> None:
    a = make_account("Arman", "arman@kbtu.kz", 1000)
    b = make_account("Anara", "anara@kbtu.kz", 500)

    class SlowCreditRepository(AccountRepository):
        def credit(self, account_id: int, amount: int) -> bool:
            applied = super().credit(account_id, amount)
            time.sleep(0.05)
            return applied

    engine = TransferEngine(transactions, repository_factory=SlowCreditRepository)

    with pytest.raises(TransferTimeoutError):
        engine.transfer(a, b, 200, timeout=0.01)
    assert balances(a, b) == [1000, 500]


def test_debit_guard_catches_stale_lock_read(transactions, make_account, balances) -> None:
    a = make_account("Arman", "arman@kbtu.kz", 100)
    b = make_account("Anara", "anara@kbtu.kz", 0)

    class LockBypassRepository(AccountRepository):
        def get_for_update(self, account_id: int):
            account = super().get_for_update(account_id)
            # Simulate a read that missed a concurrent debit.
            return SimpleNamespace(id=account.id, balance=10_000)

    engine = TransferEngine(transactions, repository_factory=LockBypassRepository)

    with pytest.raises(InsufficientFundsError) as excinfo:
        engine.transfer(a, b, 500)
    assert excinfo.value.have == 100
    assert balances(a, b) == [100, 0]


def test_errors_carry_kind(transfer_engine, make_account) -> None:
    a = make_account("Arman", "arman@kbtu.kz", 10)
    b = make_account("Anara", "anara@kbtu.kz", 0)

    with pytest.raises(LedgerError) as excinfo:
        transfer_engine.transfer(a, b, 11)
    assert excinfo.value.to_dict() == {
        "kind": "InsufficientFundsError",
        "detail": "Insufficient funds (balance: 10, need: 11)",
        "have": 10,
        "need": 11,
    }


def test_credit_overflow_is_rejected_and_rolled_back(transfer_engine, make_account, balances) -> None:
    a = make_account("Arman", "arman@kbtu.kz", MAX_BALANCE)
    b = make_account("Anara", "anara@kbtu.kz", MAX_BALANCE)

    with pytest.raises(ValidationError, match="overflow"):
        transfer_engine.transfer(a, b, 1)

    after = balances(a, b)
    assert after == [MAX_BALANCE, MAX_BALANCE]
    assert all(type(balance) is int for balance in after)


def test_transfer_up_to_the_balance_ceiling(transfer_engine, make_account, balances) -> None:
    a = make_account("Arman", "arman@kbtu.kz", 5)
    b = make_account("Anara", "anara@kbtu.kz", MAX_BALANCE - 5)

    result = transfer_engine.transfer(a, b, 5)

    assert (result.from_balance, result.to_balance) == (0, MAX_BALANCE)
    assert balances(a, b) == [0, MAX_BALANCE]


@contextmanager
def write_lock_held(db_engine):
    """Hold the SQLite write lock from a separate connection."""
    with db_engine.connect() as conn:
        transaction = conn.begin()
        try:
            yield
        finally:
            transaction.rollback()


def test_deadline_bounds_the_lock_wait(transfer_engine, db_engine, make_account, balances) -> None:
    a = make_account("Arman", "arman@kbtu.kz", 1000)
    b = make_account("Anara", "anara@kbtu.kz", 500)

    with write_lock_held(db_engine):
        started = time.monotonic()
        with pytest.raises(TransferTimeoutError):
            transfer_engine.transfer(a, b, 10, timeout=0.2)
        elapsed = time.monotonic() - started

    # The busy wait is 30s; the deadline must cut it short.
    assert elapsed < 2.0
    assert balances(a, b) == [1000, 500]


def test_lock_contention_without_deadline_is_a_conflict(db_engine, make_account, balances) -> None:
    a = make_account("Arman", "arman@kbtu.kz", 1000)
    b = make_account("Anara", "anara@kbtu.kz", 500)
    impatient = create_engine_for_url(str(db_engine.url), Settings(sqlite_busy_timeout=0.1))
    engine = TransferEngine(TransactionManager(impatient))

    try:
        with write_lock_held(db_engine):
            with pytest.raises(ConflictError):
                engine.transfer(a, b, 10)
    finally:
        impatient.dispose()

    assert balances(a, b) == [1000, 500]
