from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional

from ..core.errors import ConflictError, TransferTimeoutError
from .engine import TransferEngine, TransferResult


logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (ConflictError, TransferTimeoutError)


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    rng: Callable[[], float] = random.random,
) -> float:
    """Capped exponential backoff with full jitter; ``attempt`` starts at 0."""
    return rng() * min(max_delay, base_delay * (2 ** attempt))


def transfer_with_retry(
    engine: TransferEngine,
    from_id: int,
    to_id: int,
    amount: int,
    *,
    attempts: int = 3,
    base_delay: float = 0.05,
    max_delay: float = 1.0,
    timeout: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
    rng: Callable[[], float] = random.random,
) -> TransferResult:
    """Run a transfer, retrying only conflicts and timeouts.

    Validation, missing accounts and insufficient funds are raised on the
    first attempt: retrying would not change the outcome. Each attempt gets
    its own deadline of ``timeout`` seconds.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(attempts - 1):
        try:
            return engine.transfer(from_id, to_id, amount, timeout=timeout)
        except RETRYABLE_ERRORS as exc:
            delay = backoff_delay(attempt, base_delay, max_delay, rng)
            logger.warning(
                "transfer.retry",
                extra={
                    "from_id": from_id,
                    "to_id": to_id,
                    "kind": exc.kind,
                    "attempt": attempt + 1,
                    "delay": delay,
                },
            )
            sleep(delay)

    return engine.transfer(from_id, to_id, amount, timeout=timeout)
