"""Bounded retries with typed results."""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

from ..api import is_transient
from ..exceptions import RetroSyncError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryOutcome(str, Enum):
    """Final outcome of a retried operation."""

    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient_failure"
    """Every attempt failed with an error that might go away later"""

    DEFINITIVE_FAILURE = "definitive_failure"
    """An attempt failed with an error that retrying cannot fix"""


@dataclass
class RetryResult(Generic[T]):
    """Result of RetryPolicy.run."""

    outcome: RetryOutcome
    value: Optional[T] = None
    error: Optional[Exception] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome == RetryOutcome.SUCCESS


class RetryPolicy:
    """Runs an operation up to ``max_retries`` times.

    Between attempts the policy sleeps for a fixed delay and then blocks on
    the availability probe, so a retry is only issued once the remote host
    accepts connections again. Errors classified as definitive stop the loop
    immediately; exceptions other than RetroSyncError and OSError propagate.
    """

    def __init__(
        self,
        max_retries: int = 3,
        delay: float = 3.0,
        probe: Optional[Callable[[], Any]] = None,
        sleep: Callable[[float], None] = time.sleep,
        classify: Callable[[Exception], bool] = is_transient,
    ):
        """Initialize the retry policy.

        Args:
            max_retries: Maximum number of attempts (at least 1)
            delay: Fixed delay in seconds between attempts
            probe: Blocking availability check called before each retry
            sleep: Sleep function (injectable for tests)
            classify: Returns True if an error is worth retrying
        """
        self.max_retries = max(1, max_retries)
        self.delay = delay
        self.probe = probe
        self._sleep = sleep
        self._classify = classify

    def run(
        self,
        operation: Callable[[int], T],
        description: str = "operation",
    ) -> RetryResult[T]:
        """Run ``operation`` until it succeeds or the budget is exhausted.

        Args:
            operation: Callable receiving the 1-based attempt number
            description: Used in log messages

        Returns:
            RetryResult with the operation's return value or last error
        """
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            if attempt > 1:
                self._sleep(self.delay)
                if self.probe is not None:
                    self.probe()
            try:
                value = operation(attempt)
            except (RetroSyncError, OSError) as e:
                last_error = e
                if not self._classify(e):
                    logger.warning("%s failed permanently: %s", description, e)
                    return RetryResult(
                        RetryOutcome.DEFINITIVE_FAILURE, error=e, attempts=attempt
                    )
                logger.warning(
                    "%s failed (attempt %d/%d): %s",
                    description,
                    attempt,
                    self.max_retries,
                    e,
                )
                continue
            return RetryResult(RetryOutcome.SUCCESS, value=value, attempts=attempt)

        logger.warning("%s gave up after %d attempts", description, self.max_retries)
        return RetryResult(
            RetryOutcome.TRANSIENT_FAILURE, error=last_error, attempts=self.max_retries
        )
