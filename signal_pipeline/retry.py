"""
Fixed-interval retry policy shared by the message bridge and its callers.
"""

import time
import random
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple, Type, TypeVar

from .config import BRIDGE_MAX_ATTEMPTS, BRIDGE_RETRY_DELAY

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhausted(Exception):
    """Every attempt failed; carries the last failure."""

    def __init__(self, attempts: int, last_error: Optional[BaseException]):
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass
class RetryPolicy:
    """
    Attempt a callable up to max_attempts times with a fixed pause.

    Attributes:
        max_attempts: Total attempts, including the first
        interval: Seconds between attempts
        jitter: Extra random seconds (0..jitter) added to each pause
        sleep: Injectable sleep (tests pass a recorder)
    """
    max_attempts: int = BRIDGE_MAX_ATTEMPTS
    interval: float = BRIDGE_RETRY_DELAY
    jitter: float = 0.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay(self) -> float:
        if self.jitter > 0:
            return self.interval + random.uniform(0, self.jitter)
        return self.interval

    def call(
        self,
        fn: Callable[[], T],
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        label: str = "call",
    ) -> T:
        """
        Run fn until it returns or attempts run out.

        No pause follows the final attempt.

        Raises:
            RetryExhausted: when every attempt raised one of retry_on
        """
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn()
            except retry_on as e:
                last_error = e
                logger.debug(f"{label} attempt {attempt}/{self.max_attempts} failed: {e}")
                if attempt < self.max_attempts:
                    self.sleep(self.delay())
        raise RetryExhausted(self.max_attempts, last_error)
