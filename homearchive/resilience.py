"""Circuit breaker and backoff helpers for provider calls."""
import enum
import logging
import random
import threading
import time
from collections import deque
from typing import Callable

from homearchive.exceptions import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Failure-rate circuit breaker guarding one provider.
    
    In CLOSED state call outcomes go into a sliding window. When the window
    holds at least ``minimum_calls`` outcomes and the failure percentage
    reaches ``failure_rate_threshold`` the breaker opens. While OPEN every call
    is rejected with CircuitOpenError until ``open_state_wait`` seconds have
    passed; then up to ``half_open_max_calls`` trial calls are let through.
    A failed trial re-opens the breaker, all trials succeeding closes it.
    
    Usage::
    
        with breaker:
            response = do_request()
    """
    
    def __init__(
        self,
        name: str,
        failure_rate_threshold: float = 50.0,
        sliding_window_size: int = 10,
        minimum_calls: int = 5,
        open_state_wait: float = 30.0,
        half_open_max_calls: int = 3,
        clock: Callable[[], float] = time.monotonic
    ):
        self.name = name
        self.failure_rate_threshold = failure_rate_threshold
        self.minimum_calls = max(1, minimum_calls)
        self.open_state_wait = open_state_wait
        self.half_open_max_calls = max(1, half_open_max_calls)
        self._clock = clock
        self._lock = threading.Lock()
        self._window = deque(maxlen=max(1, sliding_window_size))
        self._state = CircuitState.CLOSED
        self._opened_at = 0.0
        self._half_open_admitted = 0
        self._half_open_succeeded = 0
    
    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state
    
    @property
    def failure_rate(self) -> float:
        """Failure percentage over the current window (0 when empty)."""
        with self._lock:
            return self._failure_rate()
    
    def _failure_rate(self) -> float:
        if not self._window:
            return 0.0
        failures = sum(1 for ok in self._window if not ok)
        return failures * 100.0 / len(self._window)
    
    def _maybe_half_open(self):
        if self._state is CircuitState.OPEN and self._clock() - self._opened_at >= self.open_state_wait:
            logger.info(f"Circuit '{self.name}' half-open after {self.open_state_wait:.0f}s")
            self._state = CircuitState.HALF_OPEN
            self._half_open_admitted = 0
            self._half_open_succeeded = 0
    
    def _open(self):
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._window.clear()
        logger.warning(f"Circuit '{self.name}' opened")
    
    def before_call(self):
        """
        Admit or reject a call.
        
        Raises:
            CircuitOpenError: if the breaker is open, or half-open with all
                trial slots taken
        """
        with self._lock:
            self._maybe_half_open()
            if self._state is CircuitState.OPEN:
                raise CircuitOpenError(self.name)
            if self._state is CircuitState.HALF_OPEN:
                if self._half_open_admitted >= self.half_open_max_calls:
                    raise CircuitOpenError(self.name)
                self._half_open_admitted += 1
    
    def record_success(self):
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._half_open_succeeded += 1
                if self._half_open_succeeded >= self.half_open_max_calls:
                    logger.info(f"Circuit '{self.name}' closed")
                    self._state = CircuitState.CLOSED
                    self._window.clear()
                return
            if self._state is CircuitState.CLOSED:
                self._window.append(True)
    
    def record_failure(self):
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._open()
                return
            if self._state is CircuitState.OPEN:
                return
            self._window.append(False)
            if len(self._window) >= self.minimum_calls and self._failure_rate() >= self.failure_rate_threshold:
                self._open()
    
    def reset(self):
        """Force the breaker back to CLOSED with an empty window."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._window.clear()
            self._half_open_admitted = 0
            self._half_open_succeeded = 0
    
    def __enter__(self):
        self.before_call()
        return self
    
    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.record_success()
        else:
            self.record_failure()
        return False


def backoff_delay(attempt: int, base_backoff: float) -> float:
    """
    Exponential backoff with jitter.
    
    Args:
        attempt: Current attempt number (0-indexed)
        base_backoff: Base delay in seconds
    """
    # Exponential backoff: base * 2^attempt
    delay = base_backoff * (2 ** attempt)
    
    # Add jitter: random value between 0 and delay
    return delay + random.uniform(0, delay)
