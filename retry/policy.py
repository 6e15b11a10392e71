"""
Retry policies — how hard to try, per operation category.

A RetryPolicy is immutable. The defaults below come from watching the
remote service in production: page loads are slow but worth retrying many
times, clicks fail fast and rarely recover after a few tries, raw network
calls get the longest backoff.

    category          retries  base   max    mult  jitter
    ────────────────  ───────  ─────  ─────  ────  ──────
    navigation        5        1.0s   30s    2.0   10%
    interaction       3        0.5s   10s    1.5   20%
    element_search    4        0.3s   8s     1.8   15%
    network           6        2.0s   60s    2.5   30%
    remote_operation  4        1.5s   20s    2.0   25%
    save              3        0.8s   15s    2.2   10%

Backoff for retry k (k = 1, 2, ...):

    min(base × multiplier^(k-1), max_delay) × U(1 - jitter, 1 + jitter)

The retry manager then scales that by the adaptive multiplier and clamps it
to at least settings.RETRY_MIN_DELAY.
"""

from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping, Optional, Union

from models.enums import OperationCategory, resolve_category

# Message substrings that mark an error as transient, whatever its type
DEFAULT_RETRYABLE_PATTERNS: tuple[str, ...] = (
    "timeout",
    "network",
    "connection",
    "element not found",
    "element not visible",
    "detached",
    "navigation",
    "session expired",
)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 0.5            # seconds
    max_delay: float = 10.0            # seconds
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.1         # 0.1 → delay varies ±10%
    retryable_errors: frozenset[str] = frozenset({"TimeoutError"})
    retryable_patterns: tuple[str, ...] = DEFAULT_RETRYABLE_PATTERNS
    is_retryable: Optional[Callable[[BaseException], bool]] = None

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay <= 0 or self.max_delay <= 0:
            raise ValueError("base_delay and max_delay must be positive")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")
        if not 0 <= self.jitter_factor < 1:
            raise ValueError("jitter_factor must be in [0, 1)")
        # Accept any iterable of names, store a frozenset
        if not isinstance(self.retryable_errors, frozenset):
            object.__setattr__(self, "retryable_errors", frozenset(self.retryable_errors))
        if not isinstance(self.retryable_patterns, tuple):
            object.__setattr__(self, "retryable_patterns", tuple(self.retryable_patterns))

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def base_backoff(self, attempt: int) -> float:
        """Un-jittered, un-scaled delay before retry number `attempt` (1-based)."""
        if attempt < 1:
            return 0.0
        return min(self.base_delay * self.backoff_multiplier ** (attempt - 1), self.max_delay)

    def with_overrides(self, overrides: Optional[Mapping[str, Any]] = None) -> "RetryPolicy":
        if not overrides:
            return self
        return replace(self, **overrides)


DEFAULT_POLICIES: dict[OperationCategory, RetryPolicy] = {
    OperationCategory.NAVIGATION: RetryPolicy(
        max_retries=5, base_delay=1.0, max_delay=30.0,
        backoff_multiplier=2.0, jitter_factor=0.10,
        retryable_errors=frozenset({"TimeoutError", "NetworkError", "ElementNotFound"}),
    ),
    OperationCategory.INTERACTION: RetryPolicy(
        max_retries=3, base_delay=0.5, max_delay=10.0,
        backoff_multiplier=1.5, jitter_factor=0.20,
        retryable_errors=frozenset({"ElementNotVisible", "ElementDetached", "TimeoutError"}),
    ),
    OperationCategory.ELEMENT_SEARCH: RetryPolicy(
        max_retries=4, base_delay=0.3, max_delay=8.0,
        backoff_multiplier=1.8, jitter_factor=0.15,
        retryable_errors=frozenset({"ElementNotFound", "TimeoutError"}),
    ),
    OperationCategory.NETWORK: RetryPolicy(
        max_retries=6, base_delay=2.0, max_delay=60.0,
        backoff_multiplier=2.5, jitter_factor=0.30,
        retryable_errors=frozenset({"NetworkError", "TimeoutError", "ConnectionReset"}),
    ),
    OperationCategory.REMOTE_OPERATION: RetryPolicy(
        max_retries=4, base_delay=1.5, max_delay=20.0,
        backoff_multiplier=2.0, jitter_factor=0.25,
        retryable_errors=frozenset({"RemoteOperationError", "SessionExpired", "TimeoutError"}),
    ),
    OperationCategory.SAVE: RetryPolicy(
        max_retries=3, base_delay=0.8, max_delay=15.0,
        backoff_multiplier=2.2, jitter_factor=0.10,
        retryable_errors=frozenset({"SaveError", "ValidationError", "TimeoutError"}),
    ),
}


def get_policy(
    category: Union[str, OperationCategory, None],
    overrides: Optional[Mapping[str, Any]] = None,
    policies: Optional[Mapping[OperationCategory, RetryPolicy]] = None,
) -> RetryPolicy:
    """
    Look up the policy for a category (names and aliases accepted).

    Unknown categories get the interaction policy. `overrides` replaces
    individual fields, e.g. {"max_retries": 0} for a one-shot call.
    """
    table = policies if policies is not None else DEFAULT_POLICIES
    key = resolve_category(category)
    policy = table.get(key) or DEFAULT_POLICIES[key]
    return policy.with_overrides(overrides)
