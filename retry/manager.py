"""
Retry manager — wraps one operation in classification, backoff and bookkeeping.

Built on tenacity. One call to execute() looks like this:

    attempt 1 ──► op() ──ok──► record sample, return result
                    │
                  error ──► record sample
                    │
           ┌────────┴─────────┐
        fatal /            retryable and
      non-retryable        attempts left?
           │                  │ yes
        re-raise         sleep delay(k) ─── token cancelled? ──► re-raise last error
                              │
                         attempt k+1 ...

delay(k) = max(RETRY_MIN_DELAY,
               min(base × mult^(k-1), max_delay) × U(1-jitter, 1+jitter) × adaptive multiplier)

The adaptive multiplier comes from the AdaptiveTimingController: when the
remote side is slow, everybody waits longer between tries; when it is fast,
retries come quicker.

Every attempt (success or failure) is fed back into the controller's history
BEFORE the manager decides what to do next, so the very retry that follows
already sees the updated level.

The sleep between attempts goes through a CancellationToken when one is
given: a job that hit its per-job timeout cancels its token, and its retry
loop stops at the next backoff instead of running on in the background.
"""

import logging
import random
import threading
import time
from collections import Counter
from dataclasses import asdict, dataclass
from typing import Any, Callable, Mapping, Optional, Union

from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

from config.settings import settings
from models.enums import ErrorClass, OperationCategory, resolve_category
from models.errors import OperationCancelled
from retry.classifier import classify_error
from retry.policy import DEFAULT_POLICIES, RetryPolicy, get_policy
from timing.controller import AdaptiveTimingController

logger = logging.getLogger(__name__)


@dataclass
class RetryStats:
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    retries: int = 0


class AdaptiveBackoff(wait_base):
    """tenacity wait strategy that delegates to RetryManager.delay_for()."""

    def __init__(self, manager: "RetryManager", policy: RetryPolicy, category: OperationCategory):
        self.manager = manager
        self.policy = policy
        self.category = category

    def __call__(self, retry_state: RetryCallState) -> float:
        # attempt_number is the attempt that just failed, i.e. the retry about to happen
        return self.manager.delay_for(retry_state.attempt_number, self.policy, self.category)


class RetryManager:

    def __init__(
        self,
        timing: Optional[AdaptiveTimingController] = None,
        *,
        policies: Optional[Mapping[OperationCategory, RetryPolicy]] = None,
        min_delay: Optional[float] = None,
        sleep: Optional[Callable[[float], None]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.timing = timing or AdaptiveTimingController()
        self.policies = dict(policies) if policies is not None else dict(DEFAULT_POLICIES)
        self.min_delay = settings.RETRY_MIN_DELAY if min_delay is None else min_delay
        self._sleep = sleep
        self._rng = rng or random.Random()

        self._lock = threading.Lock()
        self._stats: dict[OperationCategory, RetryStats] = {}
        self._error_patterns: Counter = Counter()

    # ── Policy & delay ──────────────────────────────────────────

    def policy_for(
        self,
        category: Union[str, OperationCategory, None],
        overrides: Union[RetryPolicy, Mapping[str, Any], None] = None,
    ) -> RetryPolicy:
        if isinstance(overrides, RetryPolicy):
            return overrides
        return get_policy(category, overrides, self.policies)

    def delay_for(
        self,
        attempt: int,
        policy: RetryPolicy,
        category: Union[str, OperationCategory, None] = None,
    ) -> float:
        """Seconds to wait before retry number `attempt` (1 = first retry)."""
        delay = policy.base_backoff(attempt)
        if policy.jitter_factor:
            delay *= self._rng.uniform(1 - policy.jitter_factor, 1 + policy.jitter_factor)
        delay *= self.timing.multiplier_for(resolve_category(category))
        return max(self.min_delay, delay)

    # ── Execution ───────────────────────────────────────────────

    def execute(
        self,
        op: Callable[[], Any],
        category: Union[str, OperationCategory, None] = None,
        overrides: Union[RetryPolicy, Mapping[str, Any], None] = None,
        *,
        cancel_token=None,
        on_attempt: Optional[Callable[[int], None]] = None,
    ) -> Any:
        """
        Run `op` until it succeeds, fails in a way that is not worth
        retrying, or runs out of attempts. The last error is re-raised as-is.

        Args:
            op: zero-argument callable doing the actual work
            category: operation category (name, alias or enum)
            overrides: a full RetryPolicy, or a dict of fields to replace
            cancel_token: stops retrying when cancelled during a backoff
            on_attempt: called with the attempt number before each attempt
        """
        category = resolve_category(category)
        policy = self.policy_for(category, overrides)

        retrying = Retrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=AdaptiveBackoff(self, policy, category),
            retry=retry_if_exception(
                lambda exc: classify_error(exc, policy) is ErrorClass.RETRYABLE
            ),
            sleep=self._make_sleep(cancel_token),
            before_sleep=self._log_retry(category),
            reraise=True,
        )

        last_error: Optional[BaseException] = None
        result = None
        try:
            for attempt in retrying:
                with attempt:
                    number = attempt.retry_state.attempt_number
                    if on_attempt is not None:
                        on_attempt(number)
                    started = time.monotonic()
                    try:
                        result = op()
                    except Exception as e:
                        last_error = e
                        self._record(category, started, success=False, error=e)
                        raise
                    self._record(category, started, success=True)
        except OperationCancelled:
            logger.info(f"Retries for '{category.value}' cancelled, giving up")
            raise last_error

        return result

    def _make_sleep(self, cancel_token) -> Callable[[float], None]:
        def sleep(seconds: float) -> None:
            if cancel_token is not None and cancel_token.cancelled:
                raise OperationCancelled("cancelled before backoff")
            if self._sleep is not None:
                self._sleep(seconds)
            elif cancel_token is not None:
                if cancel_token.wait(seconds):
                    raise OperationCancelled("cancelled during backoff")
            else:
                time.sleep(seconds)

        return sleep

    def _log_retry(self, category: OperationCategory) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            with self._lock:
                self._stats_for(category).retries += 1
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                f"[{category.value}] attempt {retry_state.attempt_number} failed: {error} "
                f"- retrying in {delay:.2f}s"
            )

        return before_sleep

    # ── Statistics ──────────────────────────────────────────────

    def _stats_for(self, category: OperationCategory) -> RetryStats:
        stats = self._stats.get(category)
        if stats is None:
            stats = self._stats[category] = RetryStats()
        return stats

    def _record(
        self,
        category: OperationCategory,
        started: float,
        success: bool,
        error: Optional[BaseException] = None,
    ) -> None:
        duration_ms = (time.monotonic() - started) * 1000
        self.timing.record(category, duration_ms, success)

        with self._lock:
            stats = self._stats_for(category)
            stats.attempts += 1
            if success:
                stats.successes += 1
            else:
                stats.failures += 1
                self._error_patterns[f"{category.value}:{type(error).__name__}"] += 1

        logger.debug(
            f"[{category.value}] attempt {'ok' if success else 'failed'} in {duration_ms:.0f}ms"
        )

    def stats(self) -> dict:
        """Counters per category plus how often each error type was seen."""
        with self._lock:
            return {
                "categories": {cat.value: asdict(s) for cat, s in self._stats.items()},
                "error_patterns": dict(self._error_patterns),
            }

    def reset_stats(self) -> None:
        with self._lock:
            self._stats.clear()
            self._error_patterns.clear()
