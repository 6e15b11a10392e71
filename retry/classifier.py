"""
Error classification — is this failure worth another attempt?

Three answers:

    FATAL          the browser/page/context is gone; retrying is pointless
    RETRYABLE      looks transient (timeout, flaky network, element not there yet)
    NON_RETRYABLE  anything else; a bug or bad input will fail the same way again

Fatal wins over everything: an error whose message says the page has been
closed is fatal even if its type is TimeoutError.
"""

from typing import Optional

from models.enums import ErrorClass
from models.errors import FatalDriverError
from retry.policy import RetryPolicy

FATAL_PATTERNS: tuple[str, ...] = (
    "target page, context or browser has been closed",
    "page has been closed",
    "context has been closed",
    "browser has been closed",
    "execution context was destroyed",
    "session closed",
)


def _type_names(error: BaseException) -> set[str]:
    # Include base classes so a subclass of NetworkError still counts as NetworkError
    return {cls.__name__ for cls in type(error).__mro__}


def is_fatal(error: BaseException) -> bool:
    if isinstance(error, FatalDriverError):
        return True
    message = str(error).lower()
    return any(pattern in message for pattern in FATAL_PATTERNS)


def classify_error(error: BaseException, policy: Optional[RetryPolicy] = None) -> ErrorClass:
    if is_fatal(error):
        return ErrorClass.FATAL
    if policy is None:
        policy = RetryPolicy()

    if _type_names(error) & policy.retryable_errors:
        return ErrorClass.RETRYABLE

    message = str(error).lower()
    if any(pattern.lower() in message for pattern in policy.retryable_patterns):
        return ErrorClass.RETRYABLE

    if policy.is_retryable is not None and policy.is_retryable(error):
        return ErrorClass.RETRYABLE

    return ErrorClass.NON_RETRYABLE


def is_retryable(error: BaseException, policy: Optional[RetryPolicy] = None) -> bool:
    return classify_error(error, policy) is ErrorClass.RETRYABLE
