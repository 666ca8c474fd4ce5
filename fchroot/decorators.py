# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
import logging
import time
from functools import wraps
from itertools import chain, islice, repeat
from typing import Callable, Iterable, Iterator, TypeVar, Union

from typing_extensions import ParamSpec

logger = logging.getLogger(__name__)


class Retry(Exception):
    """Raised if a retry should be attempted."""


class OutOfRetries(Exception):
    """Raised if there are no retries remaining."""


TOut_co = TypeVar("TOut_co", covariant=True)
P = ParamSpec("P")


def fixed_schedule(*, attempts: int, delay: float) -> Iterator[float]:
    """Retry schedule which makes exactly `attempts` tries, sleeping `delay` seconds
    between consecutive tries.

    >>> list(fixed_schedule(attempts=3, delay=1))
    [1, 1]
    """
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, but got {attempts}")
    return islice(repeat(delay), attempts - 1)


def retry(
    *,
    retry_schedule_factory: Callable[[], Iterable[float]] = lambda: fixed_schedule(
        attempts=3, delay=1
    ),
    sleep: Callable[[Union[float, int]], None] = time.sleep,
) -> Callable[[Callable[P, TOut_co]], Callable[P, TOut_co]]:
    """Try a (sync) function multiple times.

    In order to signal an error should be retried, the wrapped function should raise
    `Retry`. Exceptions not derived from this type will be propagated to the caller.

    Parameters:
        retry_schedule_factory: A callable which produces an iterable object which
            yields the amount of time to sleep (in seconds) before the next
            try. The number of iterations determines the maximum number of
            times the function is called. In particular, the max number of
            times is the length of the iterable (if finite) plus 1. The default
            makes 3 tries one second apart; see `fixed_schedule`.
        sleep: The callable invoked before each retry for waiting the given amount of
            time.

    Examples:
        Run umount at most 3 times (2 retries), waiting 1 second between each try
        >>> @retry(retry_schedule_factory=lambda: fixed_schedule(attempts=3, delay=1))
        ... def umount():
        ...   if subprocess.run(["umount", target]).returncode != 0:
        ...     raise Retry()

    Raises:
        OutOfRetries when the retry schedule is exhausted. The last `Retry` is chained
        as its cause.
    """

    def decorator(f: Callable[P, TOut_co]) -> Callable[P, TOut_co]:
        @wraps(f)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> TOut_co:
            # signal the last try in the schedule with None, otherwise the exception
            # handling logic becomes hard to follow
            retry_schedule = chain(retry_schedule_factory(), [None])
            for try_idx, sleep_sec in enumerate(retry_schedule):
                logger.debug(f"Try {try_idx} (zero-indexed)")
                try:
                    return f(*args, **kwargs)
                except Retry as e:
                    logger.debug("Got retryable exception: %s", e)
                    if sleep_sec is None:
                        raise OutOfRetries() from e
                    sleep(sleep_sec)
            raise AssertionError(
                "Illegal state. There is always at least one try, so we must always enter the loop body which either returns, throws an exception, or continues iteration."
            )

        return wrapper

    return decorator
