# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */


"""Injectable retry and polling policy built on tenacity."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    stop_any,
    wait_exponential,
)

from solana_k8s_cluster import logger


@dataclass(frozen=True)
class BackoffPolicy:
    """Bounded exponential backoff shared by API retries and readiness polls.

    Attributes:
        max_attempts: Maximum number of attempts, including the first one.
        base_delay: Delay before the second attempt, doubled after each try.
        max_delay: Upper bound for a single delay.
        timeout: Overall wall clock limit in seconds, or None for no bound.
        sleep: Sleep function. Tests pass a no-op to avoid real waiting.
    """

    max_attempts: int = 5
    base_delay: float = 0.5
    max_delay: float = 8.0
    timeout: float | None = None
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def with_sleep(self, sleep: Callable[[float], None]) -> BackoffPolicy:
        """Return a copy of this policy that sleeps with *sleep*."""
        return replace(self, sleep=sleep)

    def _stop(self, cancelled: Callable[[], bool] | None):
        stops = [stop_after_attempt(self.max_attempts)]
        if self.timeout is not None:
            stops.append(stop_after_delay(self.timeout))
        if cancelled is not None:
            stops.append(lambda _state: cancelled())
        return stop_any(*stops)

    def _wait(self, retry_state: RetryCallState) -> float:
        delay = wait_exponential(multiplier=self.base_delay, max=self.max_delay)(retry_state)
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            hint = getattr(outcome.exception(), "retry_after", None)
            if hint:
                delay = min(max(delay, float(hint)), self.max_delay)
        return delay

    def retrying(
        self,
        *exc_types: type[BaseException],
        cancelled: Callable[[], bool] | None = None,
        what: str = "operation",
    ) -> Retrying:
        """Build a tenacity ``Retrying`` that retries on *exc_types*.

        The last exception is re-raised once attempts are exhausted.

        Args:
            *exc_types: Exception types considered transient.
            cancelled: Optional predicate; once true no further attempts are made.
            what: Description used in retry log lines.

        Returns:
            Configured ``Retrying`` instance.
        """
        def _log(retry_state: RetryCallState) -> None:
            logger.warning(
                "%s failed (attempt %d/%d): %s",
                what, retry_state.attempt_number, self.max_attempts,
                retry_state.outcome.exception(),
            )

        return Retrying(
            stop=self._stop(cancelled),
            wait=self._wait,
            retry=retry_if_exception_type(exc_types),
            sleep=self.sleep,
            before_sleep=_log,
            reraise=True,
        )

    def polling(self, cancelled: Callable[[], bool] | None = None) -> Retrying:
        """Build a tenacity ``Retrying`` that polls until the callable returns True.

        Exhausting the policy raises ``tenacity.RetryError``.

        Args:
            cancelled: Optional predicate; once true polling stops early.

        Returns:
            Configured ``Retrying`` instance.
        """
        return Retrying(
            stop=self._stop(cancelled),
            wait=self._wait,
            retry=retry_if_result(lambda ready: not ready),
            sleep=self.sleep,
        )
