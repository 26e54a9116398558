"""
Session usage metrics.

Tracks elapsed wall-clock time and token counts for one pipeline run and
turns them into UsageMetrics with an estimated cost.
"""

import time
from typing import Callable, Optional

import structlog

from .models import Provider, UsageMetrics
from .pricing import BillingMode, PricingTable, compute_cost
from .token_counter import TokenUsage

logger = structlog.get_logger(__name__)


class SessionMetricsTracker:
    """Accumulates usage for a single session.

    One tracker belongs to exactly one session. finalize() is meant to be
    called once, when the session ends.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """Initialize an unstarted tracker.

        Args:
            clock: Monotonic clock returning seconds
        """
        self._clock = clock
        self._started_at: Optional[float] = None
        self.usage = TokenUsage()

    @property
    def started(self) -> bool:
        return self._started_at is not None

    def start_session(self) -> "SessionMetricsTracker":
        """Record the start timestamp and zero the counters."""
        self._started_at = self._clock()
        self.usage = TokenUsage()
        return self

    def record_tokens(self, input_tokens=0, output_tokens=0) -> None:
        """Accumulate reported token counts; counts never decrease."""
        self.usage = self.usage.add(input_tokens, output_tokens)

    def elapsed_ms(self) -> int:
        """Milliseconds since start_session, never negative."""
        if self._started_at is None:
            return 0
        return max(int(round((self._clock() - self._started_at) * 1000)), 0)

    def finalize(
        self,
        pricing: PricingTable,
        provider: Provider,
        model: str,
        billing_mode: Optional[BillingMode] = None,
        billed_duration_ms: Optional[int] = None,
    ) -> UsageMetrics:
        """Compute the final metrics of the session.

        Args:
            pricing: Pricing table to bill against
            provider: Provider that served the session
            model: Model identifier
            billing_mode: Override of the provider's billing mode
            billed_duration_ms: Duration to bill per-minute rates on,
                defaults to the elapsed wall-clock duration

        Returns:
            UsageMetrics with duration, token counts and estimated cost
        """
        duration_ms = self.elapsed_ms()
        billing = pricing.billing_for(provider, model, billing_mode)
        cost = compute_cost(
            billing,
            self.usage,
            duration_ms if billed_duration_ms is None else billed_duration_ms,
        )
        metrics = UsageMetrics(
            duration_ms=duration_ms,
            tokens_input=self.usage.input_tokens,
            tokens_output=self.usage.output_tokens,
            tokens_total=self.usage.total_tokens,
            estimated_cost_usd=cost,
        )
        logger.debug(
            "session_metrics_finalized",
            provider=provider.value,
            model=model,
            duration_ms=duration_ms,
            tokens_total=metrics.tokens_total,
            estimated_cost_usd=cost,
        )
        return metrics


def start_session(clock: Callable[[], float] = time.monotonic) -> SessionMetricsTracker:
    """Create a tracker and start it."""
    return SessionMetricsTracker(clock).start_session()
