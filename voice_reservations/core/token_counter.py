"""
Token counting and usage tracking.

Accumulates token counts reported by vendor responses and stream frames.
"""

from dataclasses import dataclass


def _non_negative(value) -> int:
    """Coerce a reported count to a non-negative integer."""
    try:
        count = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return max(count, 0)


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for cost calculation.

    Counts only ever grow: negative or malformed increments count as zero.
    """
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Total tokens used (input + output)."""
        return self.input_tokens + self.output_tokens

    def add(self, input_tokens=0, output_tokens=0) -> "TokenUsage":
        """Return usage increased by the given counts."""
        return TokenUsage(
            input_tokens=self.input_tokens + _non_negative(input_tokens),
            output_tokens=self.output_tokens + _non_negative(output_tokens),
        )
