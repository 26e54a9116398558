"""
Pricing calculations and rate management.

Handles cost computations for every provider through a single
billing-model abstraction.

Billing models:
1. Token rate - per-1M-token input/output rates, optionally plus a
   per-minute transcription surcharge
2. Duration rate - per-minute input/output audio rates for connection
   oriented providers without granular token accounting
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_UP
from enum import Enum
from typing import Dict, Optional, Union

from .models import Provider
from .token_counter import TokenUsage

_ONE_MILLION = Decimal("1000000")
_MS_PER_MINUTE = Decimal("60000")
_COST_QUANTUM = Decimal("0.000001")


class BillingMode(Enum):
    """Formula used to estimate the cost of a provider call."""
    TOKEN_RATE = "token_rate"
    DURATION_RATE = "duration_rate"


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    input_per_m: Decimal  # Cost per 1M input tokens
    output_per_m: Decimal  # Cost per 1M output tokens


@dataclass(frozen=True)
class AudioRates:
    """Per-minute audio rates of a provider."""
    transcription_per_minute: Decimal = Decimal("0")
    input_per_minute: Decimal = Decimal("0")
    output_per_minute: Decimal = Decimal("0")


@dataclass(frozen=True)
class ProviderPricing:
    """Billing mode, model rates and audio rates of one provider."""
    billing_mode: BillingMode
    default_model: str
    models: Dict[str, ModelPricing]
    audio: AudioRates = field(default_factory=AudioRates)


@dataclass(frozen=True)
class TokenRateBilling:
    """Token-rate billing with an optional per-minute surcharge."""
    input_per_m: Decimal
    output_per_m: Decimal
    surcharge_per_minute: Decimal = Decimal("0")


@dataclass(frozen=True)
class DurationRateBilling:
    """Duration-rate billing summing input and output per-minute rates."""
    input_per_minute: Decimal
    output_per_minute: Decimal = Decimal("0")


Billing = Union[TokenRateBilling, DurationRateBilling]


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table for supported providers and models."""
    providers: Dict[Provider, ProviderPricing]

    def for_provider(self, provider: Provider) -> ProviderPricing:
        """Get the pricing entry of a provider.

        Raises:
            ValueError: If provider is not priced
        """
        if provider not in self.providers:
            raise ValueError(f"Unsupported provider: {provider.value}")
        return self.providers[provider]

    def default_model(self, provider: Provider) -> str:
        return self.for_provider(provider).default_model

    def get_pricing(self, provider: Provider, model: str) -> ModelPricing:
        """Get pricing for a specific model of a provider.

        Raises:
            ValueError: If provider or model is not supported
        """
        entry = self.for_provider(provider)
        if model not in entry.models:
            raise ValueError(f"Unsupported model: {model}")
        return entry.models[model]

    def billing_for(
        self,
        provider: Provider,
        model: str,
        mode: Optional[BillingMode] = None
    ) -> Billing:
        """Build the billing variant for a provider call.

        Args:
            provider: Provider that served the call
            model: Model identifier
            mode: Billing mode override, defaults to the provider's mode

        Returns:
            TokenRateBilling or DurationRateBilling
        """
        entry = self.for_provider(provider)
        mode = mode or entry.billing_mode
        if mode is BillingMode.DURATION_RATE:
            return DurationRateBilling(
                input_per_minute=entry.audio.input_per_minute,
                output_per_minute=entry.audio.output_per_minute,
            )
        pricing = self.get_pricing(provider, model)
        return TokenRateBilling(
            input_per_m=pricing.input_per_m,
            output_per_m=pricing.output_per_m,
            surcharge_per_minute=entry.audio.transcription_per_minute,
        )


# Canonical table. Older rate sheets disagree on several of these numbers;
# this is the single source of truth for every cost estimate.
PRICING_TABLE = PricingTable({
    Provider.OPENAI: ProviderPricing(
        billing_mode=BillingMode.TOKEN_RATE,
        default_model="gpt-4o-mini",
        models={
            "gpt-4o-mini": ModelPricing(
                input_per_m=Decimal("0.15"),
                output_per_m=Decimal("0.60")
            ),
            "gpt-4o": ModelPricing(
                input_per_m=Decimal("2.50"),
                output_per_m=Decimal("10.00")
            ),
        },
        audio=AudioRates(transcription_per_minute=Decimal("0.006")),
    ),
    Provider.GEMINI: ProviderPricing(
        billing_mode=BillingMode.TOKEN_RATE,
        default_model="gemini-2.0-flash",
        models={
            "gemini-2.0-flash": ModelPricing(
                input_per_m=Decimal("0.075"),
                output_per_m=Decimal("0.30")
            ),
            "gemini-2.5-flash": ModelPricing(
                input_per_m=Decimal("0.30"),
                output_per_m=Decimal("2.50")
            ),
        },
    ),
    Provider.GEMINI_LIVE: ProviderPricing(
        billing_mode=BillingMode.TOKEN_RATE,
        default_model="gemini-2.0-flash-exp",
        models={
            "gemini-2.0-flash-exp": ModelPricing(
                input_per_m=Decimal("0.70"),
                output_per_m=Decimal("0.40")
            ),
            "gemini-2.5-flash-native-audio-preview-09-2025": ModelPricing(
                input_per_m=Decimal("3.00"),
                output_per_m=Decimal("12.00")
            ),
        },
    ),
    Provider.OPENAI_REALTIME: ProviderPricing(
        billing_mode=BillingMode.DURATION_RATE,
        default_model="gpt-4o-realtime-preview",
        models={
            "gpt-4o-realtime-preview": ModelPricing(
                input_per_m=Decimal("100.00"),
                output_per_m=Decimal("200.00")
            ),
        },
        audio=AudioRates(
            input_per_minute=Decimal("0.06"),
            output_per_minute=Decimal("0.24")
        ),
    ),
})


def compute_cost(billing: Billing, usage: TokenUsage, duration_ms: int) -> float:
    """Calculate the estimated cost of a call with conservative rounding.

    Args:
        billing: Billing variant built by PricingTable.billing_for
        usage: Token usage data
        duration_ms: Billed duration in milliseconds

    Returns:
        Total cost in USD rounded UP to 6 decimal places
    """
    minutes = Decimal(max(duration_ms, 0)) / _MS_PER_MINUTE

    if isinstance(billing, DurationRateBilling):
        total_cost = minutes * (billing.input_per_minute + billing.output_per_minute)
    elif isinstance(billing, TokenRateBilling):
        # (tokens / 1M) * rate per 1M, for each direction
        input_cost = (Decimal(usage.input_tokens) / _ONE_MILLION) * billing.input_per_m
        output_cost = (Decimal(usage.output_tokens) / _ONE_MILLION) * billing.output_per_m
        total_cost = input_cost + output_cost + minutes * billing.surcharge_per_minute
    else:
        raise TypeError(f"Unknown billing model: {type(billing).__name__}")

    return float(total_cost.quantize(_COST_QUANTUM, rounding=ROUND_UP))
