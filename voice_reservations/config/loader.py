"""
Pricing configuration loading.

Loads pricing table overrides from YAML with strict validation.
"""

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict

import yaml

from voice_reservations.core.models import Provider
from voice_reservations.core.pricing import (
    AudioRates,
    BillingMode,
    ModelPricing,
    PricingTable,
    ProviderPricing,
)

_AUDIO_RATE_KEYS = ("transcription_per_minute", "input_per_minute", "output_per_minute")
_PROVIDER_KEYS = {"billing", "default_model", "models", *_AUDIO_RATE_KEYS}


def load_pricing_table(path: str) -> PricingTable:
    """Load and validate a pricing table from a YAML file.

    Strict validation ensures a typo can never silently zero out a rate
    and under-report costs.

    Args:
        path: Path to YAML pricing file

    Returns:
        Validated PricingTable

    Raises:
        FileNotFoundError: If pricing file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If pricing configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Pricing config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in pricing file {path}: {e}")

    if not raw_config:
        raise ValueError("Pricing file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Pricing file must contain a mapping of providers")

    valid_providers = {provider.value: provider for provider in Provider}
    unknown_providers = set(raw_config.keys()) - set(valid_providers)
    if unknown_providers:
        raise ValueError(f"Unknown providers: {unknown_providers}")

    providers = {}
    for name, data in raw_config.items():
        if not isinstance(data, dict):
            raise ValueError(f"Provider '{name}' must be a dictionary")
        providers[valid_providers[name]] = _parse_provider(data, name)

    return PricingTable(providers)


def _parse_provider(data: Dict, path: str) -> ProviderPricing:
    """Parse and validate the pricing of one provider.

    Args:
        data: Provider pricing data
        path: Path for error messages

    Returns:
        Validated ProviderPricing

    Raises:
        ValueError: If configuration is invalid
    """
    unknown_keys = set(data.keys()) - _PROVIDER_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    if 'billing' not in data:
        raise ValueError(f"Missing required 'billing' in {path}")
    billing_str = data['billing']
    if not isinstance(billing_str, str):
        raise ValueError(f"'billing' in {path} must be a string")
    try:
        billing_mode = BillingMode(billing_str.lower())
    except ValueError:
        valid_modes = [mode.value for mode in BillingMode]
        raise ValueError(f"'billing' in {path} must be one of: {valid_modes}")

    models_data = data.get('models')
    if not isinstance(models_data, dict) or not models_data:
        raise ValueError(f"'models' in {path} must be a non-empty dictionary")

    models = {}
    for model_name, rates in models_data.items():
        model_path = f"{path}.models.{model_name}"
        if not isinstance(rates, dict):
            raise ValueError(f"Model '{model_path}' must be a dictionary")
        unknown_rate_keys = set(rates.keys()) - {'input', 'output'}
        if unknown_rate_keys:
            raise ValueError(f"Unknown keys in {model_path}: {unknown_rate_keys}")
        for key in ('input', 'output'):
            if key not in rates:
                raise ValueError(f"Missing required '{key}' in {model_path}")
        models[str(model_name)] = ModelPricing(
            input_per_m=_parse_rate(rates['input'], f"{model_path}.input"),
            output_per_m=_parse_rate(rates['output'], f"{model_path}.output"),
        )

    default_model = data.get('default_model', next(iter(models)))
    if default_model not in models:
        raise ValueError(f"'default_model' in {path} must be one of: {list(models)}")

    audio = AudioRates(**{
        key: _parse_rate(data[key], f"{path}.{key}")
        for key in _AUDIO_RATE_KEYS
        if key in data
    })
    if billing_mode is BillingMode.DURATION_RATE and not (
        audio.input_per_minute or audio.output_per_minute
    ):
        raise ValueError(f"duration_rate billing in {path} requires a per-minute rate")

    return ProviderPricing(
        billing_mode=billing_mode,
        default_model=default_model,
        models=models,
        audio=audio,
    )


def _parse_rate(value, path: str) -> Decimal:
    """Parse a non-negative rate into a Decimal."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"'{path}' must be a number")
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{path}' must be a number")
    if rate < 0:
        raise ValueError(f"'{path}' must be >= 0")
    return rate
