"""Cost and timing calculation.

Both functions are pure: identical inputs always produce identical outputs.
Costs use Decimal arithmetic so totals are reproducible to the cent no matter
how a provider reports usage, as long as the usage is expressed in the
canonical token classes (see model_gateway.infra.ai.responses.Usage).
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from model_gateway.infra.ai.capabilities.types import CostUnit
from model_gateway.infra.ai.responses import AIResponseCost, AIResponseTiming, Usage

if TYPE_CHECKING:
    from model_gateway.infra.ai.capabilities.types import ModelSpec

_ONE_MILLION = Decimal(1_000_000)

# (cost field on AIResponseCost, usage counter, price field on ModelSpec)
_TOKEN_PRICING = (
    ("input", "input_tokens", "cost_per_million_input_tokens"),
    ("cached_input", "cached_input_tokens", "cost_per_million_cached_input_tokens"),
    ("output", "output_tokens", "cost_per_million_output_tokens"),
    ("reasoning", "reasoning_tokens", "cost_per_million_reasoning_tokens"),
)

# Divisor converting raw usage units into the priced unit
_UNIT_DIVISORS = {
    CostUnit.PER_IMAGE: Decimal(1),
    CostUnit.PER_1M_CHARACTERS: _ONE_MILLION,
    CostUnit.PER_MINUTE: Decimal(60),  # units are seconds of audio
    CostUnit.PER_1K_SEARCHES: Decimal(1000),
}


def calculate_cost(usage: Usage, spec: ModelSpec) -> AIResponseCost:
    """Derive the monetary cost of a response from its usage and the model's pricing.

    For each token class present in ``usage`` and priced in ``spec``, the cost
    is ``tokens / 1_000_000 * price_per_million``. A field is omitted when
    either the counter or the price is missing. Unit-priced modalities add a
    ``unit`` field from ``usage.units`` and ``spec.unit_cost``.

    Args:
        usage: Usage counters reported for the response
        spec: The model descriptor holding prices

    Returns:
        AIResponseCost whose total sums only the present fields
    """
    fields: dict[str, Decimal] = {}

    for cost_field, counter, price_field in _TOKEN_PRICING:
        tokens = getattr(usage, counter)
        price = getattr(spec, price_field)
        if tokens is None or price is None:
            continue
        fields[cost_field] = Decimal(tokens) / _ONE_MILLION * price

    if usage.units is not None:
        if spec.cost_unit == CostUnit.FREE:
            fields["unit"] = Decimal(0)
        elif spec.unit_cost is not None and spec.cost_unit in _UNIT_DIVISORS:
            units = Decimal(str(usage.units))
            fields["unit"] = units / _UNIT_DIVISORS[spec.cost_unit] * spec.unit_cost

    return AIResponseCost(**fields, total=sum(fields.values(), Decimal(0)))


def calculate_timing(elapsed_ms: float, usage: Usage | None) -> AIResponseTiming:
    """Derive throughput metrics from elapsed wall-clock time and usage.

    ``tokens_per_sec`` is ``total_tokens / (elapsed_ms / 1000)``; it is
    omitted when the total token count is unknown or no time elapsed.
    """
    elapsed_ms = max(0.0, float(elapsed_ms))
    total_tokens = usage.total_tokens if usage is not None else None

    tokens_per_sec: float | None = None
    if total_tokens is not None and elapsed_ms > 0:
        tokens_per_sec = total_tokens / (elapsed_ms / 1000)

    return AIResponseTiming(
        elapsed_ms=elapsed_ms,
        tokens_per_sec=tokens_per_sec,
        total_tokens=total_tokens,
    )
