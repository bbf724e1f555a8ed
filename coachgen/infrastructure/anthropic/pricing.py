"""
Per-model token prices for telemetry cost estimates.

Prices are USD per million tokens. The numbers only feed telemetry, so an
unknown model just gets no cost rather than an error.
"""

from typing import Optional

# model prefix -> (input, output) USD per million tokens
MODEL_PRICES: dict[str, tuple[float, float]] = {
    "claude-opus-4": (15.0, 75.0),
    "claude-sonnet-4": (3.0, 15.0),
    "claude-3-7-sonnet": (3.0, 15.0),
    "claude-3-5-sonnet": (3.0, 15.0),
    "claude-3-5-haiku": (0.8, 4.0),
    "claude-3-haiku": (0.25, 1.25),
}


def estimate_cost_usd(
    model: str,
    input_tokens: Optional[int],
    output_tokens: Optional[int],
) -> Optional[float]:
    """Estimated USD cost of one call, or None for unknown models."""
    for prefix, (input_price, output_price) in MODEL_PRICES.items():
        if model.startswith(prefix):
            cost = (
                (input_tokens or 0) * input_price
                + (output_tokens or 0) * output_price
            ) / 1_000_000
            return round(cost, 6)
    return None
