"""Cost ledger: maps (model id, token counts) to a monetary cost in USD.

Prices are per million tokens.  The table must always carry a ``default``
entry, used for any model id it does not list, so ``cost`` never fails.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import NamedTuple

logger = logging.getLogger(__name__)

DEFAULT_KEY = "default"
TOKENS_PER_UNIT = 1_000_000


class ModelPricing(NamedTuple):
    input_per_million: float
    output_per_million: float


DEFAULT_PRICING: dict[str, ModelPricing] = {
    "claude-opus-4-6": ModelPricing(5.00, 25.00),
    "claude-sonnet-4-5": ModelPricing(3.00, 15.00),
    "claude-haiku-4-5": ModelPricing(1.00, 5.00),
    DEFAULT_KEY: ModelPricing(1.00, 5.00),
}


def load_pricing_table(path: str | Path) -> dict[str, ModelPricing]:
    """Read a pricing table from a JSON file.

    Expected shape::

        {"default": {"input": 1.0, "output": 5.0},
         "claude-sonnet-4-5": {"input": 3.0, "output": 15.0}}
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict) or DEFAULT_KEY not in raw:
        raise ValueError(f"Pricing table {path} must contain a '{DEFAULT_KEY}' entry")

    table: dict[str, ModelPricing] = {}
    for model, prices in raw.items():
        try:
            table[model] = ModelPricing(float(prices["input"]), float(prices["output"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid pricing entry for {model!r}: {prices!r}") from exc
        if table[model].input_per_million < 0 or table[model].output_per_million < 0:
            raise ValueError(f"Negative price for {model!r}")

    logger.info("Loaded pricing table from %s (%d models)", path, len(table) - 1)
    return table


class CostLedger:
    """Deterministic, side-effect free cost calculator."""

    def __init__(self, table: dict[str, ModelPricing] | None = None) -> None:
        table = dict(table or DEFAULT_PRICING)
        if DEFAULT_KEY not in table:
            raise ValueError(f"Pricing table must contain a '{DEFAULT_KEY}' entry")
        self._table = table

    def pricing_for(self, model: str) -> ModelPricing:
        return self._table.get(model, self._table[DEFAULT_KEY])

    def cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        pricing = self.pricing_for(model)
        return (
            input_tokens / TOKENS_PER_UNIT * pricing.input_per_million
            + output_tokens / TOKENS_PER_UNIT * pricing.output_per_million
        )


_default_ledger = CostLedger()


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Cost using the built-in pricing table."""
    return _default_ledger.cost(model, input_tokens, output_tokens)
