# config.py
"""
Protocol constants for the trade history tree.

The address of a slot is the low TREE_DEPTH_TRADING_HISTORY bits of the
order id, so the tree can never be deeper than the order id is wide.
"""

import os
from dataclasses import dataclass

from errors import ConfigurationError

TREE_DEPTH_TRADING_HISTORY = 14
NUM_BITS_AMOUNT = 96
NUM_BITS_ORDERID = 20

# Values must stay below the BN254 scalar field (254 bits).
MAX_NUM_BITS = 252


@dataclass(frozen=True)
class CircuitParams:
    tree_depth: int = TREE_DEPTH_TRADING_HISTORY
    num_bits_amount: int = NUM_BITS_AMOUNT
    num_bits_order_id: int = NUM_BITS_ORDERID

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        for name in ("tree_depth", "num_bits_amount", "num_bits_order_id"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ConfigurationError(f"{name} must be an int, got {value!r}")
        if self.tree_depth < 1:
            raise ConfigurationError(f"tree_depth must be >= 1, got {self.tree_depth}")
        for name in ("num_bits_amount", "num_bits_order_id"):
            bits = getattr(self, name)
            if not 1 <= bits <= MAX_NUM_BITS:
                raise ConfigurationError(
                    f"{name} must be in [1, {MAX_NUM_BITS}], got {bits}"
                )
        if self.tree_depth > self.num_bits_order_id:
            raise ConfigurationError(
                f"tree_depth {self.tree_depth} exceeds the order id width "
                f"{self.num_bits_order_id}"
            )

    @classmethod
    def from_env(cls, environ=None) -> "CircuitParams":
        """
        Build params from environment overrides.

        TRADE_HISTORY_TREE_DEPTH, NUM_BITS_AMOUNT and NUM_BITS_ORDERID replace
        the protocol defaults when set.
        """
        env = os.environ if environ is None else environ
        try:
            values = {
                "tree_depth": int(env.get("TRADE_HISTORY_TREE_DEPTH", TREE_DEPTH_TRADING_HISTORY)),
                "num_bits_amount": int(env.get("NUM_BITS_AMOUNT", NUM_BITS_AMOUNT)),
                "num_bits_order_id": int(env.get("NUM_BITS_ORDERID", NUM_BITS_ORDERID)),
            }
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"invalid circuit parameter in environment: {exc}") from exc
        return cls(**values)


DEFAULT_PARAMS = CircuitParams()
