# block_circuit.py
"""
A block of trade history updates.

Each slot update trims the stored record for the incoming order, adds the
fill and writes the result back:

    after.filled    = trimmed filled + fill
    after.cancelled = cancelled_to_store
    after.orderID   = order_id_to_store

The root after update i is the root before update i + 1. The roots before and
after the whole block are the public inputs.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Tuple

from config import DEFAULT_PARAMS, CircuitParams
from errors import BlockError
from gadgets import DualVariableGadget
from protoboard import Protoboard, Term
from trade_history import (
    TradeHistoryLeaf,
    TradeHistoryState,
    TradeHistoryTrimmingGadget,
    UpdateTradeHistoryGadget,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TradeHistoryUpdate:
    order_id: int
    fill: int
    trade_history: TradeHistoryLeaf
    proof: Tuple[int, ...]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TradeHistoryUpdate":
        try:
            return cls(
                order_id=int(data["orderID"]),
                fill=int(data["fill"]),
                trade_history=TradeHistoryLeaf.from_dict(data["tradeHistory"]),
                proof=tuple(int(x) for x in data["proof"]),
            )
        except KeyError as exc:
            raise BlockError(f"trade history update is missing {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise BlockError(f"malformed trade history update: {exc}") from exc

    def to_dict(self) -> dict:
        return {
            "orderID": self.order_id,
            "fill": str(self.fill),
            "tradeHistory": self.trade_history.to_dict(),
            "proof": [str(x) for x in self.proof],
        }


@dataclass(frozen=True)
class TradeHistoryBlock:
    merkle_root_before: int
    merkle_root_after: int
    updates: Tuple[TradeHistoryUpdate, ...] = field(default_factory=tuple)

    @property
    def block_size(self) -> int:
        return len(self.updates)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TradeHistoryBlock":
        try:
            raw_updates = list(data["updates"])
        except KeyError as exc:
            raise BlockError(f"block is missing {exc}") from exc
        except TypeError as exc:
            raise BlockError(f"malformed block: {exc}") from exc
        updates = tuple(TradeHistoryUpdate.from_dict(u) for u in raw_updates)
        try:
            block = cls(
                merkle_root_before=int(data["merkleRootBefore"]),
                merkle_root_after=int(data["merkleRootAfter"]),
                updates=updates,
            )
            block_size = int(data.get("blockSize", len(updates)))
        except KeyError as exc:
            raise BlockError(f"block is missing {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise BlockError(f"malformed block: {exc}") from exc
        if block_size != len(updates):
            raise BlockError(f"Invalid number of updates in input: {len(updates)}, blockSize is {block_size}")
        return block

    def to_dict(self) -> dict:
        return {
            "blockSize": self.block_size,
            "merkleRootBefore": str(self.merkle_root_before),
            "merkleRootAfter": str(self.merkle_root_after),
            "updates": [u.to_dict() for u in self.updates],
        }


class TradeHistorySlotCircuit:
    """
    One order touching its trade history slot.

    The stored filled and orderID and the filled value written back are range
    checked to their bit widths, so repeated fills cannot grow a slot past
    NUM_BITS_AMOUNT.
    """

    def __init__(self, pb: Protoboard, merkle_root: Term, params: CircuitParams, prefix: str) -> None:
        self.pb = pb
        self.prefix = prefix
        self.order_id = DualVariableGadget(pb, params.num_bits_order_id, f"{prefix}.orderID")
        self.stored = TradeHistoryState(
            pb.allocate(f"{prefix}.tradeHistory.filled"),
            pb.allocate(f"{prefix}.tradeHistory.cancelled"),
            pb.allocate(f"{prefix}.tradeHistory.orderID"),
        )
        self.stored_filled = DualVariableGadget(
            pb, params.num_bits_amount, f"{prefix}.tradeHistory.filled", packed=self.stored.filled
        )
        self.stored_order_id = DualVariableGadget(
            pb, params.num_bits_order_id, f"{prefix}.tradeHistory.orderID", packed=self.stored.order_id
        )
        self.fill = pb.allocate(f"{prefix}.fill")

        self.trimming = TradeHistoryTrimmingGadget(
            pb,
            self.stored.filled,
            self.stored.cancelled,
            self.stored.order_id,
            self.order_id.packed,
            f"{prefix}.trimming",
            params,
        )
        self.filled_after = DualVariableGadget(pb, params.num_bits_amount, f"{prefix}.filledAfter")
        after = TradeHistoryState(
            self.filled_after.packed,
            self.trimming.cancelled_to_store,
            self.trimming.order_id_to_store,
        )
        self.update = UpdateTradeHistoryGadget(
            pb,
            merkle_root,
            self.order_id.bits[: params.tree_depth],
            self.stored,
            after,
            f"{prefix}.update",
            params,
            fill=self.fill,
        )

    @property
    def new_root(self):
        return self.update.new_root

    def generate_constraints(self) -> None:
        pb = self.pb
        self.order_id.generate_constraints()
        self.stored_filled.generate_constraints()
        self.stored_order_id.generate_constraints()
        pb.add_boolean_constraint(self.stored.cancelled, f"{self.prefix}.tradeHistory.cancelled is boolean")
        self.trimming.generate_constraints()
        self.filled_after.generate_constraints()
        pb.add_constraint(
            1,
            self.trimming.filled + self.fill,
            self.filled_after.packed,
            f"{self.prefix}.filledAfter == filled + fill",
        )
        self.update.generate_constraints()

    def generate_witness(self, update: TradeHistoryUpdate) -> None:
        pb = self.pb
        self.order_id.generate_witness(update.order_id)
        self.stored_filled.generate_witness(update.trade_history.filled)
        pb.set_val(self.stored.cancelled, update.trade_history.cancelled)
        self.stored_order_id.generate_witness(update.trade_history.order_id)
        pb.set_val(self.fill, update.fill)
        self.trimming.generate_witness()
        self.filled_after.generate_witness(pb.val(self.trimming.filled + self.fill))
        self.update.generate_witness(update.proof)


class TradeHistoryBlockCircuit:
    def __init__(self, pb: Protoboard, block_size: int, params: CircuitParams = DEFAULT_PARAMS) -> None:
        if block_size < 1:
            raise BlockError(f"block size must be >= 1, got {block_size}")
        self.pb = pb
        self.block_size = block_size
        self.params = params
        self.merkle_root_before = pb.allocate("merkleRootBefore")
        self.merkle_root_after = pb.allocate("merkleRootAfter")
        pb.make_public(self.merkle_root_before)
        pb.make_public(self.merkle_root_after)

        self.slots: List[TradeHistorySlotCircuit] = []
        root = self.merkle_root_before
        for i in range(block_size):
            slot = TradeHistorySlotCircuit(pb, root, params, f"update[{i}]")
            self.slots.append(slot)
            root = slot.new_root

    def generate_constraints(self) -> None:
        for slot in self.slots:
            slot.generate_constraints()
        self.pb.add_constraint(1, self.slots[-1].new_root, self.merkle_root_after, "merkleRootAfter")

    def generate_witness(self, block: TradeHistoryBlock) -> None:
        if block.block_size != self.block_size:
            raise BlockError(
                f"Invalid number of updates in input: {block.block_size}, circuit expects {self.block_size}"
            )
        self.pb.set_val(self.merkle_root_before, block.merkle_root_before)
        self.pb.set_val(self.merkle_root_after, block.merkle_root_after)
        for slot, update in zip(self.slots, block.updates):
            slot.generate_witness(update)

    def print_info(self) -> None:
        logger.info(
            "TradeHistoryBlockCircuit: %d updates, %d constraints, %d variables",
            self.block_size,
            self.pb.num_constraints,
            self.pb.num_variables,
        )
