# trade_history.py
"""
Trade history gadgets.

Every order owns the slot at address orderID mod 2^TREE_DEPTH of the trade
history tree. A slot stores (filled, cancelled, orderID); because many order
ids share one slot over time, the stored orderID doubles as the generation of
the slot.

- TradeHistoryTrimmingGadget decides which stored fields still belong to the
  order being processed, and what is written back.
- UpdateTradeHistoryGadget proves that exactly one leaf changed: the "before"
  leaf is authenticated against the old root and the new root is computed
  from the "after" leaf with the very same path and address.

trim_trade_history mirrors the trimming gadget off-circuit.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, NamedTuple, Optional, Sequence, Tuple

from config import DEFAULT_PARAMS, CircuitParams
from errors import ConfigurationError, WitnessError
from gadgets import DualVariableGadget, LeqGadget, NotGadget, TernaryGadget
from hash_utils import TRADE_HISTORY_LEAF_IV, merkle_tree_ivs, trade_history_leaf_hash
from protoboard import Gadget, Protoboard, Term, Variable, as_lc
from zk_merkle import MerklePathAuthenticator, MerklePathCompute, MiMCHashGadget

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TradeHistoryLeaf:
    """Concrete contents of one slot."""

    filled: int = 0
    cancelled: int = 0
    order_id: int = 0

    def hash(self) -> int:
        return trade_history_leaf_hash(self.filled, self.cancelled, self.order_id)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TradeHistoryLeaf":
        return cls(
            filled=int(data["filled"]),
            cancelled=int(data["cancelled"]),
            order_id=int(data["orderID"]),
        )

    def to_dict(self) -> dict:
        return {"filled": str(self.filled), "cancelled": self.cancelled, "orderID": self.order_id}


class TradeHistoryState(NamedTuple):
    """The (filled, cancelled, orderID) wires of a slot inside a circuit."""

    filled: Term
    cancelled: Term
    order_id: Term

    @classmethod
    def coerce(cls, record: Any, what: str = "record") -> "TradeHistoryState":
        if isinstance(record, cls):
            return record
        try:
            fields = tuple(record)
        except TypeError:
            raise ConfigurationError(f"{what} must be a (filled, cancelled, orderID) triple") from None
        if len(fields) != len(cls._fields):
            raise ConfigurationError(
                f"{what} must have {len(cls._fields)} fields (filled, cancelled, orderID), got {len(fields)}"
            )
        return cls(*fields)


class TrimmedTradeHistory(NamedTuple):
    filled: int
    cancelled: int
    cancelled_to_store: int
    order_id_to_store: int


def trim_trade_history(leaf: TradeHistoryLeaf, order_id: int) -> TrimmedTradeHistory:
    """
    Off-circuit counterpart of TradeHistoryTrimmingGadget.

    Data of an older order in the slot is reset; an order older than the slot
    is reported cancelled.
    """
    is_older = leaf.order_id < order_id
    force_cancel = leaf.order_id > order_id
    cancelled_to_store = 0 if is_older else leaf.cancelled
    return TrimmedTradeHistory(
        filled=0 if is_older else leaf.filled,
        cancelled=1 if force_cancel else cancelled_to_store,
        cancelled_to_store=cancelled_to_store,
        order_id_to_store=order_id if is_older else leaf.order_id,
    )


class TradeHistoryTrimmingGadget(Gadget):
    """
    Resolves slot reuse between the stored record and the order being processed.

    stored < new:  the stored data belongs to an older order; filled and
                   cancelled read as 0 and the slot moves to the new orderID
    stored == new: same order, everything carries over
    stored > new:  the slot already belongs to a newer order; the order being
                   processed is reported cancelled, the slot is left as is

    Outputs:
        filled, cancelled: what order matching must use
        cancelled_to_store, order_id_to_store: what is written back to the slot
    """

    def __init__(
        self,
        pb: Protoboard,
        trade_history_filled: Term,
        trade_history_cancelled: Term,
        trade_history_order_id: Term,
        order_id: Term,
        prefix: str,
        params: CircuitParams = DEFAULT_PARAMS,
    ) -> None:
        super().__init__(pb, prefix)
        self.trade_history_filled = as_lc(trade_history_filled)
        self.trade_history_cancelled = as_lc(trade_history_cancelled)
        self.trade_history_order_id = as_lc(trade_history_order_id)
        self.order_id = as_lc(order_id)

        self.b_new = LeqGadget(
            pb,
            self.trade_history_order_id,
            self.order_id,
            params.num_bits_order_id,
            f"{prefix}.tradeHistoryOrderID <(=) orderID",
        )
        self.b_trim = NotGadget(pb, self.b_new.leq(), f"{prefix}.!bNew")

        self._filled = TernaryGadget(pb, self.b_new.lt(), 0, self.trade_history_filled, f"{prefix}.filled")
        self._cancelled_to_store = TernaryGadget(
            pb, self.b_new.lt(), 0, self.trade_history_cancelled, f"{prefix}.cancelledToStore"
        )
        self._cancelled = TernaryGadget(
            pb, self.b_trim.result, 1, self._cancelled_to_store.result, f"{prefix}.cancelled"
        )
        self._order_id_to_store = TernaryGadget(
            pb, self.b_new.lt(), self.order_id, self.trade_history_order_id, f"{prefix}.orderIDToStore"
        )

    @property
    def filled(self) -> Variable:
        return self._filled.result

    @property
    def cancelled(self) -> Variable:
        return self._cancelled.result

    @property
    def cancelled_to_store(self) -> Variable:
        return self._cancelled_to_store.result

    @property
    def order_id_to_store(self) -> Variable:
        return self._order_id_to_store.result

    @property
    def force_cancel(self) -> Variable:
        return self.b_trim.result

    def _gadgets(self) -> Tuple[Gadget, ...]:
        return (
            self.b_new,
            self.b_trim,
            self._filled,
            self._cancelled_to_store,
            self._cancelled,
            self._order_id_to_store,
        )

    def _generate_constraints(self) -> None:
        for gadget in self._gadgets():
            gadget.generate_constraints()

    def generate_witness(self) -> None:
        for gadget in self._gadgets():
            gadget.generate_witness()


class UpdateTradeHistoryGadget(Gadget):
    """
    Authenticated update of a single trade history leaf.

    The caller supplies the old root, the address bits of the slot and the
    before/after records. The authentication path is allocated here once and
    shared by the verifier of the old leaf and the calculator of the new
    root, so every sibling, and therefore every other leaf, is unchanged.

    fill is a NUM_BITS_AMOUNT-wide range-checked amount the enclosing circuit
    can bind to the update (e.g. after.filled = trimmed filled + fill). Pass an
    existing variable to range check a value the caller already uses.
    """

    def __init__(
        self,
        pb: Protoboard,
        merkle_root_before: Term,
        address: Sequence[Term],
        before: Any,
        after: Any,
        prefix: str,
        params: CircuitParams = DEFAULT_PARAMS,
        fill: Optional[Variable] = None,
    ) -> None:
        super().__init__(pb, prefix)
        if len(address) != params.tree_depth:
            raise ConfigurationError(
                f"{prefix}: address has {len(address)} bits, tree depth is {params.tree_depth}"
            )
        self.params = params
        self.merkle_root_before = as_lc(merkle_root_before)
        self.before = TradeHistoryState.coerce(before, f"{prefix}: before")
        self.after = TradeHistoryState.coerce(after, f"{prefix}: after")
        self.witness_generated = False

        self.fill = DualVariableGadget(pb, params.num_bits_amount, f"{prefix}.fill", packed=fill)

        self.leaf_before = MiMCHashGadget(pb, TRADE_HISTORY_LEAF_IV, list(self.before), f"{prefix}.leafBefore")
        self.leaf_after = MiMCHashGadget(pb, TRADE_HISTORY_LEAF_IV, list(self.after), f"{prefix}.leafAfter")

        ivs = merkle_tree_ivs(params.tree_depth)
        self.proof = pb.allocate_array(params.tree_depth, f"{prefix}.proof")
        self.proof_verifier_before = MerklePathAuthenticator(
            pb,
            params.tree_depth,
            address,
            ivs,
            self.leaf_before.result(),
            self.merkle_root_before,
            self.proof,
            f"{prefix}.pathBefore",
        )
        self.root_calculator_after = MerklePathCompute(
            pb,
            params.tree_depth,
            address,
            ivs,
            self.leaf_after.result(),
            self.proof,
            f"{prefix}.pathAfter",
        )
        logger.debug("%s: trade history update over depth %d", prefix, params.tree_depth)

    @property
    def new_root(self) -> Variable:
        return self.root_calculator_after.result()

    def _generate_constraints(self) -> None:
        self.fill.generate_constraints()

        self.leaf_before.generate_constraints()
        self.leaf_after.generate_constraints()

        self.proof_verifier_before.generate_constraints()
        self.root_calculator_after.generate_constraints()

    def generate_witness(self, proof: Sequence[int], fill: Optional[int] = None) -> None:
        """
        Assign the update for one concrete slot.

        The before/after records and the address must already be assigned by
        the caller. A path that does not authenticate the before leaf is not
        an error here: the protoboard is simply left unsatisfied.
        """
        if not self.constraints_generated:
            raise WitnessError(f"{self.prefix}: generate_constraints() must run before generate_witness()")
        if self.witness_generated:
            raise WitnessError(f"{self.prefix}: witness already generated")
        if len(proof) != self.params.tree_depth:
            raise ConfigurationError(
                f"{self.prefix}: proof has {len(proof)} elements, tree depth is {self.params.tree_depth}"
            )
        self.witness_generated = True

        self.fill.generate_witness(fill)

        self.leaf_before.generate_witness()
        self.leaf_after.generate_witness()

        self.pb.fill_with_field_elements(self.proof, proof)
        self.proof_verifier_before.generate_witness()
        self.root_calculator_after.generate_witness()
