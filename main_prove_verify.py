# main_prove_verify.py
"""
Driver that ties everything together:

- generate: build a random block of trade history updates off-circuit
  (sparse tree, openings, trimming) and write it as JSON
- validate: build the block circuit, assign the witness, check satisfiability
- prove: validate, then hand the satisfied constraint system to PySNARK
- create-keys: build the circuit for a block size from its constraints alone
  and record it in PySNARK so the backend writes the key pair

Data Flow:
==========
Off-circuit (plain Python):
├─ SparseMerkleTree holds the trade history leaves
├─ For each update: opening of the slot, trim_trade_history, new leaf
└─ Block JSON: roots, updates (orderID, fill, stored record, proof)

In-circuit (protoboard):
├─ TradeHistoryBlockCircuit: one slot circuit per update
├─ generate_constraints(): structure, independent of the block values
├─ generate_witness(block): concrete values
└─ is_satisfied(): the only verdict on a block
"""

import argparse
import json
import logging
import os
import random
import sys
from typing import Dict, Optional

from block_circuit import TradeHistoryBlock, TradeHistoryBlockCircuit, TradeHistoryUpdate
from config import CircuitParams
from errors import BlockError, CircuitError
from merkle_tree import SparseMerkleTree
from protoboard import Protoboard
from trade_history import TradeHistoryLeaf, trim_trade_history

logger = logging.getLogger(__name__)


def generate_random_block(
    block_size: int,
    params: Optional[CircuitParams] = None,
    rng: Optional[random.Random] = None,
    num_prefilled: int = 4,
) -> TradeHistoryBlock:
    """
    Random but valid block.

    A few slots are pre-filled so that some updates hit slots owned by other
    (older or newer) orders.
    """
    params = params or CircuitParams.from_env()
    rng = rng or random.Random()
    tree = SparseMerkleTree(params.tree_depth)
    leaves: Dict[int, TradeHistoryLeaf] = {}
    max_order_id = 2 ** params.num_bits_order_id
    num_slots = 2 ** params.tree_depth

    for _ in range(num_prefilled):
        order_id = rng.randrange(max_order_id)
        slot = order_id % num_slots
        leaves[slot] = TradeHistoryLeaf(rng.getrandbits(32), rng.randrange(2), order_id)
        tree.update(slot, leaves[slot].hash())

    root_before = tree.root()
    updates = []
    for _ in range(block_size):
        order_id = rng.randrange(max_order_id)
        slot = order_id % num_slots
        stored = leaves.get(slot, TradeHistoryLeaf())
        siblings, _ = tree.opening(slot)
        fill = rng.getrandbits(32)
        updates.append(TradeHistoryUpdate(order_id, fill, stored, tuple(siblings)))

        trimmed = trim_trade_history(stored, order_id)
        leaves[slot] = TradeHistoryLeaf(
            trimmed.filled + fill, trimmed.cancelled_to_store, trimmed.order_id_to_store
        )
        tree.update(slot, leaves[slot].hash())

    return TradeHistoryBlock(root_before, tree.root(), tuple(updates))


def generate_empty_block(block_size: int, params: Optional[CircuitParams] = None) -> TradeHistoryBlock:
    """
    Block of no-op updates: order 0 with a zero fill on the empty tree.

    Every update rewrites the empty leaf unchanged, so the roots before and
    after are both the empty root.
    """
    params = params or CircuitParams.from_env()
    tree = SparseMerkleTree(params.tree_depth)
    siblings, _ = tree.opening(0)
    update = TradeHistoryUpdate(0, 0, TradeHistoryLeaf(), tuple(siblings))
    return TradeHistoryBlock(tree.root(), tree.root(), (update,) * block_size)


def build_circuit(block: TradeHistoryBlock, params: CircuitParams) -> Protoboard:
    pb = Protoboard()
    circuit = TradeHistoryBlockCircuit(pb, block.block_size, params)
    circuit.generate_constraints()
    circuit.print_info()
    circuit.generate_witness(block)
    return pb


def validate_block(block: TradeHistoryBlock, params: Optional[CircuitParams] = None) -> bool:
    pb = build_circuit(block, params or CircuitParams.from_env())
    return pb.is_satisfied()


def prove_block(block: TradeHistoryBlock, params: Optional[CircuitParams] = None) -> bool:
    # imported here so generate/validate work without a PySNARK backend
    from pysnark_backend import prove_with_pysnark

    pb = build_circuit(block, params or CircuitParams.from_env())
    if not pb.is_satisfied():
        return False
    prove_with_pysnark(pb)
    return True


def create_keys(block_size: int, params: Optional[CircuitParams] = None) -> Protoboard:
    """
    Build the circuit for block_size updates from its constraints alone.

    PySNARK records a circuit by evaluating it, so once the structure is
    built it is run on the no-op block; the key pair only depends on the
    constraints, not on that assignment.
    """
    # imported here so generate/validate work without a PySNARK backend
    from pysnark_backend import prove_with_pysnark

    params = params or CircuitParams.from_env()
    pb = Protoboard()
    circuit = TradeHistoryBlockCircuit(pb, block_size, params)
    circuit.generate_constraints()
    circuit.print_info()

    circuit.generate_witness(generate_empty_block(block_size, params))
    prove_with_pysnark(pb)
    return pb


def load_block(path: str) -> TradeHistoryBlock:
    try:
        with open(path) as f:
            data = json.load(f)
    except OSError as exc:
        raise BlockError(f"cannot read block {path}: {exc}") from exc
    except ValueError as exc:
        raise BlockError(f"block {path} is not valid JSON: {exc}") from exc
    return TradeHistoryBlock.from_dict(data)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Trade history circuit driver")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--tree-depth", type=int, help="override TRADE_HISTORY_TREE_DEPTH")
    sub = parser.add_subparsers(dest="mode", required=True)

    gen = sub.add_parser("generate", help="write a random valid block")
    gen.add_argument("block_size", type=int)
    gen.add_argument("output")
    gen.add_argument("--seed", type=int)

    for mode in ("validate", "prove"):
        p = sub.add_parser(mode)
        p.add_argument("input")

    keys = sub.add_parser("create-keys", help="build the circuit for a block size and create its keys")
    keys.add_argument("block_size", type=int)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        environ = dict(os.environ)
        if args.tree_depth is not None:
            environ["TRADE_HISTORY_TREE_DEPTH"] = str(args.tree_depth)
        params = CircuitParams.from_env(environ)

        if args.mode == "generate":
            block = generate_random_block(args.block_size, params, random.Random(args.seed))
            with open(args.output, "w") as f:
                json.dump(block.to_dict(), f, indent=2)
            logger.info("Wrote block of %d updates to %s", block.block_size, args.output)
            return 0

        if args.mode == "create-keys":
            create_keys(args.block_size, params)
            logger.info("Created keys for blocks of %d updates", args.block_size)
            return 0

        block = load_block(args.input)
        if args.mode == "validate":
            ok = validate_block(block, params)
        else:
            ok = prove_block(block, params)
    except CircuitError as exc:
        logger.error("%s", exc)
        return 1

    if not ok:
        logger.error("Block is not valid")
        return 1
    logger.info("Block is valid")
    return 0


if __name__ == "__main__":
    sys.exit(main())
