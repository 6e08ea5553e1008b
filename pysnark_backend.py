# pysnark_backend.py
"""
Proving a protoboard with PySNARK.

The protoboard is only a constraint system with a witness; keys and proofs
come from PySNARK. replay_constraints() re-records a satisfied protoboard in
PySNARK's runtime:

- every variable becomes a PrivVal (or PubVal for public inputs)
- every constraint A * B = C becomes (A * B - C).assert_zero()

Inside @snark, PySNARK compiles the recorded circuit, builds the witness and,
depending on the backend selected with PYSNARK_BACKEND, generates the keys
and the proof.
"""

import logging
from typing import Dict, List

from pysnark.runtime import LinComb, PrivVal, PubVal, snark

from protoboard import ONE, LinearCombination, Protoboard

logger = logging.getLogger(__name__)


def _signed(coeff: int, modulus: int) -> int:
    # smallest representative keeps -1 as -1 instead of p - 1
    return coeff - modulus if coeff > modulus // 2 else coeff


def _combine(lc: LinearCombination, wires: Dict[int, LinComb], modulus: int):
    acc = None
    constant = 0
    for idx, coeff in lc.terms.items():
        coeff = _signed(coeff, modulus)
        if idx == ONE.index:
            constant += coeff
            continue
        term = wires[idx] * coeff
        acc = term if acc is None else acc + term
    if acc is None:
        return constant
    return acc + constant if constant else acc


def replay_constraints(pb: Protoboard) -> List[LinComb]:
    """
    Record every constraint of pb in the PySNARK runtime.

    Returns the public wires in allocation order.
    """
    values = pb.values()
    public = set(pb.public_inputs)
    wires: Dict[int, LinComb] = {}
    outputs = []
    for idx in range(1, pb.num_variables):
        if idx in public:
            wires[idx] = PubVal(values[idx])
            outputs.append(wires[idx])
        else:
            wires[idx] = PrivVal(values[idx])

    for constraint in pb.constraints:
        a = _combine(constraint.a, wires, pb.modulus)
        b = _combine(constraint.b, wires, pb.modulus)
        c = _combine(constraint.c, wires, pb.modulus)
        product = a * b - c
        if isinstance(product, int):
            # constant-only constraint, nothing to record
            if product % pb.modulus:
                raise ValueError(f"Constant constraint does not hold: {constraint.annotation}")
            continue
        product.assert_zero()

    logger.info("Replayed %d constraints into PySNARK", pb.num_constraints)
    return outputs


def prove_with_pysnark(pb: Protoboard) -> None:
    """
    Generate keys and a proof for a satisfied protoboard.
    """
    if not pb.is_satisfied():
        raise ValueError("Protoboard is not satisfied, refusing to prove")

    @snark
    def trade_history_circuit():
        replay_constraints(pb)

    trade_history_circuit()
