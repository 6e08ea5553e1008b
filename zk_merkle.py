# zk_merkle.py
"""
Merkle path gadgets over the protoboard.

This is the ZK part: given a leaf, an address and a Merkle opening (siblings),
we recompute the root INSIDE THE CIRCUIT, and optionally enforce that it
equals a known root.

Key points:
- Hash computations are NOT external oracles: every MiMC round is four
  multiplication constraints (t^2, t^4, t^6, t^7)
- The address is a list of bit wires; routing left/right at each level is a
  pair of selection constraints, not a Python branch
- Off-circuit counterparts live in hash_utils.py and merkle_tree.py and must
  produce the same values

Constraint sizes:
- MiMC cipher: 91 rounds * 4 = 364 constraints
- MiMC hash of n elements: n * (364 + 1)
- One tree level: 2 selector + 1 boolean + 730 hash constraints
"""

import logging
from typing import List, Sequence

from errors import ConfigurationError
from hash_utils import mimc_constants
from protoboard import Gadget, Protoboard, Term, Variable, as_lc

logger = logging.getLogger(__name__)


class MiMCCipherGadget(Gadget):
    """
    E_k(x): x_{i+1} = (x_i + k + c_i)^7, result = x_91 + k.
    """

    def __init__(self, pb: Protoboard, x: Term, k: Term, prefix: str) -> None:
        super().__init__(pb, prefix)
        self.x = as_lc(x)
        self.k = as_lc(k)
        self.constants = mimc_constants()
        # per round: t^2, t^4, t^6 and the round output
        self.rounds = [
            tuple(pb.allocate(f"{prefix}.round[{i}].{name}") for name in ("t2", "t4", "t6", "out"))
            for i in range(len(self.constants))
        ]

    def result(self) -> Variable:
        return self.rounds[-1][3]

    def _round_input(self, i: int):
        x = self.x if i == 0 else as_lc(self.rounds[i - 1][3])
        return x + self.k + self.constants[i]

    def _generate_constraints(self) -> None:
        pb = self.pb
        last = len(self.rounds) - 1
        for i, (t2, t4, t6, out) in enumerate(self.rounds):
            t = self._round_input(i)
            name = f"{self.prefix}.round[{i}]"
            pb.add_constraint(t, t, t2, f"{name}.t2")
            pb.add_constraint(t2, t2, t4, f"{name}.t4")
            pb.add_constraint(t4, t2, t6, f"{name}.t6")
            if i == last:
                pb.add_constraint(t6, t, out - self.k, f"{name}.out")
            else:
                pb.add_constraint(t6, t, out, f"{name}.out")

    def generate_witness(self) -> None:
        pb = self.pb
        p = pb.modulus
        last = len(self.rounds) - 1
        for i, (t2, t4, t6, out) in enumerate(self.rounds):
            t = pb.val(self._round_input(i))
            t2_val = t * t % p
            t4_val = t2_val * t2_val % p
            t6_val = t4_val * t2_val % p
            pb.set_val(t2, t2_val)
            pb.set_val(t4, t4_val)
            pb.set_val(t6, t6_val)
            out_val = t6_val * t
            if i == last:
                out_val += pb.val(self.k)
            pb.set_val(out, out_val)


class MiMCHashGadget(Gadget):
    """
    Miyaguchi-Preneel MiMC hash of a fixed number of field elements.

    k_0 = iv, k_{i+1} = k_i + E_{k_i}(m_i) + m_i, result = k_n.
    Matches hash_utils.mimc_hash.
    """

    def __init__(self, pb: Protoboard, iv: Term, messages: Sequence[Term], prefix: str) -> None:
        super().__init__(pb, prefix)
        if not messages:
            raise ConfigurationError(f"{prefix}: cannot hash an empty message list")
        self.iv = as_lc(iv)
        self.messages = [as_lc(m) for m in messages]
        self.ciphers: List[MiMCCipherGadget] = []
        self.outputs: List[Variable] = []
        for i, message in enumerate(self.messages):
            self.ciphers.append(MiMCCipherGadget(pb, message, self._key(i), f"{prefix}.cipher[{i}]"))
            self.outputs.append(pb.allocate(f"{prefix}.output[{i}]"))

    def result(self) -> Variable:
        return self.outputs[-1]

    def _key(self, i: int):
        return self.iv if i == 0 else as_lc(self.outputs[i - 1])

    def _generate_constraints(self) -> None:
        for i, (cipher, output) in enumerate(zip(self.ciphers, self.outputs)):
            cipher.generate_constraints()
            self.pb.add_constraint(
                1,
                self._key(i) + cipher.result() + self.messages[i],
                output,
                f"{self.prefix}.output[{i}]",
            )

    def generate_witness(self) -> None:
        for i, (cipher, output) in enumerate(zip(self.ciphers, self.outputs)):
            cipher.generate_witness()
            self.pb.set_val(
                output, self.pb.val(self._key(i) + cipher.result() + self.messages[i])
            )


class MerklePathSelector(Gadget):
    """
    Orders (node, sibling) into (left, right) from one address bit:

        is_right == 0: left = node,    right = sibling
        is_right == 1: left = sibling, right = node
    """

    def __init__(self, pb: Protoboard, node: Term, sibling: Term, is_right: Term, prefix: str) -> None:
        super().__init__(pb, prefix)
        self.node = as_lc(node)
        self.sibling = as_lc(sibling)
        self.is_right = as_lc(is_right)
        self.left = pb.allocate(f"{prefix}.left")
        self.right = pb.allocate(f"{prefix}.right")

    def _generate_constraints(self) -> None:
        pb = self.pb
        pb.add_boolean_constraint(self.is_right, f"{self.prefix}.is_right is boolean")
        # left = node + is_right * (sibling - node)
        pb.add_constraint(self.is_right, self.sibling - self.node, self.left - self.node, f"{self.prefix}.left")
        # right = sibling + is_right * (node - sibling)
        pb.add_constraint(self.is_right, self.node - self.sibling, self.right - self.sibling, f"{self.prefix}.right")

    def generate_witness(self) -> None:
        pb = self.pb
        node = pb.val(self.node)
        sibling = pb.val(self.sibling)
        if pb.val(self.is_right):
            pb.set_val(self.left, sibling)
            pb.set_val(self.right, node)
        else:
            pb.set_val(self.left, node)
            pb.set_val(self.right, sibling)


class MerklePathCompute(Gadget):
    """
    Merkle root computation circuit.

    Inputs:
    - leaf: wire holding the leaf hash
    - address_bits: one bit wire per level (1 = running node is the RIGHT child)
    - ivs: one constant per level, see hash_utils.merkle_tree_ivs
    - path: one sibling wire per level, leaf level first

    Circuit Logic:
    ==============
    1. needle = leaf (start from bottom of tree)
    2. For each level h (bottom-up)
        a) Route (needle, path[h]) into (left, right) with address_bits[h]
        b) needle = MiMC(ivs[h]; left, right)
    3. result() = needle after the last level

    The gadget does not constrain the result to anything; the caller decides
    what the root means (see MerklePathAuthenticator).
    """

    def __init__(
        self,
        pb: Protoboard,
        depth: int,
        address_bits: Sequence[Term],
        ivs: Sequence[int],
        leaf: Term,
        path: Sequence[Term],
        prefix: str,
    ) -> None:
        super().__init__(pb, prefix)
        if depth < 1:
            raise ConfigurationError(f"{prefix}: depth must be >= 1, got {depth}")
        for label, items in (("address_bits", address_bits), ("ivs", ivs), ("path", path)):
            if len(items) != depth:
                raise ConfigurationError(
                    f"{prefix}: expected {depth} {label}, got {len(items)}"
                )
        self.depth = depth
        self.address_bits = tuple(address_bits)
        self.path = tuple(path)
        self.leaf = as_lc(leaf)
        self.selectors: List[MerklePathSelector] = []
        self.hashers: List[MiMCHashGadget] = []
        for h in range(depth):
            node = self.leaf if h == 0 else self.hashers[h - 1].result()
            selector = MerklePathSelector(
                pb, node, self.path[h], self.address_bits[h], f"{prefix}.selector[{h}]"
            )
            self.selectors.append(selector)
            self.hashers.append(
                MiMCHashGadget(pb, ivs[h], [selector.left, selector.right], f"{prefix}.hasher[{h}]")
            )

    def result(self) -> Variable:
        return self.hashers[-1].result()

    def _generate_constraints(self) -> None:
        for selector, hasher in zip(self.selectors, self.hashers):
            selector.generate_constraints()
            hasher.generate_constraints()

    def generate_witness(self) -> None:
        for selector, hasher in zip(self.selectors, self.hashers):
            selector.generate_witness()
            hasher.generate_witness()


class MerklePathAuthenticator(MerklePathCompute):
    """
    MerklePathCompute plus one constraint: result() == expected_root.
    """

    def __init__(
        self,
        pb: Protoboard,
        depth: int,
        address_bits: Sequence[Term],
        ivs: Sequence[int],
        leaf: Term,
        expected_root: Term,
        path: Sequence[Term],
        prefix: str,
    ) -> None:
        super().__init__(pb, depth, address_bits, ivs, leaf, path, prefix)
        self.expected_root = as_lc(expected_root)

    def is_valid(self) -> bool:
        return self.pb.val(self.result()) == self.pb.val(self.expected_root)

    def _generate_constraints(self) -> None:
        super()._generate_constraints()
        self.pb.add_constraint(1, self.result(), self.expected_root, f"{self.prefix}.expected_root")

    def generate_witness(self) -> None:
        super().generate_witness()
        if not self.is_valid():
            logger.debug("%s: computed root does not match the expected root", self.prefix)
