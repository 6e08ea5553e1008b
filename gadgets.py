# gadgets.py
"""
Field and boolean gadgets.

There is no branching inside a circuit: every "if" is computed on both sides
and then selected with b * (x - y) = r - y, where b is constrained to a bit.
"""

from typing import Optional, Sequence

from protoboard import Gadget, Protoboard, Term, Variable, as_lc


def pack_bits(bits: Sequence[Term]):
    """sum(bits[i] * 2^i) as a linear combination."""
    return sum((as_lc(bit) * (1 << i) for i, bit in enumerate(bits)), as_lc(0))


class DualVariableGadget(Gadget):
    """
    A value held both packed and as num_bits little-endian bits.

    The packing constraint doubles as a range check: a packed value that does
    not fit in num_bits cannot be satisfied.
    """

    def __init__(
        self,
        pb: Protoboard,
        num_bits: int,
        prefix: str,
        packed: Optional[Variable] = None,
    ) -> None:
        super().__init__(pb, prefix)
        self.num_bits = num_bits
        self.packed = packed if packed is not None else pb.allocate(f"{prefix}.packed")
        self.bits = pb.allocate_array(num_bits, f"{prefix}.bits")

    def _generate_constraints(self) -> None:
        for i, bit in enumerate(self.bits):
            self.pb.add_boolean_constraint(bit, f"{self.prefix}.bits[{i}] is boolean")
        self.pb.add_constraint(1, pack_bits(self.bits), self.packed, f"{self.prefix}.packing")

    def generate_witness_from_packed(self) -> None:
        self.pb.fill_with_bits_of_value(self.bits, self.pb.val(self.packed))

    def generate_witness_from_bits(self) -> None:
        self.pb.set_val(self.packed, self.pb.val(pack_bits(self.bits)))

    def generate_witness(self, value: Optional[int] = None) -> None:
        if value is not None:
            self.pb.set_val(self.packed, value)
        self.generate_witness_from_packed()


class NotGadget(Gadget):
    def __init__(self, pb: Protoboard, a: Term, prefix: str) -> None:
        super().__init__(pb, prefix)
        self.a = as_lc(a)
        self.result = pb.allocate(f"{prefix}.result")

    def _generate_constraints(self) -> None:
        self.pb.add_constraint(1, 1 - self.a, self.result, f"{self.prefix}.result == !a")

    def generate_witness(self) -> None:
        self.pb.set_val(self.result, 1 - self.pb.val(self.a))


class TernaryGadget(Gadget):
    """
    result = b ? x : y
    """

    def __init__(
        self,
        pb: Protoboard,
        b: Term,
        x: Term,
        y: Term,
        prefix: str,
        enforce_bitness: bool = True,
    ) -> None:
        super().__init__(pb, prefix)
        self.b = as_lc(b)
        self.x = as_lc(x)
        self.y = as_lc(y)
        self.enforce_bitness = enforce_bitness
        self.result = pb.allocate(f"{prefix}.result")

    def _generate_constraints(self) -> None:
        if self.enforce_bitness:
            self.pb.add_boolean_constraint(self.b, f"{self.prefix}.b is boolean")
        self.pb.add_constraint(
            self.b, self.x - self.y, self.result - self.y, f"{self.prefix}.result == b ? x : y"
        )

    def generate_witness(self) -> None:
        b = self.pb.val(self.b)
        x = self.pb.val(self.x)
        y = self.pb.val(self.y)
        self.pb.set_val(self.result, y + b * (x - y))


class LeqGadget(Gadget):
    """
    Compares two num_bits-wide unsigned values A and B.

    alpha = 2^n + B - A is decomposed into n + 1 bits. The top bit is set
    exactly when A <= B; the low bits are all zero exactly when A == B.
    Both inputs must already be known to fit in num_bits.

    Outputs:
        leq: A <= B
        lt:  A < B
    """

    def __init__(self, pb: Protoboard, a: Term, b: Term, num_bits: int, prefix: str) -> None:
        super().__init__(pb, prefix)
        self.a = as_lc(a)
        self.b = as_lc(b)
        self.num_bits = num_bits
        self.alpha = pb.allocate_array(num_bits + 1, f"{prefix}.alpha")
        self.inv = pb.allocate(f"{prefix}.inv")
        self.not_all_zeros = pb.allocate(f"{prefix}.not_all_zeros")
        self._lt = pb.allocate(f"{prefix}.lt")

    def leq(self) -> Variable:
        return self.alpha[self.num_bits]

    def lt(self) -> Variable:
        return self._lt

    def _low_bits_sum(self):
        return sum((as_lc(bit) for bit in self.alpha[: self.num_bits]), as_lc(0))

    def _generate_constraints(self) -> None:
        pb = self.pb
        for i, bit in enumerate(self.alpha):
            pb.add_boolean_constraint(bit, f"{self.prefix}.alpha[{i}] is boolean")
        pb.add_constraint(
            1,
            pack_bits(self.alpha),
            (1 << self.num_bits) + self.b - self.a,
            f"{self.prefix}.alpha == 2^n + B - A",
        )
        # not_all_zeros = OR(alpha[0..n-1])
        low = self._low_bits_sum()
        pb.add_constraint(low, self.inv, self.not_all_zeros, f"{self.prefix}.not_all_zeros")
        pb.add_constraint(1 - as_lc(self.not_all_zeros), low, 0, f"{self.prefix}.all_zeros")
        pb.add_constraint(self.leq(), self.not_all_zeros, self._lt, f"{self.prefix}.lt == leq && A != B")

    def generate_witness(self) -> None:
        pb = self.pb
        alpha = ((1 << self.num_bits) + pb.val(self.b) - pb.val(self.a)) % pb.modulus
        pb.fill_with_bits_of_value(self.alpha, alpha)
        low = pb.val(self._low_bits_sum())
        pb.set_val(self.inv, pow(low, -1, pb.modulus) if low else 0)
        pb.set_val(self.not_all_zeros, 1 if low else 0)
        pb.set_val(self._lt, pb.val(self.leq()) * pb.val(self.not_all_zeros))
