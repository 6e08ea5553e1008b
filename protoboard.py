# protoboard.py
"""
Rank-1 constraint system with witness values.

Every wire of a circuit is a linear combination of the variables in the
witness vector, represented as a dict mapping variable indices to their
coefficients, e.g. x = 3 + w1 + 5*w2 is {0: 3, 1: 1, 2: 5}. Variable 0 is
always the constant ONE, so constants need no special casing.

A constraint is a triple (A, B, C) of linear combinations asserting
<A, w> * <B, w> == <C, w> over the field. Building a circuit is two phases:

1. structure: gadgets allocate variables and add constraints
2. witness: gadgets assign values to the variables they allocated

The same structure can be re-used for many witnesses. is_satisfied() is the
only place where a bad witness shows up.
"""

import logging
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

from hash_utils import FIELD_MODULUS

logger = logging.getLogger(__name__)


class _Linear:
    """Arithmetic shared by variables and linear combinations."""

    def lc(self) -> "LinearCombination":
        raise NotImplementedError

    def __add__(self, other):
        return self.lc()._combine(as_lc(other), 1)

    def __radd__(self, other):
        return as_lc(other)._combine(self.lc(), 1)

    def __sub__(self, other):
        return self.lc()._combine(as_lc(other), -1)

    def __rsub__(self, other):
        return as_lc(other)._combine(self.lc(), -1)

    def __neg__(self):
        return self.lc() * -1

    def __mul__(self, scalar):
        if not isinstance(scalar, int):
            # a product of two wires needs a constraint, see Protoboard.add_constraint
            return NotImplemented
        return LinearCombination(
            {idx: coeff * scalar for idx, coeff in self.lc().terms.items()}
        )

    __rmul__ = __mul__


class Variable(_Linear):
    __slots__ = ("index", "name")

    def __init__(self, index: int, name: str = "") -> None:
        self.index = index
        self.name = name

    def lc(self) -> "LinearCombination":
        return LinearCombination({self.index: 1})

    def __repr__(self) -> str:
        return f"Variable({self.index}, {self.name!r})"


class LinearCombination(_Linear):
    __slots__ = ("terms",)

    def __init__(self, terms: Optional[Dict[int, int]] = None) -> None:
        self.terms: Dict[int, int] = {}
        for idx, coeff in (terms or {}).items():
            coeff %= FIELD_MODULUS
            if coeff:
                self.terms[idx] = coeff

    def lc(self) -> "LinearCombination":
        return self

    def _combine(self, other: "LinearCombination", sign: int) -> "LinearCombination":
        terms = dict(self.terms)
        for idx, coeff in other.terms.items():
            terms[idx] = terms.get(idx, 0) + sign * coeff
        return LinearCombination(terms)

    def __repr__(self) -> str:
        return f"LinearCombination({self.terms})"


ONE = Variable(0, "ONE")

Term = Union[int, Variable, LinearCombination]


def as_lc(value: Term) -> LinearCombination:
    if isinstance(value, _Linear):
        return value.lc()
    if isinstance(value, int) and not isinstance(value, bool):
        return LinearCombination({ONE.index: value})
    raise TypeError(f"cannot use {type(value).__name__} as a linear combination")


class Constraint(NamedTuple):
    a: LinearCombination
    b: LinearCombination
    c: LinearCombination
    annotation: str


class Protoboard:
    """
    Variables, their values and the constraints over them.

    Values default to 0 until assigned, so an incomplete witness is simply
    unsatisfied rather than an error.
    """

    def __init__(self) -> None:
        self.modulus = FIELD_MODULUS
        self._values: List[int] = [1]
        self._names: List[str] = [ONE.name]
        self._public: List[int] = []
        self.constraints: List[Constraint] = []

    @property
    def num_variables(self) -> int:
        return len(self._values)

    @property
    def num_constraints(self) -> int:
        return len(self.constraints)

    @property
    def public_inputs(self) -> Tuple[int, ...]:
        return tuple(self._public)

    def allocate(self, name: str = "") -> Variable:
        self._values.append(0)
        self._names.append(name)
        return Variable(len(self._values) - 1, name)

    def allocate_array(self, size: int, prefix: str = "") -> Tuple[Variable, ...]:
        """make_var_array: size variables named prefix[i]."""
        return tuple(self.allocate(f"{prefix}[{i}]") for i in range(size))

    def make_public(self, var: Variable) -> None:
        if var.index == ONE.index:
            raise ValueError("ONE is always public")
        if var.index not in self._public:
            self._public.append(var.index)

    def is_public(self, var: Variable) -> bool:
        return var.index in self._public

    def name(self, var: Variable) -> str:
        return self._names[var.index]

    def val(self, value: Term) -> int:
        """Evaluate a variable, linear combination or constant under the witness."""
        total = 0
        for idx, coeff in as_lc(value).terms.items():
            total += coeff * self._values[idx]
        return total % self.modulus

    def set_val(self, var: Variable, value: int) -> None:
        if var.index == ONE.index:
            raise ValueError("ONE cannot be reassigned")
        self._values[var.index] = value % self.modulus

    def values(self) -> Tuple[int, ...]:
        return tuple(self._values)

    def fill_with_field_elements(self, variables: Sequence[Variable], values: Sequence[int]) -> None:
        if len(variables) != len(values):
            raise ValueError(f"expected {len(variables)} values, got {len(values)}")
        for var, value in zip(variables, values):
            self.set_val(var, int(value))

    def fill_with_bits_of_value(self, variables: Sequence[Variable], value: int) -> None:
        """Little-endian; bits above len(variables) are dropped."""
        for i, var in enumerate(variables):
            self.set_val(var, (value >> i) & 1)

    def add_constraint(self, a: Term, b: Term, c: Term, annotation: str = "") -> None:
        self.constraints.append(Constraint(as_lc(a), as_lc(b), as_lc(c), annotation))

    def add_boolean_constraint(self, x: Term, annotation: str = "") -> None:
        # x * (1 - x) == 0
        self.add_constraint(x, 1 - as_lc(x), 0, annotation)

    def is_constraint_satisfied(self, constraint: Constraint) -> bool:
        return (self.val(constraint.a) * self.val(constraint.b) - self.val(constraint.c)) % self.modulus == 0

    def unsatisfied_constraints(self) -> List[Constraint]:
        return [c for c in self.constraints if not self.is_constraint_satisfied(c)]

    def is_satisfied(self) -> bool:
        for constraint in self.constraints:
            if not self.is_constraint_satisfied(constraint):
                logger.warning("Constraint not satisfied: %s", constraint.annotation or "<unnamed>")
                return False
        return True


class Gadget:
    """
    Base class of all gadgets.

    Subclasses allocate their variables in __init__, emit constraints in
    _generate_constraints and assign values in generate_witness. Emitting the
    constraints twice only adds them once.
    """

    def __init__(self, pb: Protoboard, prefix: str) -> None:
        self.pb = pb
        self.prefix = prefix
        self.constraints_generated = False

    def generate_constraints(self) -> None:
        if self.constraints_generated:
            return
        self.constraints_generated = True
        self._generate_constraints()

    def _generate_constraints(self) -> None:
        raise NotImplementedError

    def generate_witness(self) -> None:
        raise NotImplementedError
