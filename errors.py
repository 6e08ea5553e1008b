# errors.py
"""
Exceptions raised while building circuits.

Only structural problems and protocol misuse are exceptions. A witness that
does not satisfy the constraints is never raised: it shows up as
Protoboard.is_satisfied() returning False.
"""


class CircuitError(Exception):
    """Base class for circuit construction errors."""


class ConfigurationError(CircuitError, ValueError):
    """Malformed circuit configuration (tree depth, record arity, bit widths)."""


class WitnessError(CircuitError, RuntimeError):
    """Witness generation called out of order or more than once."""


class BlockError(CircuitError, ValueError):
    """Block input does not match the circuit it is fed to."""
