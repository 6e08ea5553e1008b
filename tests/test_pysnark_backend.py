import pytest

pytest.importorskip("pysnark.runtime")

import pysnark_backend  # noqa: E402
from gadgets import TernaryGadget  # noqa: E402
from hash_utils import FIELD_MODULUS  # noqa: E402
from trade_history import TradeHistoryTrimmingGadget  # noqa: E402


class RecordingWire:
    """Stands in for pysnark's LinComb, evaluating over the field."""

    zero_checks = []

    def __init__(self, value, public=False):
        self.value = value % FIELD_MODULUS
        self.public = public

    @staticmethod
    def _value(other):
        return other.value if isinstance(other, RecordingWire) else other

    def __add__(self, other):
        return RecordingWire(self.value + self._value(other))

    __radd__ = __add__

    def __sub__(self, other):
        return RecordingWire(self.value - self._value(other))

    def __rsub__(self, other):
        return RecordingWire(self._value(other) - self.value)

    def __mul__(self, other):
        return RecordingWire(self.value * self._value(other))

    __rmul__ = __mul__

    def assert_zero(self):
        RecordingWire.zero_checks.append(self.value)


@pytest.fixture
def recorder(monkeypatch):
    RecordingWire.zero_checks = []
    monkeypatch.setattr(pysnark_backend, "PrivVal", RecordingWire)
    monkeypatch.setattr(pysnark_backend, "PubVal", lambda v: RecordingWire(v, public=True))
    return RecordingWire


def _ternary(pb):
    b = pb.allocate("b")
    out = pb.allocate("out")
    pb.make_public(out)
    gadget = TernaryGadget(pb, b, 10, 20, "ternary")
    gadget.generate_constraints()
    pb.add_constraint(1, gadget.result, out, "out")
    pb.set_val(b, 1)
    gadget.generate_witness()
    pb.set_val(out, 10)
    return gadget


def test_replay_records_every_constraint(pb, recorder):
    _ternary(pb)
    outputs = pysnark_backend.replay_constraints(pb)
    assert len(recorder.zero_checks) == pb.num_constraints
    assert all(v == 0 for v in recorder.zero_checks)
    assert [o.value for o in outputs] == [10]
    assert all(o.public for o in outputs)


def test_replay_of_unsatisfied_board_records_nonzero(pb, recorder):
    gadget = _ternary(pb)
    pb.set_val(gadget.result, 11)
    pysnark_backend.replay_constraints(pb)
    assert any(v != 0 for v in recorder.zero_checks)


def test_constant_constraint_must_hold(pb, recorder):
    pb.add_constraint(2, 3, 6, "2 * 3 == 6")
    pysnark_backend.replay_constraints(pb)
    pb.add_constraint(2, 3, 7, "2 * 3 == 7")
    with pytest.raises(ValueError):
        pysnark_backend.replay_constraints(pb)


def test_prove_needs_a_satisfied_board(pb):
    gadget = _ternary(pb)
    pb.set_val(gadget.result, 11)
    with pytest.raises(ValueError):
        pysnark_backend.prove_with_pysnark(pb)


@pytest.fixture
def runtime_dir(monkeypatch, tmp_path):
    # backends write their key and proof files to the working directory
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_prove_ternary_with_pysnark_runtime(pb, runtime_dir):
    _ternary(pb)
    assert pb.is_satisfied()
    pysnark_backend.prove_with_pysnark(pb)


def test_prove_trimming_with_pysnark_runtime(pb, params, runtime_dir):
    stored = pb.allocate_array(3, "stored")
    order_id = pb.allocate("orderID")
    gadget = TradeHistoryTrimmingGadget(pb, stored[0], stored[1], stored[2], order_id, "trim", params)
    gadget.generate_constraints()
    pb.fill_with_field_elements(stored, [7, 1, 5])
    pb.set_val(order_id, 5)
    gadget.generate_witness()
    assert pb.is_satisfied()
    pysnark_backend.prove_with_pysnark(pb)
