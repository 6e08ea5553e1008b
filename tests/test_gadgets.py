import pytest

from errors import ConfigurationError
from gadgets import DualVariableGadget, LeqGadget, NotGadget, TernaryGadget
from hash_utils import merkle_tree_ivs, mimc_hash
from merkle_tree import MerkleTree
from protoboard import as_lc
from zk_merkle import MerklePathAuthenticator, MerklePathCompute, MiMCHashGadget


class TestDualVariableGadget:
    def test_in_range(self, pb):
        dual = DualVariableGadget(pb, 8, "dual")
        dual.generate_constraints()
        dual.generate_witness(0b10100101)
        assert [pb.val(b) for b in dual.bits] == [1, 0, 1, 0, 0, 1, 0, 1]
        assert pb.is_satisfied()

    @pytest.mark.parametrize("value", [256, 1000, -1])
    def test_out_of_range_is_unsatisfied(self, pb, value):
        dual = DualVariableGadget(pb, 8, "dual")
        dual.generate_constraints()
        dual.generate_witness(value)
        assert not pb.is_satisfied()

    def test_from_bits(self, pb):
        dual = DualVariableGadget(pb, 4, "dual")
        dual.generate_constraints()
        pb.fill_with_field_elements(dual.bits, [1, 1, 0, 1])
        dual.generate_witness_from_bits()
        assert pb.val(dual.packed) == 11
        assert pb.is_satisfied()

    def test_uses_given_packed_variable(self, pb):
        packed = pb.allocate("amount")
        dual = DualVariableGadget(pb, 4, "dual", packed=packed)
        assert dual.packed is packed


@pytest.mark.parametrize("a,b", [(0, 0), (0, 15), (15, 0), (7, 7), (3, 9), (9, 3), (15, 15)])
def test_leq_gadget(pb, a, b):
    x = pb.allocate("a")
    y = pb.allocate("b")
    leq = LeqGadget(pb, x, y, 4, "leq")
    leq.generate_constraints()
    pb.set_val(x, a)
    pb.set_val(y, b)
    leq.generate_witness()
    assert pb.val(leq.leq()) == int(a <= b)
    assert pb.val(leq.lt()) == int(a < b)
    assert pb.is_satisfied()


def test_leq_gadget_rejects_forged_result(pb):
    x = pb.allocate("a")
    y = pb.allocate("b")
    leq = LeqGadget(pb, x, y, 4, "leq")
    leq.generate_constraints()
    pb.set_val(x, 3)
    pb.set_val(y, 3)
    leq.generate_witness()
    pb.set_val(leq.lt(), 1)
    assert not pb.is_satisfied()


def test_not_gadget(pb):
    a = pb.allocate("a")
    gadget = NotGadget(pb, a, "not")
    gadget.generate_constraints()
    for value in (0, 1):
        pb.set_val(a, value)
        gadget.generate_witness()
        assert pb.val(gadget.result) == 1 - value
        assert pb.is_satisfied()


class TestTernaryGadget:
    def test_selects(self, pb):
        b = pb.allocate("b")
        gadget = TernaryGadget(pb, b, 10, 20, "ternary")
        gadget.generate_constraints()
        pb.set_val(b, 1)
        gadget.generate_witness()
        assert pb.val(gadget.result) == 10
        pb.set_val(b, 0)
        gadget.generate_witness()
        assert pb.val(gadget.result) == 20
        assert pb.is_satisfied()

    def test_condition_must_be_boolean(self, pb):
        b = pb.allocate("b")
        gadget = TernaryGadget(pb, b, 10, 20, "ternary")
        gadget.generate_constraints()
        pb.set_val(b, 2)
        gadget.generate_witness()
        assert not pb.is_satisfied()

    def test_without_bitness(self, pb):
        b = pb.allocate("b")
        gadget = TernaryGadget(pb, b, 10, 20, "ternary", enforce_bitness=False)
        gadget.generate_constraints()
        assert pb.num_constraints == 1


def test_mimc_hash_gadget_matches_native(pb):
    messages = pb.allocate_array(3, "m")
    gadget = MiMCHashGadget(pb, 1, messages, "hash")
    gadget.generate_constraints()
    pb.fill_with_field_elements(messages, [100, 0, 5])
    gadget.generate_witness()
    assert pb.val(gadget.result()) == mimc_hash([100, 0, 5], 1)
    assert pb.is_satisfied()


def test_mimc_hash_gadget_chains_keys(pb):
    messages = pb.allocate_array(3, "m")
    gadget = MiMCHashGadget(pb, 7, messages, "hash")
    assert gadget.ciphers[0].k.terms == as_lc(7).terms
    for i in (1, 2):
        assert gadget.ciphers[i].k.terms == as_lc(gadget.outputs[i - 1]).terms


def test_mimc_hash_gadget_needs_messages(pb):
    with pytest.raises(ConfigurationError):
        MiMCHashGadget(pb, 0, [], "hash")


def _path_inputs(pb, depth):
    leaf = pb.allocate("leaf")
    address = pb.allocate_array(depth, "address")
    path = pb.allocate_array(depth, "path")
    return leaf, address, path


def test_path_compute_matches_native_tree(pb):
    depth = 3
    tree = MerkleTree([11, 22, 33, 44, 55], depth)
    leaf, address, path = _path_inputs(pb, depth)
    gadget = MerklePathCompute(pb, depth, address, merkle_tree_ivs(depth), leaf, path, "path")
    gadget.generate_constraints()

    siblings, positions = tree.opening(4)
    pb.set_val(leaf, 55)
    pb.fill_with_field_elements(address, positions)
    pb.fill_with_field_elements(path, siblings)
    gadget.generate_witness()
    assert pb.val(gadget.result()) == tree.root()
    assert pb.is_satisfied()


def test_path_authenticator_rejects_wrong_root(pb):
    depth = 3
    tree = MerkleTree([11, 22, 33, 44], depth)
    leaf, address, path = _path_inputs(pb, depth)
    root = pb.allocate("root")
    gadget = MerklePathAuthenticator(pb, depth, address, merkle_tree_ivs(depth), leaf, root, path, "auth")
    gadget.generate_constraints()

    siblings, positions = tree.opening(1)
    pb.set_val(leaf, 22)
    pb.fill_with_field_elements(address, positions)
    pb.fill_with_field_elements(path, siblings)
    pb.set_val(root, tree.root())
    gadget.generate_witness()
    assert gadget.is_valid()
    assert pb.is_satisfied()

    pb.set_val(leaf, 23)
    gadget.generate_witness()
    assert not gadget.is_valid()
    assert not pb.is_satisfied()


def test_path_compute_checks_lengths(pb):
    leaf, address, path = _path_inputs(pb, 3)
    with pytest.raises(ConfigurationError):
        MerklePathCompute(pb, 3, address[:2], merkle_tree_ivs(3), leaf, path, "path")
    with pytest.raises(ConfigurationError):
        MerklePathCompute(pb, 3, address, merkle_tree_ivs(3), leaf, path[:1], "path")
    with pytest.raises(ConfigurationError):
        MerklePathCompute(pb, 0, [], [], leaf, [], "path")
