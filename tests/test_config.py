import pytest

from config import DEFAULT_PARAMS, CircuitParams
from errors import ConfigurationError


def test_protocol_defaults():
    assert DEFAULT_PARAMS == CircuitParams(14, 96, 20)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"tree_depth": 0},
        {"tree_depth": 21},
        {"num_bits_amount": 0},
        {"num_bits_amount": 253},
        {"num_bits_order_id": 10},
        {"tree_depth": "14"},
        {"tree_depth": True},
    ],
)
def test_invalid_params(kwargs):
    with pytest.raises(ConfigurationError):
        CircuitParams(**kwargs)


def test_configuration_error_is_a_value_error():
    with pytest.raises(ValueError):
        CircuitParams(tree_depth=-1)


def test_from_env():
    params = CircuitParams.from_env({"TRADE_HISTORY_TREE_DEPTH": "6", "NUM_BITS_ORDERID": "8"})
    assert params == CircuitParams(6, 96, 8)
    assert CircuitParams.from_env({}) == DEFAULT_PARAMS


def test_from_env_rejects_garbage():
    with pytest.raises(ConfigurationError):
        CircuitParams.from_env({"NUM_BITS_AMOUNT": "lots"})
