import pytest

from config import CircuitParams
from protoboard import Protoboard


@pytest.fixture
def params():
    # small tree keeps the MiMC circuits fast
    return CircuitParams(tree_depth=4, num_bits_amount=96, num_bits_order_id=8)


@pytest.fixture
def pb():
    return Protoboard()
