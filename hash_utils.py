# hash_utils.py
"""
Utilities for hashing.

Two places hash the same way:
1. OFF-CIRCUIT (merkle_tree.py, trade_history.py): plain Python integers
2. IN-CIRCUIT (zk_merkle.py): MiMC rounds expressed as R1CS constraints

Both sides must agree bit for bit, so every constant used by the circuit
(MiMC round constants, per-level Merkle IVs) is derived here.

- MiMC-p/p with exponent 7 and 91 rounds, used in Miyaguchi-Preneel mode
- Round constants and Merkle IVs are a SHA-256 chain over a seed,
  reduced into the field
"""

import hashlib
from functools import lru_cache
from typing import Iterable, List, Tuple

# BN254 scalar field modulus
FIELD_MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617

MIMC_EXPONENT = 7
MIMC_ROUNDS = 91
MIMC_SEED = b"mimc"
MERKLE_IV_SEED = b"merkle_tree_IV"

# IV of the trade history leaf hash; separates leaves from tree nodes.
TRADE_HISTORY_LEAF_IV = 1


def sha256_to_field(*values: int) -> int:
    """
    Hash integers using SHA-256 and map into field.

    Deterministic: same inputs always produce same output across runs.

    Args:
        *values: integers representing field elements

    Returns:
        integer in [0, FIELD_MODULUS)
    """
    h = hashlib.sha256()
    for v in values:
        # Fixed-width (32 bytes) encoding ensures deterministic hashing
        h.update(v.to_bytes(32, byteorder="big", signed=False))
    digest = h.digest()
    as_int = int.from_bytes(digest, byteorder="big")
    return as_int % FIELD_MODULUS


def _seed_to_int(seed: bytes) -> int:
    return int.from_bytes(hashlib.sha256(seed).digest(), byteorder="big")


@lru_cache(maxsize=None)
def mimc_constants(seed: bytes = MIMC_SEED, rounds: int = MIMC_ROUNDS) -> Tuple[int, ...]:
    """
    Round constants: c_0 = H(H(seed)), c_i = H(c_{i-1}).
    """
    constants = []
    c = _seed_to_int(seed) % FIELD_MODULUS
    for _ in range(rounds):
        c = sha256_to_field(c)
        constants.append(c)
    return tuple(constants)


@lru_cache(maxsize=None)
def merkle_tree_ivs(depth: int) -> Tuple[int, ...]:
    """
    One IV per tree level, leaf level first.
    """
    seed = _seed_to_int(MERKLE_IV_SEED) % FIELD_MODULUS
    return tuple(sha256_to_field(seed, level) for level in range(depth))


def mimc_cipher(x: int, k: int) -> int:
    """
    MiMC-p/p encryption of x under key k.

    Every round computes (x + k + c_i)^7; the key is added once more to the
    output of the last round.
    """
    for c in mimc_constants():
        x = pow((x + k + c) % FIELD_MODULUS, MIMC_EXPONENT, FIELD_MODULUS)
    return (x + k) % FIELD_MODULUS


def mimc_hash(values: Iterable[int], iv: int = 0) -> int:
    """
    Miyaguchi-Preneel compression of a sequence of field elements.

    k_0 = iv, k_{i+1} = k_i + x_i + E_{k_i}(x_i); the hash is the last key.
    """
    k = iv % FIELD_MODULUS
    for x in values:
        x = x % FIELD_MODULUS
        k = (k + x + mimc_cipher(x, k)) % FIELD_MODULUS
    return k


def merkle_hash2(left: int, right: int, iv: int) -> int:
    """
    Merkle parent hash for arity=2.

    Args:
        left: left child hash
        right: right child hash
        iv: IV of the level the children live on (see merkle_tree_ivs)

    Returns:
        parent hash
    """
    return mimc_hash([left, right], iv)


def trade_history_leaf_hash(filled: int, cancelled: int, order_id: int) -> int:
    """
    Leaf of the trade history tree: Hash(1, filled, cancelled, orderID).
    """
    return mimc_hash([filled, cancelled, order_id], TRADE_HISTORY_LEAF_IV)


def empty_subtree_roots(depth: int) -> List[int]:
    """
    roots[h] is the root of an all-empty subtree of height h; roots[0] is the
    empty leaf.
    """
    ivs = merkle_tree_ivs(depth)
    roots = [trade_history_leaf_hash(0, 0, 0)]
    for level in range(depth):
        roots.append(merkle_hash2(roots[level], roots[level], ivs[level]))
    return roots
