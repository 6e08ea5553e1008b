# merkle_tree.py
"""
Binary trade history tree using field elements and merkle_hash2.

This is the "off-chain" / non-ZK part: we keep the tree and compute Merkle
openings in plain Python. The circuit (zk_merkle.py) only ever sees one
opening at a time.

Two flavours:
- MerkleTree: dense, every level materialised; fine for small depths
- SparseMerkleTree: only touched nodes are stored, untouched subtrees hash
  to precomputed empty roots; used at the protocol depth (2^14 slots)
"""

from typing import Dict, List, Sequence, Tuple

from hash_utils import FIELD_MODULUS, empty_subtree_roots, merkle_hash2, merkle_tree_ivs


def field(val: int) -> int:
    """
    Convert a Python int to a field element by reducing modulo FIELD_MODULUS.
    """
    return val % FIELD_MODULUS


def compute_root(leaf: int, siblings: Sequence[int], positions: Sequence[int]) -> int:
    """
    Walk an opening from the leaf to the root.

    positions[h] = 1 means the running node is the RIGHT child at height h.
    """
    if len(siblings) != len(positions):
        raise ValueError(
            f"Length mismatch: {len(siblings)} siblings but {len(positions)} positions"
        )
    ivs = merkle_tree_ivs(len(siblings))
    node = field(leaf)
    for h, (sibling, position) in enumerate(zip(siblings, positions)):
        if position not in (0, 1):
            raise ValueError(f"Invalid position at level {h}: {position}. Must be 0 or 1.")
        if position == 0:
            node = merkle_hash2(node, sibling, ivs[h])
        else:
            node = merkle_hash2(sibling, node, ivs[h])
    return node


def address_bits(index: int, depth: int) -> List[int]:
    """
    Little-endian address bits of a slot, one per level.
    """
    return [(index >> h) & 1 for h in range(depth)]


class MerkleTree:
    """
    Dense binary Merkle tree (arity = 2) of fixed depth.

    - leaves: list of field elements, padded with the empty leaf up to 2^depth
    - levels[0] = leaves
    - levels[1] = parents of leaves
    - ...
    - levels[-1][0] = root
    """

    def __init__(self, leaves: List[int], depth: int) -> None:
        if depth < 1:
            raise ValueError("Tree must have depth of at least one")
        if len(leaves) > 2 ** depth:
            raise ValueError(f"{len(leaves)} leaves do not fit in a tree of depth {depth}")
        self.depth = depth
        empty_leaf = empty_subtree_roots(0)[0]
        self.leaves = [field(x) for x in leaves]
        self.leaves += [empty_leaf] * (2 ** depth - len(self.leaves))
        self.levels: List[List[int]] = []
        self._build_tree()

    def _build_tree(self) -> None:
        """
        Build the full tree bottom-up, hashing level h with IV h.
        """
        ivs = merkle_tree_ivs(self.depth)
        level = self.leaves[:]
        self.levels.append(level)

        for h in range(self.depth):
            next_level = [
                merkle_hash2(level[i], level[i + 1], ivs[h])
                for i in range(0, len(level), 2)
            ]
            self.levels.append(next_level)
            level = next_level

    def root(self) -> int:
        """
        Return the root hash of the tree (a field element).
        """
        return self.levels[-1][0]

    def opening(self, index: int) -> Tuple[List[int], List[int]]:
        """
        Compute the Merkle opening (siblings, positions) for a given leaf index.

        Returns: (siblings, positions)
        - siblings[h] = sibling hash at height h (0 = leaf level, up to depth-1)
        - positions[h] = 0 if our node was LEFT child at that level,
                         1 if our node was RIGHT child.

        Example for a tree with leaves [A, B, C, D] and opening(0):
                    root
                   /    \\
                 N1       N2
                /  \\     /  \\
               A    B   C    D

        - positions = [0, 0], siblings = [B, N2]
        """
        if index < 0 or index >= len(self.leaves):
            raise IndexError("Leaf index out of range")

        siblings: List[int] = []
        idx = index
        for h in range(self.depth):
            # Sibling index: flip the last bit (idx ^ 1)
            siblings.append(self.levels[h][idx ^ 1])
            idx //= 2

        return siblings, address_bits(index, self.depth)


class SparseMerkleTree:
    """
    Fixed-depth binary Merkle tree where every slot starts out empty.

    nodes[h] maps the index of a touched node at height h to its hash;
    anything missing is the root of an empty subtree of height h.
    """

    def __init__(self, depth: int) -> None:
        if depth < 1:
            raise ValueError("Tree must have depth of at least one")
        self.depth = depth
        self._ivs = merkle_tree_ivs(depth)
        self._empty = empty_subtree_roots(depth)
        self._nodes: List[Dict[int, int]] = [{} for _ in range(depth + 1)]

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= 2 ** self.depth:
            raise IndexError("Leaf index out of range")

    def _node(self, height: int, index: int) -> int:
        return self._nodes[height].get(index, self._empty[height])

    def leaf(self, index: int) -> int:
        self._check_index(index)
        return self._node(0, index)

    def update(self, index: int, leaf: int) -> int:
        """
        Replace one leaf and rehash its path; returns the new root.
        """
        self._check_index(index)
        idx = index
        node = field(leaf)
        self._nodes[0][idx] = node
        for h in range(self.depth):
            if idx & 1:
                node = merkle_hash2(self._node(h, idx ^ 1), node, self._ivs[h])
            else:
                node = merkle_hash2(node, self._node(h, idx ^ 1), self._ivs[h])
            idx //= 2
            self._nodes[h + 1][idx] = node
        return node

    def root(self) -> int:
        return self._node(self.depth, 0)

    def opening(self, index: int) -> Tuple[List[int], List[int]]:
        """
        Same contract as MerkleTree.opening.
        """
        self._check_index(index)
        siblings = []
        idx = index
        for h in range(self.depth):
            siblings.append(self._node(h, idx ^ 1))
            idx //= 2
        return siblings, address_bits(index, self.depth)
