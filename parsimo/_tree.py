"""
_tree.py
========
An unrooted, strictly bifurcating phylogenetic tree stored as a fixed-width
adjacency array, with copy-on-rearrange topology operators.

Public API
----------
  Tree(names, adjacency, lengths=None)
      Constructor from arrays (validated).
  Tree.from_newick(newick_string)
  Tree.caterpillar(names)

  .edges() / .internal_edges() / .neighbors(u) / .postorder(anchor)
  .swap_subtrees(edge, x, y) / .nni(edge, which) / .nni_neighbors()
  .spr(prune, regraft) / .spr_moves() / .spr_neighbors()
  .insert_leaf(name, edge)
  .splits() / .split_names() / .robinson_foulds(other)
  .to_newick(support=None, lengths=True)

Node-ID conventions
-------------------
For a tree with L >= 2 leaves there are exactly 2L - 2 nodes:

  Leaves   : 0 … L-1        leaf i carries taxon ``names[i]``; degree 1
  Internal : L … 2L-3       unlabeled; degree 3

``adjacency[u]`` holds the neighbours of node u in ascending order, padded
with -1 (leaves use slot 0 only).  ``lengths[u, k]`` is the length of the
edge ``(u, adjacency[u, k])`` or NaN when unknown; ``lengths`` is None for
trees without branch lengths.

The tree has no root.  Traversals start from an explicit *anchor* node
(any leaf or internal node), which is a bookkeeping choice only.

Copy-on-rearrange
-----------------
Every operator returns a new, independent ``Tree`` and leaves its input
unmodified; the arrays of a ``Tree`` are read-only.  Rearranged trees carry
no branch lengths.

Equality
--------
Two trees are equal when they have the same leaf names and the same set of
non-trivial bipartitions (splits), regardless of node numbering.  Trees are
hashable, so sets and dicts deduplicate topologies.
"""

import logging
import math
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from parsimo._utils import format_length, format_newick

logger = logging.getLogger(__name__)

_PAD = -1
_DELIMITERS = ":,();"


class Tree:
    """
    An unrooted binary tree over a fixed set of named leaves.

    Attributes (all read-only after construction)
    ----------------------------------------------
    names      : tuple[str]  Taxon name of each leaf (leaf i -> names[i]).
    n_leaves   : int         Number of leaves L.
    n_nodes    : int         2L - 2.
    n_internal : int         L - 2.
    adjacency  : int32   [n_nodes, 3]  Sorted neighbours, -1 padded.
    lengths    : float64 [n_nodes, 3]  Edge lengths (NaN = unknown), or None.
    """

    # ================================================================== #
    # Construction                                                         #
    # ================================================================== #

    def __init__(
        self,
        names: Sequence[str],
        adjacency,
        lengths=None,
    ) -> None:
        """
        Build a tree from a leaf-name list and an adjacency array.

        Parameters
        ----------
        names : sequence of str
            Leaf names; ``len(names)`` leaves are nodes 0 … L-1.
        adjacency : array-like, shape (2L-2, 3)
            Neighbour IDs per node, -1 padded, in any order.
        lengths : array-like, shape (2L-2, 3), optional
            Edge lengths parallel to *adjacency*.

        Raises
        ------
        ValueError
            Fewer than two leaves, duplicate or empty names, wrong node
            count, wrong degrees, asymmetric adjacency, or a disconnected
            (hence cyclic) structure.
        """
        names = tuple(names)
        n_leaves = len(names)
        if n_leaves < 2:
            raise ValueError(f"A tree needs at least two leaves; got {n_leaves}.")
        if len(set(names)) != n_leaves:
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Duplicate leaf names: {', '.join(dupes)}.")
        if any(not isinstance(n, str) or n == "" for n in names):
            raise ValueError("Leaf names must be non-empty strings.")

        adjacency = np.array(adjacency, dtype=np.int32)
        n_nodes = 2 * n_leaves - 2
        if adjacency.shape != (n_nodes, 3):
            raise ValueError(
                f"adjacency must have shape ({n_nodes}, 3) for {n_leaves} "
                f"leaves; got {adjacency.shape}."
            )
        if lengths is not None:
            lengths = np.array(lengths, dtype=np.float64)
            if lengths.shape != adjacency.shape:
                raise ValueError("lengths must have the same shape as adjacency.")
            if np.any(lengths < 0):
                raise ValueError("Branch lengths must be non-negative.")

        adjacency, lengths = Tree._sort_rows(adjacency, lengths)
        Tree._validate(adjacency, n_leaves)

        adjacency.setflags(write=False)
        if lengths is not None:
            lengths.setflags(write=False)

        self.names: Tuple[str, ...] = names
        self.adjacency: np.ndarray = adjacency
        self.lengths: Optional[np.ndarray] = lengths
        self.n_leaves: int = n_leaves
        self.n_nodes: int = n_nodes
        self.n_internal: int = n_leaves - 2

        # Canonical key: built lazily on first comparison / hash.
        self._key = None

    @classmethod
    def _from_edges(cls, names, edges, lengths=None) -> "Tree":
        """
        **Private.**  Build a tree from an edge list.

        Parameters
        ----------
        names : sequence of str
        edges : iterable of (u, v)
        lengths : sequence of float, optional   One per edge.
        """
        n_nodes = 2 * len(names) - 2
        adjacency = np.full((n_nodes, 3), _PAD, dtype=np.int32)
        edge_lengths = None
        if lengths is not None:
            edge_lengths = np.full((n_nodes, 3), np.nan, dtype=np.float64)
        fill = np.zeros(n_nodes, dtype=np.int32)

        for k, (u, v) in enumerate(edges):
            for a, b in ((u, v), (v, u)):
                if fill[a] >= 3:
                    raise ValueError(f"Node {a} has more than three neighbours.")
                adjacency[a, fill[a]] = b
                if edge_lengths is not None:
                    edge_lengths[a, fill[a]] = lengths[k]
                fill[a] += 1

        return cls(names, adjacency, edge_lengths)

    @classmethod
    def caterpillar(cls, names: Sequence[str]) -> "Tree":
        """
        Return the caterpillar (ladder) tree over *names*.

        Leaves are attached along a path of internal nodes in the given
        order: ``(n0,n1,(n2,(n3,…(n[L-2],n[L-1]))))``.  This is the
        deterministic default starting topology for searches.
        """
        names = tuple(names)
        n = len(names)
        if n == 2:
            return cls._from_edges(names, [(0, 1)])

        edges = []
        spine = list(range(n, 2 * n - 2))
        edges.append((0, spine[0]))
        for k, node in enumerate(spine):
            edges.append((k + 1, node))
            if k + 1 < len(spine):
                edges.append((node, spine[k + 1]))
        edges.append((n - 1, spine[-1]))
        return cls._from_edges(names, edges)

    @classmethod
    def from_newick(cls, newick_string: str) -> "Tree":
        """
        Parse a NEWICK string into an unrooted binary tree.

        * A degree-2 root (the usual rooted NEWICK) is suppressed and its two
          branches are joined into one edge whose length is their sum.
        * Internal node labels (e.g. support values) are ignored.
        * Unifurcations are suppressed.
        * Multifurcations are resolved into zero-length bifurcations with a
          WARNING; the order of splitting is arbitrary.

        Raises
        ------
        ValueError
            Unbalanced parentheses, empty or duplicate leaf names, negative
            or unparsable branch lengths, or fewer than two leaves.
        """
        parent, names, blen = Tree._parse_newick(newick_string)
        return cls._from_parsed(parent, names, blen)

    # ================================================================== #
    # Structure queries                                                    #
    # ================================================================== #

    @property
    def leaf_set(self) -> frozenset:
        """Leaf names as a frozenset."""
        return frozenset(self.names)

    def is_leaf(self, u: int) -> bool:
        """True if node *u* is a leaf."""
        return 0 <= u < self.n_leaves

    def neighbors(self, u: int) -> Tuple[int, ...]:
        """Neighbours of node *u* in ascending order."""
        row = self.adjacency[u]
        return tuple(int(v) for v in row if v != _PAD)

    def edges(self) -> List[Tuple[int, int]]:
        """All edges as ``(u, v)`` with ``u < v``, sorted (stable enumeration order)."""
        out = []
        for u in range(self.n_nodes):
            for v in self.adjacency[u]:
                if v != _PAD and u < v:
                    out.append((u, int(v)))
        return out

    def internal_edges(self) -> List[Tuple[int, int]]:
        """Edges whose endpoints are both internal nodes, sorted."""
        n = self.n_leaves
        return [(u, v) for u, v in self.edges() if u >= n and v >= n]

    def has_edge(self, u: int, v: int) -> bool:
        """True if nodes *u* and *v* are adjacent."""
        return 0 <= u < self.n_nodes and v in self.neighbors(u)

    def edge_length(self, u: int, v: int) -> float:
        """Length of edge (u, v); NaN when the tree carries no lengths."""
        if not self.has_edge(u, v):
            raise KeyError(f"No edge ({u}, {v}) in tree.")
        if self.lengths is None:
            return math.nan
        k = int(np.flatnonzero(self.adjacency[u] == v)[0])
        return float(self.lengths[u, k])

    def postorder(self, anchor: int = 0) -> List[Tuple[int, int]]:
        """
        Return ``(node, parent)`` pairs in post-order from *anchor*.

        The anchor is the last entry, with parent -1.  Children are visited
        in ascending node-ID order.  Iterative; no recursion.
        """
        if not 0 <= anchor < self.n_nodes:
            raise ValueError(f"Anchor {anchor} is not a node of this tree.")
        order = []
        stack = [(anchor, _PAD, False)]
        adjacency = self.adjacency
        while stack:
            node, parent, expanded = stack.pop()
            if expanded:
                order.append((node, parent))
                continue
            stack.append((node, parent, True))
            row = adjacency[node]
            for k in range(2, -1, -1):
                child = int(row[k])
                if child != _PAD and child != parent:
                    stack.append((child, node, False))
        return order

    def _side(self, start: int, blocked: int) -> set:
        """**Private.**  Nodes reachable from *start* without passing *blocked*."""
        seen = {start}
        stack = [start]
        while stack:
            u = stack.pop()
            for v in self.adjacency[u]:
                v = int(v)
                if v != _PAD and v != blocked and v not in seen:
                    seen.add(v)
                    stack.append(v)
        return seen

    # ================================================================== #
    # Rearrangements                                                       #
    # ================================================================== #

    def swap_subtrees(self, edge: Tuple[int, int], x: int, y: int) -> "Tree":
        """
        Exchange subtree *x* (hanging off u) with subtree *y* (hanging off v)
        across the internal edge ``(u, v)``.

        ``swap_subtrees(edge, y, x)`` on the result restores the original
        topology.

        Raises
        ------
        ValueError
            If *edge* is not an internal edge, or x / y are not neighbours of
            u / v (other than each other).
        """
        u, v = edge
        if not (self.has_edge(u, v) and u >= self.n_leaves and v >= self.n_leaves):
            raise ValueError(f"({u}, {v}) is not an internal edge.")
        if x == v or x not in self.neighbors(u):
            raise ValueError(f"Node {x} is not a subtree of {u} across ({u}, {v}).")
        if y == u or y not in self.neighbors(v):
            raise ValueError(f"Node {y} is not a subtree of {v} across ({u}, {v}).")

        adjacency = np.array(self.adjacency)
        Tree._replace(adjacency, u, x, y)
        Tree._replace(adjacency, v, y, x)
        Tree._replace(adjacency, x, u, v)
        Tree._replace(adjacency, y, v, u)
        return Tree(self.names, adjacency)

    def nni(self, edge: Tuple[int, int], which: int) -> "Tree":
        """
        Return one of the two nearest-neighbour interchanges across *edge*.

        With ``u < v``, ``a < b`` the other neighbours of u and ``c < d`` the
        other neighbours of v:

          which = 0   exchange b and c    → (a, c | b, d)
          which = 1   exchange b and d    → (a, d | c, b)
        """
        if which not in (0, 1):
            raise ValueError(f"which must be 0 or 1; got {which!r}.")
        u, v = sorted(edge)
        if not (self.has_edge(u, v) and u >= self.n_leaves):
            raise ValueError(f"({u}, {v}) is not an internal edge.")
        _, b = [w for w in self.neighbors(u) if w != v]
        c, d = [w for w in self.neighbors(v) if w != u]
        return self.swap_subtrees((u, v), b, c if which == 0 else d)

    def nni_neighbors(self) -> List["Tree"]:
        """
        All NNI neighbours, 2 per internal edge (2L - 6 in total).

        Ordering is deterministic: internal edges in ``internal_edges()``
        order, ``which=0`` before ``which=1``.
        """
        out = []
        for edge in self.internal_edges():
            out.append(self.nni(edge, 0))
            out.append(self.nni(edge, 1))
        return out

    def spr(self, prune: Tuple[int, int], regraft: Tuple[int, int]) -> "Tree":
        """
        Subtree pruning and regrafting.

        Parameters
        ----------
        prune : (p, s)
            Internal node p and neighbour s: the subtree on s's side of edge
            (p, s) is detached together with p.  p's two other neighbours
            are joined directly.
        regraft : (a, b)
            An edge of the remaining tree; p is re-inserted on it.

        Raises
        ------
        ValueError
            If p is not internal, s is not a neighbour of p, or (a, b) is not
            a legal regraft edge (inside the pruned subtree, incident to p,
            or not an edge).  Re-inserting at the original position is not
            expressible, since that edge does not exist before pruning.
        """
        p, s = prune
        a, b = regraft
        if not (self.n_leaves <= p < self.n_nodes):
            raise ValueError(f"Prune node {p} is not an internal node.")
        if s not in self.neighbors(p):
            raise ValueError(f"Node {s} is not adjacent to {p}.")
        if not self.has_edge(a, b) or p in (a, b):
            raise ValueError(f"({a}, {b}) is not a regraft edge for prune ({p}, {s}).")
        side = self._side(s, p)
        if a in side or b in side:
            raise ValueError(
                f"Regraft edge ({a}, {b}) lies inside the pruned subtree."
            )

        x, y = [w for w in self.neighbors(p) if w != s]
        adjacency = np.array(self.adjacency)
        # prune: x - p - y  ->  x - y
        Tree._replace(adjacency, x, p, y)
        Tree._replace(adjacency, y, p, x)
        # regraft: a - b  ->  a - p - b
        Tree._replace(adjacency, a, b, p)
        Tree._replace(adjacency, b, a, p)
        adjacency[p] = (s, a, b)
        return Tree(self.names, adjacency)

    def spr_moves(self) -> Iterator[Tuple[Tuple[int, int], Tuple[int, int]]]:
        """
        Enumerate all legal ``(prune, regraft)`` pairs deterministically.

        Prune pairs are ordered by internal node, then neighbour; regraft
        edges follow ``edges()`` order.
        """
        edges = self.edges()
        for p in range(self.n_leaves, self.n_nodes):
            for s in self.neighbors(p):
                side = self._side(s, p)
                for a, b in edges:
                    if a == p or b == p or a in side or b in side:
                        continue
                    yield (p, s), (a, b)

    def spr_neighbors(self) -> List["Tree"]:
        """
        Distinct SPR neighbours in first-enumerated order.

        Different moves frequently produce the same topology (and NNI moves
        are a subset of SPR moves); duplicates and the source topology itself
        are removed.
        """
        seen = {self._canonical_key()}
        out = []
        for prune, regraft in self.spr_moves():
            candidate = self.spr(prune, regraft)
            key = candidate._canonical_key()
            if key not in seen:
                seen.add(key)
                out.append(candidate)
        return out

    def insert_leaf(self, name: str, edge: Tuple[int, int]) -> "Tree":
        """
        Return a new tree with leaf *name* attached to the middle of *edge*.

        Node IDs are renumbered to keep the leaf / internal convention:
        existing leaves keep their IDs, the new leaf gets ID L, existing
        internal nodes shift up by one and the new internal node is last.
        """
        if name in self.names:
            raise ValueError(f"Leaf '{name}' is already in the tree.")
        a, b = edge
        if not self.has_edge(a, b):
            raise ValueError(f"({a}, {b}) is not an edge of this tree.")

        n = self.n_leaves

        def relabel(u):
            return u if u < n else u + 1

        new_leaf = n
        new_internal = 2 * (n + 1) - 3
        key = (min(a, b), max(a, b))
        edges = []
        for u, v in self.edges():
            if (u, v) == key:
                continue
            edges.append((relabel(u), relabel(v)))
        edges.append((relabel(a), new_internal))
        edges.append((relabel(b), new_internal))
        edges.append((new_leaf, new_internal))
        return Tree._from_edges(self.names + (name,), edges)

    # ================================================================== #
    # Splits and comparison                                                #
    # ================================================================== #

    def splits(self) -> frozenset:
        """
        Non-trivial bipartitions as integer bitmasks.

        Bit k stands for the k-th leaf name in sorted order.  Each split is
        stored as the side that excludes the alphabetically first leaf, so
        the representation is independent of node numbering and of the
        order of ``names``.  A binary tree has L - 3 splits.
        """
        rank = {name: k for k, name in enumerate(sorted(self.names))}
        anchor = self.names.index(min(self.names))
        mask = [0] * self.n_nodes
        out = set()
        for node, parent in self.postorder(anchor):
            if node < self.n_leaves:
                mask[node] = 1 << rank[self.names[node]]
                continue
            m = 0
            for child in self.adjacency[node]:
                if child != _PAD and child != parent:
                    m |= mask[child]
            mask[node] = m
            if parent != anchor and parent != _PAD:
                out.add(m)
        return frozenset(out)

    def split_names(self) -> frozenset:
        """Non-trivial splits as frozensets of leaf names (the side without the first name)."""
        ordered = sorted(self.names)
        out = set()
        for m in self.splits():
            out.add(frozenset(ordered[k] for k in range(len(ordered)) if m >> k & 1))
        return frozenset(out)

    def robinson_foulds(self, other: "Tree") -> int:
        """
        Robinson-Foulds distance: size of the symmetric difference of splits.

        Raises
        ------
        ValueError   if the two trees have different leaf sets.
        """
        if self.leaf_set != other.leaf_set:
            raise ValueError("Robinson-Foulds distance needs identical leaf sets.")
        return len(self.splits() ^ other.splits())

    def _canonical_key(self):
        """**Private.**  Cached (sorted names, splits) pair."""
        if self._key is None:
            self._key = (tuple(sorted(self.names)), self.splits())
        return self._key

    def __eq__(self, other) -> bool:
        if not isinstance(other, Tree):
            return NotImplemented
        return self._canonical_key() == other._canonical_key()

    def __hash__(self) -> int:
        return hash(self._canonical_key())

    # ================================================================== #
    # Output                                                               #
    # ================================================================== #

    def to_newick(
        self,
        support: Optional[Dict[frozenset, float]] = None,
        lengths: bool = True,
    ) -> str:
        """
        Format the tree as a NEWICK string.

        The string is written from the internal node adjacent to leaf 0
        (a trifurcation at the top level), the conventional way to write an
        unrooted tree.

        Parameters
        ----------
        support : dict[frozenset[str], float], optional
            Support value per split, keyed by the leaf names on either side.
            Values are written as internal node labels.
        lengths : bool, default True
            Write branch lengths when the tree carries them.
        """
        if self.n_leaves == 2:
            return f"({self.names[0]},{self.names[1]});"

        anchor = int(self.adjacency[0, 0])
        all_names = self.leaf_set
        use_lengths = lengths and self.lengths is not None
        text = {}
        clade = {}

        for node, parent in self.postorder(anchor):
            if node < self.n_leaves:
                s = self.names[node]
                clade[node] = frozenset((s,))
            else:
                children = [
                    int(c) for c in self.adjacency[node] if c != _PAD and c != parent
                ]
                s = "(" + ",".join(text[c] for c in children) + ")"
                clade[node] = frozenset().union(*(clade[c] for c in children))
                if support is not None and parent != _PAD:
                    value = support.get(clade[node])
                    if value is None:
                        value = support.get(all_names - clade[node])
                    if value is not None:
                        s += format_length(value)
            if use_lengths and parent != _PAD:
                length = self.edge_length(node, parent)
                if not math.isnan(length):
                    s += ":" + format_length(length)
            text[node] = s

        return text[anchor] + ";"

    def __repr__(self) -> str:
        return f"<Tree {self.n_leaves} leaves: {self.to_newick(lengths=False)}>"

    # ================================================================== #
    # Private static methods                                               #
    # ================================================================== #

    @staticmethod
    def _replace(adjacency: np.ndarray, u: int, old: int, new: int) -> None:
        """**Private static.**  Replace neighbour *old* of *u* by *new*, in place."""
        row = adjacency[u]
        k = int(np.flatnonzero(row == old)[0])
        row[k] = new

    @staticmethod
    def _sort_rows(adjacency: np.ndarray, lengths):
        """**Private static.**  Sort each row ascending with -1 padding last."""
        keyed = np.where(adjacency < 0, np.iinfo(np.int32).max, adjacency)
        order = np.argsort(keyed, axis=1, kind="stable")
        adjacency = np.take_along_axis(adjacency, order, axis=1)
        if lengths is not None:
            lengths = np.take_along_axis(lengths, order, axis=1)
        return np.ascontiguousarray(adjacency), lengths

    @staticmethod
    def _validate(adjacency: np.ndarray, n_leaves: int) -> None:
        """
        **Private static.**  Check degrees, symmetry and connectivity.

        With 2L - 2 nodes, degrees summing to 2(2L - 3) and connectivity, the
        structure is a tree (connected with |E| = |V| - 1, hence acyclic).
        """
        n_nodes = adjacency.shape[0]
        if np.any(adjacency >= n_nodes) or np.any(adjacency < _PAD):
            raise ValueError("adjacency contains out-of-range node IDs.")

        degree = np.count_nonzero(adjacency != _PAD, axis=1)
        if n_leaves == 2:
            expected = np.array([1, 1])
        else:
            expected = np.where(np.arange(n_nodes) < n_leaves, 1, 3)
        if not np.array_equal(degree, expected):
            bad = int(np.flatnonzero(degree != expected)[0])
            raise ValueError(
                f"Node {bad} has degree {int(degree[bad])}; expected "
                f"{int(expected[bad])} (leaves 1, internal nodes 3)."
            )

        for u in range(n_nodes):
            row = adjacency[u]
            for v in row[row != _PAD]:
                if v == u or u not in adjacency[v]:
                    raise ValueError(f"Edge ({u}, {int(v)}) is not symmetric.")
            live = row[row != _PAD]
            if len(set(live.tolist())) != len(live):
                raise ValueError(f"Node {u} lists a neighbour twice.")

        seen = {0}
        stack = [0]
        while stack:
            u = stack.pop()
            for v in adjacency[u]:
                v = int(v)
                if v != _PAD and v not in seen:
                    seen.add(v)
                    stack.append(v)
        if len(seen) != n_nodes:
            raise ValueError("Tree is disconnected.")

    @staticmethod
    def _scan(s: str, i: int, stops: str) -> int:
        """**Private static.**  Index of the first character of *stops* at or after *i*."""
        n = len(s)
        while i < n and s[i] not in stops:
            i += 1
        return i

    @staticmethod
    def _parse_newick(newick_string: str):
        """
        **Private static.**  Single-pass, stack-free NEWICK scan.

        Returns
        -------
        parent : list[int]     Parent index per parsed node (-1 for the root).
        names  : list[str|None] Leaf name, or None for internal nodes.
        blen   : list[float]   Branch length to parent (NaN when absent).
        """
        s = format_newick(newick_string)[:-1]
        n_chars = len(s)
        parent: List[int] = []
        names: List[Optional[str]] = []
        blen: List[float] = []

        current = _PAD  # node whose children are being read
        last = _PAD  # node that a following ':length' applies to
        n_roots = 0

        i = 0
        while i < n_chars:
            c = s[i]

            if c in " \t\r\n":
                i += 1
                continue

            if c == "(":
                if current == _PAD:
                    n_roots += 1
                parent.append(current)
                names.append(None)
                blen.append(math.nan)
                current = len(parent) - 1
                last = _PAD
                i += 1
                continue

            if c == ",":
                if current == _PAD:
                    raise ValueError("Malformed NEWICK: ',' outside parentheses.")
                last = _PAD
                i += 1
                continue

            if c == ")":
                if current == _PAD:
                    raise ValueError("Malformed NEWICK: unbalanced ')'.")
                last = current
                current = parent[current]
                i += 1
                # internal label (support) is read and discarded
                i = Tree._scan(s, i, _DELIMITERS)
                continue

            if c == ":":
                if last == _PAD:
                    raise ValueError("Malformed NEWICK: ':' without a node.")
                j = Tree._scan(s, i + 1, ",();")
                token = s[i + 1:j].strip()
                try:
                    value = float(token)
                except ValueError:
                    raise ValueError(
                        f"Malformed NEWICK: bad branch length {token!r}."
                    ) from None
                if value < 0:
                    raise ValueError(f"Negative branch length {value} in NEWICK.")
                blen[last] = value
                i = j
                continue

            # Leaf
            j = Tree._scan(s, i, _DELIMITERS)
            name = s[i:j].strip().strip("'\"")
            if current == _PAD:
                n_roots += 1
            parent.append(current)
            names.append(name)
            blen.append(math.nan)
            last = len(parent) - 1
            i = j

        if current != _PAD:
            raise ValueError("Malformed NEWICK: unbalanced '('.")
        if n_roots != 1:
            raise ValueError("Malformed NEWICK: expected a single top-level clade.")
        for name in names:
            if name == "":
                raise ValueError("Malformed NEWICK: empty leaf name.")
        return parent, names, blen

    @classmethod
    def _from_parsed(cls, parent, names, blen) -> "Tree":
        """
        **Private.**  Convert a parsed rooted structure to an unrooted tree:
        suppress degree-2 / degree-1 internal nodes, resolve polytomies,
        then renumber to the leaf / internal convention.
        """
        n_parsed = len(parent)
        neighbours: Dict[int, Dict[int, float]] = {u: {} for u in range(n_parsed)}
        for v in range(n_parsed):
            u = parent[v]
            if u != _PAD:
                neighbours[u][v] = blen[v]
                neighbours[v][u] = blen[v]

        leaves = [u for u in range(n_parsed) if names[u] is not None]
        leaf_names = [names[u] for u in leaves]
        if len(leaves) < 2:
            raise ValueError(
                f"A tree needs at least two leaves; got {len(leaves)}."
            )
        if len(set(leaf_names)) != len(leaf_names):
            dupes = sorted({n for n in leaf_names if leaf_names.count(n) > 1})
            raise ValueError(f"Duplicate leaf names: {', '.join(dupes)}.")

        def join(x, y):
            if math.isnan(x):
                return y
            if math.isnan(y):
                return x
            return x + y

        # Suppress internal nodes of degree 1 and 2.
        changed = True
        while changed:
            changed = False
            for u in list(neighbours):
                if names[u] is not None or u not in neighbours:
                    continue
                nbrs = neighbours[u]
                if len(nbrs) == 1 and len(neighbours) > 2:
                    (v,) = nbrs
                    del neighbours[v][u]
                    del neighbours[u]
                    changed = True
                elif len(nbrs) == 2:
                    (x, lx), (y, ly) = nbrs.items()
                    del neighbours[x][u]
                    del neighbours[y][u]
                    del neighbours[u]
                    neighbours[x][y] = join(lx, ly)
                    neighbours[y][x] = join(lx, ly)
                    changed = True

        # Resolve polytomies (degree > 3) into zero-length bifurcations.
        n_resolved = 0
        next_id = n_parsed
        for u in list(neighbours):
            while len(neighbours[u]) > 3:
                first, second = sorted(neighbours[u])[:2]
                w = next_id
                next_id += 1
                neighbours[w] = {}
                names.append(None)
                for x in (first, second):
                    length = neighbours[u].pop(x)
                    del neighbours[x][u]
                    neighbours[w][x] = length
                    neighbours[x][w] = length
                neighbours[u][w] = 0.0
                neighbours[w][u] = 0.0
                n_resolved += 1

        if n_resolved:
            logger.warning(
                "Input tree is not strictly bifurcating: %d multifurcation(s) "
                "resolved into zero-length bifurcations. The order of "
                "splitting is arbitrary.",
                n_resolved,
            )

        internal = sorted(u for u in neighbours if names[u] is None)
        new_id = {u: k for k, u in enumerate(leaves)}
        for k, u in enumerate(internal):
            new_id[u] = len(leaves) + k

        edges = []
        edge_lengths = []
        for u in neighbours:
            for v, length in neighbours[u].items():
                if u < v:
                    edges.append((new_id[u], new_id[v]))
                    edge_lengths.append(length)

        has_lengths = any(not math.isnan(x) for x in edge_lengths)
        return cls._from_edges(
            leaf_names, edges, edge_lengths if has_lengths else None
        )


def robinson_foulds(tree_a: Tree, tree_b: Tree) -> int:
    """Robinson-Foulds distance between two trees over the same leaves."""
    return tree_a.robinson_foulds(tree_b)
