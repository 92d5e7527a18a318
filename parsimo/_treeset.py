"""
_treeset.py
===========
Immutable collection of equally scoring trees.

Search results come in two shapes: functions that return one answer return
a plain ``Tree``; ``exact_search`` returns a ``TreeSet`` holding every tree
that reached the best score.  A ``TreeSet`` is never used for a single
optional tree.
"""

from typing import Iterable, Iterator, Optional, Tuple

from parsimo._tree import Tree


class TreeSet:
    """
    Co-optimal trees, deduplicated by topology.

    Parameters
    ----------
    trees : iterable of Tree
        Trees in discovery order.  Topologically equal trees (same splits,
        regardless of node numbering) are kept once, first occurrence wins.
    score : int
        Parsimony score shared by every tree.
    proven_optimal : bool, default True
        False when the producing search stopped early (timeout or
        cancellation), so better trees may exist.

    Examples
    --------
    >>> ts = TreeSet([t1, t2, t1], score=7)
    >>> len(ts)
    2
    >>> ts.best is t1
    True
    """

    def __init__(self, trees: Iterable[Tree], score: int, proven_optimal: bool = True):
        unique = {}
        for tree in trees:
            if not isinstance(tree, Tree):
                raise TypeError(f"TreeSet holds Tree objects; got {type(tree).__name__}.")
            unique.setdefault(tree, tree)
        self._trees: Tuple[Tree, ...] = tuple(unique.values())
        self.score: int = int(score)
        self.proven_optimal: bool = bool(proven_optimal)

    @property
    def trees(self) -> Tuple[Tree, ...]:
        """Trees in discovery order."""
        return self._trees

    @property
    def best(self) -> Optional[Tree]:
        """The first tree found, or None for an empty set."""
        return self._trees[0] if self._trees else None

    def __iter__(self) -> Iterator[Tree]:
        return iter(self._trees)

    def __len__(self) -> int:
        return len(self._trees)

    def __contains__(self, tree) -> bool:
        return tree in self._trees

    def __eq__(self, other) -> bool:
        if not isinstance(other, TreeSet):
            return NotImplemented
        return (
            self.score == other.score
            and self.proven_optimal == other.proven_optimal
            and set(self._trees) == set(other._trees)
        )

    def __hash__(self) -> int:
        return hash((self.score, self.proven_optimal, frozenset(self._trees)))

    def __repr__(self) -> str:
        status = "optimal" if self.proven_optimal else "not proven optimal"
        return f"<TreeSet {len(self)} tree(s), score {self.score}, {status}>"
