"""
tests/test_treeset.py
=====================
Pytest test suite for TreeSet, the result type of exact search.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from parsimo._tree import Tree
from parsimo._treeset import TreeSet


@pytest.fixture(scope="module")
def trees():
    return [
        Tree.from_newick("((A,B),(C,D));"),
        Tree.from_newick("((A,C),(B,D));"),
        Tree.from_newick("((A,D),(B,C));"),
    ]


class TestTreeSet:
    def test_deduplicates_by_topology(self, trees):
        again = Tree.from_newick("((D,C),(B,A));")
        ts = TreeSet([trees[0], trees[1], again], score=4)
        assert len(ts) == 2
        assert ts.trees[0] is trees[0]

    def test_discovery_order(self, trees):
        ts = TreeSet(reversed(trees), score=1)
        assert list(ts) == list(reversed(trees))
        assert ts.best is trees[2]

    def test_membership(self, trees):
        ts = TreeSet(trees[:2], score=3)
        assert Tree.from_newick("(B,A,(C,D));") in ts
        assert trees[2] not in ts

    def test_empty(self):
        ts = TreeSet([], score=0)
        assert len(ts) == 0
        assert ts.best is None

    def test_equality_ignores_order(self, trees):
        assert TreeSet(trees, 2) == TreeSet(reversed(trees), 2)
        assert hash(TreeSet(trees, 2)) == hash(TreeSet(reversed(trees), 2))
        assert TreeSet(trees, 2) != TreeSet(trees, 3)
        assert TreeSet(trees, 2) != TreeSet(trees, 2, proven_optimal=False)

    def test_rejects_non_trees(self):
        with pytest.raises(TypeError):
            TreeSet(["((A,B),(C,D));"], score=0)

    def test_trees_is_immutable(self, trees):
        ts = TreeSet(trees, 5)
        assert isinstance(ts.trees, tuple)

    def test_repr(self, trees):
        assert repr(TreeSet(trees, 5)) == "<TreeSet 3 tree(s), score 5, optimal>"
        assert "not proven optimal" in repr(TreeSet(trees, 5, proven_optimal=False))
