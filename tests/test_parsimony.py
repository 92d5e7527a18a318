"""
tests/test_parsimony.py
=======================
Pytest test suite for Fitch scoring (parsimo._parsimony).

Reference alignment
-------------------
  A: AAGT
  B: AAGA
  C: GGAT
  D: GGAA

  The two leading columns are identical and compress into one pattern of
  weight 2.  Hand-computed Fitch lengths:

    ((A,B),(C,D))   2 + 2 + 1 + 2 = 5     (best)
    ((A,C),(B,D))   4 + 2 + 1     = 7
    ((A,D),(B,C))   4 + 2 + 2     = 8

  minimum_score = 4, maximum_score (star tree) = 8, so on the best tree
  CI = 4/5 and RI = (8 - 5) / (8 - 4) = 0.75.

Nested alignment
----------------
  A GGGACT   B GGGACT   C AGGACT   D AAGACT   E AAAACT   F AAAACT

  Perfectly compatible characters: (((((A,B),C),D),E),F) scores 3 with
  CI = RI = 1.
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from parsimo._backend import get_available_backends
from parsimo._context import use_backend
from parsimo._errors import TopologyMismatch
from parsimo._matrix import CharacterMatrix
from parsimo._parsimony import (
    OP_COMBINE,
    OP_COPY,
    best_candidate,
    consistency_index,
    retention_index,
    score,
    score_many,
    traversal_program,
)
from parsimo._tree import Tree


cpu_parallel_skip = pytest.mark.skipif(
    "cpu-parallel" not in get_available_backends(),
    reason="cpu-parallel backend (numba) not available",
)


# ======================================================================== #
# Helpers                                                                   #
# ======================================================================== #


def random_matrix(rng, n_taxa, n_sites, alphabet="ACGT"):
    return CharacterMatrix(
        {
            f"t{i}": "".join(rng.choice(list(alphabet), size=n_sites))
            for i in range(n_taxa)
        }
    )


def random_tree(rng, names, n_moves=6):
    """Random topology: shuffled caterpillar followed by random SPR moves."""
    order = list(names)
    rng.shuffle(order)
    tree = Tree.caterpillar(order)
    for _ in range(n_moves):
        moves = list(tree.spr_moves())
        if not moves:
            break
        prune, regraft = moves[rng.integers(len(moves))]
        tree = tree.spr(prune, regraft)
    return tree


# ======================================================================== #
# Fixtures                                                                  #
# ======================================================================== #


@pytest.fixture(scope="module")
def four():
    return CharacterMatrix({"A": "AAGT", "B": "AAGA", "C": "GGAT", "D": "GGAA"})


@pytest.fixture(scope="module")
def nested():
    return CharacterMatrix(
        [
            ("A", "GGGACT"),
            ("B", "GGGACT"),
            ("C", "AGGACT"),
            ("D", "AAGACT"),
            ("E", "AAAACT"),
            ("F", "AAAACT"),
        ]
    )


@pytest.fixture(scope="module")
def ab_cd():
    return Tree.from_newick("((A,B),(C,D));")


@pytest.fixture(scope="module")
def ac_bd():
    return Tree.from_newick("((A,C),(B,D));")


@pytest.fixture(scope="module")
def ad_bc():
    return Tree.from_newick("((A,D),(B,C));")


# ======================================================================== #
# 1. Known scores                                                          #
# ======================================================================== #


class TestKnownScores:
    def test_four_taxon_scores(self, four, ab_cd, ac_bd, ad_bc):
        assert score(ab_cd, four) == 5
        assert score(ac_bd, four) == 7
        assert score(ad_bc, four) == 8

    def test_returns_python_int(self, four, ab_cd):
        assert type(score(ab_cd, four)) is int

    def test_nested_caterpillar(self, nested):
        tree = Tree.from_newick("(((((A,B),C),D),E),F);")
        assert score(tree, nested) == 3

    def test_identical_sequences_score_zero(self):
        m = CharacterMatrix({k: "ACGTAC" for k in "ABCDE"})
        for tree in Tree.caterpillar("ABCDE").spr_neighbors():
            assert score(tree, m) == 0

    def test_single_difference_scores_one_everywhere(self):
        m = CharacterMatrix({"A": "AAAA", "B": "AAAA", "C": "AAAA", "D": "AAAC"})
        for newick in ("((A,B),(C,D));", "((A,C),(B,D));", "((A,D),(B,C));"):
            assert score(Tree.from_newick(newick), m) == 1

    def test_ambiguity_codes_are_free(self):
        # R = {A, G} agrees with both neighbours
        m = CharacterMatrix({"A": "A", "B": "R", "C": "G", "D": "G"})
        assert score(Tree.from_newick("((A,B),(C,D));"), m) == 1
        m = CharacterMatrix({"A": "A", "B": "N", "C": "A", "D": "A"})
        assert score(Tree.from_newick("((A,B),(C,D));"), m) == 0

    def test_two_leaf_tree(self):
        m = CharacterMatrix({"x": "ACG", "y": "ATG"})
        assert score(Tree.from_newick("(x,y);"), m) == 1

    def test_leaf_order_independent(self, four):
        shuffled = Tree.from_newick("((D,C),(B,A));")
        assert shuffled.names != ("A", "B", "C", "D")
        assert score(shuffled, four) == 5

    def test_weights_multiply(self):
        once = CharacterMatrix({"A": "A", "B": "A", "C": "G", "D": "G"})
        thrice = CharacterMatrix({"A": "AAA", "B": "AAA", "C": "GGG", "D": "GGG"})
        tree = Tree.from_newick("((A,C),(B,D));")
        assert score(tree, thrice) == 3 * score(tree, once) == 6


# ======================================================================== #
# 2. Anchor invariance                                                     #
# ======================================================================== #


class TestAnchorInvariance:
    def test_every_anchor_same_score(self, four, ac_bd):
        expected = score(ac_bd, four)
        for anchor in range(ac_bd.n_nodes):
            assert score(ac_bd, four, anchor=anchor, backend="python") == expected

    @pytest.mark.parametrize("seed", range(5))
    def test_random_trees(self, seed):
        rng = np.random.default_rng(seed)
        m = random_matrix(rng, 8, 40)
        tree = random_tree(rng, m.taxa)
        scores = {
            score(tree, m, anchor=a, backend="python") for a in range(tree.n_nodes)
        }
        assert len(scores) == 1


# ======================================================================== #
# 3. Validation                                                            #
# ======================================================================== #


class TestValidation:
    def test_missing_taxon(self, four):
        tree = Tree.from_newick("((A,B),C);")
        with pytest.raises(TopologyMismatch) as exc:
            score(tree, four)
        assert exc.value.missing == ("D",)
        assert exc.value.extra == ()

    def test_extra_leaf(self, four):
        tree = Tree.from_newick("((A,B),(C,(D,E)));")
        with pytest.raises(TopologyMismatch) as exc:
            score(tree, four)
        assert exc.value.extra == ("E",)

    def test_mismatch_is_value_error(self, four):
        with pytest.raises(ValueError):
            score(Tree.caterpillar("ABCX"), four)

    def test_partial_allows_subset(self, four):
        # 2 + 1 + 1 over the three patterns
        assert score(Tree.from_newick("((A,B),C);"), four, partial=True) == 4
        with pytest.raises(TopologyMismatch):
            score(Tree.from_newick("((A,B),X);"), four, partial=True)

    def test_unknown_backend(self, four, ab_cd):
        with pytest.raises(ValueError, match="Unknown backend"):
            score(ab_cd, four, backend="gpu")


# ======================================================================== #
# 4. Traversal programs                                                    #
# ======================================================================== #


class TestTraversalProgram:
    def test_shape_and_dtype(self, nested):
        tree = Tree.caterpillar(nested.taxa)
        steps = traversal_program(tree)
        assert steps.shape == (2 * tree.n_leaves - 3, 3)
        assert steps.dtype == np.int32

    def test_first_child_copied(self):
        tree = Tree.caterpillar("ABCDEF")
        steps = traversal_program(tree)
        seen = set()
        for target, source, op in steps.tolist():
            if target >= tree.n_leaves and target not in seen:
                assert op == OP_COPY
                seen.add(target)
            else:
                assert op == OP_COMBINE
        assert seen == set(range(tree.n_leaves, tree.n_nodes))

    def test_leaf_anchor_combines(self):
        tree = Tree.caterpillar("ABCD")
        steps = traversal_program(tree, anchor=0)
        assert steps[-1].tolist()[0] == 0
        assert steps[-1, 2] == OP_COMBINE

    def test_children_before_parents(self):
        tree = Tree.caterpillar("ABCDEFG")
        steps = traversal_program(tree, anchor=9)
        finished = set(range(tree.n_leaves))
        for target, source, _ in steps.tolist():
            assert source in finished
            finished.add(target)

    def test_every_edge_once(self):
        tree = Tree.caterpillar("ABCDEF")
        steps = traversal_program(tree)
        edges = sorted(tuple(sorted((int(t), int(s)))) for t, s, _ in steps)
        assert edges == tree.edges()


# ======================================================================== #
# 5. Backends                                                              #
# ======================================================================== #


class TestBackends:
    def test_python_backend(self, four, ab_cd):
        assert score(ab_cd, four, backend="python") == 5

    @cpu_parallel_skip
    def test_cpu_parallel_backend(self, four, ab_cd, ac_bd):
        assert score(ab_cd, four, backend="cpu-parallel") == 5
        assert score(ac_bd, four, backend="cpu-parallel") == 7

    @cpu_parallel_skip
    @pytest.mark.parametrize("seed", range(8))
    def test_backends_agree(self, seed):
        rng = np.random.default_rng(100 + seed)
        m = random_matrix(rng, 9, 50, alphabet="ACGTRYN-")
        tree = random_tree(rng, m.taxa)
        for anchor in (None, 0, tree.n_nodes - 1):
            assert score(tree, m, anchor=anchor, backend="python") == score(
                tree, m, anchor=anchor, backend="cpu-parallel"
            )

    @cpu_parallel_skip
    def test_batch_agrees_with_single(self):
        rng = np.random.default_rng(3)
        m = random_matrix(rng, 7, 30)
        source = random_tree(rng, m.taxa)
        neighbours = source.spr_neighbors()
        batch = score_many(neighbours, m, backend="cpu-parallel")
        single = [score(t, m, backend="python") for t in neighbours]
        assert batch.tolist() == single

    def test_use_backend_override(self, four, ab_cd):
        with use_backend("python"):
            assert score(ab_cd, four, backend="best") == 5

    def test_use_backend_rejects_unknown(self):
        with pytest.raises(ValueError, match="not available"):
            with use_backend("gpu"):
                pass


# ======================================================================== #
# 6. Batch scoring                                                         #
# ======================================================================== #


class TestScoreMany:
    def test_scores_parallel_to_input(self, four, ab_cd, ac_bd, ad_bc):
        scores = score_many([ac_bd, ab_cd, ad_bc], four)
        assert scores.dtype == np.int64
        assert scores.tolist() == [7, 5, 8]

    def test_mixed_leaf_orders(self, four):
        trees = [
            Tree.from_newick("((A,B),(C,D));"),
            Tree.from_newick("((D,A),(C,B));"),
        ]
        assert score_many(trees, four).tolist() == [5, 8]

    def test_empty(self, four):
        assert score_many([], four).tolist() == []

    def test_mismatch_in_batch(self, four, ab_cd):
        with pytest.raises(TopologyMismatch):
            score_many([ab_cd, Tree.caterpillar("ABCE")], four)

    def test_best_candidate(self, four, ab_cd, ac_bd, ad_bc):
        assert best_candidate([ac_bd, ad_bc, ab_cd], four) == (2, 5)

    def test_best_candidate_first_wins_ties(self):
        m = CharacterMatrix({"A": "AC", "B": "AC", "C": "AC", "D": "AC"})
        trees = [
            Tree.from_newick("((A,C),(B,D));"),
            Tree.from_newick("((A,B),(C,D));"),
        ]
        assert best_candidate(trees, m) == (0, 0)

    def test_best_candidate_empty(self, four):
        with pytest.raises(ValueError):
            best_candidate([], four)


# ======================================================================== #
# 7. Homoplasy indices                                                     #
# ======================================================================== #


class TestIndices:
    def test_consistency_index(self, four, ab_cd, ad_bc):
        assert consistency_index(ab_cd, four) == pytest.approx(4 / 5)
        assert consistency_index(ad_bc, four) == pytest.approx(4 / 8)

    def test_retention_index(self, four, ab_cd, ad_bc):
        assert retention_index(ab_cd, four) == pytest.approx(0.75)
        assert retention_index(ad_bc, four) == pytest.approx(0.0)

    def test_perfect_fit(self, nested):
        tree = Tree.from_newick("(((((A,B),C),D),E),F);")
        assert consistency_index(tree, nested) == 1.0
        assert retention_index(tree, nested) == 1.0

    def test_zero_score(self):
        m = CharacterMatrix({k: "ACGT" for k in "ABCD"})
        tree = Tree.caterpillar("ABCD")
        assert consistency_index(tree, m) == 1.0
        assert np.isnan(retention_index(tree, m))
