"""
tests/test_bab.py
=================
Pytest test suite for exact branch-and-bound search (parsimo._bab).

Results are checked against exhaustive enumeration: every unrooted binary
tree on n taxa is produced once by inserting taxon k on every edge of every
tree on the first k taxa ((2n-5)!! trees; 105 for n = 6, 945 for n = 7).

Nested alignment
----------------
  A GGGACT   B GGGACT   C AGGACT   D AAGACT   E AAAACT   F AAAACT

  Three compatible characters; the unique optimum is (((((A,B),C),D),E),F)
  with score 3.  Each of C, D and E is the first taxon with state A in one
  column, so completion_bounds = [3, 3, 3, 2, 1, 0, 0].
"""

import logging
import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from parsimo._bab import completion_bounds, exact_search
from parsimo._config import ExactConfig, SearchConfig
from parsimo._errors import InvalidOperator, TooManyTaxa
from parsimo._matrix import CharacterMatrix
from parsimo._parsimony import score, score_many
from parsimo._search import hillclimb
from parsimo._tree import Tree
from parsimo._treeset import TreeSet


# ======================================================================== #
# Helpers                                                                   #
# ======================================================================== #


def all_trees(names):
    level = [Tree.caterpillar(names[:3])]
    for name in names[3:]:
        level = [t.insert_leaf(name, e) for t in level for e in t.edges()]
    return level


def exhaustive(matrix):
    """(minimum score, set of optimal trees) by brute force."""
    trees = all_trees(matrix.taxa)
    scores = score_many(trees, matrix, backend="python")
    best = int(scores.min())
    return best, {t for t, s in zip(trees, scores.tolist()) if s == best}


def random_matrix(seed, n_taxa, n_sites=12, alphabet="ACGT"):
    rng = np.random.default_rng(seed)
    return CharacterMatrix(
        {
            f"t{i}": "".join(rng.choice(list(alphabet), size=n_sites))
            for i in range(n_taxa)
        }
    )


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)


# ======================================================================== #
# Fixtures                                                                  #
# ======================================================================== #


@pytest.fixture(scope="module")
def quiet():
    return ExactConfig(verbosity=0)


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


# ======================================================================== #
# 1. Completion bounds                                                     #
# ======================================================================== #


class TestCompletionBounds:
    def test_nested_values(self, nested):
        assert completion_bounds(nested).tolist() == [3, 3, 3, 2, 1, 0, 0]

    def test_shape_and_tail(self, four):
        bounds = completion_bounds(four)
        assert bounds.shape == (four.n_taxa + 1,)
        assert bounds[-1] == 0
        assert np.all(np.diff(bounds) <= 0)

    def test_identical_sequences(self):
        m = CharacterMatrix({k: "ACGT" for k in "ABCDE"})
        assert completion_bounds(m).tolist() == [0] * 6

    def test_never_exceeds_optimum(self):
        for seed in range(5):
            m = random_matrix(seed, 6)
            best, _ = exhaustive(m)
            assert completion_bounds(m)[0] <= best

    def test_ambiguity_is_never_forced(self):
        m = CharacterMatrix({"A": "A", "B": "N", "C": "C", "D": "R"})
        # N covers every state, so nothing after B is forced
        assert completion_bounds(m).tolist() == [0] * 5


# ======================================================================== #
# 2. Known results                                                         #
# ======================================================================== #


class TestKnownResults:
    def test_four_taxon_unique(self, four, quiet):
        result = exact_search(four, quiet)
        assert isinstance(result, TreeSet)
        assert result.score == 5
        assert result.proven_optimal
        assert result.trees == (Tree.from_newick("((A,B),(C,D));"),)

    def test_four_taxon_three_way_tie(self, quiet):
        m = CharacterMatrix({"A": "AAAA", "B": "AAAA", "C": "AAAA", "D": "AAAC"})
        result = exact_search(m, quiet)
        assert result.score == 1
        assert len(result) == 3

    def test_identical_sequences_return_every_tree(self, quiet):
        m = CharacterMatrix({k: "ACGT" for k in "ABCDE"})
        result = exact_search(m, quiet)
        assert result.score == 0
        assert len(result) == 15
        assert set(result) == set(all_trees(m.taxa))

    def test_nested_recovered(self, nested, quiet):
        result = exact_search(nested, quiet)
        assert result.score == 3
        assert len(result) == 1
        assert result.best == Tree.from_newick("(((((A,B),C),D),E),F);")

    def test_three_taxa(self, quiet):
        m = CharacterMatrix({"x": "AC", "y": "AG", "z": "TG"})
        result = exact_search(m, quiet)
        assert len(result) == 1
        assert result.proven_optimal
        assert result.score == score(result.best, m)

    def test_two_taxa(self, quiet):
        m = CharacterMatrix({"x": "AC", "y": "AG"})
        result = exact_search(m, quiet)
        assert result.score == 1
        assert result.best.edges() == [(0, 1)]

    def test_every_tree_scores_the_reported_score(self, quiet):
        m = random_matrix(8, 6)
        result = exact_search(m, quiet)
        for tree in result:
            assert score(tree, m) == result.score
            assert tree.leaf_set == frozenset(m.taxa)


# ======================================================================== #
# 3. Agreement with exhaustive enumeration                                 #
# ======================================================================== #


class TestExhaustive:
    @pytest.mark.parametrize("bound", ["tight", "simple"])
    @pytest.mark.parametrize("seed", range(6))
    def test_six_taxa(self, seed, bound):
        m = random_matrix(seed, 6)
        best, optimal = exhaustive(m)
        result = exact_search(m, ExactConfig(verbosity=0, bound=bound))
        assert result.score == best
        assert set(result) == optimal

    @pytest.mark.parametrize("seed", range(4))
    def test_binary_characters(self, seed):
        # two-state data produces many ties
        m = random_matrix(50 + seed, 6, n_sites=5, alphabet="AG")
        best, optimal = exhaustive(m)
        result = exact_search(m, ExactConfig(verbosity=0))
        assert result.score == best
        assert set(result) == optimal

    @pytest.mark.slow
    @pytest.mark.parametrize("seed", range(3))
    def test_seven_taxa(self, seed):
        m = random_matrix(200 + seed, 7, n_sites=20)
        best, optimal = exhaustive(m)
        result = exact_search(m, ExactConfig(verbosity=0))
        assert result.score == best
        assert set(result) == optimal

    @pytest.mark.parametrize("seed", range(4))
    def test_never_worse_than_hillclimb(self, seed):
        m = random_matrix(300 + seed, 7, n_sites=15)
        _, climbed = hillclimb(
            Tree.caterpillar(m.taxa), m, operators="spr", config=SearchConfig(verbosity=0)
        )
        assert exact_search(m, ExactConfig(verbosity=0)).score <= climbed


# ======================================================================== #
# 4. Errors and configuration                                              #
# ======================================================================== #


class TestConfiguration:
    def test_too_many_taxa(self, nested):
        with pytest.raises(TooManyTaxa) as exc:
            exact_search(nested, ExactConfig(max_taxa=5))
        assert exc.value.n_taxa == 6
        assert exc.value.max_taxa == 5
        assert "ratchet" in str(exc.value)

    def test_too_many_taxa_checked_before_operators(self, nested):
        with pytest.raises(TooManyTaxa):
            exact_search(nested, ExactConfig(max_taxa=5, operators="tbr"))

    def test_invalid_operator(self, four):
        with pytest.raises(InvalidOperator):
            exact_search(four, ExactConfig(operators="tbr"))

    def test_bad_config(self):
        with pytest.raises(ValueError):
            ExactConfig(bound="loose")
        with pytest.raises(ValueError):
            ExactConfig(max_taxa=1)

    def test_default_ceiling(self):
        assert ExactConfig().max_taxa == 12


# ======================================================================== #
# 5. Tracing, logging and cancellation                                     #
# ======================================================================== #


class TestProgress:
    def test_trace_events_for_ties(self):
        m = CharacterMatrix({"A": "AAAA", "B": "AAAA", "C": "AAAA", "D": "AAAC"})
        sink = Recorder()
        exact_search(m, ExactConfig(verbosity=0, trace_sink=sink))
        assert [e.accepted for e in sink.events] == [True, False, False]
        assert all(e.stage == "exact" and e.best_score == 1 for e in sink.events)

    def test_summary_logged(self, four, caplog):
        with caplog.at_level(logging.INFO, logger="parsimo._logging"):
            exact_search(four, ExactConfig(verbosity=1))
        assert "exact search on 4 taxa: score 5, 1 optimal tree(s)" in caplog.text

    def test_cancel_returns_unproven(self, nested, caplog):
        config = ExactConfig(verbosity=0, cancel=lambda: True)
        with caplog.at_level(logging.WARNING, logger="parsimo._logging"):
            result = exact_search(nested, config)
        assert not result.proven_optimal
        assert len(result) >= 1
        assert result.score == score(result.best, nested)
        assert "NOT proven optimal" in caplog.text
        assert "cancelled" in caplog.text

    def test_cancel_mid_search(self, caplog):
        m = random_matrix(4, 8, n_sites=20)
        calls = []

        def cancel():
            calls.append(1)
            return len(calls) > 3

        with caplog.at_level(logging.WARNING, logger="parsimo._logging"):
            result = exact_search(m, ExactConfig(verbosity=0, cancel=cancel))
        assert not result.proven_optimal
        for tree in result:
            assert score(tree, m) == result.score
        assert "NOT proven optimal" in caplog.text

    def test_timeout_returns_unproven(self, nested):
        result = exact_search(nested, ExactConfig(verbosity=0, timeout=0.0))
        assert not result.proven_optimal
        assert "not proven optimal" in repr(result)
