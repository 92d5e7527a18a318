"""
_bab.py
=======
Exact maximum-parsimony search by branch and bound.

Public API
----------
  exact_search(matrix, config=None) -> TreeSet
  completion_bounds(matrix) -> np.ndarray

Algorithm
---------
Taxa are inserted in matrix order.  The search starts from the single
three-taxon tree and, depth first, inserts the next taxon on every edge of
the current partial tree.  Every unrooted binary tree on the full taxon set
is produced by exactly one insertion path, so the search space is covered
without duplicates.

A partial tree on the first k taxa is discarded when a lower bound on the
score of all its completions is *strictly greater* than the best complete
score found so far; partial trees that could still tie are kept, so every
co-optimal tree is returned.

The initial upper bound is the score of a hill-climbed caterpillar tree.

Lower bound
-----------
The score of a tree never decreases when a leaf is added (restricting a
tree to a subset of its leaves cannot increase the Fitch length).  In
addition, if taxon j's state set at a pattern is disjoint from the union of
the state sets of all taxa before it, inserting j anywhere costs at least
one more change at that pattern.  With the 'tight' bound the partial score
is therefore increased by::

    sum over j >= k, over patterns p:  weight[p] * [S[j, p] & U[j-1, p] == 0]

where ``U[j-1, p]`` is the union of the state sets of taxa 0 … j-1.  The
'simple' bound uses the partial score alone.

Cancellation
------------
``ExactConfig.timeout`` / ``cancel`` are checked before each expansion.
When the search stops early the best trees found so far are returned in a
``TreeSet`` with ``proven_optimal=False`` and a WARNING is logged.
"""

import logging
from typing import Optional

import numpy as np

from parsimo._config import ExactConfig, StopCheck, TraceEvent
from parsimo._errors import TooManyTaxa
from parsimo._logging import log_exact_incomplete, log_exact_summary
from parsimo._parsimony import _select_backend, score, score_many
from parsimo._search import _climb
from parsimo._tree import Tree
from parsimo._treeset import TreeSet

logger = logging.getLogger(__name__)


def completion_bounds(matrix) -> np.ndarray:
    """
    Lower bound on the extra cost of inserting the remaining taxa.

    Returns
    -------
    np.ndarray
        int64 array of length ``n_taxa + 1``; entry k bounds the cost added
        by inserting taxa k … n-1 into any tree on taxa 0 … k-1.
    """
    patterns = matrix.patterns
    union = np.bitwise_or.accumulate(patterns, axis=0)
    forced = (patterns[1:] & union[:-1]) == 0
    per_taxon = np.zeros(matrix.n_taxa + 1, dtype=np.int64)
    per_taxon[1:-1] = forced.astype(np.int64) @ matrix.weights
    # suffix sums: bounds[k] = sum(per_taxon[k:])
    return np.cumsum(per_taxon[::-1])[::-1].copy()


def exact_search(matrix, config: Optional[ExactConfig] = None) -> TreeSet:
    """
    Find every most parsimonious tree by branch and bound.

    Parameters
    ----------
    matrix : CharacterMatrix
    config : ExactConfig, optional
        ``max_taxa`` ceiling, ``bound`` ('tight' or 'simple'), backend,
        timeout / cancellation and tracing.

    Returns
    -------
    TreeSet
        All topologies with the minimum score, in discovery order.
        ``proven_optimal`` is False if the search was stopped early.

    Raises
    ------
    TooManyTaxa
        If ``matrix.n_taxa > config.max_taxa`` (checked before searching).
    InvalidOperator
        If ``config.operators`` (used for the initial upper bound) is invalid.

    Examples
    --------
    >>> result = exact_search(matrix)
    >>> result.score, len(result), result.proven_optimal
    (3, 1, True)
    """
    config = config if config is not None else ExactConfig()
    n = matrix.n_taxa
    if n > config.max_taxa:
        raise TooManyTaxa(n, config.max_taxa)
    ops = config.operator_tuple()

    stop = StopCheck.from_config(config)
    backend = _select_backend(config.backend)
    taxa = matrix.taxa

    if n <= 3:
        tree = Tree.caterpillar(taxa)
        best = score(tree, matrix, backend=backend)
        if config.verbosity >= 1:
            log_exact_summary(n, best, 1, 1, 0, True, stop.elapsed)
        return TreeSet([tree], best)

    # Upper bound from a local search
    start = _climb(
        Tree.caterpillar(taxa), matrix, ops, config, stop, stage="exact", report=False
    )
    best = start.score
    optimal = []

    if config.bound == "tight":
        bounds = completion_bounds(matrix)
    else:
        bounds = np.zeros(n + 1, dtype=np.int64)

    n_visited = 0
    n_pruned = 0
    n_complete = 0
    proven = True

    stack = [Tree.caterpillar(taxa[:3])]
    while stack:
        if stop.should_stop():
            proven = False
            break

        tree = stack.pop()
        k = tree.n_leaves
        children = [tree.insert_leaf(taxa[k], edge) for edge in tree.edges()]
        scores = score_many(children, matrix, backend=backend, partial=True)
        n_visited += len(children)
        lower = scores + bounds[k + 1]

        if k + 1 == n:
            for child, s in zip(children, scores.tolist()):
                n_complete += 1
                if s > best:
                    n_pruned += 1
                    continue
                accepted = s < best or not optimal
                if s < best:
                    best = s
                    optimal = [child]
                else:
                    optimal.append(child)
                config.emit(TraceEvent("exact", n_complete, s, best, accepted, stop.elapsed))
            continue

        keep = [child for child, lb in zip(children, lower.tolist()) if lb <= best]
        n_pruned += len(children) - len(keep)
        # reversed so that the first edge is expanded first
        stack.extend(reversed(keep))

    if not optimal:
        optimal = [start.tree]

    result = TreeSet(optimal, best, proven_optimal=proven)
    if config.verbosity >= 1:
        log_exact_summary(
            n, best, len(result), n_visited, n_pruned, proven, stop.elapsed
        )
    if not proven:
        log_exact_incomplete(stop.reason, len(result), best)
    return result
