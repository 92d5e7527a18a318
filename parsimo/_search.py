"""
_search.py
==========
Heuristic tree search: hill-climbing over rearrangement neighbourhoods and
the parsimony ratchet.

Public API
----------
  hillclimb(tree, matrix, operators=None, config=None) -> (Tree, int)
  ratchet(initial_tree, matrix, config=None, rng=None,
          max_iterations=None, stall_limit=None) -> Tree
  stepwise_addition(matrix, rng=None, backend='best') -> Tree

Hill-climbing
-------------
A local search is a two-state machine::

    searching --(improving neighbour)--> searching
    searching --(no improving neighbour)--> converged

Each *round* builds the full neighbourhood of the current tree (NNI, SPR or
both, duplicates removed, in deterministic order), scores every candidate in
one batch and moves to the lowest-scoring candidate if it is strictly better
than the current tree.  Ties go to the first-enumerated candidate.  There is
no randomness in this step.

Ratchet
-------
Each iteration perturbs the data instead of the tree:

  1. draw a bootstrap replicate of the matrix (``CharacterMatrix.resample``)
  2. hill-climb from the incumbent on the replicate
  3. hill-climb from that result on the original matrix
  4. replace the incumbent only if the new score is strictly lower

The run stops at ``max_iterations`` iterations or after ``stall_limit``
consecutive non-improving iterations, whichever comes first, and returns the
best tree seen.  The incumbent only ever improves, so the result never
scores worse than the starting tree.

Randomness enters only through the ``rng`` argument (a
``numpy.random.Generator`` or a seed), so a run is reproducible.
"""

import enum
import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from parsimo._config import RatchetConfig, SearchConfig, StopCheck, TraceEvent
from parsimo._logging import (
    log_early_stop,
    log_ratchet_iteration,
    log_ratchet_summary,
    log_search_round,
    log_search_start,
    log_search_summary,
)
from parsimo._matrix import as_generator
from parsimo._parsimony import (
    _select_backend,
    best_candidate,
    check_leaf_set,
    score,
    score_many,
)
from parsimo._tree import Tree

logger = logging.getLogger(__name__)


class SearchStatus(enum.Enum):
    SEARCHING = "searching"
    CONVERGED = "converged"


@dataclass
class SearchState:
    """
    Incumbent of one local search.

    Attributes
    ----------
    tree : Tree
        Current tree.
    score : int
        Score of ``tree`` on the matrix being optimised.
    rounds : int
        Neighbourhood evaluations performed.
    status : SearchStatus
    stop_reason : str or None
        Set when the search ended before converging ('timeout',
        'cancelled', 'round limit').
    """

    tree: Tree
    score: int
    rounds: int = 0
    status: SearchStatus = SearchStatus.SEARCHING
    stop_reason: Optional[str] = None

    @property
    def converged(self) -> bool:
        return self.status is SearchStatus.CONVERGED


# ============================================================================ #
# Neighbourhoods
# ============================================================================ #


def neighbourhood(tree: Tree, operators: Tuple[str, ...]) -> List[Tree]:
    """
    All distinct neighbours of *tree* under *operators*, source excluded.

    NNI neighbours come first (in ``Tree.nni_neighbors`` order), followed
    by the SPR neighbours not already listed.
    """
    seen = {tree}
    out = []
    for op in operators:
        candidates = tree.nni_neighbors() if op == "nni" else tree.spr_neighbors()
        for candidate in candidates:
            if candidate not in seen:
                seen.add(candidate)
                out.append(candidate)
    return out


# ============================================================================ #
# Hill-climbing
# ============================================================================ #


def _climb(
    tree: Tree,
    matrix,
    operators: Tuple[str, ...],
    config: SearchConfig,
    stop: StopCheck,
    stage: str = "hillclimb",
    report: bool = True,
) -> SearchState:
    """
    Run one local search and return its final state.

    *report* controls the start / summary / per-round log lines; nested
    searches (inside the ratchet) run with ``report=False``.
    """
    backend = _select_backend(config.backend)
    state = SearchState(tree=tree, score=score(tree, matrix, backend=backend))
    start_score = state.score

    if report and config.verbosity >= 1:
        log_search_start(stage, tree.n_leaves, operators, start_score, backend)

    while state.status is SearchStatus.SEARCHING:
        if config.max_rounds is not None and state.rounds >= config.max_rounds:
            state.stop_reason = "round limit"
            break
        if stop.should_stop():
            state.stop_reason = stop.reason
            break

        candidates = neighbourhood(state.tree, operators)
        state.rounds += 1
        if not candidates:
            state.status = SearchStatus.CONVERGED
            break

        index, best = best_candidate(candidates, matrix, backend=backend)
        accepted = best < state.score
        if accepted:
            state.tree = candidates[index]
            state.score = best
        else:
            state.status = SearchStatus.CONVERGED

        if report:
            config.emit(
                TraceEvent(stage, state.rounds, best, state.score, accepted, stop.elapsed)
            )
            if config.verbosity >= 2:
                log_search_round(stage, state.rounds, len(candidates), best, state.score)

    if report and config.verbosity >= 1:
        if state.stop_reason is not None:
            log_early_stop(stage, state.stop_reason, stop.elapsed)
        log_search_summary(stage, state.rounds, start_score, state.score, stop.elapsed)
    return state


def hillclimb(
    tree: Tree,
    matrix,
    operators=None,
    config: Optional[SearchConfig] = None,
) -> Tuple[Tree, int]:
    """
    Hill-climb from *tree* to a local optimum.

    Parameters
    ----------
    tree : Tree
        Starting topology; its leaves must equal the matrix taxa.
    matrix : CharacterMatrix
    operators : str or sequence of str, optional
        'nni', 'spr', 'both' or a sequence; overrides ``config.operators``.
    config : SearchConfig, optional

    Returns
    -------
    (Tree, int)
        Locally optimal tree and its score.  When the search is cancelled or
        times out, the best tree reached so far.

    Raises
    ------
    InvalidOperator
        Unknown operator specification (checked before anything else).
    TopologyMismatch
        Tree leaves differ from the matrix taxa.

    Examples
    --------
    >>> best, s = hillclimb(Tree.caterpillar(matrix.taxa), matrix, operators='spr')
    """
    config = config if config is not None else SearchConfig()
    ops = config.operator_tuple(operators)
    check_leaf_set(tree, matrix)
    state = _climb(tree, matrix, ops, config, StopCheck.from_config(config))
    return state.tree, state.score


# ============================================================================ #
# Starting trees
# ============================================================================ #


def stepwise_addition(matrix, rng=None, backend: str = "best") -> Tree:
    """
    Build a starting tree by greedy stepwise addition.

    Taxa are added in a random order; each is attached to the edge that
    gives the lowest partial score (first edge wins ties).

    Parameters
    ----------
    matrix : CharacterMatrix
    rng : None, int, or numpy.random.Generator
        Source of the addition order.
    backend : str, default 'best'
    """
    rng = as_generator(rng)
    order = rng.permutation(matrix.n_taxa)
    names = [matrix.taxa[i] for i in order]
    tree = Tree.caterpillar(names[: min(3, len(names))])

    for name in names[3:]:
        candidates = [tree.insert_leaf(name, edge) for edge in tree.edges()]
        scores = score_many(candidates, matrix, backend=backend, partial=True)
        tree = candidates[int(scores.argmin())]
    return tree


# ============================================================================ #
# Ratchet
# ============================================================================ #


def ratchet(
    initial_tree: Optional[Tree],
    matrix,
    config: Optional[RatchetConfig] = None,
    rng=None,
    max_iterations: Optional[int] = None,
    stall_limit: Optional[int] = None,
) -> Tree:
    """
    Parsimony ratchet from *initial_tree*.

    Parameters
    ----------
    initial_tree : Tree or None
        Starting tree.  None builds one with ``stepwise_addition`` using
        *rng*.
    matrix : CharacterMatrix
    config : RatchetConfig, optional
    rng : None, int, or numpy.random.Generator
        Source of replicate matrices (and of the addition order when
        *initial_tree* is None).
    max_iterations, stall_limit : int, optional
        Override the corresponding ``config`` fields.

    Returns
    -------
    Tree
        Best tree seen.  Its score on *matrix* is never higher than that of
        *initial_tree*.

    Raises
    ------
    InvalidOperator, TopologyMismatch
        Raised before the first iteration.
    """
    config = config if config is not None else RatchetConfig()
    overrides = {}
    if max_iterations is not None:
        overrides["max_iterations"] = max_iterations
    if stall_limit is not None:
        overrides["stall_limit"] = stall_limit
    if overrides:
        config = replace(config, **overrides)

    ops = config.operator_tuple()
    rng = as_generator(rng)
    if initial_tree is None:
        initial_tree = stepwise_addition(matrix, rng=rng, backend=config.backend)
    check_leaf_set(initial_tree, matrix)

    stop = StopCheck.from_config(config)
    backend = _select_backend(config.backend)
    best_tree = initial_tree
    best_score = score(initial_tree, matrix, backend=backend)
    start_score = best_score

    if config.verbosity >= 1:
        log_search_start("ratchet", initial_tree.n_leaves, ops, start_score, backend)

    iteration = 0
    stall = 0
    while True:
        if iteration >= config.max_iterations:
            reason = "iteration limit"
            break
        if stall >= config.stall_limit:
            reason = "stall limit"
            break
        if stop.should_stop():
            reason = stop.reason
            if config.verbosity >= 1:
                log_early_stop("ratchet", reason, stop.elapsed)
            break

        iteration += 1
        replicate = matrix.resample(rng)
        perturbed = _climb(
            best_tree, replicate, ops, config, stop, stage="ratchet", report=False
        )
        candidate = _climb(
            perturbed.tree, matrix, ops, config, stop, stage="ratchet", report=False
        )

        accepted = candidate.score < best_score
        if accepted:
            best_tree = candidate.tree
            best_score = candidate.score
            stall = 0
        else:
            stall += 1

        config.emit(
            TraceEvent("ratchet", iteration, candidate.score, best_score, accepted, stop.elapsed)
        )
        if config.verbosity >= 2:
            log_ratchet_iteration(iteration, candidate.score, best_score, accepted, stall)

    if config.verbosity >= 1:
        log_ratchet_summary(iteration, start_score, best_score, reason, stop.elapsed)
    return best_tree
