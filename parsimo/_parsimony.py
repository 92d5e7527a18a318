"""
_parsimony.py
=============
Fitch parsimony scoring of unrooted trees against a character matrix.

Public API
----------
  score(tree, matrix, anchor=None, backend='best') -> int
  score_many(trees, matrix, backend='best') -> np.ndarray
  best_candidate(trees, matrix, backend='best') -> (index, score)
  check_leaf_set(tree, matrix, partial=False)
  traversal_program(tree, anchor=None) -> np.ndarray
  consistency_index(tree, matrix) / retention_index(tree, matrix)

Algorithm
---------
Fitch's rule applied per site pattern: the state set of an internal node is
the intersection of its children's sets when that is non-empty, otherwise
their union, and each union costs one change (times the pattern weight).
State sets are 4-bit masks, so intersection and union are bitwise AND / OR.

An unrooted tree is scored by choosing any node as the anchor and treating
it as a root.  For a binary unrooted tree the Fitch length does not depend
on the anchor; ``score`` therefore accepts an anchor purely for testing that
property.

Traversal programs
------------------
Trees are compiled into a flat post-order program (see ``_cpu_kernels``) of
exactly 2L - 3 rows, one per edge.  For every internal node the first child
is COPIED into the node's buffer row and each further child is COMBINED; a
leaf anchor COMBINES its own observed states with its single child.  The
fixed length lets candidate programs be stacked into one array and scored in
a single parallel kernel call.

Backends
--------
  'python'        numpy, vectorised over site patterns.
  'cpu-parallel'  numba kernels; batch scoring runs candidates in parallel.
  'best'          the most optimized available backend (the default).

Both backends return identical integers.  A backend forced through
``parsimo.use_backend`` takes precedence over the ``backend`` argument.
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from parsimo._backend import (
    check_backend_name,
    check_numba_available,
    get_available_backends,
    get_best_backend,
    import_cpu_kernels,
    resolve_backend,
)
from parsimo._context import get_backend_override
from parsimo._errors import TopologyMismatch
from parsimo._logging import (
    install_numba_warning_filter,
    log_backend_availability,
    log_optimization_status,
)

logger = logging.getLogger(__name__)

# ── Optional numba acceleration ──────────────────────────────────────────────
_NUMBA_AVAILABLE = check_numba_available()
_cpu_import_ok, _fitch_score_nb, _fitch_batch_nb = import_cpu_kernels()
_BACKENDS_AVAILABLE = get_available_backends()

# Track first calls to kernels for compilation logging
_kernel_first_call = {"cpu-parallel-single": True, "cpu-parallel-batch": True}

# Log system info and backend availability on module import
log_optimization_status(_NUMBA_AVAILABLE)
log_backend_availability(_BACKENDS_AVAILABLE)
install_numba_warning_filter(_NUMBA_AVAILABLE)

OP_COPY = 0
OP_COMBINE = 1


# ============================================================================ #
# Validation and program construction
# ============================================================================ #


def check_leaf_set(tree, matrix, partial: bool = False) -> None:
    """
    Raise ``TopologyMismatch`` unless the tree's leaves equal the matrix taxa.

    With ``partial=True`` the leaves only need to be a subset of the taxa
    (trees under construction during stepwise addition and exact search).
    """
    leaves = tree.leaf_set
    taxa = set(matrix.taxa)
    if partial:
        if not leaves <= taxa:
            raise TopologyMismatch(extra=leaves - taxa)
    elif leaves != taxa:
        raise TopologyMismatch(missing=taxa - leaves, extra=leaves - taxa)


def traversal_program(tree, anchor: Optional[int] = None) -> np.ndarray:
    """
    Compile *tree* into a Fitch traversal program.

    Parameters
    ----------
    tree : Tree
    anchor : int, optional
        Node to treat as the root.  Defaults to the internal node adjacent to
        leaf 0 (or leaf 0 itself for a two-leaf tree).

    Returns
    -------
    np.ndarray
        int32 array of shape (2L - 3, 3); rows are (target, source, op).
    """
    if anchor is None:
        anchor = int(tree.adjacency[0, 0]) if tree.n_leaves > 2 else 0

    n_leaves = tree.n_leaves
    steps = np.empty((tree.n_nodes - 1, 3), dtype=np.int32)
    started = np.zeros(tree.n_nodes, dtype=np.bool_)
    # A leaf anchor already holds its observed states.
    started[:n_leaves] = True

    k = 0
    for node, parent in tree.postorder(anchor):
        if parent < 0:
            break
        steps[k, 0] = parent
        steps[k, 1] = node
        steps[k, 2] = OP_COMBINE if started[parent] else OP_COPY
        started[parent] = True
        k += 1
    return steps


# ============================================================================ #
# Backend selection
# ============================================================================ #


def _select_backend(backend: str) -> str:
    """
    Resolve *backend*, honouring a ``use_backend`` override.

    Unknown names raise ``ValueError``; a known but unavailable backend falls
    back to the best available one with a WARNING.
    """
    backend_override = get_backend_override()
    if backend_override is not None:
        backend = backend_override

    check_backend_name(backend)
    try:
        return resolve_backend(backend)
    except ValueError as e:
        logger.warning(str(e))
        return get_best_backend()


def _log_first_call(kernel_key: str) -> None:
    if _kernel_first_call.get(kernel_key, False):
        logger.info(f"Compiling {kernel_key} kernel (cached for future calls)")
        _kernel_first_call[kernel_key] = False


# ============================================================================ #
# numpy reference implementation
# ============================================================================ #


def _fitch_python(steps, leaf_states, weights, n_nodes) -> int:
    """Execute a traversal program with numpy, vectorised over patterns."""
    states = np.empty((n_nodes, leaf_states.shape[1]), dtype=np.uint8)
    states[: leaf_states.shape[0]] = leaf_states
    total = 0
    for target, source, op in steps:
        if op == OP_COPY:
            states[target] = states[source]
            continue
        a = states[target]
        b = states[source]
        both = a & b
        empty = both == 0
        total += int(weights[empty].sum())
        states[target] = np.where(empty, a | b, both)
    return total


# ============================================================================ #
# Public scoring functions
# ============================================================================ #


def score(
    tree,
    matrix,
    anchor: Optional[int] = None,
    backend: str = "best",
    partial: bool = False,
) -> int:
    """
    Return the weighted Fitch parsimony score of *tree* on *matrix*.

    Parameters
    ----------
    tree : Tree
    matrix : CharacterMatrix
    anchor : int, optional
        Node treated as the root.  Any choice gives the same result.
    backend : str, default 'best'
        'python', 'cpu-parallel' or 'best'.
    partial : bool, default False
        Score a tree over a subset of the taxa (the remaining matrix rows
        are ignored).

    Returns
    -------
    int
        Non-negative score.  Zero when the tree needs no changes (e.g. all
        sequences identical).

    Raises
    ------
    TopologyMismatch
        If the tree's leaf names differ from the matrix taxa.

    Examples
    --------
    >>> m = CharacterMatrix({'A': 'AAG', 'B': 'AAA', 'C': 'GGA', 'D': 'GGG'})
    >>> score(Tree.from_newick('((A,B),(C,D));'), m)
    4
    """
    check_leaf_set(tree, matrix, partial=partial)
    steps = traversal_program(tree, anchor)
    leaf_states = matrix.rows(tree.names)
    resolved = _select_backend(backend)

    if resolved == "cpu-parallel":
        _log_first_call("cpu-parallel-single")
        return int(_fitch_score_nb(steps, leaf_states, matrix.weights, tree.n_nodes))
    return _fitch_python(steps, leaf_states, matrix.weights, tree.n_nodes)


def score_many(
    trees: Sequence, matrix, backend: str = "best", partial: bool = False
) -> np.ndarray:
    """
    Score a batch of trees.

    Trees that share one leaf order (e.g. the rearrangement neighbourhood of
    a single tree) are scored in one parallel kernel call on the
    'cpu-parallel' backend.

    Returns
    -------
    np.ndarray
        int64 array of scores, parallel to *trees*.
    """
    trees = list(trees)
    scores_out = np.zeros(len(trees), dtype=np.int64)
    if not trees:
        return scores_out

    for tree in trees:
        check_leaf_set(tree, matrix, partial=partial)

    resolved = _select_backend(backend)
    names = trees[0].names
    shared_leaves = all(t.names == names for t in trees)

    if resolved == "cpu-parallel" and shared_leaves:
        _log_first_call("cpu-parallel-batch")
        all_steps = np.stack([traversal_program(t) for t in trees])
        _fitch_batch_nb(
            all_steps, matrix.rows(names), matrix.weights, trees[0].n_nodes, scores_out
        )
        return scores_out

    for i, tree in enumerate(trees):
        scores_out[i] = score(tree, matrix, backend=resolved, partial=partial)
    return scores_out


def best_candidate(
    trees: Sequence, matrix, backend: str = "best"
) -> Tuple[int, int]:
    """
    Index and score of the lowest-scoring tree; the first index wins ties.

    Raises
    ------
    ValueError   if *trees* is empty.
    """
    if len(trees) == 0:
        raise ValueError("best_candidate() needs at least one tree.")
    scores = score_many(trees, matrix, backend=backend)
    index = int(np.argmin(scores))
    return index, int(scores[index])


# ============================================================================ #
# Homoplasy indices
# ============================================================================ #


def consistency_index(tree, matrix, backend: str = "best") -> float:
    """
    Ensemble consistency index ``CI = m / s``.

    ``m`` is the matrix's minimum possible score (``minimum_score()``) and
    ``s`` the tree's score.  A tree without homoplasy has CI = 1; a tree
    scoring 0 also returns 1.0.
    """
    s = score(tree, matrix, backend=backend)
    if s == 0:
        return 1.0
    return matrix.minimum_score() / s


def retention_index(tree, matrix, backend: str = "best") -> float:
    """
    Ensemble retention index ``RI = (g - s) / (g - m)``.

    ``g`` is the star-tree score (``maximum_score()``), ``m`` the minimum
    possible score and ``s`` the tree's score.  Returns NaN when the matrix
    has no parsimony-informative patterns (g == m).
    """
    s = score(tree, matrix, backend=backend)
    g = matrix.maximum_score()
    m = matrix.minimum_score()
    if g == m:
        return float("nan")
    return (g - s) / (g - m)
