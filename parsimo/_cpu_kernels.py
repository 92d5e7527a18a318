"""
_cpu_kernels.py
===============
CPU-accelerated Fitch parsimony kernels using Numba.

This module contains ONLY numba-accelerated code and should not import other
project modules to avoid import-time complications.

Exported Functions
------------------
_fitch_score_nb : njit function
    Fitch score of one tree, given its traversal program.

_fitch_batch_nb : njit function
    Parallel Fitch scores of many candidate trees sharing the same leaves.

Traversal programs
------------------
A program is an int32 array of shape (n_steps, 3); each row is
``(target, source, op)``.  Rows are executed in order on a per-tree state
buffer of shape (n_nodes, n_patterns) whose leaf rows hold the observed
state sets:

  op == 0  (COPY)     states[target] = states[source]
  op == 1  (COMBINE)  states[target] = Fitch(states[target], states[source]),
                      adding weights[k] to the score for every pattern k
                      whose intersection is empty.

Notes
-----
- cache=True persists compiled binary to disk for faster subsequent runs
- The batch kernel parallelises over candidates via prange; each candidate
  owns its state buffer, so no synchronisation is needed
"""

import numpy as np
from numba import njit, prange


# ======================================================================== #
# CPU Kernels                                                               #
# ======================================================================== #


@njit(cache=True)
def _fitch_run_nb(steps, leaf_states, weights, states):
    """
    Execute one traversal program on *states* and return its score.

    Parameters
    ----------
    steps       : int32[:, 3]    Traversal program.
    leaf_states : uint8[:, :]    (n_leaves, n_patterns) observed state sets.
    weights     : int64[:]       (n_patterns,) pattern weights.
    states      : uint8[:, :]    (n_nodes, n_patterns) scratch buffer.

    Returns
    -------
    int64
        Weighted Fitch score.
    """
    n_leaves = leaf_states.shape[0]
    n_patterns = leaf_states.shape[1]

    for i in range(n_leaves):
        for k in range(n_patterns):
            states[i, k] = leaf_states[i, k]

    score = 0
    for j in range(steps.shape[0]):
        t = steps[j, 0]
        s = steps[j, 1]
        if steps[j, 2] == 0:
            for k in range(n_patterns):
                states[t, k] = states[s, k]
        else:
            for k in range(n_patterns):
                a = states[t, k]
                b = states[s, k]
                both = a & b
                if both == 0:
                    states[t, k] = a | b
                    score += weights[k]
                else:
                    states[t, k] = both
    return score


@njit(cache=True)
def _fitch_score_nb(steps, leaf_states, weights, n_nodes):
    """
    Fitch score of a single tree.

    Parameters
    ----------
    steps       : int32[:, 3]   Traversal program.
    leaf_states : uint8[:, :]   (n_leaves, n_patterns).
    weights     : int64[:]      (n_patterns,).
    n_nodes     : int           Rows of the state buffer.

    Returns
    -------
    int64
    """
    states = np.empty((n_nodes, leaf_states.shape[1]), dtype=np.uint8)
    return _fitch_run_nb(steps, leaf_states, weights, states)


@njit(parallel=True, cache=True)
def _fitch_batch_nb(all_steps, leaf_states, weights, n_nodes, scores_out):
    """
    Fitch scores of many candidate trees in parallel.

    Every candidate has the same leaves in the same order (candidates are
    rearrangements of one source tree), so a single ``leaf_states`` array
    serves all of them.

    Parameters
    ----------
    all_steps   : int32[:, :, 3]  (n_candidates, n_steps, 3) programs.
    leaf_states : uint8[:, :]     (n_leaves, n_patterns).
    weights     : int64[:]        (n_patterns,).
    n_nodes     : int             Rows of each state buffer.
    scores_out  : int64[:]        (n_candidates,) output, written in place.
    """
    n_candidates = all_steps.shape[0]
    n_patterns = leaf_states.shape[1]
    for c in prange(n_candidates):
        states = np.empty((n_nodes, n_patterns), dtype=np.uint8)
        scores_out[c] = _fitch_run_nb(all_steps[c], leaf_states, weights, states)
