"""
_logging.py
===========
Logging functions for parsimo.

All functions in this module have NO side effects except logging. They take
computed data as parameters and format/emit log messages.

This separation ensures:
- Logging can be easily disabled/mocked in tests
- Computation is separate from presentation
- Clear boundaries between search and reporting
"""

import logging
from typing import List, Optional

logger = logging.getLogger(__name__)


# ============================================================================ #
# System and Backend Logging (called at module import time)
# ============================================================================ #


def log_optimization_status(numba_available: bool) -> None:
    """
    Log system capabilities and optimization library availability at INFO level.

    Called once at module import time. Reports CPU count, memory, numba version,
    LLVM info, and threading configuration.

    Parameters
    ----------
    numba_available : bool
        Whether numba was successfully imported.
    """
    import os
    import platform

    # Basic system info
    cpu_count = os.cpu_count() or 1
    logger.info(
        f"System: {platform.machine()} ({platform.system()}), "
        f"{cpu_count} CPU cores, Python {platform.python_version()}"
    )

    # Memory info (optional psutil)
    try:
        import psutil

        mem = psutil.virtual_memory()
        logger.info(
            f"Memory: {mem.total / (1024**3):.1f} GB total, "
            f"{mem.available / (1024**3):.1f} GB available"
        )
    except ImportError:
        pass  # psutil not required

    if not numba_available:
        logger.info("Numba not importable; tree scoring will use the numpy backend")
        return

    import numba

    logger.info(f"Numba {numba.__version__} loaded successfully")

    # LLVM version from llvmlite (numba's backend)
    try:
        import llvmlite

        logger.info(f"LLVM backend: llvmlite {llvmlite.__version__}")
    except (ImportError, AttributeError):
        pass  # LLVM version unavailable

    # Threading configuration
    try:
        num_threads = numba.get_num_threads()
        logger.info(f"Numba threading: {num_threads} threads active")
    except Exception:
        pass  # Threading info unavailable in some configs


def install_numba_warning_filter(numba_available: bool) -> None:
    """
    Capture NumbaPerformanceWarning and route it through our logger.

    numba issues performance warnings (e.g., "parallel=True but no prange found")
    via Python's warnings module. This filter intercepts them and logs them at
    WARNING level via our logger so they appear in the same stream as other
    parsimo diagnostics.

    Parameters
    ----------
    numba_available : bool
        Whether numba was successfully imported.
    """
    import warnings

    if not numba_available:
        return

    from numba.core.errors import NumbaPerformanceWarning

    original_showwarning = warnings.showwarning

    def custom_showwarning(message, category, filename, lineno, file=None, line=None):
        if issubclass(category, NumbaPerformanceWarning):
            logger.warning(f"Numba performance issue: {message}")
            logger.warning(f"  at {filename}:{lineno}")
            return
        original_showwarning(message, category, filename, lineno, file, line)

    warnings.showwarning = custom_showwarning


def log_backend_availability(backends_available: List[str]) -> None:
    """
    Log which execution backends are available for tree scoring.

    Parameters
    ----------
    backends_available : List[str]
        List of available backends (e.g., ['python', 'cpu-parallel'])
    """
    logger.info(f"Available backends: {', '.join(backends_available)}")

    if "cpu-parallel" in backends_available:
        logger.info(
            "  cpu-parallel: LLVM-compiled Fitch kernels (numba.njit + prange "
            "over candidate trees)"
        )

    if "python" in backends_available:
        logger.info("  python: numpy reference implementation")

    best = backends_available[-1]  # Last in list is most optimized
    logger.info(f"Default backend='best' will use: {best}")


# ============================================================================ #
# Matrix Logging (called during construction)
# ============================================================================ #


def log_matrix_statistics(
    n_taxa: int, n_sites: int, n_patterns: int, n_informative: int
) -> None:
    """
    Log alignment size and compression statistics.

    Parameters
    ----------
    n_taxa : int
        Number of taxa (rows).
    n_sites : int
        Alignment length before compression.
    n_patterns : int
        Number of distinct site patterns.
    n_informative : int
        Number of parsimony-informative patterns.
    """
    logger.info(
        "Character matrix: %d taxa, %d sites compressed to %d patterns (%.1f%%)",
        n_taxa,
        n_sites,
        n_patterns,
        100.0 * n_patterns / n_sites,
    )
    logger.info("  %d parsimony-informative patterns", n_informative)

    if n_informative == 0:
        logger.warning(
            "No parsimony-informative patterns: every tree has the same score. "
            "Searches will stop after the first round."
        )


# ============================================================================ #
# Search Logging (called during searches)
# ============================================================================ #


def log_search_start(
    stage: str, n_taxa: int, operators, start_score: int, backend: str
) -> None:
    """
    Log the start of a local search.

    Parameters
    ----------
    stage : str
        Search stage ('hillclimb', 'ratchet', 'exact').
    n_taxa : int
        Number of leaves.
    operators : tuple[str]
        Rearrangement operators in use.
    start_score : int
        Parsimony score of the starting tree.
    backend : str
        Resolved scoring backend.
    """
    logger.info(
        "%s: %d taxa, operators=%s, backend=%s, start score %d",
        stage,
        n_taxa,
        "+".join(operators),
        backend,
        start_score,
    )


def log_search_round(
    stage: str, round_index: int, n_candidates: int, best_candidate: int, current: int
) -> None:
    """Log one neighbourhood evaluation (verbosity 2)."""
    logger.info(
        "%s round %d: %d candidates, best %d (current %d)",
        stage,
        round_index,
        n_candidates,
        best_candidate,
        current,
    )


def log_search_summary(
    stage: str, n_rounds: int, start_score: int, final_score: int, elapsed: float
) -> None:
    """
    Log the outcome of a local search.

    Parameters
    ----------
    stage : str
        Search stage.
    n_rounds : int
        Number of neighbourhood evaluations performed.
    start_score, final_score : int
        Scores before and after the search.
    elapsed : float
        Wall-clock time in seconds.
    """
    logger.info(
        "%s finished after %d round(s): score %d -> %d (%.2fs)",
        stage,
        n_rounds,
        start_score,
        final_score,
        elapsed,
    )


def log_ratchet_iteration(
    iteration: int, score: int, best_score: int, accepted: bool, stall: int
) -> None:
    """Log one ratchet iteration (verbosity 2)."""
    logger.info(
        "ratchet iteration %d: score %d, best %d, %s (stall %d)",
        iteration,
        score,
        best_score,
        "accepted" if accepted else "rejected",
        stall,
    )


def log_ratchet_summary(
    n_iterations: int, start_score: int, best_score: int, reason: str, elapsed: float
) -> None:
    """
    Log the outcome of a ratchet run.

    Parameters
    ----------
    n_iterations : int
        Iterations completed.
    start_score, best_score : int
        Score of the initial and of the returned tree.
    reason : str
        Why the ratchet stopped ('stall limit', 'iteration limit', ...).
    elapsed : float
        Wall-clock time in seconds.
    """
    logger.info(
        "ratchet stopped (%s) after %d iteration(s): score %d -> %d (%.2fs)",
        reason,
        n_iterations,
        start_score,
        best_score,
        elapsed,
    )


def log_exact_summary(
    n_taxa: int,
    score: int,
    n_trees: int,
    n_visited: int,
    n_pruned: int,
    proven: bool,
    elapsed: float,
) -> None:
    """
    Log the outcome of a branch-and-bound search.

    Parameters
    ----------
    n_taxa : int
        Number of taxa.
    score : int
        Best score found.
    n_trees : int
        Number of co-optimal trees returned.
    n_visited : int
        Partial trees scored.
    n_pruned : int
        Partial trees discarded by the bound.
    proven : bool
        True if the search completed.
    elapsed : float
        Wall-clock time in seconds.
    """
    logger.info(
        "exact search on %d taxa: score %d, %d %s tree(s), "
        "%d partial trees visited, %d pruned (%.2fs)",
        n_taxa,
        score,
        n_trees,
        "optimal" if proven else "best-so-far",
        n_visited,
        n_pruned,
        elapsed,
    )


def log_exact_incomplete(reason: str, n_trees: int, score: int) -> None:
    """WARNING: the exact search stopped early and its result is not proven optimal."""
    logger.warning(
        "Exact search stopped before completion (%s); returning %d tree(s) with "
        "score %d that are the best found so far and NOT proven optimal.",
        reason,
        n_trees,
        score,
    )


def log_early_stop(stage: str, reason: str, elapsed: Optional[float] = None) -> None:
    """Log a cancellation or timeout."""
    if elapsed is None:
        logger.info("%s stopped early: %s", stage, reason)
    else:
        logger.info("%s stopped early: %s (%.2fs)", stage, reason, elapsed)
