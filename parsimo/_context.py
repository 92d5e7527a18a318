"""
_context.py
===========
Context managers for parsimo.

Provides clean, Pythonic context managers for temporarily changing state:
- Logging control (suppress/change levels)
- Warning control (suppress specific warnings)
- Backend selection (force specific backend)

All context managers properly restore state on exit, even if exceptions occur.
"""

import logging
import warnings
from contextlib import contextmanager
from typing import Optional, Type

# Module-level state for backend override
_backend_override = None

# Parent logger of every parsimo module logger
_PACKAGE_LOGGER = "parsimo"


# ============================================================================ #
# Logging Context Managers
# ============================================================================ #


@contextmanager
def suppress_logger(logger_name: str, level: int = logging.CRITICAL):
    """
    Temporarily change a logger's level.

    Useful for suppressing verbose output from specific modules during
    bulk operations.

    Parameters
    ----------
    logger_name : str
        Name of the logger to suppress (e.g., 'parsimo._matrix')
    level : int, default logging.CRITICAL
        Temporary logging level.

    Examples
    --------
    >>> # Build many replicates without per-matrix statistics
    >>> with suppress_logger('parsimo._matrix'):
    ...     matrices = [CharacterMatrix(s) for s in alignments]

    Notes
    -----
    - Exception-safe: Logger level restored even if exception raised
    - Nesting-safe: Can nest multiple suppress_logger contexts
    """
    logger = logging.getLogger(logger_name)
    original_level = logger.level

    try:
        logger.setLevel(level)
        yield
    finally:
        logger.setLevel(original_level)


@contextmanager
def quiet(level: int = logging.CRITICAL):
    """
    Temporarily suppress all parsimo logging.

    Sets the level of the package logger, which every module logger
    inherits from unless it has its own level.

    Parameters
    ----------
    level : int, default logging.CRITICAL
        Temporary logging level.

    Examples
    --------
    >>> with quiet():
    ...     best = ratchet(tree, matrix)

    >>> # Show only warnings
    >>> with quiet(logging.WARNING):
    ...     result = exact_search(matrix)
    """
    with suppress_logger(_PACKAGE_LOGGER, level):
        yield


# ============================================================================ #
# Warning Context Managers
# ============================================================================ #


@contextmanager
def suppress_warnings(category: Optional[Type[Warning]] = None):
    """
    Temporarily suppress warnings.

    Parameters
    ----------
    category : Type[Warning] or None, default None
        Warning category to suppress. If None, suppresses all warnings.

    Examples
    --------
    >>> from numba.core.errors import NumbaPerformanceWarning
    >>> with suppress_warnings(NumbaPerformanceWarning):
    ...     s = score(tree, matrix)

    Notes
    -----
    - Uses Python's warnings.catch_warnings() internally
    - Fully restores warning state on exit
    """
    with warnings.catch_warnings():
        if category is None:
            warnings.simplefilter("ignore")
        else:
            warnings.filterwarnings("ignore", category=category)
        yield


# ============================================================================ #
# Backend Context Managers
# ============================================================================ #


@contextmanager
def use_backend(backend: str):
    """
    Temporarily force a specific backend for tree scoring.

    Useful for benchmarking, testing, or ensuring consistent behavior
    regardless of available hardware.  The override also applies inside
    searches (``hillclimb``, ``ratchet``, ``exact_search``).

    Parameters
    ----------
    backend : str
        'python', 'cpu-parallel' or 'best'.

    Raises
    ------
    ValueError
        If requested backend is unknown or not available.

    Examples
    --------
    >>> with use_backend('python'):
    ...     # No JIT compilation, easier to debug
    ...     s = score(tree, matrix)

    Notes
    -----
    **Not thread-safe**: uses module-level state.  Pass ``backend=`` to the
    scoring and search functions directly for thread-safe selection.
    """
    global _backend_override

    from parsimo._backend import resolve_backend

    resolve_backend(backend)

    original_override = _backend_override

    try:
        _backend_override = backend
        yield
    finally:
        _backend_override = original_override


def get_backend_override() -> Optional[str]:
    """
    Get the current backend override, if any.

    Returns
    -------
    str or None
        Current backend override, or None if no override active.

    Examples
    --------
    >>> get_backend_override()
    None

    >>> with use_backend('python'):
    ...     print(get_backend_override())
    python
    """
    return _backend_override


# ============================================================================ #
# Combined Context Managers
# ============================================================================ #


@contextmanager
def silent_benchmark(backend: str = "best"):
    """
    Suppress logging and warnings while forcing a specific backend.

    Examples
    --------
    >>> for backend in ['python', 'cpu-parallel']:
    ...     with silent_benchmark(backend):
    ...         start = time.time()
    ...         hillclimb(tree, matrix, operators='spr')
    ...         print(f"{backend}: {time.time() - start:.3f}s")
    """
    with quiet():
        with use_backend(backend):
            with suppress_warnings():
                yield
