"""
_backend.py
===========
Backend detection and selection for tree scoring.

This module detects available execution backends (numpy reference and
CPU-parallel via numba) and provides functions to query and select the best
backend.

Functions in this module have NO side effects - they only query system state.
Logging is done by the calling code, not here.
"""

from typing import List, Optional, Tuple

VALID_BACKENDS = ("python", "cpu-parallel")


# ============================================================================ #
# Backend Detection (No Side Effects)
# ============================================================================ #


def check_numba_available() -> bool:
    """
    Check if numba is available for CPU parallelization.

    Returns
    -------
    bool
        True if numba can be imported, False otherwise.
    """
    try:
        import numba  # noqa: F401

        return True
    except ImportError:
        return False


def get_available_backends() -> List[str]:
    """
    Get list of available execution backends.

    Returns
    -------
    list[str]
        List of available backends in preference order.
        Always includes 'python'.
        Includes 'cpu-parallel' if numba is available.

    Examples
    --------
    >>> get_available_backends()
    ['python', 'cpu-parallel']
    """
    backends = ["python"]
    if check_numba_available():
        backends.append("cpu-parallel")
    return backends


def get_best_backend() -> str:
    """
    Get the most optimized available backend ('cpu-parallel' > 'python').
    """
    return get_available_backends()[-1]


def check_backend_name(backend: str) -> None:
    """
    Raise ``ValueError`` unless *backend* is 'best' or a known backend name.

    Availability is not checked here; see ``resolve_backend``.
    """
    if backend != "best" and backend not in VALID_BACKENDS:
        raise ValueError(
            f"Unknown backend '{backend}'. "
            f"Valid options: 'best', {', '.join(repr(b) for b in VALID_BACKENDS)}"
        )


def resolve_backend(backend: str) -> str:
    """
    Resolve a backend specification to an actual backend.

    Parameters
    ----------
    backend : str
        Backend specification:
        - 'best': Use the best available backend
        - 'python', 'cpu-parallel': Use specific backend

    Returns
    -------
    str
        Resolved backend name.

    Raises
    ------
    ValueError
        If requested backend is unknown or not available.

    Examples
    --------
    >>> resolve_backend('best')
    'cpu-parallel'

    >>> resolve_backend('python')
    'python'
    """
    check_backend_name(backend)
    if backend == "best":
        return get_best_backend()

    available = get_available_backends()
    if backend not in available:
        raise ValueError(
            f"Backend '{backend}' not available. "
            f"Available backends: {', '.join(available)}"
        )

    return backend


# ============================================================================ #
# Kernel Import Helpers
# ============================================================================ #


def import_cpu_kernels() -> Tuple[bool, Optional[object], Optional[object]]:
    """
    Try to import CPU kernels from _cpu_kernels module.

    Returns
    -------
    tuple
        (success, score_kernel, batch_kernel)
        - success: Whether import succeeded
        - score_kernel: _fitch_score_nb function or None
        - batch_kernel: _fitch_batch_nb function or None
    """
    try:
        from parsimo._cpu_kernels import _fitch_batch_nb, _fitch_score_nb

        return (True, _fitch_score_nb, _fitch_batch_nb)
    except ImportError:
        return (False, None, None)


# ============================================================================ #
# Module-Level State Query (Read-Only)
# ============================================================================ #


def get_backend_info() -> dict:
    """
    Get comprehensive backend information.

    Returns
    -------
    dict
        Dictionary with keys:
        - 'numba_available': bool
        - 'backends': list[str]
        - 'best_backend': str
        - 'cpu_kernels_available': bool

    Examples
    --------
    >>> info = get_backend_info()
    >>> info['backends']
    ['python', 'cpu-parallel']
    """
    cpu_kernels_ok, _, _ = import_cpu_kernels()
    return {
        "numba_available": check_numba_available(),
        "backends": get_available_backends(),
        "best_backend": get_best_backend(),
        "cpu_kernels_available": cpu_kernels_ok,
    }
