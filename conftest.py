"""
conftest.py
===========
Session-level pytest configuration for the test suite.

Custom marks
------------
slow
    Applied to tests that run full exact searches or many ratchet iterations
    and take more than a few seconds on a single CPU core.  Deselect with
    ``-m "not slow"``.

    Registration here suppresses PytestUnknownMarkWarning and makes the mark
    visible in ``pytest --markers``.

Warning filters
---------------
NumbaPerformanceWarning messages are filtered out during tests. Warnings
about parallel kernels with few candidates are expected with small test
data and are not informative for correctness testing.
"""

import warnings


def pytest_configure(config):
    """
    Configure pytest before test collection begins.

    This runs very early in the pytest lifecycle, before any test modules
    are imported, which is important for catching warnings from numba
    kernel compilation.
    """
    config.addinivalue_line(
        "markers",
        "slow: exact searches and long ratchet runs (deselect with -m 'not slow')",
    )

    from numba.core.errors import NumbaPerformanceWarning

    warnings.filterwarnings("ignore", category=NumbaPerformanceWarning)


def pytest_unconfigure(config):
    """
    Clean up after all tests complete.

    Restore default warning behavior.
    """
    warnings.resetwarnings()
