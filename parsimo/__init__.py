"""
parsimo
=======

Maximum-parsimony phylogenetic tree search: Fitch scoring of unrooted trees,
NNI / SPR hill-climbing, the parsimony ratchet and exact branch-and-bound
search.

Main Classes
------------
CharacterMatrix : Aligned nucleotide sequences compressed into site patterns
Tree : Unrooted binary tree with NEWICK I/O and rearrangement operators
TreeSet : Immutable set of co-optimal trees returned by exact search

Scoring
-------
score : Weighted Fitch parsimony score of a tree
score_many : Batch scoring (parallel on the 'cpu-parallel' backend)
consistency_index, retention_index : Homoplasy indices

Search
------
hillclimb : Local search to a NNI / SPR optimum
ratchet : Parsimony ratchet (resampling-perturbed restarts)
exact_search : Branch-and-bound search for all optimal trees
stepwise_addition : Random-addition-sequence starting tree

Configuration
-------------
SearchConfig, RatchetConfig, ExactConfig : Explicit search settings
TraceEvent : Progress record delivered to ``trace_sink``

Errors
------
ParsimonyError : Base class (a ``ValueError``)
MalformedAlignment, TopologyMismatch, TooManyTaxa, InvalidOperator

Context Managers
----------------
quiet : Suppress logging during operations
suppress_logger : Suppress specific logger
suppress_warnings : Suppress specific warnings
use_backend : Force specific computational backend
silent_benchmark : Combine quiet + backend selection + warning suppression

Backend Information
-------------------
get_available_backends : Query available computational backends
get_backend_info : Get comprehensive backend status
check_numba_available : Check if numba is available

Examples
--------
Basic usage:

>>> from parsimo import CharacterMatrix, Tree, score, hillclimb
>>> m = CharacterMatrix({'A': 'AAGT', 'B': 'AAGA', 'C': 'GGAT', 'D': 'GGAA'})
>>> score(Tree.from_newick('((A,B),(C,D));'), m)
5
>>> best, s = hillclimb(Tree.from_newick('((A,C),(B,D));'), m)

Ratchet and exact search:

>>> from parsimo import ratchet, exact_search, RatchetConfig
>>> tree = ratchet(None, m, RatchetConfig(max_iterations=50), rng=42)
>>> result = exact_search(m)
>>> result.proven_optimal
True

With context managers:

>>> from parsimo import quiet, use_backend
>>> with quiet():
...     with use_backend('python'):
...         best, s = hillclimb(tree, m, operators='spr')
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Main classes
from ._matrix import CharacterMatrix
from ._tree import Tree, robinson_foulds
from ._treeset import TreeSet

# Scoring
from ._parsimony import (
    score,
    score_many,
    consistency_index,
    retention_index,
)

# Search
from ._search import hillclimb, ratchet, stepwise_addition
from ._bab import exact_search

# Configuration
from ._config import SearchConfig, RatchetConfig, ExactConfig, TraceEvent

# Errors
from ._errors import (
    ParsimonyError,
    MalformedAlignment,
    TopologyMismatch,
    TooManyTaxa,
    InvalidOperator,
)

# Context managers (user-facing utilities)
from ._context import (
    suppress_logger,
    quiet,
    suppress_warnings,
    use_backend,
    silent_benchmark,
)

# Backend information (useful for checking capabilities)
from ._backend import (
    get_available_backends,
    get_backend_info,
    check_numba_available,
)

# Public API
__all__ = [
    # Main classes
    "CharacterMatrix",
    "Tree",
    "TreeSet",
    "robinson_foulds",
    # Scoring
    "score",
    "score_many",
    "consistency_index",
    "retention_index",
    # Search
    "hillclimb",
    "ratchet",
    "exact_search",
    "stepwise_addition",
    # Configuration
    "SearchConfig",
    "RatchetConfig",
    "ExactConfig",
    "TraceEvent",
    # Errors
    "ParsimonyError",
    "MalformedAlignment",
    "TopologyMismatch",
    "TooManyTaxa",
    "InvalidOperator",
    # Context managers
    "suppress_logger",
    "quiet",
    "suppress_warnings",
    "use_backend",
    "silent_benchmark",
    # Backend information
    "get_available_backends",
    "get_backend_info",
    "check_numba_available",
    # Version info
    "__version__",
]
