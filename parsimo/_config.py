"""
_config.py
==========
Explicit configuration for the search functions.

Search behaviour (operators, backend, logging verbosity, tracing, time limits
and cancellation) is passed in as a config object rather than read from
module-level switches.  ``hillclimb`` takes a ``SearchConfig``, ``ratchet``
a ``RatchetConfig`` and ``exact_search`` an ``ExactConfig``; all three are
plain dataclasses and can be shared between calls.

Cancellation is cooperative: ``StopCheck.should_stop()`` is consulted
between rounds / iterations, never in the middle of scoring a tree.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Tuple, Union

from parsimo._backend import check_backend_name
from parsimo._errors import InvalidOperator
from parsimo._utils import normalize_operators

OperatorSpec = Union[str, Sequence[str]]


@dataclass(frozen=True)
class TraceEvent:
    """
    One progress record delivered to ``SearchConfig.trace_sink``.

    Attributes
    ----------
    stage : str
        'hillclimb', 'ratchet' or 'exact'.
    iteration : int
        Round (hill-climb), iteration (ratchet) or number of complete trees
        evaluated (exact).
    score : int
        Score reached in this step (on the matrix the stage optimises).
    best_score : int
        Best score known to the stage so far.
    accepted : bool
        Whether the step changed the incumbent.
    elapsed : float
        Seconds since the stage started.
    """

    stage: str
    iteration: int
    score: int
    best_score: int
    accepted: bool
    elapsed: float


@dataclass
class SearchConfig:
    """
    Configuration shared by all search functions.

    Parameters
    ----------
    operators : str or sequence of str, default 'nni'
        'nni', 'spr', 'both' or a sequence of operator names.
    backend : str, default 'best'
        Scoring backend: 'best', 'python' or 'cpu-parallel'.
    verbosity : int, default 1
        0 = no INFO output, 1 = start and summary lines, 2 = one line per
        round / iteration.
    trace_sink : callable, optional
        Called with a ``TraceEvent`` after every round / iteration.
    timeout : float, optional
        Wall-clock limit in seconds.
    cancel : callable, optional
        Zero-argument callable; returning True stops the search.
    max_rounds : int, optional
        Cap on hill-climbing rounds per local search.
    """

    operators: OperatorSpec = "nni"
    backend: str = "best"
    verbosity: int = 1
    trace_sink: Optional[Callable[[TraceEvent], None]] = None
    timeout: Optional[float] = None
    cancel: Optional[Callable[[], bool]] = None
    max_rounds: Optional[int] = None

    def __post_init__(self):
        check_backend_name(self.backend)
        if self.timeout is not None and self.timeout < 0:
            raise ValueError(f"timeout must be non-negative; got {self.timeout}.")
        if self.max_rounds is not None and self.max_rounds < 1:
            raise ValueError(f"max_rounds must be at least 1; got {self.max_rounds}.")

    def operator_tuple(self, operators: Optional[OperatorSpec] = None) -> Tuple[str, ...]:
        """
        Validated operator names (``operators`` overrides the configured ones).

        Raises
        ------
        InvalidOperator
        """
        spec = self.operators if operators is None else operators
        ops = normalize_operators(spec)
        if not ops:
            raise InvalidOperator(spec)
        return ops

    def emit(self, event: TraceEvent) -> None:
        """Deliver *event* to the trace sink, if any."""
        if self.trace_sink is not None:
            self.trace_sink(event)


@dataclass
class RatchetConfig(SearchConfig):
    """
    Ratchet configuration.

    Parameters
    ----------
    max_iterations : int, default 1000
        Upper bound on ratchet iterations.
    stall_limit : int, default 10
        Stop after this many consecutive iterations without a strict
        improvement.

    Both limits apply independently; the first one reached stops the run.
    ``operators`` defaults to 'spr'.
    """

    operators: OperatorSpec = "spr"
    max_iterations: int = 1000
    stall_limit: int = 10

    def __post_init__(self):
        super().__post_init__()
        if self.max_iterations < 0:
            raise ValueError(
                f"max_iterations must be non-negative; got {self.max_iterations}."
            )
        if self.stall_limit < 1:
            raise ValueError(f"stall_limit must be at least 1; got {self.stall_limit}.")


@dataclass
class ExactConfig(SearchConfig):
    """
    Branch-and-bound configuration.

    Parameters
    ----------
    max_taxa : int, default 12
        Refuse matrices with more taxa (``TooManyTaxa``).
    bound : str, default 'tight'
        'tight': partial score plus a per-pattern count of remaining taxa
        that must add a change.  'simple': partial score only.

    ``operators`` is used for the hill-climb that provides the initial
    upper bound.
    """

    max_taxa: int = 12
    bound: str = "tight"

    def __post_init__(self):
        super().__post_init__()
        if self.bound not in ("tight", "simple"):
            raise ValueError(f"bound must be 'tight' or 'simple'; got {self.bound!r}.")
        if self.max_taxa < 2:
            raise ValueError(f"max_taxa must be at least 2; got {self.max_taxa}.")


@dataclass
class StopCheck:
    """
    Cooperative timeout / cancellation check for one search call.

    Created when a search starts; ``should_stop()`` is polled between
    iterations.  ``reason`` records what triggered the stop.
    """

    timeout: Optional[float] = None
    cancel: Optional[Callable[[], bool]] = None
    started: float = field(default_factory=time.monotonic)
    reason: Optional[str] = None

    @classmethod
    def from_config(cls, config: SearchConfig) -> "StopCheck":
        return cls(timeout=config.timeout, cancel=config.cancel)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started

    def should_stop(self) -> bool:
        if self.reason is not None:
            return True
        if self.cancel is not None and self.cancel():
            self.reason = "cancelled"
        elif self.timeout is not None and self.elapsed >= self.timeout:
            self.reason = "timeout"
        return self.reason is not None
