"""
_errors.py
==========
Exception hierarchy for parsimo.

Every error is a local validation failure detected before a search starts.
All classes derive from ``ValueError`` so callers that already guard input
validation with ``except ValueError`` continue to work.
"""


class ParsimonyError(ValueError):
    """Base class for all parsimo input errors."""


class MalformedAlignment(ParsimonyError):
    """Sequences of unequal length, duplicate taxa, unknown symbols, or an empty alignment."""


class TopologyMismatch(ParsimonyError):
    """The leaf set of a tree does not equal the taxon set of a matrix."""

    def __init__(self, missing=(), extra=()):
        self.missing = tuple(sorted(missing))
        self.extra = tuple(sorted(extra))
        parts = []
        if self.missing:
            parts.append(f"taxa absent from tree: {', '.join(self.missing)}")
        if self.extra:
            parts.append(f"leaves absent from matrix: {', '.join(self.extra)}")
        super().__init__(
            "Tree leaf set does not match matrix taxa (" + "; ".join(parts) + ")"
        )


class TooManyTaxa(ParsimonyError):
    """Exact search refused because the taxon count exceeds the configured ceiling."""

    def __init__(self, n_taxa: int, max_taxa: int):
        self.n_taxa = n_taxa
        self.max_taxa = max_taxa
        super().__init__(
            f"Branch-and-bound search limited to {max_taxa} taxa; "
            f"matrix has {n_taxa}. Use ratchet() for larger data sets."
        )


class InvalidOperator(ParsimonyError):
    """An unsupported rearrangement operator was requested."""

    def __init__(self, operators):
        self.operators = operators
        super().__init__(
            f"Unsupported rearrangement operator specification {operators!r}. "
            "Valid options: 'nni', 'spr', 'both' or a sequence of these."
        )
