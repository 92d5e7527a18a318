"""
_matrix.py
==========
An immutable aligned character matrix with site-pattern compression.

Public API
----------
  CharacterMatrix(sequences)
      Constructor.  Accepts a mapping ``{taxon: sequence}`` or an ordered
      iterable of ``(taxon, sequence)`` pairs of equal length.

  .state(taxon, pattern)            IUPAC symbol of one cell.
  .state_set(taxon, pattern)        Nucleotides allowed by one cell.
  .resample(rng)                    Bootstrap replicate over site patterns.
  .minimum_changes()                Per-pattern lower bound on changes.
  .maximum_changes()                Per-pattern star-tree cost.
  .informative_mask()               Parsimony-informative patterns.

State encoding
--------------
Every cell is stored as a 4-bit state set (A=1, C=2, G=4, T=8).  Ambiguity
codes are unions of these bits and gaps / unknowns are encoded as the full
set (15), i.e. they are treated as missing data.  With this encoding the
Fitch intersection and union rules are plain bitwise AND / OR.

Pattern compression
-------------------
Identical alignment columns are collapsed into one *site pattern* whose
weight is the number of columns it replaces::

    patterns : uint8 [n_taxa, n_patterns]
    weights  : int64 [n_patterns]        weights.sum() == n_sites

Patterns are ordered lexicographically (``np.unique`` order), which makes
the compressed layout independent of column order in the input.

All arrays are marked read-only after construction; a matrix is shared by
every search component without copying.
"""

from collections.abc import Mapping
from typing import Iterable, List, Sequence, Tuple, Union

import numpy as np

from parsimo._errors import MalformedAlignment
from parsimo._logging import log_matrix_statistics
from parsimo._utils import NUCLEOTIDES, bit_count, decode_state, encode_sequence


def as_generator(rng=None) -> np.random.Generator:
    """
    Return a ``numpy.random.Generator`` for *rng*.

    Parameters
    ----------
    rng : None, int, or numpy.random.Generator
        An existing generator is returned unchanged (so state advances are
        visible to the caller); an int seeds a new generator; None draws
        fresh OS entropy.
    """
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


class CharacterMatrix:
    """
    Aligned nucleotide sequences compressed into weighted site patterns.

    Attributes (all read-only after construction)
    ----------------------------------------------
    taxa          : tuple[str]  Taxon names in input order.
    n_taxa        : int
    n_sites       : int         Alignment length before compression.
    n_patterns    : int         Number of distinct columns.
    patterns      : uint8 [n_taxa, n_patterns]   State sets per pattern.
    weights       : int64 [n_patterns]           Column multiplicities.
    site_patterns : int64 [n_sites]              Column -> pattern index.
    is_replicate  : bool        True for matrices produced by ``resample``.
    """

    # ================================================================== #
    # Construction                                                         #
    # ================================================================== #

    def __init__(
        self, sequences: Union[Mapping, Iterable[Tuple[str, str]]]
    ) -> None:
        """
        Validate and encode *sequences*, then compress identical columns.

        Raises
        ------
        MalformedAlignment
            Fewer than two taxa, duplicate or empty taxon names, sequences
            of unequal (or zero) length, or unrecognised symbols.
        """
        if isinstance(sequences, Mapping):
            pairs = list(sequences.items())
        else:
            pairs = [tuple(pair) for pair in sequences]

        if len(pairs) < 2:
            raise MalformedAlignment(
                f"An alignment needs at least two taxa; got {len(pairs)}."
            )

        names: List[str] = []
        seen = set()
        for pair in pairs:
            if len(pair) != 2:
                raise MalformedAlignment(
                    f"Expected (taxon, sequence) pairs; got {pair!r}."
                )
            name = pair[0]
            if not isinstance(name, str) or name == "":
                raise MalformedAlignment(f"Invalid taxon name {name!r}.")
            if name in seen:
                raise MalformedAlignment(f"Duplicate taxon name '{name}'.")
            seen.add(name)
            names.append(name)

        lengths = {len(seq) for _, seq in pairs}
        if len(lengths) > 1:
            detail = ", ".join(f"{name}={len(seq)}" for name, seq in pairs)
            raise MalformedAlignment(
                f"Sequences have unequal lengths ({detail})."
            )
        n_sites = lengths.pop()
        if n_sites == 0:
            raise MalformedAlignment("Sequences are empty.")

        encoded = np.empty((len(pairs), n_sites), dtype=np.uint8)
        for i, (name, seq) in enumerate(pairs):
            row = encode_sequence(str(seq))
            bad = np.flatnonzero(row == 0)
            if bad.size:
                symbols = sorted({str(seq)[k] for k in bad})
                raise MalformedAlignment(
                    f"Taxon '{name}' contains unrecognised symbols "
                    f"{', '.join(repr(s) for s in symbols)} "
                    f"(first at site {int(bad[0]) + 1})."
                )
            encoded[i] = row

        patterns, inverse, counts = np.unique(
            encoded, axis=1, return_inverse=True, return_counts=True
        )

        self._init_arrays(
            tuple(names),
            np.ascontiguousarray(patterns, dtype=np.uint8),
            counts.astype(np.int64),
            np.asarray(inverse, dtype=np.int64).reshape(-1),
            is_replicate=False,
        )

        log_matrix_statistics(
            self.n_taxa,
            self.n_sites,
            self.n_patterns,
            int(np.count_nonzero(self.informative_mask())),
        )

    @classmethod
    def _from_patterns(
        cls,
        taxa: Tuple[str, ...],
        patterns: np.ndarray,
        weights: np.ndarray,
        site_patterns: np.ndarray,
        is_replicate: bool,
    ) -> "CharacterMatrix":
        """
        **Private.**  Build a matrix directly from compressed arrays,
        bypassing validation and logging (used for replicates).
        """
        obj = cls.__new__(cls)
        obj._init_arrays(taxa, patterns, weights, site_patterns, is_replicate)
        return obj

    def _init_arrays(self, taxa, patterns, weights, site_patterns, is_replicate):
        """**Private.**  Attach arrays, freeze them, and derive scalars."""
        patterns.setflags(write=False)
        weights.setflags(write=False)
        site_patterns.setflags(write=False)

        self.taxa: Tuple[str, ...] = taxa
        self.patterns: np.ndarray = patterns
        self.weights: np.ndarray = weights
        self.site_patterns: np.ndarray = site_patterns
        self.is_replicate: bool = is_replicate

        self.n_taxa: int = len(taxa)
        self.n_patterns: int = int(patterns.shape[1])
        self.n_sites: int = int(site_patterns.shape[0])
        self._taxon_index = {name: i for i, name in enumerate(taxa)}

    # ================================================================== #
    # Lookup                                                               #
    # ================================================================== #

    @property
    def total_weight(self) -> int:
        """Sum of pattern weights (equals ``n_sites``, also for replicates)."""
        return int(self.weights.sum())

    def taxon_index(self, taxon) -> int:
        """
        Return the row index of *taxon*.

        Parameters
        ----------
        taxon : int | str   Row index or taxon name.

        Raises
        ------
        KeyError     if a name is not in the matrix.
        IndexError   if an index is out of range.
        """
        if isinstance(taxon, (int, np.integer)):
            idx = int(taxon)
            if not 0 <= idx < self.n_taxa:
                raise IndexError(
                    f"Taxon index {idx} out of range for {self.n_taxa} taxa."
                )
            return idx
        if taxon not in self._taxon_index:
            raise KeyError(f"No taxon named '{taxon}' in matrix.")
        return self._taxon_index[taxon]

    def state(self, taxon, pattern: int) -> str:
        """Return the IUPAC symbol of *taxon* at site pattern *pattern*."""
        return decode_state(self.patterns[self.taxon_index(taxon), pattern])

    def state_set(self, taxon, pattern: int) -> frozenset:
        """Return the set of nucleotides allowed for *taxon* at *pattern*."""
        mask = int(self.patterns[self.taxon_index(taxon), pattern])
        return frozenset(n for bit, n in enumerate(NUCLEOTIDES) if mask >> bit & 1)

    def rows(self, taxa: Sequence[str]) -> np.ndarray:
        """
        Return the pattern rows of *taxa*, in the given order.

        Returns
        -------
        uint8 [len(taxa), n_patterns] contiguous copy.
        """
        index = [self.taxon_index(name) for name in taxa]
        return np.ascontiguousarray(self.patterns[index])

    # ================================================================== #
    # Replicates                                                           #
    # ================================================================== #

    def resample(self, rng=None) -> "CharacterMatrix":
        """
        Draw a bootstrap replicate over site patterns.

        ``total_weight`` columns are drawn with replacement, each pattern
        with probability ``weight / total_weight``; the resulting counts
        become the replicate's weights.  Patterns with a count of zero are
        kept (with weight 0) so pattern indices stay aligned with the
        original matrix.

        Parameters
        ----------
        rng : None, int, or numpy.random.Generator
            Random source.  Pass a ``Generator`` to make a sequence of
            replicates reproducible.

        Returns
        -------
        CharacterMatrix
            New matrix sharing this matrix's (read-only) pattern array.
        """
        rng = as_generator(rng)
        total = self.total_weight
        weights = rng.multinomial(total, self.weights / total).astype(np.int64)
        site_patterns = np.repeat(np.arange(self.n_patterns, dtype=np.int64), weights)
        return CharacterMatrix._from_patterns(
            self.taxa, self.patterns, weights, site_patterns, is_replicate=True
        )

    # ================================================================== #
    # Per-pattern bounds                                                   #
    # ================================================================== #

    def minimum_changes(self) -> np.ndarray:
        """
        Minimum number of changes each pattern needs on *any* tree.

        This is the size of the smallest set of nucleotides that intersects
        every taxon's state set, minus one.  With only four nucleotides the
        15 candidate sets are enumerated exhaustively.

        Returns
        -------
        int64 [n_patterns]
        """
        sizes = bit_count(np.arange(16))
        best = np.full(self.n_patterns, 4, dtype=np.int64)
        for mask in range(1, 16):
            hits = np.all((self.patterns & mask) != 0, axis=0)
            size = sizes[mask]
            best = np.where(hits & (size < best), size, best)
        return best - 1

    def maximum_changes(self) -> np.ndarray:
        """
        Number of changes each pattern needs on the star tree.

        Equals ``n_taxa`` minus the largest number of taxa sharing one
        nucleotide; no binary tree scores worse.

        Returns
        -------
        int64 [n_patterns]
        """
        shared = np.zeros(self.n_patterns, dtype=np.int64)
        for bit in range(4):
            count = np.count_nonzero(self.patterns & (1 << bit), axis=0)
            shared = np.maximum(shared, count)
        return self.n_taxa - shared

    def informative_mask(self) -> np.ndarray:
        """
        Boolean mask of parsimony-informative patterns.

        A pattern is informative when its score differs between trees,
        i.e. when its star-tree cost exceeds its lower bound.
        """
        return self.maximum_changes() > self.minimum_changes()

    def minimum_score(self) -> int:
        """Weighted lower bound on the parsimony score of any tree."""
        return int(self.weights @ self.minimum_changes())

    def maximum_score(self) -> int:
        """Weighted parsimony score of the star tree."""
        return int(self.weights @ self.maximum_changes())

    # ================================================================== #
    # Dunder                                                               #
    # ================================================================== #

    def __len__(self) -> int:
        return self.n_taxa

    def __repr__(self) -> str:
        kind = "replicate " if self.is_replicate else ""
        return (
            f"<CharacterMatrix {kind}{self.n_taxa} taxa x {self.n_sites} sites "
            f"({self.n_patterns} patterns)>"
        )
