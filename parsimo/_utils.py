"""
_utils.py
=========
General-purpose utility functions for parsimo.

These are standalone functions that don't depend on the main classes
and could be useful in multiple contexts.
"""

from typing import Dict, Iterable, Tuple, Union

import numpy as np


# ============================================================================ #
# Nucleotide state encoding
# ============================================================================ #

#: IUPAC nucleotide symbol -> 4-bit state set (A=1, C=2, G=4, T=8).
IUPAC_CODES: Dict[str, int] = {
    "A": 0b0001,
    "C": 0b0010,
    "G": 0b0100,
    "T": 0b1000,
    "U": 0b1000,
    "R": 0b0101,  # A|G
    "Y": 0b1010,  # C|T
    "S": 0b0110,  # C|G
    "W": 0b1001,  # A|T
    "K": 0b1100,  # G|T
    "M": 0b0011,  # A|C
    "B": 0b1110,  # C|G|T
    "D": 0b1101,  # A|G|T
    "H": 0b1011,  # A|C|T
    "V": 0b0111,  # A|C|G
    "N": 0b1111,
    "?": 0b1111,
    "-": 0b1111,
}

#: 4-bit state set -> canonical symbol (gaps decode as 'N').
STATE_SYMBOLS: Dict[int, str] = {
    mask: symbol
    for symbol, mask in IUPAC_CODES.items()
    if symbol not in ("U", "?", "-")
}

NUCLEOTIDES = "ACGT"

# Lookup table: ASCII code -> state mask (0 = not a valid symbol).
_ENCODE_TABLE = np.zeros(256, dtype=np.uint8)
for _symbol, _mask in IUPAC_CODES.items():
    _ENCODE_TABLE[ord(_symbol)] = _mask
    _ENCODE_TABLE[ord(_symbol.lower())] = _mask


def encode_sequence(sequence: str) -> np.ndarray:
    """
    Encode a nucleotide string as an array of 4-bit state sets.

    Parameters
    ----------
    sequence : str
        Nucleotide symbols (IUPAC codes, gaps and '?' allowed, any case).

    Returns
    -------
    np.ndarray
        uint8 array of length ``len(sequence)``.  Invalid symbols (including
        any non-ASCII character) are encoded as 0; callers decide how to
        report them.

    Examples
    --------
    >>> encode_sequence('ACgt-').tolist()
    [1, 2, 4, 8, 15]
    """
    if not sequence.isascii():
        return np.array([_ENCODE_TABLE[ord(c)] if ord(c) < 128 else 0
                         for c in sequence], dtype=np.uint8)
    raw = np.frombuffer(sequence.encode("ascii"), dtype=np.uint8)
    return _ENCODE_TABLE[raw]


def decode_state(mask: int) -> str:
    """Return the IUPAC symbol for a 4-bit state set."""
    return STATE_SYMBOLS[int(mask)]


def bit_count(values: np.ndarray) -> np.ndarray:
    """
    Population count of small unsigned integers (state sets).

    Parameters
    ----------
    values : np.ndarray
        Array of unsigned integers below 256.

    Returns
    -------
    np.ndarray
        int64 array of the same shape with the number of set bits.
    """
    v = np.asarray(values, dtype=np.uint8)
    return np.unpackbits(v[..., np.newaxis], axis=-1).sum(axis=-1).astype(np.int64)


# ============================================================================ #
# Rearrangement operators
# ============================================================================ #

VALID_OPERATORS = ("nni", "spr")


def normalize_operators(operators: Union[str, Iterable[str]]) -> Tuple[str, ...]:
    """
    Normalise an operator specification to a tuple of operator names.

    Parameters
    ----------
    operators : str or iterable of str
        ``'nni'``, ``'spr'``, ``'both'`` or a sequence of operator names.
        Matching is case-insensitive.

    Returns
    -------
    tuple of str
        Operator names in canonical order (NNI before SPR), no duplicates.
        An empty tuple is returned for an empty or unknown specification;
        the caller reports the error.

    Examples
    --------
    >>> normalize_operators('both')
    ('nni', 'spr')
    >>> normalize_operators(['SPR', 'nni', 'spr'])
    ('nni', 'spr')
    >>> normalize_operators('tbr')
    ()
    """
    if isinstance(operators, str):
        names = [operators]
    else:
        names = list(operators)

    requested = set()
    for name in names:
        if not isinstance(name, str):
            return ()
        key = name.strip().lower()
        if key == "both":
            requested.update(VALID_OPERATORS)
        elif key in VALID_OPERATORS:
            requested.add(key)
        else:
            return ()

    return tuple(op for op in VALID_OPERATORS if op in requested)


# ============================================================================ #
# NEWICK helpers
# ============================================================================ #


def format_newick(newick: str) -> str:
    """
    Format a NEWICK string for consistent representation.

    Ensures the NEWICK string:
    - Ends with a semicolon
    - Has no leading/trailing whitespace

    Examples
    --------
    >>> format_newick('((A:1,B:1):1,(C:1,D:1):1)')
    '((A:1,B:1):1,(C:1,D:1):1);'

    >>> format_newick('  ((A:1,B:1):1);  ')
    '((A:1,B:1):1);'
    """
    newick = newick.strip()
    if not newick.endswith(";"):
        newick += ";"
    return newick


def format_length(value: float) -> str:
    """Format a branch length or support value compactly ('0.5', '1', '0.125')."""
    text = f"{float(value):.6g}"
    return text
