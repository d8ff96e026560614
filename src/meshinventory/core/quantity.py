"""Kubernetes resource quantity parsing.

Both parsers are total: anything that is not a recognized quantity parses to
zero. A missing quantity and an explicit ``"0"`` are therefore the same value
downstream; ``is_valid_quantity`` exists so callers can tell them apart when
they want to warn about it.
"""

import re
from typing import Optional

GIB = 1024 ** 3

_NUMBER = r"(?P<number>[0-9]+(?:\.[0-9]+)?(?:[eE][+-]?[0-9]+)?)"

MEMORY_MULTIPLIERS = {
    "": 1,
    "Ki": 1024,
    "Mi": 1024 ** 2,
    "Gi": 1024 ** 3,
    "Ti": 1024 ** 4,
    "Pi": 1024 ** 5,
    "Ei": 1024 ** 6,
    "k": 1000,
    "M": 1000 ** 2,
    "G": 1000 ** 3,
    "T": 1000 ** 4,
    "P": 1000 ** 5,
    "E": 1000 ** 6,
}

# CPU scale suffixes are divisors so that e.g. 500m is exactly 0.5
CPU_DIVISORS = {
    "": 1,
    "m": 1000,
    "u": 1000 ** 2,
    "n": 1000 ** 3,
}

_MEMORY_RE = re.compile(_NUMBER + r"(?P<suffix>Ki|Mi|Gi|Ti|Pi|Ei|k|M|G|T|P|E)?$")
_CPU_RE = re.compile(_NUMBER + r"(?P<suffix>[mun])?$")


def _split(pattern: re.Pattern, value: Optional[str]):
    if value is None:
        return None
    match = pattern.match(str(value).strip())
    if not match:
        return None
    return float(match.group("number")), match.group("suffix") or ""


def parse_memory(value: Optional[str]) -> float:
    """Parse a memory quantity (``128Mi``, ``1Gi``, ``500M``) to bytes."""
    parts = _split(_MEMORY_RE, value)
    if parts is None:
        return 0
    number, suffix = parts
    return number * MEMORY_MULTIPLIERS[suffix]


def parse_cpu(value: Optional[str]) -> float:
    """Parse a CPU quantity (``500m``, ``2``, ``250000000n``) to cores."""
    parts = _split(_CPU_RE, value)
    if parts is None:
        return 0
    number, suffix = parts
    return number / CPU_DIVISORS[suffix]


def bytes_to_gib(value: float) -> float:
    return value / GIB


def is_valid_quantity(value: Optional[str], kind: str = "memory") -> bool:
    """Check whether a quantity string is recognized by the parser for ``kind``."""
    pattern = _CPU_RE if kind == "cpu" else _MEMORY_RE
    return _split(pattern, value) is not None
