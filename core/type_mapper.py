"""
core/type_mapper.py
-------------------
Target (GoogleSQL) type vocabulary and the mapping result type shared by the
per-dialect type tables in :mod:`core.dialects`.

Classifies every source → target pairing as:
    EXACT       – Every source value is representable unchanged
                  (e.g. INT → INT64, DECIMAL(10,2) → NUMERIC).
    LOSSY       – Values convert, but precision, range or semantics change
                  (e.g. DATETIME → TIMESTAMP, ENUM → STRING(MAX)).
    UNSUPPORTED – No equivalent; a documented fallback is used so the
                  pipeline never halts on one column (e.g. GEOMETRY → STRING(MAX)).

Design Decision:
    Pure functions with no side effects make this module trivially testable.
    Each dialect keeps its own table in ``map_type``; this module only holds
    the shared target vocabulary and the DECIMAL rule.
"""
from __future__ import annotations

from dataclasses import dataclass

from models.schema import MappingConfidence, TypeDescriptor

# GoogleSQL sizing limits
MAX_STRING_LENGTH = 2_621_440
MAX_BYTES_LENGTH = 10_485_760
NUMERIC_MAX_SCALE = 9
NUMERIC_MAX_INTEGER_DIGITS = 29


@dataclass(frozen=True)
class TypeMapping:
    """
    Result of looking up one source type.

    Attributes:
        target:     Target type to emit.
        confidence: How faithfully the source type is represented.
        note:       Explanation recorded with any issue.
        known:      False when the source type is not in the dialect's table
                    at all (the mapper reports a ``type-mismatch``).
        ambiguous:  True when the source type was inferred from conflicting
                    samples (the mapper reports an ``ambiguous-mapping``).
    """
    target: TypeDescriptor
    confidence: MappingConfidence
    note: str = ""
    known: bool = True
    ambiguous: bool = False


# ---------------------------------------------------------------------------
# Target type builders (fresh descriptor per call; descriptors are mutable)
# ---------------------------------------------------------------------------

def int64() -> TypeDescriptor:
    return TypeDescriptor("INT64")


def float64() -> TypeDescriptor:
    return TypeDescriptor("FLOAT64")


def numeric() -> TypeDescriptor:
    return TypeDescriptor("NUMERIC")


def bool_() -> TypeDescriptor:
    return TypeDescriptor("BOOL")


def date() -> TypeDescriptor:
    return TypeDescriptor("DATE")


def timestamp() -> TypeDescriptor:
    return TypeDescriptor("TIMESTAMP")


def json_() -> TypeDescriptor:
    return TypeDescriptor("JSON")


def string(length: int | None = None) -> TypeDescriptor:
    """``STRING(n)``, or ``STRING(MAX)`` when *length* is absent or too large."""
    if length is None or length <= 0 or length > MAX_STRING_LENGTH:
        return TypeDescriptor("STRING", is_max=True)
    return TypeDescriptor("STRING", params=[length])


def bytes_(length: int | None = None) -> TypeDescriptor:
    if length is None or length <= 0 or length > MAX_BYTES_LENGTH:
        return TypeDescriptor("BYTES", is_max=True)
    return TypeDescriptor("BYTES", params=[length])


def array_of(element: TypeDescriptor, dims: int = 1) -> TypeDescriptor:
    element.array_dims += dims
    return element


# ---------------------------------------------------------------------------
# Result builders
# ---------------------------------------------------------------------------

def exact(target: TypeDescriptor) -> TypeMapping:
    return TypeMapping(target, MappingConfidence.EXACT)


def lossy(target: TypeDescriptor, note: str) -> TypeMapping:
    return TypeMapping(target, MappingConfidence.LOSSY, note)


def unsupported(note: str, target: TypeDescriptor | None = None) -> TypeMapping:
    return TypeMapping(target or string(), MappingConfidence.UNSUPPORTED, note)


def unknown(source: TypeDescriptor) -> TypeMapping:
    return TypeMapping(
        string(),
        MappingConfidence.UNSUPPORTED,
        f"unknown source type '{source}'; stored as STRING(MAX)",
        known=False,
    )


def fits_numeric(precision: int | None, scale: int | None) -> bool:
    """True when DECIMAL(precision, scale) fits GoogleSQL NUMERIC without loss."""
    if precision is None:
        return False
    scale = scale or 0
    return scale <= NUMERIC_MAX_SCALE and precision - scale <= NUMERIC_MAX_INTEGER_DIGITS


def decimal_mapping(source: TypeDescriptor) -> TypeMapping:
    """Shared DECIMAL / NUMERIC rule for the relational dialects."""
    precision = source.params[0] if source.params else None
    scale = source.params[1] if len(source.params) > 1 else 0
    if precision is None:
        return lossy(numeric(), "unbounded precision is limited to 38 digits with scale 9")
    if fits_numeric(precision, scale):
        return exact(numeric())
    return lossy(string(), f"precision ({precision},{scale}) exceeds NUMERIC; stored as text")


def length_param(source: TypeDescriptor) -> int | None:
    return source.params[0] if source.params and source.params[0] > 0 else None
