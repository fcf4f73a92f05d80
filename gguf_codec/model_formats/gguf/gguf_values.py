# gguf_codec/model_formats/gguf/gguf_values.py
"""
GGUF metadata value model.

A ``MetadataValue`` is a tagged value: a ``GGUFValueType`` tag plus a payload
whose Python kind and range agree with the tag. Arrays are one-dimensional,
homogeneous, and carry their element tag; arrays of arrays are rejected.

Unsigned variants hold the non-negative magnitude of the stored bits, so the
codec never has to reinterpret them; they only differ from their signed
counterparts in the accepted range.
"""

from __future__ import annotations

import struct
from collections import abc
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Iterable, Optional, Tuple

from .gguf_errors import (
    IntegerOverflowError,
    TypeMismatchError,
    UnknownMetadataTypeError,
    UnsupportedNestedArrayError,
)


class GGUFValueType(IntEnum):
    """Metadata value type tags."""

    UINT8 = 0
    INT8 = 1
    UINT16 = 2
    INT16 = 3
    UINT32 = 4
    INT32 = 5
    FLOAT32 = 6
    BOOL = 7
    STRING = 8
    ARRAY = 9
    UINT64 = 10
    INT64 = 11
    FLOAT64 = 12

    @classmethod
    def from_id(cls, type_id: int) -> "GGUFValueType":
        try:
            return cls(type_id)
        except ValueError:
            raise UnknownMetadataTypeError(f"Unknown GGUF value type {type_id}") from None

    @property
    def is_integer(self) -> bool:
        return self in INTEGER_RANGES

    @property
    def is_float(self) -> bool:
        return self in (GGUFValueType.FLOAT32, GGUFValueType.FLOAT64)


# Inclusive value ranges of the integer tags
INTEGER_RANGES: Dict[GGUFValueType, Tuple[int, int]] = {
    GGUFValueType.UINT8: (0, 2**8 - 1),
    GGUFValueType.INT8: (-(2**7), 2**7 - 1),
    GGUFValueType.UINT16: (0, 2**16 - 1),
    GGUFValueType.INT16: (-(2**15), 2**15 - 1),
    GGUFValueType.UINT32: (0, 2**32 - 1),
    GGUFValueType.INT32: (-(2**31), 2**31 - 1),
    GGUFValueType.UINT64: (0, 2**64 - 1),
    GGUFValueType.INT64: (-(2**63), 2**63 - 1),
}

# struct codes of the fixed-width tags
STRUCT_CODES: Dict[GGUFValueType, str] = {
    GGUFValueType.UINT8: "B",
    GGUFValueType.INT8: "b",
    GGUFValueType.UINT16: "H",
    GGUFValueType.INT16: "h",
    GGUFValueType.UINT32: "I",
    GGUFValueType.INT32: "i",
    GGUFValueType.FLOAT32: "f",
    GGUFValueType.UINT64: "Q",
    GGUFValueType.INT64: "q",
    GGUFValueType.FLOAT64: "d",
    GGUFValueType.BOOL: "?",
}

_F32 = struct.Struct("<f")


def _round_f32(v: Any) -> Any:
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        try:
            return _F32.unpack(_F32.pack(v))[0]
        except (OverflowError, struct.error):
            return v  # reported by validate()
    return v


def _check_scalar(vtype: GGUFValueType, v: Any) -> None:
    if vtype in INTEGER_RANGES:
        if not isinstance(v, int) or isinstance(v, bool):
            raise TypeMismatchError(f"{vtype.name} expects int, got {type(v).__name__}")
        lo, hi = INTEGER_RANGES[vtype]
        if not lo <= v <= hi:
            raise IntegerOverflowError(f"{v} out of range for {vtype.name} [{lo}, {hi}]")
    elif vtype.is_float:
        if not isinstance(v, (int, float)) or isinstance(v, bool):
            raise TypeMismatchError(f"{vtype.name} expects float, got {type(v).__name__}")
        if vtype is GGUFValueType.FLOAT32:
            try:
                _F32.pack(v)
            except (OverflowError, struct.error):
                raise IntegerOverflowError(f"{v} does not fit FLOAT32") from None
    elif vtype is GGUFValueType.BOOL:
        if not isinstance(v, bool):
            raise TypeMismatchError(f"BOOL expects bool, got {type(v).__name__}")
    elif vtype is GGUFValueType.STRING:
        if not isinstance(v, str):
            raise TypeMismatchError(f"STRING expects str, got {type(v).__name__}")
    elif vtype is GGUFValueType.ARRAY:
        raise UnsupportedNestedArrayError("Arrays of arrays are not supported")


def _coerce_type(tag: Any) -> GGUFValueType:
    if isinstance(tag, GGUFValueType):
        return tag
    if isinstance(tag, int) and not isinstance(tag, bool):
        return GGUFValueType.from_id(tag)
    raise UnknownMetadataTypeError(f"Invalid GGUF value type {tag!r}")


@dataclass(frozen=True)
class MetadataValue:
    """Tagged metadata value.

    Prefer the named constructors (``MetadataValue.uint32(7)``,
    ``MetadataValue.array(GGUFValueType.STRING, ["a", "b"])``, ...), which
    validate immediately. The plain constructor only normalizes the payload;
    ``validate()`` then checks it.

    Attributes:
        type: Tag of the value.
        value: Payload; a tuple for arrays.
        element_type: Element tag for arrays, ``None`` otherwise.
    """

    type: GGUFValueType
    value: Any
    element_type: Optional[GGUFValueType] = None

    def __post_init__(self) -> None:
        if self.type == GGUFValueType.ARRAY:
            if isinstance(self.value, abc.Iterable) and not isinstance(self.value, (str, tuple)):
                object.__setattr__(self, "value", tuple(self.value))
            if self.element_type == GGUFValueType.FLOAT32 and isinstance(self.value, tuple):
                object.__setattr__(self, "value", tuple(_round_f32(v) for v in self.value))
        elif self.type == GGUFValueType.FLOAT32:
            object.__setattr__(self, "value", _round_f32(self.value))

    def validate(self) -> "MetadataValue":
        vtype = _coerce_type(self.type)
        if vtype is GGUFValueType.ARRAY:
            if self.element_type is None:
                raise UnknownMetadataTypeError("Array value has no element type")
            etype = _coerce_type(self.element_type)
            if etype is GGUFValueType.ARRAY:
                raise UnsupportedNestedArrayError("Arrays of arrays are not supported")
            if not isinstance(self.value, tuple):
                raise TypeMismatchError(f"ARRAY expects a sequence, got {type(self.value).__name__}")
            for i, v in enumerate(self.value):
                try:
                    _check_scalar(etype, v)
                except TypeMismatchError as e:
                    raise TypeMismatchError(f"Array element {i}: {e}") from None
            return self
        if self.element_type is not None:
            raise TypeMismatchError(f"{vtype.name} value cannot carry an element type")
        _check_scalar(vtype, self.value)
        return self

    # Named constructors

    @classmethod
    def of(cls, vtype: GGUFValueType, value: Any) -> "MetadataValue":
        return cls(_coerce_type(vtype), value).validate()

    @classmethod
    def uint8(cls, v: int) -> "MetadataValue":
        return cls.of(GGUFValueType.UINT8, v)

    @classmethod
    def int8(cls, v: int) -> "MetadataValue":
        return cls.of(GGUFValueType.INT8, v)

    @classmethod
    def uint16(cls, v: int) -> "MetadataValue":
        return cls.of(GGUFValueType.UINT16, v)

    @classmethod
    def int16(cls, v: int) -> "MetadataValue":
        return cls.of(GGUFValueType.INT16, v)

    @classmethod
    def uint32(cls, v: int) -> "MetadataValue":
        return cls.of(GGUFValueType.UINT32, v)

    @classmethod
    def int32(cls, v: int) -> "MetadataValue":
        return cls.of(GGUFValueType.INT32, v)

    @classmethod
    def uint64(cls, v: int) -> "MetadataValue":
        return cls.of(GGUFValueType.UINT64, v)

    @classmethod
    def int64(cls, v: int) -> "MetadataValue":
        return cls.of(GGUFValueType.INT64, v)

    @classmethod
    def float32(cls, v: float) -> "MetadataValue":
        return cls.of(GGUFValueType.FLOAT32, v)

    @classmethod
    def float64(cls, v: float) -> "MetadataValue":
        return cls.of(GGUFValueType.FLOAT64, v)

    @classmethod
    def bool(cls, v: bool) -> "MetadataValue":
        return cls.of(GGUFValueType.BOOL, v)

    @classmethod
    def string(cls, v: str) -> "MetadataValue":
        return cls.of(GGUFValueType.STRING, v)

    @classmethod
    def array(cls, element_type: GGUFValueType, values: Iterable[Any]) -> "MetadataValue":
        return cls(GGUFValueType.ARRAY, tuple(values), element_type).validate()

    @classmethod
    def infer(cls, v: Any) -> "MetadataValue":
        """Tag a plain Python value: bool, int, float, str, or a sequence of those."""
        if isinstance(v, MetadataValue):
            return v
        if isinstance(v, (list, tuple)):
            if not v:
                raise UnknownMetadataTypeError("Cannot infer the element type of an empty array")
            if any(isinstance(x, (list, tuple)) for x in v):
                raise UnsupportedNestedArrayError("Arrays of arrays are not supported")
            etype = _infer_scalar_type(v[0])
            ints = [x for x in v if isinstance(x, int) and not isinstance(x, bool)]
            if etype.is_integer and ints:
                lo, hi = min(ints), max(ints)
                if -(2**31) <= lo and hi < 2**31:
                    etype = GGUFValueType.INT32
                elif lo >= 0 and hi >= 2**63:
                    etype = GGUFValueType.UINT64
                else:
                    etype = GGUFValueType.INT64
            return cls.array(etype, v)
        return cls.of(_infer_scalar_type(v), v)

    # Typed access

    def get(self, expected: GGUFValueType) -> Any:
        """Return the payload if the value is tagged ``expected``."""
        if self.type != expected:
            raise TypeMismatchError(
                f"Value is {GGUFValueType(self.type).name}, not {GGUFValueType(expected).name}"
            )
        return self.value

    def as_int(self) -> int:
        if not GGUFValueType(self.type).is_integer:
            raise TypeMismatchError(f"Value is {GGUFValueType(self.type).name}, not an integer")
        return self.value

    def as_float(self) -> float:
        if not GGUFValueType(self.type).is_float:
            raise TypeMismatchError(f"Value is {GGUFValueType(self.type).name}, not a float")
        return float(self.value)

    def as_bool(self) -> bool:
        return self.get(GGUFValueType.BOOL)

    def as_str(self) -> str:
        return self.get(GGUFValueType.STRING)

    def as_array(self, element_type: Optional[GGUFValueType] = None) -> Tuple[Any, ...]:
        values = self.get(GGUFValueType.ARRAY)
        if element_type is not None and self.element_type != element_type:
            raise TypeMismatchError(
                f"Array holds {GGUFValueType(self.element_type).name}, "
                f"not {GGUFValueType(element_type).name}"
            )
        return values

    @property
    def is_array(self) -> bool:
        return self.type == GGUFValueType.ARRAY


def _infer_scalar_type(v: Any) -> GGUFValueType:
    if isinstance(v, bool):
        return GGUFValueType.BOOL
    if isinstance(v, int):
        if -(2**31) <= v < 2**31:
            return GGUFValueType.INT32
        if -(2**63) <= v < 2**63:
            return GGUFValueType.INT64
        return GGUFValueType.UINT64
    if isinstance(v, float):
        return GGUFValueType.FLOAT32
    if isinstance(v, str):
        return GGUFValueType.STRING
    raise TypeMismatchError(f"Cannot store {type(v).__name__} as GGUF metadata")
