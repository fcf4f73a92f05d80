# gguf_codec/model_formats/gguf/gguf.py
"""
GGUF shared structures: tensor descriptors and the container model.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Sequence, Tuple

from .gguf_errors import (
    InvalidAlignmentError,
    InvalidTensorShapeError,
    KeyNotFoundError,
    MisalignedTensorOffsetError,
    OverlappingTensorsError,
    TensorNotFoundError,
)
from .gguf_quantization import GGMLType, tensor_nbytes
from .gguf_values import GGUFValueType, MetadataValue

GGUF_MAGIC = b"GGUF"
GGUF_VERSION = 3
SUPPORTED_VERSIONS = (2, 3)
GGUF_DEFAULT_ALIGNMENT = 32
ALIGNMENT_KEY = "general.alignment"
GGML_MAX_DIMS = 4
# general.alignment is read as u32 by ggml
MAX_ALIGNMENT = 1 << 31

_MISSING: Any = object()


def is_power_of_two(n: Any) -> bool:
    return isinstance(n, int) and not isinstance(n, bool) and n >= 1 and (n & (n - 1)) == 0


def check_alignment(alignment: Any) -> int:
    if not is_power_of_two(alignment):
        raise InvalidAlignmentError(f"Alignment must be a power of two >= 1, got {alignment!r}")
    if alignment > MAX_ALIGNMENT:
        raise InvalidAlignmentError(f"Alignment {alignment} exceeds the maximum of {MAX_ALIGNMENT}")
    return alignment


def alignment_from(kv: Mapping[str, MetadataValue]) -> int:
    """Container alignment as declared by the metadata, or the default."""
    mv = kv.get(ALIGNMENT_KEY)
    if mv is None:
        return GGUF_DEFAULT_ALIGNMENT
    if not GGUFValueType(mv.type).is_integer:
        raise InvalidAlignmentError(
            f"'{ALIGNMENT_KEY}' must be an integer, got {GGUFValueType(mv.type).name}"
        )
    return check_alignment(mv.value)


@dataclass(frozen=True)
class GGUFTensorInfo:
    """Where and how one tensor's raw bytes are laid out.

    ``dims`` are stored exactly as they appear in the file (innermost first,
    as ggml orders them). ``offset`` is relative to the tensor-data base.
    """

    name: str
    dims: Tuple[int, ...]
    ggml_type: GGMLType
    offset: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "dims", tuple(self.dims))
        if not isinstance(self.ggml_type, GGMLType):
            object.__setattr__(self, "ggml_type", GGMLType.from_id(self.ggml_type))

    @property
    def n_dims(self) -> int:
        return len(self.dims)

    @property
    def n_elements(self) -> int:
        """Total number of elements in the tensor."""
        p = 1
        for d in self.dims:
            p *= d
        return p

    @property
    def nbytes(self) -> int:
        return tensor_nbytes(self.ggml_type, self.dims)

    def check_shape(self) -> None:
        if not 1 <= len(self.dims) <= GGML_MAX_DIMS:
            raise InvalidTensorShapeError(
                f"Tensor '{self.name}' has {len(self.dims)} dims, expected 1..{GGML_MAX_DIMS}"
            )
        for d in self.dims:
            if not isinstance(d, int) or isinstance(d, bool) or d < 1:
                raise InvalidTensorShapeError(
                    f"Tensor '{self.name}' has invalid dimension {d!r} in {self.dims}"
                )
        # raises for shapes that are not a whole number of blocks
        tensor_nbytes(self.ggml_type, self.dims)

    def with_offset(self, offset: int) -> "GGUFTensorInfo":
        return GGUFTensorInfo(self.name, self.dims, self.ggml_type, offset)


class MetadataMap(Mapping[str, MetadataValue]):
    """Read-only, insertion-ordered mapping of metadata keys to values.

    Unlike ``dict``, equality is order-sensitive: two maps are equal only if
    they hold the same entries in the same order.
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: Iterable[Tuple[str, MetadataValue]] = ()):
        self._entries: Dict[str, MetadataValue] = dict(entries)

    def __getitem__(self, key: str) -> MetadataValue:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping):
            return NotImplemented
        return list(self.items()) == list(other.items())

    def __hash__(self) -> int:
        return hash(tuple(self._entries.items()))

    def __repr__(self) -> str:
        return f"MetadataMap({list(self._entries.items())!r})"


def validate_layout(tensors: Sequence[GGUFTensorInfo], alignment: int) -> None:
    """Check tensor offsets against the container layout rules.

    Offsets must be multiples of ``alignment`` and non-decreasing in declared
    order, and no tensor's byte range may run into the next one.
    """
    prev: Optional[GGUFTensorInfo] = None
    for ti in tensors:
        if ti.offset < 0:
            raise MisalignedTensorOffsetError(f"Tensor '{ti.name}' has negative offset {ti.offset}")
        if ti.offset % alignment != 0:
            raise MisalignedTensorOffsetError(
                f"Tensor '{ti.name}' offset {ti.offset} is not a multiple of {alignment}"
            )
        if prev is not None:
            if ti.offset < prev.offset:
                raise MisalignedTensorOffsetError(
                    f"Tensor '{ti.name}' offset {ti.offset} precedes "
                    f"'{prev.name}' offset {prev.offset}"
                )
            prev_end = prev.offset + prev.nbytes
            if ti.offset < prev_end:
                raise OverlappingTensorsError(
                    f"Tensor '{ti.name}' at {ti.offset} overlaps "
                    f"'{prev.name}' [{prev.offset}, {prev_end})"
                )
        prev = ti


@dataclass(frozen=True)
class GGUFModel:
    """Immutable GGUF container: metadata, tensor descriptors and layout.

    Produced by ``parse_gguf`` or ``GGUFBuilder.build``; safe to share between
    threads.
    """

    version: int
    alignment: int
    kv: MetadataMap
    tensors: Tuple[GGUFTensorInfo, ...]
    data_offset: int  # absolute offset of the tensor-data section
    _index: Dict[str, int] = field(default=None, init=False, repr=False, compare=False)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if not isinstance(self.kv, MetadataMap):
            object.__setattr__(self, "kv", MetadataMap(self.kv.items()))
        object.__setattr__(self, "tensors", tuple(self.tensors))
        object.__setattr__(self, "_index", {t.name: i for i, t in enumerate(self.tensors)})

    @property
    def n_kv(self) -> int:
        return len(self.kv)

    @property
    def n_tensors(self) -> int:
        return len(self.tensors)

    @property
    def tensor_data_offset(self) -> int:
        return self.data_offset

    # Metadata access

    def entry(self, key: str) -> MetadataValue:
        """The tagged value stored under ``key``."""
        try:
            return self.kv[key]
        except KeyError:
            raise KeyNotFoundError(f"Metadata key '{key}' not found") from None

    def get_value(self, key: str, expected_type: Optional[GGUFValueType] = None) -> Any:
        """Payload stored under ``key``, checked against ``expected_type`` if given."""
        mv = self.entry(key)
        if expected_type is None:
            return mv.value
        return mv.get(expected_type)

    def get_value_or_default(
        self, key: str, default: Any, expected_type: Optional[GGUFValueType] = None
    ) -> Any:
        if key not in self.kv:
            return default
        return self.get_value(key, expected_type)

    def get_int(self, key: str, default: Any = _MISSING) -> int:
        if default is not _MISSING and key not in self.kv:
            return default
        return self.entry(key).as_int()

    def get_float(self, key: str, default: Any = _MISSING) -> float:
        if default is not _MISSING and key not in self.kv:
            return default
        return self.entry(key).as_float()

    def get_bool(self, key: str, default: Any = _MISSING) -> bool:
        if default is not _MISSING and key not in self.kv:
            return default
        return self.entry(key).as_bool()

    def get_str(self, key: str, default: Any = _MISSING) -> str:
        if default is not _MISSING and key not in self.kv:
            return default
        return self.entry(key).as_str()

    def get_array(self, key: str, default: Any = _MISSING) -> Tuple[Any, ...]:
        if default is not _MISSING and key not in self.kv:
            return default
        return self.entry(key).as_array()

    # Tensor access

    def tensor(self, name: str) -> GGUFTensorInfo:
        try:
            return self.tensors[self._index[name]]
        except KeyError:
            raise TensorNotFoundError(f"Tensor '{name}' not found") from None

    def tensor_data_range(self, name: str) -> Tuple[int, int]:
        """Absolute ``[start, end)`` byte range of a tensor's payload."""
        ti = self.tensor(name)
        start = self.data_offset + ti.offset
        return start, start + ti.nbytes

    @property
    def tensor_data_nbytes(self) -> int:
        """Size of the tensor-data section, up to the end of the last tensor."""
        if not self.tensors:
            return 0
        return max(t.offset + t.nbytes for t in self.tensors)
