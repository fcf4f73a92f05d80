# gguf_codec/model_formats/gguf/gguf_builder.py
"""
Mutable staging area that produces validated, immutable ``GGUFModel``s.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence

from loguru import logger

from gguf_codec.observability import Timer

from .gguf import (
    ALIGNMENT_KEY,
    GGUF_DEFAULT_ALIGNMENT,
    GGUF_VERSION,
    SUPPORTED_VERSIONS,
    GGUFModel,
    GGUFTensorInfo,
    MetadataMap,
    alignment_from,
    check_alignment,
    validate_layout,
)
from .gguf_cursor import align_up
from .gguf_errors import (
    DuplicateTensorNameError,
    GGUFError,
    KeyNotFoundError,
    TensorNotFoundError,
    UnsupportedVersionError,
)
from .gguf_quantization import GGMLType
from .gguf_values import GGUFValueType, MetadataValue
from .gguf_writer import data_offset_for


class GGUFBuilder:
    """Stage metadata and tensor descriptors, then ``build()`` a ``GGUFModel``.

    ``put`` on an existing key or tensor name replaces the entry in place and
    keeps its position; ``remove`` deletes it and closes the gap. Staged
    values are only validated by ``build()``, so intermediate states may be
    invalid. The alignment is stored as the ``general.alignment`` key, which
    is what readers take it from.

    Not thread-safe.

    Usage:
        b = GGUFBuilder()
        b.put_string("general.name", "m")
        b.put_tensor("w", (4, 4), GGMLType.F32)
        model = b.build()
    """

    def __init__(self, version: int = GGUF_VERSION):
        self._version = version
        self._kv: Dict[str, MetadataValue] = {}
        self._tensors: Dict[str, GGUFTensorInfo] = {}

    @classmethod
    def from_model(cls, model: GGUFModel) -> "GGUFBuilder":
        """Seed a builder with a copy of every entry of ``model``, in order."""
        b = cls(model.version)
        b._kv = dict(model.kv.items())
        b._tensors = {t.name: t for t in model.tensors}
        return b

    # Header

    @property
    def version(self) -> int:
        return self._version

    def set_version(self, version: int) -> "GGUFBuilder":
        self._version = version
        return self

    @property
    def alignment(self) -> Any:
        mv = self._kv.get(ALIGNMENT_KEY)
        return GGUF_DEFAULT_ALIGNMENT if mv is None else mv.value

    def set_alignment(self, alignment: int) -> "GGUFBuilder":
        check_alignment(alignment)
        return self.put_uint32(ALIGNMENT_KEY, alignment)

    # Metadata

    @property
    def keys(self) -> List[str]:
        return list(self._kv)

    def get(self, key: str) -> MetadataValue:
        try:
            return self._kv[key]
        except KeyError:
            raise KeyNotFoundError(f"Metadata key '{key}' not found") from None

    def put(self, key: str, value: Any) -> "GGUFBuilder":
        """Stage ``value`` under ``key``; plain Python values are tagged by ``MetadataValue.infer``."""
        if not isinstance(value, MetadataValue):
            value = MetadataValue.infer(value)
        self._kv[key] = value
        return self

    def _put_typed(self, key: str, vtype: GGUFValueType, value: Any) -> "GGUFBuilder":
        self._kv[key] = MetadataValue(vtype, value)
        return self

    def put_uint8(self, key: str, value: int) -> "GGUFBuilder":
        return self._put_typed(key, GGUFValueType.UINT8, value)

    def put_int8(self, key: str, value: int) -> "GGUFBuilder":
        return self._put_typed(key, GGUFValueType.INT8, value)

    def put_uint16(self, key: str, value: int) -> "GGUFBuilder":
        return self._put_typed(key, GGUFValueType.UINT16, value)

    def put_int16(self, key: str, value: int) -> "GGUFBuilder":
        return self._put_typed(key, GGUFValueType.INT16, value)

    def put_uint32(self, key: str, value: int) -> "GGUFBuilder":
        return self._put_typed(key, GGUFValueType.UINT32, value)

    def put_int32(self, key: str, value: int) -> "GGUFBuilder":
        return self._put_typed(key, GGUFValueType.INT32, value)

    def put_uint64(self, key: str, value: int) -> "GGUFBuilder":
        return self._put_typed(key, GGUFValueType.UINT64, value)

    def put_int64(self, key: str, value: int) -> "GGUFBuilder":
        return self._put_typed(key, GGUFValueType.INT64, value)

    def put_float32(self, key: str, value: float) -> "GGUFBuilder":
        return self._put_typed(key, GGUFValueType.FLOAT32, value)

    def put_float64(self, key: str, value: float) -> "GGUFBuilder":
        return self._put_typed(key, GGUFValueType.FLOAT64, value)

    def put_bool(self, key: str, value: bool) -> "GGUFBuilder":
        return self._put_typed(key, GGUFValueType.BOOL, value)

    def put_string(self, key: str, value: str) -> "GGUFBuilder":
        return self._put_typed(key, GGUFValueType.STRING, value)

    def put_array(
        self, key: str, element_type: Optional[GGUFValueType], values: Iterable[Any]
    ) -> "GGUFBuilder":
        self._kv[key] = MetadataValue(GGUFValueType.ARRAY, tuple(values), element_type)
        return self

    def remove(self, key: str) -> "GGUFBuilder":
        try:
            del self._kv[key]
        except KeyError:
            raise KeyNotFoundError(f"Metadata key '{key}' not found") from None
        return self

    # Tensors

    @property
    def tensor_names(self) -> List[str]:
        return list(self._tensors)

    def put_tensor(
        self, name: str, dims: Sequence[int], ggml_type: GGMLType, offset: int = 0
    ) -> "GGUFBuilder":
        return self.put_tensor_info(GGUFTensorInfo(name, tuple(dims), ggml_type, offset))

    def put_tensor_info(self, info: GGUFTensorInfo) -> "GGUFBuilder":
        self._tensors[info.name] = info
        return self

    def remove_tensor(self, name: str) -> "GGUFBuilder":
        try:
            del self._tensors[name]
        except KeyError:
            raise TensorNotFoundError(f"Tensor '{name}' not found") from None
        return self

    # Build

    def build(self, recompute_offsets: bool = True) -> GGUFModel:
        """Validate the staged content and freeze it into a ``GGUFModel``.

        Args:
            recompute_offsets: Lay tensors out back to back in their current
                order, each starting at the next alignment boundary. When
                false, staged offsets are kept and only validated.

        Raises:
            UnsupportedVersionError, InvalidAlignmentError,
            UnsupportedNestedArrayError, UnknownMetadataTypeError,
            TypeMismatchError, IntegerOverflowError, InvalidTensorShapeError,
            MisalignedTensorOffsetError, OverlappingTensorsError.
        """
        with Timer("build") as t:
            if self._version not in SUPPORTED_VERSIONS:
                raise UnsupportedVersionError(
                    f"Unsupported GGUF version {self._version}; supported: {SUPPORTED_VERSIONS}"
                )
            for key, value in self._kv.items():
                try:
                    value.validate()
                except GGUFError as e:
                    raise type(e)(f"Key '{key}': {e}") from e
            alignment = alignment_from(self._kv)

            tensors: List[GGUFTensorInfo] = []
            seen = set()
            for ti in self._tensors.values():
                if ti.name in seen:
                    raise DuplicateTensorNameError(f"Duplicate tensor name '{ti.name}'")
                seen.add(ti.name)
                ti.check_shape()
                tensors.append(ti)

            if recompute_offsets:
                running = 0
                for i, ti in enumerate(tensors):
                    offset = align_up(running, alignment)
                    tensors[i] = ti.with_offset(offset)
                    running = offset + ti.nbytes
            validate_layout(tensors, alignment)

            kv = MetadataMap(self._kv.items())
            data_offset = data_offset_for(self._version, kv, tensors, alignment)

        logger.debug(
            "Built GGUF v{version}: {n_kv} KV, {n_tensors} tensors, data offset {off} in {ms:.2f}ms",
            version=self._version,
            n_kv=len(kv),
            n_tensors=len(tensors),
            off=data_offset,
            ms=t.duration_ms,
        )
        return GGUFModel(
            version=self._version,
            alignment=alignment,
            kv=kv,
            tensors=tuple(tensors),
            data_offset=data_offset,
        )
