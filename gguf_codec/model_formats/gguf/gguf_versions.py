# gguf_codec/model_formats/gguf/gguf_versions.py
"""
Version-aware GGUF parsing (v2/v3, little-endian).

``parse_gguf`` reads the header, metadata and tensor-info sections from a
byte channel and returns an immutable ``GGUFModel``. Tensor payloads are never
read; the model only records where they start.
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from loguru import logger

from gguf_codec.observability import Timer

from .gguf import (
    GGML_MAX_DIMS,
    GGUF_MAGIC,
    SUPPORTED_VERSIONS,
    GGUFModel,
    GGUFTensorInfo,
    MetadataMap,
    alignment_from,
    validate_layout,
)
from .gguf_cursor import ReadCursor, align_up
from .gguf_errors import (
    DuplicateKeyError,
    DuplicateTensorNameError,
    InvalidMagicError,
    InvalidTensorShapeError,
    UnsupportedNestedArrayError,
    UnsupportedVersionError,
)
from .gguf_quantization import GGMLType
from .gguf_values import STRUCT_CODES, GGUFValueType, MetadataValue

_SCALAR_READERS = {
    GGUFValueType.UINT8: ReadCursor.u8,
    GGUFValueType.INT8: ReadCursor.i8,
    GGUFValueType.UINT16: ReadCursor.u16,
    GGUFValueType.INT16: ReadCursor.i16,
    GGUFValueType.UINT32: ReadCursor.u32,
    GGUFValueType.INT32: ReadCursor.i32,
    GGUFValueType.FLOAT32: ReadCursor.f32,
    GGUFValueType.BOOL: ReadCursor.boolean,
    GGUFValueType.STRING: ReadCursor.string,
    GGUFValueType.UINT64: ReadCursor.u64,
    GGUFValueType.INT64: ReadCursor.i64,
    GGUFValueType.FLOAT64: ReadCursor.f64,
}


def _read_array(cur: ReadCursor, key: str) -> MetadataValue:
    elem_type = GGUFValueType.from_id(cur.u32())
    if elem_type is GGUFValueType.ARRAY:
        raise UnsupportedNestedArrayError(f"Key '{key}': arrays of arrays are not supported")
    count = cur.u64()
    values: Tuple[Any, ...]
    if elem_type is GGUFValueType.STRING:
        values = tuple(cur.string() for _ in range(count))
    elif elem_type is GGUFValueType.BOOL:
        values = tuple(b != 0 for b in cur.raw(count))
    else:
        values = cur.array(STRUCT_CODES[elem_type], count)
    return MetadataValue(GGUFValueType.ARRAY, values, elem_type)


def _parse_kv(cur: ReadCursor) -> Tuple[str, MetadataValue]:
    key = cur.string()
    type_code = GGUFValueType.from_id(cur.u32())
    if type_code is GGUFValueType.ARRAY:
        return key, _read_array(cur, key)
    return key, MetadataValue(type_code, _SCALAR_READERS[type_code](cur))


def _parse_tensor_info(cur: ReadCursor) -> GGUFTensorInfo:
    name = cur.string()
    n_dims = cur.u32()
    if not 1 <= n_dims <= GGML_MAX_DIMS:
        raise InvalidTensorShapeError(
            f"Tensor '{name}' has {n_dims} dims, expected 1..{GGML_MAX_DIMS}"
        )
    dims = tuple(cur.u64() for _ in range(n_dims))
    ggml_type = GGMLType.from_id(cur.u32())
    rel_off = cur.u64()  # offset relative to data section
    ti = GGUFTensorInfo(name=name, dims=dims, ggml_type=ggml_type, offset=rel_off)
    ti.check_shape()
    return ti


def _read_header(cur: ReadCursor) -> int:
    magic = cur.raw(4)
    if magic != GGUF_MAGIC:
        raise InvalidMagicError(f"Invalid magic {magic!r}; not GGUF")
    version = cur.u32()
    if version not in SUPPORTED_VERSIONS:
        swapped = int.from_bytes(version.to_bytes(4, "little"), "big")
        hint = ""
        if swapped in SUPPORTED_VERSIONS:
            hint = " (byte-swapped; big-endian files are not supported)"
        raise UnsupportedVersionError(
            f"Unsupported GGUF version {version}{hint}; supported: {SUPPORTED_VERSIONS}"
        )
    return version


def parse_gguf(source: Any) -> GGUFModel:
    """Parse a GGUF container from ``source``.

    Args:
        source: A bytes-like object (bytes, memoryview, mmap) positioned at
            the start of the file, or a readable binary stream. The caller
            keeps ownership of the channel; it is never closed here.

    Returns:
        The parsed container. Key and tensor order follow the file.

    Raises:
        GGUFError: A subclass naming the first violation found.
    """
    with Timer("parse") as t, ReadCursor.over(source) as cur:
        version = _read_header(cur)
        n_tensors = cur.u64()
        n_kv = cur.u64()
        logger.debug(
            "GGUF v{version}: {n_kv} KV entries, {n_tensors} tensors",
            version=version,
            n_kv=n_kv,
            n_tensors=n_tensors,
        )

        kv: Dict[str, MetadataValue] = {}
        for _ in range(n_kv):
            key, value = _parse_kv(cur)
            if key in kv:
                raise DuplicateKeyError(f"Duplicate metadata key '{key}'")
            kv[key] = value

        alignment = alignment_from(kv)

        tensors: List[GGUFTensorInfo] = []
        names = set()
        for _ in range(n_tensors):
            ti = _parse_tensor_info(cur)
            if ti.name in names:
                raise DuplicateTensorNameError(f"Duplicate tensor name '{ti.name}'")
            names.add(ti.name)
            tensors.append(ti)

        data_offset = align_up(cur.position, alignment)
        validate_layout(tensors, alignment)

    logger.debug(
        "Parsed GGUF header in {ms:.2f}ms (alignment={alignment}, data offset={data_offset})",
        ms=t.duration_ms,
        alignment=alignment,
        data_offset=data_offset,
    )
    return GGUFModel(
        version=version,
        alignment=alignment,
        kv=MetadataMap(kv.items()),
        tensors=tuple(tensors),
        data_offset=data_offset,
    )
