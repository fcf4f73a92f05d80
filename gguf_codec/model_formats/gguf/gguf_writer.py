# gguf_codec/model_formats/gguf/gguf_writer.py
"""
GGUF serialization: header, metadata and tensor-info sections plus padding.

The writer is the inverse of ``parse_gguf``. It never emits tensor payload
bytes; after ``write_gguf`` returns, the sink is positioned exactly at the
model's tensor-data offset, where the caller starts writing payloads.
"""

from __future__ import annotations

import io
from typing import Any, Mapping, Sequence

from loguru import logger

from gguf_codec.observability import Timer

from .gguf import GGUF_MAGIC, GGUFModel, GGUFTensorInfo
from .gguf_cursor import CountingSink, WriteCursor, align_up
from .gguf_errors import GGUFLayoutError, TypeMismatchError, UnsupportedNestedArrayError
from .gguf_values import STRUCT_CODES, GGUFValueType, MetadataValue

_SCALAR_WRITERS = {
    GGUFValueType.UINT8: WriteCursor.u8,
    GGUFValueType.INT8: WriteCursor.i8,
    GGUFValueType.UINT16: WriteCursor.u16,
    GGUFValueType.INT16: WriteCursor.i16,
    GGUFValueType.UINT32: WriteCursor.u32,
    GGUFValueType.INT32: WriteCursor.i32,
    GGUFValueType.FLOAT32: WriteCursor.f32,
    GGUFValueType.BOOL: WriteCursor.boolean,
    GGUFValueType.STRING: WriteCursor.string,
    GGUFValueType.UINT64: WriteCursor.u64,
    GGUFValueType.INT64: WriteCursor.i64,
    GGUFValueType.FLOAT64: WriteCursor.f64,
}


def _write_scalar(cur: WriteCursor, vtype: GGUFValueType, v: Any, key: str) -> None:
    if vtype is GGUFValueType.STRING and not isinstance(v, str):
        raise TypeMismatchError(f"Key '{key}': STRING expects str, got {type(v).__name__}")
    _SCALAR_WRITERS[vtype](cur, v)


def _write_value(cur: WriteCursor, key: str, mv: MetadataValue) -> None:
    vtype = GGUFValueType.from_id(mv.type)
    cur.u32(vtype)
    if vtype is not GGUFValueType.ARRAY:
        _write_scalar(cur, vtype, mv.value, key)
        return

    if mv.element_type is None:
        raise TypeMismatchError(f"Key '{key}': array value has no element type")
    etype = GGUFValueType.from_id(mv.element_type)
    if etype is GGUFValueType.ARRAY:
        raise UnsupportedNestedArrayError(f"Key '{key}': arrays of arrays are not supported")
    values = tuple(mv.value)
    cur.u32(etype)
    cur.u64(len(values))
    if etype is GGUFValueType.STRING:
        for s in values:
            _write_scalar(cur, etype, s, key)
    elif etype is GGUFValueType.BOOL:
        cur.write(bytes(1 if b else 0 for b in values))
    else:
        cur.array(STRUCT_CODES[etype], values)


def _write_tensor_info(cur: WriteCursor, ti: GGUFTensorInfo) -> None:
    cur.string(ti.name)
    cur.u32(len(ti.dims))
    for d in ti.dims:
        cur.u64(d)
    cur.u32(ti.ggml_type)
    cur.u64(ti.offset)


def _write_sections(
    cur: WriteCursor,
    version: int,
    kv: Mapping[str, MetadataValue],
    tensors: Sequence[GGUFTensorInfo],
) -> None:
    cur.write(GGUF_MAGIC)
    cur.u32(version)
    cur.u64(len(tensors))
    cur.u64(len(kv))
    for key, mv in kv.items():
        cur.string(key)
        _write_value(cur, key, mv)
    for ti in tensors:
        _write_tensor_info(cur, ti)


def measure_header(
    version: int, kv: Mapping[str, MetadataValue], tensors: Sequence[GGUFTensorInfo]
) -> int:
    """Encoded size of the header, metadata and tensor-info sections, unpadded."""
    sink = CountingSink()
    _write_sections(WriteCursor(sink), version, kv, tensors)
    return sink.nbytes


def data_offset_for(
    version: int,
    kv: Mapping[str, MetadataValue],
    tensors: Sequence[GGUFTensorInfo],
    alignment: int,
) -> int:
    return align_up(measure_header(version, kv, tensors), alignment)


def write_gguf(model: GGUFModel, sink: Any) -> int:
    """Serialize ``model`` into ``sink`` (any object with ``write``).

    Returns:
        Number of bytes written, which equals ``model.data_offset``.

    Raises:
        IntegerOverflowError: A count, length or value does not fit its field.
        UnsupportedNestedArrayError: A metadata value is an array of arrays.
        GGUFLayoutError: The padded header does not end at ``model.data_offset``.
    """
    with Timer("serialize") as t:
        # measured first so a mismatch leaves the sink untouched
        expected = data_offset_for(model.version, model.kv, model.tensors, model.alignment)
        if expected != model.data_offset:
            raise GGUFLayoutError(
                f"Header pads to {expected}, "
                f"but the model's tensor-data offset is {model.data_offset}"
            )
        cur = WriteCursor(sink)
        _write_sections(cur, model.version, model.kv, model.tensors)
        header_end = cur.position
        cur.pad_to(model.alignment)
    logger.debug(
        "Serialized GGUF v{version} header ({n} bytes, {pad} padding) in {ms:.2f}ms",
        version=model.version,
        n=cur.position,
        pad=cur.position - header_end,
        ms=t.duration_ms,
    )
    return cur.position


def serialize_gguf(model: GGUFModel) -> bytes:
    """Serialize ``model`` to bytes ending at its tensor-data offset."""
    buf = io.BytesIO()
    write_gguf(model, buf)
    return buf.getvalue()
