"""
Tests for parse_gguf against hand-assembled GGUF files.
"""

import io
import struct

import pytest

from gguf_codec import (
    DuplicateKeyError,
    DuplicateTensorNameError,
    GGMLType,
    GGUFParseError,
    GGUFValueType,
    InvalidAlignmentError,
    InvalidMagicError,
    InvalidStringError,
    InvalidTensorShapeError,
    KeyNotFoundError,
    MetadataValue,
    MisalignedTensorOffsetError,
    OverlappingTensorsError,
    TensorNotFoundError,
    TruncatedInputError,
    TypeMismatchError,
    UnknownMetadataTypeError,
    UnknownTensorTypeError,
    UnsupportedNestedArrayError,
    UnsupportedVersionError,
    parse_gguf,
)

from gguf_bytes import (
    f32_tensor,
    gguf_file,
    header_size,
    pack_array,
    pack_kv,
    pack_string,
    pack_string_array,
    pack_tensor_info,
    string_kv,
    u32_kv,
)


# ============================================================================
# Header
# ============================================================================

def test_empty_file():
    data = gguf_file()
    model = parse_gguf(data)
    assert model.version == 3
    assert model.alignment == 32
    assert model.n_kv == 0
    assert model.n_tensors == 0
    assert model.data_offset == 32  # 24-byte header padded to 32


def test_version_2_is_accepted():
    assert parse_gguf(gguf_file(version=2)).version == 2


def test_invalid_magic():
    with pytest.raises(InvalidMagicError):
        parse_gguf(gguf_file(magic=b"GGML"))


@pytest.mark.parametrize("version", [0, 1, 4])
def test_unsupported_version(version):
    with pytest.raises(UnsupportedVersionError):
        parse_gguf(gguf_file(version=version))


def test_big_endian_version_is_named():
    with pytest.raises(UnsupportedVersionError, match="byte-swapped"):
        parse_gguf(gguf_file(version=0x03000000))


@pytest.mark.parametrize("cut", [0, 3, 7, 15, 23])
def test_truncated_header(cut):
    with pytest.raises(TruncatedInputError):
        parse_gguf(gguf_file()[:cut])


def test_counts_larger_than_content():
    with pytest.raises(TruncatedInputError):
        parse_gguf(gguf_file([u32_kv("a", 1)], n_kv=2))
    with pytest.raises(TruncatedInputError):
        parse_gguf(gguf_file(n_tensors=1))


def test_all_parse_errors_share_a_base():
    with pytest.raises(GGUFParseError):
        parse_gguf(b"")


# ============================================================================
# Metadata
# ============================================================================

def test_every_scalar_type():
    kvs = [
        pack_kv("u8", 0, struct.pack("<B", 200)),
        pack_kv("i8", 1, struct.pack("<b", -100)),
        pack_kv("u16", 2, struct.pack("<H", 60000)),
        pack_kv("i16", 3, struct.pack("<h", -30000)),
        pack_kv("u32", 4, struct.pack("<I", 4000000000)),
        pack_kv("i32", 5, struct.pack("<i", -2000000000)),
        pack_kv("f32", 6, struct.pack("<f", 0.5)),
        pack_kv("bool", 7, b"\x01"),
        pack_kv("str", 8, pack_string("llama")),
        pack_kv("u64", 10, struct.pack("<Q", 2**64 - 1)),
        pack_kv("i64", 11, struct.pack("<q", -(2**63))),
        pack_kv("f64", 12, struct.pack("<d", 0.1)),
    ]
    model = parse_gguf(gguf_file(kvs))
    assert model.kv["u8"] == MetadataValue.uint8(200)
    assert model.kv["i8"] == MetadataValue.int8(-100)
    assert model.kv["u16"] == MetadataValue.uint16(60000)
    assert model.kv["i16"] == MetadataValue.int16(-30000)
    assert model.kv["u32"] == MetadataValue.uint32(4000000000)
    assert model.kv["i32"] == MetadataValue.int32(-2000000000)
    assert model.kv["f32"] == MetadataValue.float32(0.5)
    assert model.kv["bool"] == MetadataValue.bool(True)
    assert model.kv["str"] == MetadataValue.string("llama")
    assert model.kv["u64"] == MetadataValue.uint64(2**64 - 1)
    assert model.kv["i64"] == MetadataValue.int64(-(2**63))
    assert model.kv["f64"] == MetadataValue.float64(0.1)


def test_arrays():
    kvs = [
        pack_kv("tokens", 9, pack_string_array(["<s>", "</s>", ""])),
        pack_kv("scores", 9, pack_array(6, "f", [0.0, -1.5])),
        pack_kv("types", 9, pack_array(5, "i", [1, 2, 3])),
        pack_kv("flags", 9, struct.pack("<IQ", 7, 3) + b"\x01\x00\x02"),
        pack_kv("empty", 9, pack_array(10, "Q", [])),
    ]
    model = parse_gguf(gguf_file(kvs))
    assert model.get_array("tokens") == ("<s>", "</s>", "")
    assert model.entry("tokens").element_type == GGUFValueType.STRING
    assert model.get_array("scores") == (0.0, -1.5)
    assert model.get_array("types") == (1, 2, 3)
    assert model.get_array("flags") == (True, False, True)
    assert model.get_array("empty") == ()
    assert model.entry("empty").element_type == GGUFValueType.UINT64


def test_metadata_order_is_file_order():
    kvs = [u32_kv("k3", 3), u32_kv("k1", 1), u32_kv("k2", 2)]
    model = parse_gguf(gguf_file(kvs))
    assert list(model.kv) == ["k3", "k1", "k2"]


def test_nested_array_is_rejected():
    payload = struct.pack("<IQ", 9, 1) + struct.pack("<IQ", 4, 0)
    with pytest.raises(UnsupportedNestedArrayError):
        parse_gguf(gguf_file([pack_kv("nested", 9, payload)]))


def test_unknown_metadata_type():
    with pytest.raises(UnknownMetadataTypeError):
        parse_gguf(gguf_file([pack_kv("x", 13, b"")]))
    with pytest.raises(UnknownMetadataTypeError):
        parse_gguf(gguf_file([pack_kv("x", 9, struct.pack("<IQ", 42, 0))]))


def test_duplicate_key():
    with pytest.raises(DuplicateKeyError):
        parse_gguf(gguf_file([u32_kv("a", 1), u32_kv("a", 2)]))


def test_invalid_utf8_key():
    bad_key = struct.pack("<Q", 1) + b"\xff"
    with pytest.raises(InvalidStringError):
        parse_gguf(gguf_file([bad_key + struct.pack("<IB", 0, 1)]))


def test_truncated_array():
    payload = struct.pack("<IQ", 5, 10) + struct.pack("<2i", 1, 2)
    with pytest.raises(TruncatedInputError):
        parse_gguf(gguf_file([pack_kv("short", 9, payload)]))


# ============================================================================
# Alignment
# ============================================================================

def test_custom_alignment():
    kvs = [u32_kv("general.alignment", 64)]
    tensors = [f32_tensor("a", (4,), 0), f32_tensor("b", (4,), 64)]
    model = parse_gguf(gguf_file(kvs, tensors))
    assert model.alignment == 64
    assert model.data_offset % 64 == 0
    assert model.data_offset >= header_size(kvs, tensors)


@pytest.mark.parametrize("alignment", [0, 3, 48])
def test_invalid_alignment_value(alignment):
    with pytest.raises(InvalidAlignmentError):
        parse_gguf(gguf_file([u32_kv("general.alignment", alignment)]))


def test_non_integer_alignment():
    with pytest.raises(InvalidAlignmentError):
        parse_gguf(gguf_file([string_kv("general.alignment", "32")]))


def test_alignment_above_u32_range():
    kv = pack_kv("general.alignment", 10, struct.pack("<Q", 2**40))
    with pytest.raises(InvalidAlignmentError):
        parse_gguf(gguf_file([kv]))


def test_largest_alignment_is_accepted():
    model = parse_gguf(gguf_file([u32_kv("general.alignment", 2**31)]))
    assert model.alignment == 2**31
    assert model.data_offset == 2**31


# ============================================================================
# Tensor infos
# ============================================================================

def test_tensor_infos_and_data_offset():
    tensors = [
        pack_tensor_info("token_embd.weight", (64, 10), GGMLType.Q8_0, 0),
        f32_tensor("output_norm.weight", (64,), 704),
    ]
    kvs = [string_kv("general.architecture", "llama")]
    data = gguf_file(kvs, tensors)
    model = parse_gguf(data)

    assert [t.name for t in model.tensors] == ["token_embd.weight", "output_norm.weight"]
    emb = model.tensor("token_embd.weight")
    assert emb.dims == (64, 10)
    assert emb.ggml_type is GGMLType.Q8_0
    assert emb.nbytes == 20 * 34
    assert model.data_offset == header_size(kvs, tensors) + (-header_size(kvs, tensors)) % 32
    assert model.tensor_data_offset == model.data_offset
    assert model.tensor_data_range("output_norm.weight") == (
        model.data_offset + 704,
        model.data_offset + 704 + 256,
    )
    assert model.tensor_data_nbytes == 704 + 256


def test_reading_from_a_stream():
    tensors = [f32_tensor("w", (4, 4), 0)]
    data = gguf_file([u32_kv("a", 1)], tensors)
    assert parse_gguf(io.BytesIO(data)) == parse_gguf(data)


def test_trailing_payload_is_ignored():
    data = gguf_file(tensors=[f32_tensor("w", (4,), 0)])
    assert parse_gguf(data + bytes(1000)) == parse_gguf(data)


@pytest.mark.parametrize("n_dims", [0, 5])
def test_bad_dimension_count(n_dims):
    info = pack_string("t") + struct.pack("<I", n_dims) + bytes(8 * n_dims) + struct.pack("<IQ", 0, 0)
    with pytest.raises(InvalidTensorShapeError):
        parse_gguf(gguf_file(tensors=[info]))


def test_zero_dimension():
    with pytest.raises(InvalidTensorShapeError):
        parse_gguf(gguf_file(tensors=[f32_tensor("t", (4, 0), 0)]))


def test_partial_quantization_block():
    with pytest.raises(InvalidTensorShapeError):
        parse_gguf(gguf_file(tensors=[pack_tensor_info("t", (16,), GGMLType.Q4_0, 0)]))


def test_unknown_tensor_type():
    with pytest.raises(UnknownTensorTypeError):
        parse_gguf(gguf_file(tensors=[pack_tensor_info("t", (4,), 77, 0)]))


def test_duplicate_tensor_name():
    tensors = [f32_tensor("w", (4,), 0), f32_tensor("w", (4,), 32)]
    with pytest.raises(DuplicateTensorNameError):
        parse_gguf(gguf_file(tensors=tensors))


def test_misaligned_offset():
    with pytest.raises(MisalignedTensorOffsetError):
        parse_gguf(gguf_file(tensors=[f32_tensor("w", (4,), 16)]))


def test_decreasing_offsets():
    tensors = [f32_tensor("a", (4,), 64), f32_tensor("b", (4,), 0)]
    with pytest.raises(MisalignedTensorOffsetError):
        parse_gguf(gguf_file(tensors=tensors))


def test_overlapping_tensors():
    tensors = [f32_tensor("a", (16,), 0), f32_tensor("b", (4,), 32)]  # a spans 64 bytes
    with pytest.raises(OverlappingTensorsError):
        parse_gguf(gguf_file(tensors=tensors))


# ============================================================================
# Container lookups
# ============================================================================

def test_lookups():
    kvs = [string_kv("general.name", "m"), pack_kv("n_layers", 5, struct.pack("<i", 32))]
    model = parse_gguf(gguf_file(kvs))

    assert model.get_value("n_layers") == 32
    assert model.get_value("n_layers", GGUFValueType.INT32) == 32
    assert model.get_int("n_layers") == 32
    assert model.get_str("general.name") == "m"
    with pytest.raises(TypeMismatchError):
        model.get_value("n_layers", GGUFValueType.STRING)
    with pytest.raises(KeyNotFoundError):
        model.get_value("missing")
    with pytest.raises(LookupError):
        model.entry("missing")
    assert model.get_value_or_default("missing", 7) == 7
    assert model.get_int("missing", default=None) is None
    with pytest.raises(TensorNotFoundError):
        model.tensor("missing")
