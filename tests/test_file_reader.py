"""
Tests for the memory-mapped byte channel.
"""

import struct

import pytest

from gguf_codec import GGMLType, GGUFBuilder, TruncatedInputError, parse_gguf, write_gguf
from gguf_codec.io.file_reader import LocalFileSource


def _write_model_file(path):
    model = (
        GGUFBuilder()
        .put_string("general.architecture", "llama")
        .put_tensor("a", (4,), GGMLType.F32)
        .put_tensor("b", (2,), GGMLType.F32)
        .build()
    )
    with open(path, "wb") as f:
        write_gguf(model, f)
        f.write(struct.pack("<4f", 1, 2, 3, 4))
        f.write(bytes(16))  # padding up to b's offset of 32
        f.write(struct.pack("<2f", 5, 6))
    return model


def test_parse_mapped_file_and_slice_payload(tmp_path):
    path = tmp_path / "model.gguf"
    model = _write_model_file(path)

    with LocalFileSource(str(path)).open() as mf:
        parsed = parse_gguf(mf.view)
        start, end = parsed.tensor_data_range("b")
        payload = mf.view[start:end]
        assert struct.unpack("<2f", payload) == (5.0, 6.0)
        payload.release()
        assert mf.size == path.stat().st_size

    assert parsed == model


def test_parse_mapped_file_object(tmp_path):
    path = tmp_path / "model.gguf"
    model = _write_model_file(path)
    with open(path, "rb") as f:
        assert parse_gguf(f) == model


def test_empty_file_is_truncated(tmp_path):
    path = tmp_path / "empty.gguf"
    path.write_bytes(b"")
    with LocalFileSource(str(path)).open() as mf:
        with pytest.raises(TruncatedInputError):
            parse_gguf(mf.view)


def test_view_requires_entering():
    mf = LocalFileSource("unused.gguf").open()
    with pytest.raises(RuntimeError):
        mf.view


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        with LocalFileSource(str(tmp_path / "nope.gguf")).open():
            pass
