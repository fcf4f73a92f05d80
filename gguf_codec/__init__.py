# gguf_codec/__init__.py
"""
gguf_codec
==========

Pure-Python codec for the GGUF model container: parse headers, metadata and
tensor descriptors, stage edits with a builder, and serialize back with
correct alignment and tensor-data offsets. Tensor payloads are never copied;
callers read and write them at the offsets the codec reports.
"""
from __future__ import annotations

from importlib.metadata import version as _pkg_version

from loguru import logger

from gguf_codec.model_formats.gguf.gguf import (
    ALIGNMENT_KEY,
    GGUF_DEFAULT_ALIGNMENT,
    GGUF_MAGIC,
    MAX_ALIGNMENT,
    GGUF_VERSION,
    SUPPORTED_VERSIONS,
    GGUFModel,
    GGUFTensorInfo,
    MetadataMap,
)
from gguf_codec.model_formats.gguf.gguf_builder import GGUFBuilder
from gguf_codec.model_formats.gguf.gguf_errors import (
    DuplicateKeyError,
    DuplicateTensorNameError,
    GGUFError,
    GGUFIdentityError,
    GGUFLayoutError,
    GGUFParseError,
    GGUFTypeSystemError,
    IntegerOverflowError,
    InvalidAlignmentError,
    InvalidMagicError,
    InvalidStringError,
    InvalidTensorShapeError,
    KeyNotFoundError,
    MisalignedTensorOffsetError,
    OverlappingTensorsError,
    TensorNotFoundError,
    TruncatedInputError,
    TypeMismatchError,
    UnknownMetadataTypeError,
    UnknownTensorTypeError,
    UnsupportedNestedArrayError,
    UnsupportedVersionError,
)
from gguf_codec.model_formats.gguf.gguf_quantization import GGMLType, tensor_nbytes
from gguf_codec.model_formats.gguf.gguf_values import GGUFValueType, MetadataValue
from gguf_codec.model_formats.gguf.gguf_versions import parse_gguf
from gguf_codec.model_formats.gguf.gguf_writer import serialize_gguf, write_gguf

__all__ = [
    "__version__",
    "ALIGNMENT_KEY",
    "GGUF_DEFAULT_ALIGNMENT",
    "GGUF_MAGIC",
    "MAX_ALIGNMENT",
    "GGUF_VERSION",
    "SUPPORTED_VERSIONS",
    "GGMLType",
    "GGUFBuilder",
    "GGUFModel",
    "GGUFTensorInfo",
    "GGUFValueType",
    "MetadataMap",
    "MetadataValue",
    "parse_gguf",
    "serialize_gguf",
    "tensor_nbytes",
    "write_gguf",
    "DuplicateKeyError",
    "DuplicateTensorNameError",
    "GGUFError",
    "GGUFIdentityError",
    "GGUFLayoutError",
    "GGUFParseError",
    "GGUFTypeSystemError",
    "IntegerOverflowError",
    "InvalidAlignmentError",
    "InvalidMagicError",
    "InvalidStringError",
    "InvalidTensorShapeError",
    "KeyNotFoundError",
    "MisalignedTensorOffsetError",
    "OverlappingTensorsError",
    "TensorNotFoundError",
    "TruncatedInputError",
    "TypeMismatchError",
    "UnknownMetadataTypeError",
    "UnknownTensorTypeError",
    "UnsupportedNestedArrayError",
    "UnsupportedVersionError",
]

logger.disable("gguf_codec")

try:
    # Read version dynamically from installed package metadata
    __version__: str = _pkg_version("gguf-codec")
except Exception:  # pragma: no cover - fallback for development environments
    __version__ = "0.0.0-dev"
