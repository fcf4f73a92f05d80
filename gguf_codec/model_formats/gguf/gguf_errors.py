# gguf_codec/model_formats/gguf/gguf_errors.py
"""
GGUF exception taxonomy.

Every failure the codec can report is a distinct subclass of ``GGUFError``,
grouped by category so callers can catch as broadly or narrowly as they need:

- structural (``GGUFParseError``): the byte stream is not a readable GGUF file
- type-system (``GGUFTypeSystemError``): unknown or unsupported type tags
- identity (``GGUFIdentityError``): duplicate or missing keys / tensor names
- layout (``GGUFLayoutError``): alignment, offsets, sizes and field ranges
- access (``TypeMismatchError``): a value was requested as the wrong type
"""

from __future__ import annotations


class GGUFError(Exception):
    """Base class for all GGUF codec errors."""


# Structural


class GGUFParseError(GGUFError):
    """Raised when a GGUF byte stream is malformed."""


class InvalidMagicError(GGUFParseError):
    """The first four bytes are not the GGUF magic."""


class UnsupportedVersionError(GGUFParseError):
    """The container version is outside the supported range."""


class TruncatedInputError(GGUFParseError):
    """Fewer bytes remain than a read requested."""

    def __init__(self, position: int, requested: int, available: int):
        super().__init__(
            f"Read beyond EOF at offset {position}: "
            f"requested {requested} bytes, {available} available"
        )
        self.position = position
        self.requested = requested
        self.available = available


class InvalidStringError(GGUFParseError):
    """A length-prefixed string is not valid UTF-8."""


# Type system


class GGUFTypeSystemError(GGUFError):
    """Raised for unknown or unsupported type tags."""


class UnknownMetadataTypeError(GGUFTypeSystemError):
    pass


class UnknownTensorTypeError(GGUFTypeSystemError):
    pass


class UnsupportedNestedArrayError(GGUFTypeSystemError):
    """Arrays of arrays are not supported by this codec."""


# Identity


class GGUFIdentityError(GGUFError):
    """Raised for duplicate or missing keys and tensor names."""


class DuplicateKeyError(GGUFIdentityError):
    pass


class DuplicateTensorNameError(GGUFIdentityError):
    pass


class KeyNotFoundError(GGUFIdentityError, LookupError):
    pass


class TensorNotFoundError(GGUFIdentityError, LookupError):
    pass


# Layout


class GGUFLayoutError(GGUFError):
    """Raised when alignment, offsets or field ranges are violated."""


class InvalidAlignmentError(GGUFLayoutError):
    pass


class MisalignedTensorOffsetError(GGUFLayoutError):
    pass


class OverlappingTensorsError(GGUFLayoutError):
    pass


class IntegerOverflowError(GGUFLayoutError, OverflowError):
    """A value does not fit the fixed-width field it is stored in."""


class InvalidTensorShapeError(GGUFLayoutError):
    pass


# Access


class TypeMismatchError(GGUFError, TypeError):
    """A metadata value was requested as a type other than its stored tag."""
