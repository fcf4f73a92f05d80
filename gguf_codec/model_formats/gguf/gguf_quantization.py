# gguf_codec/model_formats/gguf/gguf_quantization.py
"""
GGUF tensor element types (GGML) and their packing rules.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Sequence

from .gguf_errors import InvalidTensorShapeError, UnknownTensorTypeError


class GGMLType(IntEnum):
    """GGML tensor types, including quantization."""

    F32 = 0
    F16 = 1
    Q4_0 = 2
    Q4_1 = 3
    # Q4_2 = 4 and Q4_3 = 5 were removed from ggml
    Q5_0 = 6
    Q5_1 = 7
    Q8_0 = 8
    Q8_1 = 9
    Q2_K = 10
    Q3_K = 11
    Q4_K = 12
    Q5_K = 13
    Q6_K = 14
    Q8_K = 15
    IQ2_XXS = 16
    IQ2_XS = 17
    IQ3_XXS = 18
    IQ1_S = 19
    IQ4_NL = 20
    IQ3_S = 21
    IQ2_S = 22
    IQ4_XS = 23
    I8 = 24
    I16 = 25
    I32 = 26
    I64 = 27
    F64 = 28
    IQ1_M = 29
    BF16 = 30
    TQ1_0 = 34
    TQ2_0 = 35
    MXFP4 = 39

    @classmethod
    def from_id(cls, type_id: int) -> "GGMLType":
        try:
            return cls(type_id)
        except ValueError:
            raise UnknownTensorTypeError(f"Unknown GGML tensor type {type_id}") from None

    @property
    def info(self) -> "QuantizationInfo":
        return QUANTIZATION_MAP[self]

    @property
    def block_size(self) -> int:
        return self.info.block_size

    @property
    def type_size(self) -> int:
        return self.info.type_size

    def nbytes_for(self, n_elements: int) -> int:
        return self.info.get_expected_size(n_elements)


@dataclass(frozen=True)
class QuantizationInfo:
    """Packing rule of a GGML type.

    Attributes:
        block_size: Number of elements packed into one block.
        type_size: Number of bytes one block occupies.
    """

    block_size: int
    type_size: int

    @property
    def bits_per_weight(self) -> float:
        return self.type_size * 8 / self.block_size

    def get_expected_size(self, n_elements: int) -> int:
        """Byte size of ``n_elements`` elements stored with this packing rule."""
        if n_elements % self.block_size != 0:
            raise InvalidTensorShapeError(
                f"{n_elements} elements is not a multiple of the block size {self.block_size}"
            )
        return n_elements // self.block_size * self.type_size


# (elements per block, bytes per block), matching ggml's type traits
QUANTIZATION_MAP: Dict[GGMLType, QuantizationInfo] = {
    GGMLType.F32: QuantizationInfo(1, 4),
    GGMLType.F16: QuantizationInfo(1, 2),
    GGMLType.Q4_0: QuantizationInfo(32, 18),  # fp16 scale + 32 nibbles
    GGMLType.Q4_1: QuantizationInfo(32, 20),  # fp16 scale + fp16 min + 32 nibbles
    GGMLType.Q5_0: QuantizationInfo(32, 22),
    GGMLType.Q5_1: QuantizationInfo(32, 24),
    GGMLType.Q8_0: QuantizationInfo(32, 34),  # fp16 scale + 32 int8
    GGMLType.Q8_1: QuantizationInfo(32, 40),  # fp32 scale + fp32 sum + 32 int8
    GGMLType.Q2_K: QuantizationInfo(256, 84),
    GGMLType.Q3_K: QuantizationInfo(256, 110),
    GGMLType.Q4_K: QuantizationInfo(256, 144),
    GGMLType.Q5_K: QuantizationInfo(256, 176),
    GGMLType.Q6_K: QuantizationInfo(256, 210),
    GGMLType.Q8_K: QuantizationInfo(256, 292),  # fp32 d + 256 int8 + 16 int16 sums
    GGMLType.IQ2_XXS: QuantizationInfo(256, 66),
    GGMLType.IQ2_XS: QuantizationInfo(256, 74),
    GGMLType.IQ3_XXS: QuantizationInfo(256, 98),
    GGMLType.IQ1_S: QuantizationInfo(256, 50),
    GGMLType.IQ4_NL: QuantizationInfo(32, 18),
    GGMLType.IQ3_S: QuantizationInfo(256, 110),
    GGMLType.IQ2_S: QuantizationInfo(256, 82),
    GGMLType.IQ4_XS: QuantizationInfo(256, 136),
    GGMLType.I8: QuantizationInfo(1, 1),
    GGMLType.I16: QuantizationInfo(1, 2),
    GGMLType.I32: QuantizationInfo(1, 4),
    GGMLType.I64: QuantizationInfo(1, 8),
    GGMLType.F64: QuantizationInfo(1, 8),
    GGMLType.IQ1_M: QuantizationInfo(256, 56),
    GGMLType.BF16: QuantizationInfo(1, 2),
    GGMLType.TQ1_0: QuantizationInfo(256, 54),
    GGMLType.TQ2_0: QuantizationInfo(256, 66),
    GGMLType.MXFP4: QuantizationInfo(32, 17),
}


def tensor_nbytes(ggml_type: GGMLType, dims: Sequence[int]) -> int:
    """Byte size of a tensor of the given type and shape.

    Blocks never straddle rows, so the innermost dimension must be a whole
    number of blocks.
    """
    info = QUANTIZATION_MAP[GGMLType(ggml_type)]
    if not dims:
        raise InvalidTensorShapeError("Tensor must have at least one dimension")
    if dims[0] % info.block_size != 0:
        raise InvalidTensorShapeError(
            f"First dimension {dims[0]} of a {GGMLType(ggml_type).name} tensor "
            f"is not a multiple of its block size {info.block_size}"
        )
    n = 1
    for d in dims:
        n *= d
    return info.get_expected_size(n)
