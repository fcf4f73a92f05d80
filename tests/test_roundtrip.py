"""
Property-based round-trip tests: parse(serialize(model)) == model.
"""

from hypothesis import HealthCheck, given, settings, strategies as st

from gguf_codec import (
    ALIGNMENT_KEY,
    GGMLType,
    GGUFBuilder,
    GGUFValueType,
    MetadataValue,
    parse_gguf,
    serialize_gguf,
)
from gguf_codec.model_formats.gguf.gguf_values import INTEGER_RANGES


def scalar_payloads(vtype: GGUFValueType) -> st.SearchStrategy:
    if vtype in INTEGER_RANGES:
        lo, hi = INTEGER_RANGES[vtype]
        return st.integers(min_value=lo, max_value=hi)
    if vtype is GGUFValueType.FLOAT32:
        return st.floats(width=32, allow_nan=False)
    if vtype is GGUFValueType.FLOAT64:
        return st.floats(allow_nan=False)
    if vtype is GGUFValueType.BOOL:
        return st.booleans()
    return st.text(max_size=16)


scalar_types = st.sampled_from([t for t in GGUFValueType if t is not GGUFValueType.ARRAY])


def _tagged(vtype: GGUFValueType) -> st.SearchStrategy:
    payload = scalar_payloads(vtype)
    return st.one_of(
        payload.map(lambda v: MetadataValue.of(vtype, v)),
        st.lists(payload, max_size=6).map(lambda vs: MetadataValue.array(vtype, vs)),
    )


metadata_values = scalar_types.flatmap(_tagged)

metadata = st.dictionaries(
    keys=st.text(max_size=24).filter(lambda k: k != ALIGNMENT_KEY),
    values=metadata_values,
    max_size=8,
)

tensors = st.lists(
    st.tuples(
        st.text(min_size=1, max_size=12),
        st.sampled_from(list(GGMLType)),
        st.integers(min_value=1, max_value=4),
        st.lists(st.integers(min_value=1, max_value=6), max_size=3),
    ),
    unique_by=lambda t: t[0],
    max_size=6,
)


@settings(max_examples=150, suppress_health_check=[HealthCheck.too_slow])
@given(
    version=st.sampled_from([2, 3]),
    alignment=st.one_of(st.none(), st.sampled_from([1, 16, 32, 64, 256])),
    kv=metadata,
    specs=tensors,
)
def test_round_trip(version, alignment, kv, specs):
    b = GGUFBuilder(version=version)
    if alignment is not None:
        b.set_alignment(alignment)
    for key, value in kv.items():
        b.put(key, value)
    for name, ggml_type, n_blocks, rest in specs:
        b.put_tensor(name, [ggml_type.block_size * n_blocks, *rest], ggml_type)
    model = b.build()

    data = serialize_gguf(model)
    parsed = parse_gguf(data)

    assert parsed == model
    assert list(parsed.kv) == list(model.kv)
    assert [t.name for t in parsed.tensors] == [t.name for t in model.tensors]
    assert len(data) == parsed.data_offset
    # serializing the parsed model reproduces the same bytes
    assert serialize_gguf(parsed) == data
