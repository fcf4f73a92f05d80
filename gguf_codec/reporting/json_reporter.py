# gguf_codec/reporting/json_reporter.py
"""
JSON rendering of a GGUF container, for inspection and diffing.

Metadata is emitted as a list of entries rather than an object so that the
file order survives any JSON tooling.
"""

from __future__ import annotations

import json
from typing import Any, Dict

from gguf_codec.model_formats.gguf.gguf import GGUFModel
from gguf_codec.observability import to_dict


def to_json_dict(model: GGUFModel) -> Dict[str, Any]:
    """Convert a GGUFModel to a JSON-serializable dict."""
    return {
        "version": model.version,
        "alignment": model.alignment,
        "data_offset": model.data_offset,
        "metadata": [{"key": key, **to_dict(mv)} for key, mv in model.kv.items()],
        "tensors": [{**to_dict(ti), "nbytes": ti.nbytes} for ti in model.tensors],
    }


def write_json(model: GGUFModel, path: str) -> None:
    """Write the model description to a file as pretty JSON."""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(to_json_dict(model), f, indent=2)
