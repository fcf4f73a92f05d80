# gguf_codec/reporting/console.py
"""
Console rendering of a parsed or built GGUF container.

Metadata and tensors are listed in container order, which is file order for
parsed models.
"""
from __future__ import annotations

from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from gguf_codec.model_formats.gguf.gguf import GGUFModel
from gguf_codec.model_formats.gguf.gguf_values import GGUFValueType, MetadataValue

console = Console()

MAX_VALUE_WIDTH = 70


def format_value(mv: MetadataValue) -> str:
    """Short human-readable rendering of a metadata value."""
    if mv.is_array:
        count = len(mv.value)
        preview = f"[{', '.join(map(str, mv.value[:3]))}{', ...' if count > 3 else ''}]"
        value_str = f"Count={count}, Preview={preview}"
    elif mv.type == GGUFValueType.FLOAT32 or mv.type == GGUFValueType.FLOAT64:
        value_str = f"{mv.value:.6g}"
    else:
        value_str = str(mv.value)

    # Truncate long strings to keep the table clean
    if len(value_str) > MAX_VALUE_WIDTH:
        value_str = value_str[: MAX_VALUE_WIDTH - 3] + "..."
    return value_str


def format_type(mv: MetadataValue) -> str:
    if mv.is_array:
        return f"ARRAY[{GGUFValueType(mv.element_type).name}]"
    return GGUFValueType(mv.type).name


def render_summary(model: GGUFModel, out: Console) -> None:
    """Render a high-level summary table."""
    t = Table(title="GGUF Summary", box=box.SIMPLE_HEAVY)
    t.add_column("Field", style="bold")
    t.add_column("Value")
    t.add_row("Version", f"v{model.version}")
    t.add_row("Alignment", str(model.alignment))
    t.add_row("KV Count", str(model.n_kv))
    t.add_row("Tensor Count", str(model.n_tensors))
    t.add_row("Data Offset", str(model.data_offset))
    t.add_row("Tensor Data (bytes)", str(model.tensor_data_nbytes))
    out.print(t)


def render_metadata(model: GGUFModel, out: Console) -> None:
    table = Table(title="Metadata", box=box.ROUNDED, show_lines=False, title_style="bold magenta")
    table.add_column("Index", justify="right", style="dim")
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Type", style="yellow")
    table.add_column("Value", style="white")

    for index, (key, mv) in enumerate(model.kv.items(), start=1):
        table.add_row(str(index), escape(key), escape(format_type(mv)), escape(format_value(mv)))

    out.print(table)


def render_tensors(model: GGUFModel, out: Console) -> None:
    """Tensor layout: relative offset, absolute byte range and size per tensor."""
    table = Table(
        title="Tensor Layout", box=box.ROUNDED, show_lines=False, title_style="bold magenta"
    )
    table.add_column("Index", justify="right", style="dim")
    table.add_column("Tensor Name", style="cyan", no_wrap=True)
    table.add_column("GGML Type", justify="left", style="yellow")
    table.add_column("Dimensions", justify="left", style="green")
    table.add_column("Offset", justify="right", style="white")
    table.add_column("Start Address", justify="right", style="white")
    table.add_column("End Address", justify="right", style="white")
    table.add_column("Size", justify="right", style="white")

    for index, ti in enumerate(model.tensors, start=1):
        start = model.data_offset + ti.offset
        table.add_row(
            str(index),
            escape(ti.name),
            ti.ggml_type.name,
            escape(str(list(ti.dims))),
            str(ti.offset),
            str(start),
            str(start + ti.nbytes),
            str(ti.nbytes),
        )

    out.print(table)


def render_model(model: GGUFModel, out: Optional[Console] = None) -> None:
    """Render the full console report for a GGUF container."""
    out = out or console
    render_summary(model, out)
    if model.kv:
        render_metadata(model, out)
    if model.tensors:
        render_tensors(model, out)
