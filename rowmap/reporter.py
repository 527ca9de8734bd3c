from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from rowmap.domain.columns import ColumnDescriptor, TypeClass

if TYPE_CHECKING:
    from rowmap.domain.record import Record


def _type_label(descriptor: ColumnDescriptor) -> str:
    label = descriptor.base_type or descriptor.type_class.value
    if descriptor.type_class is TypeClass.STRING and descriptor.max_length:
        label = f"{label}({descriptor.max_length})"
    if descriptor.unsigned:
        label = f"{label} unsigned"
    return label


def _format_value(value: Any) -> str:
    if value is None:
        return "[dim]NULL[/dim]"
    if isinstance(value, str):
        return escape(repr(value))
    return escape(str(value))


def descriptors_table(table_name: str, descriptors: Mapping[str, ColumnDescriptor]) -> Table:
    """
    Build a rich table describing a table's columns in declared order.
    """
    table = Table(title=f"Columns of '{table_name}'", box=box.ROUNDED)
    table.add_column("Column", style="cyan", no_wrap=True)
    table.add_column("Type", style="magenta")
    table.add_column("Class", style="blue")
    table.add_column("Null", justify="center")
    table.add_column("Default", style="green")
    table.add_column("Domain / Extra", style="yellow")
    table.add_column("Comment", style="dim")

    for name, descriptor in descriptors.items():
        detail = ", ".join(descriptor.enum_domain) if descriptor.enum_domain else descriptor.extra
        table.add_row(
            name,
            _type_label(descriptor),
            descriptor.type_class.value,
            "YES" if descriptor.nullable else "NO",
            _format_value(descriptor.default),
            detail,
            descriptor.label,
        )
    return table


def record_table(record: "Record") -> Table:
    """
    Build a rich table with one row per field of `record`.
    """
    title = f"Record from table '{record.table_name}'"
    if record.is_dirty:
        title = f"{title} [red](modified)[/red]"
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    table.add_column("Type", style="magenta")

    for name, value in record:
        table.add_row(name, _format_value(value), _type_label(record.descriptor(name)))
    return table


def print_descriptors(
    table_name: str,
    descriptors: Mapping[str, ColumnDescriptor],
    console: Optional[Console] = None,
) -> None:
    console = console or Console()
    if not descriptors:
        console.print("[yellow]No columns to display.[/yellow]")
        return
    console.print(descriptors_table(table_name, descriptors))


def print_record(record: "Record", console: Optional[Console] = None) -> None:
    console = console or Console()
    console.print(record_table(record))


__all__ = ["descriptors_table", "record_table", "print_descriptors", "print_record"]
