"""Renderer: lay out a summary header and a sorted table as plain text."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from restop.delta import percentage
from restop.errors import RenderOverflow
from restop.models import DisplayRecord, ProcessSummary, SlabSummary

PLACEHOLDER = "-"  # Rendered for values that are not known yet
TRUNCATION_MARK = "+"
TOO_SMALL = "terminal too small"
MIB = 1024**2
CPU_STATES = ("us", "sy", "ni", "id", "wa", "hi", "si", "st")


@dataclass(slots=True, frozen=True)
class Viewport:
    """Terminal area available to one frame."""

    rows: int
    columns: int


@dataclass(slots=True, frozen=True)
class Column:
    """A table column: header, minimum width and how to format a cell."""

    header: str
    width: int
    cell: Callable[[Any], str]
    align: str = ">"
    limit: int | None = None  # Cap on content-driven growth


def format_bytes(size: float) -> str:
    """Format bytes as a human-readable string in binary units."""
    if size < 1024:
        return f"{int(size)}B"
    for unit in ["KiB", "MiB", "GiB", "TiB"]:
        size = size / 1024
        if size < 1024:
            return f"{size:.1f}{unit}"
    return f"{size:.1f}TiB"


def format_rate(rate: float | None) -> str:
    """Format a bytes/second rate with its sign."""
    if rate is None:
        return PLACEHOLDER
    sign = "-" if rate < 0 else ""
    return f"{sign}{format_bytes(abs(rate))}/s"


def format_percent(value: float | None) -> str:
    if value is None:
        return PLACEHOLDER
    return f"{value:.1f}"


def format_cpu_time(seconds: float | None) -> str:
    """Format CPU seconds the way top's TIME+ column does: minutes:seconds.hundredths."""
    if seconds is None:
        return PLACEHOLDER
    hundredths = round(seconds * 100)
    minutes, rest = divmod(hundredths, 60 * 100)
    return f"{minutes}:{rest // 100:02d}.{rest % 100:02d}"


def format_uptime(seconds: float) -> str:
    days = int(seconds // 86400)
    hours = int((seconds % 86400) // 3600)
    minutes = int((seconds % 3600) // 60)
    clock = f"{hours:2d}:{minutes:02d}" if hours else f"{minutes} min"
    if days > 0:
        return f"{days} day{'s' if days != 1 else ''}, {clock}"
    return clock


def truncate(text: str, width: int) -> str:
    """Cut text to `width` characters, marking the cut."""
    if width <= 0:
        return ""
    if len(text) <= width:
        return text
    return text[: width - 1] + TRUNCATION_MARK


PROCESS_COLUMNS = (
    Column("PID", 7, lambda r: str(r.pid)),
    Column("USER", 8, lambda r: r.username, "<", limit=12),
    Column("NI", 3, lambda r: str(r.nice)),
    Column("VIRT", 8, lambda r: format_bytes(r.virt)),
    Column("RES", 8, lambda r: format_bytes(r.res)),
    Column("SHR", 8, lambda r: format_bytes(r.shr)),
    Column("S", 1, lambda r: r.status),
    Column("%CPU", 5, lambda r: format_percent(r.cpu_percent)),
    Column("%MEM", 5, lambda r: format_percent(r.memory_percent)),
    Column("TIME+", 9, lambda r: format_cpu_time(r.cpu_time)),
    Column("COMMAND", 7, lambda r: r.command_line, "<"),
)

# Same table showing process names instead of command lines
PROCESS_NAME_COLUMNS = (
    *PROCESS_COLUMNS[:-1],
    Column("COMMAND", 7, lambda r: r.name, "<"),
)

CACHE_COLUMNS = (
    Column("OBJS", 6, lambda r: str(r.num_objs)),
    Column("ACTIVE", 6, lambda r: str(r.active_objs)),
    Column("USE", 4, lambda r: f"{r.utilization:.0f}%"),
    Column("OBJ SIZE", 8, lambda r: format_bytes(r.objsize)),
    Column("SLABS", 6, lambda r: str(r.num_slabs)),
    Column("OBJ/SLAB", 8, lambda r: str(r.objperslab)),
    Column("CACHE SIZE", 10, lambda r: format_bytes(r.cache_size)),
    Column("GROWTH", 9, lambda r: format_rate(r.growth)),
    Column("NAME", 4, lambda r: r.name, "<"),
)


def process_header(summary: ProcessSummary, cpu: dict[str, float] | None) -> list[str]:
    """The five summary lines above the process table."""
    load = ", ".join(f"{value:.2f}" for value in summary.load_avg)
    if cpu is None:
        split = ", ".join(f"{PLACEHOLDER} {name}" for name in CPU_STATES)
    else:
        split = ", ".join(f"{value:4.1f} {name}" for name, value in cpu.items())

    def mib(value: int) -> str:
        return f"{value / MIB:9.1f}"

    return [
        f"top - {summary.clock} up {format_uptime(summary.uptime_seconds)}, "
        f"{summary.users} user{'s' if summary.users != 1 else ''}, load average: {load}",
        f"Tasks: {summary.tasks_total} total, {summary.tasks_running} running, "
        f"{summary.tasks_sleeping} sleeping, {summary.tasks_stopped} stopped, "
        f"{summary.tasks_zombie} zombie",
        f"%Cpu(s): {split}",
        f"MiB Mem : {mib(summary.memory_total)} total, {mib(summary.memory_free)} free, "
        f"{mib(summary.memory_used)} used, {mib(summary.memory_buffers_cached)} buff/cache",
        f"MiB Swap: {mib(summary.swap_total)} total, {mib(summary.swap_free)} free, "
        f"{mib(summary.swap_used)} used, {mib(summary.memory_available)} avail Mem",
    ]


def slab_header(summary: SlabSummary) -> list[str]:
    """The five summary lines above the slab cache table."""
    s = summary
    return [
        f" Active / Total Objects (% used)    : {s.active_objs} / {s.total_objs} "
        f"({percentage(s.active_objs, s.total_objs):.1f}%)",
        f" Active / Total Slabs (% used)      : {s.active_slabs} / {s.total_slabs} "
        f"({percentage(s.active_slabs, s.total_slabs):.1f}%)",
        f" Active / Total Caches (% used)     : {s.active_caches} / {s.total_caches} "
        f"({percentage(s.active_caches, s.total_caches):.1f}%)",
        f" Active / Total Size (% used)       : {format_bytes(s.active_size)} / "
        f"{format_bytes(s.total_size)} ({percentage(s.active_size, s.total_size):.1f}%)",
        f" Minimum / Average / Maximum Object : {format_bytes(s.object_min)} / "
        f"{format_bytes(s.object_avg)} / {format_bytes(s.object_max)}",
    ]


def layout(columns: Sequence[Column], cells: list[list[str]], available: int) -> list[int]:
    """
    Width of every column.

    Each column starts at its minimum (or its header) and grows to its
    widest cell. The last column takes whatever room is left on the line.
    """
    widths = []
    for i, column in enumerate(columns[:-1]):
        width = max([column.width, len(column.header), *(len(row[i]) for row in cells)])
        if column.limit is not None:
            width = min(width, max(column.limit, len(column.header)))
        widths.append(width)
    last = columns[-1]
    used = sum(widths) + len(widths)  # One space between columns
    widths.append(max(last.width, len(last.header), available - used))
    return widths


def format_line(columns: Sequence[Column], cells: list[str], widths: list[int]) -> str:
    parts = []
    for column, text, width in zip(columns, cells, widths):
        text = truncate(text, width)
        parts.append(f"{text:{column.align}{width}}")
    return " ".join(parts).rstrip()


def table(
    columns: Sequence[Column],
    records: Sequence[DisplayRecord],
    viewport: Viewport,
    max_rows: int,
) -> list[str]:
    """The column header row followed by at most `max_rows` record rows."""
    cells = [[column.cell(r) for column in columns] for r in records[: max(max_rows, 0)]]
    widths = layout(columns, cells, viewport.columns)
    lines = [format_line(columns, [c.header for c in columns], widths)]
    lines.extend(format_line(columns, row, widths) for row in cells)
    return [truncate(line, viewport.columns) for line in lines]


def render(
    summary: ProcessSummary | SlabSummary,
    records: Sequence[DisplayRecord],
    viewport: Viewport,
    *,
    cpu: dict[str, float] | None = None,
    limit: int = 0,
    full_command: bool = True,
) -> str:
    """
    Render one frame.

    `records` must already be sorted. `limit` caps the number of rows
    (0 for as many as fit). A viewport too short for the header renders a
    placeholder instead. `full_command` picks command lines over process
    names for the process table.
    """
    try:
        return "\n".join(_frame(summary, records, viewport, cpu, limit, full_command))
    except RenderOverflow:
        if viewport.rows < 1:
            return ""
        return truncate(TOO_SMALL, viewport.columns)


def _frame(
    summary: ProcessSummary | SlabSummary,
    records: Sequence[DisplayRecord],
    viewport: Viewport,
    cpu: dict[str, float] | None,
    limit: int,
    full_command: bool,
) -> list[str]:
    if isinstance(summary, ProcessSummary):
        columns = PROCESS_COLUMNS if full_command else PROCESS_NAME_COLUMNS
        header = process_header(summary, cpu)
    else:
        header, columns = slab_header(summary), CACHE_COLUMNS

    header_rows = len(header) + 1  # Summary plus the column header row
    if viewport.rows < header_rows or viewport.columns < 1:
        raise RenderOverflow(f"{viewport.rows} rows cannot hold a {header_rows} row header")

    max_rows = viewport.rows - header_rows
    if limit > 0:
        max_rows = min(max_rows, limit)

    lines = [truncate(line, viewport.columns) for line in header]
    lines.extend(table(columns, records, viewport, max_rows))
    return lines
