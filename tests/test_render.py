"""Tests for the renderer."""

import pytest

from conftest import make_process_record, make_slab_record, process_snapshot, slab_snapshot
from restop.delta import compute
from restop.models import Mode
from restop.render import (
    PLACEHOLDER,
    TOO_SMALL,
    Viewport,
    format_bytes,
    format_cpu_time,
    format_rate,
    format_uptime,
    render,
    truncate,
)
from restop.sorting import SortKey, order

SLAB_HEADER_ROWS = 6  # Five summary lines plus the column header
PROCESS_HEADER_ROWS = 6


def slab_frame(records, viewport, previous=None, **kwargs) -> list[str]:
    snapshot = slab_snapshot(5.0, *records)
    rows = order(compute(snapshot, previous), SortKey.default(Mode.CACHE))
    return render(snapshot.summary, rows, viewport, **kwargs).splitlines()


def test_format_bytes_bytes():
    """Test format_bytes with byte values."""
    assert format_bytes(500) == "500B"


def test_format_bytes_kibibytes():
    assert format_bytes(2048) == "2.0KiB"


def test_format_bytes_mebibytes():
    assert format_bytes(5 * 1024**2) == "5.0MiB"


def test_format_bytes_gibibytes():
    assert format_bytes(1024**3) == "1.0GiB"


def test_format_rate():
    assert format_rate(None) == PLACEHOLDER
    assert format_rate(1000.0) == "1000B/s"
    assert format_rate(-2048.0) == "-2.0KiB/s"


def test_format_cpu_time():
    assert format_cpu_time(None) == PLACEHOLDER
    assert format_cpu_time(75.5) == "1:15.50"
    assert format_cpu_time(0.0) == "0:00.00"


def test_format_cpu_time_rounds_into_next_minute():
    assert format_cpu_time(59.999) == "1:00.00"
    assert format_cpu_time(119.996) == "2:00.00"
    assert format_cpu_time(59.994) == "0:59.99"


def test_format_uptime():
    assert format_uptime(12 * 60) == "12 min"
    assert format_uptime(3600 + 5 * 60) == " 1:05"
    assert format_uptime(2 * 86400 + 3600) == "2 days,  1:00"


def test_truncate():
    assert truncate("abcdef", 10) == "abcdef"
    assert truncate("abcdef", 4) == "abc+"
    assert truncate("abcdef", 0) == ""


class TestSlabFrame:
    """Rendering of the slab cache table."""

    def test_header_and_columns(self):
        lines = slab_frame([make_slab_record("dentry")], Viewport(rows=20, columns=120))

        assert lines[0].startswith(" Active / Total Objects (% used)")
        assert lines[4].startswith(" Minimum / Average / Maximum Object")
        assert lines[5].split()[:2] == ["OBJS", "ACTIVE"]
        assert lines[5].rstrip().endswith("NAME")
        assert lines[6].endswith("dentry")

    def test_first_sample_growth_is_placeholder(self):
        lines = slab_frame([make_slab_record("dentry")], Viewport(rows=20, columns=120))

        # "OBJ SIZE" and "CACHE SIZE" split into two words each
        growth_column = lines[5].split().index("GROWTH") - 2
        assert lines[6].split()[growth_column] == PLACEHOLDER

    def test_growth_rendered_with_units(self):
        previous = slab_snapshot(0.0, make_slab_record("A", active_objs=10000, objsize=100))
        lines = slab_frame(
            [make_slab_record("A", active_objs=10050, objsize=100)],
            Viewport(rows=20, columns=120),
            previous=previous,
        )

        assert "1000B/s" in lines[6]

    @pytest.mark.parametrize("count", [0, 1, 10, 10_000])
    def test_row_count_bounded_by_viewport(self, count):
        records = [make_slab_record(f"cache-{i}") for i in range(count)]
        viewport = Viewport(rows=24, columns=80)

        lines = slab_frame(records, viewport)

        assert len(lines) - SLAB_HEADER_ROWS <= viewport.rows - SLAB_HEADER_ROWS
        assert len(lines) - SLAB_HEADER_ROWS == min(count, viewport.rows - SLAB_HEADER_ROWS)

    def test_row_limit(self):
        records = [make_slab_record(f"cache-{i}") for i in range(50)]

        lines = slab_frame(records, Viewport(rows=40, columns=80), limit=5)

        assert len(lines) == SLAB_HEADER_ROWS + 5

    def test_lines_clamped_to_width(self):
        records = [make_slab_record("x" * 200)]

        lines = slab_frame(records, Viewport(rows=20, columns=60))

        assert all(len(line) <= 60 for line in lines)
        assert lines[6].endswith("+")

    def test_columns_stay_aligned(self):
        records = [make_slab_record("a", num_objs=7), make_slab_record("b", num_objs=7_000_000)]

        lines = slab_frame(records, Viewport(rows=20, columns=120))

        name_at = lines[5].index("NAME")
        assert all(line[name_at] in "ab" for line in lines[6:])

    def test_header_only_when_no_room_for_rows(self):
        lines = slab_frame([make_slab_record()], Viewport(rows=SLAB_HEADER_ROWS, columns=80))

        assert len(lines) == SLAB_HEADER_ROWS

    def test_too_small_for_header(self):
        lines = slab_frame([make_slab_record()], Viewport(rows=3, columns=80))

        assert lines == [TOO_SMALL]

    def test_too_small_placeholder_is_clamped(self):
        assert slab_frame([], Viewport(rows=1, columns=8)) == ["termina+"]

    def test_no_rows_at_all(self):
        snapshot = slab_snapshot(1.0)
        assert render(snapshot.summary, [], Viewport(rows=0, columns=80)) == ""


class TestProcessFrame:
    """Rendering of the process table."""

    def test_new_process_cpu_is_placeholder(self):
        """A process seen for the first time shows "-" for %CPU, not 0."""
        before = process_snapshot(0.0, make_process_record(pid=1, cpu_time=1.0))
        after = process_snapshot(
            1.0, make_process_record(pid=1, cpu_time=1.0), make_process_record(pid=2, name="fresh")
        )
        rows = order(compute(after, before), SortKey.parse(Mode.PROCESS, "N"))

        lines = render(after.summary, rows, Viewport(rows=20, columns=120)).splitlines()

        header = lines[5].split()
        cpu_column = header.index("%CPU")
        assert lines[6].split()[cpu_column] == "0.0"
        assert lines[7].split()[cpu_column] == PLACEHOLDER

    def test_summary_lines(self):
        snapshot = process_snapshot(1.0, make_process_record())

        frame = render(snapshot.summary, compute(snapshot), Viewport(rows=20, columns=120))
        lines = frame.splitlines()

        assert lines[0].startswith("top - 12:00:00 up 3 days")
        assert "load average: 1.00, 0.50, 0.25" in lines[0]
        assert lines[1].startswith("Tasks: 2 total")
        assert lines[2] == "%Cpu(s): - us, - sy, - ni, - id, - wa, - hi, - si, - st"
        assert lines[3].startswith("MiB Mem :")
        assert lines[4].startswith("MiB Swap:")
        assert len(lines) == PROCESS_HEADER_ROWS + 1

    def test_cpu_split_rendered(self):
        snapshot = process_snapshot(1.0)
        cpu = dict.fromkeys(("us", "sy", "ni", "id", "wa", "hi", "si", "st"), 0.0)
        cpu.update(us=25.0, sy=10.0, id=65.0)

        lines = render(snapshot.summary, [], Viewport(rows=10, columns=120), cpu=cpu).splitlines()

        assert lines[2].startswith("%Cpu(s): 25.0 us, 10.0 sy")

    def test_long_user_name_is_truncated(self):
        snapshot = process_snapshot(1.0, make_process_record(username="a-very-long-user-name"))

        frame = render(snapshot.summary, compute(snapshot), Viewport(rows=20, columns=120))
        lines = frame.splitlines()

        assert "a-very-long+" in lines[6]

    def test_command_line_or_name(self):
        snapshot = process_snapshot(1.0, make_process_record(name="nginx"))
        rows = compute(snapshot)
        viewport = Viewport(rows=20, columns=120)

        full = render(snapshot.summary, rows, viewport).splitlines()
        short = render(snapshot.summary, rows, viewport, full_command=False).splitlines()

        assert full[6].endswith("/usr/bin/nginx --serve")
        assert short[6].endswith("nginx")
        assert "/usr/bin" not in short[6]
        assert short[5].rstrip().endswith("COMMAND")
