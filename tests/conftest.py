"""Shared test fixtures for restop."""

import logging
import logging.handlers

import pytest
import structlog

from restop.models import (
    CpuTimes,
    Mode,
    ProcessRecord,
    ProcessSummary,
    SlabRecord,
    SlabSummary,
    Snapshot,
)

SLABINFO = """\
slabinfo - version: 2.1
# name            <active_objs> <num_objs> <objsize> <objperslab> <pagesperslab> : tunables <limit> <batchcount> <sharedfactor> : slabdata <active_slabs> <num_slabs> <sharedavail>
kmalloc-64          1000   1024     64   64    1 : tunables    0    0    0 : slabdata     16     16      0
dentry              3000   4000    192   21    1 : tunables    0    0    0 : slabdata    190    190      0
nf_conntrack_expect      0      0    208   39    2 : tunables    0    0    0 : slabdata      0      0      0
"""


@pytest.fixture(autouse=True)
def home(tmp_path, monkeypatch):
    """Keep config and log files out of the real home directory."""
    monkeypatch.setenv("HOME", str(tmp_path))
    return tmp_path


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop the log file handler and structlog setup a command installed."""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, logging.handlers.RotatingFileHandler):
            root.removeHandler(handler)
            handler.close()
    structlog.reset_defaults()


@pytest.fixture
def slabinfo_file(tmp_path):
    """A readable slabinfo table with three caches."""
    path = tmp_path / "slabinfo"
    path.write_text(SLABINFO)
    return path


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCollector:
    """Collector returning prepared snapshots in order, repeating the last one."""

    def __init__(self, mode: Mode, snapshots=(), error: Exception | None = None) -> None:
        self.mode = mode
        self.calls = 0
        self._snapshots = list(snapshots)
        self._error = error

    def collect(self) -> Snapshot:
        self.calls += 1
        if self._error is not None:
            raise self._error
        if len(self._snapshots) > 1:
            return self._snapshots.pop(0)
        return self._snapshots[0]


@pytest.fixture
def clock():
    return FakeClock()


def make_process_record(
    pid: int = 100,
    cpu_time: float | None = 1.0,
    create_time: float = 1000.0,
    name: str = "test",
    username: str = "user",
    status: str = "S",
    res: int = 4096,
    memory_percent: float = 1.0,
    uids: tuple[int, ...] = (1000, 1000, 1000),
) -> ProcessRecord:
    """Create a ProcessRecord for testing."""
    return ProcessRecord(
        pid=pid,
        create_time=create_time,
        name=name,
        username=username,
        status=status,
        nice=0,
        threads=1,
        cpu_time=cpu_time,
        virt=res * 4,
        res=res,
        shr=res // 2,
        memory_percent=memory_percent,
        command_line=f"/usr/bin/{name} --serve",
        uids=uids,
    )


def make_slab_record(
    name: str = "kmalloc-64",
    active_objs: int = 100,
    num_objs: int = 128,
    objsize: int = 64,
    num_slabs: int = 2,
) -> SlabRecord:
    """Create a SlabRecord for testing."""
    return SlabRecord(
        name=name,
        active_objs=active_objs,
        num_objs=num_objs,
        objsize=objsize,
        objperslab=64,
        pagesperslab=1,
        active_slabs=num_slabs,
        num_slabs=num_slabs,
    )


def make_process_summary(cpu_times: CpuTimes | None = None) -> ProcessSummary:
    return ProcessSummary(
        clock="12:00:00",
        uptime_seconds=3 * 86400 + 3600,
        users=2,
        load_avg=(1.0, 0.5, 0.25),
        tasks_total=2,
        tasks_running=1,
        tasks_sleeping=1,
        tasks_stopped=0,
        tasks_zombie=0,
        cpu_times=cpu_times or CpuTimes(user=10.0, system=5.0, idle=85.0),
        memory_total=16 * 1024**3,
        memory_free=4 * 1024**3,
        memory_used=8 * 1024**3,
        memory_buffers_cached=4 * 1024**3,
        memory_available=7 * 1024**3,
        swap_total=2 * 1024**3,
        swap_free=2 * 1024**3,
        swap_used=0,
    )


def process_snapshot(timestamp: float, *records: ProcessRecord, cpu_times=None) -> Snapshot:
    return Snapshot(
        mode=Mode.PROCESS,
        timestamp=timestamp,
        records=tuple(records),
        summary=make_process_summary(cpu_times),
    )


def slab_snapshot(timestamp: float, *records: SlabRecord) -> Snapshot:
    return Snapshot(
        mode=Mode.CACHE,
        timestamp=timestamp,
        records=tuple(records),
        summary=SlabSummary.from_records(tuple(records)),
    )
