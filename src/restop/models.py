"""Data models for restop."""

from dataclasses import dataclass
from enum import Enum


class Mode(Enum):
    """Which kernel table a monitor samples."""

    PROCESS = "top"
    CACHE = "slabtop"


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Raw state of one process at a single instant."""

    pid: int
    create_time: float
    name: str
    username: str
    status: str  # 'R', 'S', 'Z', 'D', etc.
    nice: int
    threads: int
    cpu_time: float | None  # user + system seconds; None when unreadable
    virt: int  # Bytes
    res: int  # Bytes
    shr: int  # Bytes
    memory_percent: float
    command_line: str
    uids: tuple[int, ...] = ()  # Real, effective, saved; empty when unreadable

    @property
    def identity(self) -> int:
        return self.pid


@dataclass(slots=True, frozen=True)
class SlabRecord:
    """Raw counters of one slab cache, as listed in /proc/slabinfo."""

    name: str
    active_objs: int
    num_objs: int
    objsize: int  # Bytes
    objperslab: int
    pagesperslab: int
    active_slabs: int
    num_slabs: int

    @property
    def identity(self) -> str:
        return self.name


@dataclass(slots=True, frozen=True)
class CpuTimes:
    """System-wide accumulated CPU seconds per state."""

    user: float = 0.0
    system: float = 0.0
    nice: float = 0.0
    idle: float = 0.0
    iowait: float = 0.0
    irq: float = 0.0
    softirq: float = 0.0
    steal: float = 0.0

    @property
    def total(self) -> float:
        return (
            self.user
            + self.system
            + self.nice
            + self.idle
            + self.iowait
            + self.irq
            + self.softirq
            + self.steal
        )


@dataclass(slots=True, frozen=True)
class ProcessSummary:
    """System-wide figures shown above the process table."""

    clock: str  # Wall-clock time of the sample, HH:MM:SS
    uptime_seconds: float
    users: int
    load_avg: tuple[float, float, float]
    tasks_total: int
    tasks_running: int
    tasks_sleeping: int
    tasks_stopped: int
    tasks_zombie: int
    cpu_times: CpuTimes
    memory_total: int
    memory_free: int
    memory_used: int
    memory_buffers_cached: int
    memory_available: int
    swap_total: int
    swap_free: int
    swap_used: int


@dataclass(slots=True, frozen=True)
class SlabSummary:
    """Totals over every cache of a slabinfo table."""

    active_objs: int
    total_objs: int
    active_slabs: int
    total_slabs: int
    active_caches: int
    total_caches: int
    active_size: int  # Bytes
    total_size: int  # Bytes
    object_min: int
    object_avg: int
    object_max: int

    @classmethod
    def from_records(cls, records: "tuple[SlabRecord, ...]") -> "SlabSummary":
        """Aggregate a slabinfo table."""
        sizes = [r.objsize for r in records]
        total_objs = sum(r.num_objs for r in records)
        total_size = sum(r.num_objs * r.objsize for r in records)
        return cls(
            active_objs=sum(r.active_objs for r in records),
            total_objs=total_objs,
            active_slabs=sum(r.active_slabs for r in records),
            total_slabs=sum(r.num_slabs for r in records),
            active_caches=sum(1 for r in records if r.active_objs > 0),
            total_caches=len(records),
            active_size=sum(r.active_objs * r.objsize for r in records),
            total_size=total_size,
            object_min=min(sizes, default=0),
            object_avg=total_size // total_objs if total_objs else 0,
            object_max=max(sizes, default=0),
        )


@dataclass(slots=True, frozen=True)
class Snapshot:
    """
    One consistent read of a kernel table.

    `timestamp` is taken from a monotonic clock and is only meaningful when
    compared with the timestamp of another snapshot of the same collector.
    """

    mode: Mode
    timestamp: float
    records: tuple[ProcessRecord, ...] | tuple[SlabRecord, ...]
    summary: ProcessSummary | SlabSummary
    lost: int = 0  # Records dropped because they could not be read


@dataclass(slots=True, frozen=True)
class ProcessRow:
    """Display record for one process in one refresh cycle."""

    pid: int
    name: str
    username: str
    status: str
    nice: int
    threads: int
    cpu_time: float | None
    virt: int
    res: int
    shr: int
    memory_percent: float
    command_line: str
    cpu_percent: float | None  # None until two samples of this pid exist
    uids: tuple[int, ...] = ()

    @property
    def identity(self) -> int:
        return self.pid


@dataclass(slots=True, frozen=True)
class CacheRow:
    """Display record for one slab cache in one refresh cycle."""

    name: str
    active_objs: int
    num_objs: int
    objsize: int
    objperslab: int
    pagesperslab: int
    active_slabs: int
    num_slabs: int
    utilization: float  # active_objs / num_objs, percent
    cache_size: int  # Bytes held by the cache's slabs
    used_size: int  # Bytes held by active objects
    growth: float | None  # used_size change in bytes/sec

    @property
    def identity(self) -> str:
        return self.name


DisplayRecord = ProcessRow | CacheRow
