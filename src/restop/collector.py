"""Raw collectors: one snapshot of the process table or of /proc/slabinfo."""

import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import psutil
import structlog

from restop.errors import PartialRecordLoss, SourceUnavailable
from restop.models import (
    CpuTimes,
    Mode,
    ProcessRecord,
    ProcessSummary,
    SlabRecord,
    SlabSummary,
    Snapshot,
)

log = structlog.get_logger()

SLABINFO_PATH = Path("/proc/slabinfo")

# psutil status names mapped to the single letters top shows
STATUS_LETTERS = {
    psutil.STATUS_RUNNING: "R",
    psutil.STATUS_SLEEPING: "S",
    psutil.STATUS_DISK_SLEEP: "D",
    psutil.STATUS_STOPPED: "T",
    psutil.STATUS_TRACING_STOP: "t",
    psutil.STATUS_ZOMBIE: "Z",
    psutil.STATUS_DEAD: "X",
    psutil.STATUS_IDLE: "I",
}

# Columns every supported slabinfo layout carries
SLAB_COLUMNS = (
    "active_objs",
    "num_objs",
    "objsize",
    "objperslab",
    "pagesperslab",
    "active_slabs",
    "num_slabs",
)


class ProcessCollector:
    """
    Collects the process table using psutil.

    Processes that vanish or deny access while being read are left out of the
    snapshot and counted in `Snapshot.lost`; a field that alone is unreadable
    (CPU times of a foreign process on macOS, say) is carried as missing.
    """

    mode = Mode.PROCESS

    # Attributes fetched per process in a single oneshot() pass
    ATTRS = [
        "pid",
        "create_time",
        "name",
        "username",
        "status",
        "nice",
        "num_threads",
        "cpu_times",
        "memory_info",
        "memory_percent",
        "cmdline",
        "uids",
    ]

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock

    def collect(self) -> Snapshot:
        """Take one snapshot of every readable process."""
        try:
            timestamp = self._clock()
            records, lost = self._collect_processes()
            summary = self._collect_summary(records)
        except (OSError, psutil.Error) as e:
            raise SourceUnavailable(f"cannot read process table: {e}") from e

        if lost:
            log.debug("records_lost", mode=self.mode.value, lost=lost)
        return Snapshot(
            mode=self.mode,
            timestamp=timestamp,
            records=tuple(records),
            summary=summary,
            lost=lost,
        )

    def _collect_processes(self) -> tuple[list[ProcessRecord], int]:
        records: list[ProcessRecord] = []
        seen: set[int] = set()
        lost = 0

        for proc in psutil.process_iter(attrs=self.ATTRS, ad_value=None):
            try:
                record = self._to_record(proc)
            except (psutil.NoSuchProcess, psutil.ZombieProcess, PartialRecordLoss):
                # Exited between enumeration and detail read
                lost += 1
                continue
            if record.pid in seen:
                lost += 1
                continue
            seen.add(record.pid)
            records.append(record)

        return records, lost

    @staticmethod
    def _to_record(proc: psutil.Process) -> ProcessRecord:
        info = proc.info
        if info.get("pid") is None:
            raise PartialRecordLoss("process without a pid")

        cmdline = info.get("cmdline") or []
        command_line = " ".join(cmdline) if cmdline else info.get("name") or ""

        times = info.get("cpu_times")
        cpu_time = times.user + times.system if times is not None else None

        mem_info = info.get("memory_info")
        virt = mem_info.vms if mem_info else 0
        res = mem_info.rss if mem_info else 0
        # `shared` is only reported on Linux
        shr = getattr(mem_info, "shared", 0) if mem_info else 0

        uids = info.get("uids")
        status = info.get("status")
        return ProcessRecord(
            pid=info["pid"],
            create_time=info.get("create_time") or 0.0,
            name=info.get("name") or "",
            username=info.get("username") or "?",
            status=STATUS_LETTERS.get(status, "?"),
            nice=info.get("nice") or 0,
            threads=info.get("num_threads") or 0,
            cpu_time=cpu_time,
            virt=virt,
            res=res,
            shr=shr,
            memory_percent=info.get("memory_percent") or 0.0,
            command_line=command_line,
            uids=tuple(uids) if uids is not None else (),
        )

    @staticmethod
    def _collect_summary(records: list[ProcessRecord]) -> ProcessSummary:
        times = psutil.cpu_times()
        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
        statuses = [r.status for r in records]

        return ProcessSummary(
            clock=datetime.now().strftime("%H:%M:%S"),
            uptime_seconds=time.time() - psutil.boot_time(),
            users=len(psutil.users()),
            load_avg=psutil.getloadavg(),
            tasks_total=len(records),
            tasks_running=statuses.count("R"),
            tasks_sleeping=sum(1 for s in statuses if s in ("S", "D", "I")),
            tasks_stopped=sum(1 for s in statuses if s in ("T", "t")),
            tasks_zombie=statuses.count("Z"),
            cpu_times=CpuTimes(
                user=times.user,
                system=times.system,
                nice=getattr(times, "nice", 0.0),
                idle=times.idle,
                iowait=getattr(times, "iowait", 0.0),
                irq=getattr(times, "irq", 0.0),
                softirq=getattr(times, "softirq", 0.0),
                steal=getattr(times, "steal", 0.0),
            ),
            memory_total=mem.total,
            memory_free=mem.free,
            memory_used=mem.used,
            memory_buffers_cached=getattr(mem, "buffers", 0) + getattr(mem, "cached", 0),
            memory_available=mem.available,
            swap_total=swap.total,
            swap_free=swap.free,
            swap_used=swap.used,
        )


class SlabCollector:
    """Collects the kernel slab allocator table from /proc/slabinfo (needs root)."""

    mode = Mode.CACHE

    def __init__(
        self,
        path: Path = SLABINFO_PATH,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._path = Path(path)
        self._clock = clock

    def collect(self) -> Snapshot:
        """Read and parse the slabinfo table."""
        try:
            timestamp = self._clock()
            content = self._path.read_text()
        except PermissionError as e:
            raise SourceUnavailable(f"Permission denied: {self._path}") from e
        except OSError as e:
            raise SourceUnavailable(f"cannot read {self._path}: {e.strerror or e}") from e

        records, lost = parse_slabinfo(content)
        if lost:
            log.debug("records_lost", mode=self.mode.value, lost=lost)
        return Snapshot(
            mode=self.mode,
            timestamp=timestamp,
            records=records,
            summary=SlabSummary.from_records(records),
            lost=lost,
        )


def parse_version(line: str) -> str:
    """Return the version from a `slabinfo - version: 2.1` line."""
    parts = line.replace(":", " ").split()
    if len(parts) < 2 or parts[0] != "slabinfo":
        raise SourceUnavailable(f"not a slabinfo table: {line!r}")
    return parts[-1]


def parse_meta(line: str) -> list[str]:
    """Return the `<column>` names of the slabinfo header line."""
    return [
        token.strip("<>")
        for token in line.replace("#", " ").replace(":", " ").split()
        if token.startswith("<") and token.endswith(">")
    ]


def parse_line(line: str, meta: list[str]) -> SlabRecord:
    """Parse one cache line; raises PartialRecordLoss when it is malformed."""
    tokens = line.replace(":", " ").split()
    if not tokens:
        raise PartialRecordLoss("empty line")
    values = [int(token) for token in tokens[1:] if token.isdigit()]
    if len(values) < len(meta):
        raise PartialRecordLoss(f"short slabinfo line for {tokens[0]!r}")
    fields = dict(zip(meta, values))
    return SlabRecord(name=tokens[0], **{column: fields[column] for column in SLAB_COLUMNS})


def parse_slabinfo(content: str) -> tuple[tuple[SlabRecord, ...], int]:
    """
    Parse the text of /proc/slabinfo.

    Returns the cache records and the number of lines that had to be dropped
    (malformed or duplicated names). An unsupported table raises
    SourceUnavailable.
    """
    lines = content.splitlines()
    if len(lines) < 2:
        raise SourceUnavailable("slabinfo table is truncated")

    version = parse_version(lines[0])
    if not version.startswith("2."):
        raise SourceUnavailable(f"unsupported slabinfo version {version}")

    meta = parse_meta(lines[1])
    missing = [column for column in SLAB_COLUMNS if column not in meta]
    if missing:
        raise SourceUnavailable(f"slabinfo header lacks {', '.join(missing)}")

    records: list[SlabRecord] = []
    seen: set[str] = set()
    lost = 0
    for line in lines[2:]:
        if not line.strip():
            continue
        try:
            record = parse_line(line, meta)
        except PartialRecordLoss:
            lost += 1
            continue
        if record.name in seen:
            lost += 1
            continue
        seen.add(record.name)
        records.append(record)

    return tuple(records), lost
