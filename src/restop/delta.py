"""Delta engine: turn consecutive snapshots into display records."""

import mmap

from restop.models import (
    CacheRow,
    CpuTimes,
    DisplayRecord,
    Mode,
    ProcessRecord,
    ProcessRow,
    SlabRecord,
    Snapshot,
)

PAGE_SIZE = mmap.PAGESIZE


def elapsed(current: Snapshot, previous: Snapshot | None) -> float | None:
    """
    Seconds between two snapshots of the same mode.

    None means rates cannot be derived: there is no previous snapshot, it
    belongs to another mode, or the clock did not move forward.
    """
    if previous is None or previous.mode is not current.mode:
        return None
    seconds = current.timestamp - previous.timestamp
    if seconds <= 0:
        return None
    return seconds


def compute(current: Snapshot, previous: Snapshot | None = None) -> list[DisplayRecord]:
    """
    Build the display records for `current`.

    Rate fields are filled only for identities that also appear in
    `previous`; everything else is carried from `current` alone. Identities
    found only in `previous` are dropped. Neither snapshot is modified.
    """
    seconds = elapsed(current, previous)
    before = {r.identity: r for r in previous.records} if seconds is not None else {}

    if current.mode is Mode.PROCESS:
        return [_process_row(r, before.get(r.identity), seconds) for r in current.records]
    return [_cache_row(r, before.get(r.identity), seconds) for r in current.records]


def _process_row(
    record: ProcessRecord,
    before: ProcessRecord | None,
    seconds: float | None,
) -> ProcessRow:
    cpu_percent = None
    if (
        before is not None
        and seconds is not None
        # A recycled pid is a different process
        and before.create_time == record.create_time
        and before.cpu_time is not None
        and record.cpu_time is not None
    ):
        cpu_percent = (record.cpu_time - before.cpu_time) / seconds * 100.0

    return ProcessRow(
        pid=record.pid,
        name=record.name,
        username=record.username,
        status=record.status,
        nice=record.nice,
        threads=record.threads,
        cpu_time=record.cpu_time,
        virt=record.virt,
        res=record.res,
        shr=record.shr,
        memory_percent=record.memory_percent,
        command_line=record.command_line,
        cpu_percent=cpu_percent,
        uids=record.uids,
    )


def _cache_row(
    record: SlabRecord,
    before: SlabRecord | None,
    seconds: float | None,
) -> CacheRow:
    used_size = record.active_objs * record.objsize
    growth = None
    if before is not None and seconds is not None:
        growth = (used_size - before.active_objs * before.objsize) / seconds

    return CacheRow(
        name=record.name,
        active_objs=record.active_objs,
        num_objs=record.num_objs,
        objsize=record.objsize,
        objperslab=record.objperslab,
        pagesperslab=record.pagesperslab,
        active_slabs=record.active_slabs,
        num_slabs=record.num_slabs,
        utilization=percentage(record.active_objs, record.num_objs),
        cache_size=record.num_slabs * record.pagesperslab * PAGE_SIZE,
        used_size=used_size,
        growth=growth,
    )


def percentage(numerator: float, denominator: float) -> float:
    """numerator / denominator as a percentage, 0.0 for an empty denominator."""
    if denominator == 0:
        return 0.0
    return numerator / denominator * 100.0


def cpu_split(current: Snapshot, previous: Snapshot | None) -> dict[str, float] | None:
    """
    Share of CPU time spent in each state between two process snapshots.

    Keys follow top's `%Cpu(s)` line: us, sy, ni, id, wa, hi, si, st.
    """
    if current.mode is not Mode.PROCESS or elapsed(current, previous) is None:
        return None
    now: CpuTimes = current.summary.cpu_times
    then: CpuTimes = previous.summary.cpu_times
    total = now.total - then.total
    if total <= 0:
        return None
    return {
        "us": percentage(now.user - then.user, total),
        "sy": percentage(now.system - then.system, total),
        "ni": percentage(now.nice - then.nice, total),
        "id": percentage(now.idle - then.idle, total),
        "wa": percentage(now.iowait - then.iowait, total),
        "hi": percentage(now.irq - then.irq, total),
        "si": percentage(now.softirq - then.softirq, total),
        "st": percentage(now.steal - then.steal, total),
    }
