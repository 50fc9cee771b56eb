"""Sort engine: total ordering of display records by a per-mode key."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from typing import Any

from restop.errors import InvalidConfiguration
from restop.models import DisplayRecord, Mode


@dataclass(slots=True, frozen=True)
class SortField:
    """One sort criterion offered by a mode."""

    token: str  # Key pressed, or passed to --sort
    label: str  # Column header the criterion sorts by
    value: Callable[[Any], Any]
    descending: bool  # Natural direction
    help: str


PROCESS_FIELDS = (
    SortField("P", "%CPU", lambda r: r.cpu_percent, True, "sort by CPU usage (the default)"),
    SortField("M", "%MEM", lambda r: r.memory_percent, True, "sort by resident memory"),
    SortField("N", "PID", lambda r: r.pid, False, "sort by process id"),
    SortField("T", "TIME+", lambda r: r.cpu_time, True, "sort by accumulated CPU time"),
    SortField("U", "USER", lambda r: r.username, False, "sort by user name"),
    SortField("C", "COMMAND", lambda r: r.command_line, False, "sort by command line"),
)

CACHE_FIELDS = (
    SortField("a", "ACTIVE", lambda r: r.active_objs, True, "sort by number of active objects"),
    SortField("b", "OBJ/SLAB", lambda r: r.objperslab, True, "sort by objects per slab"),
    SortField("c", "CACHE SIZE", lambda r: r.cache_size, True, "sort by cache size"),
    SortField("l", "SLABS", lambda r: r.num_slabs, True, "sort by number of slabs"),
    SortField(
        "v", "", lambda r: r.active_slabs, True, "sort by (non display) number of active slabs"
    ),
    SortField("n", "NAME", lambda r: r.name, False, "sort by name"),
    SortField("o", "OBJS", lambda r: r.num_objs, True, "sort by number of objects (the default)"),
    SortField("p", "", lambda r: r.pagesperslab, True, "sort by (non display) pages per slab"),
    SortField("s", "OBJ SIZE", lambda r: r.objsize, True, "sort by object size"),
    SortField("u", "USE", lambda r: r.utilization, True, "sort by cache utilization"),
)

SORT_FIELDS: dict[Mode, dict[str, SortField]] = {
    Mode.PROCESS: {f.token: f for f in PROCESS_FIELDS},
    Mode.CACHE: {f.token: f for f in CACHE_FIELDS},
}

DEFAULT_SORT = {Mode.PROCESS: "P", Mode.CACHE: "o"}

# Sortable columns from left to right as the table shows them
COLUMN_ORDER = {Mode.PROCESS: "NUPMTC", Mode.CACHE: "oauslbcn"}


@dataclass(slots=True, frozen=True)
class SortKey:
    """A sort criterion of one mode together with its direction."""

    mode: Mode
    token: str
    descending: bool

    @classmethod
    def parse(cls, mode: Mode, token: str) -> "SortKey":
        """Build the key for `token` in its natural direction."""
        field = SORT_FIELDS[mode].get(token)
        if field is None:
            valid = "".join(SORT_FIELDS[mode])
            raise InvalidConfiguration(
                f"invalid sort key {token!r} for {mode.value} (valid keys: {valid})"
            )
        return cls(mode=mode, token=token, descending=field.descending)

    @classmethod
    def default(cls, mode: Mode) -> "SortKey":
        return cls.parse(mode, DEFAULT_SORT[mode])

    @property
    def field(self) -> SortField:
        return SORT_FIELDS[self.mode][self.token]

    def reversed(self) -> "SortKey":
        """The same criterion in the opposite direction."""
        return replace(self, descending=not self.descending)

    def shifted(self, offset: int) -> "SortKey":
        """
        The key of the column `offset` places to the right, stopping at the edges.

        A key on a column the table does not show moves to the first column.
        A reversed key stays reversed.
        """
        columns = COLUMN_ORDER[self.mode]
        if self.token in columns:
            position = min(max(columns.index(self.token) + offset, 0), len(columns) - 1)
        else:
            position = 0
        key = SortKey.parse(self.mode, columns[position])
        if self.descending != self.field.descending:
            key = key.reversed()
        return key


def sort_help(mode: Mode) -> str:
    """The table of valid sort criteria, one per line."""
    return "\n".join(f" {f.token}    {f.help}" for f in SORT_FIELDS[mode].values())


def _rank(value: Any) -> tuple[bool, Any]:
    # Missing values rank below every present value
    if value is None:
        return (False, 0)
    return (True, value)


def order(records: Sequence[DisplayRecord], key: SortKey) -> list[DisplayRecord]:
    """
    Sort records by `key`.

    Records that compare equal keep ascending identity order in either
    direction, so equal rows do not trade places between refreshes.
    """
    value = key.field.value
    by_identity = sorted(records, key=lambda r: r.identity)
    # sorted() is stable for reverse=True as well
    return sorted(by_identity, key=lambda r: _rank(value(r)), reverse=key.descending)
