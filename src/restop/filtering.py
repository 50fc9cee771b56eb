"""Process filters: restrict the process table to some pids or one user."""

import pwd
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from restop.errors import InvalidConfiguration
from restop.models import DisplayRecord, ProcessRow

EFFECTIVE = 1  # Index of the effective uid in a (real, effective, saved) triple


def resolve_uid(user: str) -> int:
    """Uid of a user name or numeric uid; raises InvalidConfiguration."""
    if user.isdigit():
        return int(user)
    try:
        return pwd.getpwnam(user).pw_uid
    except KeyError:
        raise InvalidConfiguration(f"invalid user {user!r}") from None


@dataclass(slots=True, frozen=True)
class ProcessFilter:
    """
    Which processes the table shows.

    Either a set of pids or a user; with `any_uid` the user may own the
    process as its real, effective or saved uid, otherwise only as the
    effective one.
    """

    pids: frozenset[int] | None = None
    uid: int | None = None
    any_uid: bool = False

    @classmethod
    def for_pids(cls, pids: Iterable[int]) -> "ProcessFilter":
        return cls(pids=frozenset(pids))

    @classmethod
    def for_user(cls, user: str, any_uid: bool = False) -> "ProcessFilter":
        return cls(uid=resolve_uid(user), any_uid=any_uid)

    def matches(self, row: ProcessRow) -> bool:
        if self.pids is not None and row.pid not in self.pids:
            return False
        if self.uid is None:
            return True
        if not row.uids:
            return False  # Owner unknown
        if self.any_uid:
            return self.uid in row.uids
        return row.uids[EFFECTIVE] == self.uid


def select(
    records: Sequence[DisplayRecord], process_filter: ProcessFilter | None
) -> Sequence[DisplayRecord]:
    """The records `process_filter` lets through; all of them without a filter."""
    if process_filter is None:
        return records
    return [r for r in records if process_filter.matches(r)]
