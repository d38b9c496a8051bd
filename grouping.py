"""Program-balanced grouping of students.

Two entry points drive everything:

* :func:`group_students` builds a first partition of a roster into groups of at
  most ``group_size`` students, putting one student of every program into each
  group whenever the program has enough students to go around.
* :func:`reshuffle_respecting_locks` recomputes a partition (same or new group
  size) while keeping locked students where they are. Students locked together
  in one group form a *cohort*; a cohort is never split and never merged with
  another cohort.

Coverage that cannot be achieved is not an error: each group carries the
programs it is missing in ``missing_programs``. Hard errors are reserved for
bad configuration (:class:`ConfigurationError`) and locks that cannot fit the
requested size (:class:`CapacityError`); both are raised before any result is
returned.

Determinism contract: with the same seed the output is identical. Programs are
processed in sorted order and leftover students always go to the smallest
non-full group, lowest index first on ties.
"""

from __future__ import annotations

import csv
import math
import warnings
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from cohort_check import cohort_violations
from prng import make_rng, shuffle_in_place

Identity = Tuple[str, str]


# ------------------------------ Errors --------------------------------

class GroupingError(ValueError):
    """Base class for errors raised while building or reshuffling groups."""


class ConfigurationError(GroupingError):
    """Non-positive group size, empty roster, unreadable columns or snapshot."""


class CapacityError(GroupingError):
    """Locked students cannot be kept together within the requested group size."""


class DuplicateIdentityWarning(UserWarning):
    """Two students share both name and program, so locks on them are ambiguous."""


# ------------------------------ Model ---------------------------------

@dataclass(frozen=True)
class Student:
    name: str
    program: str

    @property
    def identity(self) -> Identity:
        return (self.name, self.program)


@dataclass
class Placement:
    """A student's seat in one partition; the lock belongs to the seat."""

    student: Student
    locked: bool = False

    @property
    def name(self) -> str:
        return self.student.name

    @property
    def program(self) -> str:
        return self.student.program

    @property
    def identity(self) -> Identity:
        return self.student.identity


@dataclass
class Group:
    index: int  # 1-based
    members: List[Placement] = field(default_factory=list)
    missing_programs: Optional[List[str]] = None

    @property
    def size(self) -> int:
        return len(self.members)

    def locked_members(self) -> List[Placement]:
        return [m for m in self.members if m.locked]


@dataclass
class Partition:
    group_size: int
    programs: List[str]
    groups: List[Group]

    @property
    def num_groups(self) -> int:
        return len(self.groups)

    @property
    def total(self) -> int:
        return sum(g.size for g in self.groups)

    def placements(self) -> Iterator[Placement]:
        for g in self.groups:
            yield from g.members


# ------------------------------ Decision log --------------------------

DECISION_FIELDS = ["Step", "Phase", "Group", "Name", "Program", "Status", "Note"]


class DecisionLogger:
    def __init__(self):
        self.rows: List[Dict[str, object]] = []
        self.step = 0

    def log(self, phase: str, group_index: Optional[int], student: Optional[Student], status: str, note: str = ""):
        self.step += 1
        self.rows.append({
            "Step": self.step, "Phase": phase,
            "Group": group_index if group_index is not None else "",
            "Name": (student.name if student else ""),
            "Program": (student.program if student else ""),
            "Status": status, "Note": note,
        })

    def write_csv(self, out: Path):
        out.parent.mkdir(parents=True, exist_ok=True)
        with out.open("w", newline="", encoding="utf-8") as f:
            w = csv.DictWriter(f, fieldnames=DECISION_FIELDS)
            w.writeheader()
            for r in self.rows:
                w.writerow({k: r.get(k, "") for k in DECISION_FIELDS})


def _log(logger: Optional[DecisionLogger], *args, **kwargs) -> None:
    if logger is not None:
        logger.log(*args, **kwargs)


# ------------------------------ Helpers -------------------------------

def trim(s: str) -> str:
    return (s or "").strip()


def clean_students(students: Iterable[Student]) -> List[Student]:
    """Trim names/programs and drop students where either is blank."""
    cleaned: List[Student] = []
    for s in students:
        name, program = trim(s.name), trim(s.program)
        if not name or not program:
            continue
        cleaned.append(Student(name, program))
    return cleaned


def duplicate_identities(students: Iterable[Student]) -> List[Identity]:
    counts = Counter(s.identity for s in students)
    return sorted(ident for ident, n in counts.items() if n > 1)


def _warn_duplicates(students: Iterable[Student]) -> None:
    dups = duplicate_identities(students)
    if dups:
        shown = ", ".join(f"{name} ({program})" for name, program in dups)
        warnings.warn(
            f"Duplicate students (same name and program): {shown}; locks on them are ambiguous",
            DuplicateIdentityWarning,
            stacklevel=3,
        )


def missing_programs_for(members: Sequence[Placement], programs: Sequence[str]) -> Optional[List[str]]:
    present = {m.program for m in members}
    missing = [p for p in programs if p not in present]
    return missing or None


def _smallest_open(groups: List[List[Placement]], group_size: int) -> Optional[int]:
    """Index of the smallest group with room left; lowest index wins ties."""
    best: Optional[int] = None
    for i, members in enumerate(groups):
        if len(members) >= group_size:
            continue
        if best is None or len(members) < len(groups[best]):
            best = i
    return best


def _next_open(groups: List[List[Placement]], group_size: int, start: int) -> Optional[int]:
    n = len(groups)
    for step in range(n):
        i = (start + step) % n
        if len(groups[i]) < group_size:
            return i
    return None


def _finish(group_size: int, programs: List[str], groups: List[List[Placement]]) -> Partition:
    return Partition(
        group_size=group_size,
        programs=list(programs),
        groups=[
            Group(index=i + 1, members=members, missing_programs=missing_programs_for(members, programs))
            for i, members in enumerate(groups)
        ],
    )


def _check_group_size(group_size) -> int:
    if isinstance(group_size, bool) or not isinstance(group_size, int) or group_size <= 0:
        raise ConfigurationError(f"group_size must be a positive integer (got {group_size!r})")
    return group_size


# ------------------------------ Build ---------------------------------

def group_students(
    students: Iterable[Student],
    group_size: int,
    seed: Optional[int] = None,
    logger: Optional[DecisionLogger] = None,
) -> Partition:
    """Build a first partition of ``students`` into groups of at most ``group_size``."""
    group_size = _check_group_size(group_size)
    roster = clean_students(students)
    if not roster:
        raise ConfigurationError("No students to group")
    _warn_duplicates(roster)

    by_program: Dict[str, List[Student]] = defaultdict(list)
    for s in roster:
        by_program[s.program].append(s)
    programs = sorted(by_program)

    rng = make_rng(seed)
    for p in programs:
        shuffle_in_place(by_program[p], rng)

    num_groups = math.ceil(len(roster) / group_size)
    sufficient = [p for p in programs if len(by_program[p]) >= num_groups]
    short = [p for p in programs if len(by_program[p]) < num_groups]

    groups: List[List[Placement]] = [[] for _ in range(num_groups)]

    # One representative of every sufficient program per group
    for p in sufficient:
        bucket = by_program[p]
        for g in range(num_groups):
            if not bucket:
                break
            if len(groups[g]) >= group_size:
                _log(logger, "cover", g + 1, None, "Group full", f"no room for {p}")
                continue
            s = bucket.pop()
            groups[g].append(Placement(s))
            _log(logger, "cover", g + 1, s, "Assigned (coverage)")

    # Short programs cannot reach every group: spread them one per group
    cursor = 0
    for p in short:
        bucket = by_program[p]
        while bucket:
            g = _next_open(groups, group_size, cursor)
            if g is None:
                break
            s = bucket.pop()
            groups[g].append(Placement(s))
            _log(logger, "short", g + 1, s, "Assigned (short program)",
                 f"{p} has fewer students than groups")
            cursor = (g + 1) % num_groups

    rest: List[Student] = []
    for p in programs:
        rest.extend(by_program[p])
    shuffle_in_place(rest, rng)

    for s in rest:
        g = _smallest_open(groups, group_size)
        if g is None:
            raise CapacityError(f"No group has room for {s.name} ({s.program})")
        groups[g].append(Placement(s))
        _log(logger, "balance", g + 1, s, "Assigned (balance)")

    return _finish(group_size, programs, groups)


# ------------------------------ Reshuffle -----------------------------

def _place_cohorts(cohorts: List[Tuple[int, List[Placement]]], target: int, compact: bool) -> List[Optional[int]]:
    """Map each target slot to at most one cohort (position in ``cohorts``)."""
    slots: List[Optional[int]] = [None] * target
    if compact:
        order = sorted(range(len(cohorts)), key=lambda c: cohorts[c][0])
        for slot, c in enumerate(order):
            slots[slot] = c
        return slots

    pending: List[int] = []
    for c, (index, _members) in enumerate(cohorts):
        slot = index - 1
        if 0 <= slot < target and slots[slot] is None:
            slots[slot] = c
        else:
            pending.append(c)

    cursor = 0
    for c in pending:
        for step in range(target):
            slot = (cursor + step) % target
            if slots[slot] is None:
                slots[slot] = c
                cursor = (slot + 1) % target
                break
    return slots


def reshuffle_respecting_locks(
    partition: Partition,
    group_size: Optional[int] = None,
    seed: Optional[int] = None,
    compact: bool = False,
    logger: Optional[DecisionLogger] = None,
) -> Partition:
    """Return a new partition at ``group_size`` that keeps every locked cohort intact.

    ``group_size`` defaults to the partition's current size (a plain reshuffle).
    With ``compact`` the cohorts are packed into the lowest groups instead of
    keeping their previous group numbers. The input partition is not modified.
    """
    new_size = _check_group_size(partition.group_size if group_size is None else group_size)
    total = partition.total
    if total == 0:
        raise ConfigurationError("Partition has no students")
    target = max(1, math.ceil(total / new_size))

    cohorts: List[Tuple[int, List[Placement]]] = []
    pool: List[Student] = []
    for group in partition.groups:
        locked = [Placement(m.student, locked=True) for m in group.members if m.locked]
        if locked:
            cohorts.append((group.index, locked))
        pool.extend(m.student for m in group.members if not m.locked)

    for index, members in cohorts:
        if len(members) > new_size:
            raise CapacityError(
                f"Group {index} has {len(members)} locked students, more than group size {new_size}; "
                "unlock some students or choose a larger group size"
            )
    if len(cohorts) > target:
        raise CapacityError(
            f"{len(cohorts)} groups hold locked students but group size {new_size} only needs {target} groups; "
            "unlock some students or choose a smaller group size"
        )

    everyone = [m.student for m in partition.placements()]
    _warn_duplicates(everyone)
    programs = sorted({s.program for s in everyone})
    counts = Counter(s.program for s in everyone)
    sufficient = [p for p in programs if counts[p] >= target]
    short = [p for p in programs if counts[p] < target]

    rng = make_rng(seed)

    result: List[List[Placement]] = [[] for _ in range(target)]
    for slot, c in enumerate(_place_cohorts(cohorts, target, compact)):
        if c is None:
            continue
        index, members = cohorts[c]
        result[slot] = list(members)
        for m in members:
            _log(logger, "cohort", slot + 1, m.student, "Kept (locked)", f"from group {index}")

    queues: Dict[str, List[Student]] = {p: [] for p in programs}
    for s in pool:
        queues[s.program].append(s)
    for p in programs:
        shuffle_in_place(queues[p], rng)

    # Fill program gaps left by the locked students, sufficient programs first
    for needed, phase in ((sufficient, "cover"), (short, "short")):
        for i, members in enumerate(result):
            present = {m.program for m in members}
            for p in needed:
                if p in present:
                    continue
                if len(members) >= new_size:
                    _log(logger, "gap", i + 1, None, "Group full", f"{p} left missing")
                    break
                queue = queues[p]
                if not queue:
                    _log(logger, "gap", i + 1, None, "Queue empty", f"{p} left missing")
                    continue
                s = queue.pop()
                members.append(Placement(s))
                present.add(p)
                _log(logger, phase, i + 1, s, "Assigned (coverage)")

    leftover: List[Student] = []
    for p in programs:
        leftover.extend(queues[p])
    shuffle_in_place(leftover, rng)

    for s in leftover:
        g = _smallest_open(result, new_size)
        if g is None:
            raise CapacityError(f"No group has room for {s.name} ({s.program})")
        result[g].append(Placement(s))
        _log(logger, "balance", g + 1, s, "Assigned (balance)")

    reshuffled = _finish(new_size, programs, result)
    problems = cohort_violations(partition, reshuffled)
    if problems:
        raise CapacityError("Reshuffle rejected: " + "; ".join(problems))
    return reshuffled


# ------------------------------ Locks & validation --------------------

def with_locks(
    partition: Partition,
    lock: Iterable[Identity] = (),
    unlock: Iterable[Identity] = (),
) -> Partition:
    """Copy ``partition`` with the given students locked/unlocked."""
    lock_set, unlock_set = set(lock), set(unlock)
    known = {m.identity for m in partition.placements()}
    unknown = sorted((lock_set | unlock_set) - known)
    if unknown:
        shown = ", ".join(f"{n}|{p}" for n, p in unknown)
        raise ConfigurationError(f"Unknown student(s): {shown}")
    groups: List[Group] = []
    for g in partition.groups:
        members = []
        for m in g.members:
            locked = m.locked
            if m.identity in lock_set:
                locked = True
            if m.identity in unlock_set:
                locked = False
            members.append(Placement(m.student, locked))
        groups.append(Group(g.index, members, list(g.missing_programs) if g.missing_programs else None))
    return Partition(partition.group_size, list(partition.programs), groups)


def validate_constraints(partition: Partition) -> List[str]:
    """Human-readable problems: oversized groups and groups missing programs."""
    errors: List[str] = []
    for g in partition.groups:
        if g.size > partition.group_size:
            errors.append(f"Group {g.index} exceeds group size {partition.group_size}.")
        missing = missing_programs_for(g.members, partition.programs)
        if missing:
            errors.append(f"Group {g.index} missing programs: {', '.join(missing)}")
    return errors


# ------------------------------ Snapshots -----------------------------

def partition_to_dict(partition: Partition) -> dict:
    return {
        "group_size": partition.group_size,
        "programs": list(partition.programs),
        "groups": [
            {
                "index": g.index,
                "missing_programs": g.missing_programs,
                "students": [
                    {"name": m.name, "program": m.program, "locked": m.locked}
                    for m in g.members
                ],
            }
            for g in partition.groups
        ],
    }


def _snapshot_index(g: dict, pos: int) -> int:
    raw = g.get("index", pos + 1)
    if isinstance(raw, bool):
        raise ConfigurationError(f"Invalid snapshot: group {pos + 1} has index {raw!r}")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid snapshot: group {pos + 1} has index {raw!r}") from exc


def partition_from_dict(data: dict) -> Partition:
    """Rebuild a partition from :func:`partition_to_dict` output (or a hand-edited copy)."""
    if not isinstance(data, dict) or not isinstance(data.get("groups"), list):
        raise ConfigurationError("Snapshot must be an object with a 'groups' list")
    try:
        group_size = _check_group_size(data.get("group_size"))
    except ConfigurationError as exc:
        raise ConfigurationError(f"Invalid snapshot: {exc}") from exc

    raw_groups: List[Tuple[int, List[Placement]]] = []
    seen: Dict[int, int] = {}
    for pos, g in enumerate(data["groups"]):
        if not isinstance(g, dict) or not isinstance(g.get("students", []), list):
            raise ConfigurationError(f"Invalid snapshot: group {pos + 1} is not an object with a 'students' list")
        index = _snapshot_index(g, pos)
        if index in seen:
            raise ConfigurationError(f"Invalid snapshot: groups {seen[index]} and {pos + 1} share index {index}")
        seen[index] = pos + 1

        members: List[Placement] = []
        for s in g.get("students", []):
            if not isinstance(s, dict):
                raise ConfigurationError(f"Invalid snapshot: student entry {s!r} in group {index} is not an object")
            raw_name, raw_program = s.get("name") or "", s.get("program") or ""
            if not isinstance(raw_name, str) or not isinstance(raw_program, str):
                raise ConfigurationError(f"Invalid snapshot: name and program in group {index} must be strings")
            name, program = trim(raw_name), trim(raw_program)
            if not name or not program:
                continue
            members.append(Placement(Student(name, program), bool(s.get("locked", False))))
        raw_groups.append((index, members))

    programs = sorted({m.program for _idx, members in raw_groups for m in members})
    groups = [
        Group(index=idx, members=members, missing_programs=missing_programs_for(members, programs))
        for idx, members in raw_groups
    ]
    return Partition(group_size=group_size, programs=programs, groups=groups)
