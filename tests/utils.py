"""Fixtures and helpers for grouping tests."""
from __future__ import annotations

import csv
import json
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple

from grouping import Group, Partition, Placement, Student, missing_programs_for

ROSTER_HEADER: Sequence[str] = ("name", "program")


def students_from(pairs: Iterable[Tuple[str, str]]) -> List[Student]:
    return [Student(name, program) for name, program in pairs]


def make_roster(counts: Dict[str, int]) -> List[Student]:
    """``{"CS": 3}`` -> CS1, CS2, CS3 (programs in the given order)."""
    students: List[Student] = []
    for program, n in counts.items():
        students.extend(Student(f"{program}{i}", program) for i in range(1, n + 1))
    return students


def write_roster(path: Path, pairs: Iterable[Tuple[str, str]], header: Sequence[str] = ROSTER_HEADER) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh)
        if header:
            writer.writerow(header)
        writer.writerows(pairs)
    return path


def partition_of(group_size: int, groups: Sequence[Sequence[Tuple[str, str, bool]]]) -> Partition:
    """Hand-built partition from ``[(name, program, locked), ...]`` per group."""
    built: List[Tuple[int, List[Placement]]] = []
    for i, members in enumerate(groups):
        built.append((i + 1, [Placement(Student(n, p), locked) for n, p, locked in members]))
    programs = sorted({m.program for _i, ms in built for m in ms})
    return Partition(
        group_size=group_size,
        programs=programs,
        groups=[Group(i, ms, missing_programs_for(ms, programs)) for i, ms in built],
    )


def layout(partition: Partition) -> List[List[Tuple[str, str, bool]]]:
    return [[(m.name, m.program, m.locked) for m in g.members] for g in partition.groups]


def group_of(partition: Partition, name: str) -> int:
    for g in partition.groups:
        if any(m.name == name for m in g.members):
            return g.index
    raise KeyError(name)


def identity_counts(partition: Partition) -> Counter:
    return Counter(m.identity for m in partition.placements())


def read_json(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))
