from __future__ import annotations

import pytest

from cohort_check import check_cohort_integrity
from grouping import (
    CapacityError,
    ConfigurationError,
    DecisionLogger,
    group_students,
    partition_from_dict,
    partition_to_dict,
    reshuffle_respecting_locks,
    validate_constraints,
    with_locks,
)
from tests.utils import group_of, identity_counts, layout, make_roster, partition_of, students_from

SIX = [("A", "CS"), ("B", "Math"), ("C", "Physics"), ("D", "CS"), ("E", "Math"), ("F", "Physics")]


def _locked_names(partition, index):
    return sorted(m.name for m in partition.groups[index - 1].members if m.locked)


def _base_with_two_cohorts(seed: int):
    base = group_students(make_roster({"A": 6, "B": 5, "C": 4}), 4, seed=seed)
    g1 = base.groups[0].members
    g3 = base.groups[2].members
    lock = [g1[0].identity, g1[1].identity, g3[0].identity]
    return with_locks(base, lock=lock)


@pytest.mark.parametrize("group_size", [3, 4, 5, 6, 7, 8])
@pytest.mark.parametrize("seed", [0, 7, 42])
def test_reshuffle_keeps_cohorts_together(group_size: int, seed: int) -> None:
    before = _base_with_two_cohorts(seed)
    after = reshuffle_respecting_locks(before, group_size, seed=seed)

    assert check_cohort_integrity(before, after)
    assert after.total == before.total == 15
    assert all(g.size <= group_size for g in after.groups)
    assert after.num_groups == -(-15 // group_size)
    assert identity_counts(after) == identity_counts(before)
    locked_before = {m.identity for m in before.placements() if m.locked}
    locked_after = {m.identity for m in after.placements() if m.locked}
    assert locked_before == locked_after


def test_cohorts_keep_their_group_numbers_when_possible() -> None:
    before = _base_with_two_cohorts(3)
    after = reshuffle_respecting_locks(before, 4, seed=3)

    assert _locked_names(after, 1) == _locked_names(before, 1)
    assert _locked_names(after, 3) == _locked_names(before, 3)
    assert _locked_names(after, 2) == [] and _locked_names(after, 4) == []


def test_cohort_larger_than_group_size_is_capacity_error() -> None:
    five = [(f"S{i}", "CS" if i % 2 else "Math", True) for i in range(5)]
    before = partition_of(5, [five, [("T1", "CS", False), ("T2", "Math", False)]])

    with pytest.raises(CapacityError, match="5 locked"):
        reshuffle_respecting_locks(before, 4, seed=1)


def test_more_cohorts_than_groups_is_capacity_error() -> None:
    before = partition_of(2, [
        [("A", "CS", True), ("B", "Math", False)],
        [("C", "CS", True), ("D", "Math", False)],
        [("E", "CS", True), ("F", "Math", False)],
    ])
    snapshot = layout(before)

    with pytest.raises(CapacityError):
        reshuffle_respecting_locks(before, 6, seed=1)
    assert layout(before) == snapshot


def test_single_pinned_student_when_group_count_grows() -> None:
    base = group_students(students_from(SIX), 3, seed=1)
    pinned = base.groups[0].members[0]
    before = with_locks(base, lock=[pinned.identity])

    after = reshuffle_respecting_locks(before, 2, seed=1)

    assert after.num_groups == 3
    assert group_of(after, pinned.name) == 1
    assert [m.name for m in after.placements() if m.locked] == [pinned.name]
    assert all(g.size <= 2 for g in after.groups)
    assert after.total == 6
    assert check_cohort_integrity(before, after)


def test_cohort_beyond_new_group_count_moves_to_free_group() -> None:
    before = partition_of(2, [
        [("A", "CS", True), ("B", "Math", False)],
        [("C", "CS", False), ("D", "Math", False)],
        [("E", "CS", False), ("F", "Math", False)],
        [("G", "CS", True), ("H", "Math", True)],
    ])
    after = reshuffle_respecting_locks(before, 4, seed=2)

    assert after.num_groups == 2
    assert group_of(after, "A") == 1
    assert group_of(after, "G") == group_of(after, "H") == 2
    assert check_cohort_integrity(before, after)


def test_compact_packs_cohorts_into_lowest_groups() -> None:
    groups = [
        [("A", "CS", False), ("B", "Math", False)],
        [("C", "CS", True), ("D", "Math", False)],
        [("E", "CS", False), ("F", "Math", False)],
        [("G", "CS", True), ("H", "Math", False)],
    ]
    before = partition_of(2, groups)

    kept = reshuffle_respecting_locks(before, 2, seed=4)
    assert group_of(kept, "C") == 2 and group_of(kept, "G") == 4

    packed = reshuffle_respecting_locks(before, 2, seed=4, compact=True)
    assert group_of(packed, "C") == 1 and group_of(packed, "G") == 2
    assert check_cohort_integrity(before, packed)


def test_gaps_are_filled_from_unlocked_students() -> None:
    base = group_students(make_roster({"Bio": 4, "CS": 4, "Math": 4}), 3, seed=11)
    before = with_locks(base, lock=[base.groups[1].members[0].identity])

    after = reshuffle_respecting_locks(before, 3, seed=5)

    assert after.num_groups == 4
    assert all(g.missing_programs is None for g in after.groups)
    assert validate_constraints(after) == []


def test_exhausted_program_is_reported_not_raised() -> None:
    before = partition_of(3, [
        [("CS1", "CS", True), ("CS2", "CS", True), ("M1", "Math", False)],
        [("M2", "Math", False), ("M3", "Math", False), ("M4", "Math", False)],
    ])
    after = reshuffle_respecting_locks(before, 2, seed=1)

    assert after.num_groups == 3
    assert _locked_names(after, 1) == ["CS1", "CS2"]
    assert after.groups[0].missing_programs == ["Math"]
    assert after.groups[1].missing_programs == ["CS"]
    assert after.groups[2].missing_programs == ["CS"]


def test_reshuffle_defaults_to_current_group_size() -> None:
    before = with_locks(group_students(students_from(SIX), 3, seed=2), lock=[("A", "CS")])
    after = reshuffle_respecting_locks(before, seed=6)
    assert after.group_size == 3
    assert after.num_groups == 2


def test_reshuffle_is_deterministic_and_leaves_input_alone() -> None:
    before = _base_with_two_cohorts(21)
    snapshot = partition_to_dict(before)

    first = reshuffle_respecting_locks(before, 5, seed=99)
    second = reshuffle_respecting_locks(before, 5, seed=99)

    assert layout(first) == layout(second)
    assert partition_to_dict(before) == snapshot


def test_reshuffle_logs_cohorts_and_fills() -> None:
    logger = DecisionLogger()
    before = _base_with_two_cohorts(4)
    reshuffle_respecting_locks(before, 4, seed=4, logger=logger)

    cohort_rows = [r for r in logger.rows if r["Phase"] == "cohort"]
    assert len(cohort_rows) == 3
    placed = [r for r in logger.rows if r["Name"]]
    assert len(placed) == before.total


def test_reshuffle_rejects_bad_sizes() -> None:
    before = group_students(students_from(SIX), 3, seed=1)
    with pytest.raises(ConfigurationError):
        reshuffle_respecting_locks(before, 0)
    empty = partition_of(3, [[]])
    with pytest.raises(ConfigurationError):
        reshuffle_respecting_locks(empty, 3)


def test_with_locks_toggles_and_rejects_unknown_students() -> None:
    base = group_students(students_from(SIX), 3, seed=1)
    locked = with_locks(base, lock=[("A", "CS"), ("B", "Math")])
    assert {m.name for m in locked.placements() if m.locked} == {"A", "B"}
    assert not any(m.locked for m in base.placements())

    unlocked = with_locks(locked, unlock=[("A", "CS")])
    assert {m.name for m in unlocked.placements() if m.locked} == {"B"}

    with pytest.raises(ConfigurationError, match="Nobody"):
        with_locks(base, lock=[("Nobody", "CS")])


def test_validate_constraints_reports_size_and_coverage() -> None:
    partition = partition_of(2, [
        [("A", "CS", False), ("B", "Math", False), ("C", "CS", False)],
        [("D", "CS", False)],
    ])
    assert validate_constraints(partition) == [
        "Group 1 exceeds group size 2.",
        "Group 2 missing programs: Math",
    ]


def test_snapshot_round_trip_keeps_locks() -> None:
    before = _base_with_two_cohorts(5)
    restored = partition_from_dict(partition_to_dict(before))
    assert layout(restored) == layout(before)
    assert restored.group_size == before.group_size
    assert restored.programs == before.programs


@pytest.mark.parametrize("data", [
    {},
    {"group_size": 0, "groups": []},
    {"group_size": "3", "groups": []},
    {"group_size": 3, "groups": "nope"},
    {"group_size": 3, "groups": [{"index": "one", "students": []}]},
    {"group_size": 3, "groups": [{"index": True, "students": []}]},
    {"group_size": 3, "groups": [["A", "CS"]]},
    {"group_size": 3, "groups": [{"index": 1, "students": "A,CS"}]},
    {"group_size": 3, "groups": [{"index": 1, "students": [["A", "CS"]]}]},
    {"group_size": 3, "groups": [{"index": 1, "students": [{"name": 7, "program": "CS"}]}]},
])
def test_malformed_snapshot_is_configuration_error(data) -> None:
    with pytest.raises(ConfigurationError):
        partition_from_dict(data)


def test_snapshot_with_repeated_group_index_is_rejected() -> None:
    data = {
        "group_size": 2,
        "groups": [
            {"index": 1, "students": [{"name": "A", "program": "CS", "locked": True},
                                      {"name": "B", "program": "Math", "locked": False}]},
            {"index": 1, "students": [{"name": "C", "program": "CS", "locked": True},
                                      {"name": "D", "program": "Math", "locked": False}]},
        ],
    }
    with pytest.raises(ConfigurationError, match="share index 1"):
        partition_from_dict(data)

    data["groups"][1]["index"] = 2
    restored = partition_from_dict(data)
    result = reshuffle_respecting_locks(restored, 2, seed=1)
    assert check_cohort_integrity(restored, result)
    assert _locked_names(result, 1) == ["A"]
    assert _locked_names(result, 2) == ["C"]


def test_snapshot_keeps_blank_and_null_students_out() -> None:
    restored = partition_from_dict({
        "group_size": 2,
        "groups": [{"students": [{"name": None, "program": "CS"}, {"name": "Ann", "program": " CS "}]}],
    })
    assert layout(restored) == [[("Ann", "CS", False)]]
    assert restored.groups[0].index == 1
