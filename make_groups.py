#!/usr/bin/env python3
"""Build program-balanced groups from a roster CSV.

Inputs:
  - roster CSV (--roster) or a CSV URL (--roster-url, cached to ROSTER_CACHE)

Outputs:
  - groups.json          snapshot (group size, programs, groups with lock flags)
  - optional groups CSV / Markdown, decision log, named entry in a snapshot store

Every group receives one student of each program when the program has at least
as many students as there are groups; otherwise the group lists the program in
``missing_programs`` and a warning line is printed.
"""

from __future__ import annotations

import argparse
from pathlib import Path

from export_groups import THEME_CHOICES, SnapshotStore, write_groups_csv, write_markdown, write_snapshot
from group_config import load_config
from grouping import DecisionLogger, GroupingError, group_students, partition_to_dict
from roster import fetch_roster, load_roster


def parse_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Split a roster into program-balanced groups",
                                 formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    src = ap.add_mutually_exclusive_group(required=True)
    src.add_argument("--roster", type=Path, help="Roster CSV with name and program columns")
    src.add_argument("--roster-url", help="URL of a roster CSV (e.g. a Google Sheets export link)")
    ap.add_argument("--group-size", type=int, help="Maximum students per group (default from config)")
    ap.add_argument("--seed", type=int, help="Seed for a reproducible shuffle")
    ap.add_argument("--config", type=Path, help="Optional JSON file with CONFIG overrides")
    ap.add_argument("--out", default="groups.json", type=Path, help="Snapshot output")
    ap.add_argument("--csv-out", type=Path, help="Optional row CSV output (group,name,program)")
    ap.add_argument("--md-out", type=Path, help="Optional Markdown output")
    ap.add_argument("--theme", choices=THEME_CHOICES, help="Group names used in Markdown (default from config)")
    ap.add_argument("--decision-log", type=Path, help="Optional CSV of every placement decision")
    ap.add_argument("--store", type=Path, help="Snapshot store JSON file used with --save-as")
    ap.add_argument("--save-as", help="Label under which roster + groups are saved in --store")
    return ap.parse_args()


def print_summary(partition) -> None:
    print(f"{partition.total} students → {partition.num_groups} groups of ≤{partition.group_size} "
          f"(programs: {', '.join(partition.programs)})")
    for g in partition.groups:
        if g.missing_programs:
            print(f"  WARNING: group {g.index} missing programs: {', '.join(g.missing_programs)}")


def main() -> None:
    args = parse_args()
    cfg = load_config(args.config)
    if args.save_as and not args.store:
        raise SystemExit("--save-as requires --store")

    group_size = args.group_size if args.group_size is not None else cfg["GROUP_SIZE"]
    seed = args.seed if args.seed is not None else cfg["SEED"]
    logger = DecisionLogger() if args.decision_log else None

    try:
        if args.roster_url:
            roster_text, students = fetch_roster(args.roster_url, cfg)
        else:
            roster_text, students = load_roster(args.roster, cfg)
        store = SnapshotStore(args.store) if args.save_as else None
        if store is not None:
            store.list()  # unreadable store aborts before any file is written
        partition = group_students(students, group_size, seed=seed, logger=logger)
    except GroupingError as exc:
        raise SystemExit(f"Error: {exc}")

    snapshot = partition_to_dict(partition)
    write_snapshot(snapshot, args.out)
    print(f"Wrote groups → {args.out}")
    print_summary(partition)

    if args.csv_out:
        write_groups_csv(partition, args.csv_out)
        print(f"Wrote groups CSV → {args.csv_out}")
    if args.md_out:
        write_markdown(partition, args.md_out, args.theme or cfg["THEME"])
        print(f"Wrote groups Markdown → {args.md_out}")
    if logger is not None:
        logger.write_csv(args.decision_log)
        print(f"Wrote decision log → {args.decision_log}")
    if args.save_as:
        store.save(args.save_as, {"roster": roster_text, "partition": snapshot})
        print(f"Saved '{args.save_as}' in {args.store}")


if __name__ == "__main__":
    main()
