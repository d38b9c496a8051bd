#!/usr/bin/env python3
"""Reshuffle an existing set of groups while keeping locked students in place.

Inputs:
  - groups.json (--snapshot) or a named entry of a snapshot store (--store/--load)
  - locks: ``locked`` flags already in the snapshot, plus --lock / --unlock edits
    given as ``Name|Program``

Output:
  - a new snapshot (default: overwrite --snapshot only on success)

Students locked in the same group stay together in one group; two locked
groups are never merged. If the locks cannot fit the requested group size the
script exits with an error and leaves every file untouched.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional, Tuple

from cohort_check import collect_cohorts
from export_groups import (
    THEME_CHOICES,
    SnapshotStore,
    read_snapshot,
    write_groups_csv,
    write_markdown,
    write_snapshot,
)
from group_config import load_config
from grouping import (
    DecisionLogger,
    GroupingError,
    partition_from_dict,
    partition_to_dict,
    reshuffle_respecting_locks,
    with_locks,
)
from make_groups import print_summary


def parse_identity(token: str) -> Tuple[str, str]:
    name, sep, program = token.partition("|")
    if not sep or not name.strip() or not program.strip():
        raise argparse.ArgumentTypeError(f"expected 'Name|Program', got {token!r}")
    return name.strip(), program.strip()


def parse_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Reshuffle groups respecting locked students",
                                 formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    ap.add_argument("--snapshot", default="groups.json", type=Path, help="Snapshot to reshuffle")
    ap.add_argument("--store", type=Path, help="Snapshot store JSON file (with --load / --save-as)")
    ap.add_argument("--load", help="Label to read from --store instead of --snapshot")
    ap.add_argument("--save-as", help="Label under which the result is saved in --store")
    ap.add_argument("--group-size", type=int, help="New maximum group size (default: keep current)")
    ap.add_argument("--seed", type=int, help="Seed for a reproducible shuffle")
    ap.add_argument("--lock", action="append", default=[], type=parse_identity, metavar="NAME|PROGRAM",
                    help="Lock a student before reshuffling (repeatable)")
    ap.add_argument("--unlock", action="append", default=[], type=parse_identity, metavar="NAME|PROGRAM",
                    help="Unlock a student before reshuffling (repeatable)")
    ap.add_argument("--compact", action="store_true", help="Pack locked groups into the lowest group numbers")
    ap.add_argument("--config", type=Path, help="Optional JSON file with CONFIG overrides")
    ap.add_argument("--out", type=Path, help="Snapshot output (default: --snapshot)")
    ap.add_argument("--csv-out", type=Path, help="Optional row CSV output (group,name,program)")
    ap.add_argument("--md-out", type=Path, help="Optional Markdown output")
    ap.add_argument("--theme", choices=THEME_CHOICES, help="Group names used in Markdown (default from config)")
    ap.add_argument("--decision-log", type=Path, help="Optional CSV of every placement decision")
    return ap.parse_args()


def load_source(args: argparse.Namespace):
    """Return (partition, roster_text or None)."""
    if args.load:
        if not args.store:
            raise SystemExit("--load requires --store")
        entry: Optional[dict] = SnapshotStore(args.store).load(args.load)
        if entry is None:
            known = ", ".join(SnapshotStore(args.store).list()) or "none"
            raise SystemExit(f"No snapshot named '{args.load}' in {args.store} (saved: {known})")
        return partition_from_dict(entry.get("partition", {})), entry.get("roster")
    return read_snapshot(args.snapshot), None


def main() -> None:
    args = parse_args()
    cfg = load_config(args.config)
    if args.save_as and not args.store:
        raise SystemExit("--save-as requires --store")

    seed = args.seed if args.seed is not None else cfg["SEED"]
    compact = args.compact or bool(cfg["COMPACT_COHORTS"])
    logger = DecisionLogger() if args.decision_log else None

    try:
        current, roster_text = load_source(args)
        store = SnapshotStore(args.store) if args.save_as else None
        if store is not None:
            store.list()  # unreadable store aborts before any file is written
        current = with_locks(current, lock=args.lock, unlock=args.unlock)
        result = reshuffle_respecting_locks(current, args.group_size, seed=seed, compact=compact, logger=logger)
    except GroupingError as exc:
        raise SystemExit(f"Error: {exc}")

    out: Path = args.out or args.snapshot
    snapshot = partition_to_dict(result)
    write_snapshot(snapshot, out)
    cohorts = collect_cohorts(current)
    print(f"Wrote groups → {out} ({len(cohorts)} locked group(s) kept together)")
    print_summary(result)

    if args.csv_out:
        write_groups_csv(result, args.csv_out)
        print(f"Wrote groups CSV → {args.csv_out}")
    if args.md_out:
        write_markdown(result, args.md_out, args.theme or cfg["THEME"])
        print(f"Wrote groups Markdown → {args.md_out}")
    if logger is not None:
        logger.write_csv(args.decision_log)
        print(f"Wrote decision log → {args.decision_log}")
    if args.save_as:
        store.save(args.save_as, {"roster": roster_text, "partition": snapshot})
        print(f"Saved '{args.save_as}' in {args.store}")


if __name__ == "__main__":
    main()
