#!/usr/bin/env python3
"""Export a groups snapshot as a row CSV and/or a Markdown listing.

Inputs:
  - groups.json        (snapshot written by make_groups.py / reshuffle_groups.py)

Outputs:
  - groups.csv         columns: group,name,program (one row per student)
  - groups.md          "# Groups" then "## <group name>" and "- name (program)" lines

Also hosts ``SnapshotStore``, the small JSON key/value file used to keep named
class lists (raw roster text + last partition) between runs.
"""

from __future__ import annotations

import argparse
import csv
import json
from pathlib import Path
from typing import Dict, List, Optional

from group_config import load_config
from grouping import ConfigurationError, Partition, partition_from_dict

CSV_FIELDS = ["group", "name", "program"]

THEMES: Dict[str, List[str]] = {
    "greek": ["Alpha", "Beta", "Gamma", "Delta", "Epsilon", "Zeta", "Eta", "Theta", "Iota", "Kappa", "Lambda", "Mu",
              "Nu", "Xi", "Omicron", "Pi", "Rho", "Sigma", "Tau", "Upsilon", "Phi", "Chi", "Psi", "Omega"],
    "colors": ["Red", "Blue", "Green", "Yellow", "Purple", "Orange", "Teal", "Cyan", "Magenta", "Lime", "Indigo",
               "Violet", "Amber", "Rose", "Emerald", "Sapphire", "Ruby", "Topaz"],
    "animals": ["Lion", "Tiger", "Bear", "Wolf", "Eagle", "Falcon", "Dolphin", "Fox", "Owl", "Hawk", "Panther",
                "Cheetah", "Bison", "Moose", "Koala", "Penguin", "Otter", "Orca"],
    "planets": ["Mercury", "Venus", "Earth", "Mars", "Jupiter", "Saturn", "Uranus", "Neptune", "Pluto"],
    "norse": ["Odin", "Thor", "Freya", "Loki", "Baldr", "Frigg", "Heimdall", "Tyr", "Njord", "Sif", "Skadi", "Bragi"],
}
THEME_CHOICES = ("numeric",) + tuple(THEMES)


def themed_group_names(num_groups: int, theme: str = "numeric") -> List[str]:
    """Display names for groups 1..num_groups; past the end of a theme, fall back to 'Group i'."""
    names = THEMES.get(theme, [])
    return [names[i] if i < len(names) else f"Group {i + 1}" for i in range(num_groups)]


# ---------------------------- Exports --------------------------------

def group_rows(partition: Partition) -> List[Dict[str, str]]:
    rows: List[Dict[str, str]] = []
    for g in partition.groups:
        for m in g.members:
            rows.append({"group": str(g.index), "name": m.name, "program": m.program})
    return rows


def write_groups_csv(partition: Partition, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as fh:
        w = csv.DictWriter(fh, fieldnames=CSV_FIELDS)
        w.writeheader()
        w.writerows(group_rows(partition))


def render_markdown(partition: Partition, theme: str = "numeric") -> str:
    names = themed_group_names(partition.num_groups, theme)
    lines = ["# Groups"]
    for name, g in zip(names, partition.groups):
        lines.append(f"\n## {name}")
        for m in g.members:
            lines.append(f"- {m.name} ({m.program})")
    return "\n".join(lines) + "\n"


def write_markdown(partition: Partition, path: Path, theme: str = "numeric") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_markdown(partition, theme), encoding="utf-8")


def read_snapshot(path: Path) -> Partition:
    if not path.exists():
        raise SystemExit(f"Missing file: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{path} is not valid JSON: {exc}") from exc
    return partition_from_dict(data)


def write_snapshot(data: dict, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


# ---------------------------- Store ----------------------------------

class SnapshotStore:
    """Named snapshots kept in one JSON file: ``{label: value}``."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"{self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"{self.path} does not hold a snapshot store")
        return data

    def save(self, key: str, value: dict) -> None:
        data = self._read()
        data[key] = value
        write_snapshot(data, self.path)

    def load(self, key: str) -> Optional[dict]:
        entry = self._read().get(key)
        if entry is not None and not isinstance(entry, dict):
            raise ConfigurationError(f"Entry '{key}' in {self.path} is not an object")
        return entry

    def list(self) -> List[str]:
        return sorted(self._read())


# ---------------------------- CLI ------------------------------------

def parse_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Export groups as CSV and/or Markdown",
                                 formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    ap.add_argument("--snapshot", default="groups.json", type=Path, help="Snapshot written by make_groups.py")
    ap.add_argument("--csv-out", type=Path, help="Row CSV output (group,name,program)")
    ap.add_argument("--md-out", type=Path, help="Markdown output")
    ap.add_argument("--theme", choices=THEME_CHOICES, help="Group names used in Markdown (default from config)")
    ap.add_argument("--config", type=Path, help="Optional JSON file with CONFIG overrides")
    return ap.parse_args()


def main() -> None:
    args = parse_args()
    cfg = load_config(args.config)
    if not args.csv_out and not args.md_out:
        raise SystemExit("Nothing to do: pass --csv-out and/or --md-out")
    try:
        partition = read_snapshot(args.snapshot)
    except ConfigurationError as exc:
        raise SystemExit(str(exc))
    if args.csv_out:
        write_groups_csv(partition, args.csv_out)
        print(f"Wrote groups CSV → {args.csv_out}")
    if args.md_out:
        write_markdown(partition, args.md_out, args.theme or cfg["THEME"])
        print(f"Wrote groups Markdown → {args.md_out}")


if __name__ == "__main__":
    main()
