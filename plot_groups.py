#!/usr/bin/env python3
"""Draw a program-composition chart for a groups snapshot.

One stacked bar per group (students per program), a dashed line at the group
size, and a red marker under every group that is missing a program.
"""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Dict, List

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
from matplotlib.lines import Line2D

from export_groups import THEME_CHOICES, read_snapshot, themed_group_names
from grouping import ConfigurationError, Partition


def parse_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Plot program composition per group")
    ap.add_argument("--snapshot", default="groups.json", type=Path)
    ap.add_argument("--out", default=Path("groups_composition.png"), type=Path)
    ap.add_argument("--theme", choices=THEME_CHOICES, default="numeric", help="Group names on the x axis")
    ap.add_argument("--dpi", type=int, default=150, help="Output DPI")
    return ap.parse_args()


def program_counts(partition: Partition) -> Dict[str, List[int]]:
    """program -> students of that program in each group (group order)."""
    counts: Dict[str, List[int]] = {p: [0] * partition.num_groups for p in partition.programs}
    for pos, g in enumerate(partition.groups):
        for m in g.members:
            counts.setdefault(m.program, [0] * partition.num_groups)[pos] += 1
    return counts


def _program_palette(programs: List[str]) -> Dict[str, str]:
    cmap = plt.get_cmap("tab20", max(3, len(programs)))
    return {p: matplotlib.colors.rgb2hex(cmap(idx)) for idx, p in enumerate(programs)}


def plot_composition(partition: Partition, out_path: Path, *, theme: str = "numeric", dpi: int = 150) -> Path:
    if not partition.groups:
        raise RuntimeError("No groups to plot")
    counts = program_counts(partition)
    palette = _program_palette(sorted(counts))
    labels = themed_group_names(partition.num_groups, theme)
    xs = list(range(partition.num_groups))

    fig, ax = plt.subplots(figsize=(max(6, 0.8 * len(xs) + 2), 4.5))
    bottoms = [0] * len(xs)
    for program in sorted(counts):
        values = counts[program]
        ax.bar(xs, values, bottom=bottoms, color=palette[program], edgecolor="#1f1f1f", linewidth=0.6, label=program)
        bottoms = [b + v for b, v in zip(bottoms, values)]

    ax.axhline(partition.group_size, color="#555555", linestyle="--", linewidth=1)
    missing_x = [x for x, g in zip(xs, partition.groups) if g.missing_programs]
    if missing_x:
        ax.scatter(missing_x, [-0.35] * len(missing_x), marker="^", color="#cb181d", zorder=3, clip_on=False)

    handles = ax.get_legend_handles_labels()[0]
    handles.append(Line2D([0], [0], color="#555555", linestyle="--", label=f"group size ({partition.group_size})"))
    if missing_x:
        handles.append(Line2D([0], [0], marker="^", linestyle="", color="#cb181d", label="missing program(s)"))
    ax.legend(handles=handles, loc="upper right", fontsize=8)

    ax.set_xticks(xs, labels, rotation=30 if len(xs) > 8 else 0)
    tallest = max((g.size for g in partition.groups), default=0)
    ax.set_ylim(-0.6, max(partition.group_size, tallest) + 1)
    ax.set_ylabel("Students")
    ax.set_title(f"Program composition ({partition.total} students, {partition.num_groups} groups)")
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(out_path, dpi=dpi)
    plt.close(fig)
    return out_path


def main() -> None:
    args = parse_args()
    try:
        partition = read_snapshot(args.snapshot)
    except ConfigurationError as exc:
        raise SystemExit(str(exc))
    out = plot_composition(partition, args.out, theme=args.theme, dpi=args.dpi)
    print(f"Wrote chart to {out}")


if __name__ == "__main__":
    main()
