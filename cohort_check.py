"""Cohort integrity check between two partitions.

A cohort is the set of locked students sharing one group in the partition
*before* a reshuffle. After the reshuffle every cohort must sit in exactly one
group, complete, and no group may hold locked students of two cohorts.

The check builds a bipartite graph: cohort nodes on one side, after-groups on
the other, one edge per (cohort, group) pair that share a locked student. A
reshuffle is valid when every non-empty cohort node has exactly one edge, that
edge carries the whole cohort, and every group node has at most one edge.
"""

from __future__ import annotations

import warnings
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, FrozenSet, List, Set, Tuple

import networkx as nx

if TYPE_CHECKING:
    from grouping import Partition

Identity = Tuple[str, str]


@dataclass(frozen=True)
class Cohort:
    index: int  # group index in the partition the cohort was taken from
    members: FrozenSet[Identity]


def collect_cohorts(partition: "Partition") -> List[Cohort]:
    """One cohort per group that has locked students, in group order."""
    cohorts: List[Cohort] = []
    for g in partition.groups:
        locked = frozenset(m.identity for m in g.members if m.locked)
        if locked:
            cohorts.append(Cohort(g.index, locked))
    return cohorts


def _cohort_node(index: int) -> Tuple[str, int]:
    return ("cohort", index)


def _group_node(index: int) -> Tuple[str, int]:
    return ("group", index)


def build_cohort_graph(before: "Partition", after: "Partition") -> nx.Graph:
    cohorts = collect_cohorts(before)

    claims = Counter(ident for c in cohorts for ident in c.members)
    ambiguous = {ident for ident, n in claims.items() if n > 1}
    if ambiguous:
        shown = ", ".join(f"{n} ({p})" for n, p in sorted(ambiguous))
        warnings.warn(f"Locked in more than one group, ignored by cohort check: {shown}", stacklevel=3)

    owner: Dict[Identity, int] = {}
    graph = nx.Graph()
    for c in cohorts:
        members = c.members - ambiguous
        graph.add_node(_cohort_node(c.index), side="cohort", members=members)
        for ident in members:
            owner[ident] = c.index

    for g in after.groups:
        node = _group_node(g.index)
        graph.add_node(node, side="group")
        for m in g.members:
            if not m.locked or m.identity not in owner:
                continue
            cnode = _cohort_node(owner[m.identity])
            if not graph.has_edge(cnode, node):
                graph.add_edge(cnode, node, members=set())
            graph.edges[cnode, node]["members"].add(m.identity)
    return graph


def cohort_violations(before: "Partition", after: "Partition") -> List[str]:
    """Describe every split, merged, missing or incomplete cohort (empty list = valid)."""
    graph = build_cohort_graph(before, after)
    problems: List[str] = []

    for node, data in sorted(graph.nodes(data=True)):
        side, index = node
        neighbors = sorted(graph.neighbors(node))
        if side == "group":
            if len(neighbors) > 1:
                sources = ", ".join(str(i) for _s, i in neighbors)
                problems.append(f"Group {index} mixes locked students from groups {sources}")
            continue

        members: Set[Identity] = set(data["members"])
        if not members:
            continue
        if not neighbors:
            problems.append(f"Locked students of group {index} are missing")
        elif len(neighbors) > 1:
            targets = ", ".join(str(i) for _s, i in neighbors)
            problems.append(f"Locked students of group {index} were split across groups {targets}")
        else:
            found = graph.edges[node, neighbors[0]]["members"]
            if found != members:
                lost = ", ".join(f"{n} ({p})" for n, p in sorted(members - found))
                problems.append(f"Locked students of group {index} are incomplete: missing {lost}")
    return problems


def check_cohort_integrity(before: "Partition", after: "Partition") -> bool:
    return not cohort_violations(before, after)
