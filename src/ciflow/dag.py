# dag.py
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Dict, List, Sequence

from .errors import CyclicDependency, MalformedDefinition
from .model import JobDefinition


@dataclass(frozen=True)
class JobGraph:
    """
    Index-based DAG over the jobs of a workflow.

    names[i] is job i (declaration order); needs[i] are the indices job i
    depends on; dependents[i] are the indices that depend on job i.
    """
    names: tuple[str, ...]
    needs: tuple[tuple[int, ...], ...]
    dependents: tuple[tuple[int, ...], ...]

    def index(self, name: str) -> int:
        return self.names.index(name)


def build_dag(jobs: Sequence[JobDefinition]) -> JobGraph:
    """
    Build a DAG from job definitions.

    Requires:
      - job.name: str (unique)
      - job.needs: names of jobs that must finish BEFORE this job
    Raises MalformedDefinition on duplicates / unknown needs and
    CyclicDependency if the graph has a cycle.
    """
    names = [j.name for j in jobs]
    index: Dict[str, int] = {}
    for i, name in enumerate(names):
        if name in index:
            raise MalformedDefinition(f"jobs.{name}", f"duplicate job name {name!r}")
        index[name] = i

    needs: List[List[int]] = [[] for _ in names]
    dependents: List[List[int]] = [[] for _ in names]
    for i, job in enumerate(jobs):
        for dep in job.needs:
            if dep not in index:
                raise MalformedDefinition(
                    f"jobs.{job.name}.needs",
                    f"job {job.name!r} needs unknown job {dep!r}. Known jobs: {names}",
                )
            d = index[dep]
            if d not in needs[i]:
                needs[i].append(d)
                dependents[d].append(i)

    graph = JobGraph(
        names=tuple(names),
        needs=tuple(tuple(n) for n in needs),
        dependents=tuple(tuple(d) for d in dependents),
    )
    _check_acyclic(graph)
    return graph


def _check_acyclic(graph: JobGraph) -> None:
    # One pass, iterative DFS with colors; reports the first cycle found.
    white, grey, black = 0, 1, 2
    color = [white] * len(graph.names)

    for root in range(len(graph.names)):
        if color[root] != white:
            continue
        path: List[int] = [root]
        stack = [iter(graph.needs[root])]
        color[root] = grey
        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                stack.pop()
                color[path.pop()] = black
                continue
            if color[nxt] == grey:
                cycle = path[path.index(nxt):] + [nxt]
                # needs edges point backwards; report in execution order
                raise CyclicDependency([graph.names[i] for i in reversed(cycle)])
            if color[nxt] == white:
                color[nxt] = grey
                path.append(nxt)
                stack.append(iter(graph.needs[nxt]))


def topo_levels(graph: JobGraph) -> List[List[str]]:
    """
    Convert the DAG into topological "levels" (stages).
    Each stage could run in parallel; declaration order is kept within a stage.
    """
    indeg = [len(n) for n in graph.needs]
    q = deque(i for i, d in enumerate(indeg) if d == 0)

    levels: List[List[str]] = []
    while q:
        level = sorted(q)
        q.clear()
        levels.append([graph.names[i] for i in level])
        for node in level:
            for child in graph.dependents[node]:
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

    return levels
