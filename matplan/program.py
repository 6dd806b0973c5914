# matplan/program.py

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Tuple

if TYPE_CHECKING:
    from .plan import Plan


@dataclass(frozen=True)
class Program:
    """
    Arena form of a plan.

    Nodes are stored in post-order (children before parents) and addressed by
    index. ``indegree[i]`` counts the parent edges pointing at node ``i``; a
    node with more than one is shared and worth caching during execution.
    """

    nodes: Tuple["Plan", ...]
    children: Tuple[Tuple[int, ...], ...]
    indegree: Tuple[int, ...]
    root: int

    @classmethod
    def from_plan(cls, root: "Plan") -> "Program":
        index_of: Dict[int, int] = {}
        nodes: List[Plan] = []
        children: List[Tuple[int, ...]] = []

        # Iterative post-order walk keyed by object identity.
        stack: List[Tuple[Plan, bool]] = [(root, False)]
        while stack:
            node, expanded = stack.pop()
            if id(node) in index_of:
                continue
            if not expanded:
                stack.append((node, True))
                for child in reversed(node.children()):
                    if id(child) not in index_of:
                        stack.append((child, False))
                continue
            index_of[id(node)] = len(nodes)
            nodes.append(node)
            children.append(tuple(index_of[id(child)] for child in node.children()))

        indegree = [0] * len(nodes)
        for edges in children:
            for child in edges:
                indegree[child] += 1

        return cls(
            nodes=tuple(nodes),
            children=tuple(children),
            indegree=tuple(indegree),
            root=index_of[id(root)],
        )

    def __len__(self) -> int:
        return len(self.nodes)

    def shared(self) -> Tuple[int, ...]:
        """Indices of nodes referenced by more than one parent edge."""
        return tuple(i for i, count in enumerate(self.indegree) if count > 1)
