"""In-memory traversal over the permission implication graph.

The graph is an adjacency list keyed by permission id: an edge
parent → child means holding `parent` grants `child`. Every traversal
here is iterative with an explicit stack and a visited-set, so it
terminates in O(V + E) even if stored data already contains a cycle.
"""

from typing import Iterable


def build_adjacency(edges: Iterable[tuple[str, str]]) -> dict[str, set[str]]:
    """Group (parent, child) pairs into {parent: {children}}."""
    adjacency: dict[str, set[str]] = {}
    for parent, child in edges:
        adjacency.setdefault(parent, set()).add(child)
    return adjacency


def path_exists(adjacency: dict[str, set[str]], start: str, target: str) -> bool:
    """True if `target` is reachable from `start` (start == target counts)."""
    return find_path(adjacency, start, target) is not None


def find_path(
    adjacency: dict[str, set[str]], start: str, target: str
) -> list[str] | None:
    """Return one path start → … → target, or None if unreachable."""
    if start == target:
        return [start]

    parents: dict[str, str] = {}
    visited = {start}
    stack = [start]
    while stack:
        node = stack.pop()
        for child in sorted(adjacency.get(node, ())):
            if child in visited:
                continue
            parents[child] = node
            if child == target:
                path = [child]
                while path[-1] != start:
                    path.append(parents[path[-1]])
                path.reverse()
                return path
            visited.add(child)
            stack.append(child)
    return None


def expand_closure(adjacency: dict[str, set[str]], seeds: Iterable[str]) -> set[str]:
    """Seeds plus every permission reachable from them."""
    result = set(seeds)
    stack = list(result)
    while stack:
        node = stack.pop()
        for child in adjacency.get(node, ()):
            if child not in result:
                result.add(child)
                stack.append(child)
    return result


def find_cycle(adjacency: dict[str, set[str]]) -> list[str] | None:
    """Return a cycle as [a, b, …, a] if one exists, else None.

    Three-colour DFS: a back edge to a node still on the current path
    closes a cycle.
    """
    WHITE, GREY, BLACK = 0, 1, 2
    colour: dict[str, int] = {}
    nodes = set(adjacency)
    for children in adjacency.values():
        nodes.update(children)

    for root in sorted(nodes):
        if colour.get(root, WHITE) != WHITE:
            continue
        path = [root]
        colour[root] = GREY
        # Each frame: (node, iterator over its remaining children)
        frames = [(root, iter(sorted(adjacency.get(root, ()))))]
        while frames:
            node, children = frames[-1]
            advanced = False
            for child in children:
                state = colour.get(child, WHITE)
                if state == GREY:
                    return path[path.index(child):] + [child]
                if state == WHITE:
                    colour[child] = GREY
                    path.append(child)
                    frames.append((child, iter(sorted(adjacency.get(child, ())))))
                    advanced = True
                    break
            if not advanced:
                colour[node] = BLACK
                path.pop()
                frames.pop()
    return None


def would_create_cycle(
    adjacency: dict[str, set[str]], parent: str, child: str
) -> list[str] | None:
    """If adding parent → child closes a cycle, return the existing child → parent path."""
    return find_path(adjacency, child, parent)
