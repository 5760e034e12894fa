"""Dependency graph utilities.

Builds the local-only dependency graph of a repository (edges only between
packages that live in this repository) and provides a deterministic
topological order for reporting and writing bumps. Both fail loudly on
cycles: a package that transitively depends on itself has no well-defined
bump order.
"""

from __future__ import annotations

from .errors import CycleError
from .models import (
    DependencyGraphNode,
    DepType,
    PackageInfo,
    supported_dependency_fields,
)


def build_local_dependency_graph(
    packages: list[PackageInfo],
    update_peer: bool = True,
    update_optional: bool = True,
) -> list[DependencyGraphNode]:
    """Build one graph node per package with its local dependency subtree.

    Dependencies are walked depth-first. A package that's already been
    expanded isn't expanded again; its child nodes are shared by every
    parent that reaches it.

    Args:
        packages: All packages in the repository.
        update_peer: Follow peerDependencies edges.
        update_optional: Follow optionalDependencies edges.

    Returns:
        One DependencyGraphNode (dep_type "self") per package, in input order.

    Raises:
        CycleError: If a cycle is found. Its cycle attribute lists the names
                    in traversal order, e.g. ["a", "b", "a"].

    Example:
        c depends on a and b, both of which depend on d:
        c → [a → [d], b → [d]]
    """
    by_name = {p.name: p for p in packages}
    fields = supported_dependency_fields(update_peer, update_optional)
    expanded: dict[str, list[DependencyGraphNode]] = {}
    stack: list[str] = []

    def expand(name: str) -> list[DependencyGraphNode]:
        if name in expanded:
            return expanded[name]
        if name in stack:
            raise CycleError(stack[stack.index(name) :] + [name])

        stack.append(name)
        children: list[DependencyGraphNode] = []
        for field in fields:
            for dep_name in by_name[name].dependency_map(field):
                # External (registry) dependencies aren't graph edges
                if dep_name not in by_name:
                    continue
                children.append(
                    DependencyGraphNode(
                        package=by_name[dep_name],
                        dep_type=DepType(field.value),
                        deps=expand(dep_name),
                    )
                )
        stack.pop()
        expanded[name] = children
        return children

    return [
        DependencyGraphNode(package=p, dep_type=DepType.SELF, deps=expand(p.name))
        for p in packages
    ]


def topo_sort(
    packages: list[PackageInfo],
    update_peer: bool = True,
    update_optional: bool = True,
) -> list[str]:
    """Topologically sort packages by their local dependencies.

    Uses Kahn's algorithm so dependencies come before dependents. Packages
    that become ready at the same time are sorted alphabetically for
    deterministic output.

    Raises:
        CycleError: If a dependency cycle is detected.

    Example:
        If a depends on b, and b depends on c:
        topo_sort([a, b, c]) → ["c", "b", "a"]
    """
    names = {p.name for p in packages}
    fields = supported_dependency_fields(update_peer, update_optional)

    in_degree = {p.name: 0 for p in packages}
    reverse_deps: dict[str, list[str]] = {p.name: [] for p in packages}
    for pkg in packages:
        for dep in pkg.local_dependency_names(names, fields):
            if dep == pkg.name:
                raise CycleError([pkg.name, pkg.name])
            in_degree[pkg.name] += 1
            reverse_deps[dep].append(pkg.name)

    queue = sorted(n for n, d in in_degree.items() if d == 0)
    order: list[str] = []

    while queue:
        node = queue.pop(0)
        order.append(node)
        for dependent in sorted(reverse_deps[node]):
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    if len(order) != len(packages):
        remaining = sorted(names - set(order))
        raise CycleError(remaining + remaining[:1])

    return order


def render_graph(nodes: list[DependencyGraphNode], indent: str = "  ") -> str:
    """Render the graph as an indented text tree.

    Example:
        c (1.0.0)
          a (1.0.0) [dependencies]
            d (1.0.0) [dependencies]
    """
    lines: list[str] = []

    def walk(node: DependencyGraphNode, depth: int) -> None:
        suffix = "" if node.dep_type == DepType.SELF else f" [{node.dep_type.value}]"
        lines.append(f"{indent * depth}{node.name} ({node.package.version}){suffix}")
        for child in node.deps:
            walk(child, depth + 1)

    for node in nodes:
        walk(node, 0)
    return "\n".join(lines)
