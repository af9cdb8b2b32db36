"""
Part dependency graph. Edges are "part_number depends on depends_on"; the graph is
kept acyclic so tracing always terminates.
"""

import logging
from collections import deque
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleetready.core.errors import DependencyCycleError
from fleetready.core.types import utcnow
from fleetready.models.part_dependencies import PartDependency

logger = logging.getLogger(__name__)


def normalize_part(part_number: str) -> str:
    return part_number.strip().upper()


def _children(db: Session, part_number: str) -> list[str]:
    return list(
        db.execute(
            select(PartDependency.depends_on)
            .where(PartDependency.part_number == part_number)
            .order_by(PartDependency.depends_on)
        ).scalars()
    )


def find_path(db: Session, start: str, goal: str) -> Optional[list[str]]:
    """Shortest dependency path start -> ... -> goal, or None."""
    if start == goal:
        return [start]
    prev: dict[str, str] = {}
    queue = deque([start])
    seen = {start}
    while queue:
        node = queue.popleft()
        for nxt in _children(db, node):
            if nxt in seen:
                continue
            prev[nxt] = node
            if nxt == goal:
                path = [goal]
                while path[-1] != start:
                    path.append(prev[path[-1]])
                return list(reversed(path))
            seen.add(nxt)
            queue.append(nxt)
    return None


def add_dependency(db: Session, part_number: str, depends_on: str) -> PartDependency:
    """Insert an edge. Raises DependencyCycleError if depends_on already reaches part_number."""
    part_number = normalize_part(part_number)
    depends_on = normalize_part(depends_on)

    existing = db.get(PartDependency, (part_number, depends_on))
    if existing is not None:
        return existing

    back = find_path(db, depends_on, part_number)
    if back is not None:
        raise DependencyCycleError(part_number, depends_on, [part_number] + back)

    dep = PartDependency(part_number=part_number, depends_on=depends_on, created_at=utcnow())
    db.add(dep)
    db.flush()
    logger.info("Added part dependency %s -> %s", part_number, depends_on)
    return dep


def trace_dependencies(db: Session, part_number: str, max_depth: Optional[int] = None) -> list[dict]:
    """
    Transitive dependencies of a part, breadth-first. Each entry carries its
    depth and the part that introduced it.
    """
    root = normalize_part(part_number)
    out: list[dict] = []
    seen = {root}
    queue = deque([(root, 0)])
    while queue:
        node, depth = queue.popleft()
        if max_depth is not None and depth >= max_depth:
            continue
        for child in _children(db, node):
            if child in seen:
                continue
            seen.add(child)
            out.append({"part_number": child, "depth": depth + 1, "via": node})
            queue.append((child, depth + 1))
    return out


def trace_dependents(db: Session, part_number: str) -> list[str]:
    """Parts that (transitively) depend on part_number."""
    root = normalize_part(part_number)
    seen = {root}
    queue = deque([root])
    out: list[str] = []
    while queue:
        node = queue.popleft()
        parents = db.execute(
            select(PartDependency.part_number)
            .where(PartDependency.depends_on == node)
            .order_by(PartDependency.part_number)
        ).scalars()
        for parent in parents:
            if parent not in seen:
                seen.add(parent)
                out.append(parent)
                queue.append(parent)
    return out
