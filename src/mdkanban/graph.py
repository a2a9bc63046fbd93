"""Dependency graph over work items: reachability, cycles, ordering, move checks."""

from __future__ import annotations

from typing import Iterable, Mapping

from .board import (
    TERMINAL_STATUS,
    BoardConfig,
    CycleError,
    ValidationResult,
    WorkItem,
    index_items,
)

Items = Mapping[str, WorkItem] | Iterable[WorkItem]


class DependencyGraph:
    """Bidirectional predecessor/successor view of declared dependencies.

    The graph is derived state: ``build`` replaces it wholesale from a
    snapshot, and every other method only reads it. Edges whose other
    endpoint is not part of the snapshot are dropped silently.

    Traversals use explicit stacks so long dependency chains cannot hit the
    interpreter's recursion limit. Neighbours are visited in sorted order to
    keep results stable between runs.
    """

    def __init__(self, items: Items | None = None) -> None:
        self._predecessors: dict[str, set[str]] = {}
        self._successors: dict[str, set[str]] = {}
        if items is not None:
            self.build(items)

    def build(self, items: Items) -> None:
        by_id = index_items(items)
        self._predecessors = {item_id: set() for item_id in by_id}
        self._successors = {item_id: set() for item_id in by_id}

        for item_id, item in by_id.items():
            for pred_id in item.predecessors:
                if pred_id in by_id:
                    self._predecessors[item_id].add(pred_id)
                    self._successors[pred_id].add(item_id)
            for succ_id in item.successors:
                if succ_id in by_id:
                    self._successors[item_id].add(succ_id)
                    self._predecessors[succ_id].add(item_id)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._predecessors

    def __len__(self) -> int:
        return len(self._predecessors)

    def ids(self) -> list[str]:
        return list(self._predecessors)

    def edges(self) -> list[tuple[str, str]]:
        """Return ``(predecessor, successor)`` pairs."""
        return [
            (src, dst)
            for src, targets in self._successors.items()
            for dst in sorted(targets)
        ]

    # ------------------------------------------------------------------
    # Direct and transitive neighbours
    # ------------------------------------------------------------------

    def predecessors_of(self, item_id: str) -> set[str]:
        return set(self._predecessors.get(item_id, ()))

    def successors_of(self, item_id: str) -> set[str]:
        return set(self._successors.get(item_id, ()))

    def _reachable(self, start: str, adjacency: dict[str, set[str]]) -> set[str]:
        found: set[str] = set()
        visited = {start}
        stack = [start]
        while stack:
            current = stack.pop()
            for neighbour in sorted(adjacency.get(current, ())):
                # start itself lands here when a cycle leads back to it
                found.add(neighbour)
                if neighbour not in visited:
                    visited.add(neighbour)
                    stack.append(neighbour)
        return found

    def all_dependents(self, item_id: str) -> set[str]:
        """Every item transitively blocked by ``item_id``."""
        return self._reachable(item_id, self._successors)

    def all_dependencies(self, item_id: str) -> set[str]:
        """Every item ``item_id`` transitively waits on."""
        return self._reachable(item_id, self._predecessors)

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    def has_cycle(self, item_id: str) -> bool:
        """Return True if a successor walk from ``item_id`` re-enters its own path."""
        if item_id not in self._successors:
            return False

        visited = {item_id}
        on_path = {item_id}
        path = [item_id]
        frames = [iter(sorted(self._successors[item_id]))]
        while frames:
            nxt = next(frames[-1], None)
            if nxt is None:
                frames.pop()
                on_path.discard(path.pop())
                continue
            if nxt in on_path:
                return True
            if nxt in visited:
                continue
            visited.add(nxt)
            on_path.add(nxt)
            path.append(nxt)
            frames.append(iter(sorted(self._successors.get(nxt, ()))))
        return False

    def all_cycles(self) -> list[list[str]]:
        """Return every cycle met by a whole-graph walk.

        Each cycle is the path from the re-entered item to the item that
        closed the loop, with the re-entered item repeated at the end.
        Cycles are reported as they are found, with no deduplication and no
        canonical rotation, so the first item of a cycle depends on where the
        walk entered it.
        """
        cycles: list[list[str]] = []
        visited: set[str] = set()

        for start in self._successors:
            if start in visited:
                continue
            visited.add(start)
            on_path = {start}
            path = [start]
            frames = [iter(sorted(self._successors[start]))]
            while frames:
                nxt = next(frames[-1], None)
                if nxt is None:
                    frames.pop()
                    on_path.discard(path.pop())
                    continue
                if nxt in on_path:
                    cycles.append(path[path.index(nxt):] + [nxt])
                    continue
                if nxt in visited:
                    continue
                visited.add(nxt)
                on_path.add(nxt)
                path.append(nxt)
                frames.append(iter(sorted(self._successors.get(nxt, ()))))

        return cycles

    # ------------------------------------------------------------------
    # Ordering and scheduling
    # ------------------------------------------------------------------

    def topological_order(self, items: Items) -> list[str]:
        """Order ids so every predecessor precedes its successors.

        Raises CycleError instead of returning a partial order.
        """
        # 1 = on the current path, 2 = emitted
        state: dict[str, int] = {}
        order: list[str] = []

        for root in index_items(items):
            if state.get(root):
                continue
            state[root] = 1
            path = [root]
            frames = [iter(sorted(self._predecessors.get(root, ())))]
            while frames:
                nxt = next(frames[-1], None)
                if nxt is None:
                    frames.pop()
                    done = path.pop()
                    state[done] = 2
                    order.append(done)
                    continue
                mark = state.get(nxt, 0)
                if mark == 1:
                    raise CycleError(path[path.index(nxt):] + [nxt])
                if mark == 2:
                    continue
                state[nxt] = 1
                path.append(nxt)
                frames.append(iter(sorted(self._predecessors.get(nxt, ()))))

        return order

    def ready_items(self, items: Items) -> list[str]:
        """Unfinished items whose predecessors are all done."""
        by_id = index_items(items)
        ready: list[str] = []
        for item_id, item in by_id.items():
            if item.status == TERMINAL_STATUS:
                continue
            if all(
                pred_id in by_id and by_id[pred_id].status == TERMINAL_STATUS
                for pred_id in self.predecessors_of(item_id)
            ):
                ready.append(item_id)
        return ready

    def blocking_items(self, items: Items) -> list[str]:
        """Unfinished items that at least one other item depends on."""
        return [
            item_id
            for item_id, item in index_items(items).items()
            if item.status != TERMINAL_STATUS and self.all_dependents(item_id)
        ]

    # ------------------------------------------------------------------
    # Move validation
    # ------------------------------------------------------------------

    def validate_transition(
        self,
        item: WorkItem,
        proposed_status: str,
        all_items: Items,
        config: BoardConfig,
    ) -> ValidationResult:
        """Check whether ``item`` may move to ``proposed_status``.

        Missing references, cycles and unfinished predecessors (when the
        board enforces them) are errors. A full WIP column only warns.
        """
        by_id = index_items(all_items)
        errors: list[str] = []
        warnings: list[str] = []

        for pred_id in item.predecessors:
            if pred_id not in by_id:
                errors.append(f"Predecessor card '{pred_id}' does not exist")

        for succ_id in item.successors:
            if succ_id not in by_id:
                errors.append(f"Successor card '{succ_id}' does not exist")

        if self.has_cycle(item.id):
            errors.append("Circular dependency detected")

        if config.dependency_rules.enforce_predecessors:
            for pred_id in item.predecessors:
                pred = by_id.get(pred_id)
                if pred is not None and pred.status != TERMINAL_STATUS:
                    errors.append(
                        f"Predecessor '{pred_id}' must be completed before this "
                        f"card can be moved to '{proposed_status}'"
                    )

        limit = config.wip_limit_for(proposed_status)
        if limit:
            in_status = sum(
                1 for other in by_id.values() if other.status == proposed_status
            )
            if in_status >= limit:
                warnings.append(
                    f"WIP limit for '{proposed_status}' ({limit}) would be exceeded"
                )

        return ValidationResult(
            is_valid=not errors,
            errors=tuple(errors),
            warnings=tuple(warnings),
        )
