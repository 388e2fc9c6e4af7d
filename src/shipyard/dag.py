# dag.py
from __future__ import annotations

from collections import deque
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple

from .errors import CycleError, ExternalToolFailure, ShipyardError, TargetFailure, UnknownTargetError
from .model import ExecutionPlan, ExternalProcessResult, RunContext, Target
from .state import StateStore, TargetRecord


class TargetGraph:
    """
    Registry of named targets plus their dependency edges.

    Edges point from a target to the targets it depends on; those always
    run first.
    """

    def __init__(self, targets: Optional[List[Target]] = None):
        self._targets: Dict[str, Target] = {}
        for t in targets or []:
            self.register(t)

    def register(self, target: Target) -> Target:
        if target.name in self._targets:
            raise ValueError(f"Duplicate target name: {target.name}")
        self._targets[target.name] = target
        return target

    def add(self, *targets: Target) -> "TargetGraph":
        for t in targets:
            self.register(t)
        return self

    def get(self, name: str) -> Target:
        try:
            return self._targets[name]
        except KeyError:
            raise UnknownTargetError(name, list(self._targets)) from None

    def names(self) -> List[str]:
        return list(self._targets)

    def __contains__(self, name: object) -> bool:
        return name in self._targets

    def __len__(self) -> int:
        return len(self._targets)

    # ------------------------------------------------------------------
    # Validation / resolution
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """
        Check the whole graph: every dependency registered, no cycles.

        Raises:
            UnknownTargetError: a dependency names an unregistered target
            CycleError: with the node path of the first cycle found
        """
        done: Set[str] = set()
        for root in self._targets:
            if root not in done:
                self._visit(root, done)

    def _visit(self, root: str, done: Set[str]) -> None:
        # iterative: chains can be deeper than the recursion limit
        path: List[str] = [root]
        on_path: Set[str] = {root}
        pending: List[Iterator[str]] = [iter(self._targets[root].depends_on)]
        while pending:
            dep = next(pending[-1], None)
            if dep is None:
                pending.pop()
                finished = path.pop()
                on_path.discard(finished)
                done.add(finished)
                continue
            if dep not in self._targets:
                raise UnknownTargetError(dep, list(self._targets), required_by=path[-1])
            if dep in on_path:
                start = path.index(dep)
                raise CycleError(path[start:] + [dep])
            if dep not in done:
                path.append(dep)
                on_path.add(dep)
                pending.append(iter(self._targets[dep].depends_on))

    def resolve(self, name: str) -> ExecutionPlan:
        """
        Return the ordered targets needed to run `name`.

        Depth-first post-order over declared dependency order, so the
        result is deterministic and every dependency precedes its dependents.
        """
        if name not in self._targets:
            raise UnknownTargetError(name, list(self._targets))
        # a cyclic graph never yields a partial order
        self.validate()

        order: List[Target] = []
        seen: Set[str] = {name}
        stack: List[Tuple[str, Iterator[str]]] = [(name, iter(self._targets[name].depends_on))]
        while stack:
            node, deps = stack[-1]
            dep = next(deps, None)
            if dep is None:
                stack.pop()
                order.append(self._targets[node])
            elif dep not in seen:
                seen.add(dep)
                stack.append((dep, iter(self._targets[dep].depends_on)))

        return ExecutionPlan(requested=name, targets=tuple(order))

    def levels(self) -> List[List[str]]:
        """
        Topological "levels" (stages) of the whole graph.
        Every target in a level only depends on earlier levels.
        """
        self.validate()
        indeg: Dict[str, int] = {n: len(set(t.depends_on)) for n, t in self._targets.items()}
        dependents: Dict[str, Set[str]] = {n: set() for n in self._targets}
        for n, t in self._targets.items():
            for dep in t.depends_on:
                dependents[dep].add(n)

        q = deque(sorted(n for n, d in indeg.items() if d == 0))
        levels: List[List[str]] = []
        while q:
            level: List[str] = []
            for _ in range(len(q)):
                node = q.popleft()
                level.append(node)
                for child in sorted(dependents[node]):
                    indeg[child] -= 1
                    if indeg[child] == 0:
                        q.append(child)
            levels.append(level)
        return levels

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run(
        self,
        plan: ExecutionPlan,
        context: RunContext,
        *,
        state: Optional[StateStore] = None,
        on_start: Optional[Callable[[Target], None]] = None,
        on_finish: Optional[Callable[[Target, TargetRecord], None]] = None,
    ) -> StateStore:
        """
        Run each target of the plan in order, one at a time.

        The first failure stops the plan and raises TargetFailure. Targets
        that already completed keep their side effects; the rest stay pending.
        """
        if state is None:
            state = StateStore()
        state.begin(plan.names)

        for target in plan:
            state.mark_running(target.name)
            if on_start:
                on_start(target)
            try:
                outcome = target.action(context) if target.action is not None else None
                _check_outcome(target, outcome)
            except KeyboardInterrupt:
                state.mark_failed(target.name, "interrupted")
                raise
            except Exception as e:
                state.mark_failed(target.name, str(e))
                if on_finish:
                    on_finish(target, state.record(target.name))
                raise TargetFailure(target.name, e, completed=state.completed()) from e

            state.mark_succeeded(target.name)
            if on_finish:
                on_finish(target, state.record(target.name))

        return state


def _check_outcome(target: Target, outcome: Any) -> None:
    if isinstance(outcome, ExternalProcessResult):
        if not outcome.ok:
            raise ExternalToolFailure(outcome, target=target.name)
    elif isinstance(outcome, int) and not isinstance(outcome, bool) and outcome != 0:
        raise ShipyardError(
            kind="exit_code",
            message=f"action returned exit code {outcome}",
            target=target.name,
        )
