from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Sequence, Tuple, runtime_checkable
import inspect, logging

from errors import (ActionMismatch, ArityMismatch, CascadeLimitExceeded, ConsequenceViolation,
                    DuplicateAction, MatchFailure, UnboundVariable, UnknownAction, ValueMismatch)
from sync import Primitive, RuleTable, SyncBlock, SyncLine, Var

logger = logging.getLogger(__name__)

# ====== Engine ======

@runtime_checkable
class Equatable(Protocol):
    """Values that know how to compare themselves by logical value, e.g.
    identifiers where two instances can name the same record."""
    def equals(self, other: Any) -> bool: ...


def same_value(actual: Any, expected: Any) -> bool:
    if isinstance(expected, Equatable):
        return expected.equals(actual)
    if isinstance(actual, Equatable):
        return actual.equals(expected)
    # True == 1 in Python; the sync language keeps them apart
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    return actual == expected


@dataclass(frozen=True)
class Trace:
    action: str
    args: Tuple[Any, ...]
    result: Any


@dataclass
class Execution:
    result: Any
    traces: List[Trace] = field(default_factory=list)


class ActionMap(Mapping[str, Callable[..., Any]]):
    """Qualified action name -> callable, fixed at construction."""

    def __init__(self, actions: Iterable[Tuple[str, Callable[..., Any]]] = ()):
        self._actions: Dict[str, Callable[..., Any]] = {}
        for name, fn in actions:
            if name in self._actions:
                raise DuplicateAction(name)
            self._actions[name] = fn

    @classmethod
    def from_concepts(cls, *concepts: Any) -> "ActionMap":
        return cls(pair for concept in concepts for pair in concept.actions())

    def __getitem__(self, name: str) -> Callable[..., Any]:
        try:
            return self._actions[name]
        except KeyError:
            raise UnknownAction(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._actions

    def get(self, name: str, default: Any = None) -> Any:
        return self._actions.get(name, default)

    def __iter__(self) -> Iterator[str]:
        return iter(self._actions)

    def __len__(self) -> int:
        return len(self._actions)


@dataclass(frozen=True)
class SyncContext:
    syncs: RuleTable
    actions: ActionMap

    def unknown_actions(self) -> List[str]:
        return sorted(a for a in self.syncs.referenced_actions() if a not in self.actions)


class Frame:
    """Bindings for one attempt at matching one block."""
    def __init__(self):
        self.vars: Dict[Var, Any] = {}
        self.traces: List[Trace] = []
    def bind(self, var: Var, value: Any) -> None:
        self.vars[var] = value
    def get(self, var: Var) -> Any:
        if var not in self.vars:
            raise UnboundVariable(var.name)
        return self.vars[var]
    def resolve(self, line: SyncLine) -> Tuple[Any, ...]:
        return tuple(self.get(a) if isinstance(a, Var) else a for a in line.args)
    def unify(self, actual: Any, pattern: Primitive, where: str) -> None:
        if isinstance(pattern, Var):
            if pattern not in self.vars:
                self.bind(pattern, actual)
                return
            expected = self.vars[pattern]
        else:
            expected = pattern
        if not same_value(actual, expected):
            raise ValueMismatch(where, expected, actual)
    def match(self, trace: Trace, line: SyncLine) -> None:
        if trace.action != line.action:
            raise ActionMismatch(line.action, trace.action)
        if len(trace.args) != len(line.args):
            raise ArityMismatch(f"{line.action} arguments", len(line.args), len(trace.args))
        for i, (arg, pattern) in enumerate(zip(trace.args, line.args)):
            self.unify(arg, pattern, f"{line.action} argument {i}")
        if not line.returns:
            return
        if len(line.returns) == 1:
            self.unify(trace.result, line.returns[0], f"{line.action} return")
            return
        result = trace.result
        if not isinstance(result, (list, tuple)):
            raise ArityMismatch(f"{line.action} returns", len(line.returns), None)
        if len(result) != len(line.returns):
            raise ArityMismatch(f"{line.action} returns", len(line.returns), len(result))
        for i, (value, pattern) in enumerate(zip(result, line.returns)):
            self.unify(value, pattern, f"{line.action} return {i}")


class Synchronizer:
    def __init__(self, context: SyncContext, *, max_traces: Optional[int] = None):
        self.context = context
        self.max_traces = max_traces

    @classmethod
    def build(cls, syncs: RuleTable, actions: Iterable[Tuple[str, Callable[..., Any]]], **kwargs: Any) -> "Synchronizer":
        return cls(SyncContext(syncs, ActionMap(actions)), **kwargs)

    async def invoke(self, action: str, args: Sequence[Any]) -> Trace:
        fn = self.context.actions[action]
        result = fn(*args)
        if inspect.isawaitable(result):
            result = await result
        return Trace(action, tuple(args), result)

    async def run(self, action: str, args: Sequence[Any] = ()) -> Any:
        return (await self.execute(action, args)).result

    async def execute(self, action: str, args: Sequence[Any] = ()) -> Execution:
        first = await self.invoke(action, args)
        traces = [first]
        i = 0
        # traces appended while syncing are picked up by later iterations
        while i < len(traces):
            traces.extend(await self._sync_trace(traces[i]))
            if self.max_traces is not None and len(traces) > self.max_traces:
                raise CascadeLimitExceeded(self.max_traces)
            i += 1
        logger.debug("Execution history: %s", traces, extra={"action": action, "traces": len(traces)})
        return Execution(first.result, traces)

    async def _run_line(self, line: SyncLine, frame: Frame) -> None:
        trace = await self.invoke(line.action, frame.resolve(line))
        frame.match(trace, line)
        frame.traces.append(trace)

    async def _match_when(self, trace: Trace, block: SyncBlock, frame: Frame) -> bool:
        try:
            frame.match(trace, block.when[0])
            for line in block.when[1:]:
                await self._run_line(line, frame)
        except UnknownAction:
            raise
        except Exception as exc:
            # a guard that fails, for any reason, means the block does not apply here
            logger.debug("When clause failed to match due to: %s", exc,
                         extra={"anchor": block.anchor, "rule": block.line})
            return False
        return True

    async def _sync_trace(self, trace: Trace) -> List[Trace]:
        executed: List[Trace] = []
        for block in self.context.syncs.rules_for(trace.action):
            frame = Frame()
            if not await self._match_when(trace, block, frame):
                continue
            logger.debug("Firing sync", extra={"anchor": block.anchor, "rule": block.line})
            for line in block.sync:
                try:
                    await self._run_line(line, frame)
                except MatchFailure as exc:
                    logger.error("Sync consequence violated: %s", exc.message,
                                 extra={"anchor": block.anchor, "rule": block.line, "action": line.action})
                    raise ConsequenceViolation(block.anchor, line.action, exc) from exc
            executed.extend(frame.traces)
        return executed
