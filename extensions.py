from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Tuple

from lexer import MillError


class MillExtensionError(MillError):
    pass


@dataclass(frozen=True)
class StepContext:
    step_index: int
    state: str
    symbol_in: str
    next_state: str
    symbol_out: str
    move: str
    head: int


StepHandler = Callable[[Any, StepContext], None]


@dataclass
class HookRegistry:
    # event -> list[(priority, handler)]
    _events: Dict[str, List[Tuple[int, Callable[..., None]]]] = field(default_factory=dict)
    # list[(every_n, handler, name)]
    _step_rules: List[Tuple[int, StepHandler, str]] = field(default_factory=list)

    def on_event(self, event: str, handler: Callable[..., None], *, priority: int = 0) -> None:
        self._events.setdefault(event, []).append((priority, handler))
        self._events[event].sort(key=lambda t: t[0], reverse=True)

    def emit(self, event: str, *args: Any, **kwargs: Any) -> None:
        for _priority, handler in self._events.get(event, []):
            handler(*args, **kwargs)

    def add_step_rule(self, *, name: str, every_n: int, handler: StepHandler) -> None:
        if every_n <= 0:
            raise MillExtensionError("every_n_steps must be >= 1")
        self._step_rules.append((every_n, handler, name))

    def every_n_steps(self, every_n: int, *, name: str = ""):
        def deco(fn: StepHandler) -> StepHandler:
            self.add_step_rule(name=name or fn.__name__, every_n=every_n, handler=fn)
            return fn

        return deco

    @property
    def has_step_rules(self) -> bool:
        return bool(self._step_rules)

    def after_step(self, interpreter: Any, ctx: StepContext) -> None:
        for every_n, handler, _name in self._step_rules:
            if ctx.step_index % every_n == 0:
                handler(interpreter, ctx)


def trace_printer(write: Callable[[str], None]) -> StepHandler:
    """Step handler printing ``STATE 'c' -> NEXT 'd' R`` lines."""

    def _trace(_interpreter: Any, ctx: StepContext) -> None:
        write(
            f"{ctx.step_index:>7} {ctx.state} '{ctx.symbol_in or '_'}' -> "
            f"{ctx.next_state} '{ctx.symbol_out or '_'}' {ctx.move}\n"
        )

    return _trace
