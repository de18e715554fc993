from __future__ import annotations
import json
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional, Union

import numpy as np
from numpy.typing import NDArray

from extensions import HookRegistry, StepContext
from lexer import BLANK, BLANK_TOKEN, MillCapacityError, MillError
from parser import Program


TAPE_SIZE = 0x100000
STEPS_MAX = 1000000
HISTORY_DEFAULT = 16

# Cells hold code points; zero is the blank cell.
_BLANK_CODE = 0
_CELL_DTYPE = np.dtype("<u4")


class MillRuntimeError(MillError):
    """Raised for executor faults."""


class InputTooLongError(MillCapacityError):
    """Raised when the seed text does not fit on the tape."""


def _encode(symbol: str) -> int:
    return ord(symbol) if symbol else _BLANK_CODE


def _decode(code: int) -> str:
    return chr(code) if code else BLANK


def _decode_run(cells: NDArray[Any]) -> str:
    return cells.astype(_CELL_DTYPE).tobytes().decode("utf-32-le", "surrogatepass")


class Tape:
    """Fixed-capacity ring of cells with a single head."""

    def __init__(self, capacity: int = TAPE_SIZE) -> None:
        if not 1 <= capacity <= TAPE_SIZE:
            raise MillCapacityError(f"tape capacity must be between 1 and {TAPE_SIZE}, got {capacity}")
        self.capacity = capacity
        self.cells: NDArray[np.uint32] = np.zeros(capacity, dtype=np.uint32)
        self.head = 0

    @classmethod
    def seed(cls, text: str, capacity: int = TAPE_SIZE) -> "Tape":
        if len(text) > capacity:
            raise InputTooLongError(f"tape input of {len(text)} symbols exceeds capacity {capacity}")
        tape = cls(capacity)
        if text:
            raw = np.frombuffer(text.encode("utf-32-le", "surrogatepass"), dtype=_CELL_DTYPE)
            tape.cells[: len(text)] = raw
        return tape

    def wrap(self, pos: int) -> int:
        size = self.capacity
        return ((pos % size) + size) % size

    def read(self, pos: int) -> str:
        return _decode(int(self.cells[self.wrap(pos)]))

    def write(self, pos: int, symbol: str) -> None:
        self.cells[self.wrap(pos)] = _encode(symbol)

    def move(self, delta: int) -> int:
        self.head = self.wrap(self.head + delta)
        return self.head

    def render(self) -> str:
        """Return the written run around position 0 in left-to-right order.

        The run may straddle the physical end of the ring, in which case the
        tail segment ``[start, capacity)`` is emitted before ``[0, end)``.
        """
        cells = self.cells
        blanks = np.flatnonzero(cells == _BLANK_CODE)
        if cells[0] == _BLANK_CODE:
            written = np.flatnonzero(cells)
            if written.size == 0:
                return ""
            start = int(written[0])
            after = blanks[blanks > start]
            end = int(after[0]) if after.size else self.capacity
            return _decode_run(cells[start:end])
        if blanks.size == 0:
            return _decode_run(cells)
        start = int(blanks[-1]) + 1
        end = int(blanks[0])
        if start >= self.capacity:
            return _decode_run(cells[:end])
        return _decode_run(np.concatenate((cells[start:], cells[:end])))

    def window(self, radius: int = 8) -> str:
        return "".join(self.read(self.head + offset) or BLANK_TOKEN for offset in range(-radius, radius + 1))

    def __len__(self) -> int:
        return self.capacity


@dataclass(frozen=True)
class Halted:
    steps: int


@dataclass(frozen=True)
class DeadEnd:
    steps: int
    state: int
    state_name: str
    symbol: str


@dataclass(frozen=True)
class TimedOut:
    steps: int


Outcome = Union[Halted, DeadEnd, TimedOut]


@dataclass
class StepEntry:
    step_index: int
    state: str
    symbol_in: str
    next_state: str
    symbol_out: str
    move: str
    head: int


class StepLogger:
    def __init__(self, verbose: bool, history: int = HISTORY_DEFAULT) -> None:
        self.verbose = verbose
        self.entries: Deque[StepEntry] = deque(maxlen=history)
        self.count = 0

    def reset(self) -> None:
        self.entries.clear()
        self.count = 0

    def record(self, ctx: StepContext) -> StepEntry:
        entry = StepEntry(
            step_index=ctx.step_index,
            state=ctx.state,
            symbol_in=ctx.symbol_in,
            next_state=ctx.next_state,
            symbol_out=ctx.symbol_out,
            move=ctx.move,
            head=ctx.head,
        )
        self.entries.append(entry)
        self.count += 1
        return entry


class Interpreter:
    """Runs a program against tapes.

    ``step_limit`` is a hard ceiling as well as the default: values outside
    ``1..STEPS_MAX`` raise ``MillRuntimeError``. Each ``run`` starts with an
    empty step history.
    """

    def __init__(
        self,
        program: Program,
        *,
        step_limit: int = STEPS_MAX,
        verbose: bool = False,
        hooks: Optional[HookRegistry] = None,
        history: int = HISTORY_DEFAULT,
    ) -> None:
        if not 1 <= step_limit <= STEPS_MAX:
            raise MillRuntimeError(f"step limit must be between 1 and {STEPS_MAX}, got {step_limit}")
        self.program = program
        self.step_limit = step_limit
        self.verbose = verbose
        self.hooks = hooks or HookRegistry()
        self.logger = StepLogger(verbose=verbose, history=history)

    def run(self, tape: Tape) -> Outcome:
        self.logger.reset()
        self._emit_event("run_start", self, tape)
        outcome = self._execute(tape)
        self._emit_event("run_end", self, outcome)
        return outcome

    def _execute(self, tape: Tape) -> Outcome:
        program = self.program
        lookup = program.lookup
        halt = program.halt_id
        state = program.init_id
        cells = tape.cells
        size = tape.capacity
        pos = tape.head
        observe = self.verbose or self.hooks.has_step_rules

        for t in range(self.step_limit):
            code = int(cells[pos])
            symbol = chr(code) if code else BLANK
            instr = lookup(state, symbol)
            if instr is None:
                tape.head = pos
                return DeadEnd(steps=t + 1, state=state, state_name=program.state_name(state), symbol=symbol)

            cells[pos] = _encode(instr.char_out)
            state = instr.state_out
            pos = (pos + instr.move.delta) % size
            if observe:
                self._log_step(
                    StepContext(
                        step_index=t + 1,
                        state=program.state_name(instr.state_in),
                        symbol_in=symbol,
                        next_state=program.state_name(state),
                        symbol_out=instr.char_out,
                        move=instr.move.value,
                        head=pos,
                    )
                )
            if state == halt:
                tape.head = pos
                return Halted(steps=t + 1)

        tape.head = pos
        return TimedOut(steps=self.step_limit)

    def _log_step(self, ctx: StepContext) -> None:
        if self.verbose:
            self.logger.record(ctx)
        try:
            self.hooks.after_step(self, ctx)
        except MillRuntimeError:
            raise
        except Exception as exc:
            raise MillRuntimeError(f"Step hook failed at step {ctx.step_index}: {exc}") from exc

    def _emit_event(self, event: str, *args: Any) -> None:
        try:
            self.hooks.emit(event, *args)
        except MillRuntimeError:
            raise
        except Exception as exc:
            raise MillRuntimeError(f"Hook '{event}' failed: {exc}") from exc


def run(program: Program, tape: Tape, step_limit: int = STEPS_MAX) -> Outcome:
    return Interpreter(program, step_limit=step_limit).run(tape)


class RunReportFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def format_text(self, outcome: Outcome, tape: Optional[Tape] = None, verbose: bool = False) -> str:
        lines: List[str] = []
        if verbose and self.interpreter.logger.entries:
            lines.append("Recent steps (most recent last):")
            for entry in self.interpreter.logger.entries:
                lines.append(
                    f"  {entry.step_index:>7} {entry.state} '{entry.symbol_in or BLANK_TOKEN}' -> "
                    f"{entry.next_state} '{entry.symbol_out or BLANK_TOKEN}' {entry.move}"
                )
        if verbose and tape is not None:
            radius = 8
            lines.append(f"Tape at head {tape.head}: {tape.window(radius)}")
            lines.append(" " * (len(f"Tape at head {tape.head}: ") + radius) + "^")
        lines.append(self.summary(outcome))
        return "\n".join(lines)

    def summary(self, outcome: Outcome) -> str:
        if isinstance(outcome, DeadEnd):
            return f"error: unhandled state {outcome.state_name} '{outcome.symbol or BLANK_TOKEN}'"
        if isinstance(outcome, TimedOut):
            return f"timed out after {outcome.steps} instructions"
        return f"halted after {outcome.steps} steps"

    def to_json(self, outcome: Outcome, tape: Optional[Tape] = None) -> str:
        data: Dict[str, Any] = {"outcome": outcome.__class__.__name__, "steps": outcome.steps}
        if isinstance(outcome, DeadEnd):
            data["state"] = outcome.state_name
            data["symbol"] = outcome.symbol or BLANK_TOKEN
        if tape is not None:
            data["head"] = tape.head
        data["history"] = [
            {
                "step_index": entry.step_index,
                "state": entry.state,
                "read": entry.symbol_in or BLANK_TOKEN,
                "next_state": entry.next_state,
                "write": entry.symbol_out or BLANK_TOKEN,
                "move": entry.move,
                "head": entry.head,
            }
            for entry in self.interpreter.logger.entries
        ]
        return json.dumps(data, indent=2)
