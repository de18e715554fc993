from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, Iterable, Iterator, List, Optional, TextIO, Tuple, Union


STATE_NAME_MAX = 32
STATES_MAX = 1024
READ_CHUNK = 4096

INIT = "INIT"
HALT = "HALT"

# Distinguished empty cell; written as "_" in rule text.
BLANK = ""
BLANK_TOKEN = "_"


class MillError(Exception):
    """Base class for interpreter errors."""


class MillParseError(MillError):
    """Raised when rule text is malformed."""

    def __init__(self, message: str, *, filename: str = "<string>", line: int = 0, column: int = 0) -> None:
        super().__init__(f"{message} at {filename}:{line}:{column}")
        self.message = message
        self.filename = filename
        self.line = line
        self.column = column


class MillCapacityError(MillError):
    """Raised when a fixed limit (states, instructions, tape) is exceeded."""


class Move(Enum):
    LEFT = "L"
    RIGHT = "R"

    @property
    def delta(self) -> int:
        return -1 if self is Move.LEFT else 1


@dataclass(frozen=True)
class Instruction:
    state_in: int
    char_in: str
    state_out: int
    char_out: str
    move: Move
    line: int = field(default=0, compare=False)


class SymbolTable:
    """Append-only interning of state names to sequential ids."""

    def __init__(self, *, limit: int = STATES_MAX, name_max: int = STATE_NAME_MAX) -> None:
        self.limit = limit
        self.name_max = name_max
        self._names: List[str] = []
        self._ids: Dict[str, int] = {}
        # Each stored name costs its length plus a terminator.
        self.datasize = 0
        self.datamax = limit * (name_max + 1)

    def intern(self, name: str) -> int:
        sid = self._ids.get(name)
        if sid is not None:
            return sid
        if len(self._names) >= self.limit:
            raise MillCapacityError("symbol table limit reached")
        if not name or len(name) > self.name_max:
            raise MillCapacityError(f"symbol is too long: {name}" if name else "symbol is empty")
        cost = len(name) + 1
        if self.datasize + cost > self.datamax:
            raise MillCapacityError("symbols buffer exhausted")
        sid = len(self._names)
        self._names.append(name)
        self._ids[name] = sid
        self.datasize += cost
        return sid

    def name_of(self, sid: int) -> str:
        return self._names[sid]

    def get(self, name: str) -> Optional[int]:
        return self._ids.get(name)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._ids

    def __len__(self) -> int:
        return len(self._names)


class Phase(Enum):
    AWAIT_STATE_IN = auto()
    IN_STATE_IN = auto()
    AWAIT_CHAR_IN = auto()
    IN_CHAR_IN = auto()
    AWAIT_STATE_OUT = auto()
    IN_STATE_OUT = auto()
    AWAIT_CHAR_OUT = auto()
    IN_CHAR_OUT = auto()
    AWAIT_MOVE = auto()
    IN_MOVE = auto()
    AFTER_MOVE = auto()
    AWAIT_COMMENT_SLASH = auto()
    IN_TRAILING_COMMENT = auto()
    IN_LINE_COMMENT = auto()
    LINE_DONE = auto()


# Phases in which end of input leaves a rule half written.
_TRUNCATED = frozenset(
    {
        Phase.IN_STATE_IN,
        Phase.AWAIT_CHAR_IN,
        Phase.IN_CHAR_IN,
        Phase.AWAIT_STATE_OUT,
        Phase.IN_STATE_OUT,
        Phase.AWAIT_CHAR_OUT,
        Phase.IN_CHAR_OUT,
        Phase.AWAIT_MOVE,
    }
)

# Phases in which end of input completes the pending rule.
_COMPLETE = frozenset({Phase.AFTER_MOVE, Phase.IN_TRAILING_COMMENT, Phase.LINE_DONE})

CharSource = Union[str, TextIO, Iterable[str]]


def iter_chars(source: CharSource) -> Iterator[str]:
    """Yield single characters from a string, a text stream or an iterable of strings."""
    if isinstance(source, str):
        yield from source
        return
    read = getattr(source, "read", None)
    if read is None:
        for chunk in source:
            yield from chunk
        return
    while True:
        chunk = read(READ_CHUNK)
        if not chunk:
            return
        yield from chunk


class InstructionLexer:
    """Character-at-a-time tokenizer producing one Instruction per rule line.

    Rules have five whitespace separated fields::

        currentState currentSymbol newState newSymbol move [// comment]

    ``//`` opens a comment either as a whole line or directly after the move
    field. ``next`` returns ``None`` once only blank or comment text remains.
    """

    def __init__(self, source: CharSource, filename: str, symbols: SymbolTable) -> None:
        self.filename = filename
        self.symbols = symbols
        self._chars = iter_chars(source)
        self.line = 1
        self.column = 0
        self._pending_newline = False

    def __iter__(self) -> Iterator[Instruction]:
        while True:
            instr = self.next()
            if instr is None:
                return
            yield instr

    def next(self) -> Optional[Instruction]:
        phase = Phase.AWAIT_STATE_IN
        token: List[str] = []
        state_in = state_out = 0
        char_in = char_out = BLANK
        move: Optional[Move] = None
        rule_line = self.line
        max_len = self.symbols.name_max
        _advance = self._advance

        for ch in self._chars:
            _advance(ch)
            space = ch.isspace()

            if phase is Phase.AWAIT_STATE_IN:
                if not space:
                    token = [ch]
                    rule_line = self.line
                    phase = Phase.IN_STATE_IN

            elif phase is Phase.IN_STATE_IN:
                if space:
                    state_in = self._intern(token)
                    token = []
                    phase = Phase.AWAIT_CHAR_IN
                elif len(token) >= max_len:
                    raise self._error(f"symbol is too long: {''.join(token)}")
                else:
                    token.append(ch)
                    if len(token) == 2 and token[0] == "/" and token[1] == "/":
                        token = []
                        phase = Phase.IN_LINE_COMMENT

            elif phase is Phase.AWAIT_CHAR_IN:
                if not space:
                    token = [ch]
                    phase = Phase.IN_CHAR_IN

            elif phase is Phase.IN_CHAR_IN:
                if not space:
                    raise self._error(f"symbol is too long: {token[0]}{ch}")
                char_in = _symbol_char(token[0])
                token = []
                phase = Phase.AWAIT_STATE_OUT

            elif phase is Phase.AWAIT_STATE_OUT:
                if not space:
                    token = [ch]
                    phase = Phase.IN_STATE_OUT

            elif phase is Phase.IN_STATE_OUT:
                if space:
                    state_out = self._intern(token)
                    token = []
                    phase = Phase.AWAIT_CHAR_OUT
                elif len(token) >= max_len:
                    raise self._error(f"symbol is too long: {''.join(token)}")
                else:
                    token.append(ch)

            elif phase is Phase.AWAIT_CHAR_OUT:
                if not space:
                    token = [ch]
                    phase = Phase.IN_CHAR_OUT

            elif phase is Phase.IN_CHAR_OUT:
                if not space:
                    raise self._error(f"symbol is too long: {token[0]}{ch}")
                char_out = _symbol_char(token[0])
                token = []
                phase = Phase.AWAIT_MOVE

            elif phase is Phase.AWAIT_MOVE:
                if not space:
                    token = [ch]
                    phase = Phase.IN_MOVE

            elif phase is Phase.IN_MOVE:
                if space:
                    move = self._parse_move(token)
                    token = []
                    phase = Phase.LINE_DONE if ch == "\n" else Phase.AFTER_MOVE
                elif len(token) >= max_len:
                    raise self._error(f"symbol is too long: {''.join(token)}")
                else:
                    token.append(ch)
                    # "R//note": the comment marker is glued to the move.
                    if len(token) >= 3 and token[-2] == "/" and token[-1] == "/":
                        del token[-2:]
                        move = self._parse_move(token)
                        token = []
                        phase = Phase.IN_TRAILING_COMMENT

            elif phase is Phase.AFTER_MOVE:
                if ch == "\n":
                    phase = Phase.LINE_DONE
                elif ch == "/":
                    token = [ch]
                    phase = Phase.AWAIT_COMMENT_SLASH
                elif not space:
                    raise self._error(f"unexpected token: {ch}")

            elif phase is Phase.AWAIT_COMMENT_SLASH:
                if ch != "/":
                    token.append(ch)
                    raise self._error(f"unexpected token: {''.join(token)}")
                token = []
                phase = Phase.IN_TRAILING_COMMENT

            elif phase is Phase.IN_TRAILING_COMMENT:
                if ch == "\n":
                    phase = Phase.LINE_DONE

            elif phase is Phase.IN_LINE_COMMENT:
                if ch == "\n":
                    phase = Phase.AWAIT_STATE_IN

            if phase is Phase.LINE_DONE:
                break

        if phase is Phase.AWAIT_STATE_IN or phase is Phase.IN_LINE_COMMENT:
            return None
        if phase in _TRUNCATED:
            raise self._error("expecting a token")
        if phase is Phase.IN_MOVE:
            move = self._parse_move(token)
        elif phase is Phase.AWAIT_COMMENT_SLASH:
            raise self._error(f"unexpected token: {''.join(token)}")
        elif phase not in _COMPLETE:
            raise self._error(f"invalid parser phase {phase.name}")
        assert move is not None
        return Instruction(
            state_in=state_in,
            char_in=char_in,
            state_out=state_out,
            char_out=char_out,
            move=move,
            line=rule_line,
        )

    def _intern(self, token: List[str]) -> int:
        try:
            return self.symbols.intern("".join(token))
        except MillCapacityError as exc:
            raise MillCapacityError(f"{exc} at {self.filename}:{self.line}:{self.column}") from exc

    def _parse_move(self, token: List[str]) -> Move:
        text = "".join(token)
        if text == "L":
            return Move.LEFT
        if text == "R":
            return Move.RIGHT
        raise self._error(f"invalid move instruction {text}")

    def _error(self, message: str) -> MillParseError:
        return MillParseError(message, filename=self.filename, line=self.line, column=self.column)

    def _advance(self, ch: str) -> None:
        if self._pending_newline:
            self.line += 1
            self.column = 0
            self._pending_newline = False
        self.column += 1
        if ch == "\n":
            self._pending_newline = True


def _symbol_char(ch: str) -> str:
    return BLANK if ch == BLANK_TOKEN else ch
