from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from lexer import (
    BLANK_TOKEN,
    HALT,
    INIT,
    CharSource,
    Instruction,
    InstructionLexer,
    MillCapacityError,
    SymbolTable,
)


INSTR_MAX = 0x10000


@dataclass(frozen=True)
class Program:
    symbols: SymbolTable = field(compare=False)
    instructions: Tuple[Instruction, ...]
    init_id: int
    halt_id: int
    filename: str = field(default="<string>", compare=False)
    _index: Dict[Tuple[int, str], Instruction] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # First rule in file order wins for a repeated (state, symbol) pair.
        index: Dict[Tuple[int, str], Instruction] = {}
        for instr in self.instructions:
            index.setdefault((instr.state_in, instr.char_in), instr)
        object.__setattr__(self, "_index", index)

    def lookup(self, state: int, symbol: str) -> Optional[Instruction]:
        return self._index.get((state, symbol))

    def state_name(self, sid: int) -> str:
        return self.symbols.name_of(sid)

    def format_instruction(self, instr: Instruction) -> str:
        return " ".join(
            (
                self.state_name(instr.state_in),
                instr.char_in or BLANK_TOKEN,
                self.state_name(instr.state_out),
                instr.char_out or BLANK_TOKEN,
                instr.move.value,
            )
        )

    def duplicates(self) -> List[Instruction]:
        """Rules shadowed by an earlier rule for the same (state, symbol)."""
        return [instr for instr in self.instructions if self._index[(instr.state_in, instr.char_in)] is not instr]

    def __iter__(self) -> Iterator[Instruction]:
        return iter(self.instructions)

    def __len__(self) -> int:
        return len(self.instructions)


class Parser:
    def __init__(self, source: CharSource, filename: str = "<string>", *, instr_max: int = INSTR_MAX) -> None:
        self.source = source
        self.filename = filename
        self.instr_max = instr_max

    def parse(self) -> Program:
        symbols = SymbolTable()
        init_id = symbols.intern(INIT)
        halt_id = symbols.intern(HALT)
        lexer = InstructionLexer(self.source, self.filename, symbols)
        instructions: List[Instruction] = []
        for instr in lexer:
            if len(instructions) >= self.instr_max:
                raise MillCapacityError(f"too many instructions at {self.filename}:{instr.line}")
            instructions.append(instr)
        return Program(
            symbols=symbols,
            instructions=tuple(instructions),
            init_id=init_id,
            halt_id=halt_id,
            filename=self.filename,
        )


def build_program(source: CharSource, filename: str = "<string>") -> Program:
    return Parser(source, filename).parse()
