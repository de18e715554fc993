import io

import pytest

from lexer import (
    BLANK,
    HALT,
    INIT,
    InstructionLexer,
    MillCapacityError,
    MillParseError,
    Move,
    SymbolTable,
    iter_chars,
)


def _lexer(text):
    symbols = SymbolTable()
    symbols.intern(INIT)
    symbols.intern(HALT)
    return InstructionLexer(text, "<test>", symbols), symbols


def _all(text):
    lexer, symbols = _lexer(text)
    return list(lexer), symbols


def test_symbol_table_interning_is_stable_and_case_sensitive():
    symbols = SymbolTable()
    assert symbols.intern(INIT) == 0
    assert symbols.intern(HALT) == 1
    first = symbols.intern("FIND")
    assert symbols.intern("FIND") == first
    assert symbols.intern("Find") != first
    assert symbols.name_of(first) == "FIND"
    assert len(symbols) == 4


def test_symbol_table_rejects_long_names():
    symbols = SymbolTable()
    symbols.intern("A" * 32)
    with pytest.raises(MillCapacityError):
        symbols.intern("A" * 33)


def test_symbol_table_limit():
    symbols = SymbolTable()
    for i in range(1024):
        symbols.intern(f"S{i}")
    assert symbols.intern("S0") == 0
    with pytest.raises(MillCapacityError, match="limit"):
        symbols.intern("S1024")


def test_single_rule():
    rules, symbols = _all("INIT | FIND | R\n")
    assert len(rules) == 1
    rule = rules[0]
    assert rule.state_in == 0
    assert rule.char_in == "|"
    assert symbols.name_of(rule.state_out) == "FIND"
    assert rule.char_out == "|"
    assert rule.move is Move.RIGHT


def test_underscore_is_blank_in_rules():
    rules, _ = _all("FIND _ HALT _ L")
    assert rules[0].char_in == BLANK
    assert rules[0].char_out == BLANK
    assert rules[0].state_out == 1
    assert rules[0].move is Move.LEFT


def test_comment_only_input_is_end_of_input():
    lexer, _ = _lexer("// just a comment")
    assert lexer.next() is None


def test_blank_and_comment_lines_are_skipped():
    text = "\n\n   // header\n\t\nINIT a B b R\n// footer\n\n"
    rules, _ = _all(text)
    assert len(rules) == 1
    assert rules[0].line == 5


@pytest.mark.parametrize(
    "line",
    [
        "INIT | FIND | R // trailing note\n",
        "INIT | FIND | R //trailing note\n",
        "INIT | FIND | R//trailing note\n",
        "INIT | FIND | R   \n",
        "INIT | FIND | R // note",
        "INIT | FIND | R",
    ],
)
def test_trailing_comment_variants(line):
    plain, _ = _all("INIT | FIND | R\n")
    rules, _ = _all(line)
    assert rules == plain


def test_rule_fields_may_span_lines():
    rules, _ = _all("INIT\n|\nFIND\n|\nR\n")
    assert len(rules) == 1


def test_rules_are_returned_in_order():
    rules, symbols = _all("INIT | FIND | R\nFIND | FIND | R\nFIND _ HALT | R\n")
    assert [symbols.name_of(r.state_in) for r in rules] == ["INIT", "FIND", "FIND"]
    assert [r.line for r in rules] == [1, 2, 3]


def test_invalid_move():
    lexer, _ = _lexer("INIT | FIND | X\n")
    with pytest.raises(MillParseError, match="invalid move instruction X"):
        lexer.next()


def test_move_longer_than_one_char():
    lexer, _ = _lexer("INIT | FIND | RR\n")
    with pytest.raises(MillParseError, match="invalid move instruction RR"):
        lexer.next()


def test_glued_comment_truncates_move_token_only():
    lexer, _ = _lexer("INIT | FIND | RL// note\n")
    with pytest.raises(MillParseError, match="invalid move instruction RL"):
        lexer.next()


def test_unexpected_trailing_token():
    lexer, _ = _lexer("INIT | FIND | R extra\n")
    with pytest.raises(MillParseError, match="unexpected token: e"):
        lexer.next()


def test_single_slash_is_not_a_comment():
    lexer, _ = _lexer("INIT | FIND | R /x\n")
    with pytest.raises(MillParseError, match="unexpected token: /x"):
        lexer.next()


def test_single_slash_at_end_of_input():
    lexer, _ = _lexer("INIT | FIND | R /")
    with pytest.raises(MillParseError, match="unexpected token: /"):
        lexer.next()


def test_multi_char_symbol_is_rejected():
    lexer, _ = _lexer("INIT ab FIND | R\n")
    with pytest.raises(MillParseError, match="symbol is too long"):
        lexer.next()


def test_state_name_too_long():
    lexer, _ = _lexer("S" * 33 + " | FIND | R\n")
    with pytest.raises(MillParseError, match="symbol is too long"):
        lexer.next()


def test_state_name_at_limit_is_accepted():
    rules, symbols = _all("S" * 32 + " | FIND | R\n")
    assert symbols.name_of(rules[0].state_in) == "S" * 32


@pytest.mark.parametrize("text", ["INIT", "INIT |", "INIT | FIND", "INIT | FIND |", "INIT | FIND | "])
def test_truncated_rule(text):
    lexer, _ = _lexer(text)
    with pytest.raises(MillParseError, match="expecting a token"):
        lexer.next()


def test_parse_error_location():
    lexer, _ = _lexer("INIT | FIND | R\nFIND | FIND | Q\n")
    lexer.next()
    with pytest.raises(MillParseError) as info:
        lexer.next()
    assert info.value.line == 2
    assert info.value.column == 16
    assert info.value.filename == "<test>"
    assert "at <test>:2:16" in str(info.value)


def test_comment_marker_inside_first_token():
    rules, _ = _all("//INIT | FIND | R\nINIT a HALT a R\n")
    assert len(rules) == 1
    assert rules[0].char_in == "a"


def test_reads_from_text_stream():
    symbols = SymbolTable()
    lexer = InstructionLexer(io.StringIO("INIT | FIND | R\nFIND _ HALT | R\n"), "<stream>", symbols)
    assert len(list(lexer)) == 2


def test_iter_chars_accepts_chunks():
    assert "".join(iter_chars(["ab", "", "c"])) == "abc"
    assert "".join(iter_chars(io.StringIO("xyz"))) == "xyz"


def test_unicode_symbols():
    rules, _ = _all("INIT é ÉTAT ü R\n")
    assert rules[0].char_in == "é"
    assert rules[0].char_out == "ü"
