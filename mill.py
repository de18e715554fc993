"""Logic Mill command line entry point."""

from __future__ import annotations
import argparse
import sys
from contextlib import ExitStack
from typing import List, Optional, TextIO, Tuple, Union

from extensions import HookRegistry, trace_printer
from interpreter import Halted, Interpreter, MillRuntimeError, RunReportFormatter, Tape
from lexer import MillCapacityError, MillParseError
from parser import Parser


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mill",
        usage="mill -p PROG [-t TAPE] [-o OUT] [-s]",
        description="Logic Mill engine https://mng.quest/",
    )
    parser.add_argument("-p", "--program", help="program text or file")
    parser.add_argument("-t", "--tape", help="tape text or file")
    parser.add_argument("-o", "--output", help="output file")
    parser.add_argument("-s", "--steps", dest="log_steps", action="store_true", help="log steps taken")
    parser.add_argument("--trace", action="store_true", help="print every applied rule to stderr")
    parser.add_argument("--verbose", action="store_true", help="show recent steps and the tape around the head on failure")
    parser.add_argument("--report-json", action="store_true", help="also emit a JSON run report on failure")
    return parser


def _arg_error(parser: argparse.ArgumentParser, message: str) -> int:
    print(parser.format_usage(), end="", file=sys.stderr)
    print(f"error: {message}", file=sys.stderr)
    return 1


def _open_input(value: str, stack: ExitStack) -> Tuple[Union[TextIO, str], str]:
    """Return an open stream for ``value``, or ``value`` itself when it is not a readable path."""
    if value == "-":
        return sys.stdin, "<stdin>"
    try:
        handle = open(value, "r", encoding="utf-8")
    except (OSError, ValueError):
        return value, "<string>"
    stack.enter_context(handle)
    return handle, value


def _read_tape_line(source: Union[TextIO, str]) -> str:
    if isinstance(source, str):
        line = source.split("\n", 1)[0]
    else:
        line = source.readline()
    return line.rstrip("\r\n")


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    if args.program is None:
        return _arg_error(parser, "-p/--program: expected filename")
    if args.tape is None and args.program == "-":
        return _arg_error(parser, "-t/--tape: expected filename")
    if args.program == "-" and args.tape == "-":
        return _arg_error(parser, "-t/--tape: conflicting filename")
    tape_arg = "-" if args.tape is None else args.tape

    with ExitStack() as stack:
        program_source, program_name = _open_input(args.program, stack)
        tape_source, _tape_name = _open_input(tape_arg, stack)

        try:
            program = Parser(program_source, program_name).parse()
            tape = Tape.seed(_read_tape_line(tape_source))
        except MillParseError as error:
            print(f"ParseError: {error}", file=sys.stderr)
            return 1
        except MillCapacityError as error:
            print(f"CapacityError: {error}", file=sys.stderr)
            return 1
        except UnicodeDecodeError as error:
            print(f"Failed to decode input: {error}", file=sys.stderr)
            return 1

        if args.verbose:
            for instr in program.duplicates():
                print(
                    f"warning: {program_name}:{instr.line}: rule '{program.format_instruction(instr)}' is shadowed by an earlier rule",
                    file=sys.stderr,
                )

        hooks = HookRegistry()
        if args.trace:
            hooks.add_step_rule(name="trace", every_n=1, handler=trace_printer(sys.stderr.write))
        interpreter = Interpreter(program, verbose=args.verbose or args.report_json, hooks=hooks)
        try:
            outcome = interpreter.run(tape)
        except MillRuntimeError as error:
            print(f"RuntimeError: {error}", file=sys.stderr)
            return 1

        if not isinstance(outcome, Halted):
            formatter = RunReportFormatter(interpreter)
            print(formatter.format_text(outcome, tape, verbose=args.verbose), file=sys.stderr)
            if args.report_json:
                print(formatter.to_json(outcome, tape), file=sys.stderr)
            return 1

        if args.log_steps:
            print(f"{outcome.steps} steps", file=sys.stderr)

        rendered = tape.render() + "\n"
        if args.output is None or args.output == "-":
            sys.stdout.write(rendered)
            return 0
        try:
            with open(args.output, "w", encoding="utf-8") as handle:
                handle.write(rendered)
        except OSError as exc:
            print(f"-o/--output: {exc}", file=sys.stderr)
            return 1
    return 0


def main() -> None:
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
