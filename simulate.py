"""
simulate.py

Console driver for the memory simulator.

Usage:
    python simulate.py --list
    python simulate.py --example 4
    python simulate.py --example 1 --step
    python simulate.py program.cpp --leaks -vv

Exit codes:
    0  script executed successfully
    1  script aborted with an error
    2  usage error (bad example number, unreadable file)
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import Optional, Sequence

from example_scripts import EXAMPLES, get_example
from memory_model import render_config
from script_interpreter import ScriptInterpreter

_log = logging.getLogger("simulate")

EXIT_OK = 0
EXIT_SCRIPT_ERROR = 1
EXIT_USAGE = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Send log records to stderr.

    0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)


def _load_script(args: argparse.Namespace) -> Optional[str]:
    """Script text selected on the command line, or None on a usage error."""
    if args.example is not None:
        try:
            title, text = get_example(args.example - 1)
        except IndexError as exc:
            _log.error("%s", exc)
            return None
        print(f"--- Example {args.example}: {title} ---")
        return text

    path = Path(args.file).expanduser()
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        _log.error("Cannot read %s: %s", path, exc)
        return None


# ===========================================================================
# Commands
# ===========================================================================

def cmd_list() -> int:
    for index, (title, _) in enumerate(EXAMPLES, start=1):
        print(f"{index:2}. {title}")
    return EXIT_OK


def cmd_run(interpreter: ScriptInterpreter, script: str, step: bool) -> bool:
    """Execute a script, either in one go or one line per Enter key."""
    if not step:
        ok = interpreter.execute(script)
        interpreter.manager.print()
        return ok

    def show(text: str, line_no: int) -> None:
        interpreter.manager.print()
        print(f"\n>>> {line_no:3}: {text.strip()}")
        input("[Enter] execute line ")

    ok = interpreter.execute_stepwise(script, show)
    print("\n--- Program ended ---")
    interpreter.manager.print()
    return ok


def cmd_leaks(interpreter: ScriptInterpreter) -> None:
    leaks = interpreter.manager.report_leaks()
    if not leaks:
        print("No memory leaks detected.")
        return
    print(f"{len(leaks)} leaked block(s):")
    for block_id in leaks:
        print(f"  {interpreter.manager.get_block(block_id).to_console()}")


# ===========================================================================
# Argument parsing
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="memory-simulator",
        description=(
            "Simulate stack, heap and smart-pointer memory for a small\n"
            "C++-like subset and print the resulting memory state."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              memory-simulator --list
              memory-simulator --example 4
              memory-simulator program.cpp --step --leaks
        """),
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "file",
        nargs="?",
        help="Script file to execute.",
    )
    source.add_argument(
        "-e", "--example",
        type=int,
        metavar="N",
        help="Execute predefined example N (see --list).",
    )
    parser.add_argument(
        "-l", "--list",
        action="store_true",
        help="List the predefined examples and exit.",
    )
    parser.add_argument(
        "-s", "--step",
        action="store_true",
        help="Wait for Enter before each line and show the state in between.",
    )
    parser.add_argument(
        "--leaks",
        action="store_true",
        help="Print a leak report after execution.",
    )
    parser.add_argument(
        "--color",
        action="store_true",
        help="Use ANSI colours in the memory state output.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the simulator CLI.

    Args:
        argv: Command-line arguments (``sys.argv[1:]`` if None)

    Returns:
        Exit code
    """
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    render_config.use_color = args.color

    if args.list:
        return cmd_list()
    if args.file is None and args.example is None:
        parser.print_help(sys.stderr)
        return EXIT_USAGE

    script = _load_script(args)
    if script is None:
        return EXIT_USAGE

    interpreter = ScriptInterpreter()
    try:
        ok = cmd_run(interpreter, script, args.step)
    except (KeyboardInterrupt, EOFError):
        _log.info("Interrupted by user.")
        return 130
    if not ok:
        print(f"Error: {interpreter.last_error}", file=sys.stderr)
    if args.leaks:
        cmd_leaks(interpreter)
    return EXIT_OK if ok else EXIT_SCRIPT_ERROR


if __name__ == "__main__":
    sys.exit(main())
