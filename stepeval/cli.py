#!/usr/bin/env python3
"""
stepeval Command-Line Interface

Provides interactive REPL, script execution, and pipe/filter modes.

Usage:
    stepeval                               # Start REPL
    stepeval script.steps                  # Run script
    stepeval -e "(42 + 23) * 2"            # Trace one expression
    stepeval -f factorial.fns              # REPL with functions preloaded
    stepeval -f factorial.fns -e "factorial(3)" --final
    echo "1 + 2" | stepeval                # Filter mode

Script Format (.steps files):
    #!/usr/bin/env stepeval
    :load boolean.fns
    factorial(n) = n <= 0 ? 1 : n * factorial(n - 1)

    factorial(2)
    and(true, 1 < 2)

REPL Commands:
    :help              Show help
    :load FILE         Load functions from file (or NAME from the search path)
    :functions         List loaded functions
    :clear             Clear all functions
    :trace on|off      Print every state, or only the last one
    :limit N|off       Stop after N states
    :format STYLE      Trace style (lines, chain, compact, rules)
    :quit              Exit
"""

import argparse
import glob
import itertools
import sys
from pathlib import Path
from typing import Iterator, List, Optional, Union

from loguru import logger

from . import __version__
from .engine import EvaluationTrace, Evaluator
from .errors import StepevalError
from .expr import Expr, format_expr
from .logging_utils import configure_logging, level_from_env
from .parser import parse_expression, parse_function_definition

# Try to import readline for better REPL experience
try:
    import readline
    HAS_READLINE = True
except ImportError:
    HAS_READLINE = False

# Standard function library search paths
FUNCTION_SEARCH_PATHS = [
    Path("./functions"),
    Path.home() / ".config" / "stepeval" / "functions",
]

# Errors reported to the user instead of aborting the session. The parser
# recurses per nesting level, so very deeply nested source text can still
# exhaust the call stack.
USER_ERRORS = (StepevalError, OSError, ValueError, RecursionError)


def find_function_file(name_or_path: str) -> Optional[Path]:
    """
    Resolve a :load argument to a file.

    An existing path is used as is. A bare name (no path separator) is looked
    up as NAME.fns in FUNCTION_SEARCH_PATHS.

    Returns:
        The file path, or None if nothing was found
    """
    path = Path(name_or_path)
    if path.exists():
        return path
    if "/" in name_or_path or "\\" in name_or_path:
        return None

    for search_dir in FUNCTION_SEARCH_PATHS:
        candidate = search_dir / f"{name_or_path}.fns"
        if candidate.exists():
            return candidate
    return None


class StepevalCompleter:
    """Tab completer for the stepeval REPL."""

    COMMANDS = [
        ":help", ":quit", ":exit", ":q",
        ":load", ":functions", ":clear",
        ":trace", ":limit", ":format",
    ]

    TRACE_OPTIONS = ["on", "off"]

    def __init__(self, repl: 'StepevalREPL'):
        self.repl = repl
        self.matches: List[str] = []

    def complete(self, text: str, state: int) -> Optional[str]:
        """Return the next possible completion for 'text'."""
        if state == 0:
            line = readline.get_line_buffer() if HAS_READLINE else ""
            self.matches = self._get_matches(text, line)

        try:
            return self.matches[state]
        except IndexError:
            return None

    def _get_matches(self, text: str, line: str) -> List[str]:
        line = line.lstrip()

        if line.startswith(":trace "):
            return [t for t in self.TRACE_OPTIONS if t.startswith(text)]

        if line.startswith(":format "):
            return [s for s in EvaluationTrace.STYLES if s.startswith(text)]

        if line.startswith(":load "):
            return self._complete_path(text)

        if text.startswith(":") or (line.startswith(":") and " " not in line):
            return [c for c in self.COMMANDS if c.startswith(text)]

        # Expression context: complete function names
        names = [name for name, _ in self.repl.evaluator]
        return [n for n in names if text and n.startswith(text)]

    def _complete_path(self, text: str) -> List[str]:
        pattern = (text or "./") + "*"
        matches = []
        for path in glob.glob(pattern):
            matches.append(path + "/" if Path(path).is_dir() else path)
        return matches


def count_parens(text: str) -> int:
    """Count unbalanced parentheses. Returns >0 if more open than close."""
    depth = 0
    for c in text:
        if c == '(':
            depth += 1
        elif c == ')':
            depth -= 1
    return depth


class StepevalREPL:
    """Interactive REPL for stepeval."""

    def __init__(self):
        self.evaluator = Evaluator()
        self.trace = True
        self.max_steps: Optional[int] = None
        self.style = "lines"
        self.running = True
        self.multi_line_buffer = ""

        if HAS_READLINE:
            self.history_file = Path.home() / ".stepeval_history"
            try:
                readline.read_history_file(self.history_file)
            except FileNotFoundError:
                pass
            readline.set_history_length(1000)

            self.completer = StepevalCompleter(self)
            readline.set_completer(self.completer.complete)
            readline.parse_and_bind("tab: complete")
            readline.set_completer_delims(" \t\n(),")

    def save_history(self):
        """Save readline history."""
        if HAS_READLINE:
            try:
                readline.write_history_file(self.history_file)
            except OSError as e:
                logger.debug("repl.history error={}", e)

    def load(self, name_or_path: str) -> int:
        """Load functions by path or search-path name; returns the count loaded."""
        path = find_function_file(name_or_path)
        if path is None:
            raise FileNotFoundError(f"No function file found for {name_or_path}")
        before = len(self.evaluator)
        self.evaluator.load_file(path)
        return len(self.evaluator) - before

    def handle_command(self, line: str) -> Optional[str]:
        """
        Handle a REPL command (starts with :).

        Returns a message to print, or None.
        """
        parts = line[1:].split(None, 1)
        if not parts:
            return "Unknown command. Type :help for help."

        cmd = parts[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else ""

        if cmd == "help":
            return self.help_text()

        elif cmd in ("quit", "exit", "q"):
            self.running = False
            return None

        elif cmd == "load":
            if not arg:
                return "Usage: :load FILE"
            try:
                count = self.load(arg)
            except USER_ERRORS as e:
                return f"Error loading {arg}: {e}"
            return f"Loaded {count} functions from {arg}"

        elif cmd == "functions":
            signatures = self.evaluator.list_functions()
            if not signatures:
                return "No functions defined"
            return "\n".join(signatures)

        elif cmd == "clear":
            self.evaluator.clear()
            return "Cleared all functions"

        elif cmd == "trace":
            if arg.lower() in ("on", "true", "1"):
                self.trace = True
            elif arg.lower() in ("off", "false", "0"):
                self.trace = False
            else:
                self.trace = not self.trace
            return f"Tracing {'enabled' if self.trace else 'disabled'}"

        elif cmd == "limit":
            if arg.lower() in ("off", "none", ""):
                self.max_steps = None
                return "Step limit disabled"
            try:
                limit = int(arg)
            except ValueError:
                return f"Error: not a number: {arg}"
            if limit <= 0:
                return "Error: limit must be positive"
            self.max_steps = limit
            return f"Step limit set to {limit}"

        elif cmd == "format":
            if arg.lower() not in EvaluationTrace.STYLES:
                return f"Unknown format. Options: {', '.join(EvaluationTrace.STYLES)}"
            self.style = arg.lower()
            return f"Format set to: {self.style}"

        else:
            return f"Unknown command: {cmd}. Type :help for help."

    def help_text(self) -> str:
        """Return help text."""
        return """stepeval REPL Commands:
  :help              Show this help
  :load FILE         Load functions from file (.fns or .json) or NAME
  :functions         List all defined functions
  :clear             Clear all functions
  :trace on|off      Print every state, or only the last one
  :limit N|off       Stop after N states
  :format STYLE      Trace style (lines, chain, compact, rules)
  :quit              Exit

Syntax:
  name(a, b) = body                        Define a function
  expression                               Trace an expression
  # comment
"""

    def render(self, expr: Union[str, Expr]) -> Iterator[str]:
        """
        Evaluate an expression and yield the output lines.

        With tracing on in the "lines" style, states are yielded as they are
        reached, so a non-terminating program still shows progress.
        """
        if isinstance(expr, str):
            expr = parse_expression(expr)

        if self.trace and self.style == "lines":
            states = iter(self.evaluator.steps(expr))
            try:
                for state in itertools.islice(states, self.max_steps):
                    yield format_expr(state)
            finally:
                states.close()
            return

        if not self.trace:
            yield format_expr(self.evaluator.evaluate(expr, max_steps=self.max_steps))
            return

        _, trace = self.evaluator.evaluate(expr, trace=True, max_steps=self.max_steps)
        yield trace.format(self.style)

    def execute(self, line: str) -> Iterator[str]:
        """
        Execute one non-command line: a definition or an expression.

        Errors propagate to the caller.
        """
        definition = parse_function_definition(line)
        if definition is not None:
            name, func = definition
            self.evaluator.define(name, func.parameters, func.body)
            yield f"Defined {func.signature(name)}"
            return
        yield from self.render(line)

    def process_line(self, line: str) -> Optional[str]:
        """
        Process a single line of input.

        Returns the result to print, or None.
        """
        line = line.strip()

        if not line or line.startswith(("#", "//")):
            return None

        if line.startswith(":"):
            return self.handle_command(line)

        try:
            return "\n".join(self.execute(line))
        except USER_ERRORS as e:
            return f"Error: {e}"

    def run(self):
        """Run the REPL loop."""
        print(f"stepeval {__version__} - small-step evaluation traces")
        print("Type :help for help, :quit to exit")
        print()

        while self.running:
            try:
                prompt = "...... " if self.multi_line_buffer else "step> "
                line = input(prompt)

                if self.multi_line_buffer:
                    self.multi_line_buffer += "\n" + line
                else:
                    self.multi_line_buffer = line

                paren_count = count_parens(self.multi_line_buffer)
                if paren_count > 0:
                    continue
                elif paren_count < 0:
                    print("Error: Unbalanced parentheses (too many closing)")
                    self.multi_line_buffer = ""
                    continue

                complete_input = self.multi_line_buffer
                self.multi_line_buffer = ""

                stripped = complete_input.strip()
                if stripped.startswith(":") or not stripped or stripped.startswith(("#", "//")):
                    result = self.process_line(complete_input)
                    if result:
                        print(result)
                    continue

                try:
                    for output in self.execute(stripped):
                        print(output, flush=True)
                except USER_ERRORS as e:
                    print(f"Error: {e}")

            except EOFError:
                print()
                break
            except KeyboardInterrupt:
                if self.multi_line_buffer:
                    print("\nInput cancelled")
                    self.multi_line_buffer = ""
                else:
                    print()
                continue

        self.save_history()


class ScriptRunner:
    """Runs stepeval scripts, one-shot expressions and stdin filters."""

    def __init__(self):
        self.repl = StepevalREPL()

    def _emit(self, line: str) -> None:
        for output in self.repl.execute(line):
            if not output.startswith("Defined "):
                print(output, flush=True)

    def run_script(self, path: Path) -> int:
        """
        Run a script file.

        Each traced expression is followed by a blank line. The first error
        is reported as path:line: message on stderr.

        Returns:
            Exit code (0 for success)
        """
        try:
            lines = path.read_text().splitlines()
        except OSError as e:
            print(f"Error reading {path}: {e}", file=sys.stderr)
            return 1

        for lineno, line in enumerate(lines, 1):
            line = line.strip()

            # Skip empty lines, comments, and shebang
            if not line or line.startswith(("#", "//")):
                continue

            if line.startswith(":"):
                result = self.repl.handle_command(line)
                # Command confirmations are only printed when they are errors
                if result and result.startswith(("Error", "Unknown", "Usage")):
                    print(f"{path}:{lineno}: {result}", file=sys.stderr)
                    return 1
                if not self.repl.running:
                    break
                continue

            try:
                if parse_function_definition(line) is not None:
                    list(self.repl.execute(line))
                    continue
                self._emit(line)
                print()
            except USER_ERRORS as e:
                print(f"{path}:{lineno}: Error: {e}", file=sys.stderr)
                return 1

        return 0

    def run_expression(self, expr_str: str) -> int:
        """
        Trace a single expression (or apply a single definition).

        Returns:
            Exit code (0 for success)
        """
        try:
            self._emit(expr_str.strip())
        except USER_ERRORS as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        return 0

    def run_stdin(self) -> int:
        """
        Read lines from stdin and trace each expression.

        Returns:
            Exit code (0 for success)
        """
        for lineno, line in enumerate(sys.stdin, 1):
            line = line.strip()
            if not line or line.startswith(("#", "//")):
                continue

            if line.startswith(":"):
                result = self.repl.handle_command(line)
                if result and result.startswith(("Error", "Unknown", "Usage")):
                    print(f"<stdin>:{lineno}: {result}", file=sys.stderr)
                    return 1
                continue

            try:
                self._emit(line)
            except USER_ERRORS as e:
                print(f"<stdin>:{lineno}: Error: {e}", file=sys.stderr)
                return 1

        return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="stepeval",
        description="stepeval - small-step evaluation traces",
        epilog="Examples:\n"
               "  stepeval                            Start REPL\n"
               "  stepeval script.steps               Run script\n"
               "  stepeval -e '(1 + 2) * 3'           Trace an expression\n"
               "  stepeval -f lib.fns -e 'f(3)'       Trace with functions\n"
               "  echo '1 + 2' | stepeval             Filter mode\n",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "script",
        nargs="?",
        help="Script file to run"
    )

    parser.add_argument(
        "-f", "--functions",
        action="append",
        default=[],
        help="Load functions from file (can be specified multiple times)"
    )

    parser.add_argument(
        "-e", "--expr",
        help="Trace a single expression"
    )

    parser.add_argument(
        "-n", "--max-steps",
        type=int,
        default=None,
        help="Stop after this many states"
    )

    parser.add_argument(
        "--final",
        action="store_true",
        help="Print only the last state"
    )

    parser.add_argument(
        "--format",
        default="lines",
        choices=list(EvaluationTrace.STYLES),
        help="Trace style"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging on stderr"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    args = parser.parse_args()

    if args.max_steps is not None and args.max_steps <= 0:
        parser.error("--max-steps must be positive")

    if args.verbose:
        configure_logging("DEBUG")
    else:
        env_level = level_from_env()
        if env_level:
            configure_logging(env_level)

    runner = ScriptRunner()
    runner.repl.trace = not args.final
    runner.repl.max_steps = args.max_steps
    runner.repl.style = args.format

    for functions_file in args.functions:
        try:
            runner.repl.load(functions_file)
        except USER_ERRORS as e:
            print(f"Error loading {functions_file}: {e}", file=sys.stderr)
            sys.exit(1)

    if args.script:
        sys.exit(runner.run_script(Path(args.script)))

    elif args.expr:
        sys.exit(runner.run_expression(args.expr))

    elif not sys.stdin.isatty():
        # Pipe/filter mode (stdin is not a terminal)
        sys.exit(runner.run_stdin())

    else:
        runner.repl.run()


if __name__ == "__main__":
    main()
