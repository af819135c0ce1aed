#!/usr/bin/env python3
"""
stepeval Feature Demonstration

This script walks through the major features of the stepeval library.
"""

from pathlib import Path
from stepeval import (
    Evaluator, E, STOP, Input,
    iterate, run, configure_logging,
)


def section(title: str):
    """Print a section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print('='*60)


def demo_basic_traces():
    """Trace plain arithmetic, one rewrite per line."""
    section("Basic Traces")

    examples = [
        "42 + 23",
        "1 * (2 + 3) / 4 - 5 === 6 % 7",
        "-42 > -(23 + 13)",
    ]

    for expr_str in examples:
        print(f"\n  {expr_str}")
        for state in iterate(E(expr_str), {}):
            print(f"    {state}")


def demo_builder():
    """Build expressions programmatically."""
    section("Expression Builder")

    expr = E.cond(E.op("<", "x", 0), E.op("-", "x"), "x")
    print(f"  E.cond(E.op('<', 'x', 0), E.op('-', 'x'), 'x') => {expr}")

    call = E.call("abs", E.op("-", 1, 10))
    print(f"  E.call('abs', E.op('-', 1, 10))              => {call}")


def demo_functions():
    """Define functions and trace a recursive call."""
    section("Functions")

    evaluator = Evaluator.from_dsl('''
        factorial(n) = n <= 0 ? 1 : n * factorial(n - 1)
    ''')
    evaluator.define("abs", ["x"], "x < 0 ? -x : x")

    print("  Functions:", ", ".join(evaluator.list_functions()))

    value, trace = evaluator.evaluate("factorial(2)", trace=True)
    print()
    print(trace.format("lines"))
    print(f"\n  Result: {value}")
    print(f"  {trace.summary()}")
    print(f"  Rules: {trace.format('rules')}")


def demo_trace_styles():
    """Show the different trace formats."""
    section("Trace Styles")

    evaluator = Evaluator()
    _, trace = evaluator.evaluate("(1 + 2) * -3", trace=True)

    for style in ("chain", "compact", "rules"):
        print(f"\n  {style}:")
        for line in trace.format(style).splitlines():
            print(f"    {line}")


def demo_cancellation():
    """Cancel a non-terminating evaluation."""
    section("Cancellation")

    evaluator = Evaluator.from_dsl("infty(i) = infty(i + 1)")

    print("  Breaking out of the generator after 6 states:")
    for count, state in enumerate(evaluator.steps("infty(0)"), 1):
        print(f"    {state}")
        if count == 6:
            break

    print("\n  Returning STOP from a run() consumer:")
    seen = []

    def consumer(state):
        seen.append(state)
        if len(seen) == 4:
            return STOP

    last = run(Input(evaluator.functions, E("infty(10)")), consumer)
    print(f"    stopped at {last} after {len(seen)} states")

    print("\n  Bounding an evaluation with max_steps:")
    last, trace = evaluator.evaluate("infty(0)", trace=True, max_steps=5)
    print(f"    {trace.format('compact')}")


def demo_file_loading():
    """Load function tables from files."""
    section("Loading Functions from Files")

    examples_dir = Path(__file__).parent

    evaluator = Evaluator.from_file(examples_dir / "recursion.fns")
    print(f"  Loaded {len(evaluator)} functions from recursion.fns")

    examples = [
        "and(or(false, 1), !(5 == 6))",
        "even(7)",
        "fib(10)",
    ]

    print()
    for expr_str in examples:
        value, trace = evaluator.evaluate(expr_str, trace=True)
        print(f"    {expr_str} => {value} ({len(trace)} steps)")

    print("\n  As JSON:")
    print(Evaluator.from_file(examples_dir / "boolean.fns").to_json(name="boolean"))


def demo_logging():
    """Enable debug logging for a short run."""
    section("Debug Logging")

    configure_logging("DEBUG")
    Evaluator().evaluate("1 + 2 * 3")
    configure_logging("WARNING")


def main():
    """Run all demonstrations."""
    print("stepeval - small-step evaluation traces")
    print("Feature Demonstration")

    demo_basic_traces()
    demo_builder()
    demo_functions()
    demo_trace_styles()
    demo_cancellation()
    demo_file_loading()
    demo_logging()

    print("\n" + "="*60)
    print(" Demo complete!")
    print("="*60)


if __name__ == "__main__":
    main()
