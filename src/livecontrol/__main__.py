#!/usr/bin/env python3
"""
CLI for evaluating livecontrol expressions and documents.

Usage:
    python -m livecontrol eval EXPR [--set NAME=VALUE ...] [--frame N]
    python -m livecontrol check EXPR
    python -m livecontrol resolve FILE.yaml [--frame N]

Examples:
    # Evaluate against frame 30's time signals
    python -m livecontrol eval "ease(t, 0.25)" --frame 30

    # Extra bindings
    python -m livecontrol eval "clamp(x, 0, 1)" --set x=1.5

    # Resolve a control document and print YAML
    python -m livecontrol resolve scene.yaml --frame 120
"""

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Any, Dict

import yaml

from .context import EvaluationContext
from .expr import free_names, parse_expression
from .expr.errors import LivecodeError
from .signals import FrameInput, FrameSignals
from .unitcells import UnitCell


def parse_binding(binding_str: str) -> tuple:
    """Parse a binding string like 'name=value' into (name, typed_value)."""
    if '=' not in binding_str:
        raise ValueError(f"Invalid binding format: {binding_str} (expected name=value)")

    name, value_str = binding_str.split('=', 1)
    name = name.strip()
    value_str = value_str.strip()

    if value_str.lower() == 'true':
        return (name, True)
    elif value_str.lower() == 'false':
        return (name, False)

    try:
        return (name, int(value_str))
    except ValueError:
        pass

    try:
        return (name, float(value_str))
    except ValueError:
        raise ValueError(f"Binding {name} must be a number or bool, got {value_str!r}")


def to_plain(value: Any) -> Any:
    """Resolved value -> something yaml.safe_dump accepts."""
    if isinstance(value, UnitCell):
        return to_plain(value.node)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if isinstance(value, (bool, int, float, str)) or value is None:
        return value
    return repr(value)


def frame_context(frame: int) -> EvaluationContext:
    signals = FrameSignals.default()
    signals.update(FrameInput(frame=frame))
    return EvaluationContext.build(signals=signals)


def cmd_eval(args):
    """Evaluate one expression."""
    bindings: Dict[str, Any] = {}
    for binding_str in args.set or []:
        try:
            name, value = parse_binding(binding_str)
            bindings[name] = value
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    try:
        ctx = frame_context(args.frame)
        if bindings:
            ctx = ctx.with_bindings(bindings)
        value = ctx.evaluate(args.expr)
    except LivecodeError as e:
        print(e.diagnostic.format(), file=sys.stderr)
        return 1

    print(value.to_python())
    return 0


def cmd_check(args):
    """Parse an expression and report names it would need."""
    try:
        expr = parse_expression(args.expr)
    except LivecodeError as e:
        print(e.diagnostic.format(), file=sys.stderr)
        return 1

    ctx = frame_context(0)
    unknown = sorted(n for n in free_names(expr) if n not in ctx)
    if unknown:
        print(f"OK: parses; unbound names: {', '.join(unknown)}")
    else:
        print("OK: parses, all names bound")
    return 0


def cmd_resolve(args):
    """Resolve every control in a document for one frame."""
    from .config import load_document

    source_path = Path(args.file)
    if not source_path.exists():
        print(f"Error: File not found: {source_path}", file=sys.stderr)
        return 1

    try:
        document = load_document(source_path)
    except LivecodeError as e:
        print(e.diagnostic.format(), file=sys.stderr)
        return 1

    # controls that fail are reported and left out; the rest still print
    values, collector = document.resolve_collecting(document.context(args.frame))
    if collector.entries:
        print(collector.report(), file=sys.stderr)
    print(yaml.safe_dump(to_plain(values), sort_keys=False), end="")
    return 1 if collector.has_errors else 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog='python -m livecontrol',
        description='Evaluate livecontrol expressions and control documents',
    )
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log debug output to stderr')

    subparsers = parser.add_subparsers(dest='action', required=True)

    # eval command
    eval_parser = subparsers.add_parser('eval', help='Evaluate an expression')
    eval_parser.add_argument('expr', help='Expression source')
    eval_parser.add_argument('-s', '--set', action='append', metavar='NAME=VALUE',
                             help='Extra binding (can be repeated)')
    eval_parser.add_argument('-f', '--frame', type=int, default=0,
                             help='Frame number for time signals')

    # check command
    check_parser = subparsers.add_parser('check', help='Check an expression for errors')
    check_parser.add_argument('expr', help='Expression source')

    # resolve command
    resolve_parser = subparsers.add_parser('resolve', help='Resolve a control document')
    resolve_parser.add_argument('file', help='YAML control document')
    resolve_parser.add_argument('-f', '--frame', type=int, default=0,
                                help='Frame number for time signals')

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if args.action == 'eval':
        return cmd_eval(args)
    elif args.action == 'check':
        return cmd_check(args)
    elif args.action == 'resolve':
        return cmd_resolve(args)
    else:
        parser.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main())
