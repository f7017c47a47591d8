"""Command line tool for compiling and testing topic patterns."""

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from .errors import ParameterError, PatternError
from .pattern import Pattern
from .compiler import SEPARATOR, TokenType


def parse_assignments(pattern: Pattern, assignments: List[str]) -> Dict[str, Any]:
    """Turn ``name=value`` arguments into build parameters.

    Values for ``#`` wildcards are split on ``/``; an empty value means no levels.
    """
    multi_names = {token.name for token in pattern.tokens if token.type is TokenType.MULTI}
    params: Dict[str, Any] = {}
    for assignment in assignments:
        name, sep, value = assignment.partition("=")
        if not sep:
            raise ParameterError(f"expected name=value, got {assignment!r}")
        if name in multi_names:
            params[name] = value.split(SEPARATOR) if value else []
        else:
            params[name] = value
    return params


def format_output(data: Dict[str, Any], format_type: str = "pretty") -> str:
    """Format output for display."""
    if format_type == "json":
        return json.dumps(data, indent=2)

    if "error" in data:
        return f"Error: {data['error']}"

    if "topic" in data and len(data) == 1:
        return data["topic"]

    return json.dumps(data, indent=2)


def run(args: argparse.Namespace) -> Dict[str, Any]:
    try:
        pattern = Pattern(args.pattern)
        if args.command == "topic":
            return {"topic": pattern.topic}
        if args.command == "match":
            params = pattern.match_parameters(args.topic)
            if params is None:
                return {"error": f"{args.topic!r} does not match {pattern.pattern!r}", "matched": False}
            return {"matched": True, "params": params}
        if args.command == "build":
            return {"topic": pattern.build_topic(parse_assignments(pattern, args.params))}
    except (PatternError, ParameterError) as e:
        return {"error": str(e)}
    return {"error": f"unknown command {args.command!r}"}


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="topicbus pattern tool")
    parser.add_argument("--format", choices=["pretty", "json"], default="pretty", help="Output format")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    topic = subparsers.add_parser("topic", help="Print the subscribable topic of a pattern")
    topic.add_argument("pattern", help="Topic pattern, e.g. devices/+deviceId/status")

    match = subparsers.add_parser("match", help="Match a topic and print extracted parameters")
    match.add_argument("pattern", help="Topic pattern")
    match.add_argument("topic", help="Concrete topic")

    build = subparsers.add_parser("build", help="Build a concrete topic from parameters")
    build.add_argument("pattern", help="Topic pattern")
    build.add_argument("params", nargs="*", help="name=value pairs; # values are split on /")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    result = run(args)
    print(format_output(result, args.format))

    if "error" in result:
        sys.exit(1)


if __name__ == "__main__":
    main()
