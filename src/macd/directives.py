"""Directive file reading for macd."""

import logging
import shlex
from pathlib import Path

from macd.models import Command, Directives

logger = logging.getLogger(__name__)

TIMELIMIT_KEYWORD = "timelimit"


class DirectiveError(Exception):
    """Raised when the directive file cannot be obtained."""


def tokenize(line: str) -> tuple[str, ...]:
    """Split a directive line into argv tokens.

    Lines with unbalanced quotes produce an empty argv so they fail to
    launch instead of aborting the whole run.
    """
    try:
        return tuple(shlex.split(line))
    except ValueError:
        logger.warning("Could not tokenize directive line: %r", line)
        return ()


def parse_time_limit(line: str) -> int | None:
    """Return N for a ``timelimit N`` line, otherwise None."""
    tokens = line.split()
    if len(tokens) < 2 or tokens[0] != TIMELIMIT_KEYWORD:
        return None
    if not (tokens[1].isascii() and tokens[1].isdecimal()):
        return None
    return int(tokens[1])


def parse_directives(text: str) -> Directives:
    """Parse directive text into commands and an optional time limit."""
    lines = text.splitlines()
    time_limit = None

    if lines:
        time_limit = parse_time_limit(lines[0])
        if time_limit is not None:
            lines = lines[1:]

    commands = tuple(Command(line=line, argv=tokenize(line)) for line in lines)
    return Directives(commands=commands, time_limit_seconds=time_limit)


def read_directives(path: str | Path) -> Directives:
    """Read and parse a directive file.

    Raises:
        DirectiveError: If the file cannot be read.
    """
    try:
        text = Path(path).read_text()
    except (OSError, UnicodeDecodeError) as e:
        raise DirectiveError(f"{path} not found") from e
    return parse_directives(text)
