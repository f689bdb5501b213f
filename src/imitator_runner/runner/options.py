"""Parsing and filtering of client supplied tool options."""
from typing import Iterable, List, Optional


def parse_options(raw_options: Optional[str]) -> List[str]:
    """
    Split a raw option string on whitespace.

    Args:
        raw_options: Space separated flags, may be None or empty

    Returns:
        List[str]: Non-empty option tokens in their original order
    """
    if not raw_options:
        return []
    return raw_options.split()


def option_name(token: str) -> str:
    """Return the part of an option token before the first '='."""
    return token.split("=", 1)[0]


def filter_options(tokens: Iterable[str], disallowed: Iterable[str]) -> List[str]:
    """
    Drop tokens whose flag name exactly matches a disallowed flag.

    Matching is done on the segment before '=', so both ``-flag`` and
    ``-flag=value`` are removed while ``-flagged`` is kept.

    Args:
        tokens: Option tokens
        disallowed: Flag names the caller may not set

    Returns:
        List[str]: Allowed tokens in their original order
    """
    blocked = frozenset(disallowed)
    return [token for token in tokens if option_name(token) not in blocked]


def prepare_options(raw_options: Optional[str], disallowed: Iterable[str]) -> List[str]:
    """Parse and filter a raw option string in one step."""
    return filter_options(parse_options(raw_options), disallowed)
