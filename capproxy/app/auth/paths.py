"""
Path pattern matching.

A pattern is a path template such as ``/posts/{post_id}/comments/{id}``.
Each ``{name}`` placeholder matches one or more characters other than ``/``;
everything else is literal. Patterns are parsed into nodes and matched
directly, so characters like ``+``, ``.`` or ``?`` never take on a special
meaning.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple, Union


_PLACEHOLDER = re.compile(r"\{([^{}/]+)\}")


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Parameter:
    name: str


Node = Union[Literal, Parameter]


@lru_cache(maxsize=256)
def parse_pattern(pattern: str) -> Tuple[Node, ...]:
    """
    Split a pattern into literal and parameter nodes.

    Braces that do not form a placeholder (``{}``, an unclosed ``{``, or
    braces around a ``/``) stay literal text.

    Example:
        >>> parse_pattern("/posts/{id}")
        (Literal(text='/posts/'), Parameter(name='id'))
    """
    nodes = []
    position = 0
    for placeholder in _PLACEHOLDER.finditer(pattern):
        if placeholder.start() > position:
            nodes.append(Literal(pattern[position:placeholder.start()]))
        nodes.append(Parameter(placeholder.group(1)))
        position = placeholder.end()
    if position < len(pattern):
        nodes.append(Literal(pattern[position:]))
    return tuple(nodes)


def _match_from(nodes: Tuple[Node, ...], index: int, path: str, offset: int) -> bool:
    if index == len(nodes):
        return offset == len(path)

    node = nodes[index]
    if isinstance(node, Literal):
        if not path.startswith(node.text, offset):
            return False
        return _match_from(nodes, index + 1, path, offset + len(node.text))

    # A parameter consumes a non-empty run of non-slash characters; try each
    # possible length so a following literal can still line up.
    end = offset + 1
    while end <= len(path) and path[end - 1] != "/":
        if _match_from(nodes, index + 1, path, end):
            return True
        end += 1
    return False


def matches(concrete_path: str, pattern: str) -> bool:
    """
    Test whether a concrete path matches a pattern in full.

    Args:
        concrete_path: Path taken from the request, without query string
        pattern: Path template from the token

    Returns:
        True if the whole path matches the whole pattern
    """
    return _match_from(parse_pattern(pattern), 0, concrete_path, 0)
