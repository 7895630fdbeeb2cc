# command_template.py - filter command template and $QUERY substitution
from __future__ import annotations
import shlex
from typing import List, Sequence

PLACEHOLDER = "$QUERY"


class TemplateError(ValueError):
    pass


def resolve(template: Sequence[str], query: str, placeholder: str = PLACEHOLDER) -> List[str]:
    """Return argv with every placeholder occurrence replaced by query.
    Tokens without the placeholder are passed through unchanged."""
    return [tok.replace(placeholder, query) if placeholder in tok else tok
            for tok in template]


def validate(template: Sequence[str]) -> List[str]:
    tokens = list(template)
    if not tokens or not tokens[0]:
        raise TemplateError("command template needs at least a program name")
    return tokens


def to_text(template: Sequence[str]) -> str:
    """Render the template for hand editing."""
    return shlex.join(template)


def from_text(text: str) -> List[str]:
    """Parse a hand-edited template back into tokens."""
    try:
        tokens = shlex.split(text, posix=True)
    except ValueError as e:
        raise TemplateError(f"cannot parse command: {e}") from e
    return validate(tokens)
