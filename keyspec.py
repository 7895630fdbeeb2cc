# keyspec.py - turns a hotkey spec (M-x, C-x, KEY_NAME, F5) into prompt_toolkit keys
from __future__ import annotations
import re
from typing import Tuple


class KeySpecError(ValueError):
    pass


# curses-style names
NAMED_KEYS = {
    "UP": "up", "DOWN": "down", "LEFT": "left", "RIGHT": "right",
    "HOME": "home", "END": "end",
    "NPAGE": "pagedown", "PPAGE": "pageup",
    "IC": "insert", "DC": "delete",
    "BACKSPACE": "backspace", "ENTER": "enter", "BTAB": "s-tab",
    "SLEFT": "s-left", "SRIGHT": "s-right", "SHOME": "s-home", "SEND": "s-end",
}

CONTROL_CHARS = "abcdefghijklmnopqrstuvwxyz@\\]^_"
MAX_FUNCTION_KEY = 24

_FKEY = re.compile(r"F(\d+)$")


def _function_key(digits: str, spec: str) -> str:
    n = int(digits)
    if not 1 <= n <= MAX_FUNCTION_KEY:
        raise KeySpecError(f"function key out of range: {spec}")
    return f"f{n}"


def parse_key(spec: str) -> Tuple[str, ...]:
    """Return the key sequence for spec, suitable for KeyBindings.add(*keys)."""
    if not spec:
        raise KeySpecError("empty key spec")

    if spec.startswith("M-"):
        rest = spec[2:]
        if len(rest) != 1:
            raise KeySpecError(f"meta key needs exactly one character: {spec}")
        return ("escape", rest)

    if spec.startswith("C-"):
        rest = spec[2:]
        if len(rest) != 1 or rest.lower() not in CONTROL_CHARS:
            raise KeySpecError(f"invalid control key: {spec}")
        return (f"c-{rest.lower()}",)

    if spec.startswith("KEY_"):
        name = spec[4:]
        m = _FKEY.match(name)
        if m:
            return (_function_key(m.group(1), spec),)
        if name not in NAMED_KEYS:
            raise KeySpecError(f"unknown key name: {spec}")
        return (NAMED_KEYS[name],)

    m = _FKEY.match(spec)
    if m:
        return (_function_key(m.group(1), spec),)

    raise KeySpecError(f"unrecognized key spec: {spec}")
