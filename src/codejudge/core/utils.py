from __future__ import annotations
import random, signal, string, time
from typing import Optional


def new_run_id() -> str:
    suf = "".join(random.choice(string.hexdigits.lower()) for _ in range(6))
    return f"{int(time.time())}-{suf}"


def normalize_output(text: str) -> str:
    """
    Canonical form used for output comparison: trailing whitespace is dropped
    on every line and blank lines disappear. Spacing inside a line is kept.
    """
    lines = (line.rstrip() for line in text.split("\n"))
    return "\n".join(line for line in lines if line)


def decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def signal_name(signum: Optional[int]) -> str:
    if signum is None:
        return "?"
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"signal {signum}"
