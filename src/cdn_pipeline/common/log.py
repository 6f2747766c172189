from __future__ import annotations

from typing import Callable

# Anything that accepts one formatted line, e.g. print or list.append.
LogSink = Callable[[str], None]


def console(line: str) -> None:
    print(line, flush=True)
