"""Collision-resistant ID generation.

IDs combine a millisecond timestamp, a per-machine token, the process
ID, a wrapping sequence counter and random bytes:

    node_1718000000000_a1b2c3_3f2a_000042_9e8d7c6b
"""

from __future__ import annotations

import itertools
import os
import secrets
import threading
import time

MAX_SEQUENCE = 999999

MACHINE_ID = os.environ.get("MACHINE_ID") or secrets.token_hex(3)

_counter = itertools.count(1)
_counter_lock = threading.Lock()


def _next_sequence() -> int:
    with _counter_lock:
        return next(_counter) % MAX_SEQUENCE


def _generate(prefix: str) -> str:
    timestamp = int(time.time() * 1000)
    sequence = _next_sequence()
    return (
        f"{prefix}_{timestamp}_{MACHINE_ID}_{os.getpid():x}_"
        f"{sequence:06d}_{secrets.token_hex(4)}"
    )


def generate_unique_node_id() -> str:
    return _generate("node")


def generate_unique_edge_id() -> str:
    return _generate("edge")


def generate_unique_graph_id() -> str:
    return _generate("graph")


def generate_session_id() -> str:
    """Generate an ID for tracking a bulk session or transaction."""
    return f"session_{int(time.time() * 1000)}_{MACHINE_ID}_{secrets.token_hex(8)}"


def detect_id_collisions(ids: list[str]) -> list[str]:
    """Return IDs that appear more than once, in order of repetition."""
    seen: set[str] = set()
    collisions: list[str] = []
    for item in ids:
        if item in seen:
            collisions.append(item)
        else:
            seen.add(item)
    return collisions
