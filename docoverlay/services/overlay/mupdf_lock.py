"""
PyMuPDF Serialization

MuPDF must not be driven from more than one thread at a time, and font
objects are shared across sessions. Every call that touches fitz objects
holds MUPDF_LOCK: inline with ``with MUPDF_LOCK:`` on the event loop, or
through run_locked for work pushed to a worker thread.
"""

import asyncio
import threading
from typing import Any, Callable, TypeVar

T = TypeVar("T")

# Reentrant so locked helpers can call each other
MUPDF_LOCK = threading.RLock()


def call_locked(func: Callable[..., T], *args: Any) -> T:
    with MUPDF_LOCK:
        return func(*args)


async def run_locked(func: Callable[..., T], *args: Any) -> T:
    """Run func in a worker thread while holding MUPDF_LOCK."""
    return await asyncio.to_thread(call_locked, func, *args)
