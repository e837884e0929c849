"""Storage backends implementing the synchronizer contract."""

from pysyncstate.backends.cookie import CookieOptions, CookieSynchronizer
from pysyncstate.backends.file import JsonFileSynchronizer
from pysyncstate.backends.http import HttpSynchronizer
from pysyncstate.backends.memory import MemorySynchronizer

__all__ = [
    "CookieOptions",
    "CookieSynchronizer",
    "HttpSynchronizer",
    "JsonFileSynchronizer",
    "MemorySynchronizer",
]
