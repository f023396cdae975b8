"""Archiving pipeline components."""

from .filesystem import LocalFileSystem
from .gate import GateDecision, decide
from .paths import PathBuilder
from .processor import MessageArchiver

__all__ = [
    "GateDecision",
    "LocalFileSystem",
    "MessageArchiver",
    "PathBuilder",
    "decide",
]
