"""Inbox Archiver: archive mail items and mirror their audience as file access."""

__version__ = "0.1.0"
