"""Editing session for thread-flow graphs.

This module contains the EditSession, which serializes edits, keeps bounded
undo/redo history and recomputes validation, schedule and layout after every
change.
"""

from src.editor.session import EditSession, HistoryError, SessionState, analyze

__all__ = ["EditSession", "HistoryError", "SessionState", "analyze"]
