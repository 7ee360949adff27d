"""
wardex - workspace organizer.

Classifies inbox entries, relocates them into the workspace tree and keeps
an undoable history of every move.
"""

__version__ = "0.3.0"
