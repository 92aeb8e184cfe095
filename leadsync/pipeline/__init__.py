"""
Pure pipeline stages run on every sync.

Diffing classifies transitions between snapshots; scoring and next-action
rank open leads; candidates turn both into notifications.
"""

__all__ = ["activity", "candidates", "diff", "next_action", "scoring"]
