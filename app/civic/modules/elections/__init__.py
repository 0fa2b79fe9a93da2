"""
Election lifecycle.

Status machine (transitions are triggered externally, never on a timer):
- draft -> published -> active -> completed
- draft / published / active -> cancelled
Elections are never deleted; they are retained for audit.
"""
