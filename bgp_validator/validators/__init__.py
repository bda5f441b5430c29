"""
BGP Validator Validators Module

Provides RPKI origin validation against a remote validity endpoint with
tri-state verdicts (VALID/INVALID/UNKNOWN).
"""

from .rpki import RoutinatorValidator, parse_verdict

__all__ = ["RoutinatorValidator", "parse_verdict"]
