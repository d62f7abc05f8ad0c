"""Zip-based auto-assignment matching."""

from jobshare.matching.matcher import AutoAssignmentMatcher, ZoneMatch, select_match

__all__ = [
    "AutoAssignmentMatcher",
    "ZoneMatch",
    "select_match",
]
