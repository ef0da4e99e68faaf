"""
filters.py — Decide whether a normalized profile is worth keeping.
"""

from creator_sourcing.geo import is_target_country


def within_band(count: int, low: int, high: int) -> bool:
    """Inclusive follower band check."""
    return low <= count <= high


def passes_filter(profile, config) -> bool:
    """
    Follower count inside [min_followers, max_followers] and, when
    config.require_us is set, a US-looking profile.

    The numeric check runs first; the text scan only happens for
    profiles already inside the band.
    """
    if not within_band(profile.follower_count, config.min_followers, config.max_followers):
        return False
    if config.require_us and not is_target_country(profile):
        return False
    return True
