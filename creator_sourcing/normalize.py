"""
normalize.py — Map raw TikTok scraper records onto one profile shape.

Different scraper actors name the same thing differently ("username" vs
"uniqueId" vs "authorMeta.name"), so every profile field has an ordered
list of candidate paths in FIELD_PATHS. The first present, non-empty value
wins. Keep the lists as data: tests enumerate the precedence per field.

normalize() never raises — missing data becomes None / 0 / ''.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Any, Optional

PROFILE_URL_TEMPLATE = 'https://www.tiktok.com/{handle}'

FIELD_PATHS = {
    'handle': (
        ('username',),
        ('uniqueId',),
        ('handle',),
        ('user', 'uniqueId'),
        ('author', 'uniqueId'),
        ('authorMeta', 'name'),
    ),
    'display_name': (
        ('nickname',),
        ('fullName',),
        ('user', 'nickname'),
        ('author', 'nickname'),
        ('authorMeta', 'nickName'),
    ),
    'follower_count': (
        ('followers',),
        ('followerCount',),
        ('stats', 'followerCount'),
        ('stats', 'follower_count'),
        ('authorMeta', 'fans'),
    ),
    'bio': (
        ('signature',),
        ('bio',),
        ('user', 'signature'),
        ('author', 'signature'),
        ('authorMeta', 'signature'),
    ),
    'profile_url': (
        ('profileUrl',),
    ),
    'email': (
        ('email',),
        ('businessEmail',),
    ),
    'external_url': (
        ('link',),
        ('bioUrl',),
        ('externalUrl',),
        ('authorMeta', 'bioLink'),
    ),
    'region': (
        ('region',),
        ('country',),
        ('authorMeta', 'region'),
    ),
    'topics': (
        ('topics',),
        ('hashtags',),
        ('tags',),
    ),
    'language': (
        ('language',),
        ('lang',),
    ),
    'location': (
        ('location',),
    ),
}

# Used only when neither profileUrl nor a handle is available
_FALLBACK_URL_PATHS = (('url',),)

# "1,234", "12.3K", "1.2M", as TikTok prints them
_COUNT_RE = re.compile(r'^([\d,]+(?:\.\d+)?)\s*([KkMmBb]?)$')
_MULTIPLIERS = {'': 1, 'K': 1_000, 'M': 1_000_000, 'B': 1_000_000_000}


@dataclass
class CanonicalProfile:
    handle: Optional[str]
    display_name: str = ''
    follower_count: int = 0
    bio: Optional[str] = None
    profile_url: Optional[str] = None
    email: Optional[str] = None
    external_url: Optional[str] = None
    region: Optional[str] = None
    location: Optional[str] = None
    language: Optional[str] = None
    topics: Optional[list] = None
    source_record: dict = field(default_factory=dict, repr=False)

    def to_record(self) -> dict:
        """Dataset row: every profile field plus the raw scraper record."""
        return {
            'handle':         self.handle,
            'display_name':   self.display_name,
            'follower_count': self.follower_count,
            'bio':            self.bio,
            'profile_url':    self.profile_url,
            'email':          self.email,
            'external_url':   self.external_url,
            'region':         self.region,
            'location':       self.location,
            'language':       self.language,
            'topics':         list(self.topics) if self.topics is not None else None,
            'raw':            self.source_record,
        }


# ------------------------------------------------------------------ #
# Generic helpers
# ------------------------------------------------------------------ #

def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


def get_path(raw: Any, path: tuple) -> Any:
    """Walk nested dicts along `path`; None as soon as a step is missing."""
    node = raw
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def first_present(raw: Any, paths, accept=None) -> Any:
    """
    Return the value at the first path that is present and non-empty.

    `accept` optionally converts a candidate; returning None from it means
    "not usable" and the next path is tried.
    """
    for path in paths:
        value = get_path(raw, path)
        if not _is_present(value):
            continue
        if accept is not None:
            value = accept(value)
            if value is None:
                continue
        return value
    return None


# ------------------------------------------------------------------ #
# Field coercion
# ------------------------------------------------------------------ #

def normalize_handle(value: Any) -> Optional[str]:
    """
    "@@Foo" → "@Foo", "Foo" → "@Foo", " @Foo " → "@Foo", "" / None → None.
    Case is preserved.
    """
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip().lstrip('@').strip()
    if not text:
        return None
    return f'@{text}'


def parse_count(value: Any) -> Optional[int]:
    """
    Coerce a follower-count-ish value to a non-negative int.

    Accepts ints, floats and strings such as "1,234", "12.3K", "1.2M".
    Returns None when the value is not numeric-like.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return max(int(value), 0)
    if not isinstance(value, str):
        return None

    m = _COUNT_RE.match(value.strip())
    if not m:
        return None
    number, suffix = m.group(1).replace(',', ''), m.group(2).upper()
    try:
        return int(float(number) * _MULTIPLIERS[suffix])
    except (ValueError, OverflowError):
        return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None


def _as_topics(value: Any) -> Optional[list]:
    """Hashtag lists come as strings or as {"name": ...} objects."""
    if isinstance(value, str):
        return [value.strip()]
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return [str(value)]

    topics = []
    for item in value:
        if isinstance(item, dict):
            item = item.get('name') or item.get('title')
        text = _as_text(item)
        if text:
            topics.append(text)
    return topics or None


# ------------------------------------------------------------------ #
# Public interface
# ------------------------------------------------------------------ #

def normalize(raw: dict) -> CanonicalProfile:
    """Build a CanonicalProfile from one raw scraper record."""
    if not isinstance(raw, dict):
        raw = {}

    # the first present identity field decides; "@" alone means no handle
    handle = normalize_handle(first_present(raw, FIELD_PATHS['handle']))
    followers = first_present(raw, FIELD_PATHS['follower_count'], accept=parse_count)

    profile_url = first_present(raw, FIELD_PATHS['profile_url'], accept=_as_text)
    if not profile_url:
        if handle:
            profile_url = PROFILE_URL_TEMPLATE.format(handle=handle)
        else:
            profile_url = first_present(raw, _FALLBACK_URL_PATHS, accept=_as_text)

    return CanonicalProfile(
        handle=handle,
        display_name=first_present(raw, FIELD_PATHS['display_name'], accept=_as_text) or '',
        follower_count=followers or 0,
        bio=first_present(raw, FIELD_PATHS['bio'], accept=_as_text),
        profile_url=profile_url,
        email=first_present(raw, FIELD_PATHS['email'], accept=_as_text),
        external_url=first_present(raw, FIELD_PATHS['external_url'], accept=_as_text),
        region=first_present(raw, FIELD_PATHS['region'], accept=_as_text),
        location=first_present(raw, FIELD_PATHS['location'], accept=_as_text),
        language=first_present(raw, FIELD_PATHS['language'], accept=_as_text),
        topics=first_present(raw, FIELD_PATHS['topics'], accept=_as_topics),
        source_record=raw,
    )
