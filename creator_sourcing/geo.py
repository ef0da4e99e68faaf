"""
geo.py — Best-effort "is this creator in the US?" check.

TikTok does not expose a reliable country, so this looks at what the
creator wrote about themselves: region, location, bio and display name.
Rules, first match wins:
  1. region is exactly a US code/name ("US", "USA", "United States")
  2. the text contains a US marker ("usa", "u.s.", "🇺🇸", ...)
  3. the text contains a "City, ST" pattern with a US state code

This is approximate, not an identity check. Non-English bios and creators
who never mention a location are missed (false negatives), and unrelated
two-letter tokens after a comma can collide with state codes
("hello, me" reads as Maine).
"""

import re

ACCEPTED_REGIONS = {'us', 'usa', 'united states', 'united states of america'}

MARKERS = (
    'united states',
    'usa',
    'u.s.',
    'u.s.a',
    'us 🇺🇸',
    '🇺🇸',
)

STATE_CODES = (
    'al', 'ak', 'az', 'ar', 'ca', 'co', 'ct', 'de', 'fl', 'ga',
    'hi', 'id', 'il', 'in', 'ia', 'ks', 'ky', 'la', 'me', 'md',
    'ma', 'mi', 'mn', 'ms', 'mo', 'mt', 'ne', 'nv', 'nh', 'nj',
    'nm', 'ny', 'nc', 'nd', 'oh', 'ok', 'or', 'pa', 'ri', 'sc',
    'sd', 'tn', 'tx', 'ut', 'vt', 'va', 'wa', 'wv', 'wi', 'wy',
    'dc',
)

# Matched against the case-folded blob
_CITY_STATE_RE = re.compile(
    r"\b[a-z][a-z .'-]*,\s?(?:" + '|'.join(STATE_CODES) + r')\b'
)


def _text_blob(profile) -> str:
    parts = (
        profile.region,
        profile.location,
        profile.bio,
        profile.display_name,
    )
    return ' '.join(p for p in parts if p).casefold()


def is_target_country(profile) -> bool:
    """Return True when the profile looks US-based (see module docstring)."""
    region = (profile.region or '').strip().casefold()
    if region in ACCEPTED_REGIONS:
        return True

    blob = _text_blob(profile)
    if not blob:
        return False

    if any(marker in blob for marker in MARKERS):
        return True

    return bool(_CITY_STATE_RE.search(blob))
