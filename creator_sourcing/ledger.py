"""
ledger.py — Cross-run record of handles already written to the dataset.

The ledger lives in a key-value store as a flat {"@handle": true} mapping.
It is loaded once when a run starts, updated in memory as profiles are
accepted, and written back before the run exits (optionally also every N
accepted profiles, see Pipeline).

One run owns the ledger at a time. Two concurrent runs sharing the same
store key would race; nothing here coordinates that.
"""

import logging
from typing import Optional

log = logging.getLogger(__name__)


class DedupeLedger:
    """
    Set of seen handles bound to one key in a key-value store.

    Args:
        store:  object with get_value(key) / set_value(key, value)
        key:    record key inside the store
        seen:   initial handles (used by load())
    """

    def __init__(self, store, key: str, seen: Optional[dict] = None):
        self.store = store
        self.key = key
        self._seen: dict[str, bool] = dict(seen or {})
        self._dirty = False

    @classmethod
    def load(cls, store, key: str) -> 'DedupeLedger':
        """Read the persisted mapping; a missing or malformed value starts empty."""
        value = store.get_value(key)
        if value is None:
            log.info(f'Ledger {key!r}: no previous state, starting empty')
            return cls(store, key)
        if not isinstance(value, dict):
            log.warning(
                f'Ledger {key!r}: expected a mapping, got {type(value).__name__} '
                f'— starting empty'
            )
            return cls(store, key)

        seen = {h: True for h, flag in value.items() if flag}
        log.info(f'Ledger {key!r}: loaded {len(seen)} handles')
        return cls(store, key, seen)

    # ------------------------------------------------------------------ #
    # Membership
    # ------------------------------------------------------------------ #

    def has(self, handle: str) -> bool:
        return handle in self._seen

    def mark_seen(self, handle: str):
        """Idempotent: marking an already-seen handle changes nothing."""
        if handle in self._seen:
            return
        self._seen[handle] = True
        self._dirty = True

    def check_and_mark(self, handle: str) -> bool:
        """Mark `handle` and return True, or return False if it was already seen."""
        if self.has(handle):
            return False
        self.mark_seen(handle)
        return True

    def __contains__(self, handle) -> bool:
        return self.has(handle)

    def __len__(self) -> int:
        return len(self._seen)

    @property
    def dirty(self) -> bool:
        """True when there are marks not yet persisted."""
        return self._dirty

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    def to_dict(self) -> dict:
        return dict(self._seen)

    def persist(self):
        """Write the full mapping back to the store."""
        self.store.set_value(self.key, self.to_dict())
        self._dirty = False
        log.debug(f'Ledger {self.key!r}: persisted {len(self._seen)} handles')
