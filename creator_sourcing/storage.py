"""
storage.py — Key-value store and append-only dataset used by the pipeline.

Two backends with the same small interface:

  KeyValueStore:  get_value(key) -> value | None,  set_value(key, value)
  DatasetSink:    push_data(record)

  apify  — named Apify key-value store / dataset (apify-client)
  local  — JSON files under a directory; dataset as JSON lines, which can
           be exported to CSV for a quick look in a spreadsheet

The sink never deduplicates; that is the pipeline's job.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

import pandas as pd

log = logging.getLogger(__name__)


# ------------------------------------------------------------------ #
# Apify backend
# ------------------------------------------------------------------ #

class ApifyKeyValueStore:
    """Named Apify key-value store (created on first use)."""

    def __init__(self, client, store_name: str):
        self.client = client
        self.store_name = store_name
        self._store_id: Optional[str] = None

    def _store(self):
        if self._store_id is None:
            info = self.client.key_value_stores().get_or_create(name=self.store_name)
            self._store_id = info['id']
        return self.client.key_value_store(self._store_id)

    def get_value(self, key: str) -> Any:
        record = self._store().get_record(key)
        return record['value'] if record else None

    def set_value(self, key: str, value: Any):
        self._store().set_record(key, value)


class ApifyDatasetSink:
    """Named Apify dataset (created on first use)."""

    def __init__(self, client, dataset_name: str):
        self.client = client
        self.dataset_name = dataset_name
        self._dataset_id: Optional[str] = None

    def push_data(self, record: dict):
        if self._dataset_id is None:
            info = self.client.datasets().get_or_create(name=self.dataset_name)
            self._dataset_id = info['id']
        self.client.dataset(self._dataset_id).push_items([record])


# ------------------------------------------------------------------ #
# Local backend
# ------------------------------------------------------------------ #

class LocalKeyValueStore:
    """One JSON file per key: <root>/<store_name>/<key>.json"""

    def __init__(self, root: str, store_name: str):
        self.path = Path(root) / store_name
        self.path.mkdir(parents=True, exist_ok=True)

    def _file(self, key: str) -> Path:
        return self.path / f'{key}.json'

    def get_value(self, key: str) -> Any:
        f = self._file(key)
        if not f.exists():
            return None
        with open(f, 'r', encoding='utf-8') as fh:
            return json.load(fh)

    def set_value(self, key: str, value: Any):
        f = self._file(key)
        tmp = f.with_suffix('.json.tmp')
        with open(tmp, 'w', encoding='utf-8') as fh:
            json.dump(value, fh, ensure_ascii=False, indent=2)
        tmp.replace(f)


class LocalDatasetSink:
    """Append-only JSON-lines file: <root>/<dataset_name>.jsonl"""

    def __init__(self, root: str, dataset_name: str):
        Path(root).mkdir(parents=True, exist_ok=True)
        self.path = Path(root) / f'{dataset_name}.jsonl'

    def push_data(self, record: dict):
        with open(self.path, 'a', encoding='utf-8') as fh:
            fh.write(json.dumps(record, ensure_ascii=False, default=str) + '\n')

    def read_all(self) -> list[dict]:
        if not self.path.exists():
            return []
        with open(self.path, 'r', encoding='utf-8') as fh:
            return [json.loads(line) for line in fh if line.strip()]

    def export_csv(self, csv_path: Optional[str] = None) -> Optional[Path]:
        """
        Flatten the dataset (without the raw scraper record) into a CSV.
        Returns the CSV path, or None when the dataset is empty.
        """
        rows = self.read_all()
        if not rows:
            return None
        df = pd.DataFrame(rows).drop(columns=['raw'], errors='ignore')
        if 'topics' in df.columns:
            df['topics'] = df['topics'].apply(
                lambda t: ', '.join(t) if isinstance(t, list) else t
            )
        out = Path(csv_path) if csv_path else self.path.with_suffix('.csv')
        df.to_csv(out, index=False, encoding='utf-8')
        log.info(f'Exported {len(df)} rows to {out}')
        return out
