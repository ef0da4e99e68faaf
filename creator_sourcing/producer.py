"""
producer.py — Run the TikTok scraper actor on Apify for one seed.

The actor is an opaque producer: we hand it one search term or hashtag,
wait for the run to finish, then read up to `max_items` raw records from the
dataset it wrote. Different TikTok actors return the dataset id either on the
run object itself or nested under "output"; both shapes are accepted.
"""

import logging
from typing import Optional

from creator_sourcing.errors import ProducerError

log = logging.getLogger(__name__)

DEFAULT_ACTOR_ID = 'apify/actor-tiktok-scraper'
DEFAULT_TIMEOUT_SECS = 1800


def resolve_dataset_id(run) -> Optional[str]:
    """Return the run's dataset id from either descriptor shape, or None."""
    if not isinstance(run, dict):
        return None
    if run.get('defaultDatasetId'):
        return run['defaultDatasetId']
    output = run.get('output')
    if isinstance(output, dict) and output.get('defaultDatasetId'):
        return output['defaultDatasetId']
    return None


class ApifyProducer:
    """
    Invokes a scraper actor through apify-client.

    Args:
        client:        apify_client.ApifyClient
        actor_id:      "username/actor-name"
        actor_input:   extra input merged over the generated one
        timeout_secs:  how long to wait for one actor run
    """

    def __init__(self, client, actor_id: str = DEFAULT_ACTOR_ID,
                 actor_input: Optional[dict] = None,
                 timeout_secs: int = DEFAULT_TIMEOUT_SECS):
        self.client = client
        self.actor_id = actor_id
        self.actor_input = dict(actor_input or {})
        self.timeout_secs = timeout_secs

    def build_input(self, seed, max_items: int) -> dict:
        """Generic input most TikTok actors understand, plus user overrides."""
        run_input = {'maxItems': max_items}
        if seed.kind == 'hashtag':
            run_input['hashtags'] = [seed.value]
        else:
            run_input['searchTerms'] = [seed.value]
        run_input.update(self.actor_input)
        return run_input

    def invoke(self, seed, max_items: int) -> Optional[str]:
        """
        Run the actor for `seed` and return the dataset id (None if the run
        carried no dataset). Raises ProducerError when the call itself fails.
        """
        run_input = self.build_input(seed, max_items)
        log.debug(f'Calling {self.actor_id} with {run_input}')
        try:
            run = self.client.actor(self.actor_id).call(
                run_input=run_input,
                timeout_secs=self.timeout_secs,
            )
        except Exception as e:
            raise ProducerError(f'{self.actor_id} failed for {seed.kind} {seed.value!r}: {e}') from e

        if run is None:
            return None
        status = run.get('status') if isinstance(run, dict) else None
        if status and status not in ('SUCCEEDED', 'READY', 'RUNNING'):
            log.warning(f'  Actor run finished with status {status}')
        return resolve_dataset_id(run)

    def fetch_items(self, dataset_id: str, limit: int) -> list:
        """Read at most `limit` raw records from the run's dataset."""
        try:
            page = self.client.dataset(dataset_id).list_items(limit=limit)
        except Exception as e:
            raise ProducerError(f'Reading dataset {dataset_id} failed: {e}') from e
        return list(page.items or [])[:limit]
