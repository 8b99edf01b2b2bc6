"""
Cloud mirror sync — one-way push of the prospect table to the dashboard API.

The API upserts by username; this module never reads back.
"""
import logging

import requests

logger = logging.getLogger('services.mirror')

SYNC_FIELDS = (
    'username', 'github_id', 'email', 'repos', 'score', 'tier', 'discovered_via',
    'outreach_status', 'target_repo', 'pr_url', 'pr_number', 'pr_opened_at',
    'stacks_address', 'address_valid', 'verified_at',
    'payout_status', 'payout_txid', 'payout_amount_sats', 'payout_sent_at',
    'created_at', 'updated_at',
)


class MirrorSyncError(Exception):
    """The mirror API rejected or failed a sync."""


def build_sync_payload(prospects, daily_limit):
    return {
        'prospects': [
            {key: p.to_dict()[key] for key in SYNC_FIELDS}
            for p in prospects
        ],
        'daily_limits': daily_limit.to_dict(),
    }


def push_to_mirror(store, api_url, session=None, breaker=None, timeout=60):
    """POST every prospect plus today's ledger row; returns the synced count."""
    prospects = store.list_prospects()
    payload = build_sync_payload(prospects, store.get_or_create_today())
    url = f"{api_url.rstrip('/')}/api/sync"
    http = session or requests

    def _post():
        response = http.post(url, json=payload, timeout=timeout)
        response.raise_for_status()
        return response.json()

    logger.info("Syncing %d prospects to %s", len(prospects), url)
    try:
        result = breaker.call(_post) if breaker is not None else _post()
    except Exception as e:
        raise MirrorSyncError(f"Sync to {url} failed: {e}") from e

    if not result.get('success'):
        raise MirrorSyncError(f"Sync rejected: {result.get('error', result)}")
    synced = int(result.get('synced', 0))
    logger.info("Synced %d prospects", synced)
    return synced
