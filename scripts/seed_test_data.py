#!/usr/bin/env python3
"""
Seed test data for trying the CLI locally.

Creates prospects covering each lifecycle stage:
  1. Freshly scanned, not yet qualified
  2. Tier D (never contacted)
  3. Tier A with an invitation PR awaiting a reply
  4. Invalid address already flagged on the PR
  5. Verified address awaiting payout
  6. Paid and confirmed

Usage:
    python scripts/seed_test_data.py          # seed all scenarios
    python scripts/seed_test_data.py --clear  # wipe seeded data first

Requires: DATABASE_URL set (or defaults to sqlite:///data/appleseed.db).
"""
import sys
import os
import argparse
from datetime import timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import delete, select

from appleseed.database import utcnow
from appleseed.models.activity_log import ActivityLogEntry
from appleseed.models.prospect import Prospect
from appleseed.services.store import open_store


# Prefix for seeded usernames so we can clear them
SEED_PREFIX = 'seed-'

VERIFIED_ADDRESS = 'SP3FBR2AGK5H9QBDH3EEN6DF8EK8JY7RX8QJ5SVTE'
PAID_ADDRESS = 'SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7'


def _repo(owner, name, stars, days_ago, description, query):
    updated = utcnow() - timedelta(days=days_ago)
    return {
        'name': name,
        'full_name': f'{owner}/{name}',
        'url': f'https://github.com/{owner}/{name}',
        'stars': stars,
        'description': description,
        'language': 'TypeScript',
        'last_updated': updated.strftime('%Y-%m-%dT%H:%M:%SZ'),
        'matched_query': query,
    }


def _pr_url(username, repo):
    return f'https://github.com/{username}/{repo}/pull/1'


def _add(store, handle, repos, strategy='mcp'):
    username = SEED_PREFIX + handle
    repos = [_repo(username, *r) for r in repos]
    prospect = store.add_prospect(username, repos=repos, discovered_via=strategy)
    store.log_activity('scan:prospect_added', prospect.id, {
        'username': username, 'strategy': strategy, 'repoCount': len(repos),
    })
    return prospect


def seed_prospects(store):
    now = utcnow()

    _add(store, 'fresh_builder', [
        ('agent-sandbox', 14, 3, 'autonomous agent playground', 'topic:autogpt'),
    ], strategy='autogpt')
    print('  [1] Unqualified prospect')

    p = _add(store, 'quiet_dev', [('notes', 0, 400, None, '')])
    store.update_score(p, 0, 'D')
    print('  [2] Tier D prospect')

    p = _add(store, 'mcp_maker', [
        ('claude-mcp-tools', 240, 2, 'MCP server for Claude via @modelcontextprotocol', 'topic:claude-mcp'),
    ])
    store.update_score(p, 75, 'A')
    store.mark_pr_opened(p, f'{p.username}/claude-mcp-tools', _pr_url(p.username, 'claude-mcp-tools'), 1,
                         opened_at=now - timedelta(days=1))
    print('  [3] PR opened, awaiting reply')

    p = _add(store, 'typo_wallet', [
        ('langchain-btc', 60, 10, 'langchain agent that reads bitcoin blocks', 'topic:langchain stars:>10'),
    ], strategy='langchain')
    store.update_score(p, 51, 'B')
    store.mark_pr_opened(p, f'{p.username}/langchain-btc', _pr_url(p.username, 'langchain-btc'), 1)
    store.record_address(p, 'SP' + 'U' * 38, valid=False)
    print('  [4] Invalid address flagged')

    p = _add(store, 'ready_to_pay', [
        ('crew-stacks', 35, 20, 'crewai crew trading sBTC', 'topic:crewai'),
    ], strategy='crewai')
    store.update_score(p, 48, 'B')
    store.mark_pr_opened(p, f'{p.username}/crew-stacks', _pr_url(p.username, 'crew-stacks'), 1)
    store.record_address(p, VERIFIED_ADDRESS, valid=True)
    print('  [5] Verified, awaiting payout')

    p = _add(store, 'already_paid', [
        ('bitcoin-ai-agent', 520, 1, 'bitcoin AI agent with anthropic tools', 'topic:bitcoin topic:ai'),
    ], strategy='bitcoin_ai')
    store.update_score(p, 90, 'A')
    store.mark_pr_opened(p, f'{p.username}/bitcoin-ai-agent', _pr_url(p.username, 'bitcoin-ai-agent'), 1)
    store.record_address(p, PAID_ADDRESS, valid=True)
    store.mark_payout_sent(p, '0x' + 'ab' * 32, 10000)
    store.mark_payout_confirmed(p, block_height=170000)
    print('  [6] Paid and confirmed')


# ── Clear / Main ─────────────────────────────────────────────────────────────

def clear_seeded_data(store):
    """Remove seeded prospects and their activity entries."""
    session = store.session
    ids = list(session.execute(
        select(Prospect.id).where(Prospect.username.like(f'{SEED_PREFIX}%'))
    ).scalars())

    if not ids:
        print('No seeded data found.')
        return

    deleted_log = session.execute(
        delete(ActivityLogEntry).where(ActivityLogEntry.prospect_id.in_(ids))
    ).rowcount
    deleted = session.execute(delete(Prospect).where(Prospect.id.in_(ids))).rowcount
    session.commit()
    print(f'Cleared {deleted} prospects, {deleted_log} activity entries.')


def main():
    parser = argparse.ArgumentParser(description='Seed prospects for local CLI testing')
    parser.add_argument('--clear', action='store_true', help='Clear seeded data before (or instead of) seeding')
    parser.add_argument('--clear-only', action='store_true', help='Only clear, do not re-seed')
    parser.add_argument('--database-url', help='Override DATABASE_URL')
    args = parser.parse_args()

    with open_store(args.database_url, create_schema=True) as store:
        if args.clear or args.clear_only:
            clear_seeded_data(store)
            if args.clear_only:
                return

        print('Seeding test data...')
        seed_prospects(store)
        print('\nDone! Run `appleseed stats` to verify.')


if __name__ == '__main__':
    main()
