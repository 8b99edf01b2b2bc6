"""
Pipeline stage: SCAN — discover developers through GitHub repository search.

Each strategy owns a fixed list of search queries. Owners already stored (or
already seen earlier in this scan) are not fetched again; repeat hits for a
user met in this scan are merged into that user's evidence.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from appleseed.database import utcnow
from appleseed.models.prospect import parse_timestamp
from appleseed.models.status import DiscoveryStrategy
from appleseed.pipeline.base import StageAdapter, StageResult, Done, Fail
from appleseed.services.github import repo_from_search_item
from appleseed.services.store import DuplicateProspectError

logger = logging.getLogger('pipeline.scanner')


SEARCH_QUERIES = {
    DiscoveryStrategy.MCP: [
        'filename:mcp.json',
        '"@modelcontextprotocol" in:file',
        'topic:claude-mcp',
        'topic:model-context-protocol',
        '"claude" "mcp" language:TypeScript',
        '"anthropic" filename:mcp.json',
    ],
    DiscoveryStrategy.LANGCHAIN: [
        '"langchain" in:file language:python stars:>10',
        '"langchain" in:file language:typescript stars:>10',
        'topic:langchain stars:>10',
        '"from langchain" language:python stars:>20',
    ],
    DiscoveryStrategy.AUTOGPT: [
        'topic:autogpt',
        'auto-gpt in:name',
        '"autogpt" language:python stars:>50',
    ],
    DiscoveryStrategy.CREWAI: [
        '"crewai" in:file language:python',
        'topic:crewai',
        'filename:crew.yaml',
        '"from crewai" language:python',
    ],
    DiscoveryStrategy.BITCOIN_AI: [
        'topic:bitcoin topic:ai',
        'topic:btc topic:agent',
        '"sbtc" "agent" in:readme',
        '"stacks" "AI" in:readme',
        '"bitcoin" "agent" language:python stars:>10',
    ],
}

STRATEGY_NAMES = ['all'] + [s.value for s in DiscoveryStrategy]

# GitHub allows 30 authenticated searches per minute
SEARCH_DELAY = 2.1
PROFILE_DELAY = 0.5
PER_PAGE = 30
MIN_ACCOUNT_AGE_DAYS = 182


class InvalidStrategyError(ValueError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"Unknown strategy '{name}'. Choose one of: {', '.join(STRATEGY_NAMES)}")


def resolve_strategies(name) -> List[DiscoveryStrategy]:
    if name in (None, 'all'):
        return list(DiscoveryStrategy)
    try:
        return [DiscoveryStrategy(name)]
    except ValueError:
        raise InvalidStrategyError(name) from None


@dataclass
class Candidate:
    username: str
    github_id: Optional[int]
    strategy: DiscoveryStrategy
    profile: Dict[str, Any]
    repos: List[Dict[str, Any]] = field(default_factory=list)


def recently_active(candidate, days, now) -> bool:
    cutoff = now - timedelta(days=days)
    for repo in candidate.repos:
        updated = parse_timestamp(repo.get('last_updated'))
        if updated is not None and updated >= cutoff:
            return True
    return False


def account_old_enough(profile, now) -> bool:
    created = parse_timestamp(profile.get('created_at'))
    if created is None:
        return False
    return created <= now - timedelta(days=MIN_ACCOUNT_AGE_DAYS)


class Scanner(StageAdapter):

    def run(self, strategy='all', limit=50, dry_run=False, days_since_activity=90,
            now=None) -> StageResult:
        strategies = resolve_strategies(strategy)
        now = now or utcnow()
        result = StageResult(counts={'found': 0, 'saved': 0})

        logger.info("Scanning with strategies: %s (limit %d, active within %d days)",
                    ', '.join(s.value for s in strategies), limit, days_since_activity)

        seen = set()
        found: Dict[str, Candidate] = {}

        for strat in strategies:
            queries = SEARCH_QUERIES[strat]
            logger.info("Strategy %s (%d queries)", strat.value, len(queries))
            for query in queries:
                if len(found) >= limit:
                    break
                added = self._run_query(query, strat, seen, found, limit)
                logger.info("  %s -> %d new prospects", query, added)
                time.sleep(SEARCH_DELAY)

        candidates = [
            c for c in found.values()
            if recently_active(c, days_since_activity, now) and account_old_enough(c.profile, now)
        ]
        result.counts['found'] = len(candidates)
        logger.info("Unique prospects after filtering: %d", len(candidates))

        for candidate in candidates:
            if dry_run:
                result.record(Done('found', {'repos': len(candidate.repos)}),
                              username=candidate.username, strategy=candidate.strategy.value)
                continue
            outcome = self._save(candidate)
            if isinstance(outcome, Done):
                result.bump('saved')
            result.record(outcome, username=candidate.username, strategy=candidate.strategy.value)

        result.meta['dry_run'] = dry_run
        return result

    def _run_query(self, query, strategy, seen, found, limit) -> int:
        """Collect new owners from one search; returns how many were added."""
        github = self.context.github
        try:
            items = github.search_repositories(query, per_page=PER_PAGE)
        except Exception as e:
            logger.error("Search query failed: %s: %s", query, e)
            return 0

        added = 0
        for item in items:
            owner = item.get('owner') or {}
            username = owner.get('login')
            if not username:
                continue
            repo = repo_from_search_item(item, query)

            if username in found:
                if all(r.get('full_name') != repo['full_name'] for r in found[username].repos):
                    found[username].repos.append(repo)
                continue
            if username in seen:
                continue
            seen.add(username)

            if self.store.username_exists(username):
                continue
            if len(found) >= limit:
                break

            time.sleep(PROFILE_DELAY)
            try:
                profile = github.get_user(username)
            except Exception as e:
                logger.warning("Profile fetch failed for %s: %s", username, e)
                continue

            found[username] = Candidate(
                username=username,
                github_id=owner.get('id'),
                strategy=strategy,
                profile=profile,
                repos=[repo],
            )
            added += 1
        return added

    def _save(self, candidate):
        try:
            prospect = self.store.add_prospect(
                username=candidate.username,
                github_id=candidate.github_id,
                email=candidate.profile.get('email'),
                repos=candidate.repos,
                discovered_via=candidate.strategy,
            )
        except DuplicateProspectError as e:
            return Fail(str(e))
        self.store.log_activity('scan:prospect_added', prospect.id, {
            'username': candidate.username,
            'strategy': candidate.strategy.value,
            'repoCount': len(candidate.repos),
        })
        return Done('saved', {'prospect_id': prospect.id})
