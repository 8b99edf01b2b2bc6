"""
Pipeline stage: QUALIFY — deterministic 0-100 scoring + tier assignment.

Six independently capped sub-scores are summed (caps total 100):

    claude_mcp  0 / 30   any MCP indicator in a repo's query, name or description
    ai_agent    0 - 25   best framework pattern hit across all repos
    stars       0 - 15   total stars // 10
    activity    0/5/10/15  most recent repo update within 180/90/30 days
    followers   0 - 10   reserved; always 0 until profile data is stored
    crypto      0 / 5    any crypto keyword

Tiers: >= 70 A, >= 40 B, >= 20 C, otherwise D.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import timedelta
from typing import Dict, List, Optional

from appleseed.database import utcnow
from appleseed.models.status import Tier
from appleseed.pipeline.base import StageAdapter, StageResult, Done, Skip

logger = logging.getLogger('pipeline.qualifier')


WEIGHTS = {
    'claude_mcp': 30,
    'ai_agent': 25,
    'stars': 15,
    'activity': 15,
    'followers': 10,
    'crypto': 5,
}

MCP_INDICATORS = (
    'mcp.json',
    '@modelcontextprotocol',
    'claude-mcp',
    'model-context-protocol',
    'anthropic',
)

AGENT_PATTERNS = (
    ('langchain', 25),
    ('autogpt', 25),
    ('crewai', 25),
    ('agent', 15),
    ('autonomous', 10),
    ('tool_calling', 15),
    ('function_call', 15),
)

CRYPTO_KEYWORDS = (
    'bitcoin', 'btc', 'ethereum', 'eth', 'stacks', 'sbtc',
    'web3', 'blockchain', 'crypto', 'defi', 'nft',
    'clarity', 'solidity', 'rust',
)

# (max age in days, points), checked in order
ACTIVITY_STEPS = ((30, 15), (90, 10), (180, 5))

TIER_THRESHOLDS = ((70, Tier.A), (40, Tier.B), (20, Tier.C))

FRAMEWORK_HOOKS = (
    ('langchain', 'LangChain developer'),
    ('crewai', 'CrewAI builder'),
    ('autogpt', 'AutoGPT contributor'),
)

LABELS = {
    'claude_mcp': 'Claude/MCP',
    'ai_agent': 'AI Agent',
    'stars': 'Stars',
    'activity': 'Activity',
    'followers': 'Followers',
    'crypto': 'Crypto',
}


@dataclass
class ScoreBreakdown:
    claude_mcp: int = 0
    ai_agent: int = 0
    stars: int = 0
    activity: int = 0
    followers: int = 0
    crypto: int = 0

    @property
    def total(self) -> int:
        return (self.claude_mcp + self.ai_agent + self.stars
                + self.activity + self.followers + self.crypto)

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class Qualification:
    score: int
    tier: Tier
    breakdown: ScoreBreakdown
    hooks: List[str]


# ── Sub-scores ────────────────────────────────────────────────────────────────

def score_claude_mcp(repos) -> int:
    for repo in repos:
        text = repo.searchable_text
        if any(indicator in text for indicator in MCP_INDICATORS):
            return WEIGHTS['claude_mcp']
    return 0


def score_ai_agent(repos) -> int:
    best = 0
    for repo in repos:
        text = repo.searchable_text
        for pattern, points in AGENT_PATTERNS:
            if pattern in text:
                best = max(best, points)
    return min(best, WEIGHTS['ai_agent'])


def total_stars(repos) -> int:
    return sum(repo.stars for repo in repos)


def score_stars(repos) -> int:
    return min(total_stars(repos) // 10, WEIGHTS['stars'])


def score_activity(repos, now=None) -> int:
    updates = [repo.updated_at for repo in repos if repo.updated_at is not None]
    if not updates:
        return 0
    latest = max(updates)
    now = now or utcnow()
    for days, points in ACTIVITY_STEPS:
        if latest >= now - timedelta(days=days):
            return points
    return 0


def score_followers(repos) -> int:
    # Followers are not stored on the prospect yet; the weight stays reserved.
    return 0


def score_crypto(repos) -> int:
    for repo in repos:
        text = repo.searchable_text
        if any(keyword in text for keyword in CRYPTO_KEYWORDS):
            return WEIGHTS['crypto']
    return 0


def tier_for_score(score) -> Tier:
    for threshold, tier in TIER_THRESHOLDS:
        if score >= threshold:
            return tier
    return Tier.D


def personalization_hooks(repos, breakdown) -> List[str]:
    """Human-readable talking points for the PR body, in a fixed order."""
    hooks = []
    if breakdown.claude_mcp > 0:
        hooks.append('Works with Claude MCP')

    if breakdown.ai_agent >= 25:
        for repo in repos:
            text = repo.searchable_text
            hook = next((label for key, label in FRAMEWORK_HOOKS if key in text), None)
            if hook:
                hooks.append(hook)
                break

    if breakdown.crypto > 0:
        hooks.append('Already working in crypto/blockchain')

    if breakdown.stars >= 10:
        hooks.append(f'{total_stars(repos)}+ stars on AI projects')

    if repos:
        top = repos[0]
        for repo in repos[1:]:
            if repo.stars > top.stars:
                top = repo
        hooks.append(f'Built {top.name}')
    return hooks


def qualify_prospect(prospect, now=None) -> Qualification:
    """Score one prospect. Pure: reads only its repo evidence and the clock."""
    repos = prospect.matched_repos()
    breakdown = ScoreBreakdown(
        claude_mcp=score_claude_mcp(repos),
        ai_agent=score_ai_agent(repos),
        stars=score_stars(repos),
        activity=score_activity(repos, now=now),
        followers=score_followers(repos),
        crypto=score_crypto(repos),
    )
    score = breakdown.total
    return Qualification(
        score=score,
        tier=tier_for_score(score),
        breakdown=breakdown,
        hooks=personalization_hooks(repos, breakdown),
    )


def explain_breakdown(breakdown) -> str:
    values = breakdown.to_dict() if isinstance(breakdown, ScoreBreakdown) else breakdown
    return '\n'.join(
        f"  {LABELS[key]}: {values.get(key, 0)}/{cap}" for key, cap in WEIGHTS.items()
    )


# ── Stage ─────────────────────────────────────────────────────────────────────

class Qualifier(StageAdapter):

    def run(self, pending=True, prospect_id=None, min_tier=None, now=None) -> StageResult:
        """
        Score prospects and persist score/tier.

        prospect_id always re-scores that one prospect; otherwise already-tiered
        prospects are skipped. Results below min_tier are counted as skipped and
        not persisted.
        """
        result = StageResult(counts={'qualified': 0, 'skipped': 0})
        min_tier = Tier(min_tier) if min_tier else None

        if prospect_id is not None:
            prospect = self.store.get_prospect(prospect_id)
            prospects = [prospect] if prospect else []
        elif pending:
            prospects = self.store.list_prospects(pending_qualification=True)
        else:
            prospects = self.store.list_prospects()

        logger.info("Qualifying %d prospects", len(prospects))

        for prospect in prospects:
            outcome = self._qualify_one(prospect, forced=prospect_id is not None,
                                        min_tier=min_tier, now=now)
            result.record(outcome, prospect_id=prospect.id, username=prospect.username)
            result.bump('qualified' if isinstance(outcome, Done) else 'skipped')

        logger.info("Qualified: %d, skipped: %d",
                    result.counts['qualified'], result.counts['skipped'])
        return result

    def _qualify_one(self, prospect, forced, min_tier: Optional[Tier], now):
        if prospect.tier and not forced:
            return Skip(f"already tier {prospect.tier}")

        q = qualify_prospect(prospect, now=now)
        if min_tier is not None and q.tier.rank > min_tier.rank:
            return Skip(f"tier {q.tier.value} below {min_tier.value}")

        self.store.update_score(prospect, q.score, q.tier)
        self.store.log_activity('qualify:scored', prospect.id, {
            'score': q.score,
            'tier': q.tier.value,
            'breakdown': q.breakdown.to_dict(),
        })
        logger.info("  %s: score %d -> tier %s", prospect.username, q.score, q.tier.value)
        return Done('qualified', {'score': q.score, 'tier': q.tier.value, 'hooks': q.hooks})
