"""Tests for appleseed.pipeline.qualifier — sub-scores, tiers, stage run."""
from datetime import datetime, timedelta

import pytest

from appleseed.models.prospect import MatchedRepo
from appleseed.models.status import Tier
from appleseed.pipeline.base import PipelineContext
from appleseed.pipeline.qualifier import (
    Qualifier, ScoreBreakdown, qualify_prospect, tier_for_score, score_activity,
    score_ai_agent, score_stars, score_crypto, personalization_hooks, explain_breakdown,
)

NOW = datetime(2026, 3, 15, 12, 0, 0)


def _repo(name='kit', description=None, stars=0, days_ago=None, query=''):
    updated = None
    if days_ago is not None:
        updated = (NOW - timedelta(days=days_ago)).strftime('%Y-%m-%dT%H:%M:%SZ')
    return MatchedRepo(name=name, full_name=f'dev/{name}', url=f'https://github.com/dev/{name}',
                       stars=stars, description=description, last_updated=updated,
                       matched_query=query)


@pytest.fixture
def qualifier(store, settings):
    return Qualifier(PipelineContext(store=store, settings=settings))


# ---------------------------------------------------------------------------
# End-to-end scoring
# ---------------------------------------------------------------------------

class TestQualifyProspect:

    def test_mcp_server_scores_tier_b(self, make_prospect, make_repo):
        p = make_prospect('alice', repos=[make_repo(
            owner='alice', name='my-mcp-server', description='uses @modelcontextprotocol',
            stars=120, days_ago=5, query='', language=None, now=NOW,
        )])
        q = qualify_prospect(p, now=NOW)
        assert q.breakdown.to_dict() == {
            'claude_mcp': 30, 'ai_agent': 0, 'stars': 12,
            'activity': 15, 'followers': 0, 'crypto': 0,
        }
        assert q.score == 57
        assert q.tier == Tier.B

    def test_no_repos_scores_zero(self, make_prospect):
        p = make_prospect('empty', repos=[])
        q = qualify_prospect(p, now=NOW)
        assert q.score == 0
        assert q.tier == Tier.D
        assert q.hooks == []

    def test_strong_prospect_scores_tier_a(self, make_prospect, make_repo):
        p = make_prospect('max', repos=[make_repo(
            owner='max', name='langchain-mcp-agent', description='anthropic bitcoin agent',
            stars=10_000, days_ago=1, now=NOW,
        )])
        q = qualify_prospect(p, now=NOW)
        assert q.score == 90  # followers is reserved at 0
        assert q.tier == Tier.A


# ---------------------------------------------------------------------------
# Sub-scores
# ---------------------------------------------------------------------------

class TestSubScores:

    def test_ai_agent_takes_best_pattern(self):
        assert score_ai_agent([_repo(description='an autonomous helper')]) == 10
        assert score_ai_agent([_repo(description='autonomous agent')]) == 15
        assert score_ai_agent([_repo(name='crewai-flows'), _repo(description='agent')]) == 25

    def test_stars_capped(self):
        assert score_stars([_repo(stars=95)]) == 9
        assert score_stars([_repo(stars=100), _repo(stars=90)]) == 15

    @pytest.mark.parametrize('days_ago,points', [(10, 15), (60, 10), (120, 5), (400, 0)])
    def test_activity_steps(self, days_ago, points):
        assert score_activity([_repo(days_ago=days_ago)], now=NOW) == points

    def test_activity_uses_most_recent_repo(self):
        repos = [_repo(days_ago=300), _repo(days_ago=20)]
        assert score_activity(repos, now=NOW) == 15

    def test_activity_without_timestamps(self):
        assert score_activity([_repo()], now=NOW) == 0

    def test_crypto_keyword(self):
        assert score_crypto([_repo(description='Stacks wallet tooling')]) == 5
        assert score_crypto([_repo(description='chat assistant')]) == 0

    @pytest.mark.parametrize('score,tier', [
        (100, Tier.A), (70, Tier.A), (69, Tier.B), (40, Tier.B),
        (39, Tier.C), (20, Tier.C), (19, Tier.D), (0, Tier.D),
    ])
    def test_tier_cutoffs(self, score, tier):
        assert tier_for_score(score) == tier


class TestHooks:

    def test_order_and_content(self):
        repos = [
            _repo(name='small', description='langchain agent for bitcoin', stars=40),
            _repo(name='big', description='mcp via anthropic', stars=90),
        ]
        breakdown = ScoreBreakdown(claude_mcp=30, ai_agent=25, stars=13, crypto=5)
        assert personalization_hooks(repos, breakdown) == [
            'Works with Claude MCP',
            'LangChain developer',
            'Already working in crypto/blockchain',
            '130+ stars on AI projects',
            'Built big',
        ]

    def test_explain_breakdown(self):
        text = explain_breakdown(ScoreBreakdown(claude_mcp=30, stars=12))
        assert '  Claude/MCP: 30/30' in text
        assert '  Stars: 12/15' in text
        assert '  Followers: 0/10' in text


# ---------------------------------------------------------------------------
# Stage
# ---------------------------------------------------------------------------

class TestQualifierStage:

    def test_scores_pending_only(self, qualifier, store, make_prospect, make_repo):
        make_prospect('fresh', repos=[make_repo(owner='fresh', stars=120, days_ago=5, now=NOW)])
        make_prospect('done', tier='B', score=50)

        result = qualifier.run(now=NOW)

        assert result.counts == {'qualified': 1, 'skipped': 0}
        fresh = store.get_prospect_by_username('fresh')
        assert fresh.tier is not None and fresh.score is not None
        entry = store.get_activity_log()[0]
        assert entry.action == 'qualify:scored'
        assert set(entry.details) == {'score', 'tier', 'breakdown'}

    def test_forced_rescore_by_id(self, qualifier, store, make_prospect):
        p = make_prospect('again', repos=[], tier='A', score=99)
        result = qualifier.run(prospect_id=p.id, now=NOW)
        assert result.counts['qualified'] == 1
        assert (p.score, p.tier) == (0, 'D')

    def test_all_mode_skips_already_tiered(self, qualifier, make_prospect):
        make_prospect('tiered', tier='C', score=25)
        result = qualifier.run(pending=False, now=NOW)
        assert result.counts == {'qualified': 0, 'skipped': 1}
        assert result.records[0]['reason'] == 'already tier C'

    def test_min_tier_leaves_low_scores_unpersisted(self, qualifier, store, make_prospect):
        p = make_prospect('low', repos=[])
        result = qualifier.run(min_tier='C', now=NOW)
        assert result.counts == {'qualified': 0, 'skipped': 1}
        assert p.tier is None
        assert store.get_activity_log() == []

    def test_unknown_id_is_noop(self, qualifier):
        result = qualifier.run(prospect_id=999, now=NOW)
        assert result.counts == {'qualified': 0, 'skipped': 0}
