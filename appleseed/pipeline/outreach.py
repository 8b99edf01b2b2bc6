"""
Pipeline stage: OUTREACH — open an invitation pull request per qualified prospect.

Delivery is fork → branch → commit invitation file → open PR. A failure at any
step leaves whatever was already created on GitHub in place; the prospect stays
`pending` and the failure is logged.
"""
import logging
import time
from datetime import timedelta

from appleseed.database import utcnow
from appleseed.models.status import CONTACTABLE_TIERS, OutreachStatus, Tier, parse_tier
from appleseed.pipeline.base import StageAdapter, StageResult, Done, Fail, Skip
from appleseed.pipeline.qualifier import qualify_prospect
from appleseed.services.github import parse_repo_url
from appleseed.services import templates

logger = logging.getLogger('pipeline.outreach')

OUTREACH_DELAY = 5.0
FORK_READY_DELAY = 3.0
STEP_DELAY = 1.0
RECENCY_MARGIN = timedelta(days=7)


def _rank(repo_a, repo_b):
    """
    Negative when repo_a is the better target.

    Direct search matches first, then recency (only when the gap exceeds a
    week), then stars.
    """
    a_matched, b_matched = bool(repo_a.matched_query), bool(repo_b.matched_query)
    if a_matched != b_matched:
        return -1 if a_matched else 1

    a_time, b_time = repo_a.updated_at, repo_b.updated_at
    if a_time is not None and b_time is not None and abs(a_time - b_time) > RECENCY_MARGIN:
        return -1 if a_time > b_time else 1

    return repo_b.stars - repo_a.stars


def select_target_repo(prospect):
    """(owner, repo) of the best matched repository, or None without evidence."""
    repos = prospect.matched_repos()
    if not repos:
        return None

    best = repos[0]
    for repo in repos[1:]:
        if _rank(repo, best) < 0:
            best = repo

    parsed = parse_repo_url(best.url)
    if parsed:
        return parsed
    parts = best.full_name.split('/')
    if len(parts) == 2 and all(parts):
        return parts[0], parts[1]
    return None


class Outreach(StageAdapter):

    def run(self, tier=None, limit=10, dry_run=False, prospect_id=None) -> StageResult:
        result = StageResult(counts={'sent': 0, 'failed': 0, 'skipped': 0})
        max_prs = self.settings.max_daily_prs
        ledger = self.store.get_or_create_today()
        remaining = max_prs - ledger.prs_opened

        if not dry_run and remaining <= 0:
            result.aborted = f"daily PR limit reached ({max_prs})"
            logger.info("Daily PR limit reached (%d). Try again tomorrow.", max_prs)
            return result

        effective_limit = limit if dry_run else min(limit, remaining)

        if prospect_id is not None:
            prospect = self.store.get_prospect(prospect_id)
            prospects = [prospect] if prospect else []
        else:
            prospects = self.store.list_prospects(
                tier=Tier(tier) if tier else None,
                tiers=None if tier else CONTACTABLE_TIERS,
                outreach_status=OutreachStatus.PENDING,
                limit=effective_limit,
            )
        # Tier D and unscored prospects are never contacted
        prospects = [p for p in prospects if parse_tier(p.tier) in CONTACTABLE_TIERS]

        logger.info("Outreach: %d prospects (limit %d, PRs today %d/%d)%s",
                    len(prospects), effective_limit, ledger.prs_opened, max_prs,
                    ' [DRY RUN]' if dry_run else '')

        for index, prospect in enumerate(prospects):
            logger.info("Processing %s (tier %s)", prospect.username, prospect.tier)
            outcome = self._deliver(prospect, dry_run)
            result.record(outcome, prospect_id=prospect.id, username=prospect.username)

            if isinstance(outcome, Done) and outcome.status == 'sent':
                result.bump('sent')
            elif isinstance(outcome, Fail):
                result.bump('failed')
            elif isinstance(outcome, Skip):
                result.bump('skipped')

            if not dry_run and index < len(prospects) - 1:
                time.sleep(OUTREACH_DELAY)

        logger.info("Outreach complete: %s", result.summary())
        return result

    def _deliver(self, prospect, dry_run):
        if prospect.outreach_status != OutreachStatus.PENDING:
            return Skip(f"already {prospect.outreach_status}")

        target = select_target_repo(prospect)
        if target is None:
            logger.info("  Skipping %s: no suitable repository", prospect.username)
            return Skip('no suitable repository')

        owner, repo = target
        target_repo = f"{owner}/{repo}"
        qualification = qualify_prospect(prospect)

        if dry_run:
            logger.info("  [DRY RUN] would open PR on %s (tier %s, score %d, hooks: %s)",
                        target_repo, qualification.tier.value, qualification.score,
                        ', '.join(qualification.hooks))
            return Done('planned', {'target_repo': target_repo, 'hooks': qualification.hooks})

        github = self.context.github
        try:
            fork_owner = github.get_authenticated_user()

            logger.info("  Forking %s", target_repo)
            fork = github.fork_repository(owner, repo) or {}
            base = fork.get('default_branch') or 'main'
            time.sleep(FORK_READY_DELAY)

            logger.info("  Creating branch %s", templates.PR_BRANCH)
            github.create_branch(fork_owner, repo, templates.PR_BRANCH, from_ref=base)
            time.sleep(STEP_DELAY)

            logger.info("  Adding %s", templates.INVITATION_FILE_PATH)
            github.create_file(
                fork_owner, repo,
                templates.INVITATION_FILE_PATH,
                templates.invitation_file(self.settings),
                templates.INVITATION_COMMIT_MESSAGE,
                templates.PR_BRANCH,
            )
            time.sleep(STEP_DELAY)

            logger.info("  Opening PR")
            pr = github.open_pull_request(
                owner, repo,
                title=templates.PR_TITLE,
                body=templates.pr_body(prospect.username, qualification.hooks, self.settings),
                head=f"{fork_owner}:{templates.PR_BRANCH}",
                base=base,
            )
        except Exception as e:
            logger.error("  Failed: %s", e)
            self.store.log_activity('outreach:failed', prospect.id, {'error': str(e)})
            return Fail(str(e))

        self.store.mark_pr_opened(prospect, target_repo, pr['html_url'], pr['number'],
                                  opened_at=utcnow())
        self.store.increment_prs()
        self.store.log_activity('outreach:pr_created', prospect.id, {
            'prUrl': pr['html_url'],
            'tier': prospect.tier,
        })
        logger.info("  PR created: %s", pr['html_url'])
        return Done('sent', {'pr_url': pr['html_url'], 'target_repo': target_repo})
