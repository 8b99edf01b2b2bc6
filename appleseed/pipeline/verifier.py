"""
Pipeline stage: VERIFY — find wallet addresses in PR replies.

Only comments written by the prospect (and not by a bot) count. The first such
comment containing anything address-shaped decides the outcome: its first
valid token verifies the prospect, otherwise its first token is recorded as an
invalid address and a corrective reply is posted once per distinct token.
"""
import logging
import time

from appleseed.models.status import OutreachStatus
from appleseed.pipeline.base import StageAdapter, StageResult, Done, Fail, Skip
from appleseed.services.github import parse_pr_url
from appleseed.services.stacks import is_valid_stacks_address, extract_address_candidates
from appleseed.services import templates

logger = logging.getLogger('pipeline.verifier')

CHECK_DELAY = 1.0
DEFAULT_POLL_INTERVAL = 300


def find_address(comments, username):
    """
    (address, is_valid, comment) from the first qualifying comment, or None.

    A comment qualifies when it is authored by username (case-insensitive), the
    author is not bot-like, and it contains an address-shaped token.
    """
    wanted = username.lower()
    for comment in comments:
        login = ((comment.get('user') or {}).get('login') or '').lower()
        if 'bot' in login or login != wanted:
            continue
        candidates = extract_address_candidates(comment.get('body') or '')
        if not candidates:
            continue
        for token in candidates:
            if is_valid_stacks_address(token):
                return token, True, comment
        return candidates[0], False, comment
    return None


def manual_verify(store, prospect_id, address):
    """Operator override: format check only, then mark the address valid."""
    prospect = store.get_prospect(prospect_id)
    if prospect is None:
        return Skip('prospect not found')
    if not is_valid_stacks_address(address):
        return Skip('invalid Stacks address format')
    store.record_address(prospect, address, valid=True)
    store.log_activity('verify:manual', prospect.id, {'address': address})
    logger.info("Manually verified %s: %s", prospect.username, address)
    return Done('verified', {'address': address})


class Verifier(StageAdapter):

    def run(self, poll=False, interval=DEFAULT_POLL_INTERVAL, pr_url=None,
            max_rounds=None) -> StageResult:
        """
        One check batch, or with poll=True a blocking loop that sleeps interval
        seconds between batches until the process is stopped (or max_rounds).
        """
        if not poll:
            return self.check(pr_url=pr_url)

        logger.info("Starting poll mode (interval %ds)", interval)
        rounds = 0
        result = StageResult()
        while True:
            result = self.check(pr_url=pr_url)
            rounds += 1
            if max_rounds is not None and rounds >= max_rounds:
                return result
            logger.info("Waiting %ds until next check", interval)
            time.sleep(interval)

    def candidates(self, pr_url=None):
        opened = self.store.list_prospects(outreach_status=OutreachStatus.PR_OPENED)
        if pr_url:
            return [p for p in opened if p.pr_url == pr_url]
        return [p for p in opened if not p.address_valid and p.pr_url]

    def check(self, pr_url=None) -> StageResult:
        result = StageResult(counts={'verified': 0, 'invalid': 0, 'pending': 0, 'failed': 0})
        prospects = self.candidates(pr_url)
        logger.info("Checking %d prospects with open PRs", len(prospects))

        for prospect in prospects:
            logger.info("%s:", prospect.username)
            outcome = self._check_one(prospect)
            result.record(outcome, prospect_id=prospect.id, username=prospect.username)
            if isinstance(outcome, Done):
                result.bump(outcome.status)
            elif isinstance(outcome, Fail):
                result.bump('failed')
            else:
                result.bump('pending')
            time.sleep(CHECK_DELAY)

        logger.info("Results: %s", result.summary())
        return result

    def _check_one(self, prospect):
        parsed = parse_pr_url(prospect.pr_url)
        if parsed is None:
            logger.info("  Invalid PR URL: %s", prospect.pr_url)
            return Skip('invalid PR URL')
        owner, repo, number = parsed
        github = self.context.github

        try:
            comments = github.list_pull_request_comments(owner, repo, number)
        except Exception as e:
            logger.error("  Error checking PR: %s", e)
            self.store.log_activity('verify:error', prospect.id, {'error': str(e)})
            return Fail(str(e))

        found = find_address(comments, prospect.username)
        if found is None:
            logger.info("  No address found in %d comments", len(comments))
            return Skip('awaiting response')

        address, valid, comment = found
        comment_url = comment.get('html_url')

        if valid:
            self.store.record_address(prospect, address, valid=True)
            self.store.log_activity('verify:address_verified', prospect.id, {
                'address': address,
                'commentUrl': comment_url,
            })
            logger.info("  Valid address found: %s", address)
            self._reply(owner, repo, number,
                        templates.valid_address_comment(prospect.username, address, self.settings))
            return Done('verified', {'address': address})

        if prospect.stacks_address == address:
            logger.info("  Invalid address %s already flagged", address)
            return Skip('invalid address already flagged')

        self.store.record_address(prospect, address, valid=False)
        self.store.log_activity('verify:address_invalid', prospect.id, {'address': address})
        logger.info("  Invalid address: %s", address)
        self._reply(owner, repo, number, templates.invalid_address_comment(prospect.username))
        return Done('invalid', {'address': address})

    def _reply(self, owner, repo, number, body):
        # Follow-up comments never mask the outcome already stored
        try:
            self.context.github.post_pull_request_comment(owner, repo, number, body)
        except Exception as e:
            logger.warning("  Could not post comment on %s/%s#%d: %s", owner, repo, number, e)


def track_pull_requests(context, limit=None):
    """Move pr_opened prospects to pr_merged / pr_closed when GitHub says so."""
    store, github = context.store, context.github
    result = StageResult(counts={'merged': 0, 'closed': 0, 'open': 0, 'failed': 0})
    prospects = store.list_prospects(outreach_status=OutreachStatus.PR_OPENED,
                                     has_pr_url=True, limit=limit)

    for prospect in prospects:
        parsed = parse_pr_url(prospect.pr_url)
        if parsed is None:
            result.record(Skip('invalid PR URL'), prospect_id=prospect.id)
            continue
        try:
            state = github.get_pull_request_state(*parsed)
        except Exception as e:
            logger.error("PR state lookup failed for %s: %s", prospect.pr_url, e)
            result.record(Fail(str(e)), prospect_id=prospect.id)
            result.bump('failed')
            continue

        if state['merged']:
            new_status, action, key = OutreachStatus.PR_MERGED, 'outreach:pr_merged', 'merged'
        elif state['state'] == 'closed':
            new_status, action, key = OutreachStatus.PR_CLOSED, 'outreach:pr_closed', 'closed'
        else:
            result.bump('open')
            result.record(Skip('still open'), prospect_id=prospect.id)
            continue

        store.set_outreach_status(prospect, new_status)
        store.log_activity(action, prospect.id, {'prUrl': prospect.pr_url})
        logger.info("%s: PR %s", prospect.username, key)
        result.bump(key)
        result.record(Done(key), prospect_id=prospect.id, username=prospect.username)
        time.sleep(CHECK_DELAY)
    return result
