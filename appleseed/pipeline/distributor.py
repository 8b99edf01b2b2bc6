"""
Pipeline stage: AIRDROP — pay verified prospects in sBTC.

Batch guards, in order, each aborting the whole run with no transfer:
  1. daily payout cap (DailyLimit.payouts_sent vs max_daily_payouts)
  2. treasury floor (balance below MIN_TREASURY_BALANCE)

Per candidate the payout status must still be `pending` with a verified
address, and the transfer must leave the treasury at or above the floor. A
broadcast failure marks the payout `failed`; a broadcast that does not confirm
within the polling window stays `sent`.
"""
import logging
import time

from appleseed.config import payout_amount_for_tier
from appleseed.models.status import PayoutStatus
from appleseed.pipeline.base import StageAdapter, StageResult, Done, Fail, Skip
from appleseed.services.github import parse_pr_url
from appleseed.services.stacks import explorer_url, format_sats, format_stx
from appleseed.services import templates

logger = logging.getLogger('pipeline.distributor')

MIN_TREASURY_BALANCE = 100_000  # sats (0.001 sBTC)
PAYOUT_DELAY = 5.0
CONFIRM_ATTEMPTS = 24
CONFIRM_WAIT = 5.0
PAYOUT_MEMO = 'Appleseed airdrop - welcome to Bitcoin agents!'


def check_treasury(settings, chain):
    """Treasury balances and whether at least one minimum payout can go out."""
    balance = chain.get_balance(settings.treasury_address)
    required = MIN_TREASURY_BALANCE + settings.payout_tier_c
    return {
        'address': settings.treasury_address,
        'native_balance': balance.native,
        'token_balance': balance.token,
        'native_display': format_stx(balance.native),
        'token_display': format_sats(balance.token),
        'minimum_reserve': MIN_TREASURY_BALANCE,
        'can_airdrop': balance.token >= required,
    }


class Distributor(StageAdapter):

    def run(self, pending=True, limit=5, prospect_id=None, amount=None) -> StageResult:
        result = StageResult(counts={'sent': 0, 'confirmed': 0, 'failed': 0, 'skipped': 0})
        store, chain = self.store, self.context.chain
        max_payouts = self.settings.max_daily_payouts

        ledger = store.get_or_create_today()
        remaining = max_payouts - ledger.payouts_sent
        if remaining <= 0:
            result.aborted = f"daily payout limit reached ({max_payouts})"
            logger.info("Daily airdrop limit reached (%d). Try again tomorrow.", max_payouts)
            return result

        effective_limit = min(limit, remaining)

        treasury = self.settings.treasury_address
        try:
            balance = chain.get_balance(treasury).token
        except Exception as e:
            result.aborted = f"treasury balance unavailable: {e}"
            logger.error("Could not read treasury balance: %s", e)
            return result
        logger.info("Treasury %s balance: %s", treasury, format_sats(balance))
        if balance < MIN_TREASURY_BALANCE:
            result.aborted = f"treasury below reserve ({format_sats(MIN_TREASURY_BALANCE)})"
            logger.info("Treasury balance too low (minimum: %s)", format_sats(MIN_TREASURY_BALANCE))
            return result

        if prospect_id is not None:
            prospect = store.get_prospect(prospect_id)
            prospects = [prospect] if prospect else []
        elif pending:
            prospects = store.list_prospects(
                payout_status=PayoutStatus.PENDING, address_valid=True, has_address=True,
            )
        else:
            prospects = []
        prospects = prospects[:effective_limit]

        logger.info("Processing %d airdrops (limit %d, sent today %d/%d)",
                    len(prospects), effective_limit, ledger.payouts_sent, max_payouts)

        for index, prospect in enumerate(prospects):
            logger.info("%s (%s):", prospect.username, prospect.stacks_address)
            outcome = self._pay_one(prospect, amount, balance)
            result.record(outcome, prospect_id=prospect.id, username=prospect.username)

            if isinstance(outcome, Skip):
                logger.info("  Skipping: %s", outcome.reason)
                result.bump('skipped')
                continue

            if isinstance(outcome, Fail):
                result.bump('failed')
            else:
                balance -= outcome.details['amount']
                result.bump('sent')
                if outcome.status == PayoutStatus.CONFIRMED.value:
                    result.bump('confirmed')
                store.increment_payouts()

            if index < len(prospects) - 1:
                time.sleep(PAYOUT_DELAY)

        logger.info("Airdrop complete: %s", result.summary())
        return result

    def _pay_one(self, prospect, override_amount, balance):
        if not prospect.stacks_address or not prospect.address_valid:
            return Skip('no valid address')
        if prospect.payout_status != PayoutStatus.PENDING:
            return Skip(f"already {prospect.payout_status}")

        if override_amount is not None:
            amount = override_amount
        else:
            amount = payout_amount_for_tier(self.settings, prospect.tier)
        if amount <= 0:
            return Skip(f"invalid amount {amount}")
        if balance - amount < MIN_TREASURY_BALANCE:
            return Skip('insufficient treasury balance')

        transfer = self.context.chain.build_and_broadcast_transfer(
            prospect.stacks_address, amount, PAYOUT_MEMO,
        )
        if not transfer.ok:
            logger.error("  Failed: %s", transfer.error)
            self.store.mark_payout_failed(prospect, amount_sats=amount)
            self.store.log_activity('airdrop:failed', prospect.id, {
                'error': transfer.error,
                'amount': amount,
            })
            self._comment(prospect, templates.payout_failed_comment(
                prospect.username, transfer.error, self.settings))
            return Fail(transfer.error)

        txid = transfer.txid
        logger.info("  TX broadcast: %s", txid)
        self.store.mark_payout_sent(prospect, txid, amount)
        self.store.log_activity('airdrop:sent', prospect.id, {'txid': txid, 'amount': amount})

        state, block_height = self.wait_for_confirmation(txid)
        if state != 'confirmed':
            logger.warning("  TX %s, left as sent", state)
            self.store.log_activity('airdrop:unconfirmed', prospect.id, {
                'txid': txid,
                'reason': state,
                'blockHeight': block_height,
            })
            return Done(PayoutStatus.SENT.value, {'txid': txid, 'amount': amount})

        self.store.mark_payout_confirmed(prospect, block_height=block_height)
        self.store.log_activity('airdrop:confirmed', prospect.id, {
            'txid': txid,
            'amount': amount,
            'blockHeight': block_height,
        })
        link = explorer_url(txid, self.settings.network)
        self._comment(prospect, templates.payout_sent_comment(txid, amount, link, self.settings))
        logger.info("  Airdrop confirmed")
        return Done(PayoutStatus.CONFIRMED.value,
                    {'txid': txid, 'amount': amount, 'block_height': block_height})

    def wait_for_confirmation(self, txid, attempts=CONFIRM_ATTEMPTS, wait=CONFIRM_WAIT):
        """(state, block_height) with state confirmed | aborted | timeout; poll errors are retried."""
        chain = self.context.chain
        for attempt in range(1, attempts + 1):
            time.sleep(wait)
            try:
                status = chain.get_transaction_status(txid)
            except Exception as e:
                logger.debug("  Status poll %d failed: %s", attempt, e)
                continue
            if status.status == 'success':
                logger.info("  TX confirmed (attempt %d)", attempt)
                return 'confirmed', status.block_height
            if status.status == 'aborted':
                logger.warning("  TX aborted")
                return 'aborted', status.block_height
            logger.info("  TX pending (attempt %d/%d)", attempt, attempts)
        return 'timeout', None

    def _comment(self, prospect, body):
        parsed = parse_pr_url(prospect.pr_url) if prospect.pr_url else None
        if parsed is None or self.context.github is None:
            return
        try:
            self.context.github.post_pull_request_comment(*parsed, body)
        except Exception as e:
            logger.warning("  Could not post comment for %s: %s", prospect.username, e)
