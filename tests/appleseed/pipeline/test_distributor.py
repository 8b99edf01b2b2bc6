"""Tests for appleseed.pipeline.distributor — guards, transfers, confirmation."""
import pytest

from appleseed.pipeline.distributor import (
    Distributor, check_treasury, MIN_TREASURY_BALANCE, CONFIRM_ATTEMPTS, PAYOUT_MEMO,
)
from appleseed.services.stacks import Balance, ChainError, TransferResult, TxStatus

VALID = 'SP3FBR2AGK5H9QBDH3EEN6DF8EK8JY7RX8QJ5SVTE'
PR_URL = 'https://github.com/alice/agent-kit/pull/7'


@pytest.fixture
def distributor(context):
    return Distributor(context)


@pytest.fixture
def make_verified(make_prospect):
    def _make(username, tier='A', **fields):
        defaults = dict(tier=tier, score=80, outreach_status='pr_opened', pr_url=PR_URL,
                        stacks_address=VALID, address_valid=True)
        defaults.update(fields)
        return make_prospect(username, **defaults)
    return _make


# ---------------------------------------------------------------------------
# Batch guards
# ---------------------------------------------------------------------------

class TestGuards:

    def test_daily_cap_makes_zero_external_calls(self, distributor, store, mock_chain,
                                                 mock_github, make_settings, make_verified):
        distributor.context.settings = make_settings(max_daily_payouts=5)
        make_verified('alice')
        for _ in range(5):
            store.increment_payouts()

        result = distributor.run()

        assert result.counts == {'sent': 0, 'confirmed': 0, 'failed': 0, 'skipped': 0}
        assert result.aborted.startswith('daily payout limit reached')
        assert mock_chain.method_calls == []
        assert mock_github.method_calls == []

    def test_low_treasury_aborts(self, distributor, mock_chain, make_verified):
        make_verified('alice')
        mock_chain.get_balance.return_value = Balance(native=0, token=MIN_TREASURY_BALANCE - 1)
        result = distributor.run()
        assert result.aborted.startswith('treasury below reserve')
        mock_chain.build_and_broadcast_transfer.assert_not_called()

    def test_balance_error_aborts(self, distributor, mock_chain, make_verified):
        make_verified('alice')
        mock_chain.get_balance.side_effect = ChainError('hiro down')
        result = distributor.run()
        assert 'hiro down' in result.aborted
        mock_chain.build_and_broadcast_transfer.assert_not_called()


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------

class TestCandidates:

    def test_confirmed_excluded(self, distributor, mock_chain, make_verified):
        make_verified('paid', payout_status='confirmed', payout_txid='0x1', payout_amount_sats=10000)
        result = distributor.run()
        assert result.records == []
        mock_chain.build_and_broadcast_transfer.assert_not_called()

    def test_unverified_excluded(self, distributor, mock_chain, make_verified):
        make_verified('bad', address_valid=False)
        make_verified('none', stacks_address=None, address_valid=False)
        distributor.run()
        mock_chain.build_and_broadcast_transfer.assert_not_called()

    def test_by_id_revalidates(self, distributor, mock_chain, make_verified):
        p = make_verified('paid', payout_status='sent', payout_txid='0x1')
        result = distributor.run(prospect_id=p.id)
        assert result.counts['skipped'] == 1
        assert result.records[0]['reason'] == 'already sent'
        mock_chain.build_and_broadcast_transfer.assert_not_called()

    def test_limit_bounded_by_remaining(self, distributor, store, mock_chain,
                                        make_settings, make_verified):
        distributor.context.settings = make_settings(max_daily_payouts=3)
        store.increment_payouts()
        for name in ('a', 'b', 'c', 'd'):
            make_verified(name)
        result = distributor.run(limit=10)
        assert result.counts['sent'] == 2
        assert store.get_or_create_today().payouts_sent == 3


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------

class TestTransfers:

    def test_confirmed_payout(self, distributor, store, mock_chain, mock_github, make_verified):
        p = make_verified('alice', tier='B')
        result = distributor.run()

        assert result.counts == {'sent': 1, 'confirmed': 1, 'failed': 0, 'skipped': 0}
        mock_chain.build_and_broadcast_transfer.assert_called_once_with(VALID, 5000, PAYOUT_MEMO)
        assert p.payout_status == 'confirmed'
        assert p.payout_txid == '0xabc123'
        assert p.payout_amount_sats == 5000
        assert p.payout_block_height == 812345
        assert store.get_or_create_today().payouts_sent == 1
        actions = [e.action for e in reversed(store.get_activity_log())]
        assert actions == ['airdrop:sent', 'airdrop:confirmed']
        owner, repo, number, body = mock_github.post_pull_request_comment.call_args.args
        assert (owner, repo, number) == ('alice', 'agent-kit', 7)
        assert 'explorer.stacks.co/txid/0xabc123' in body

    def test_amount_override(self, distributor, mock_chain, make_verified):
        make_verified('alice', tier='A')
        distributor.run(amount=777)
        assert mock_chain.build_and_broadcast_transfer.call_args.args[1] == 777

    def test_zero_override_is_not_replaced_by_tier_amount(self, distributor, mock_chain, make_verified):
        p = make_verified('alice', tier='A')
        result = distributor.run(amount=0)
        mock_chain.build_and_broadcast_transfer.assert_not_called()
        assert result.counts['skipped'] == 1
        assert result.records[0]['reason'] == 'invalid amount 0'
        assert p.payout_status == 'pending'


    def test_broadcast_failure(self, distributor, store, mock_chain, mock_github, make_verified):
        p = make_verified('alice', tier='C')
        mock_chain.build_and_broadcast_transfer.return_value = TransferResult(error='NotEnoughFunds')

        result = distributor.run()

        assert result.counts == {'sent': 0, 'confirmed': 0, 'failed': 1, 'skipped': 0}
        assert p.payout_status == 'failed'
        assert p.payout_amount_sats == 2500
        assert store.get_or_create_today().payouts_sent == 0
        entry = store.get_activity_log()[0]
        assert entry.action == 'airdrop:failed'
        assert entry.details == {'error': 'NotEnoughFunds', 'amount': 2500}
        assert 'NotEnoughFunds' in mock_github.post_pull_request_comment.call_args.args[3]

    def test_unconfirmed_stays_sent(self, distributor, store, mock_chain, mock_github, make_verified):
        p = make_verified('alice')
        mock_chain.get_transaction_status.return_value = TxStatus('pending')

        result = distributor.run()

        assert result.counts == {'sent': 1, 'confirmed': 0, 'failed': 0, 'skipped': 0}
        assert mock_chain.get_transaction_status.call_count == CONFIRM_ATTEMPTS
        assert p.payout_status == 'sent'
        assert store.get_or_create_today().payouts_sent == 1
        entry = store.get_activity_log()[0]
        assert entry.action == 'airdrop:unconfirmed'
        assert entry.details['reason'] == 'timeout'
        mock_github.post_pull_request_comment.assert_not_called()

    def test_aborted_transaction(self, distributor, mock_chain, make_verified):
        p = make_verified('alice')
        mock_chain.get_transaction_status.return_value = TxStatus('aborted', block_height=10)
        distributor.run()
        assert mock_chain.get_transaction_status.call_count == 1
        assert p.payout_status == 'sent'

    def test_status_poll_errors_retried(self, distributor, mock_chain, make_verified):
        p = make_verified('alice')
        mock_chain.get_transaction_status.side_effect = [
            ChainError('timeout'), TxStatus('pending'), TxStatus('success', block_height=5),
        ]
        distributor.run()
        assert p.payout_status == 'confirmed'
        assert p.payout_block_height == 5

    def test_running_balance_protects_reserve(self, distributor, mock_chain, make_verified):
        mock_chain.get_balance.return_value = Balance(native=0, token=MIN_TREASURY_BALANCE + 15000)
        make_verified('first', tier='A')
        make_verified('second', tier='A')
        result = distributor.run()
        assert result.counts['sent'] == 1
        assert result.counts['skipped'] == 1
        assert mock_chain.build_and_broadcast_transfer.call_count == 1

    def test_no_pr_means_no_comment(self, distributor, mock_github, make_verified):
        make_verified('alice', pr_url=None)
        distributor.run()
        mock_github.post_pull_request_comment.assert_not_called()


class TestCheckTreasury:

    def test_reports_balances(self, settings, mock_chain):
        info = check_treasury(settings, mock_chain)
        assert info['address'] == settings.treasury_address
        assert info['token_balance'] == 1_000_000
        assert info['native_display'] == '5.000000 STX'
        assert info['can_airdrop'] is True

    def test_cannot_airdrop_near_reserve(self, settings, mock_chain):
        mock_chain.get_balance.return_value = Balance(native=0, token=MIN_TREASURY_BALANCE + 100)
        assert check_treasury(settings, mock_chain)['can_airdrop'] is False
