"""Tests for appleseed.config — settings snapshot, validation, payout amounts."""
from dataclasses import FrozenInstanceError

import pytest

from appleseed import config
from appleseed.config import Settings, load_settings, validate_settings, payout_amount_for_tier
from appleseed.models.status import Tier


class TestSettings:

    def test_defaults(self):
        s = Settings()
        assert s.network == 'mainnet'
        assert s.max_daily_prs == 50
        assert s.max_daily_payouts == 20
        assert (s.payout_tier_a, s.payout_tier_b, s.payout_tier_c) == (10000, 5000, 2500)

    def test_frozen(self):
        s = Settings()
        with pytest.raises(FrozenInstanceError):
            s.network = 'testnet'

    def test_hiro_url_follows_network(self):
        assert Settings(network='mainnet').hiro_base_url == 'https://api.hiro.so'
        assert Settings(network='testnet').hiro_base_url == 'https://api.testnet.hiro.so'

    def test_hiro_url_override_wins(self):
        s = Settings(network='testnet', hiro_api_url='http://localhost:3999/')
        assert s.hiro_base_url == 'http://localhost:3999'

    def test_is_testnet(self):
        assert Settings(network='testnet').is_testnet
        assert not Settings().is_testnet


class TestLoadSettings:

    def test_reads_module_values(self, monkeypatch):
        monkeypatch.setattr(config, 'STACKS_NETWORK', 'testnet')
        monkeypatch.setattr(config, 'MAX_DAILY_PRS', 7)
        s = load_settings()
        assert s.network == 'testnet'
        assert s.max_daily_prs == 7

    def test_overrides_applied(self):
        s = load_settings(github_token='ghp_x', max_daily_payouts=3)
        assert s.github_token == 'ghp_x'
        assert s.max_daily_payouts == 3


class TestValidateSettings:

    def test_clean_settings(self):
        assert validate_settings(Settings()) == []

    def test_bad_network(self):
        errors = validate_settings(Settings(network='devnet'))
        assert len(errors) == 1
        assert 'devnet' in errors[0]

    def test_github_needs_token(self):
        errors = validate_settings(Settings(), needs=('github',))
        assert errors == ['GITHUB_TOKEN is required']

    def test_treasury_needs_address_and_signer(self):
        errors = validate_settings(Settings(), needs=('treasury',))
        assert 'TREASURY_ADDRESS is required' in errors
        assert 'SIGNER_URL is required' in errors

    def test_mirror_needs_url(self):
        assert validate_settings(Settings(mirror_api_url=None), needs=('mirror',)) == [
            'APPLESEED_API_URL is required',
        ]

    def test_needs_satisfied(self, settings):
        assert validate_settings(settings, needs=('github', 'treasury', 'mirror')) == []


class TestPayoutAmountForTier:

    def test_per_tier(self):
        s = Settings()
        assert payout_amount_for_tier(s, 'A') == 10000
        assert payout_amount_for_tier(s, Tier.B) == 5000
        assert payout_amount_for_tier(s, 'C') == 2500

    def test_fallback_to_c(self):
        s = Settings(payout_tier_c=1234)
        assert payout_amount_for_tier(s, None) == 1234
        assert payout_amount_for_tier(s, 'D') == 1234
