"""Tests for scripts/seed_test_data.py — lifecycle fixtures for local runs."""
from scripts.seed_test_data import seed_prospects, clear_seeded_data


class TestSeedData:

    def test_covers_each_stage(self, store):
        seed_prospects(store)
        stats = store.get_stats()
        assert stats['total'] == 6
        assert stats['by_tier']['unqualified'] == 1
        assert stats['by_tier']['D'] == 1
        assert stats['by_outreach']['pr_opened'] == 4
        assert stats['verified'] == 2
        assert stats['by_payout']['confirmed'] == 1

    def test_clear_removes_only_seeded(self, store, make_prospect):
        make_prospect('real_user')
        seed_prospects(store)
        clear_seeded_data(store)
        assert [p.username for p in store.list_prospects()] == ['real_user']
        assert store.get_activity_log() == []
