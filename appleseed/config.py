"""
Centralized configuration — env vars, network endpoints, payout policy.

Values are read once at import (a local .env is honoured) and frozen into a
Settings snapshot by load_settings(); stages receive that snapshot explicitly.
"""
import os
from dataclasses import dataclass, replace
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis (circuit breaker state) ────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── Database ─────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///data/appleseed.db')

# ── Stacks network ───────────────────────────────────────────────────────────
NETWORKS = ('mainnet', 'testnet')
STACKS_NETWORK = os.getenv('STACKS_NETWORK', 'mainnet')
HIRO_API_URLS = {
    'mainnet': 'https://api.hiro.so',
    'testnet': 'https://api.testnet.hiro.so',
}
HIRO_API_URL = os.getenv('HIRO_API_URL')

# ── GitHub ───────────────────────────────────────────────────────────────────
GITHUB_TOKEN = os.getenv('GITHUB_TOKEN')
GITHUB_API_URL = os.getenv('GITHUB_API_URL', 'https://api.github.com')

# ── Treasury + signer ────────────────────────────────────────────────────────
TREASURY_ADDRESS = os.getenv('TREASURY_ADDRESS') or os.getenv('PAYMENT_ADDRESS')
SIGNER_URL = os.getenv('SIGNER_URL')
SIGNER_API_KEY = os.getenv('SIGNER_API_KEY')

# ── Daily rate limits ────────────────────────────────────────────────────────
MAX_DAILY_PRS = int(os.getenv('MAX_DAILY_PRS', '50'))
MAX_DAILY_PAYOUTS = int(os.getenv('MAX_DAILY_AIRDROPS', '20'))

# ── Payout amounts per tier (sats) ───────────────────────────────────────────
PAYOUT_TIER_A_SATS = int(os.getenv('AIRDROP_TIER_A_SATS', '10000'))
PAYOUT_TIER_B_SATS = int(os.getenv('AIRDROP_TIER_B_SATS', '5000'))
PAYOUT_TIER_C_SATS = int(os.getenv('AIRDROP_TIER_C_SATS', '2500'))

# ── Cloud mirror ─────────────────────────────────────────────────────────────
MIRROR_API_URL = os.getenv('APPLESEED_API_URL', 'https://appleseed-api.c3dar.workers.dev')

# ── Links used in PR bodies and comments ─────────────────────────────────────
CALENDLY_LINK = os.getenv('CALENDLY_LINK', 'https://calendly.com/aibtc/chat')
DISCORD_LINK = os.getenv('DISCORD_LINK', 'https://discord.gg/aibtc')
TWITTER_LINK = os.getenv('TWITTER_LINK', 'https://twitter.com/aiaboronbitcoin')
WEBSITE_LINK = os.getenv('WEBSITE_LINK', 'https://aibtc.dev')
AIBTC_CLI_REPO = os.getenv('AIBTC_CLI_REPO', 'https://github.com/aibtcdev/aibtc-cli')
APPLESEED_REPO_URL = os.getenv('APPLESEED_REPO_URL', 'https://github.com/aibtcdev/appleseed')


@dataclass(frozen=True)
class Settings:
    """Immutable configuration snapshot for one process run."""
    network: str = 'mainnet'
    database_url: str = 'sqlite:///data/appleseed.db'
    redis_url: str = 'redis://localhost:6379/0'
    github_token: Optional[str] = None
    github_api_url: str = 'https://api.github.com'
    hiro_api_url: Optional[str] = None
    treasury_address: Optional[str] = None
    signer_url: Optional[str] = None
    signer_api_key: Optional[str] = None
    mirror_api_url: Optional[str] = None
    max_daily_prs: int = 50
    max_daily_payouts: int = 20
    payout_tier_a: int = 10000
    payout_tier_b: int = 5000
    payout_tier_c: int = 2500
    calendly_link: str = 'https://calendly.com/aibtc/chat'
    discord_link: str = 'https://discord.gg/aibtc'
    twitter_link: str = 'https://twitter.com/aiaboronbitcoin'
    website_link: str = 'https://aibtc.dev'
    aibtc_cli_repo: str = 'https://github.com/aibtcdev/aibtc-cli'
    appleseed_repo_url: str = 'https://github.com/aibtcdev/appleseed'

    @property
    def hiro_base_url(self) -> str:
        if self.hiro_api_url:
            return self.hiro_api_url.rstrip('/')
        return HIRO_API_URLS.get(self.network, HIRO_API_URLS['mainnet'])

    @property
    def is_testnet(self) -> bool:
        return self.network == 'testnet'


def load_settings(**overrides) -> Settings:
    """Build the Settings snapshot from the module-level env values."""
    settings = Settings(
        network=STACKS_NETWORK,
        database_url=DATABASE_URL,
        redis_url=REDIS_URL,
        github_token=GITHUB_TOKEN,
        github_api_url=GITHUB_API_URL,
        hiro_api_url=HIRO_API_URL,
        treasury_address=TREASURY_ADDRESS,
        signer_url=SIGNER_URL,
        signer_api_key=SIGNER_API_KEY,
        mirror_api_url=MIRROR_API_URL,
        max_daily_prs=MAX_DAILY_PRS,
        max_daily_payouts=MAX_DAILY_PAYOUTS,
        payout_tier_a=PAYOUT_TIER_A_SATS,
        payout_tier_b=PAYOUT_TIER_B_SATS,
        payout_tier_c=PAYOUT_TIER_C_SATS,
        calendly_link=CALENDLY_LINK,
        discord_link=DISCORD_LINK,
        twitter_link=TWITTER_LINK,
        website_link=WEBSITE_LINK,
        aibtc_cli_repo=AIBTC_CLI_REPO,
        appleseed_repo_url=APPLESEED_REPO_URL,
    )
    if overrides:
        settings = replace(settings, **overrides)
    return settings


def validate_settings(settings: Settings, needs=()) -> List[str]:
    """
    Return human-readable precondition errors (empty list when usable).

    needs selects which optional collaborators must be configured:
    'github', 'treasury', 'mirror'.
    """
    errors = []
    if settings.network not in NETWORKS:
        errors.append(f"STACKS_NETWORK must be 'mainnet' or 'testnet' (got '{settings.network}')")
    if 'github' in needs and not settings.github_token:
        errors.append('GITHUB_TOKEN is required')
    if 'treasury' in needs:
        if not settings.treasury_address:
            errors.append('TREASURY_ADDRESS is required')
        if not settings.signer_url:
            errors.append('SIGNER_URL is required')
    if 'mirror' in needs and not settings.mirror_api_url:
        errors.append('APPLESEED_API_URL is required')
    return errors


def payout_amount_for_tier(settings: Settings, tier) -> int:
    """Tier-indexed payout amount; tier-less and D-tier fall back to the C amount."""
    amounts = {
        'A': settings.payout_tier_a,
        'B': settings.payout_tier_b,
        'C': settings.payout_tier_c,
    }
    key = getattr(tier, 'value', tier)
    return amounts.get(key, settings.payout_tier_c)
