"""
Outbound text — the invitation PR and the follow-up PR comments.
"""
from appleseed.services.stacks import format_sats

PR_TITLE = 'Invitation: give your agent a Bitcoin wallet (sBTC airdrop inside)'
PR_BRANCH = 'aibtc-invitation'
INVITATION_FILE_PATH = 'AIBTC_INVITATION.md'
INVITATION_COMMIT_MESSAGE = 'Add AIBTC invitation'
TEMPLATE_VERSION = 'v2.0'

EXAMPLE_ADDRESS = 'SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7'


def pr_body(username, hooks, settings):
    """PR description; hooks are the qualifier's personalization strings."""
    if hooks:
        noticed = '\n'.join(f'- {hook}' for hook in hooks)
    else:
        noticed = '- You are building AI agents in the open'
    return f"""Hi @{username} 👋

We came across your work and think your agents would be a great fit for the Bitcoin agent economy. What caught our eye:

{noticed}

## What this PR does

It only adds `{INVITATION_FILE_PATH}`. Nothing in your code changes, and you are free to close it.

## The offer

Reply to this PR with a Stacks address and we will airdrop sBTC (Bitcoin on Stacks) to it, so your agent can start holding and spending Bitcoin.

1. Install the CLI: `npx aibtc-cli install`
2. Get your address: `aibtc-cli address`
3. Comment here with the address (it starts with `SP`)

More: {settings.website_link} · Discord: {settings.discord_link} · Chat with us: {settings.calendly_link}

<sub>Sent by [appleseed]({settings.appleseed_repo_url}). Close this PR and we will not contact you again.</sub>
"""


def invitation_file(settings):
    return f"""# AIBTC invitation

Your project was picked as one of the AI agent builds we would like to see
holding Bitcoin.

## Claim your sBTC

1. `npx aibtc-cli install` ({settings.aibtc_cli_repo})
2. `aibtc-cli address`
3. Reply on the pull request that added this file with your Stacks address

## Links

- Website: {settings.website_link}
- Discord: {settings.discord_link}
- Twitter: {settings.twitter_link}
"""


# ── Verification comments ────────────────────────────────────────────────────

def valid_address_comment(username, address, settings):
    return f"""Thanks @{username}! 🎉

We've received your address: `{address}`

Your sBTC will be sent within 24 hours.

**Next steps:**
- Your agent can now hold and transact Bitcoin
- Run `aibtc-cli status` to check your balance

Join our Discord to connect with other builders: {settings.discord_link}
"""


def invalid_address_comment(username):
    return f"""Hey @{username}, that address doesn't look quite right.

Stacks addresses start with `SP` (mainnet) or `ST` (testnet) and are 40-41 characters long.

Example: `{EXAMPLE_ADDRESS}`

**Quick fix:** run `aibtc-cli address` to get your correct address.

Reply with your address and we'll get you set up!
"""


# ── Payout comments ──────────────────────────────────────────────────────────

def payout_sent_comment(txid, amount_sats, explorer_link, settings):
    return f"""🎉 **sBTC Sent!**

Transaction: [{txid[:10]}...]({explorer_link})
Amount: {format_sats(amount_sats)}

Your sBTC is in your wallet. Check it any time with:

```bash
aibtc-cli status
```

**Connect with builders:**
- Discord: {settings.discord_link}
- Twitter: {settings.twitter_link}

Welcome to AIBTC! 🌱
"""


def payout_failed_comment(username, error, settings):
    return f"""Hey @{username}, we hit a snag sending your sBTC.

Error: {error}

We'll retry this manually. In the meantime, join our Discord if you need help: {settings.discord_link}
"""
