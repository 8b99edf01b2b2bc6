"""
Appleseed — find AI agent builders on GitHub, invite them with a pull request,
and airdrop sBTC to the wallet address they reply with.

Entry point: appleseed.cli:main (installed as the `appleseed` command).
"""

__version__ = '2.0.0'
