"""
Command-line entry point.

Usage:
    appleseed init-db
    appleseed scan --strategy mcp --limit 20 [--dry-run]
    appleseed qualify [--all | --id 12] [--min-tier B]
    appleseed outreach --tier A --limit 5 [--dry-run]
    appleseed verify [--poll --interval 300] [--pr-url URL]
    appleseed manual-verify 12 SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7
    appleseed track-prs
    appleseed airdrop [--limit 5] [--id 12] [--amount 5000]
    appleseed status | stats | treasury | sync
    appleseed daemon [--once] [--interval 60] [--no-scan] [--outreach]

Exit status is 0 on success and 1 on a failed precondition or unhandled error.
"""
import argparse
import logging
import sys

from appleseed.config import load_settings, validate_settings
from appleseed.extensions import get_redis
from appleseed.logging_config import configure_logging
from appleseed.models.status import Tier
from appleseed.pipeline.base import Done
from appleseed.pipeline.distributor import Distributor, check_treasury
from appleseed.pipeline.manager import DaemonOptions, open_context, run_daemon
from appleseed.pipeline.outreach import Outreach
from appleseed.pipeline.qualifier import Qualifier, qualify_prospect, explain_breakdown
from appleseed.pipeline.scanner import Scanner, STRATEGY_NAMES
from appleseed.pipeline.verifier import Verifier, manual_verify, track_pull_requests
from appleseed.services.circuit_breaker import init_breakers, get_all_breakers, get_breaker
from appleseed.services.mirror import push_to_mirror
from appleseed.services.stacks import format_sats

logger = logging.getLogger('appleseed.cli')


class PreconditionError(Exception):
    """Bad input or missing configuration; reported before any stage runs."""


TIER_CHOICES = [t.value for t in Tier]


# ── Commands ──────────────────────────────────────────────────────────────────

def cmd_init_db(args, settings):
    with open_context(settings, create_schema=True):
        pass
    print(f"Schema ready at {settings.database_url}")
    return 0


def cmd_scan(args, settings):
    with open_context(settings, create_schema=args.create_schema) as context:
        result = Scanner(context).run(
            strategy=args.strategy,
            limit=args.limit,
            dry_run=args.dry_run,
            days_since_activity=args.days,
        )
    if args.dry_run:
        for record in result.records:
            print(f"  {record['username']} ({record['strategy']}, {record.get('repos', 0)} repos)")
    print(f"Scan complete: {result.counts['found']} found, {result.counts['saved']} saved")
    return 0


def cmd_qualify(args, settings):
    with open_context(settings, create_schema=args.create_schema) as context:
        prospect = None
        if args.id is not None:
            prospect = context.store.get_prospect(args.id)
            if prospect is None:
                raise PreconditionError(f"Prospect {args.id} not found")
        result = Qualifier(context).run(
            pending=not args.all,
            prospect_id=args.id,
            min_tier=args.min_tier,
        )
        if prospect is not None:
            q = qualify_prospect(prospect)
            if result.counts['qualified']:
                print(f"{prospect.username}: score {q.score} -> tier {q.tier.value}")
            else:
                reason = result.records[0].get('reason') if result.records else 'skipped'
                print(f"{prospect.username}: score {q.score}, tier {q.tier.value} not saved ({reason})")
            print(explain_breakdown(q.breakdown))
            if q.hooks:
                print(f"  Hooks: {', '.join(q.hooks)}")
    print(f"Qualified: {result.counts['qualified']}, skipped: {result.counts['skipped']}")
    return 0


def cmd_outreach(args, settings):
    with open_context(settings, create_schema=args.create_schema) as context:
        if not args.dry_run and not context.github.check_auth():
            raise PreconditionError('GitHub token is not authorized (check GITHUB_TOKEN)')
        result = Outreach(context).run(
            tier=args.tier,
            limit=args.limit,
            dry_run=args.dry_run,
            prospect_id=args.id,
        )
    _print_result('Outreach', result)
    return 0


def cmd_verify(args, settings):
    with open_context(settings, create_schema=args.create_schema) as context:
        result = Verifier(context).run(poll=args.poll, interval=args.interval, pr_url=args.pr_url)
    _print_result('Verify', result)
    return 0


def cmd_manual_verify(args, settings):
    with open_context(settings, create_schema=args.create_schema) as context:
        outcome = manual_verify(context.store, args.id, args.address)
    if not isinstance(outcome, Done):
        print(f"Manual verification failed: {outcome.reason}")
        return 1
    print(f"Prospect {args.id} verified with {args.address}")
    return 0


def cmd_track_prs(args, settings):
    with open_context(settings, create_schema=args.create_schema) as context:
        result = track_pull_requests(context, limit=args.limit)
    _print_result('PR tracking', result)
    return 0


def cmd_airdrop(args, settings):
    with open_context(settings, create_schema=args.create_schema) as context:
        result = Distributor(context).run(
            pending=True,
            limit=args.limit,
            prospect_id=args.id,
            amount=args.amount,
        )
    _print_result('Airdrop', result)
    return 0


def cmd_status(args, settings):
    with open_context(settings, create_schema=args.create_schema) as context:
        stats = context.store.get_stats()
        activity = context.store.get_activity_log(limit=args.limit)
        today = stats['today']
        print(f"Network: {settings.network}")
        print(f"Prospects: {stats['total']}  verified: {stats['verified']}")
        print(f"Today ({today['date']}): PRs {today['prs_opened']}/{settings.max_daily_prs}, "
              f"airdrops {today['payouts_sent']}/{settings.max_daily_payouts}")
        print('Services:')
        for name, breaker in sorted(get_all_breakers().items()):
            health = breaker.get_health()
            print(f"  {name}: {health['state']} ({health['failure_count']} recent failures)")
        print('Recent activity:')
        for entry in activity:
            print(f"  {entry.created_at:%Y-%m-%d %H:%M:%S}  {entry.action}  "
                  f"prospect={entry.prospect_id or '-'}  {entry.details or ''}")
    return 0


def cmd_stats(args, settings):
    with open_context(settings, create_schema=args.create_schema) as context:
        stats = context.store.get_stats()
    print(f"Total prospects: {stats['total']}")
    print('By tier:     ' + '  '.join(f"{k}={v}" for k, v in stats['by_tier'].items()))
    print('Outreach:    ' + '  '.join(f"{k}={v}" for k, v in stats['by_outreach'].items()))
    print('Payouts:     ' + '  '.join(f"{k}={v}" for k, v in stats['by_payout'].items()))
    print(f"Verified:    {stats['verified']}")
    funnel = stats['funnel']
    print('Funnel:      ' + ' -> '.join(f"{k} {v}" for k, v in funnel.items()))
    return 0


def cmd_treasury(args, settings):
    with open_context(settings, create_schema=args.create_schema) as context:
        info = check_treasury(settings, context.chain)
    print(f"Treasury: {info['address']}")
    print(f"  STX:  {info['native_display']}")
    print(f"  sBTC: {info['token_display']}")
    print(f"  Reserve: {format_sats(info['minimum_reserve'])}")
    print(f"  Can airdrop: {'yes' if info['can_airdrop'] else 'no'}")
    return 0


def cmd_sync(args, settings):
    with open_context(settings, create_schema=args.create_schema) as context:
        synced = push_to_mirror(context.store, settings.mirror_api_url,
                                breaker=get_breaker('mirror'))
    print(f"Synced {synced} prospects to {settings.mirror_api_url}")
    return 0


def cmd_daemon(args, settings):
    options = DaemonOptions(
        interval_minutes=args.interval,
        strategies=args.strategies,
        scan_limit=args.scan_limit,
        airdrop_limit=args.airdrop_limit,
        scan=not args.no_scan,
        qualify=not args.no_qualify,
        outreach=args.outreach,
        verify=not args.no_verify,
        airdrop=not args.no_airdrop,
        sync=not args.no_sync,
    )
    run_daemon(settings, options, once=args.once, create_schema=args.create_schema)
    return 0


def _print_result(label, result):
    for record in result.records:
        name = record.get('username') or record.get('prospect_id')
        detail = record.get('reason') or record.get('error') or record.get('pr_url') or ''
        print(f"  {name}: {record['outcome']} {detail}".rstrip())
    print(f"{label}: {result.summary()}")


# ── Parser ────────────────────────────────────────────────────────────────────

def build_parser():
    parser = argparse.ArgumentParser(
        prog='appleseed',
        description='Discover AI agent builders, invite them, and airdrop sBTC to verified wallets.',
    )
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('init-db', help='Create database tables')

    p = sub.add_parser('scan', help='Search GitHub for prospects')
    p.add_argument('--strategy', default='all', help=f"One of: {', '.join(STRATEGY_NAMES)}")
    p.add_argument('--limit', type=int, default=50)
    p.add_argument('--days', type=int, default=90, help='Require repo activity within N days')
    p.add_argument('--dry-run', action='store_true')

    p = sub.add_parser('qualify', help='Score prospects and assign tiers')
    p.add_argument('--all', action='store_true', help='Consider every prospect, not only unscored ones')
    p.add_argument('--id', type=int)
    p.add_argument('--min-tier', choices=TIER_CHOICES)

    p = sub.add_parser('outreach', help='Open invitation PRs')
    p.add_argument('--tier', choices=TIER_CHOICES)
    p.add_argument('--limit', type=int, default=10)
    p.add_argument('--id', type=int)
    p.add_argument('--dry-run', action='store_true')

    p = sub.add_parser('verify', help='Check PR comments for Stacks addresses')
    p.add_argument('--poll', action='store_true')
    p.add_argument('--interval', type=int, default=300, help='Seconds between polls')
    p.add_argument('--pr-url')

    p = sub.add_parser('manual-verify', help='Mark an address as verified for a prospect')
    p.add_argument('id', type=int)
    p.add_argument('address')

    p = sub.add_parser('track-prs', help='Record merged / closed invitation PRs')
    p.add_argument('--limit', type=int)

    p = sub.add_parser('airdrop', help='Send sBTC to verified prospects')
    p.add_argument('--limit', type=int, default=5)
    p.add_argument('--id', type=int)
    p.add_argument('--amount', type=int, help='Override amount in sats')

    p = sub.add_parser('status', help='Today\'s counters, service health, recent activity')
    p.add_argument('--limit', type=int, default=10)

    sub.add_parser('stats', help='Counts by tier and status, plus the funnel')
    sub.add_parser('treasury', help='Treasury balances')
    sub.add_parser('sync', help='Push prospects to the cloud mirror')

    p = sub.add_parser('daemon', help='Run the pipeline on an interval')
    p.add_argument('--interval', type=int, default=60, help='Minutes between runs')
    p.add_argument('--once', action='store_true')
    p.add_argument('--strategies', type=lambda s: [x.strip() for x in s.split(',') if x.strip()],
                   default=['mcp', 'langchain', 'bitcoin_ai'])
    p.add_argument('--scan-limit', type=int, default=50)
    p.add_argument('--airdrop-limit', type=int, default=5)
    p.add_argument('--outreach', action='store_true', help='Also open PRs (off by default)')
    for step in ('scan', 'qualify', 'verify', 'airdrop', 'sync'):
        p.add_argument(f'--no-{step}', action='store_true')

    return parser


def required_services(args):
    """Which optional collaborators the command needs configured."""
    command = args.command
    if command in ('scan', 'verify', 'track-prs'):
        return ('github',)
    if command == 'outreach':
        return () if args.dry_run else ('github',)
    if command in ('airdrop', 'treasury'):
        return ('treasury',)
    if command == 'sync':
        return ('mirror',)
    if command == 'daemon':
        needs = []
        if not args.no_scan or not args.no_verify or args.outreach:
            needs.append('github')
        if not args.no_airdrop:
            needs.append('treasury')
        if not args.no_sync:
            needs.append('mirror')
        return tuple(needs)
    return ()


def check_arguments(args):
    if getattr(args, 'strategy', None) not in (None, *STRATEGY_NAMES):
        raise PreconditionError(
            f"Invalid strategy '{args.strategy}'. Choose one of: {', '.join(STRATEGY_NAMES)}")
    for name in getattr(args, 'strategies', None) or []:
        if name not in STRATEGY_NAMES or name == 'all':
            raise PreconditionError(f"Invalid strategy '{name}'")
    if getattr(args, 'amount', None) is not None and args.amount <= 0:
        raise PreconditionError(f"Invalid amount {args.amount}: must be a positive number of sats")


COMMANDS = {
    'init-db': cmd_init_db,
    'scan': cmd_scan,
    'qualify': cmd_qualify,
    'outreach': cmd_outreach,
    'verify': cmd_verify,
    'manual-verify': cmd_manual_verify,
    'track-prs': cmd_track_prs,
    'airdrop': cmd_airdrop,
    'status': cmd_status,
    'stats': cmd_stats,
    'treasury': cmd_treasury,
    'sync': cmd_sync,
    'daemon': cmd_daemon,
}


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(stream=sys.stdout)
    settings = load_settings()

    errors = validate_settings(settings, needs=required_services(args))
    try:
        check_arguments(args)
    except PreconditionError as e:
        errors.append(str(e))
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    args.create_schema = settings.database_url.startswith('sqlite')
    init_breakers(get_redis(settings.redis_url))

    try:
        return COMMANDS[args.command](args, settings)
    except PreconditionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print('Interrupted', file=sys.stderr)
        return 1
    except Exception as e:
        logger.error("%s failed: %s", args.command, e, exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())
