"""
Pipeline Manager — wiring and the unattended daemon.

open_context() builds the collaborators every stage needs (store, GitHub and
chain clients behind their circuit breakers) for one scoped session.
run_pipeline() runs one daemon cycle:

    SCAN → QUALIFY → (OUTREACH) → VERIFY → AIRDROP → SYNC

Outreach is off by default; PRs are opened after manual review. Each step is
isolated: a failing step is logged and the next one still runs.
"""
import logging
import math
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, List

from appleseed.pipeline.base import PipelineContext, StageResult
from appleseed.pipeline.distributor import Distributor, check_treasury
from appleseed.pipeline.outreach import Outreach
from appleseed.pipeline.qualifier import Qualifier
from appleseed.pipeline.scanner import Scanner
from appleseed.pipeline.verifier import Verifier
from appleseed.services.circuit_breaker import get_breaker
from appleseed.services.github import GitHubClient
from appleseed.services.mirror import push_to_mirror
from appleseed.services.stacks import HiroChainClient
from appleseed.services.store import open_store

logger = logging.getLogger('pipeline.manager')


def build_github(settings):
    return GitHubClient(
        token=settings.github_token,
        api_url=settings.github_api_url,
        breaker=get_breaker('github'),
    )


def build_chain(settings):
    return HiroChainClient.from_settings(
        settings,
        hiro_breaker=get_breaker('hiro'),
        signer_breaker=get_breaker('signer'),
    )


@contextmanager
def open_context(settings, create_schema=False):
    """Yield a PipelineContext; the store session is closed on every exit path."""
    with open_store(settings.database_url, create_schema=create_schema) as store:
        yield PipelineContext(
            store=store,
            settings=settings,
            github=build_github(settings),
            chain=build_chain(settings),
        )


@dataclass
class DaemonOptions:
    interval_minutes: int = 60
    strategies: List[str] = field(default_factory=lambda: ['mcp', 'langchain', 'bitcoin_ai'])
    scan_limit: int = 50
    outreach_limit: int = 10
    airdrop_limit: int = 5
    scan: bool = True
    qualify: bool = True
    outreach: bool = False
    verify: bool = True
    airdrop: bool = True
    sync: bool = True


def _step(name, results, func):
    logger.info("── %s ──", name.upper())
    try:
        results[name] = func()
    except Exception as e:
        logger.error("%s step failed: %s", name, e, exc_info=True)
        results[name] = StageResult(aborted=f"error: {e}")
    return results[name]


def _scan(context, options):
    combined = StageResult(counts={'found': 0, 'saved': 0})
    per_strategy = math.ceil(options.scan_limit / max(len(options.strategies), 1))
    for strategy in options.strategies:
        logger.info("Scanning strategy: %s", strategy)
        try:
            result = Scanner(context).run(strategy=strategy, limit=per_strategy)
        except Exception as e:
            logger.error("Scan for %s failed: %s", strategy, e)
            combined.errors.append(str(e))
            continue
        for key, value in result.counts.items():
            combined.bump(key, value)
    return combined


def _airdrop(context, options):
    treasury = check_treasury(context.settings, context.chain)
    logger.info("Treasury balance: %s", treasury['token_display'])
    if not treasury['can_airdrop']:
        logger.info("Treasury balance too low, skipping airdrops")
        return StageResult(aborted='treasury balance too low')
    return Distributor(context).run(pending=True, limit=options.airdrop_limit)


def _sync(context):
    synced = push_to_mirror(context.store, context.settings.mirror_api_url,
                            breaker=get_breaker('mirror'))
    return StageResult(processed=synced, counts={'synced': synced})


def run_pipeline(context, options=None) -> Dict[str, StageResult]:
    """One daemon cycle; returns each enabled step's StageResult."""
    options = options or DaemonOptions()
    store = context.store
    started = time.monotonic()
    before = store.get_stats()
    logger.info("Pipeline run: %d prospects, %d verified", before['total'], before['verified'])

    results = {}
    if options.scan:
        _step('scan', results, lambda: _scan(context, options))
    if options.qualify:
        _step('qualify', results, lambda: Qualifier(context).run(pending=True))
    if options.outreach:
        _step('outreach', results, lambda: Outreach(context).run(limit=options.outreach_limit))
    if options.verify:
        _step('verify', results, lambda: Verifier(context).run())
    if options.airdrop:
        _step('airdrop', results, lambda: _airdrop(context, options))
    if options.sync:
        _step('sync', results, lambda: _sync(context))

    after = store.get_stats()
    logger.info("Run complete in %.1fs: prospects %d → %d, verified %d → %d, paid %d → %d",
                time.monotonic() - started,
                before['total'], after['total'],
                before['verified'], after['verified'],
                before['funnel']['paid'], after['funnel']['paid'])
    return results


def run_daemon(settings, options=None, once=False, max_cycles=None, create_schema=False):
    """Run a cycle every interval_minutes until the process is stopped."""
    options = options or DaemonOptions()
    enabled = [name for name in ('scan', 'qualify', 'outreach', 'verify', 'airdrop', 'sync')
               if getattr(options, name)]
    logger.info("Starting daemon (interval %d min, steps: %s)",
                options.interval_minutes, ', '.join(enabled))
    cycles = 0
    while True:
        try:
            with open_context(settings, create_schema=create_schema) as context:
                run_pipeline(context, options)
        except Exception as e:
            logger.error("Pipeline cycle failed: %s", e, exc_info=True)
        cycles += 1
        if once or (max_cycles is not None and cycles >= max_cycles):
            return cycles
        time.sleep(options.interval_minutes * 60)
