"""
Pipeline stage contracts.

Every stage implements StageAdapter.run() and returns a StageResult. Per-candidate
helpers return Skip / Fail / Done so the batch loop can count and log each kind
without inspecting error messages.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Skip:
    """Candidate left untouched (stale status, no evidence, no headroom...)."""
    reason: str


@dataclass(frozen=True)
class Fail:
    """An external call failed for this candidate."""
    error: str


@dataclass(frozen=True)
class Done:
    """Candidate processed; status is the stage-specific outcome tag."""
    status: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StageResult:
    """Uniform output from every pipeline stage."""
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    counts: Dict[str, int] = field(default_factory=dict)
    records: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    aborted: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def bump(self, key, n=1):
        self.counts[key] = self.counts.get(key, 0) + n

    def record(self, outcome, **info):
        """Tally one per-candidate outcome."""
        if isinstance(outcome, Skip):
            self.skipped += 1
            self.records.append({'outcome': 'skipped', 'reason': outcome.reason, **info})
        elif isinstance(outcome, Fail):
            self.failed += 1
            self.errors.append(outcome.error)
            self.records.append({'outcome': 'failed', 'error': outcome.error, **info})
        else:
            self.processed += 1
            self.records.append({'outcome': outcome.status, **outcome.details, **info})

    def summary(self):
        if self.aborted:
            return f"aborted: {self.aborted}"
        tally = dict(self.counts) if self.counts else {
            'processed': self.processed, 'failed': self.failed, 'skipped': self.skipped,
        }
        return ', '.join(f"{v} {k}" for k, v in tally.items())


@dataclass
class PipelineContext:
    """Collaborators handed to every stage: the store, settings and remote clients."""
    store: Any
    settings: Any
    github: Any = None
    chain: Any = None


class StageAdapter(ABC):
    """
    Base class for pipeline stages.

    A stage reads and writes prospects through context.store and talks to the
    outside world only through context.github / context.chain.
    """
    def __init__(self, context: PipelineContext):
        self.context = context

    @property
    def store(self):
        return self.context.store

    @property
    def settings(self):
        return self.context.settings

    @abstractmethod
    def run(self, **options) -> StageResult:
        ...
