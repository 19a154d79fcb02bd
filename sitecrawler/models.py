from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from sitecrawler.scope import CrawlTarget


class PageStatus(Enum):
    SUCCESS = "SUCCESS"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class TerminationReason(Enum):
    COMPLETED = "COMPLETED"    # frontier drained, nothing in flight
    MAX_PAGES = "MAX_PAGES"
    MAX_TIME = "MAX_TIME"
    CANCELLED = "CANCELLED"

    @property
    def truncated(self) -> bool:
        return self is not TerminationReason.COMPLETED


@dataclass(frozen=True)
class PageResult:
    """
    Outcome of one dispatched CrawlTarget.
    INVARIANT: produced exactly once per dispatched target and never mutated.
    """
    target: CrawlTarget
    status: PageStatus
    links: Tuple[CrawlTarget, ...] = ()
    reason: Optional[str] = None
    http_status: Optional[int] = None
    attempts: int = 0
    discovered_from: Optional[str] = None
    elapsed_ms: int = 0
    final_url: Optional[str] = None    # set when redirects were followed in place

    @property
    def url(self) -> str:
        return self.target.url

    @classmethod
    def success(cls, target, links, **kwargs) -> "PageResult":
        return cls(target, PageStatus.SUCCESS, links=tuple(links), **kwargs)

    @classmethod
    def skipped(cls, target, reason, **kwargs) -> "PageResult":
        return cls(target, PageStatus.SKIPPED, reason=reason, **kwargs)

    @classmethod
    def failed(cls, target, reason, **kwargs) -> "PageResult":
        return cls(target, PageStatus.FAILED, reason=reason, **kwargs)


@dataclass
class CrawlReport:
    """What crawl() hands back: every PageResult in completion order plus why it stopped."""
    seed: CrawlTarget
    pages: List[PageResult] = field(default_factory=list)
    reason: TerminationReason = TerminationReason.COMPLETED
    elapsed: float = 0.0
    stats: Dict[str, int] = field(default_factory=dict)

    EXIT_COMPLETED = 0
    EXIT_STARTUP_ERROR = 1
    EXIT_TRUNCATED = 3

    @property
    def exit_code(self) -> int:
        return self.EXIT_TRUNCATED if self.reason.truncated else self.EXIT_COMPLETED

    def by_status(self, status: PageStatus) -> List[PageResult]:
        return [p for p in self.pages if p.status is status]
