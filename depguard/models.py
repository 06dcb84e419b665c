"""Data model shared by the scanner, the auditor and the report"""

import threading
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple
from urllib.parse import urlparse


class RiskLevel(str, Enum):
    LOW = 'LOW'
    MEDIUM = 'MEDIUM'
    HIGH = 'HIGH'
    CRITICAL = 'CRITICAL'

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]

    @classmethod
    def highest(cls, levels) -> 'RiskLevel':
        """Return the most severe level, LOW for an empty sequence"""
        return max(levels, key=lambda level: level.rank, default=cls.LOW)


_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2, RiskLevel.CRITICAL: 3}


class AuditPhase(str, Enum):
    IDLE = 'idle'
    SCANNING = 'scanning'
    COMPLETE = 'complete'
    ERROR = 'error'


@dataclass(frozen=True)
class ImportReference:
    """A raw import string or URL and where it was seen"""
    raw: str
    source: str


@dataclass(frozen=True)
class ResourceEntry:
    """One resource-timing record: the fetched URL and what initiated it"""
    name: str
    initiator_type: str = ''


@dataclass(frozen=True)
class PageContext:
    """The audited page: its URL, delivered markup and loaded resources"""
    url: str
    html: str = ''
    resources: Tuple[ResourceEntry, ...] = ()

    @property
    def origin(self) -> str:
        parsed = urlparse(self.url)
        return f"{parsed.scheme}://{parsed.netloc}"


class PackageRecord:
    """Package identifier -> provenance labels, safe to update from worker threads"""

    def __init__(self):
        self._sources: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def add(self, name: str, source: str) -> bool:
        """Record a provenance label; returns True when the name is new"""
        with self._lock:
            is_new = name not in self._sources
            self._sources.setdefault(name, set()).add(source)
            return is_new

    def sources(self, name: str) -> List[str]:
        with self._lock:
            return sorted(self._sources.get(name, ()))

    def names(self) -> List[str]:
        with self._lock:
            return list(self._sources)

    def as_dict(self) -> Dict[str, Set[str]]:
        with self._lock:
            return {name: set(sources) for name, sources in self._sources.items()}

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._sources

    def __len__(self) -> int:
        with self._lock:
            return len(self._sources)


@dataclass
class RiskFinding:
    name: str
    version: Optional[str] = None
    weekly_downloads: Optional[int] = None
    is_unregistered: bool = False
    risk_level: RiskLevel = RiskLevel.LOW
    reasons: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def suspicious(self) -> bool:
        return self.is_unregistered or self.risk_level is not RiskLevel.LOW

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['risk_level'] = self.risk_level.value
        data['suspicious'] = self.suspicious
        return data


@dataclass(frozen=True)
class ExposedFileFinding:
    path: str
    risk: RiskLevel
    status: int
    content_type: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'path': self.path,
            'risk': self.risk.value,
            'status': self.status,
            'content_type': self.content_type,
        }


@dataclass
class AuditState:
    """Lifecycle and results of one audit of one page"""
    url: str
    phase: AuditPhase = AuditPhase.IDLE
    packages: List[RiskFinding] = field(default_factory=list)
    exposed_files: List[ExposedFileFinding] = field(default_factory=list)
    error: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    @property
    def suspicious_packages(self) -> List[RiskFinding]:
        return [p for p in self.packages if p.suspicious]

    @property
    def risk_count(self) -> int:
        """Unregistered packages plus exposed files"""
        unregistered = sum(1 for p in self.packages if p.is_unregistered)
        return unregistered + len(self.exposed_files)

    def mark_started(self):
        self.phase = AuditPhase.SCANNING
        self.started_at = datetime.now(timezone.utc).isoformat()

    def mark_finished(self, error: Optional[str] = None):
        self.error = error
        self.phase = AuditPhase.ERROR if error is not None else AuditPhase.COMPLETE
        self.finished_at = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict:
        return {
            'url': self.url,
            'phase': self.phase.value,
            'started_at': self.started_at,
            'finished_at': self.finished_at,
            'error': self.error,
            'packages': [p.to_dict() for p in self.packages],
            'exposed_files': [f.to_dict() for f in self.exposed_files],
        }
