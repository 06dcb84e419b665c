"""
Registry lookups

RegistryLookupService is the boundary between the scanner and whatever
context is allowed to reach the npm registry. NpmRegistryClient talks to the
registry directly over HTTP.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from urllib.parse import quote

import requests

from depguard.config import DEFAULT_CONFIG, ScannerConfig
from depguard.models import RiskFinding, RiskLevel
from depguard.ratelimit import RateLimiter
from depguard.risk import UNREGISTERED_REASON, assess_risk

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """A registry lookup that produced no usable answer"""


class RateLimitExceeded(RegistryError):
    def __init__(self):
        super().__init__('Rate limit exceeded (429)')


class RegistryUnavailable(RegistryError):
    def __init__(self, status):
        self.status = status
        super().__init__(f'Registry error ({status})')


class PackageNotFound(RegistryError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f'{name} is not on the registry')


class RegistryLookupService(ABC):
    """Resolves one package name into a RiskFinding"""

    @abstractmethod
    def analyze(self, name: str, sources: List[str]) -> RiskFinding:
        """Look the package up and classify it. Never raises for registry failures."""


def _encode_name(name: str) -> str:
    # Scoped names keep the leading '@' but escape the slash
    return quote(name, safe='@')


class NpmRegistryClient(RegistryLookupService):
    """Direct HTTP access to the public npm registry and downloads API"""

    def __init__(self, config: ScannerConfig = DEFAULT_CONFIG,
                 rate_limiter: Optional[RateLimiter] = None,
                 session: Optional[requests.Session] = None):
        self.config = config
        self.rate_limiter = rate_limiter
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': config.user_agent})

    def fetch_info(self, name: str) -> Dict:
        """Registry document for a package; raises RegistryError subclasses"""
        url = f"{self.config.registry_url}/{_encode_name(name)}"
        try:
            resp = self.session.get(url, timeout=self.config.request_timeout)
        except requests.RequestException as e:
            raise RegistryError(str(e)) from e

        if resp.status_code == 404:
            raise PackageNotFound(name)
        if resp.status_code == 429:
            raise RateLimitExceeded()
        if not resp.ok:
            raise RegistryUnavailable(resp.status_code)

        try:
            return resp.json()
        except ValueError as e:
            raise RegistryError(f'Invalid registry response: {e}') from e

    def fetch_downloads(self, name: str) -> int:
        """Last-week download count; 0 when unavailable"""
        if self.rate_limiter is not None:
            self.rate_limiter.wait_for_slot()
        url = f"{self.config.downloads_url}/{_encode_name(name)}"
        try:
            resp = self.session.get(url, timeout=self.config.request_timeout)
            if resp.ok:
                return int(resp.json().get('downloads') or 0)
        except (requests.RequestException, ValueError, AttributeError) as e:
            logger.debug(f"Download count unavailable for {name}: {e}")
        return 0

    def analyze(self, name: str, sources: List[str]) -> RiskFinding:
        try:
            info = self.fetch_info(name)
        except PackageNotFound:
            logger.warning(f"{name} not found on registry - potential dependency confusion")
            return RiskFinding(
                name=name,
                is_unregistered=True,
                risk_level=RiskLevel.CRITICAL,
                reasons=[UNREGISTERED_REASON],
                sources=list(sources),
            )
        except RegistryError as e:
            logger.warning(f"Registry lookup failed for {name}: {e}")
            return RiskFinding(name=name, sources=list(sources), error=str(e))

        downloads = self.fetch_downloads(name)
        level, reasons = assess_risk(name, info, downloads, self.config)

        return RiskFinding(
            name=name,
            version=(info.get('dist-tags') or {}).get('latest', '?'),
            weekly_downloads=downloads,
            risk_level=level,
            reasons=reasons,
            sources=list(sources),
        )
