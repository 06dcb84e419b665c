"""
Audit orchestration

An Auditor owns exactly one AuditState for one page and drives it through
idle -> scanning -> complete | error. Per-asset failures never reach this
level; only an exception escaping the pipeline marks the audit as failed.
"""

import logging
import threading
from typing import Optional

from depguard.config import DEFAULT_CONFIG, ScannerConfig
from depguard.crawler import discover_all_urls
from depguard.http import Fetcher, TargetValidationError, validate_target
from depguard.models import AuditPhase, AuditState, PageContext
from depguard.ratelimit import RateLimiter
from depguard.registry import NpmRegistryClient, RegistryLookupService
from depguard.scanner import AnalysisCache, PackageScanner

logger = logging.getLogger(__name__)


def load_page(url: str, fetcher: Fetcher, resources=()) -> PageContext:
    """Fetch the audited page's markup; an unreachable page has empty markup"""
    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url
    resp = fetcher.get(url)
    html = ''
    if resp is not None and resp.ok:
        html = resp.text
        url = resp.url or url
    else:
        logger.warning(f"Could not load {url}; continuing with probes only")
    return PageContext(url=url, html=html, resources=tuple(resources))


class Auditor:
    """Runs the discovery, exposure and registry pipeline for one page"""

    def __init__(self, page: PageContext,
                 config: ScannerConfig = DEFAULT_CONFIG,
                 fetcher: Optional[Fetcher] = None,
                 registry: Optional[RegistryLookupService] = None,
                 rate_limiter: Optional[RateLimiter] = None,
                 cache: Optional[AnalysisCache] = None,
                 probe_exposed_files: bool = True):
        self.page = page
        self.config = config
        self.fetcher = fetcher or Fetcher(config)
        # One limiter for every registry call, whichever step makes it
        self.rate_limiter = rate_limiter or RateLimiter(
            config.api_rate_limit, config.api_window, config.rate_limit_buffer)
        self.registry = registry or NpmRegistryClient(config, rate_limiter=self.rate_limiter)
        self.cache = cache or AnalysisCache(config.cache_ttl)
        self.probe_exposed_files = probe_exposed_files
        self.scanner = None
        self._state = AuditState(url=page.url)
        self._lock = threading.Lock()

    @classmethod
    def for_url(cls, url: str, config: ScannerConfig = DEFAULT_CONFIG,
                validate: bool = True, resources=(), **kwargs) -> 'Auditor':
        """Load a live page and build an auditor for it"""
        if not url.startswith(('http://', 'https://')):
            url = 'https://' + url
        if validate:
            is_valid, error_msg = validate_target(url)
            if not is_valid:
                raise TargetValidationError(error_msg)
        fetcher = kwargs.pop('fetcher', None) or Fetcher(config, validate=validate)
        page = load_page(url, fetcher, resources)
        return cls(page, config=config, fetcher=fetcher, **kwargs)

    def status(self) -> AuditState:
        return self._state

    def request_audit(self, force: bool = False) -> AuditState:
        """Start an audit unless one is running or already finished.

        force=True discards the current state and audits again.
        """
        with self._lock:
            busy = self._state.phase in (AuditPhase.SCANNING, AuditPhase.COMPLETE)
            if busy and not force:
                return self._state
            state = self._state = AuditState(url=self.page.url)
            state.mark_started()

        logger.info(f"Auditing {self.page.url}...")
        try:
            self._run(state)
        except Exception as e:
            logger.error(f"Audit of {self.page.url} failed: {e}")
            state.mark_finished(error=str(e))
        else:
            state.mark_finished()
            logger.info(f"Audit of {self.page.url} complete: "
                        f"{len(state.packages)} packages, {len(state.exposed_files)} exposed files")
        return state

    def _run(self, state: AuditState):
        scanner = self.scanner = PackageScanner(
            self.page, self.fetcher, self.registry, self.config,
            rate_limiter=self.rate_limiter, cache=self.cache)

        # 1. Inline scripts
        scanner.scan_page_source()

        # 2. Discovered assets and their source maps
        urls = discover_all_urls(self.page, self.fetcher, self.config)
        scanner.scan_all_discovered_files(urls)

        # 3. Exposed configuration files
        if self.probe_exposed_files:
            state.exposed_files = scanner.check_exposed_files()

        # 4. Registry assessment
        state.packages = scanner.analyze_packages()


def audit_url(url: str, config: ScannerConfig = DEFAULT_CONFIG, validate: bool = True,
              resources=(), **kwargs) -> AuditState:
    """Convenience wrapper: audit one live URL and return the final state"""
    return Auditor.for_url(url, config, validate=validate, resources=resources,
                           **kwargs).request_audit()
