"""
Package scanner

Owns the PackageRecord for one audit: scans inline scripts, discovered assets
and their source maps, probes for exposed configuration files and resolves
every recorded package through the registry service.
"""

import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from depguard import exposure
from depguard.config import DEFAULT_CONFIG, ScannerConfig
from depguard.extractor import extract, find_import_references, is_internal_module
from depguard.http import Fetcher
from depguard.models import ExposedFileFinding, PackageRecord, PageContext, RiskFinding
from depguard.ratelimit import RateLimiter
from depguard.registry import RegistryLookupService

logger = logging.getLogger(__name__)

INLINE_SOURCE = 'Inline Script'
PACKAGE_JSON_SOURCE = '/package.json'

SCRIPT_TAG_RE = re.compile(r'<script\b([^>]*)>(.*?)</script\s*>', re.IGNORECASE | re.DOTALL)
SCRIPT_TYPE_RE = re.compile(r'(?:^|\s)type\s*=\s*["\']?([^"\'\s>]+)', re.IGNORECASE)
SCRIPT_SRC_RE = re.compile(r'(?:^|\s)src\s*=', re.IGNORECASE)
SOURCE_MAP_RE = re.compile(r'//[#@]\s*sourceMappingURL=(.+\.map)')

JS_SCRIPT_TYPES = (
    '', 'text/javascript', 'application/javascript', 'module',
    'text/ecmascript', 'application/ecmascript'
)


def inline_scripts(html: str) -> List[str]:
    """Bodies of inline JavaScript <script> elements"""
    bodies = []
    for attrs, body in SCRIPT_TAG_RE.findall(html):
        if SCRIPT_SRC_RE.search(attrs):
            continue
        type_match = SCRIPT_TYPE_RE.search(attrs)
        script_type = type_match.group(1).strip().lower() if type_match else ''
        if script_type not in JS_SCRIPT_TYPES:
            continue
        if body.strip():
            bodies.append(body)
    return bodies


class AnalysisCache:
    """Time-bounded cache of registry results keyed by package name"""

    def __init__(self, ttl: float, clock=time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, RiskFinding]] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> Optional[RiskFinding]:
        with self._lock:
            entry = self._entries.get(name)
        if entry is None:
            return None
        timestamp, finding = entry
        if self._clock() - timestamp >= self.ttl:
            return None
        return finding

    def set(self, name: str, finding: RiskFinding):
        with self._lock:
            self._entries[name] = (self._clock(), finding)


class PackageScanner:
    """Collects package references for one audited page"""

    def __init__(self, page: PageContext, fetcher: Fetcher,
                 registry: RegistryLookupService,
                 config: ScannerConfig = DEFAULT_CONFIG,
                 rate_limiter: Optional[RateLimiter] = None,
                 cache: Optional[AnalysisCache] = None):
        self.page = page
        self.fetcher = fetcher
        self.registry = registry
        self.config = config
        self.rate_limiter = rate_limiter or RateLimiter(
            config.api_rate_limit, config.api_window, config.rate_limit_buffer)
        self.cache = cache or AnalysisCache(config.cache_ttl)
        self.packages = PackageRecord()
        self.scanned_files = 0
        self.total_files = 0
        self._progress_lock = threading.Lock()

    def add_package(self, package_name: Optional[str], source: str):
        if not package_name:
            return

        if is_internal_module(package_name, self.config):
            logger.debug(f"Skipping internal module: {package_name}")
            return

        if self.packages.add(package_name, source):
            logger.debug(f"Found package {package_name} in {source}")

    def scan_content(self, content: str, source: str):
        """Record every package imported by a script body"""
        for ref in find_import_references(content, source):
            self.add_package(extract(ref.raw, self.config), ref.source)

    def scan_page_source(self):
        for body in inline_scripts(self.page.html):
            self.scan_content(body, INLINE_SOURCE)

    def scan_urls(self, urls: List[str]):
        """Record packages named directly by CDN-style asset URLs"""
        for url in urls:
            package_name = extract(url, self.config)
            if package_name:
                self.add_package(package_name, f"CDN/URL: {url}")

    def scan_all_discovered_files(self, urls: List[str]):
        self.total_files = len(urls)
        self.scanned_files = 0

        self.scan_urls(urls)

        chunk_size = self.config.chunk_size
        with ThreadPoolExecutor(max_workers=chunk_size) as executor:
            for i in range(0, len(urls), chunk_size):
                chunk = urls[i:i + chunk_size]
                futures = [executor.submit(self.scan_js_file, url) for url in chunk]
                for future in as_completed(futures):
                    try:
                        future.result()
                    except Exception as e:
                        logger.debug(f"Asset scan failed: {e}")

        logger.info(f"Scanned {self.scanned_files}/{self.total_files} files")

    def scan_js_file(self, url: str):
        try:
            content = self.fetcher.get_text(url)
            if content is None:
                return
            self.scan_content(content, url)

            map_match = SOURCE_MAP_RE.search(content)
            if map_match:
                map_url = self.fetcher.resolve(url, map_match.group(1).strip())
                self.scan_source_map(map_url)
        finally:
            with self._progress_lock:
                self.scanned_files += 1

    def scan_source_map(self, url: str):
        source_map = self.fetcher.get_json(url)
        if not isinstance(source_map, dict):
            return
        sources = source_map.get('sources') or []
        for source_path in sources:
            self.add_package(extract(source_path, self.config), f"Source Map: {url}")

    def _fetch_baseline(self) -> str:
        """Homepage body, used to recognise single-page-app fallbacks"""
        return self.fetcher.get_text(self.fetcher.resolve(self.page.origin, '/')) or ''

    def check_file(self, path: str, baseline: str) -> Optional[ExposedFileFinding]:
        url = self.fetcher.resolve(self.page.origin, path)
        if not self.fetcher.head_ok(url):
            return None

        probe = self.fetcher.get_prefix(url, self.config.probe_range_bytes)
        if probe is None:
            return None
        status, text, headers = probe
        content_type = headers.get('content-type')

        if exposure.is_false_positive(path, text, content_type, baseline, self.config):
            logger.debug(f"Discarding false positive for {path}")
            return None

        finding = ExposedFileFinding(
            path=path,
            risk=exposure.classify_risk(path),
            status=status,
            content_type=content_type,
        )
        logger.warning(f"Exposed file: {path} ({finding.risk.value})")

        if path == PACKAGE_JSON_SOURCE:
            self.parse_package_json()
        return finding

    def check_exposed_files(self) -> List[ExposedFileFinding]:
        logger.info("Checking for exposed files...")
        baseline = self._fetch_baseline()
        exposed = []

        with ThreadPoolExecutor(max_workers=self.config.max_concurrent_scans) as executor:
            future_to_path = {
                executor.submit(self.check_file, path, baseline): path
                for path in self.config.config_files
            }

            for future in as_completed(future_to_path):
                path = future_to_path[future]
                try:
                    finding = future.result()
                except Exception as e:
                    logger.debug(f"Exposed file check failed for {path}: {e}")
                    continue
                if finding:
                    exposed.append(finding)

        order = {path: i for i, path in enumerate(self.config.config_files)}
        exposed.sort(key=lambda f: order.get(f.path, len(order)))
        return exposed

    def parse_package_json(self):
        """Record the declared dependencies of an exposed package.json"""
        data = self.fetcher.get_json(self.fetcher.resolve(self.page.origin, PACKAGE_JSON_SOURCE))
        if not isinstance(data, dict):
            return
        for key in ('dependencies', 'devDependencies'):
            deps = data.get(key)
            if isinstance(deps, dict):
                for dep in deps:
                    self.add_package(extract(dep, self.config), PACKAGE_JSON_SOURCE)

    def analyze_package(self, name: str) -> RiskFinding:
        cached = self.cache.get(name)
        if cached is None:
            self.rate_limiter.wait_for_slot()
            try:
                cached = self.registry.analyze(name, self.packages.sources(name))
            except Exception as e:
                logger.error(f"Analysis failed for {name}: {e}")
                return RiskFinding(name=name, sources=self.packages.sources(name), error=str(e))
            if cached.error is None:
                self.cache.set(name, cached)

        return replace(cached, reasons=list(cached.reasons), sources=self.packages.sources(name))

    def analyze_packages(self) -> List[RiskFinding]:
        names = self.packages.names()
        logger.info(f"Analyzing {len(names)} packages...")
        return [self.analyze_package(name) for name in names]
