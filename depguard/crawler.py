"""
Asset discovery

Collects the URLs of scripts, stylesheets and manifests a page delivers,
from its markup, its resource-timing records and a fixed list of common
static-asset directories. Package extraction happens later, in the scanner.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterable, List, Optional, Set
from urllib.parse import urljoin, urlparse

from depguard.config import DEFAULT_CONFIG, ScannerConfig
from depguard.http import Fetcher
from depguard.models import PageContext, ResourceEntry

logger = logging.getLogger(__name__)

HTML_URL_PATTERNS = [
    re.compile(r'<script[^>]+src=["\']([^"\']+)["\']', re.IGNORECASE),
    re.compile(r'<link[^>]+href=["\']([^"\']+)["\'][^>]*>', re.IGNORECASE),
    re.compile(r'["\']([^"\']*(?:manifest|asset-manifest)\.json)["\']', re.IGNORECASE),
]

DIRECTORY_LINK_RE = re.compile(r'href=["\']([^"\']+\.(?:js|json))["\']')

SCRIPT_EXTENSION_RE = re.compile(r'\.(js|mjs|jsx|ts|tsx)$')


def normalize_url(url: str, base_url: str) -> Optional[str]:
    """Absolute http(s) URL for a reference, None when it cannot be resolved"""
    try:
        absolute = urljoin(base_url, url.strip())
        parsed = urlparse(absolute)
    except ValueError:
        return None
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        return None
    return absolute


def discover_urls_from_html(html: str, base_url: str) -> List[str]:
    """Script, link and manifest URLs referenced by a page's markup"""
    urls = []
    seen = set()
    for pattern in HTML_URL_PATTERNS:
        for match in pattern.finditer(html):
            url = normalize_url(match.group(1), base_url)
            if url and url not in seen:
                seen.add(url)
                urls.append(url)
    return urls


def discover_resource_urls(resources: Iterable[ResourceEntry]) -> List[str]:
    """Resource-timing entries that were loaded by or as scripts"""
    urls = []
    for entry in resources:
        path = urlparse(entry.name).path
        if entry.initiator_type == 'script' or SCRIPT_EXTENSION_RE.search(path):
            urls.append(entry.name)
    return urls


def _probe_directory(directory: str, base_url: str, fetcher: Fetcher) -> List[str]:
    dir_url = urljoin(base_url, directory)
    text = fetcher.get_text(dir_url)
    if not text:
        return []

    urls = []
    for href in DIRECTORY_LINK_RE.findall(text):
        url = normalize_url(href, dir_url)
        if url:
            urls.append(url)
    return urls


def probe_common_dirs(base_url: str, fetcher: Fetcher,
                      config: ScannerConfig = DEFAULT_CONFIG) -> List[str]:
    """Probe conventional asset directories in parallel for listed .js/.json files"""
    found = []
    with ThreadPoolExecutor(max_workers=config.max_concurrent_requests) as executor:
        future_to_dir = {
            executor.submit(_probe_directory, directory, base_url, fetcher): directory
            for directory in config.common_dirs
        }

        for future in as_completed(future_to_dir):
            directory = future_to_dir[future]
            try:
                urls = future.result()
            except Exception as e:
                logger.debug(f"Directory probe failed for {directory}: {e}")
                continue
            if urls:
                logger.debug(f"Found {len(urls)} files under {directory}")
                found.extend(urls)
    return found


def discover_all_urls(page: PageContext, fetcher: Fetcher,
                      config: ScannerConfig = DEFAULT_CONFIG) -> List[str]:
    """Deduplicated absolute URLs of every asset worth scanning"""
    logger.debug("Starting URL discovery...")
    discovered: Set[str] = set()
    ordered = []

    def add(urls):
        for url in urls:
            absolute = normalize_url(url, page.url)
            if absolute and absolute not in discovered:
                discovered.add(absolute)
                ordered.append(absolute)

    add(discover_urls_from_html(page.html, page.url))
    add(discover_resource_urls(page.resources))
    add(probe_common_dirs(page.origin, fetcher, config))

    logger.info(f"Discovered {len(ordered)} URLs")
    return ordered
