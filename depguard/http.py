"""
HTTP access for the scanner

Every outbound request goes through Fetcher, which applies the configured
timeout and turns network failures into None: a failed probe is the absence
of evidence, never an audit error.

Unless validation is switched off, Fetcher also refuses any URL whose host is
not a public address, and follows redirects itself so that every hop is
checked the same way.
"""

import ipaddress
import logging
import socket
import threading
from typing import Dict, Mapping, Optional, Tuple
from urllib.parse import urljoin, urlparse

import requests

from depguard.config import DEFAULT_CONFIG, ScannerConfig

logger = logging.getLogger(__name__)

LOCALHOST_NAMES = ('localhost', 'localhost.localdomain')


class TargetValidationError(ValueError):
    """The audit target is not a public http(s) site"""


def _blocked_label(ip) -> Optional[str]:
    if ip.is_private:
        return "private"
    if ip.is_loopback:
        return "loopback"
    if ip.is_link_local:
        return "link-local"
    if ip.is_multicast:
        return "multicast"
    if ip.is_reserved or ip.is_unspecified:
        return "reserved"
    return None


def _resolve(hostname: str):
    """Every address a hostname resolves to; IP literals resolve to themselves"""
    try:
        return [ipaddress.ip_address(hostname)]
    except ValueError:
        pass
    infos = socket.getaddrinfo(hostname, None)
    return [ipaddress.ip_address(info[4][0].split('%')[0]) for info in infos]


def check_host(hostname: Optional[str]) -> Optional[str]:
    """Reason a host must not be contacted, or None when it is public"""
    if not hostname:
        return "URL has no hostname"

    if hostname.lower() in LOCALHOST_NAMES:
        return "Refusing localhost (security restriction)"

    try:
        logger.debug(f"Resolving hostname: {hostname}")
        addresses = _resolve(hostname)
    except socket.gaierror:
        return f"Site not found: could not resolve '{hostname}' (DNS lookup failed)"
    except socket.timeout:
        return f"DNS lookup timeout for {hostname}"

    for ip in addresses:
        label = _blocked_label(ip)
        if label:
            return f"Refusing {label} IP address {ip} for {hostname} (security restriction)"
    return None


def validate_target(url: str) -> Tuple[bool, str]:
    """Check that a URL points at a public http(s) host.
    Returns: (is_valid, error_message)
    """
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError as e:
        return False, f"Invalid URL: {e}"

    if parsed.scheme not in ('http', 'https'):
        return False, f"Unsupported scheme '{parsed.scheme}'"

    reason = check_host(hostname)
    if reason:
        return False, reason
    return True, "OK"


class Fetcher:
    """Thin wrapper over a requests.Session with scanner defaults"""

    def __init__(self, config: ScannerConfig = DEFAULT_CONFIG,
                 session: Optional[requests.Session] = None,
                 validate: bool = True):
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': config.user_agent})
        self.session.max_redirects = config.max_redirects
        self.validate = validate
        self._verdicts: Dict[Tuple[str, str], Tuple[bool, str]] = {}
        self._verdict_lock = threading.Lock()

    def resolve(self, base_url: str, path: str) -> str:
        return urljoin(base_url, path)

    def check_url(self, url: str) -> Tuple[bool, str]:
        """validate_target, remembered per scheme and host"""
        if not self.validate:
            return True, "OK"
        try:
            parsed = urlparse(url)
            key = (parsed.scheme, (parsed.hostname or '').lower())
        except ValueError as e:
            return False, f"Invalid URL: {e}"

        with self._verdict_lock:
            verdict = self._verdicts.get(key)
        if verdict is None:
            verdict = validate_target(url)
            with self._verdict_lock:
                self._verdicts[key] = verdict
        return verdict

    def _redirect_allowed(self, source: str, target: str) -> bool:
        if not self.validate:
            return True
        source_host = urlparse(source).netloc
        target_host = urlparse(target).netloc
        if source_host != target_host:
            logger.warning(f"Blocking cross-domain redirect from {source_host} to {target_host}")
            return False
        is_valid, error_msg = self.check_url(target)
        if not is_valid:
            logger.warning(f"Blocking redirect to unsafe URL {target}: {error_msg}")
            return False
        return True

    def request(self, method: str, url: str, **kwargs) -> Optional[requests.Response]:
        """Issue a request; None on timeout, network failure or a refused URL"""
        kwargs.setdefault('timeout', self.config.request_timeout)
        follow = kwargs.pop('allow_redirects', True)

        is_valid, error_msg = self.check_url(url)
        if not is_valid:
            logger.warning(f"URL validation failed for {url}: {error_msg}")
            return None

        try:
            resp = self.session.request(method, url, allow_redirects=False, **kwargs)
            for _ in range(self.config.max_redirects):
                if not (follow and resp.is_redirect):
                    return resp
                target = urljoin(url, resp.headers['location'])
                resp.close()
                if not self._redirect_allowed(url, target):
                    return None
                url = target
                resp = self.session.request(method, url, allow_redirects=False, **kwargs)
        except requests.RequestException as e:
            logger.debug(f"Request failed for {url}: {e}")
            return None

        if follow and resp.is_redirect:
            logger.debug(f"Too many redirects for {url}")
            resp.close()
            return None
        return resp

    def get(self, url: str, **kwargs) -> Optional[requests.Response]:
        return self.request('GET', url, **kwargs)

    def get_text(self, url: str, **kwargs) -> Optional[str]:
        """Body of a 2xx response, or None"""
        resp = self.get(url, **kwargs)
        if resp is None or not resp.ok:
            return None
        try:
            return resp.text
        except requests.RequestException as e:
            logger.debug(f"Could not read body of {url}: {e}")
            return None

    def get_json(self, url: str, **kwargs):
        """Decoded JSON of a 2xx response, or None"""
        resp = self.get(url, **kwargs)
        if resp is None or not resp.ok:
            return None
        try:
            return resp.json()
        except ValueError as e:
            logger.debug(f"Invalid JSON from {url}: {e}")
            return None

    def head_ok(self, url: str) -> bool:
        """Cheap existence probe, no body"""
        resp = self.request('HEAD', url, allow_redirects=True,
                            headers={'Cache-Control': 'no-cache'})
        return resp is not None and resp.ok

    def get_prefix(self, url: str, max_bytes: Optional[int] = None) -> Optional[Tuple[int, str, Mapping[str, str]]]:
        """Fetch at most the first max_bytes+1 bytes of a resource.

        Sends a Range header and streams the body so servers that ignore the
        range still only cost one small read. Returns (status, text, headers)
        for 2xx responses, None otherwise.
        """
        if max_bytes is None:
            max_bytes = self.config.probe_range_bytes
        resp = self.get(url, headers={'Range': f'bytes=0-{max_bytes}'}, stream=True)
        if resp is None:
            return None
        try:
            if not resp.ok:
                return None
            body = b''
            for chunk in resp.iter_content(chunk_size=max_bytes + 1):
                body += chunk
                if len(body) > max_bytes:
                    break
            text = body[:max_bytes + 1].decode(resp.encoding or 'utf-8', errors='replace')
            return resp.status_code, text, resp.headers
        except (requests.RequestException, LookupError) as e:
            logger.debug(f"Could not read prefix of {url}: {e}")
            return None
        finally:
            resp.close()
