"""Canned HTTP responses for the test suite"""

import threading
import time

import requests
from requests.structures import CaseInsensitiveDict

from depguard.models import RiskFinding
from depguard.registry import RegistryLookupService


def make_response(url, status=200, body='', headers=None):
    """A real requests.Response with its body already loaded"""
    resp = requests.Response()
    resp.status_code = status
    resp.url = url
    resp.headers = CaseInsensitiveDict(headers or {})
    resp.encoding = 'utf-8'
    resp._content = body.encode('utf-8') if isinstance(body, str) else body
    resp._content_consumed = True
    return resp


class FakeSession(requests.Session):
    """Session that serves routes from a dict instead of the network.

    routes maps URL -> body, or URL -> (status, body) or (status, body, headers).
    Unknown URLs answer 404. URLs in `timeouts` raise requests.Timeout.
    """

    def __init__(self, routes=None, timeouts=(), delay=0.0):
        super().__init__()
        self.routes = dict(routes or {})
        self.timeouts = set(timeouts)
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def request(self, method, url, **kwargs):
        with self._lock:
            self.calls.append((method, url, kwargs))
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if url in self.timeouts:
                raise requests.Timeout(f"timed out: {url}")
            route = self.routes.get(url)
            if route is None:
                return make_response(url, 404, 'Not Found')
            if isinstance(route, str):
                route = (200, route)
            status, body = route[0], route[1]
            headers = route[2] if len(route) > 2 else {}
            return make_response(url, status, '' if method == 'HEAD' else body, headers)
        finally:
            with self._lock:
                self.in_flight -= 1

    def urls_requested(self, method=None):
        return [url for m, url, _ in self.calls if method is None or m == method]


class FakeRegistry(RegistryLookupService):
    """RegistryLookupService double returning preset findings"""

    def __init__(self, findings=None):
        self.findings = findings or {}
        self.calls = []

    def analyze(self, name, sources):
        self.calls.append((name, list(sources)))
        template = self.findings.get(name)
        if template is None:
            return RiskFinding(name=name, version='1.0.0', weekly_downloads=50000,
                               sources=list(sources))
        return template
