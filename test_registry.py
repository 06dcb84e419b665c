#!/usr/bin/env python3
"""
Tests for registry lookups and risk classification
"""

import json
import unittest
from unittest.mock import Mock

from depguard.config import DEFAULT_CONFIG
from depguard.models import RiskLevel
from depguard.registry import (
    NpmRegistryClient, PackageNotFound, RateLimitExceeded, RegistryError, RegistryUnavailable,
)
from depguard.risk import (
    LOW_TRAFFIC_REASON, SUSPICIOUS_NAME_REASON, UNREGISTERED_REASON, assess_risk,
    has_suspicious_name,
)
from fakes import FakeSession

REGISTRY = 'https://registry.npmjs.org'
DOWNLOADS = 'https://api.npmjs.org/downloads/point/last-week'


def registry_doc(name, latest='1.0.0', repository=True):
    doc = {'name': name, 'dist-tags': {'latest': latest}}
    if repository:
        doc['repository'] = {'type': 'git', 'url': f'git+https://github.com/example/{name}.git'}
    return json.dumps(doc)


class TestRiskAssessment(unittest.TestCase):

    def test_popular_package_with_repository_is_low(self):
        level, reasons = assess_risk('react', {'name': 'react', 'repository': 'x'}, 20000000)
        self.assertEqual(level, RiskLevel.LOW)
        self.assertEqual(reasons, [])

    def test_low_downloads_without_repository_is_high(self):
        level, reasons = assess_risk('tiny-helper', {'name': 'tiny-helper'}, 12)
        self.assertEqual(level, RiskLevel.HIGH)
        self.assertEqual(reasons, [LOW_TRAFFIC_REASON])

    def test_low_downloads_with_repository_is_low(self):
        level, _ = assess_risk('tiny-helper', {'name': 'tiny-helper', 'repository': 'x'}, 12)
        self.assertEqual(level, RiskLevel.LOW)

    def test_unknown_downloads_count_as_zero(self):
        level, _ = assess_risk('tiny-helper', {}, None)
        self.assertEqual(level, RiskLevel.HIGH)

    def test_suspicious_name_is_medium(self):
        level, reasons = assess_risk('c0lors', {'name': 'c0lors', 'repository': 'x'}, 5000)
        self.assertEqual(level, RiskLevel.MEDIUM)
        self.assertEqual(reasons, [SUSPICIOUS_NAME_REASON])

    def test_highest_tier_wins(self):
        level, reasons = assess_risk('pkg12345', {'name': 'pkg12345'}, 3)
        self.assertEqual(level, RiskLevel.HIGH)
        self.assertEqual(reasons, [LOW_TRAFFIC_REASON, SUSPICIOUS_NAME_REASON])

    def test_threshold_is_configurable(self):
        config = DEFAULT_CONFIG.with_overrides(min_downloads_suspicious=10)
        level, _ = assess_risk('tiny-helper', {}, 50, config)
        self.assertEqual(level, RiskLevel.LOW)

    def test_suspicious_names(self):
        for name in ['c0lors', 'l0dash', 'event-stream123', '1odash']:
            self.assertTrue(has_suspicious_name(name), name)
        for name in ['react', 'express', 'vue', '@babel/core', 'd3']:
            self.assertFalse(has_suspicious_name(name), name)


class TestFetchInfo(unittest.TestCase):

    def client(self, routes, **kwargs):
        self.session = FakeSession(routes, **kwargs)
        return NpmRegistryClient(DEFAULT_CONFIG, session=self.session)

    def test_status_codes_map_to_errors(self):
        client = self.client({
            f'{REGISTRY}/limited': (429, 'Too Many Requests'),
            f'{REGISTRY}/broken': (503, 'Service Unavailable'),
        })
        with self.assertRaises(PackageNotFound):
            client.fetch_info('missing')
        with self.assertRaises(RateLimitExceeded):
            client.fetch_info('limited')
        with self.assertRaises(RegistryUnavailable) as ctx:
            client.fetch_info('broken')
        self.assertEqual(ctx.exception.status, 503)

    def test_network_failure_is_a_registry_error(self):
        client = self.client({}, timeouts=[f'{REGISTRY}/slow'])
        with self.assertRaises(RegistryError):
            client.fetch_info('slow')

    def test_invalid_json_is_a_registry_error(self):
        client = self.client({f'{REGISTRY}/garbled': '<html>'})
        with self.assertRaises(RegistryError):
            client.fetch_info('garbled')

    def test_scoped_names_are_encoded(self):
        client = self.client({f'{REGISTRY}/@acme%2Fdesign-system': registry_doc('@acme/design-system')})
        info = client.fetch_info('@acme/design-system')
        self.assertEqual(info['name'], '@acme/design-system')


class TestAnalyze(unittest.TestCase):

    def client(self, routes, rate_limiter=None):
        self.session = FakeSession(routes)
        return NpmRegistryClient(DEFAULT_CONFIG, rate_limiter=rate_limiter, session=self.session)

    def test_unregistered_package_is_critical(self):
        client = self.client({})
        finding = client.analyze('internal-tool-x', ['Inline Script'])

        self.assertTrue(finding.is_unregistered)
        self.assertEqual(finding.risk_level, RiskLevel.CRITICAL)
        self.assertEqual(finding.reasons, [UNREGISTERED_REASON])
        self.assertEqual(finding.sources, ['Inline Script'])
        self.assertIsNone(finding.error)
        # No download lookup for a package that does not exist
        self.assertEqual(self.session.urls_requested(), [f'{REGISTRY}/internal-tool-x'])

    def test_registered_package(self):
        client = self.client({
            f'{REGISTRY}/left-pad': registry_doc('left-pad', latest='1.3.0'),
            f'{DOWNLOADS}/left-pad': '{"downloads": 2500000, "package": "left-pad"}',
        })
        finding = client.analyze('left-pad', ['https://example.com/app.js'])

        self.assertFalse(finding.is_unregistered)
        self.assertEqual(finding.version, '1.3.0')
        self.assertEqual(finding.weekly_downloads, 2500000)
        self.assertEqual(finding.risk_level, RiskLevel.LOW)
        self.assertFalse(finding.suspicious)

    def test_low_traffic_package_without_repository(self):
        client = self.client({
            f'{REGISTRY}/tiny-helper': registry_doc('tiny-helper', repository=False),
            f'{DOWNLOADS}/tiny-helper': '{"downloads": 7}',
        })
        finding = client.analyze('tiny-helper', [])
        self.assertEqual(finding.risk_level, RiskLevel.HIGH)
        self.assertEqual(finding.reasons, [LOW_TRAFFIC_REASON])

    def test_missing_download_count_is_zero(self):
        client = self.client({f'{REGISTRY}/tiny-helper': registry_doc('tiny-helper')})
        finding = client.analyze('tiny-helper', [])
        self.assertEqual(finding.weekly_downloads, 0)

    def test_missing_dist_tags(self):
        client = self.client({
            f'{REGISTRY}/bare': '{"name": "bare", "repository": "x"}',
            f'{DOWNLOADS}/bare': '{"downloads": 1000}',
        })
        self.assertEqual(client.analyze('bare', []).version, '?')

    def test_rate_limited_lookup_is_reported_not_raised(self):
        client = self.client({f'{REGISTRY}/react': (429, '')})
        finding = client.analyze('react', ['Inline Script'])

        self.assertEqual(finding.error, 'Rate limit exceeded (429)')
        self.assertFalse(finding.is_unregistered)
        self.assertEqual(finding.risk_level, RiskLevel.LOW)

    def test_server_error_is_reported_not_raised(self):
        client = self.client({f'{REGISTRY}/react': (500, '')})
        self.assertEqual(client.analyze('react', []).error, 'Registry error (500)')

    def test_download_lookup_waits_for_rate_limiter(self):
        limiter = Mock()
        client = self.client({
            f'{REGISTRY}/left-pad': registry_doc('left-pad'),
            f'{DOWNLOADS}/left-pad': '{"downloads": 1000}',
        }, rate_limiter=limiter)

        client.analyze('left-pad', [])

        limiter.wait_for_slot.assert_called_once_with()


if __name__ == '__main__':
    unittest.main()
