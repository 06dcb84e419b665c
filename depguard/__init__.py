"""
depguard - npm dependency confusion auditor for live web applications

Discovers the npm packages a site delivers, checks them against the public
registry and probes for exposed configuration and secret files.
"""

__version__ = '1.0.0'

from depguard.audit import Auditor, audit_url
from depguard.config import DEFAULT_CONFIG, ScannerConfig
from depguard.extractor import extract, normalize
from depguard.models import AuditPhase, AuditState, ExposedFileFinding, RiskFinding, RiskLevel
from depguard.registry import NpmRegistryClient, RegistryLookupService

__all__ = [
    'Auditor', 'audit_url', 'DEFAULT_CONFIG', 'ScannerConfig', 'extract', 'normalize',
    'AuditPhase', 'AuditState', 'ExposedFileFinding', 'RiskFinding', 'RiskLevel',
    'NpmRegistryClient', 'RegistryLookupService',
]
