"""
Package name extraction

Turns raw import strings, CDN URLs and source-map paths into canonical npm
package names. Every function here is pure: no I/O, same input, same output.
A None result means "not a package" and is never an error.
"""

import re
from typing import Iterator, Optional
from urllib.parse import urlparse

from depguard.config import DEFAULT_CONFIG, ScannerConfig
from depguard.models import ImportReference

PACKAGE_NAME_RE = re.compile(r'^(@[a-z0-9-~][a-z0-9-._~]*\/)?[a-z0-9-~][a-z0-9-._~]*$')

# Import statements recognised in script bodies
IMPORT_PATTERNS = [
    re.compile(r'require\s*\(\s*[\'"]([^\'"]+)[\'"]\s*\)'),
    re.compile(r'import\s+.*?\s+from\s+[\'"]([^\'"]+)[\'"]'),
    re.compile(r'import\s*\(\s*[\'"]([^\'"]+)[\'"]\s*\)'),
    re.compile(r'export\s+.*?\s+from\s+[\'"]([^\'"]+)[\'"]'),
    # Webpack / bundlers
    re.compile(r'__webpack_require__\s*\(\s*[\'"]([^\'"]+)[\'"]\s*\)'),
    # SystemJS
    re.compile(r'System\.import\s*\(\s*[\'"]([^\'"]+)[\'"]\s*\)'),
]

# Dependency arrays: AMD define([...]) and require.ensure([...])
ARRAY_IMPORT_PATTERNS = [
    re.compile(r'define\s*\(\s*(?:[\'"][^\'"]*[\'"]\s*,\s*)?\[([^\]]*)\]'),
    re.compile(r'require\.ensure\s*\(\s*\[([^\]]*)\]'),
]

_ARRAY_ITEM_RE = re.compile(r'[\'"]([^\'"]+)[\'"]')
_DRIVE_PATH_RE = re.compile(r'^[a-z]:[\\/]', re.IGNORECASE)
_ABSOLUTE_WEB_URL_RE = re.compile(r'^(https?:)?//', re.IGNORECASE)
_PROTOCOL_RE = re.compile(r'^(https?://|node:|file:)')
_NODE_MODULES_RE = re.compile(r'^(\.\./)*node_modules/')

CDN_HOSTS = ('unpkg.com', 'jsdelivr.net', 'cdnjs.cloudflare.com')


def strip_query_and_hash(value: str) -> str:
    return value.split('#')[0].split('?')[0]


def is_alias_path(import_path: str, config: ScannerConfig = DEFAULT_CONFIG) -> bool:
    """True for bundler aliases and project paths that can never be registry names"""
    if not import_path:
        return False

    normalized = import_path.strip()
    lower = normalized.lower()

    if normalized.startswith('/') and not normalized.startswith('//'):
        return True
    if _DRIVE_PATH_RE.match(normalized) or normalized.startswith('\\\\'):
        return True

    if any(lower.startswith(prefix) for prefix in config.internal_alias_prefixes):
        return True
    if lower == '~':
        return True

    parts = normalized.split('/')
    if len(parts) > 1 and parts[0].lower() in config.internal_alias_roots:
        return True

    return False


def normalize(pkg_name: Optional[str], config: ScannerConfig = DEFAULT_CONFIG) -> Optional[str]:
    """Strip a version suffix and validate against the npm name grammar"""
    if not pkg_name:
        return None

    normalized = pkg_name
    if normalized.startswith('@'):
        scope, sep, name = normalized.partition('/')
        if not sep or not name:
            return None
        normalized = f"{scope}/{name.split('@')[0]}"
    elif '@' in normalized:
        normalized = normalized.split('@')[0]

    if normalized in config.node_builtins:
        return None

    if not PACKAGE_NAME_RE.match(normalized):
        return None

    return normalized


def _extract_from_cdn(url: str, config: ScannerConfig) -> Optional[str]:
    """Package segment of a known CDN URL; None for other hosts"""
    if url.startswith('//'):
        url = 'https:' + url
    try:
        parsed = urlparse(url)
        hostname = (parsed.hostname or '').lower()
    except ValueError:
        return None

    cdn = next((h for h in CDN_HOSTS if hostname == h or hostname.endswith('.' + h)), None)
    if cdn is None:
        return None

    path_parts = [p for p in parsed.path.split('/') if p]

    if cdn == 'jsdelivr.net' and path_parts[:1] == ['npm']:
        path_parts = path_parts[1:]
    if cdn == 'cdnjs.cloudflare.com' and path_parts[:2] == ['ajax', 'libs']:
        return normalize(path_parts[2], config) if len(path_parts) > 2 else None

    if not path_parts:
        return None

    pkg_part = path_parts[0]
    if pkg_part.startswith('@') and len(path_parts) > 1:
        pkg_part = f"{path_parts[0]}/{path_parts[1]}"

    return normalize(pkg_part, config)


def extract(import_path, config: ScannerConfig = DEFAULT_CONFIG) -> Optional[str]:
    """Map a raw import string or URL to a package name, or None"""
    if not isinstance(import_path, str):
        return None

    cleaned = import_path.strip()
    if not cleaned:
        return None

    cleaned = strip_query_and_hash(cleaned)

    if is_alias_path(cleaned, config):
        return None

    # Absolute web URLs are packages only when served from a known CDN
    if _ABSOLUTE_WEB_URL_RE.match(cleaned):
        return _extract_from_cdn(cleaned, config)

    cleaned = _PROTOCOL_RE.sub('', cleaned)
    cleaned = _NODE_MODULES_RE.sub('', cleaned)

    if cleaned.startswith('.'):
        return None
    if cleaned.startswith('/') and not cleaned.startswith('//'):
        return None
    if is_alias_path(cleaned, config):
        return None

    parts = cleaned.split('/')
    pkg_name = parts[0]
    if cleaned.startswith('@'):
        if len(parts) < 2 or not parts[1]:
            return None
        pkg_name = f"{parts[0]}/{parts[1]}"

    name = normalize(pkg_name, config)
    if name and is_alias_path(name, config):
        return None
    return name


def is_internal_module(package_name: Optional[str], config: ScannerConfig = DEFAULT_CONFIG) -> bool:
    """True when the name is a sub-module of a known host package.

    Matching rules apply whether or not the parent package has been seen:
    the parent may only turn up later in the scan.
    """
    if not package_name:
        return False
    return any(rule.pattern.search(package_name) for rule in config.internal_module_rules)


def find_import_references(content: str, source: str) -> Iterator[ImportReference]:
    """Yield every import-like string literal found in a script body"""
    for pattern in IMPORT_PATTERNS:
        for match in pattern.finditer(content):
            if match.group(1):
                yield ImportReference(match.group(1), source)

    for pattern in ARRAY_IMPORT_PATTERNS:
        for match in pattern.finditer(content):
            for item in _ARRAY_ITEM_RE.findall(match.group(1)):
                yield ImportReference(item, source)
