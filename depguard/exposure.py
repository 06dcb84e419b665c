"""
Exposed file validation

Servers that answer every path with their single-page-app shell ("soft 404")
make status codes useless, so a probed file only counts as exposed when its
first bytes look like the file it claims to be.
"""

from typing import Optional

from depguard.config import DEFAULT_CONFIG, ScannerConfig
from depguard.models import RiskLevel

DOCTYPE_MARKER = '<!DOCTYPE html>'


def filename_for(path: str) -> str:
    """Last path segment; a directory probe like /node_modules/ maps to 'node_modules'"""
    return path.split('/')[-1] or path.rstrip('/').split('/')[-1] or 'node_modules'


def is_soft_404(path: str, text: str, baseline: str) -> bool:
    """Body is the homepage (or a prefix of it) or an HTML document"""
    if path.endswith('.html'):
        return False
    if not baseline:
        return False
    return baseline.startswith(text) or DOCTYPE_MARKER in text


def is_false_positive(path: str, text: str, content_type: Optional[str], baseline: str,
                      config: ScannerConfig = DEFAULT_CONFIG) -> bool:
    if is_soft_404(path, text, baseline):
        return True

    pattern = config.config_patterns.get(filename_for(path))
    if pattern is not None:
        return not pattern.search(text)

    content_type = (content_type or '').lower()
    if 'text/html' in content_type:
        return True

    stripped = text.strip()
    if stripped.startswith('<!DOCTYPE') or stripped.startswith('<html'):
        return True

    looks_like_html = DOCTYPE_MARKER in text
    expects_data = path.endswith('.json') or path.endswith('rc')
    return expects_data and looks_like_html


def classify_risk(path: str) -> RiskLevel:
    if '.env' in path or 'npmrc' in path:
        return RiskLevel.HIGH
    if 'lock' in path or path == '/package.json':
        return RiskLevel.MEDIUM
    return RiskLevel.LOW
