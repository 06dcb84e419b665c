"""Risk classification of registry metadata"""

import re
from typing import Dict, List, Optional, Tuple

from depguard.config import DEFAULT_CONFIG, ScannerConfig
from depguard.models import RiskLevel

# Long digit runs and i/1/l next to o/0, as in "c0lors" or "l0dash"
SUSPICIOUS_NAME_RE = re.compile(r'[0-9]{3,}|[il1][o0]')

UNREGISTERED_REASON = 'Package not found on public registry - potential dependency confusion'
LOW_TRAFFIC_REASON = 'Low downloads + no repository'
SUSPICIOUS_NAME_REASON = 'Suspicious name pattern'


def has_suspicious_name(name: str) -> bool:
    return bool(SUSPICIOUS_NAME_RE.search(name))


def assess_risk(name: str, info: Dict, downloads: Optional[int],
                config: ScannerConfig = DEFAULT_CONFIG) -> Tuple[RiskLevel, List[str]]:
    """Risk level and ordered reasons for a package that exists on the registry"""
    levels = []
    reasons = []

    if (downloads or 0) < config.min_downloads_suspicious and not info.get('repository'):
        levels.append(RiskLevel.HIGH)
        reasons.append(LOW_TRAFFIC_REASON)

    if has_suspicious_name(info.get('name') or name):
        levels.append(RiskLevel.MEDIUM)
        reasons.append(SUSPICIOUS_NAME_REASON)

    return RiskLevel.highest(levels), reasons
