"""Plain-text report of an audit"""

from typing import Dict, List

from depguard.models import AuditPhase, AuditState, RiskFinding, RiskLevel


def categorize(packages: List[RiskFinding]) -> Dict[str, List[RiskFinding]]:
    """Split findings into critical / high / medium buckets"""
    buckets = {'critical': [], 'high': [], 'medium': []}
    for pkg in packages:
        if pkg.is_unregistered or pkg.risk_level is RiskLevel.CRITICAL:
            buckets['critical'].append(pkg)
        elif pkg.risk_level is RiskLevel.HIGH:
            buckets['high'].append(pkg)
        elif pkg.risk_level is RiskLevel.MEDIUM:
            buckets['medium'].append(pkg)
    return buckets


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def generate_report(state: AuditState, suspicious_only: bool = False) -> str:
    """Generate a detailed report from an audit state"""
    report = []
    report.append("=" * 70)
    report.append("NPM DEPENDENCY CONFUSION AUDIT REPORT")
    report.append("=" * 70)
    report.append(f"URL: {state.url}")
    report.append(f"Status: {state.phase.value.upper()}")
    if state.started_at:
        report.append(f"Started: {state.started_at}")
    if state.phase is AuditPhase.ERROR:
        report.append(f"Error: {state.error}")
        report.append("=" * 70)
        return "\n".join(report)

    buckets = categorize(state.packages)
    errors = [p for p in state.packages if p.error]

    report.append("")
    report.append("SUMMARY:")
    report.append("-" * 40)
    report.append(f"Packages Found: {len(state.packages)}")
    report.append(f"Unregistered (Dependency Confusion): {len(buckets['critical'])}")
    report.append(f"High Risk: {len(buckets['high'])}")
    report.append(f"Medium Risk: {len(buckets['medium'])}")
    report.append(f"Exposed Files: {len(state.exposed_files)}")
    if errors:
        report.append(f"Lookup Errors: {len(errors)}")

    if buckets['critical']:
        report.append(f"\n🚨 CRITICAL: {_plural(len(buckets['critical']), 'UNREGISTERED package')}:")
        for pkg in buckets['critical']:
            report.append(f"  - {pkg.name}")
            for source in pkg.sources[:5]:
                report.append(f"    Source: {source}")

    if state.exposed_files:
        report.append("\n🔓 EXPOSED FILES:")
        for exposed in state.exposed_files:
            report.append(f"  - [{exposed.risk.value}] {exposed.path} "
                          f"(HTTP {exposed.status}, {exposed.content_type or 'unknown type'})")

    report.append("\nPACKAGES:")
    report.append("-" * 40)
    shown = state.suspicious_packages if suspicious_only else state.packages
    if not shown:
        report.append("  (none)")
    for pkg in shown:
        if pkg.error:
            report.append(f"  ? {pkg.name}: {pkg.error}")
            continue
        downloads = '-' if pkg.weekly_downloads is None else f"{pkg.weekly_downloads:,}/week"
        line = f"  [{pkg.risk_level.value}] {pkg.name}"
        if pkg.version:
            line += f"@{pkg.version}"
        report.append(f"{line} ({downloads})")
        for reason in pkg.reasons:
            report.append(f"    - {reason}")

    if state.risk_count:
        report.append(f"\n⚠️  {_plural(state.risk_count, 'critical risk')} detected")

    report.append("\n" + "=" * 70)
    return "\n".join(report)
