# ==============================================================================
# Exclusion Rules
# ==============================================================================
"""
Site-configured exclusion rules evaluated before anything is persisted.
"""

from postmetric.core.models import Site


def path_matches(rule: str, path: str) -> bool:
    """Exact match, or prefix match when the rule ends with '*'."""
    if rule.endswith("*"):
        return path.startswith(rule[:-1])
    return path == rule


def should_exclude(
    site: Site,
    ip: str | None,
    country: str | None,
    hostname: str | None,
    path: str,
) -> bool:
    """
    Decide whether a hit matches any of the site's exclusion rules.

    Rules are checked in order: IP, path, hostname, country. Hostname and
    country comparisons ignore case.

    Args:
        site: Site whose settings hold the rules
        ip: Client IP address
        country: Resolved country code
        hostname: Hostname reported by the snippet
        path: Sanitized page path

    Returns:
        True if the hit must be dropped
    """
    settings = site.settings

    if ip and ip in settings.exclude_ips:
        return True

    if any(path_matches(rule, path) for rule in settings.exclude_paths if rule):
        return True

    if hostname:
        excluded_hosts = {h.lower() for h in settings.exclude_hostnames}
        if hostname.lower() in excluded_hosts:
            return True

    if country:
        excluded_countries = {c.upper() for c in settings.exclude_countries}
        if country.upper() in excluded_countries:
            return True

    return False
