"""robots.txt parsing: sitemap directives and plain-prefix disallow rules."""

import re
from typing import List, NamedTuple

_SITEMAP_RE = re.compile(r"^sitemap\s*:\s*(.+)$", re.IGNORECASE)
_DISALLOW_RE = re.compile(r"^disallow\s*:\s*(.+)$", re.IGNORECASE)


class RobotsRules(NamedTuple):
    sitemap_urls: List[str]
    disallow_rules: List[str]


def parse_robots(content: str) -> RobotsRules:
    """Collect ``Sitemap:`` URLs and ``Disallow:`` prefixes from *content*.

    Rules are merged across user-agent groups.  Wildcard rules are skipped
    because they are matched as plain path prefixes later on.
    """
    sitemap_urls: set = set()
    disallow_rules: set = set()

    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        match = _SITEMAP_RE.match(stripped)
        if match:
            value = match.group(1).strip()
            if value:
                sitemap_urls.add(value)
            continue

        match = _DISALLOW_RE.match(stripped)
        if match:
            rule = match.group(1).split("#", 1)[0].strip()
            if rule and "*" not in rule:
                disallow_rules.add(rule)

    return RobotsRules(sorted(sitemap_urls), sorted(disallow_rules))
