import re
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class RobotRule:
    user_agent: str
    allow: List[str] = field(default_factory=list)
    disallow: List[str] = field(default_factory=list)


@dataclass
class RobotsTxt:
    sitemaps: List[str] = field(default_factory=list)
    rules: List[RobotRule] = field(default_factory=list)
    crawl_delay: Optional[float] = None

    def rule_for(self, user_agent: str = "*") -> Optional[RobotRule]:
        """
        The most specific group for a user agent: a group whose token appears
        in the agent string, otherwise the wildcard group.
        """
        agent = user_agent.lower()
        wildcard = None
        best = None
        for rule in self.rules:
            token = rule.user_agent.lower()
            if token == "*":
                wildcard = wildcard or rule
            elif token in agent and (best is None or len(token) > len(best.user_agent)):
                best = rule
        return best or wildcard

    def is_allowed(self, path: str, user_agent: str = "*") -> bool:
        """
        Longest matching pattern wins; on a tie between allow and disallow the
        path is allowed. No matching group means everything is allowed.
        """
        rule = self.rule_for(user_agent)
        if rule is None:
            return True

        path = path or "/"
        best_length = -1
        allowed = True
        for pattern in rule.disallow:
            if _matches(path, pattern) and len(pattern) > best_length:
                best_length = len(pattern)
                allowed = False
        for pattern in rule.allow:
            if _matches(path, pattern) and len(pattern) >= best_length:
                best_length = len(pattern)
                allowed = True
        return allowed


def _matches(path: str, pattern: str) -> bool:
    if not pattern:
        return False

    anchored = pattern.endswith("$")
    if anchored:
        pattern = pattern[:-1]

    regex = "^" + ".*".join(re.escape(part) for part in pattern.split("*"))
    if anchored:
        regex += "$"
    return re.match(regex, path) is not None


def parse_robots_content(content: str) -> RobotsTxt:
    """
    Parse robots.txt text.

    Consecutive User-agent lines share one group of Allow/Disallow lines.
    Sitemap lines are global regardless of where they appear.

    Args:
        content: Raw robots.txt body

    Returns:
        RobotsTxt with sitemaps, per-agent rules and the last valid crawl-delay
    """
    result = RobotsTxt()
    group: List[RobotRule] = []
    in_agent_block = False

    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue

        directive, value = line.split(":", 1)
        directive = directive.strip().lower()
        value = value.strip()

        if directive == "user-agent":
            if not in_agent_block:
                group = []
            rule = RobotRule(user_agent=value or "*")
            group.append(rule)
            result.rules.append(rule)
            in_agent_block = True
            continue

        in_agent_block = False

        if directive == "sitemap":
            if value:
                result.sitemaps.append(value)
        elif directive in ("allow", "disallow"):
            # An empty Disallow means "allow everything" and adds no rule
            if value:
                for rule in group:
                    getattr(rule, directive).append(value)
        elif directive == "crawl-delay":
            try:
                result.crawl_delay = float(value)
            except ValueError:
                continue

    return result
