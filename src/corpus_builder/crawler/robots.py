"""robots.txt fetching, parsing and allow/deny checks.

One ``RobotsChecker`` exists per origin per crawl. It starts unloaded (every
URL allowed), fetches ``{origin}/robots.txt`` once, and fails open: a missing
file, a non-2xx answer or a network error all leave an empty rule set.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from urllib.parse import urlsplit

import httpx


logger = logging.getLogger(__name__)

DEFAULT_ROBOTS_TIMEOUT = 5.0


@dataclass
class RobotsRuleGroup:
    """Rules declared under one User-agent line."""

    user_agent: str = "*"
    allow: list[str] = field(default_factory=list)
    disallow: list[str] = field(default_factory=list)

    def applies_to(self, user_agent: str) -> bool:
        lowered = user_agent.lower()
        agent = self.user_agent.lower()
        return agent == "*" or (bool(agent) and agent in lowered)


def parse_robots_txt(text: str) -> list[RobotsRuleGroup]:
    """Parse a robots.txt body into rule groups.

    Blank lines and ``#`` comments are ignored and directive names are
    case-insensitive. Every ``User-agent`` line starts a new group, so rules
    belong only to the agent named directly above them. Directives other
    than User-agent/Allow/Disallow (Crawl-delay, Sitemap, ...) are ignored.
    """
    groups: list[RobotsRuleGroup] = []
    current: RobotsRuleGroup | None = None

    for raw_line in text.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue

        directive, _, value = line.partition(":")
        directive = directive.strip().lower()
        value = value.strip()

        if directive == "user-agent":
            current = RobotsRuleGroup(user_agent=value)
            groups.append(current)
        elif directive == "allow" and current is not None:
            if value:
                current.allow.append(value)
        elif directive == "disallow" and current is not None:
            # An empty Disallow means "allow everything"
            if value:
                current.disallow.append(value)

    return groups


def _pattern_to_regex(pattern: str) -> re.Pattern[str]:
    anchored_end = pattern.endswith("$")
    body = pattern[:-1] if anchored_end else pattern
    regex = "^" + ".*".join(re.escape(chunk) for chunk in body.split("*"))
    if anchored_end:
        regex += "$"
    return re.compile(regex)


def path_matches(path: str, pattern: str) -> bool:
    """Match a URL path against a robots.txt pattern (``*`` wildcard, ``$`` end anchor)."""
    if not pattern:
        return False
    return _pattern_to_regex(pattern).search(path) is not None


class RobotsChecker:
    """Per-origin robots.txt compliance checker.

    States: unloaded -> loaded. ``is_allowed`` answers True until ``load``
    has completed.
    """

    def __init__(
        self,
        origin: str,
        user_agent: str,
        client: httpx.AsyncClient,
        timeout: float = DEFAULT_ROBOTS_TIMEOUT,
    ) -> None:
        self.origin = origin.rstrip("/")
        self.user_agent = user_agent
        self.timeout = timeout
        self._client = client
        self.groups: list[RobotsRuleGroup] = []
        self.loaded = False

    @property
    def robots_url(self) -> str:
        return f"{self.origin}/robots.txt"

    async def load(self) -> None:
        """Fetch and parse robots.txt. Safe to call more than once."""
        if self.loaded:
            return

        try:
            response = await self._client.get(
                self.robots_url,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
                follow_redirects=True,
            )
            if response.is_success:
                self.groups = parse_robots_txt(response.text)
                logger.debug(f"Loaded {len(self.groups)} robots.txt groups from {self.robots_url}")
            else:
                logger.debug(f"No robots.txt at {self.robots_url} (HTTP {response.status_code}), allowing all")
        except httpx.HTTPError as e:
            logger.debug(f"Failed to fetch {self.robots_url}: {e!r}, allowing all")

        self.loaded = True

    def is_allowed(self, url: str) -> bool:
        """Return False when an applicable Disallow matches and no longer Allow overrides it."""
        if not self.loaded:
            return True

        try:
            path = urlsplit(url).path or "/"
        except ValueError:
            return True

        for group in self.groups:
            if not group.applies_to(self.user_agent):
                continue
            for disallow in group.disallow:
                if not path_matches(path, disallow):
                    continue
                overridden = any(
                    path_matches(path, allow) and len(allow) > len(disallow) for allow in group.allow
                )
                if not overridden:
                    return False

        return True
