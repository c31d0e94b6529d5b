"""In-memory vulnerability catalog: loading from issue_master and title matching policies."""

import logging
import re
from collections.abc import Iterable
from typing import TYPE_CHECKING, Literal

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from audit_intake.models import IssueMaster

if TYPE_CHECKING:
    from audit_intake.core.database import DatabaseManager

logger = logging.getLogger(__name__)

MatchPolicy = Literal["exact", "lenient"]

# Seed list used when the catalog table is empty and no seed file is configured.
DEFAULT_VULNERABILITIES: tuple[str, ...] = (
    "SQL Injection (SQLi)",
    "Cross-Site Scripting (XSS)",
    "Cross-Site Request Forgery (CSRF)",
    "Broken Authentication and Session Management",
    "Insecure Direct Object References (IDOR)",
    "Security Misconfiguration",
    "Sensitive Data Exposure",
    "Using Components with Known Vulnerabilities",
    "Insecure Deserialization",
    "Insufficient Logging & Monitoring",
    "Server-Side Request Forgery (SSRF)",
    "XML External Entity (XXE) Injection",
    "Unvalidated Redirects & Forwards",
    "Privilege Escalation",
    "Business Logic Flaws",
    "API Vulnerabilities",
    "Inadequate Input Validation",
    "Weak Password Policies",
    "Unencrypted Sensitive Data at Rest",
    "Improper Error Handling",
    "Directory Traversal",
    "Clickjacking",
    "Memory Corruption (Buffer Overflows)",
    "Race Conditions",
    "Certificate & TLS Misconfigurations",
    "Open Redirects",
    "Hard-Coded Credentials",
    "Insufficient Session Expiration",
    "Client-Side Security Bypass",
    "Cloud Misconfigurations",
)

_WHITESPACE = re.compile(r"\s+")


def lenient_pattern(title: str) -> re.Pattern[str]:
    """
    Compile a catalog title into a case-insensitive pattern where every literal is
    escaped and each run of whitespace becomes \\s* (so "SQL Injection (SQLi)"
    also accepts "sql   injection(sqli)").
    """
    parts = title.split()
    return re.compile(r"\s*".join(re.escape(part) for part in parts), re.IGNORECASE)


def title_key(title: str) -> str:
    """Case- and whitespace-insensitive identity of a title."""
    return _WHITESPACE.sub("", title).casefold()


class VulnerabilityCatalog:
    """
    Immutable snapshot of the catalog titles.

    Loaded once at startup and handed to request handlers as a dependency; a refresh
    builds a new instance rather than mutating this one.
    """

    def __init__(self, titles: Iterable[str]) -> None:
        seen: set[str] = set()
        ordered: list[str] = []
        for raw in titles:
            if raw is None:
                continue
            title = str(raw).strip()
            if not title or title.casefold() in seen:
                continue
            seen.add(title.casefold())
            ordered.append(title)
        self._titles: tuple[str, ...] = tuple(ordered)
        self._by_casefold: dict[str, str] = {t.casefold(): t for t in ordered}
        self._keys: frozenset[str] = frozenset(title_key(t) for t in ordered)
        self._patterns: tuple[tuple[re.Pattern[str], str], ...] = tuple(
            (lenient_pattern(t), t) for t in ordered
        )

    @property
    def titles(self) -> tuple[str, ...]:
        return self._titles

    def __len__(self) -> int:
        return len(self._titles)

    def match_exact(self, title: str) -> str | None:
        """Return the canonical catalog title equal to title ignoring case, else None."""
        if not title:
            return None
        return self._by_casefold.get(title.strip().casefold())

    def match_lenient(self, title: str) -> str | None:
        """Return the first catalog title whose lenient pattern full-matches title, else None."""
        if not title:
            return None
        exact = self.match_exact(title)
        if exact is not None:
            return exact
        candidate = title.strip()
        for pattern, canonical in self._patterns:
            if pattern.fullmatch(candidate):
                return canonical
        return None

    def match(self, title: str, policy: MatchPolicy) -> str | None:
        if policy == "exact":
            return self.match_exact(title)
        return self.match_lenient(title)

    def has_title_like(self, title: str) -> bool:
        """True when title equals an entry ignoring case and whitespace."""
        return title_key(title) in self._keys


def load_catalog(db: Session) -> VulnerabilityCatalog:
    """Read every catalog title in insertion order."""
    titles = db.execute(
        select(IssueMaster.issue_title).order_by(IssueMaster.issue_master_id)
    ).scalars().all()
    catalog = VulnerabilityCatalog(titles)
    logger.info("Loaded %s vulnerability names into the catalog", len(catalog))
    return catalog


def refresh_catalog(manager: "DatabaseManager") -> VulnerabilityCatalog:
    """Reload the catalog, reconnecting once if the pooled connection has gone away."""
    try:
        with manager.session() as db:
            return load_catalog(db)
    except OperationalError as e:
        logger.warning("Catalog reload failed (%s); reconnecting", e)
        manager.ensure_connected()
        with manager.session() as db:
            return load_catalog(db)
