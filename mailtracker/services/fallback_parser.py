"""
Deterministic fallback parser.

Recovers (organization, title, status) from an email without the AI
extractor, using sender heuristics, ordered subject patterns, body
patterns and keyword lists. Pattern data lives in config/parsing_patterns.py
and is selected per tracker profile.

Resolution order for the organization:
1. subject patterns
2. sender display name
3. body patterns (first BODY_SCAN_CHARS characters)
4. sender domain

Titles come from subject patterns, then body patterns. Anything still
unresolved, or shorter than two characters after cleanup, becomes the
manual-review sentinel.
"""
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from config import parsing_patterns as patterns
from config.tracker_profiles import MANUAL_REVIEW_NEEDED, TrackerProfile

logger = logging.getLogger(__name__)


def _alternation(words: Iterable[str]) -> str:
    return "|".join(re.escape(w) for w in sorted(words, key=len, reverse=True))


_ROLE_RE = re.compile(rf"\b(?:{_alternation(patterns.ROLE_KEYWORDS)})\b", re.IGNORECASE)
_ATS_SUFFIX_RE = re.compile(
    rf"\|\s*(?:{_alternation(patterns.ATS_NAME_SUFFIXES)})\b", re.IGNORECASE
)
_NOISE_PHRASE_RE = re.compile(
    rf"\s*\b(?:{_alternation(patterns.SENDER_NOISE_PHRASES)})\b", re.IGNORECASE
)
_DEPARTMENT_RE = re.compile(
    rf"\s*\b(?:{_alternation(patterns.GENERIC_DEPARTMENT_WORDS)})\b", re.IGNORECASE
)
_TRAILING_SUFFIX_RE = re.compile(
    rf"[|,_.\s]+(?:(?:{_alternation(patterns.LEGAL_SUFFIXES + patterns.CORPORATE_DESCRIPTORS)})\.?)?$",
    re.IGNORECASE,
)
_LEGAL_TAIL_RE = re.compile(
    rf" (?:{_alternation(patterns.LEGAL_SUFFIXES)})[.,]?$", re.IGNORECASE
)
_LEADING_ARTICLE_RE = re.compile(r"^(?:The|A)\s+", re.IGNORECASE)
_QUALIFIER_PAREN_RE = re.compile(
    rf"\([^)]*?(?:{_alternation(patterns.TITLE_QUALIFIERS)})[^)]*?\)", re.IGNORECASE
)
_QUALIFIER_TAIL_RE = re.compile(
    rf"\s*[-–—:]\s*(?:{_alternation(patterns.TITLE_QUALIFIERS)})\s*$", re.IGNORECASE
)
_REQUISITION_RE = re.compile(r"\b(?:JR|REQ|R)\d+\s*[-–—]?\s*", re.IGNORECASE)
_HTML_TAG_RE = re.compile(r"<[^>]+>")
_STATUS_PUNCT_RE = re.compile(r"[.,!?;:()\[\]{}'\"“”‘’\-–—/&]")
_WORKDAY_POD_RE = re.compile(r"^wd\d+$")

_SINGLE_QUOTES = str.maketrans({c: "'" for c in "‘’‚‛′‵"})
_DOUBLE_QUOTES = str.maketrans({c: '"' for c in "“”„‟″‶"})


def has_role_keyword(text: Optional[str]) -> bool:
    """True if text contains a job-role word (engineer, manager, ...)."""
    return bool(text) and bool(_ROLE_RE.search(text))


def _email_address(sender: str) -> Optional[str]:
    match = re.search(r"<([^>]+)>", sender or "")
    address = match.group(1) if match else (sender or "").strip()
    return address if "@" in address else None


def _title_case(text: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in text.split())


def parse_company_from_domain(sender: str) -> Optional[str]:
    """
    Guess the organization from the sender's email domain.

    Accepts a bare address or a "Name <address>" header value.

    Examples:
        careers@careers.acme.com -> "Acme"
        no-reply@acme.wd5.myworkdayjobs.com -> "Acme"
        jobs@linkedin.com -> None

    Returns:
        Title-cased name, or None for personal, job-board and ATS domains
    """
    address = _email_address(sender)
    if not address:
        return None
    domain = address.rsplit("@", 1)[1].strip().lower()
    if not domain:
        return None

    labels = domain.split(".")

    # Customer name embedded in an ATS subdomain
    for host in patterns.ATS_SUBDOMAIN_HOSTS:
        if domain.endswith("." + host):
            sub = domain[: -len(host) - 1].split(".")
            names = [
                label for label in sub
                if label not in patterns.SENDER_SUBDOMAIN_PREFIXES
                and not _WORKDAY_POD_RE.match(label)
            ]
            return _title_case(re.sub(r"[^a-z0-9]+", " ", names[0])) if names else None

    if domain in patterns.NON_COMPANY_DOMAINS or any(
        domain.endswith("." + d) for d in patterns.NON_COMPANY_DOMAINS
    ):
        return None

    while len(labels) > 1 and labels[-1] in patterns.GENERIC_TLDS:
        labels.pop()
    while len(labels) > 1 and labels[0] in patterns.SENDER_SUBDOMAIN_PREFIXES:
        labels.pop(0)
    if not labels:
        return None

    name = labels[-1]
    for prefix in patterns.SENDER_SUBDOMAIN_PREFIXES:
        if name.startswith(prefix + "-") and len(name) > len(prefix) + 1:
            name = name[len(prefix) + 1:]
            break

    name = re.sub(r"[^a-z0-9]+", " ", name).strip()
    return _title_case(name) or None


def parse_company_from_sender_name(sender_name: str) -> Optional[str]:
    """
    Guess the organization from the sender's display name.

    Strips ATS suffixes ("Acme | Greenhouse"), noise phrases ("Careers at"),
    department words ("Recruiting Team"), trailing legal suffixes and
    leading articles.

    Returns:
        Cleaned name, or None if nothing meaningful remains
    """
    name = (sender_name or "").strip()
    if "<" in name:
        name = name.split("<", 1)[0]
    name = name.strip().strip('"').strip()
    if not name or "@" in name or len(name) < 2:
        return None

    name = _ATS_SUFFIX_RE.sub("", name)
    name = _NOISE_PHRASE_RE.sub("", name)
    name = _DEPARTMENT_RE.sub("", name)
    name = _TRAILING_SUFFIX_RE.sub("", name).strip()
    name = _LEADING_ARTICLE_RE.sub("", name).strip()
    name = name.strip(" -|,")

    if len(name) > 1 and name.lower() not in patterns.GENERIC_SENDER_NAMES:
        return name
    return None


@dataclass(frozen=True)
class SubjectMatch:
    """Fields captured by one subject pattern."""
    pattern: str
    company: Optional[str]
    title: Optional[str]

    @property
    def complete(self) -> bool:
        return bool(self.company) and bool(self.title)


@dataclass(frozen=True)
class SubjectPattern:
    """
    One subject-line regex with its capture-group mapping.

    Group numbers are 1-based; 0 means the pattern does not capture that
    field. company_alt is consulted when the company group is empty.
    With swap_on_role, a role keyword in the company capture (and not in
    the title capture) means the two were transposed.
    """
    name: str
    regex: re.Pattern
    title_group: int = 0
    company_group: int = 0
    company_alt_group: int = 0
    swap_on_role: bool = False

    @classmethod
    def from_dict(cls, spec: dict) -> "SubjectPattern":
        return cls(
            name=spec["name"],
            regex=re.compile(spec["pattern"], re.IGNORECASE),
            title_group=spec.get("title", 0),
            company_group=spec.get("company", 0),
            company_alt_group=spec.get("company_alt", 0),
            swap_on_role=spec.get("swap_on_role", False),
        )

    def match(self, subject: str) -> Optional[SubjectMatch]:
        """Apply the pattern; None if the regex does not match."""
        m = self.regex.search(subject or "")
        if not m:
            return None

        title = _group(m, self.title_group)
        company = _group(m, self.company_group) or _group(m, self.company_alt_group)

        if self.swap_on_role and company and title:
            if has_role_keyword(company) and not has_role_keyword(title):
                company, title = title, company

        return SubjectMatch(pattern=self.name, company=company, title=title)


def _group(m: re.Match, index: int) -> Optional[str]:
    if index <= 0 or index > (m.re.groups or 0):
        return None
    value = m.group(index)
    return value.strip() if value and value.strip() else None


def compile_subject_patterns(specs: Sequence[dict]) -> tuple[SubjectPattern, ...]:
    """Build SubjectPattern objects from a profile's pattern dicts."""
    return tuple(SubjectPattern.from_dict(s) for s in specs)


# profile name -> (pattern dicts, compiled patterns)
_subject_pattern_cache: dict[str, tuple[Sequence[dict], tuple[SubjectPattern, ...]]] = {}


def subject_patterns_for(profile: TrackerProfile) -> tuple[SubjectPattern, ...]:
    """
    Compiled subject patterns for a profile, built once.

    A profile loaded with different overrides under the same name is
    recompiled.
    """
    cached = _subject_pattern_cache.get(profile.name)
    if cached is None or cached[0] is not profile.subject_patterns:
        cached = (profile.subject_patterns, compile_subject_patterns(profile.subject_patterns))
        _subject_pattern_cache[profile.name] = cached
    return cached[1]


def match_subject(
    subject: str,
    subject_patterns: Sequence[SubjectPattern],
) -> tuple[Optional[str], Optional[str]]:
    """
    Run subject patterns in order.

    Fields are filled from the first pattern that captures them; stops at
    the first pattern that yields both.

    Returns:
        (company, title), either may be None
    """
    company = None
    title = None
    for pattern in subject_patterns:
        result = pattern.match(subject)
        if result is None:
            continue
        logger.debug(f"Subject matched pattern '{pattern.name}'")
        if result.title and not title:
            title = result.title
        if result.company and not company:
            company = result.company
        if company and title:
            break
    return company, title


def match_body(
    body: str,
    company_patterns: Sequence[str],
    title_patterns: Sequence[str],
    need_company: bool = True,
    need_title: bool = True,
) -> tuple[Optional[str], Optional[str]]:
    """
    Look for organization and title in the opening of the body.

    Returns:
        (company, title), either may be None
    """
    if not body:
        return None, None

    text = _HTML_TAG_RE.sub(" ", body[: patterns.BODY_SCAN_CHARS])
    company = _first_capture(text, company_patterns) if need_company else None
    title = _first_capture(text, title_patterns) if need_title else None
    return company, title


def _first_capture(text: str, regexes: Sequence[str]) -> Optional[str]:
    for regex in regexes:
        m = re.search(regex, text, re.IGNORECASE)
        if m and m.group(1) and m.group(1).strip():
            return m.group(1).strip()
    return None


def clean_entity(value: Optional[str], is_title: bool = False) -> str:
    """
    Normalize a recovered organization or title.

    Cuts at line breaks, '#', '(' or ' - ', strips trailing legal suffixes,
    leading articles and (for titles) requisition ids and work-arrangement
    qualifiers, and normalizes curly quotes and ampersand entities.

    Returns:
        Cleaned string, or the manual-review sentinel if fewer than two
        characters remain
    """
    if not value:
        return MANUAL_REVIEW_NEEDED
    value = str(value)
    if value == MANUAL_REVIEW_NEEDED or value.strip().lower() in ("n/a", "na"):
        return MANUAL_REVIEW_NEEDED

    cleaned = value
    if is_title:
        cleaned = re.sub(r"\(Senior\)", "Senior", cleaned, flags=re.IGNORECASE)
        cleaned = _QUALIFIER_PAREN_RE.sub("", cleaned)
        cleaned = _REQUISITION_RE.sub("", cleaned)

    cleaned = re.split(r"[\n\r#(]| - ", cleaned)[0]
    cleaned = _LEGAL_TAIL_RE.sub("", cleaned.strip())
    cleaned = re.sub(r"[,\"']$", "", cleaned)
    cleaned = _LEADING_ARTICLE_RE.sub("", cleaned.strip())
    cleaned = re.sub(r"\s+", " ", cleaned).strip()

    if is_title:
        cleaned = _QUALIFIER_TAIL_RE.sub("", cleaned)
        cleaned = re.sub(r"^[-\s#*]+|[,\s]+$", "", cleaned)

    cleaned = cleaned.translate(_SINGLE_QUOTES).translate(_DOUBLE_QUOTES)
    cleaned = cleaned.replace("&amp;", "&").replace("&nbsp;", " ").strip()

    return MANUAL_REVIEW_NEEDED if len(cleaned) < 2 else cleaned


def normalize_for_keywords(text: str) -> str:
    """Lowercase, punctuation to spaces, collapsed whitespace."""
    text = _STATUS_PUNCT_RE.sub(" ", (text or "").lower())
    return re.sub(r"\s+", " ", text).strip()


def parse_body_for_status(
    body: str,
    status_keywords: Sequence[tuple[str, Sequence[str]]],
) -> Optional[str]:
    """
    Infer a status from body keywords.

    Keyword lists are checked in order and the first list with a hit wins,
    so more advanced stages must come first. Keywords match on word
    boundaries of the normalized text.

    Returns:
        Status, or None if the body is too short or nothing matched
    """
    if not body or len(body) < 10:
        return None

    haystack = f" {normalize_for_keywords(body)} "
    for status, keywords in status_keywords:
        if any(f" {keyword} " in haystack for keyword in keywords):
            logger.debug(f"Body keywords matched status '{status}'")
            return status
    return None


def detect_platform(sender: str, sender_name: str = "") -> str:
    """Map the sender onto a job platform name (default "Email/Website")."""
    haystack = f"{sender or ''} {sender_name or ''}".lower()
    for keyword, platform in patterns.PLATFORM_KEYWORDS.items():
        if keyword in haystack:
            return platform
    return patterns.DEFAULT_PLATFORM


@dataclass
class FallbackResult:
    """Fields recovered by the deterministic parser."""
    primary: str
    secondary: str
    status: Optional[str]

    @property
    def resolved(self) -> bool:
        return MANUAL_REVIEW_NEEDED not in (self.primary, self.secondary)

    def to_dict(self) -> dict:
        return {"primary": self.primary, "secondary": self.secondary, "status": self.status}


def fallback_extract(
    subject: str,
    body: str,
    profile: TrackerProfile,
    sender: str = "",
    sender_name: str = "",
) -> FallbackResult:
    """
    Recover all candidate fields for one email.

    Args:
        subject: Email subject
        body: Plain-text body
        profile: Tracker profile supplying patterns and keyword lists
        sender: Sender address (or "Name <address>")
        sender_name: Sender display name

    Returns:
        FallbackResult; unresolved keys hold the manual-review sentinel
    """
    company_from_domain = parse_company_from_domain(sender)
    company_from_name = parse_company_from_sender_name(sender_name or sender)

    company, title = match_subject(subject, subject_patterns_for(profile))

    if not company and company_from_name:
        company = company_from_name

    if not company or not title:
        body_company, body_title = match_body(
            body,
            profile.body_company_patterns,
            profile.body_title_patterns,
            need_company=not company,
            need_title=not title,
        )
        company = company or body_company
        title = title or body_title

    if not company and company_from_domain:
        company = company_from_domain

    result = FallbackResult(
        primary=clean_entity(company),
        secondary=clean_entity(title, is_title=True),
        status=parse_body_for_status(body, profile.status_keywords),
    )
    logger.debug(
        f"Fallback result: primary='{result.primary}' secondary='{result.secondary}' "
        f"status={result.status}"
    )
    return result
