#!/usr/bin/env python3
"""
Wiki Reliability - article reliability estimate for Wikipedia

Purpose: Take a name or URL, resolve it to one canonical article, pull
quality signals out of the article's markup and revision history, and turn
them into a score, a verdict and a short list of reasons under a
configurable policy.

Key principles:
- Resolution never guesses: a missing title or a disambiguation page comes
  back as a failure with ranked suggestions
- Every signal has a neutral value, absence of data is never a missing field
- Scoring is a pure function of (signals, policy)
- Only the talk page is best-effort; every other upstream failure is fatal
- No retries, no persistence

Verdicts (inclusive lower bounds):
- Excellent  >= 85
- Good       >= 60
- Moderate   >= 40
- Weak       otherwise, or when a policy rule rejects the article
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import math
import os
import re
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import parse_qs, quote, unquote, urlparse

import requests
import tldextract
from bs4 import BeautifulSoup
from dateutil import parser as dateparser

# Logging
logging.basicConfig(level=logging.INFO, format="%(message)s")
logging.getLogger("urllib3").setLevel(logging.WARNING)
logging.getLogger("filelock").setLevel(logging.ERROR)

log = logging.getLogger("wiki_reliability")

# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
API_URL_TEMPLATE = "https://{lang}.wikipedia.org/w/api.php"
ARTICLE_URL_TEMPLATE = "https://{lang}.wikipedia.org/wiki/{title}"
HISTORY_URL_TEMPLATE = "https://{lang}.wikipedia.org/w/index.php?title={title}&action=history"
TALK_URL_TEMPLATE = "https://{lang}.wikipedia.org/wiki/Talk:{title}"

USER_AGENT = os.environ.get("WIKI_RELIABILITY_USER_AGENT", "WikiReliability/1.0 (+research)")
DEFAULT_TIMEOUT_S = float(os.environ.get("WIKI_RELIABILITY_TIMEOUT_S", "25"))

DEFAULT_LANG = "fi"
DEFAULT_SUGGESTION_LIMIT = 8
PREFIX_SEARCH_CAP = 5
BATCH_TITLE_LIMIT = 50  # MediaWiki cap for titles= on anonymous requests
REVISION_LIMIT = 200
NO_REVISIONS_DAYS = 999.0
MAX_PARALLEL_REQUESTS = 4

# Disambiguation pages recognised by title alone (pageprops is checked first)
DISAMBIGUATION_TITLE_PATTERNS = [
    re.compile(r"\(disambiguation\)", re.I),
    re.compile(r"\(täsmennyssivu\)", re.I),
    re.compile(r" \(täsmennys\)$", re.I),
]

# "Citation needed" markers. HTML and wikitext are both counted, so one
# marker usually shows up more than once.
CITATION_NEEDED_HTML_PATTERNS = [
    re.compile(r"Template-Fact", re.I),
    re.compile(r"\bcitation needed\b", re.I),
    re.compile(r"\[lähde\?\]", re.I),
]
CITATION_NEEDED_WIKITEXT_PATTERNS = [
    re.compile(r"\{\{\s*(?:citation needed|fact|cn)\b", re.I),
    re.compile(r"\{\{\s*lähde\?\s*\}\}", re.I),
]

# Template name fragments (lowercase)
PROBLEM_TEMPLATE_MARKERS = ("disputed", "advert", "unreferenced", "coi", "hoax")
QUALITY_TEMPLATE_LABELS = {
    "stub": ("stub",),
    "good": ("good article", "laadukas artikkeli"),
    "featured": ("featured article", "valittu artikkeli"),
}

TALK_ISSUE_PATTERN = re.compile(r"dispute|pov|controvers|merge|cleanup", re.I)
REVERT_TAG_MARKERS = ("rollback", "undo")

CITE_REF_ID = re.compile(r"^cite_ref-", re.I)
WIKITEXT_REF_PATTERN = re.compile(r"<ref[\s>]", re.I)

WIKI_SUBDOMAIN = re.compile(r"^([a-z-]+)(?:\.m)?$")
TALK_PREFIX = re.compile(r"^Talk:", re.I)

# Bundled public suffix snapshot only, no download
_TLD_EXTRACT = tldextract.TLDExtract(cache_dir=None, suffix_list_urls=())

# Scoring scale points
REFERENCES_FULL_AT = 15
CITATION_NEEDED_FULL_AT = 5
PROBLEM_TEMPLATES_FULL_AT = 2
TALK_ISSUES_FULL_AT = 2
RECENCY_WINDOW_DAYS = 365
IDEAL_WORD_COUNT = 2000
IDEAL_HEADING_COUNT = 5
IDEAL_EDITOR_COUNT = 10
QUALITY_PARTIAL_FACTOR = 0.7
MAX_HIGHLIGHTS = 3
FALLBACK_HIGHLIGHT = "multiple_small_weaknesses"


# -----------------------------------------------------------------------------
# Enums and Data Models
# -----------------------------------------------------------------------------
class Verdict(str, Enum):
    WEAK = "Weak"
    MODERATE = "Moderate"
    GOOD = "Good"
    EXCELLENT = "Excellent"


class RejectionReason(str, Enum):
    CITATION_NEEDED = "citation needed"
    PROBLEM_TEMPLATES = "problem templates"
    REVERT_RATE = "revert rate"
    STALE = "stale"


class ResolutionFailure(str, Enum):
    MISSING = "missing"
    DISAMBIGUATION = "disambiguation"


class SearchMode(str, Enum):
    NEAR_MATCH = "nearmatch"
    PREFIX = "prefix"
    FULL_TEXT = "text"


class HighlightKind(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"


_COUNT_FIELDS = (
    "reference_count", "citation_needed", "problem_templates", "talk_issues",
    "word_count", "heading_count", "unique_editors",
)


@dataclass(frozen=True)
class Signals:
    """Quality facts about one article. Defaults are the neutral values."""
    reference_count: int = 0
    citation_needed: int = 0
    problem_templates: int = 0
    days_since_last_edit: float = NO_REVISIONS_DAYS
    revert_rate: float = 0.0  # 0..1
    talk_issues: int = 0

    word_count: int = 0
    heading_count: int = 0
    is_stub: bool = False
    is_good_article: bool = False
    is_featured_article: bool = False
    is_protected: bool = False
    unique_editors: int = 0

    def __post_init__(self) -> None:
        for name in _COUNT_FIELDS:
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        if self.days_since_last_edit < 0:
            raise ValueError(f"days_since_last_edit must be >= 0, got {self.days_since_last_edit}")
        if not 0.0 <= self.revert_rate <= 1.0:
            raise ValueError(f"revert_rate must be within [0, 1], got {self.revert_rate}")


@dataclass(frozen=True)
class Weights:
    """Maximum contribution of each signal. Defaults are the "normal" profile."""
    references: float = 30
    citation_needed_penalty: float = 10
    problem_templates_penalty: float = 20
    recency: float = 20
    revert: float = 15
    talk_penalty: float = 10

    length: float = 10
    structure: float = 8
    quality_bonus: float = 12
    protection_bonus: float = 4
    editor_diversity: float = 8

    def __post_init__(self) -> None:
        for f in dataclasses.fields(self):
            if getattr(self, f.name) < 0:
                raise ValueError(f"weight {f.name} must be >= 0, got {getattr(self, f.name)}")


@dataclass(frozen=True)
class RejectRules:
    """Hard thresholds. None (or False) disables a rule."""
    citation_needed_greater_than: Optional[int] = None
    has_problem_templates: bool = False
    revert_rate_above: Optional[float] = None
    days_since_last_edit_above: Optional[float] = None


@dataclass(frozen=True)
class Policy:
    weights: Weights = field(default_factory=Weights)
    reject_if: RejectRules = field(default_factory=RejectRules)

    def with_overrides(
        self,
        weights: Optional[Mapping[str, float]] = None,
        reject_if: Optional[Union[RejectRules, Mapping[str, Any]]] = None,
    ) -> Policy:
        """
        Return a copy with some weights replaced and, optionally, a new rule set.

        Weights merge key by key. A supplied reject_if replaces the current
        rules as a whole, it is not merged.
        """
        new_weights = self.weights
        if weights:
            _check_field_names(Weights, weights, "weight")
            new_weights = dataclasses.replace(
                self.weights, **{name: _as_number(value, f"weight {name}") for name, value in weights.items()}
            )

        new_rules = self.reject_if
        if reject_if is not None:
            if isinstance(reject_if, RejectRules):
                new_rules = reject_if
            else:
                _check_field_names(RejectRules, reject_if, "reject rule")
                new_rules = RejectRules(**{name: _as_rule_value(name, value) for name, value in reject_if.items()})

        return Policy(weights=new_weights, reject_if=new_rules)


DEFAULT_POLICY = Policy()

PROFILES: Dict[str, Policy] = {
    # Minimizes risk, may reject good articles
    "strict": Policy(
        weights=Weights(
            references=20,
            citation_needed_penalty=30,
            problem_templates_penalty=35,
            recency=25,
            revert=20,
            talk_penalty=15,
            length=8,
            structure=10,
            quality_bonus=18,
            protection_bonus=4,
            editor_diversity=10,
        ),
        reject_if=RejectRules(
            citation_needed_greater_than=0,
            has_problem_templates=True,
            revert_rate_above=0.4,
            days_since_last_edit_above=1825,  # 5 years
        ),
    ),
    "normal": DEFAULT_POLICY,
    # Quick overview, fewer rejections
    "permissive": Policy(
        weights=Weights(
            references=35,
            citation_needed_penalty=6,
            problem_templates_penalty=12,
            recency=18,
            revert=10,
            talk_penalty=5,
            length=12,
            structure=6,
            quality_bonus=10,
            protection_bonus=3,
            editor_diversity=6,
        ),
        reject_if=RejectRules(revert_rate_above=0.9),
    ),
}


@dataclass(frozen=True)
class Highlight:
    id: str
    kind: HighlightKind
    magnitude: float  # sort key: points earned, or points lost for negatives


@dataclass
class ScoreResult:
    score: float
    verdict: Verdict
    rejected: bool = False
    reason: Optional[RejectionReason] = None
    positives: List[Highlight] = field(default_factory=list)
    negatives: List[Highlight] = field(default_factory=list)
    contributions: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class TitleInfo:
    input_title: str
    canonical: str
    exists: bool
    is_disambiguation: bool


@dataclass
class ResolutionResult:
    ok: bool
    title: Optional[str] = None
    reason: Optional[ResolutionFailure] = None
    suggestions: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class WikiTarget:
    title: str
    lang: str


@dataclass(frozen=True)
class EvidenceLink:
    label: str
    url: str


@dataclass
class Choice:
    """Candidate list returned instead of a score when the caller wants to pick."""
    suggestions: List[str]
    lang: str
    resolved_from: Optional[str] = None


@dataclass
class Analysis:
    title: str
    lang: str
    signals: Signals
    result: ScoreResult
    evidence: List[EvidenceLink]
    policy: Policy
    resolved_from: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)


# -----------------------------------------------------------------------------
# Errors
# -----------------------------------------------------------------------------
class WikiError(Exception):
    """Base class for everything this module raises on purpose."""


class NetworkFailure(WikiError):
    """A required upstream call failed. Never retried here."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        self.url = url
        self.message = message
        self.status_code = status_code
        super().__init__(f"{message} ({url})")


class InvalidWikiUrl(WikiError):
    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Not a Wikipedia article URL: {url}")


class ResolutionError(WikiError):
    reason: ResolutionFailure = ResolutionFailure.MISSING

    def __init__(self, title: str, suggestions: Sequence[str]):
        self.title = title
        self.suggestions = list(suggestions)
        super().__init__(f"{self.describe()}: {title}")

    def describe(self) -> str:
        return "Article not found"


class TitleNotFound(ResolutionError):
    reason = ResolutionFailure.MISSING


class DisambiguationError(ResolutionError):
    reason = ResolutionFailure.DISAMBIGUATION

    def describe(self) -> str:
        return "Disambiguation page; pick a more specific title"


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def uniq(items: Iterable[str]) -> List[str]:
    """Drop repeats, keep first-seen order."""
    seen = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def clamp(x: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, x))


def _as_number(value: Any, what: str) -> float:
    # bool is an int subclass; JSON true/false is never a threshold
    if value is None or isinstance(value, bool):
        raise ValueError(f"{what} must be a number, got {value!r}")
    try:
        x = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{what} must be a number, got {value!r}") from None
    if not math.isfinite(x):
        raise ValueError(f"{what} must be finite, got {value!r}")
    return x


def _as_rule_value(name: str, value: Any) -> Any:
    """Coerce one JSON reject rule to the type RejectRules declares."""
    if name == "has_problem_templates":
        if not isinstance(value, bool):
            raise ValueError(f"reject rule {name} must be true or false, got {value!r}")
        return value
    if value is None:
        return None  # rule disabled
    x = _as_number(value, f"reject rule {name}")
    if name == "citation_needed_greater_than":
        if not x.is_integer():
            raise ValueError(f"reject rule {name} must be a whole number, got {value!r}")
        return int(x)
    return x


def _check_field_names(cls: type, data: Mapping[str, Any], what: str) -> None:
    if not isinstance(data, Mapping):
        raise ValueError(f"{what}s must be an object, got {type(data).__name__}")
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown {what}(s): {', '.join(unknown)}")


def _star(value: Any) -> str:
    """Text of a formatversion=1 {"*": ...} node (plain strings pass through)."""
    if isinstance(value, dict):
        return str(value.get("*") or "")
    if isinstance(value, str):
        return value
    return ""


def first_page(payload: Mapping[str, Any]) -> Dict[str, Any]:
    pages = (payload.get("query") or {}).get("pages") or {}
    return next(iter(pages.values()), {})


def is_disambiguation_title(title: str) -> bool:
    return any(p.search(title) for p in DISAMBIGUATION_TITLE_PATTERNS)


def is_disambiguation_page(page: Mapping[str, Any]) -> bool:
    # formatversion=1 flags are present-with-empty-string
    return "disambiguation" in (page.get("pageprops") or {})


def talk_title(title: str) -> str:
    return f"Talk:{title}"


# -----------------------------------------------------------------------------
# Fetching
# -----------------------------------------------------------------------------
def requests_session(user_agent: str = USER_AGENT) -> requests.Session:
    s = requests.Session()
    s.headers.update({
        "User-Agent": user_agent,
        "Accept": "application/json",
    })
    return s


class WikiClient:
    """
    Read-only client for the MediaWiki action API of any language edition.

    Requests run from worker threads, and a requests.Session is not
    thread-safe, so by default each thread gets its own session. A session
    passed in explicitly is shared by every thread; the caller owns that.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        user_agent: str = USER_AGENT,
    ):
        self.timeout_s = timeout_s
        self.user_agent = user_agent
        self._shared_session = session
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        if self._shared_session is not None:
            return self._shared_session
        s = getattr(self._local, "session", None)
        if s is None:
            s = requests_session(self.user_agent)
            self._local.session = s
        return s

    def api_url(self, lang: str) -> str:
        return API_URL_TEMPLATE.format(lang=lang)

    def get_json(self, lang: str, params: Mapping[str, Any]) -> Dict[str, Any]:
        url = self.api_url(lang)
        query = {"format": "json", **params}
        log.debug("GET %s %s", url, query)
        try:
            resp = self.session.get(url, params=query, timeout=self.timeout_s)
        except requests.RequestException as e:
            raise NetworkFailure(url, f"Request failed: {e}") from e

        if resp.status_code >= 400:
            raise NetworkFailure(url, f"HTTP {resp.status_code}", status_code=resp.status_code)
        try:
            payload = resp.json()
        except ValueError as e:
            raise NetworkFailure(url, "Response is not JSON", status_code=resp.status_code) from e
        if not isinstance(payload, dict):
            raise NetworkFailure(url, "Unexpected response shape", status_code=resp.status_code)
        if "error" in payload:
            err = payload.get("error") or {}
            raise NetworkFailure(
                url,
                f"API error {err.get('code', 'unknown')}: {err.get('info', '')}".rstrip(": "),
                status_code=resp.status_code,
            )
        return payload

    def query_titles(self, titles: Sequence[str], lang: str) -> Dict[str, Any]:
        """Page identity, redirects, pageprops and protection for up to 50 titles."""
        return self.get_json(lang, {
            "action": "query",
            "redirects": 1,
            "prop": "pageprops|info",
            "inprop": "protection",
            "titles": "|".join(titles),
        })

    def parse_page(self, title: str, lang: str, props: str = "text|wikitext|templates") -> Dict[str, Any]:
        return self.get_json(lang, {"action": "parse", "page": title, "prop": props})

    def search(self, query: str, lang: str, mode: SearchMode, limit: int) -> List[str]:
        """Ranked titles for one search strategy."""
        if mode is SearchMode.PREFIX:
            payload = self.get_json(lang, {
                "action": "query",
                "list": "prefixsearch",
                "pssearch": query,
                "pslimit": limit,
            })
            hits = (payload.get("query") or {}).get("prefixsearch") or []
        else:
            params = {
                "action": "query",
                "list": "search",
                "srsearch": query,
                "srlimit": limit,
            }
            if mode is SearchMode.NEAR_MATCH:
                params["srwhat"] = SearchMode.NEAR_MATCH.value
            payload = self.get_json(lang, params)
            hits = (payload.get("query") or {}).get("search") or []
        return [str(h["title"]) for h in hits if h.get("title")]

    def revisions(self, title: str, lang: str, limit: int = REVISION_LIMIT) -> Dict[str, Any]:
        """Newest revisions first, plus protection info for the page."""
        return self.get_json(lang, {
            "action": "query",
            "redirects": 1,
            "prop": "revisions|info",
            "inprop": "protection",
            "rvprop": "ids|timestamp|flags|tags|user",
            "rvlimit": limit,
            "titles": title,
        })


def fetch_talk_html(client: WikiClient, title: str, lang: str) -> str:
    """
    Rendered talk page, or "" when it can't be fetched.

    This is the one best-effort upstream call: many articles have no talk
    page at all, and that must not fail the whole request.
    """
    try:
        payload = client.parse_page(talk_title(title), lang, props="text")
    except WikiError as e:
        log.warning(f"Talk page unavailable for {title!r} ({lang}): {e}")
        return ""
    return _star((payload.get("parse") or {}).get("text"))


# -----------------------------------------------------------------------------
# Signal Extraction
# -----------------------------------------------------------------------------
def count_references(soup: BeautifulSoup, wikitext: str) -> int:
    """
    Inline citations, trying progressively weaker evidence.

    1. unique cite_ref-* anchors (or <sup class="reference"> without ids)
    2. <ref> opening tags in wikitext
    3. elements with role="doc-noteref"
    """
    ids = {str(tag.get("id")) for tag in soup.find_all(id=CITE_REF_ID)}
    n = len(ids)
    if n == 0:
        n = len(soup.find_all("sup", class_="reference"))
    if n == 0:
        n = len(WIKITEXT_REF_PATTERN.findall(wikitext or ""))
    if n == 0:
        n = len(soup.find_all(attrs={"role": "doc-noteref"}))
    return n


def count_headings(soup: BeautifulSoup) -> int:
    return len(soup.find_all(["h2", "h3", "h4"]))


def count_words(soup: BeautifulSoup) -> int:
    """Whitespace-separated tokens of visible text. Mutates soup."""
    for tag in soup(["script", "style"]):
        tag.decompose()
    return len(soup.get_text(separator=" ").split())


def count_citation_needed(html: str, wikitext: str) -> int:
    n = sum(len(p.findall(html or "")) for p in CITATION_NEEDED_HTML_PATTERNS)
    n += sum(len(p.findall(wikitext or "")) for p in CITATION_NEEDED_WIKITEXT_PATTERNS)
    return n


def count_problem_templates(templates: Sequence[str]) -> int:
    return sum(1 for t in templates if any(m in t for m in PROBLEM_TEMPLATE_MARKERS))


def has_template_label(templates: Sequence[str], labels: Sequence[str]) -> bool:
    return any(label in t for t in templates for label in labels)


def count_talk_issues(talk_html: str) -> int:
    return len(TALK_ISSUE_PATTERN.findall(talk_html or ""))


def _revision_time(revision: Mapping[str, Any]) -> Optional[datetime]:
    raw = revision.get("timestamp")
    if not raw:
        return None
    try:
        ts = dateparser.isoparse(str(raw))
    except (ValueError, OverflowError):
        log.debug(f"Unparseable revision timestamp: {raw!r}")
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def summarize_revisions(revisions: Sequence[Mapping[str, Any]], now: datetime) -> Tuple[float, float, int]:
    """(days_since_last_edit, revert_rate, unique_editors) for newest-first revisions."""
    last_edit = _revision_time(revisions[0]) if revisions else None
    if last_edit is None:
        days = NO_REVISIONS_DAYS
    else:
        days = max(0.0, (now - last_edit).total_seconds() / 86400)

    if revisions:
        reverts = sum(
            1 for r in revisions
            if any(m in str(tag) for tag in (r.get("tags") or []) for m in REVERT_TAG_MARKERS)
        )
        revert_rate = reverts / len(revisions)
    else:
        revert_rate = 0.0

    editors = {r.get("user") for r in revisions if r.get("user")}
    return days, revert_rate, len(editors)


def extract_signals(
    parsed: Mapping[str, Any],
    revision_page: Mapping[str, Any],
    talk_html: str,
    now: Optional[datetime] = None,
) -> Signals:
    """Build Signals from a parse payload, a revisions page object and talk HTML."""
    now = now or utc_now()
    parse = parsed.get("parse") or {}
    html = _star(parse.get("text"))
    wikitext = _star(parse.get("wikitext"))
    templates = [_star(t).lower() for t in (parse.get("templates") or [])]

    soup = BeautifulSoup(html, "html.parser")
    heading_count = count_headings(soup)
    reference_count = count_references(soup, wikitext)
    word_count = count_words(soup)

    revisions = revision_page.get("revisions") or []
    days, revert_rate, unique_editors = summarize_revisions(revisions, now)

    return Signals(
        reference_count=reference_count,
        citation_needed=count_citation_needed(html, wikitext),
        problem_templates=count_problem_templates(templates),
        days_since_last_edit=days,
        revert_rate=revert_rate,
        talk_issues=count_talk_issues(talk_html),
        word_count=word_count,
        heading_count=heading_count,
        is_stub=has_template_label(templates, QUALITY_TEMPLATE_LABELS["stub"]),
        is_good_article=has_template_label(templates, QUALITY_TEMPLATE_LABELS["good"]),
        is_featured_article=has_template_label(templates, QUALITY_TEMPLATE_LABELS["featured"]),
        is_protected=bool(revision_page.get("protection")),
        unique_editors=unique_editors,
    )


def collect_signals(
    title: str,
    lang: str = "en",
    client: Optional[WikiClient] = None,
    now: Optional[datetime] = None,
) -> Signals:
    """Fetch article, history and talk page concurrently and extract Signals."""
    client = client or WikiClient()
    with ThreadPoolExecutor(max_workers=3) as pool:
        parsed_f = pool.submit(client.parse_page, title, lang)
        revisions_f = pool.submit(client.revisions, title, lang)
        talk_f = pool.submit(fetch_talk_html, client, title, lang)
        parsed = parsed_f.result()
        revision_page = first_page(revisions_f.result())
        talk_html = talk_f.result()

    signals = extract_signals(parsed, revision_page, talk_html, now)
    log.debug(f"Signals for {title!r} ({lang}): {signals}")
    return signals


# -----------------------------------------------------------------------------
# Title Resolution
# -----------------------------------------------------------------------------
def resolve_titles(client: WikiClient, titles: Sequence[str], lang: str) -> List[TitleInfo]:
    """Existence, redirect target and disambiguation status, in input order."""
    out: List[TitleInfo] = []
    for start in range(0, len(titles), BATCH_TITLE_LIMIT):
        chunk = list(titles[start:start + BATCH_TITLE_LIMIT])
        query = client.query_titles(chunk, lang).get("query") or {}

        normalized = {n["from"]: n["to"] for n in query.get("normalized") or [] if n.get("from") and n.get("to")}
        redirects = {r["from"]: r["to"] for r in query.get("redirects") or [] if r.get("from") and r.get("to")}
        by_title = {p["title"]: p for p in (query.get("pages") or {}).values() if p.get("title")}

        for t in chunk:
            name = normalized.get(t, t)
            canonical = redirects.get(name, name)
            page = by_title.get(canonical)
            exists = page is not None and "missing" not in page and "invalid" not in page
            is_disambig = (page is not None and is_disambiguation_page(page)) or is_disambiguation_title(canonical)
            out.append(TitleInfo(t, canonical, exists, is_disambig))
    return out


def filter_candidates(
    client: WikiClient,
    candidates: Sequence[str],
    lang: str,
    show_redirect_aliases: bool = False,
) -> List[str]:
    """
    Keep existing, non-disambiguation pages, one per canonical title.

    Redirects collapse onto their target; the first occurrence wins and is
    shown by canonical title unless show_redirect_aliases is set.
    """
    if not candidates:
        return []
    seen_canonical = set()
    keep = []
    for info in resolve_titles(client, candidates, lang):
        if not info.exists or info.is_disambiguation:
            continue
        if info.canonical in seen_canonical:
            continue
        seen_canonical.add(info.canonical)
        keep.append(info.input_title if show_redirect_aliases else info.canonical)
    return keep


def candidate_score(candidate: str, query: str) -> int:
    """Exact +100, prefix +60, prefix with a "(qualifier)" +50 more, substring +10."""
    x = candidate.lower()
    q = query.lower()
    starts = x.startswith(q)
    score = 0
    if x == q:
        score += 100
    if starts:
        score += 60
    if starts and "(" in x:
        score += 50  # e.g. "Mercury (planet)" for "Mercury"
    if q in x:
        score += 10
    return score


def rank_candidates(candidates: Sequence[str], query: str) -> List[str]:
    # sorted() is stable, equal scores keep concatenation order
    return sorted(candidates, key=lambda c: -candidate_score(c, query))


def search_candidates(
    client: WikiClient,
    title: str,
    lang: str,
    limit: int = DEFAULT_SUGGESTION_LIMIT,
) -> List[str]:
    """Run the four search strategies in parallel, rank, dedupe and filter."""
    strategies = [
        (SearchMode.NEAR_MATCH, title, limit),
        (SearchMode.PREFIX, title, min(PREFIX_SEARCH_CAP, limit)),
        (SearchMode.FULL_TEXT, title, limit),
        # surfaces qualified variants such as "Name (island)"
        (SearchMode.PREFIX, f"{title} (", limit),
    ]
    with ThreadPoolExecutor(max_workers=MAX_PARALLEL_REQUESTS) as pool:
        futures = [pool.submit(client.search, query, lang, mode, n) for mode, query, n in strategies]
        results = [f.result() for f in futures]

    candidates = [t for hits in results for t in hits]
    ranked = uniq(rank_candidates(candidates, title))
    return filter_candidates(client, ranked, lang)[:limit]


def resolve_wiki_title(
    title: str,
    lang: str = DEFAULT_LANG,
    with_alternatives: bool = True,
    limit: int = DEFAULT_SUGGESTION_LIMIT,
    client: Optional[WikiClient] = None,
) -> ResolutionResult:
    """
    Map a possibly ambiguous or misspelled title to one canonical article.

    The exact lookup and the alternative search run independently. On success
    the canonical title leads the suggestion list; on failure the list holds
    only the filtered alternatives.
    """
    title = (title or "").strip()
    if not title:
        raise ValueError("title must not be empty")
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")
    client = client or WikiClient()

    with ThreadPoolExecutor(max_workers=2) as pool:
        exact_f = pool.submit(resolve_titles, client, [title], lang)
        alternatives_f = pool.submit(search_candidates, client, title, lang, limit) if with_alternatives else None
        exact = exact_f.result()[0]
        alternatives = alternatives_f.result() if alternatives_f else []

    if exact.exists and not exact.is_disambiguation:
        canonical = exact.canonical
        log.info(f"Resolved {title!r} -> {canonical!r} ({lang})")
        return ResolutionResult(
            ok=True,
            title=canonical,
            suggestions=[canonical] + [s for s in alternatives if s != canonical],
        )

    reason = ResolutionFailure.DISAMBIGUATION if exact.exists else ResolutionFailure.MISSING
    log.info(f"Could not resolve {title!r} ({lang}): {reason.value}, {len(alternatives)} suggestion(s)")
    return ResolutionResult(ok=False, reason=reason, suggestions=alternatives[:limit])


# -----------------------------------------------------------------------------
# Scoring
# -----------------------------------------------------------------------------
VERDICT_THRESHOLDS = (
    (85.0, Verdict.EXCELLENT),
    (60.0, Verdict.GOOD),
    (40.0, Verdict.MODERATE),
)

# Contribution name -> weight that bounds it
TERM_WEIGHTS = {
    "references": "references",
    "citation_needed": "citation_needed_penalty",
    "problem_templates": "problem_templates_penalty",
    "recency": "recency",
    "revert": "revert",
    "talk": "talk_penalty",
    "length": "length",
    "structure": "structure",
    "quality": "quality_bonus",
    "protection": "protection_bonus",
    "editor_diversity": "editor_diversity",
}


@dataclass(frozen=True)
class HighlightRule:
    id: str
    kind: HighlightKind
    term: str
    applies: Callable[[Signals], bool]


def _has_quality_badge(s: Signals) -> bool:
    return s.is_featured_article or s.is_good_article


POS, NEG = HighlightKind.POSITIVE, HighlightKind.NEGATIVE

STRONG_HIGHLIGHT_RULES = (
    HighlightRule("many_references", POS, "references", lambda s: s.reference_count >= 15),
    HighlightRule("recently_edited", POS, "recency", lambda s: s.days_since_last_edit <= 30),
    HighlightRule("stable_history", POS, "revert", lambda s: s.unique_editors > 0 and s.revert_rate <= 0.05),
    HighlightRule("comprehensive", POS, "length", lambda s: s.word_count >= 1500),
    HighlightRule("well_structured", POS, "structure", lambda s: s.heading_count >= 4),
    HighlightRule("featured_article", POS, "quality", lambda s: s.is_featured_article),
    HighlightRule("good_article", POS, "quality", lambda s: s.is_good_article and not s.is_featured_article),
    HighlightRule("protected", POS, "protection", lambda s: s.is_protected),
    HighlightRule("many_editors", POS, "editor_diversity", lambda s: s.unique_editors >= 5),

    HighlightRule("many_citation_needed", NEG, "citation_needed", lambda s: s.citation_needed >= 3),
    HighlightRule("problem_templates", NEG, "problem_templates", lambda s: s.problem_templates >= 1),
    HighlightRule("no_references", NEG, "references", lambda s: s.reference_count == 0),
    HighlightRule("stale", NEG, "recency", lambda s: s.days_since_last_edit > 365),
    HighlightRule("frequent_reverts", NEG, "revert", lambda s: s.revert_rate >= 0.2),
    HighlightRule("talk_page_disputes", NEG, "talk", lambda s: s.talk_issues >= 4),
    HighlightRule("very_short", NEG, "length", lambda s: s.word_count < 300),
    HighlightRule("stub", NEG, "quality", lambda s: s.is_stub and not _has_quality_badge(s)),
)

# Only consulted for a Weak verdict with no strong negative
SOFT_NEGATIVE_RULES = (
    HighlightRule("few_references", NEG, "references", lambda s: s.reference_count < 5),
    HighlightRule("some_citation_needed", NEG, "citation_needed", lambda s: s.citation_needed >= 1),
    HighlightRule("not_recently_edited", NEG, "recency", lambda s: s.days_since_last_edit > 180),
    HighlightRule("some_reverts", NEG, "revert", lambda s: s.revert_rate >= 0.1),
    HighlightRule("talk_page_issues", NEG, "talk", lambda s: s.talk_issues >= 1),
    HighlightRule("short_article", NEG, "length", lambda s: s.word_count < 800),
    HighlightRule("little_structure", NEG, "structure", lambda s: s.heading_count < 2),
    HighlightRule("few_editors", NEG, "editor_diversity", lambda s: s.unique_editors < 3),
)

HIGHLIGHT_LABELS = {
    "many_references": "Well referenced (15+ inline citations)",
    "recently_edited": "Edited within the last month",
    "stable_history": "Few reverts in recent history",
    "comprehensive": "Comprehensive length",
    "well_structured": "Clear section structure",
    "featured_article": "Featured article",
    "good_article": "Good article",
    "protected": "Page is protected",
    "many_editors": "Many different editors",
    "many_citation_needed": "Several [citation needed] markers",
    "problem_templates": "Maintenance/problem templates present",
    "no_references": "No inline references",
    "stale": "Not edited in over a year",
    "frequent_reverts": "Frequent reverts (edit warring)",
    "talk_page_disputes": "Disputes on the talk page",
    "very_short": "Very short article",
    "stub": "Marked as a stub",
    "few_references": "Few references",
    "some_citation_needed": "Some [citation needed] markers",
    "not_recently_edited": "Not edited in the last six months",
    "some_reverts": "Some reverts in recent history",
    "talk_page_issues": "Issues raised on the talk page",
    "short_article": "Short article",
    "little_structure": "Little section structure",
    "few_editors": "Few different editors",
    FALLBACK_HIGHLIGHT: "Several small weaknesses add up",
}


def verdict_for(score: float) -> Verdict:
    for bound, verdict in VERDICT_THRESHOLDS:
        if score >= bound:
            return verdict
    return Verdict.WEAK


def check_rejection(s: Signals, rules: RejectRules) -> Optional[RejectionReason]:
    """First matching hard rule, in fixed priority order."""
    if rules.citation_needed_greater_than is not None and s.citation_needed > rules.citation_needed_greater_than:
        return RejectionReason.CITATION_NEEDED
    if rules.has_problem_templates and s.problem_templates > 0:
        return RejectionReason.PROBLEM_TEMPLATES
    if rules.revert_rate_above is not None and s.revert_rate > rules.revert_rate_above:
        return RejectionReason.REVERT_RATE
    if rules.days_since_last_edit_above is not None and s.days_since_last_edit > rules.days_since_last_edit_above:
        return RejectionReason.STALE
    return None


def score_contributions(s: Signals, w: Weights) -> Dict[str, float]:
    """Signed contribution of every term, in evaluation order."""
    c: Dict[str, float] = {}
    c["references"] = min(w.references, s.reference_count * (w.references / REFERENCES_FULL_AT))
    c["citation_needed"] = -min(
        w.citation_needed_penalty, s.citation_needed * (w.citation_needed_penalty / CITATION_NEEDED_FULL_AT)
    )
    c["problem_templates"] = -min(
        w.problem_templates_penalty, s.problem_templates * (w.problem_templates_penalty / PROBLEM_TEMPLATES_FULL_AT)
    )
    c["recency"] = (
        0.0 if s.days_since_last_edit > RECENCY_WINDOW_DAYS
        else w.recency * (1 - s.days_since_last_edit / RECENCY_WINDOW_DAYS)
    )
    # Bounded by the weight only through revert_rate being in [0, 1]
    c["revert"] = w.revert * (1 - s.revert_rate)
    c["talk"] = -min(w.talk_penalty, s.talk_issues * (w.talk_penalty / TALK_ISSUES_FULL_AT))

    if s.word_count > 0:
        c["length"] = w.length * (min(s.word_count, IDEAL_WORD_COUNT) / IDEAL_WORD_COUNT)
    else:
        c["length"] = 0.0
    c["structure"] = w.structure * (min(s.heading_count, IDEAL_HEADING_COUNT) / IDEAL_HEADING_COUNT)

    if s.is_featured_article:
        c["quality"] = w.quality_bonus
    elif s.is_good_article:
        c["quality"] = w.quality_bonus * QUALITY_PARTIAL_FACTOR
    elif s.is_stub:
        c["quality"] = -w.quality_bonus * QUALITY_PARTIAL_FACTOR
    else:
        c["quality"] = 0.0

    c["protection"] = w.protection_bonus if s.is_protected else 0.0
    c["editor_diversity"] = w.editor_diversity * (min(s.unique_editors, IDEAL_EDITOR_COUNT) / IDEAL_EDITOR_COUNT)
    return c


def _magnitude(rule: HighlightRule, contributions: Mapping[str, float], w: Weights) -> float:
    value = contributions[rule.term]
    if rule.kind is HighlightKind.POSITIVE:
        return value
    if value < 0:
        return -value
    # additive term that fell short: the points it did not earn
    return max(0.0, getattr(w, TERM_WEIGHTS[rule.term]) - value)


def _matching_highlights(
    rules: Iterable[HighlightRule],
    s: Signals,
    contributions: Mapping[str, float],
    w: Weights,
) -> List[Highlight]:
    out = []
    for rule in rules:
        if not rule.applies(s):
            continue
        magnitude = _magnitude(rule, contributions, w)
        if magnitude > 0:
            out.append(Highlight(rule.id, rule.kind, magnitude))
    return out


def _top(highlights: Sequence[Highlight], n: int = MAX_HIGHLIGHTS) -> List[Highlight]:
    return sorted(highlights, key=lambda h: -h.magnitude)[:n]


def select_highlights(
    s: Signals,
    w: Weights,
    contributions: Mapping[str, float],
    verdict: Verdict,
) -> Tuple[List[Highlight], List[Highlight]]:
    """
    Top positives and negatives by magnitude.

    A Weak verdict always gets at least one negative: softer thresholds
    first, then the generic fallback tag.
    """
    hits = _matching_highlights(STRONG_HIGHLIGHT_RULES, s, contributions, w)
    positives = _top([h for h in hits if h.kind is HighlightKind.POSITIVE])
    negatives = _top([h for h in hits if h.kind is HighlightKind.NEGATIVE])

    if verdict is Verdict.WEAK and not negatives:
        negatives = _top(_matching_highlights(SOFT_NEGATIVE_RULES, s, contributions, w))
        if not negatives:
            negatives = [Highlight(FALLBACK_HIGHLIGHT, HighlightKind.NEGATIVE, 0.0)]
    return positives, negatives


def apply_policy(signals: Signals, policy: Policy = DEFAULT_POLICY) -> ScoreResult:
    """Score Signals under a Policy. Pure: same input, same result."""
    reason = check_rejection(signals, policy.reject_if)
    if reason is not None:
        log.info(f"Rejected by policy: {reason.value}")
        return ScoreResult(score=0.0, verdict=Verdict.WEAK, rejected=True, reason=reason)

    contributions = score_contributions(signals, policy.weights)
    score = 0.0
    for value in contributions.values():
        score += value
    score = clamp(score)
    verdict = verdict_for(score)
    positives, negatives = select_highlights(signals, policy.weights, contributions, verdict)
    return ScoreResult(
        score=score,
        verdict=verdict,
        positives=positives,
        negatives=negatives,
        contributions=contributions,
    )


def merge_policy(overrides: Optional[Mapping[str, Any]] = None, base: Policy = DEFAULT_POLICY) -> Policy:
    """
    Policy from a JSON-shaped mapping {"weights": {...}, "reject_if": {...}}.

    Missing weights come from base; a present reject_if replaces base's rules.
    """
    if not overrides:
        return base
    _check_field_names(Policy, overrides, "policy section")
    return base.with_overrides(weights=overrides.get("weights"), reject_if=overrides.get("reject_if"))


def policy_to_dict(policy: Policy) -> Dict[str, Any]:
    return dataclasses.asdict(policy)


# -----------------------------------------------------------------------------
# URLs and Evidence
# -----------------------------------------------------------------------------
def parse_wiki_url(url: str) -> Optional[WikiTarget]:
    """Title and language of a Wikipedia article URL, or None."""
    try:
        parsed = urlparse((url or "").strip())
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None

    ext = _TLD_EXTRACT(parsed.hostname)
    if ext.domain != "wikipedia" or ext.suffix != "org":
        return None
    m = WIKI_SUBDOMAIN.match(ext.subdomain)
    if not m:
        return None
    lang = m.group(1)

    if parsed.path.startswith("/wiki/"):
        raw_title = unquote(parsed.path[len("/wiki/"):])
    elif parsed.path == "/w/index.php":
        raw_title = (parse_qs(parsed.query).get("title") or [""])[0]
    else:
        raw_title = ""

    raw_title = raw_title.split("#")[0].replace("_", " ")
    title = TALK_PREFIX.sub("", raw_title).strip()
    if not title:
        return None
    return WikiTarget(title=title, lang=lang)


def evidence_links(title: str, lang: str = "en") -> List[EvidenceLink]:
    t = quote(title, safe="")
    return [
        EvidenceLink("Article", ARTICLE_URL_TEMPLATE.format(lang=lang, title=t)),
        EvidenceLink("History", HISTORY_URL_TEMPLATE.format(lang=lang, title=t)),
        EvidenceLink("Talk", TALK_URL_TEMPLATE.format(lang=lang, title=t)),
    ]


# -----------------------------------------------------------------------------
# Main Analysis
# -----------------------------------------------------------------------------
def analyze(
    title: Optional[str] = None,
    url: Optional[str] = None,
    lang: str = DEFAULT_LANG,
    policy: Policy = DEFAULT_POLICY,
    prefer_choice: bool = False,
    limit: int = DEFAULT_SUGGESTION_LIMIT,
    client: Optional[WikiClient] = None,
) -> Union[Analysis, Choice]:
    """
    Resolve, collect and score one article.

    A URL is taken at face value (no resolution). A title is resolved first;
    failure raises TitleNotFound or DisambiguationError with suggestions.
    """
    client = client or WikiClient()
    resolved_from = None
    suggestions: List[str] = []

    if url is not None:
        target = parse_wiki_url(url)
        if target is None:
            raise InvalidWikiUrl(url)
        title, lang = target.title, target.lang
    elif title is not None:
        res = resolve_wiki_title(title, lang, limit=limit, client=client)
        if not res.ok:
            if res.reason is ResolutionFailure.DISAMBIGUATION:
                raise DisambiguationError(title, res.suggestions)
            raise TitleNotFound(title, res.suggestions)
        canonical = res.title or title
        suggestions = res.suggestions
        resolved_from = title if canonical != title else None
        if prefer_choice:
            return Choice(suggestions=suggestions, lang=lang, resolved_from=resolved_from)
        title = canonical

    if not title:
        raise ValueError("title or url required")

    signals = collect_signals(title, lang, client=client)
    result = apply_policy(signals, policy)
    return Analysis(
        title=title,
        lang=lang,
        signals=signals,
        result=result,
        evidence=evidence_links(title, lang),
        policy=policy,
        resolved_from=resolved_from,
        suggestions=suggestions,
    )


# -----------------------------------------------------------------------------
# Report Generation
# -----------------------------------------------------------------------------
def highlight_to_dict(h: Highlight) -> Dict[str, Any]:
    return {"id": h.id, "type": h.kind.value, "label": HIGHLIGHT_LABELS.get(h.id, h.id), "magnitude": h.magnitude}


def score_result_to_dict(r: ScoreResult) -> Dict[str, Any]:
    return {
        "score": r.score,
        "verdict": r.verdict.value,
        "rejected": r.rejected,
        "reason": r.reason.value if r.reason else None,
        "highlights": {
            "positives": [highlight_to_dict(h) for h in r.positives],
            "negatives": [highlight_to_dict(h) for h in r.negatives],
        },
        "contributions": dict(r.contributions),
    }


def analysis_to_dict(a: Analysis) -> Dict[str, Any]:
    """Convert an Analysis to a JSON-serializable dict."""
    out = score_result_to_dict(a.result)
    out.update({
        "title": a.title,
        "lang": a.lang,
        "resolved_from": a.resolved_from,
        "suggestions": list(a.suggestions),
        "signals": dataclasses.asdict(a.signals),
        "evidence": [{"label": e.label, "url": e.url} for e in a.evidence],
        "policy": policy_to_dict(a.policy),
    })
    return out


def render_report_md(a: Analysis) -> str:
    """Generate markdown report."""
    r = a.result
    lines = []
    lines.append("# Wiki Reliability Report")
    lines.append(f"_Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}_\n")

    lines.append(f"## {a.title} ({a.lang})\n")
    if a.resolved_from:
        lines.append(f"**Resolved from:** {a.resolved_from}")
    lines.append(f"**Score:** {r.score:.1f} / 100")
    lines.append(f"**Verdict:** {r.verdict.value}")
    if r.rejected and r.reason:
        lines.append(f"**Rejected:** {r.reason.value}")

    if not r.rejected:
        lines.append("\n### Highlights\n")
        for h in r.positives:
            lines.append(f"- (+) {HIGHLIGHT_LABELS.get(h.id, h.id)}")
        for h in r.negatives:
            lines.append(f"- (-) {HIGHLIGHT_LABELS.get(h.id, h.id)}")
        if not r.positives and not r.negatives:
            lines.append("- No strong pluses or minuses")

    lines.append("\n### Signals\n")
    lines.append("| Signal | Value |")
    lines.append("|---|---|")
    for name, value in dataclasses.asdict(a.signals).items():
        if isinstance(value, float):
            value = f"{value:.2f}"
        lines.append(f"| {name} | {value} |")

    if r.contributions:
        lines.append("\n### Score Breakdown\n")
        for name, value in r.contributions.items():
            lines.append(f"- {name}: {value:+.2f}")

    lines.append("\n### Evidence")
    for e in a.evidence:
        lines.append(f"- [{e.label}]({e.url})")

    others = [s for s in a.suggestions if s != a.title]
    if others:
        lines.append("\n### Other Candidates")
        for s in others:
            lines.append(f"- {s}")

    return "\n".join(lines) + "\n"


# -----------------------------------------------------------------------------
# CLI
# -----------------------------------------------------------------------------
def positive_int(text: str) -> int:
    try:
        n = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {text!r}") from None
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {n}")
    return n


def parse_weight(text: str) -> Tuple[str, float]:
    name, sep, value = text.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {text!r}")
    try:
        return name.strip(), float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"weight {name!r} is not a number: {value!r}") from None


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Wiki Reliability - estimate how reliable a Wikipedia article is"
    )
    p.add_argument("title", nargs="?", default=None, help="Article title (resolved, may be approximate)")
    p.add_argument("--url", default=None, help="Wikipedia article URL (used as-is, sets the language)")
    p.add_argument("--lang", default=DEFAULT_LANG, help=f"Wikipedia language code (default: {DEFAULT_LANG})")
    p.add_argument("--profile", choices=sorted(PROFILES), default="normal")
    p.add_argument("--policy-file", default="", help="JSON file with weights / reject_if overrides")
    p.add_argument("--weight", action="append", type=parse_weight, default=[], metavar="NAME=VALUE",
                   help="Override one weight (repeatable)")
    p.add_argument("--choose", action="store_true", help="Only list candidate titles, do not score")
    p.add_argument("--limit", type=positive_int, default=DEFAULT_SUGGESTION_LIMIT,
                   help=f"Maximum number of suggestions (default: {DEFAULT_SUGGESTION_LIMIT})")
    p.add_argument("--timeout-s", type=float, default=DEFAULT_TIMEOUT_S)
    p.add_argument("--out-json", default="")
    p.add_argument("--out-md", default="")
    p.add_argument("--verbose", action="store_true")
    return p.parse_args(argv)


def build_policy(args: argparse.Namespace) -> Policy:
    policy = PROFILES[args.profile]
    if args.policy_file:
        with open(args.policy_file, "r", encoding="utf-8") as f:
            policy = merge_policy(json.load(f), base=policy)
    if args.weight:
        policy = policy.with_overrides(weights=dict(args.weight))
    return policy


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    if args.verbose:
        log.setLevel(logging.DEBUG)

    if not args.title and not args.url:
        print("Provide a title or --url.")
        return 2

    try:
        policy = build_policy(args)
    except (OSError, ValueError) as e:
        print(f"Invalid policy: {e}")
        return 2

    client = WikiClient(timeout_s=args.timeout_s)
    try:
        outcome = analyze(
            title=args.title,
            url=args.url,
            lang=args.lang,
            policy=policy,
            prefer_choice=args.choose,
            limit=args.limit,
            client=client,
        )
    except ResolutionError as e:
        print(str(e))
        if e.suggestions:
            print("Did you mean:")
            for s in e.suggestions:
                print(f"  - {s}")
        return 1
    except (InvalidWikiUrl, ValueError) as e:
        print(str(e))
        return 2
    except NetworkFailure as e:
        print(f"Upstream request failed: {e}")
        return 3

    if isinstance(outcome, Choice):
        if outcome.resolved_from:
            print(f"Resolved from: {outcome.resolved_from}")
        print("Candidates:")
        for s in outcome.suggestions:
            print(f"  - {s}")
        return 0

    r = outcome.result
    print(f"{outcome.title} ({outcome.lang})")
    print(f"  Score:   {r.score:.1f}")
    print(f"  Verdict: {r.verdict.value}")
    if r.rejected and r.reason:
        print(f"  Rejected: {r.reason.value}")
    for h in r.positives:
        print(f"  + {HIGHLIGHT_LABELS.get(h.id, h.id)}")
    for h in r.negatives:
        print(f"  - {HIGHLIGHT_LABELS.get(h.id, h.id)}")

    if args.out_json:
        with open(args.out_json, "w", encoding="utf-8") as f:
            json.dump(analysis_to_dict(outcome), f, ensure_ascii=False, indent=2)
        print(f"\nWrote: {args.out_json}")
    if args.out_md:
        with open(args.out_md, "w", encoding="utf-8") as f:
            f.write(render_report_md(outcome))
        print(f"Wrote: {args.out_md}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
