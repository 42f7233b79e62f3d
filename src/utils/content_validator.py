"""Content validation and quality classification for retrieved review text.

Two stages:

* :class:`ContentGate` runs inside every channel before it reports success
  and rejects challenge pages, paywall stubs and implausible content.
* :class:`QualityClassifier` runs on gated text, strips trailing website
  boilerplate and assigns a completeness tier.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from src.models.retrieval import FailureKind, QualityVerdict, Tier

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Stage A: gate
# ---------------------------------------------------------------------------

# Phrases that only show up on interstitials, never in article prose
CHALLENGE_TEXT_PHRASES = [
    "access to this page has been denied",
    "please verify you are human",
    "verify you are a human",
    "are you a robot",
    "checking your browser before accessing",
    "checking if the site connection is secure",
    "attention required! | cloudflare",
    "press & hold to confirm you are",
    "please complete the security check",
    "please enable js and disable any ad blocker",
    "solve the captcha",
]

# Markup signatures of the big bot-protection vendors
CHALLENGE_MARKUP_SIGNATURES = [
    "px-captcha",
    "captcha.px-cloud.net",
    "window._pxappid",
    "geo.captcha-delivery.com",
    "cf-challenge",
    "cf-browser-verification",
    "challenge-form",
    "_incapsula_resource",
    "g-recaptcha",
    "h-captcha",
]

PAYWALL_PATTERNS = [
    re.compile(p, re.I)
    for p in (
        r"subscribe\s+to\s+(continue|read|keep\s+reading|access)",
        r"sign\s+in\s+to\s+(continue|read|keep\s+reading|access|view)",
        r"log\s+in\s+to\s+(continue|read|access|view)",
        r"to\s+continue\s+reading",
        r"for\s+subscribers\s+only",
        r"members?\s+only",
        r"already\s+a\s+(member|subscriber)",
        r"become\s+a\s+(member|subscriber)",
        r"create\s+(a\s+)?(free\s+)?account\s+to",
        r"unlock\s+(this\s+)?(story|article|content)",
        r"get\s+unlimited\s+access",
        r"free\s+trial",
        r"premium\s+(content|article|access)",
        r"subscribers?\s+(only|content)",
        r"exclusive\s+(content|access)",
        r"\bpaywall",
    )
]

AD_BLOCKER_PATTERNS = [
    re.compile(p, re.I)
    for p in (
        r"we\s+(noticed|detected|see)\s+(that\s+)?you('re|\s+are)?\s+(using|have)\s+an?\s+ad\s*block",
        r"turn\s+off\s+(your\s+)?ad\s*block",
        r"disable\s+(your\s+)?ad\s*block",
        r"whitelist\s+(this\s+)?(site|domain|our)",
        r"advertising\s+revenue\s+helps",
    )
]

ERROR_PAGE_PATTERNS = [
    re.compile(p, re.I)
    for p in (
        r"page\s+not\s+found",
        r"\b404\s+(error|not\s+found)",
        r"error\s+404",
        r"sorry[,.]?\s+(we\s+)?couldn'?t\s+find",
        r"the\s+page\s+you('re|\s+are)\s+looking\s+for",
        r"(this\s+)?(page|article|content)\s+(is\s+)?(no\s+longer|not)\s+(available|exists?)",
        r"has\s+been\s+(removed|deleted|taken\s+down)",
        r"we\s+can'?t\s+find\s+(that|the)\s+(page|article)",
    )
]

LEGAL_PAGE_PATTERNS = [
    re.compile(p, re.I | re.M)
    for p in (
        r"^privacy\s+policy",
        r"^terms\s+(of\s+)?(use|service)",
        r"^cookie\s+(policy|notice|consent)",
        r"^legal\s+(notice|disclaimer)",
    )
]

NEWSLETTER_PATTERNS = [
    re.compile(p, re.I)
    for p in (
        r"thanks?\s+for\s+subscribing",
        r"sign\s+up\s+for\s+(our\s+)?newsletter",
        r"subscribe\s+to\s+(our\s+)?newsletter",
        r"newsletter\s+sign[-\s]?up",
        r"email\s+address\s+required",
    )
]

NAVIGATION_PATTERNS = [
    re.compile(p, re.I | re.M)
    for p in (
        r"^(home|about|contact|faq|help|support|careers|advertise)\s*$",
        r"skip\s+to\s+(main\s+)?content",
        r"search\s+(this\s+)?(site|website)",
        r"related\s+(articles?|stories|posts)",
        r"popular\s+(articles?|stories|posts)",
        r"latest\s+(articles?|stories|news)",
        r"trending\s+(now|stories|articles)",
        r"see\s+all\s+(articles?|stories|reviews)",
        r"^\s*(prev(ious)?|next)\s*(article|story|post)?\s*$",
    )
]

# Film coverage that a bad selector or redirect put in place of the review
WRONG_CONTENT_PATTERNS = [
    re.compile(p, re.I)
    for p in (
        r"insidious",
        r"horror\s*(film|movie|sequel)",
        r"terrifying\s+sequel",
        r"haunted\s+(family|house|lambert)",
        r"spirit\s+world",
        r"scary\s+movies?",
    )
]

# Substring matches, so "act" also counts "actor" and "acting"
THEATER_KEYWORDS = [
    "broadway", "theater", "theatre", "musical", "stage", "performance",
    "actor", "actress", "cast", "director", "choreographer", "playwright",
    "curtain", "audience", "applause", "intermission", "act", "scene",
    "costume", "lighting", "set design", "orchestra", "score", "libretto",
    "tony", "revival", "premiere", "opening night", "standing ovation",
    "encore", "production", "staging", "direction", "book", "lyrics",
    "ensemble", "understudy", "matinee", "off-broadway", "west end",
    "playbill",
]
MIN_THEATER_KEYWORDS = 3

URL_ONLY = re.compile(r"^https?://\S+\s*$", re.I)

MIN_PLAUSIBLE_CHARS = 100
PAYWALL_STUB_CHARS = 1000
SHORT_PAGE_CHARS = 1500


@dataclass
class GateResult:
    kind: Optional[FailureKind] = None
    reason: str = ""

    @property
    def passed(self) -> bool:
        return self.kind is None


def _first_match(patterns, text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None


class ContentGate:
    """Rejects content that must never be stored as a successful retrieval."""

    def check(self, raw: str, text: str) -> GateResult:
        raw = raw or ""
        text = (text or "").strip()
        text_lower = text.lower()
        raw_lower = raw.lower()

        for phrase in CHALLENGE_TEXT_PHRASES:
            if phrase in text_lower:
                return GateResult(FailureKind.BLOCKED, f"challenge text: {phrase!r}")
        if len(text) < SHORT_PAGE_CHARS:
            for signature in CHALLENGE_MARKUP_SIGNATURES:
                if signature in raw_lower:
                    return GateResult(
                        FailureKind.BLOCKED, f"challenge markup: {signature!r}"
                    )

        if len(text) < PAYWALL_STUB_CHARS:
            match = _first_match(PAYWALL_PATTERNS, text)
            if match:
                return GateResult(
                    FailureKind.PAYWALLED,
                    f"subscription gate {match!r} with only {len(text)} chars",
                )

        reason = self.garbage_reason(text)
        if reason:
            return GateResult(FailureKind.GARBAGE, reason)
        return GateResult()

    def garbage_reason(self, text: str) -> Optional[str]:
        if not text:
            return "empty content"
        if len(text) < MIN_PLAUSIBLE_CHARS:
            return f"content too short ({len(text)} chars)"
        if URL_ONLY.match(text):
            return "content is only a URL"
        if text.lower().startswith(("http://", "https://")) and len(text) < 1000:
            first = text.split(None, 1)[0]
            if len(first) > len(text) * 0.5:
                return "content is mostly a URL"

        # Interstitial wording inside a full-length article is usually quoted
        # prose or a footer, so these only apply to short pages.
        if len(text) < SHORT_PAGE_CHARS:
            for label, patterns in (
                ("ad blocker message", AD_BLOCKER_PATTERNS),
                ("paywall/subscription prompt", PAYWALL_PATTERNS),
                ("error/404 page", ERROR_PAGE_PATTERNS),
                ("legal/privacy page", LEGAL_PAGE_PATTERNS),
                ("newsletter form", NEWSLETTER_PATTERNS),
            ):
                match = _first_match(patterns, text)
                if match:
                    return f"{label}: {match!r}"

        nav_hits = [m.group(0) for m in (p.search(text) for p in NAVIGATION_PATTERNS) if m]
        lines = [line for line in text.split("\n") if line.strip()]
        short_lines = [line for line in lines if len(line.strip()) < 30]
        short_ratio = len(short_lines) / len(lines) if lines else 0.0
        if (short_ratio > 0.7 and len(nav_hits) >= 2) or len(nav_hits) >= 5:
            return f"navigation junk ({len(nav_hits)} patterns matched)"

        wrong = _first_match(WRONG_CONTENT_PATTERNS, text)
        if wrong:
            text_lower = text.lower()
            theater_hits = sum(1 for kw in THEATER_KEYWORDS if kw in text_lower)
            if theater_hits < MIN_THEATER_KEYWORDS:
                return f"horror/film content: {wrong!r}"
        return None


# ---------------------------------------------------------------------------
# Stage B: classify
# ---------------------------------------------------------------------------

# Trailing website junk, each anchored to a line start so a phrase in the
# middle of a sentence is never cut.
TRAILING_JUNK_PATTERNS = [
    (
        "correction_note",
        re.compile(
            r"\n\s*(When we learn of a mistake|If you spot an error|"
            r"A version of this (article|review) appear)[\s\S]*$",
            re.I,
        ),
    ),
    (
        "share_block",
        re.compile(
            r"\n\s*(Share full article|Related Content|Advertisement|Share this)\b[\s\S]*$",
            re.I,
        ),
    ),
    ("more_from", re.compile(r"\n\s*More from\b[\s\S]*$", re.I)),
    # Any run of trailing link lines goes in one pass
    ("link_lines", re.compile(r"(\n[ \t]*(Learn more|See All)[ \t]*)+$", re.I)),
    (
        "related_header",
        re.compile(
            r"\n\s*(Related|Also Read|You May Also Like|More Stories|Recommended)"
            r"[ \t]*(:|\n)[\s\S]*$",
            re.I,
        ),
    ),
]

MAX_STRIP_ITERATIONS = 10


def normalize_whitespace(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\u00a0", " ")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r" ?\n ?", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


class BoilerplateStripper:
    """Applies the trailing-junk patterns until the text stops changing."""

    def __init__(self, patterns=None, max_iterations: int = MAX_STRIP_ITERATIONS):
        self.patterns = list(patterns or TRAILING_JUNK_PATTERNS)
        self.max_iterations = max_iterations

    def strip(self, text: str) -> str:
        current = normalize_whitespace(text or "")
        for _ in range(self.max_iterations):
            previous = current
            for _name, pattern in self.patterns:
                # Repeat each pattern until it stops matching at the tail
                for _ in range(self.max_iterations):
                    current, count = pattern.subn("", current)
                    current = current.rstrip()
                    if not count:
                        break
            current = normalize_whitespace(current)
            if current == previous:
                return current
        logger.debug(
            f"Boilerplate stripping hit the {self.max_iterations} iteration ceiling"
        )
        return current


SEVERE_SIGNALS = frozenset(
    {
        "has_paywall_text",
        "has_read_more_prompt",
        "ends_with_ellipsis",
        "shorter_than_excerpt",
    }
)

ENDING_PUNCTUATION = re.compile(r"[.!?\"'”’)]$")
ELLIPSIS_ENDING = re.compile(r"(\.{3}|…)$")
PAYWALL_TAIL = re.compile(
    r"\bsubscribe|\bsign.?in\b|\blog.?in\b|create.?account|\bmembers?.?only", re.I
)
READ_MORE_TAIL = re.compile(
    r"continue.?reading|read.?more|read.?the.?full|full.?article|full.?review", re.I
)
FOOTER_TAIL = re.compile(r"privacy.?policy|terms.?of.?use|all.?rights.?reserved|©", re.I)

# Endings that look unpunctuated but are how many reviews legitimately close.
# Each must run to the very end of the text, allowing only trailing
# punctuation, so a credit or price earlier in the paragraph never counts.
_AT_END = r"[\s.,;:)\]]*$"

LEGITIMATE_ENDINGS = [
    # Street address: "236 W. 45th St." / "1681 Broadway"
    re.compile(
        r"\b\d{1,5}\s+([NSEW]\.?\s+|West\s+|East\s+)?([\w.]+\s+){0,2}"
        r"(St|Street|Ave|Avenue|Pl|Place|Broadway)" + _AT_END,
        re.I,
    ),
    # Phone number
    re.compile(r"\(?\b\d{3}\)?[-.\s]\d{3}[-.\s]\d{4}" + _AT_END),
    # Ticket price or ticketing site
    re.compile(r"(\$\d[\d,]*(\.\d{2})?|\b[\w-]+\.(com|org|net)(/\S*)?)" + _AT_END, re.I),
    # Labelled info line: "Tickets: $59-$199 at the box office"
    re.compile(r"^(tickets?|box office|running time|run time)\s*:[^\n]{0,80}$", re.I),
    # Running time: "2 hours 30 minutes", "90 minutes, no intermission"
    re.compile(
        r"\b\d+\s*(hours?|hrs?|minutes|mins?)\b"
        r"([\s,]+(with|including|and)?\s*(one|an|no|\d+)\s+intermissions?)?" + _AT_END,
        re.I,
    ),
    re.compile(r"\b(one|an|no)\s+intermissions?" + _AT_END, re.I),
    # Engagement dates: "through Jan. 5", "through March 12, 2026"
    re.compile(r"\bthrough\s+[A-Za-z]+\.?\s+\d{1,2}(,\s*\d{4})?" + _AT_END, re.I),
    # Credit line ending in a capitalized name: "directed by Sam Gold"
    re.compile(
        r"\b(?i:written|directed|music|book|lyrics|choreography)\s+(?i:by)\s+"
        r"[A-Z][\w.'-]*(\s+[A-Z][\w.'-]*){0,3}" + _AT_END
    ),
    # Venue: "at the Hudson Theatre"
    re.compile(r"\b(?i:at\s+the)\s+([A-Z][\w.'-]*\s+){1,4}(?i:theat(er|re))" + _AT_END),
]

# Title separators: colon, hyphen, en dash, em dash
TITLE_SEPARATORS = re.compile(r"[:\-\u2013\u2014]")
MIN_TITLE_SEGMENT_CHARS = 4


def _last_line(text: str) -> str:
    return text.rsplit("\n", 1)[-1].strip()


def _contains_topic(text: str, topic_keyword: str) -> bool:
    """True when the text names the topic or any substantial part of its title.

    "Harry Potter and the Cursed Child: Parts One and Two" is matched by a
    review that only says "Harry Potter and the Cursed Child".
    """
    topic = (topic_keyword or "").strip().lower()
    if not topic:
        return True
    haystack = text.lower()
    if topic in haystack:
        return True
    if topic.startswith("the ") and topic[4:] in haystack:
        return True
    for segment in TITLE_SEPARATORS.split(topic):
        segment = segment.strip()
        if len(segment) >= MIN_TITLE_SEGMENT_CHARS and segment in haystack:
            return True
    return False


class QualityClassifier:
    """Assigns a completeness tier to gated text."""

    FULL_MIN_CHARS = 1500
    FULL_MIN_WORDS = 300
    EXCERPT_MAX_CHARS = 500
    PAYWALL_WINDOW = 500

    def __init__(self, stripper: BoilerplateStripper | None = None):
        self.stripper = stripper or BoilerplateStripper()

    def detect_signals(self, text: str, excerpt: str | None = None) -> list[str]:
        signals: list[str] = []
        trimmed = text.strip()
        if not trimmed:
            return signals
        tail = trimmed[-self.PAYWALL_WINDOW :]

        ends_with_punctuation = bool(ENDING_PUNCTUATION.search(trimmed))
        if not ends_with_punctuation:
            signals.append("no_ending_punctuation")
        if ELLIPSIS_ENDING.search(trimmed):
            signals.append("ends_with_ellipsis")
        if PAYWALL_TAIL.search(tail):
            signals.append("has_paywall_text")
        if READ_MORE_TAIL.search(tail):
            signals.append("has_read_more_prompt")
        if FOOTER_TAIL.search(tail):
            signals.append("has_footer_text")
        excerpt_len = len((excerpt or "").strip())
        if excerpt_len > 100 and len(trimmed) < excerpt_len * 1.5:
            signals.append("shorter_than_excerpt")
        if trimmed[-1].islower() and not ends_with_punctuation:
            signals.append("possible_mid_word_cutoff")
        return signals

    def has_legitimate_ending(self, text: str) -> bool:
        last = _last_line(text)
        return any(p.search(last) for p in LEGITIMATE_ENDINGS)

    def classify(
        self, text: str, topic_keyword: str = "", excerpt: str | None = None
    ) -> QualityVerdict:
        cleaned = self.stripper.strip(text or "")
        if not cleaned:
            return QualityVerdict(tier=Tier.MISSING, signals=[], cleaned_text="")

        word_count = len(cleaned.split())
        signals = self.detect_signals(cleaned, excerpt)
        if self.has_legitimate_ending(cleaned):
            # Only weak signals can be explained away by the ending
            signals = [s for s in signals if s in SEVERE_SIGNALS]

        severe = [s for s in signals if s in SEVERE_SIGNALS]
        weak = [s for s in signals if s not in SEVERE_SIGNALS]

        if severe or len(weak) >= 2:
            tier = Tier.TRUNCATED
        elif (
            not signals
            and len(cleaned) > self.FULL_MIN_CHARS
            and word_count > self.FULL_MIN_WORDS
            and _contains_topic(cleaned, topic_keyword)
        ):
            tier = Tier.FULL
        elif len(cleaned) < self.EXCERPT_MAX_CHARS:
            tier = Tier.EXCERPT
        else:
            tier = Tier.PARTIAL

        return QualityVerdict(
            tier=tier, signals=signals, cleaned_text=cleaned, word_count=word_count
        )
