"""
Confirmation email classifier.

Decides whether an email acknowledges a submitted job application.
Pure text patterns, no network access:

1. Normalize subject and body (markup, entities, quotes, whitespace, case)
2. Require at least one POSITIVE phrase
3. Reject on any NEGATIVE phrase (alerts, newsletters, events, failures)

Negative patterns win: a real confirmation that also looks like a digest is
skipped rather than recorded.
"""

import re
import warnings
from typing import Optional

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning

# Phrases that acknowledge an application
POSITIVE_PATTERNS = [
    r"\bthank(?:s| you) for (?:your )?(?:applying|applying to|your application|submitting your application)\b",
    r"\bthank(?:s| you) for (?:your )?interest in (?:joining|working)\b.*\bapplication\b",
    r"\bapplication (?:has been |was |is )?received\b",
    r"\b(?:we(?:'ve| have)? |have )?received your (?:job )?application\b",
    r"\b(?:your )?application (?:has been |was |is )?(?:successfully )?(?:submitted|sent|completed)\b",
    r"\b(?:you(?:'ve| have)? )?successfully (?:applied|submitted your application)\b",
    r"\bwe got your application\b",
    r"\bapplication confirmation\b",
]

# Job-adjacent noise that is not an acknowledgment
NEGATIVE_PATTERNS = [
    # Job alert digests
    r"\bjob alerts?\b",
    r"\bjobs? (?:recommended|picked) for you\b",
    r"\brecommended jobs?\b",
    r"\b\d+\+? new (?:jobs?|roles?|positions?|openings?)\b",
    r"\bnew jobs? (?:for|matching|near)\b",
    r"\bjobs you may be interested in\b",
    # Newsletters
    r"\bnewsletter\b",
    r"\bweekly (?:digest|roundup|update)\b",
    # Webinars and events
    r"\bwebinar\b",
    r"\bvirtual (?:event|career fair)\b",
    r"\bregister (?:now|today|here)\b",
    r"\bjoin us (?:for|at|on)\b",
    r"\bsave (?:the|your) (?:date|seat|spot)\b",
    # System / cron failure notices
    r"\bcron\b",
    r"\b(?:job|task|build|pipeline|workflow|run) (?:has )?failed\b",
    r"\bfailed (?:job|task|build|run)\b",
    r"\bexit (?:code|status) \d+\b",
    # Job-feed formatting: "Senior Engineer": Acme, Remote
    r"\"[^\"\n]{2,80}\"\s*:",
]

_POSITIVE = [re.compile(p) for p in POSITIVE_PATTERNS]
_NEGATIVE = [re.compile(p) for p in NEGATIVE_PATTERNS]

# A tag opener or an HTML entity; a bare "<" or "&" is plain text
_MARKUP = re.compile(r"<[a-zA-Z/!]|&(?:[a-zA-Z]+|#\d+|#x[0-9a-fA-F]+);")

_QUOTE_TRANSLATION = str.maketrans({
    "‘": "'", "’": "'", "‚": "'", "‛": "'", "′": "'", "`": "'",
    "“": '"', "”": '"', "„": '"', "‟": '"', "″": '"',
    "«": '"', "»": '"',
})


def normalize_text(text: Optional[str]) -> str:
    """
    Normalize email text for pattern matching.

    Args:
        text: Subject or body, possibly HTML, possibly None

    Returns:
        Plain, single-spaced, casefolded text with straight quotes
    """
    if not text:
        return ""

    if _MARKUP.search(text):
        with warnings.catch_warnings():
            # Plain snippets that look like URLs or paths are fine to parse
            warnings.simplefilter("ignore", MarkupResemblesLocatorWarning)
            soup = BeautifulSoup(text, "html.parser")
        for tag in soup(["script", "style", "head"]):
            tag.decompose()
        text = soup.get_text(separator=" ")

    text = text.replace("\xa0", " ")
    text = text.translate(_QUOTE_TRANSLATION)
    text = re.sub(r"\s+", " ", text)

    return text.strip().casefold()


def is_confirmation(subject: Optional[str], body: Optional[str]) -> bool:
    """
    Determine if an email confirms a job application.

    Args:
        subject: Email subject line
        body: Email body or snippet

    Returns:
        True if a positive phrase matches and no negative phrase does
    """
    text = f"{normalize_text(subject)} {normalize_text(body)}".strip()
    if not text:
        return False

    if not any(pattern.search(text) for pattern in _POSITIVE):
        return False

    return not any(pattern.search(text) for pattern in _NEGATIVE)
