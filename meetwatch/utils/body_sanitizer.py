"""Turn Gmail message bodies into plain text for storage and for the meeting prompt.

Usage:
    from meetwatch.utils.body_sanitizer import sanitize_email_body, PROMPT_PIPELINE

    stored = sanitize_email_body(raw_html, content_type="html")
    for_prompt = sanitize_email_body(stored, pipeline=PROMPT_PIPELINE)
"""

import html
import re
from typing import Callable

from bs4 import BeautifulSoup

# (text, content_type) -> text
Sanitizer = Callable[[str, str], str]

TRUNCATION_MARKER = "\n[truncated]"


def html_to_text(text: str, content_type: str) -> str:
    """Convert HTML to plain text, keeping block structure as newlines."""
    if content_type.lower() != "html" or not text.strip():
        return text

    soup = BeautifulSoup(text, "lxml")
    for el in soup(["script", "style", "head", "meta", "link"]):
        el.decompose()
    # Gmail wraps the quoted history in this container
    for el in soup.select("div.gmail_quote, blockquote"):
        el.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for tag in soup.find_all(["p", "div", "tr", "li", "h1", "h2", "h3", "h4"]):
        tag.insert_before("\n")
        tag.insert_after("\n")

    return html.unescape(soup.get_text(separator=" "))


def decode_special_characters(text: str, content_type: str) -> str:
    """Drop zero-width characters and fold smart punctuation and line endings."""
    text = re.sub(r"[\u200b\u200c\u200d\ufeff]", "", text)
    replacements = {
        "\u2018": "'", "\u2019": "'",
        "\u201c": '"', "\u201d": '"',
        "\u2013": "-", "\u2014": "-",
        "\u2026": "...",
        "\u00a0": " ",
        "\r\n": "\n", "\r": "\n",
    }
    for old, new in replacements.items():
        text = text.replace(old, new)
    return text


_BANNER_PATTERNS = [
    re.compile(r"^(WARNING|CAUTION|EXTERNAL):\s*(This\s+)?(external\s+)?e?-?mail.*$", re.I),
    re.compile(r"^You don't often get e?-?mail from\s+.+$", re.I),
    re.compile(r"^\[?\s*EXTERNAL\s*\]?:?\s*$", re.I),
    re.compile(r"^.*Do\s+not\s+click\s+(on\s+)?links\s+or\s+open\s+attachments\s+unless.*$", re.I),
]


def remove_security_banners(text: str, content_type: str) -> str:
    """Remove external-sender warnings some gateways prepend to every message."""
    return "\n".join(
        line for line in text.split("\n") if not any(p.match(line.strip()) for p in _BANNER_PATTERNS)
    )


# Gmail often breaks "On <date> <name> <addr>" and "wrote:" across two lines
_QUOTE_HEADER = re.compile(r"^On\s.{5,200}?\n?.{0,120}?wrote:\s*$", re.I | re.M)
_ORIGINAL_MESSAGE = re.compile(r"^-{3,}\s*(Original|Forwarded)\s+Message\s*-{3,}\s*$", re.I | re.M)
_OUTLOOK_HEADER = re.compile(r"^From:\s.+\n(Sent|Date):\s.+$", re.I | re.M)


def remove_quoted_replies(text: str, content_type: str) -> str:
    """Cut everything from the first quoted-reply header, and drop '>' lines."""
    cut = len(text)
    for pattern in (_QUOTE_HEADER, _ORIGINAL_MESSAGE, _OUTLOOK_HEADER):
        m = pattern.search(text)
        if m:
            cut = min(cut, m.start())
    text = text[:cut]
    return "\n".join(line for line in text.split("\n") if not line.lstrip().startswith(">"))


_SIGNOFF = re.compile(r"^((best|kind|warm)\s+)?(regards|thanks|thank you|sincerely|cheers|best),?\s*$", re.I)


def remove_signatures(text: str, content_type: str) -> str:
    """Cut at the '-- ' delimiter or a sign-off line in the last few lines."""
    lines = text.split("\n")
    for i, line in enumerate(lines):
        if line.rstrip() in ("--", "-- "):
            lines = lines[:i]
            break
    for i, line in enumerate(lines):
        if len(lines) - i <= 6 and _SIGNOFF.match(line.strip()):
            lines = lines[:i]
            break
    return "\n".join(lines)


def normalize_whitespace(text: str, content_type: str) -> str:
    """Collapse horizontal whitespace, keep at most one blank line in a row."""
    text = re.sub(r"[^\S\n]+", " ", text)
    result: list[str] = []
    for line in (line.strip() for line in text.split("\n")):
        if not line and result and not result[-1]:
            continue
        result.append(line)
    return "\n".join(result).strip()


def truncate_body(text: str, max_chars: int) -> str:
    """Cap text at max_chars, appending a marker when anything was cut."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


# What gets stored as Message.body_text
STORAGE_PIPELINE: list[Sanitizer] = [
    decode_special_characters,
    html_to_text,
    remove_security_banners,
    normalize_whitespace,
]

# What the calendar parser shows the model: only the new text of each message
PROMPT_PIPELINE: list[Sanitizer] = [
    decode_special_characters,
    html_to_text,
    remove_security_banners,
    remove_quoted_replies,
    remove_signatures,
    normalize_whitespace,
]


def sanitize_email_body(
    text: str,
    content_type: str = "text",
    pipeline: list[Sanitizer] | None = None,
) -> str:
    """Run text through each step of pipeline (STORAGE_PIPELINE by default)."""
    if not text:
        return ""

    for sanitizer in (pipeline or STORAGE_PIPELINE):
        text = sanitizer(text, content_type)

    return text
