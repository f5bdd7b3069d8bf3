"""Find sentence- and heading-level matches of a term inside article HTML.

This is a deliberately light heuristic rather than a DOM walk: headings are
located with a regex, the HTML between two headings is flattened to text and
cut into sentences on terminal punctuation.

Attribution rules relied on by the UI and the CSV export:

* a match inside a heading is attributed to the heading *before* it;
* matches in body text are attributed to the nearest preceding heading;
* with no headings at all, every match has an empty heading;
* text before the first heading is not searched when headings exist.
"""

from __future__ import annotations

import re
from typing import List

from app.services.kb.models import MatchContext

HEADING_PATTERN = re.compile(r"<h([1-6]).*?>(.*?)</h\1>", re.IGNORECASE)
TAG_PATTERN = re.compile(r"<.*?>")
WHITESPACE_PATTERN = re.compile(r"\s+")
SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")

HIGHLIGHT_OPEN = "<mark>"
HIGHLIGHT_CLOSE = "</mark>"


def highlight(text: str, term: str) -> str:
    """Wrap every case-insensitive occurrence of ``term`` in the highlight marker."""
    if not term:
        return text
    pattern = re.compile(re.escape(term), re.IGNORECASE)
    return pattern.sub(lambda m: f"{HIGHLIGHT_OPEN}{m.group(0)}{HIGHLIGHT_CLOSE}", text)


def _contains(text: str, term_lower: str) -> bool:
    return term_lower in text.lower()


def _section_matches(section_html: str, term: str, heading: str) -> List[MatchContext]:
    text = WHITESPACE_PATTERN.sub(" ", TAG_PATTERN.sub(" ", section_html))
    term_lower = term.lower()
    matches: List[MatchContext] = []
    for sentence in SENTENCE_BOUNDARY.split(text):
        if _contains(sentence, term_lower):
            matches.append(
                MatchContext(
                    heading=heading,
                    context=sentence.strip(),
                    highlighted_context=highlight(sentence, term).strip(),
                )
            )
    return matches


def find_matches_in_html(html: str, term: str) -> List[MatchContext]:
    """Return match contexts for ``term`` in document order.

    An empty term matches nothing.
    """
    if not term or not html:
        return []

    term_lower = term.lower()
    matches: List[MatchContext] = []
    last_heading = ""
    last_index = 0
    found_headings = False

    for heading_match in HEADING_PATTERN.finditer(html):
        found_headings = True
        heading_text = TAG_PATTERN.sub("", heading_match.group(2))

        if _contains(heading_text, term_lower):
            trimmed = heading_text.strip()
            matches.append(
                MatchContext(
                    heading=last_heading,
                    context=trimmed,
                    highlighted_context=highlight(trimmed, term),
                )
            )

        if last_index > 0:
            section_html = html[last_index : heading_match.start()]
            matches.extend(_section_matches(section_html, term, last_heading))

        last_heading = heading_text
        last_index = heading_match.end()

    if not found_headings:
        matches.extend(_section_matches(html, term, ""))
    elif last_index < len(html):
        matches.extend(_section_matches(html[last_index:], term, last_heading))

    return matches
