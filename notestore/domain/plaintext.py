"""
Plain-text projection of note content.

Search indexing and word counts work on a plain-text rendering of the
stored payload. HTML is flattened with BeautifulSoup; Markdown is rendered
to HTML first and flattened the same way.
"""

from dataclasses import dataclass
from enum import Enum

import markdown
from bs4 import BeautifulSoup


class ContentType(str, Enum):
    """Format of a note's ``content`` payload."""

    HTML = "html"
    MARKDOWN = "markdown"
    PLAIN = "plain"
    CUSTOM = "custom"


_MARKDOWN_EXTENSIONS = ["extra", "sane_lists"]


def html_to_text(html_content: str) -> str:
    """Extract visible text from HTML, one block per line."""
    soup = BeautifulSoup(html_content, "html.parser")

    for element in soup(["script", "style"]):
        element.decompose()

    text = soup.get_text(separator="\n")
    lines = (" ".join(line.split()) for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def markdown_to_text(source: str) -> str:
    html_body = markdown.markdown(
        source,
        extensions=_MARKDOWN_EXTENSIONS,
        output_format="html5",
    )
    return html_to_text(html_body)


def plain_to_text(source: str) -> str:
    lines = (" ".join(line.split()) for line in source.splitlines())
    return "\n".join(line for line in lines if line)


def to_plaintext(content: str | None, content_type: ContentType | str = ContentType.HTML) -> str:
    """
    Render stored content as plain text.

    Custom payloads keep their rendered form in ``content`` and are treated
    as HTML.
    """
    if not content:
        return ""
    match ContentType(content_type):
        case ContentType.MARKDOWN:
            return markdown_to_text(content)
        case ContentType.PLAIN:
            return plain_to_text(content)
        case ContentType.HTML | ContentType.CUSTOM:
            return html_to_text(content)


@dataclass(frozen=True)
class TextStats:
    plaintext: str
    word_count: int
    character_count: int


def analyze(content: str | None, content_type: ContentType | str = ContentType.HTML) -> TextStats:
    """Plain text plus word and character counts for a payload."""
    text = to_plaintext(content, content_type)
    return TextStats(
        plaintext=text,
        word_count=len(text.split()),
        character_count=len(text),
    )


def build_snippet(
    text: str,
    terms: list[str],
    *,
    open_marker: str = "<mark>",
    close_marker: str = "</mark>",
    ellipsis: str = "...",
    max_tokens: int = 30,
) -> str:
    """
    Highlighted excerpt around the first token matching any term.

    Used when the full-text index is unavailable and matches come from a
    substring scan. Matching is case-insensitive and by substring.
    """
    tokens = text.split()
    if not tokens:
        return ""

    needles = [term.casefold() for term in terms if term]

    def matches(token: str) -> bool:
        folded = token.casefold()
        return any(needle in folded for needle in needles)

    first = next((i for i, token in enumerate(tokens) if matches(token)), 0)
    start = max(0, min(first - max_tokens // 4, len(tokens) - max_tokens))
    end = min(len(tokens), start + max_tokens)

    excerpt = " ".join(
        f"{open_marker}{token}{close_marker}" if matches(token) else token
        for token in tokens[start:end]
    )
    if start > 0:
        excerpt = ellipsis + excerpt
    if end < len(tokens):
        excerpt = excerpt + ellipsis
    return excerpt
