"""Plain-text snippets of HTML course material for the LLM context."""

import re

from bs4 import BeautifulSoup

_SPACES_RE = re.compile(r"[ \t]+")
_LINE_EDGE_RE = re.compile(r"[ \t]*\n[ \t]*")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def strip_html(text: str) -> str:
    """
    Convert HTML to plain text.

    ``<br>`` becomes a line break and every closing ``</p>`` a blank line;
    entities are decoded by the parser.
    """
    if not text or not isinstance(text, str):
        return ""
    soup = BeautifulSoup(text, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for paragraph in soup.find_all("p"):
        paragraph.append("\n\n")

    text = soup.get_text(" ").replace("\xa0", " ")
    text = _SPACES_RE.sub(" ", text)
    text = _LINE_EDGE_RE.sub("\n", text)
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()


def build_snippet(material: str, max_chars: int = 0) -> str:
    """Strip markup and cap at ``max_chars`` (0 disables the cap), appending ``...`` when cut."""
    cleaned = strip_html(material)
    if not cleaned:
        return ""
    if max_chars > 0 and len(cleaned) > max_chars:
        return f"{cleaned[:max_chars].strip()}..."
    return cleaned
