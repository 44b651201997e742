"""
Sanitização de HTML e conversão Markdown <-> HTML para textos vindos do
provedor ou gerados por IA (resumos de processo).
"""
import html
import logging
import re
from typing import Any, List

from bs4 import BeautifulSoup
from bs4.element import PreformattedString, Tag

logger = logging.getLogger(__name__)

ALLOWED_TAGS = frozenset(
    {
        "p", "br", "strong", "b", "em", "i", "u",
        "h1", "h2", "h3", "h4", "h5", "h6",
        "ul", "ol", "li", "blockquote", "code", "pre", "span", "a",
    }
)
# Conteúdo destes elementos nunca é texto exibível
_DROP_WITH_CONTENT = ["script", "style"]

_CONTROL_AND_SPACE_RE = re.compile(r"[\x00-\x20\x7f]+")
_SCRIPT_BLOCK_RE = re.compile(r"<\s*(script|style)\b[^>]*>.*?<\s*/\s*\1\s*>", re.I | re.S)
_COMMENT_RE = re.compile(r"<!--.*?-->|<![^>]*>|<\?[^>]*>", re.S)
_TAG_RE = re.compile(r"<\s*(/?)\s*([a-zA-Z][a-zA-Z0-9:-]*)([^>]*)>")
_HREF_RE = re.compile(r"""href\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s>]+))""", re.I)


def is_javascript_url(value: Any) -> bool:
    text = _CONTROL_AND_SPACE_RE.sub("", str(value or ""))
    return text.lower().startswith("javascript:")


# ───── sanitize_html ─────


def _sanitize_dom(raw: str) -> str:
    soup = BeautifulSoup(raw, "html.parser")

    for node in soup.find_all(string=lambda s: isinstance(s, PreformattedString)):
        node.extract()
    for tag in soup.find_all(_DROP_WITH_CONTENT):
        tag.decompose()

    for tag in soup.find_all(True):
        if not isinstance(tag, Tag) or tag.decomposed:
            continue
        if tag.name not in ALLOWED_TAGS:
            tag.unwrap()
            continue
        href = tag.attrs.get("href") if tag.name == "a" else None
        tag.attrs = {}
        if href is not None:
            if isinstance(href, list):
                href = " ".join(href)
            if not is_javascript_url(href):
                tag.attrs["href"] = href

    return soup.decode(formatter="minimal")


def _sanitize_regex(raw: str) -> str:
    text = _SCRIPT_BLOCK_RE.sub("", raw)
    text = _COMMENT_RE.sub("", text)

    def _rebuild(match: "re.Match[str]") -> str:
        closing, name, attrs = match.group(1), match.group(2).lower(), match.group(3)
        if name not in ALLOWED_TAGS:
            return ""
        if closing:
            return f"</{name}>"
        if name == "a":
            href_match = _HREF_RE.search(attrs)
            if href_match:
                href = next(g for g in href_match.groups() if g is not None)
                if not is_javascript_url(href):
                    return f'<a href="{html.escape(href, quote=True)}">'
        return f"<{name}>"

    return _TAG_RE.sub(_rebuild, text)


def sanitize_html(raw: Any) -> str:
    """
    Mantém apenas as tags da allow-list. Tags proibidas são "desembrulhadas"
    (o texto interno é preservado); atributos são removidos, exceto `href`
    em `<a>`, que também cai quando aponta para `javascript:`.
    """
    if not isinstance(raw, str) or not raw:
        return ""
    try:
        return _sanitize_dom(raw)
    except Exception:
        logger.warning("Falha ao sanitizar HTML via DOM; usando fallback por regex.", exc_info=True)
        return _sanitize_regex(raw)


# ───── HTML -> markdown simplificado ─────


def _link_to_markdown(match: "re.Match[str]") -> str:
    href = next((g for g in match.group(1, 2, 3) if g is not None), "")
    return f"[{match.group(4)}]({href})"


_HTML_TO_MD_RULES = (
    (re.compile(r"<\s*br\s*/?\s*>", re.I), "\n"),
    (re.compile(r"<\s*strong[^>]*>(.*?)<\s*/\s*strong\s*>", re.I | re.S), r"**\1**"),
    (re.compile(r"<\s*em[^>]*>(.*?)<\s*/\s*em\s*>", re.I | re.S), r"*\1*"),
    (re.compile(r"<\s*b(?:\s[^>]*)?>(.*?)<\s*/\s*b\s*>", re.I | re.S), r"**\1**"),
    (re.compile(r"<\s*i(?:\s[^>]*)?>(.*?)<\s*/\s*i\s*>", re.I | re.S), r"*\1*"),
    (re.compile(r"<\s*h1[^>]*>(.*?)<\s*/\s*h1\s*>", re.I | re.S), r"# \1\n"),
    (re.compile(r"<\s*h2[^>]*>(.*?)<\s*/\s*h2\s*>", re.I | re.S), r"## \1\n"),
    (re.compile(r"<\s*h3[^>]*>(.*?)<\s*/\s*h3\s*>", re.I | re.S), r"### \1\n"),
    (re.compile(r"<\s*h4[^>]*>(.*?)<\s*/\s*h4\s*>", re.I | re.S), r"#### \1\n"),
    (re.compile(r"<\s*h5[^>]*>(.*?)<\s*/\s*h5\s*>", re.I | re.S), r"##### \1\n"),
    (re.compile(r"<\s*h6[^>]*>(.*?)<\s*/\s*h6\s*>", re.I | re.S), r"###### \1\n"),
    (re.compile(r"<\s*blockquote[^>]*>(.*?)<\s*/\s*blockquote\s*>", re.I | re.S), r"> \1\n"),
    (re.compile(r"<\s*pre[^>]*>\s*<\s*code[^>]*>(.*?)<\s*/\s*code\s*>\s*<\s*/\s*pre\s*>", re.I | re.S), "```\n\\1\n```\n"),
    (re.compile(r"<\s*code[^>]*>(.*?)<\s*/\s*code\s*>", re.I | re.S), r"`\1`"),
    (re.compile(r"<\s*pre[^>]*>(.*?)<\s*/\s*pre\s*>", re.I | re.S), "```\n\\1\n```\n"),
    (re.compile(r"<\s*li[^>]*>(.*?)<\s*/\s*li\s*>", re.I | re.S), r"- \1\n"),
    (re.compile(r"<\s*(?:ul|ol)[^>]*>(.*?)<\s*/\s*(?:ul|ol)\s*>", re.I | re.S), r"\1\n"),
    (
        re.compile(
            r"""<\s*a\b[^>]*?href\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))[^>]*>(.*?)<\s*/\s*a\s*>""",
            re.I | re.S,
        ),
        _link_to_markdown,
    ),
    (re.compile(r"<\s*/\s*p\s*>", re.I), "\n\n"),
)
_ANY_TAG_RE = re.compile(r"<[^>]+>")
_EXTRA_BLANK_LINES_RE = re.compile(r"\n{3,}")


def html_to_markdownish(raw: Any) -> str:
    """Conversão lossy, só para re-renderizar resumos do provedor de forma simples."""
    if not isinstance(raw, str) or not raw:
        return ""
    text = raw
    for pattern, repl in _HTML_TO_MD_RULES:
        text = pattern.sub(repl, text)
    text = _ANY_TAG_RE.sub(" ", text)
    text = html.unescape(text)
    return _EXTRA_BLANK_LINES_RE.sub("\n\n", text).strip()


# ───── markdown -> HTML seguro ─────

_FENCE_RE = re.compile(r"```(.*?)```", re.S)
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*)$", re.M)
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"\*(.+?)\*")
_INLINE_CODE_RE = re.compile(r"`([^`]+)`")
_UL_ITEM_RE = re.compile(r"^-\s+(.*)$")
_OL_ITEM_RE = re.compile(r"^\d+\.\s+(.*)$")
_QUOTE_RE = re.compile(r"^&gt;\s+(.*)$", re.M)
_PARAGRAPH_SPLIT_RE = re.compile(r"\n{2,}")
_BLOCK_START_RE = re.compile(r"^\s*<(h\d|ul|ol|pre|blockquote)", re.I)
_PLACEHOLDER_RE = re.compile("\x00(\\d+)\x00")


def _escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _group_lists(text: str) -> str:
    out: List[str] = []
    items: List[str] = []
    kind = ""

    def flush() -> None:
        nonlocal items, kind
        if items:
            out.append(f"<{kind}>" + "".join(f"<li>{it}</li>" for it in items) + f"</{kind}>")
        items, kind = [], ""

    for line in text.split("\n"):
        ul, ol = _UL_ITEM_RE.match(line), _OL_ITEM_RE.match(line)
        current = "ul" if ul else "ol" if ol else ""
        if current and current != kind:
            flush()
            kind = current
        if current:
            item = (ul or ol).group(1).strip()
            if item:
                items.append(item)
            continue
        flush()
        out.append(line)
    flush()
    return "\n".join(out)


def markdown_to_html(md: Any) -> str:
    """
    Markdown simples (texto local ou gerado por IA) para HTML. O texto é
    escapado antes das substituições e o resultado passa por `sanitize_html`.
    """
    if not isinstance(md, str) or not md:
        return ""
    text = md.replace("\x00", "").replace("\r\n", "\n").replace("\t", "    ")
    text = _escape(text)

    # Blocos de código ficam fora das demais substituições
    fences: List[str] = []

    def _stash(match: "re.Match[str]") -> str:
        fences.append(f"<pre><code>{match.group(1)}</code></pre>")
        return f"\x00{len(fences) - 1}\x00"

    text = _FENCE_RE.sub(_stash, text)
    text = _HEADING_RE.sub(lambda m: f"<h{len(m.group(1))}>{m.group(2)}</h{len(m.group(1))}>", text)
    text = _BOLD_RE.sub(r"<strong>\1</strong>", text)
    text = _ITALIC_RE.sub(r"<em>\1</em>", text)
    text = _INLINE_CODE_RE.sub(r"<code>\1</code>", text)
    text = _group_lists(text)
    text = _QUOTE_RE.sub(r"<blockquote>\1</blockquote>", text)

    blocks = []
    for block in _PARAGRAPH_SPLIT_RE.split(text):
        if not block.strip():
            continue
        if _BLOCK_START_RE.match(block) or _PLACEHOLDER_RE.fullmatch(block.strip()):
            blocks.append(block)
        else:
            blocks.append("<p>" + block.replace("\n", "<br>") + "</p>")
    joined = "".join(blocks)
    joined = _PLACEHOLDER_RE.sub(lambda m: fences[int(m.group(1))], joined)
    return sanitize_html(joined)
