"""Markup minifier passes.

Every pass runs on the working text after extraction. Placeholder tokens
contain no whitespace, quotes, '<', '>' or '=', so the passes below leave them
alone; the intertag pass additionally treats a token edge like a tag edge.
"""

from __future__ import annotations

import re
from collections.abc import Callable

from markup_compressor.config import ALL_TAGS, HtmlConfiguration, XmlConfiguration
from markup_compressor.patterns import COMMENT_RE
from markup_compressor.placeholders import TOKEN_PREFIX, TOKEN_SUFFIX

_PH_START = re.escape(TOKEN_PREFIX)
_PH_END = re.escape(TOKEN_SUFFIX)

# --- Whitespace ---
_INTERTAG_TAG_TAG_RE = re.compile(r">\s+<")
_INTERTAG_TAG_PLACEHOLDER_RE = re.compile(rf">\s+{_PH_START}")
_INTERTAG_PLACEHOLDER_TAG_RE = re.compile(rf"{_PH_END}\s+<")
_INTERTAG_PLACEHOLDER_PLACEHOLDER_RE = re.compile(rf"{_PH_END}\s+{_PH_START}")
_MULTISPACE_RE = re.compile(r"\s+")
_TAG_PROPERTY_RE = re.compile(r"(\s\w+)\s*=\s*(?=[^<]*?>)", re.IGNORECASE)
_TAG_END_SPACE_RE = re.compile(r"(<(?:[^>]+?))(?:\s+?)(/?>)", re.DOTALL)
_TAG_LAST_UNQUOTED_VALUE_RE = re.compile(r"=\s*[a-z0-9_-]+$", re.IGNORECASE)
_TAG_QUOTE_RE = re.compile(r"""\s*=\s*(["'])([a-z0-9_-]+?)\1(/?)(?=[^<]*?>)""", re.IGNORECASE)
_ALL_SURROUNDING_SPACES_RE = re.compile(r"\s*(<[^>]+>)\s*", re.DOTALL)

# --- Doctype and attributes ---
_DOCTYPE_RE = re.compile(r"<!DOCTYPE[^>]*>", re.DOTALL | re.IGNORECASE)
_TAG_RE = re.compile(r"<([a-z][a-z0-9:-]*)(?:\s[^>]*)?>", re.IGNORECASE)
_END = r"(?=[\s/>])"
_JS_TYPE_ATTR_RE = re.compile(rf"""\stype\s*=\s*(["']?)(?:text|application)/javascript\1{_END}""", re.IGNORECASE)
_JS_LANGUAGE_ATTR_RE = re.compile(rf"""\slanguage\s*=\s*(["']?)javascript\1{_END}""", re.IGNORECASE)
_STYLE_TYPE_ATTR_RE = re.compile(rf"""\stype\s*=\s*(["']?)text/css\1{_END}""", re.IGNORECASE)
_LINK_TYPE_ATTR_RE = re.compile(rf"""\stype\s*=\s*(["']?)text/(?:css|plain)\1{_END}""", re.IGNORECASE)
_LINK_REL_STYLESHEET_RE = re.compile(r"""\srel\s*=\s*(["']?)(?:alternate\s+)?stylesheet\1""", re.IGNORECASE)
_FORM_METHOD_ATTR_RE = re.compile(rf"""\smethod\s*=\s*(["']?)get\1{_END}""", re.IGNORECASE)
_INPUT_TYPE_ATTR_RE = re.compile(rf"""\stype\s*=\s*(["']?)text\1{_END}""", re.IGNORECASE)
_BOOLEAN_ATTR_RE = re.compile(
    rf"""(\s(?:checked|selected|disabled|readonly))\s*=\s*(["']?)[\w-]*\2{_END}""", re.IGNORECASE
)
_REL_EXTERNAL_RE = re.compile(r"""\srel\s*=\s*(["']?)(?:alternate\s+)?external\1""", re.IGNORECASE)
_URL_ATTR = r"""(\s(?:href|src|cite|action)\s*=\s*["']?)"""
_HTTP_PROTOCOL_RE = re.compile(_URL_ATTR + r"http:(?=//)", re.IGNORECASE)
_HTTPS_PROTOCOL_RE = re.compile(_URL_ATTR + r"https:(?=//)", re.IGNORECASE)
_EVENT_JS_PROTOCOL_RE = re.compile(r"^javascript:\s*(.+)", re.DOTALL | re.IGNORECASE)

_XML_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)


def _rewrite_tags(text: str, names: frozenset[str] | None, rewrite: Callable[[str], str]) -> str:
    """Apply *rewrite* to every tag whose name is in *names* (all tags if None)."""

    def _replace(match: re.Match[str]) -> str:
        if names is not None and match.group(1).lower() not in names:
            return match.group(0)
        return rewrite(match.group(0))

    return _TAG_RE.sub(_replace, text)


def remove_comments(text: str) -> str:
    return COMMENT_RE.sub("", text)


def simplify_doctype(text: str) -> str:
    return _DOCTYPE_RE.sub("<!DOCTYPE html>", text)


def remove_script_attributes(text: str) -> str:
    """Drop type="text/javascript" and language="javascript" from <script> tags."""
    return _rewrite_tags(
        text,
        frozenset({"script"}),
        lambda tag: _JS_LANGUAGE_ATTR_RE.sub("", _JS_TYPE_ATTR_RE.sub("", tag)),
    )


def remove_style_attributes(text: str) -> str:
    return _rewrite_tags(text, frozenset({"style"}), lambda tag: _STYLE_TYPE_ATTR_RE.sub("", tag))


def remove_link_attributes(text: str) -> str:
    """Drop the type attribute from stylesheet <link> tags only."""

    def _rewrite(tag: str) -> str:
        if not _LINK_REL_STYLESHEET_RE.search(tag):
            return tag
        return _LINK_TYPE_ATTR_RE.sub("", tag)

    return _rewrite_tags(text, frozenset({"link"}), _rewrite)


def remove_form_attributes(text: str) -> str:
    return _rewrite_tags(text, frozenset({"form"}), lambda tag: _FORM_METHOD_ATTR_RE.sub("", tag))


def remove_input_attributes(text: str) -> str:
    return _rewrite_tags(text, frozenset({"input"}), lambda tag: _INPUT_TYPE_ATTR_RE.sub("", tag))


def simplify_boolean_attributes(text: str) -> str:
    """checked="checked" -> checked, same for selected, disabled and readonly."""
    return _rewrite_tags(text, None, lambda tag: _BOOLEAN_ATTR_RE.sub(r"\1", tag))


def _protocol_remover(pattern: re.Pattern[str]) -> Callable[[str], str]:
    def _rewrite(tag: str) -> str:
        # rel="external" links must keep their absolute URL
        if _REL_EXTERNAL_RE.search(tag):
            return tag
        return pattern.sub(r"\1", tag)

    return _rewrite


def remove_http_protocol(text: str) -> str:
    return _rewrite_tags(text, None, _protocol_remover(_HTTP_PROTOCOL_RE))


def remove_https_protocol(text: str) -> str:
    return _rewrite_tags(text, None, _protocol_remover(_HTTPS_PROTOCOL_RE))


def remove_javascript_protocol(handler: str) -> str:
    """Strip a leading 'javascript:' from an inline event handler value."""
    return _EVENT_JS_PROTOCOL_RE.sub(r"\1", handler, count=1)


def remove_intertag_spaces(text: str) -> str:
    text = _INTERTAG_TAG_TAG_RE.sub("><", text)
    text = _INTERTAG_TAG_PLACEHOLDER_RE.sub(">" + TOKEN_PREFIX, text)
    text = _INTERTAG_PLACEHOLDER_TAG_RE.sub(TOKEN_SUFFIX + "<", text)
    return _INTERTAG_PLACEHOLDER_PLACEHOLDER_RE.sub(TOKEN_SUFFIX + TOKEN_PREFIX, text)


def remove_multi_spaces(text: str) -> str:
    return _MULTISPACE_RE.sub(" ", text)


def remove_spaces_inside_tags(text: str) -> str:
    """Remove spaces around '=' and before the end of a tag."""
    text = _TAG_PROPERTY_RE.sub(r"\1=", text)

    def _end_space(match: re.Match[str]) -> str:
        # <input value=foo /> must keep the space, or the slash joins the value
        if match.group(2).startswith("/") and _TAG_LAST_UNQUOTED_VALUE_RE.search(match.group(1)):
            return f"{match.group(1)} {match.group(2)}"
        return match.group(1) + match.group(2)

    return _TAG_END_SPACE_RE.sub(_end_space, text)


def remove_quotes(text: str) -> str:
    """Remove quotes around attribute values made only of [a-z0-9_-]."""

    def _unquote(match: re.Match[str]) -> str:
        if not match.group(3).strip():
            return "=" + match.group(2)
        return f"={match.group(2)} {match.group(3)}"

    return _TAG_QUOTE_RE.sub(_unquote, text)


def surrounding_spaces_pattern(tags: str) -> re.Pattern[str]:
    """Pattern that captures a tag from *tags* (comma list or 'all') with its surrounding whitespace."""
    if tags == ALL_TAGS:
        return _ALL_SURROUNDING_SPACES_RE
    names = "|".join(re.escape(tag) for tag in tags.split(","))
    return re.compile(rf"\s*(</?(?:{names})(?:>|[\s/][^>]*>))\s*", re.DOTALL | re.IGNORECASE)


def remove_surrounding_spaces(text: str, tags: str) -> str:
    return surrounding_spaces_pattern(tags).sub(r"\1", text)


def minify_html(text: str, config: HtmlConfiguration) -> str:
    """Run the enabled HTML passes over the working text."""
    if config.remove_comments:
        text = remove_comments(text)
    if config.simple_doctype:
        text = simplify_doctype(text)
    if config.remove_script_attributes:
        text = remove_script_attributes(text)
    if config.remove_style_attributes:
        text = remove_style_attributes(text)
    if config.remove_link_attributes:
        text = remove_link_attributes(text)
    if config.remove_form_attributes:
        text = remove_form_attributes(text)
    if config.remove_input_attributes:
        text = remove_input_attributes(text)
    if config.simple_boolean_attributes:
        text = simplify_boolean_attributes(text)
    if config.remove_http_protocol:
        text = remove_http_protocol(text)
    if config.remove_https_protocol:
        text = remove_https_protocol(text)
    if config.remove_intertag_spaces:
        text = remove_intertag_spaces(text)
    if config.remove_multi_spaces:
        text = remove_multi_spaces(text)
    if config.remove_spaces_inside_tags:
        text = remove_spaces_inside_tags(text)
    if config.remove_quotes:
        text = remove_quotes(text)
    if config.remove_surrounding_spaces is not None:
        text = remove_surrounding_spaces(text, config.remove_surrounding_spaces)
    if config.trim:
        text = text.strip()
    return text


def minify_xml(text: str, config: XmlConfiguration) -> str:
    """Run the enabled XML passes over the working text."""
    if config.remove_comments:
        text = _XML_COMMENT_RE.sub("", text)
    if config.remove_intertag_spaces:
        text = remove_intertag_spaces(text)
    if config.trim:
        text = text.strip()
    return text
