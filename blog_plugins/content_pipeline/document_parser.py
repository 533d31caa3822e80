"""
Turn one raw content unit (YAML front matter + body) into a Document.

Parsing is a pure function of its input. Every failure is a
``MalformedContent`` naming the offending field; slug uniqueness is not
checked here because the parser only ever sees one document.
"""

import re
from datetime import date, datetime, time, timezone
from pathlib import PurePosixPath
from typing import Any, List, Optional, Tuple

import yaml

from blog_plugins.content_pipeline.authors import AuthorRegistry
from blog_plugins.content_pipeline.errors import MalformedContent
from blog_plugins.content_pipeline.models import (
    BodyNode,
    ComponentReference,
    Document,
    DocumentKind,
    RawContent,
    TextNode,
)

# Module scope regex variables

FM_PATTERN = re.compile(r"^---\s*\n(.*?)\n---\s*\n?", re.DOTALL)
COMPONENT_PATTERN = re.compile(
    r"{{<\s*(?P<name>[A-Za-z0-9_.-]+)(?P<params>(?:\s+[A-Za-z_][\w-]*=\"[^\"]*\")*)\s*>}}"
)
PARAM_PATTERN = re.compile(r"([A-Za-z_][\w-]*)=\"([^\"]*)\"")
FENCE_PATTERN = re.compile(r"^(\s*)(`{3,}|~{3,})")

NEWSLETTER_DIRS = ("newsletter", "newsletters")
CONTENT_SUFFIXES = (".md", ".mdx")


# Front-matter helpers


def split_front_matter(source_text: str) -> Tuple[dict, str, int]:
    """
    Return (front_matter_dict, body_text, body_first_line).
    If there is no front matter, dict={} and the body is the whole text.
    """
    m = FM_PATTERN.match(source_text)
    if not m:
        return {}, source_text, 1
    try:
        fm = yaml.safe_load(m.group(1)) or {}
    except yaml.YAMLError as exc:
        raise MalformedContent("front_matter", f"invalid YAML: {exc}") from exc
    except ValueError as exc:
        # PyYAML builds implicit timestamps eagerly, e.g. `date: 2023-13-45`
        raise MalformedContent("date", f"not a valid date-time: {exc}") from exc
    if not isinstance(fm, dict):
        raise MalformedContent("front_matter", "front matter must be a mapping")
    body_first_line = source_text.count("\n", 0, m.end()) + 1
    return fm, source_text[m.end():], body_first_line


def normalize_tags(raw: Any) -> Tuple[str, ...]:
    """Normalize a tags value into an ordered tuple of unique, non-empty strings."""
    if raw is None:
        return ()
    if isinstance(raw, (list, tuple)):
        candidates = raw
    elif isinstance(raw, str):
        candidates = raw.split(",")
    else:
        candidates = [raw]
    seen = set()
    result: List[str] = []
    for item in candidates:
        text = str(item).strip()
        if text and text not in seen:
            seen.add(text)
            result.append(text)
    return tuple(result)


def slugify(value: str) -> str:
    s = str(value).strip().lower()
    s = re.sub(r"[^\w\s-]", "", s)
    s = re.sub(r"[\s_]+", "-", s)
    return re.sub(r"-{2,}", "-", s).strip("-")


def derive_slug(source_path: str) -> str:
    """
    Slug from the identifying path component:
    - ``posts/hello-world.md`` -> ``hello-world``
    - ``posts/hello-world/index.mdx`` -> ``hello-world``
    """
    path = PurePosixPath(source_path.replace("\\", "/"))
    stem = path.stem
    if stem == "index" and path.parent.name:
        stem = path.parent.name
    return slugify(stem)


def parse_datetime(value: Any) -> datetime:
    """Coerce a front matter date value into an aware UTC datetime.

    Naive values are taken as UTC so that every publish date compares.
    """
    if isinstance(value, bool) or value is None:
        raise MalformedContent("date", "missing publish date")
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise MalformedContent("date", "missing publish date")
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise MalformedContent("date", f"not a valid date-time: {value!r}") from None
    else:
        raise MalformedContent("date", f"not a valid date-time: {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _required_text(fm: dict, key: str) -> str:
    value = fm.get(key)
    if value is None or isinstance(value, (dict, list, bool)):
        raise MalformedContent(key, "missing or not a string")
    text = str(value).strip()
    if not text:
        raise MalformedContent(key, "must not be empty")
    return text


def _optional_text(fm: dict, *keys: str) -> Optional[str]:
    for key in keys:
        value = fm.get(key)
        if value is None:
            continue
        if isinstance(value, (dict, list, bool)):
            raise MalformedContent(key, "must be a string")
        text = str(value).strip()
        if text:
            return text
    return None


def _document_kind(fm: dict, source_path: str) -> DocumentKind:
    raw = fm.get("kind")
    if raw is None:
        first = PurePosixPath(source_path).parts[0] if "/" in source_path else ""
        return DocumentKind.NEWSLETTER if first.lower() in NEWSLETTER_DIRS else DocumentKind.POST
    try:
        return DocumentKind(str(raw).strip().lower())
    except ValueError:
        raise MalformedContent("kind", f"unknown kind {raw!r}") from None


def _issue_number(fm: dict) -> Optional[int]:
    raw = fm.get("issue")
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise MalformedContent("issue", "must be an integer")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    raise MalformedContent("issue", f"must be an integer, got {raw!r}")


# Body tokenization


def parse_params(raw: str) -> Tuple[Tuple[str, str], ...]:
    return tuple(PARAM_PATTERN.findall(raw or ""))


def parse_body(body: str, first_line: int = 1) -> Tuple[BodyNode, ...]:
    """Split a body into text and component-reference nodes, in source order.

    Shortcodes inside fenced code blocks are kept as text.
    """
    nodes: List[BodyNode] = []
    buffer: List[str] = []
    in_code = False
    fence = None

    def flush():
        if buffer:
            nodes.append(TextNode("".join(buffer)))
            buffer.clear()

    for offset, line in enumerate(body.splitlines(keepends=True)):
        m_fence = FENCE_PATTERN.match(line)
        if m_fence:
            token = m_fence.group(2)
            if not in_code:
                in_code, fence = True, token
            elif token[0] == fence[0] and len(token) >= len(fence):
                in_code, fence = False, None
            buffer.append(line)
            continue
        if in_code:
            buffer.append(line)
            continue

        pos = 0
        for m in COMPONENT_PATTERN.finditer(line):
            if m.start() > pos:
                buffer.append(line[pos:m.start()])
            flush()
            nodes.append(
                ComponentReference(
                    name=m.group("name"),
                    params=parse_params(m.group("params")),
                    line=first_line + offset,
                )
            )
            pos = m.end()
        if pos < len(line):
            buffer.append(line[pos:])

    flush()
    return tuple(nodes)


def parse_document(raw: RawContent, authors: Optional[AuthorRegistry] = None) -> Document:
    """Parse one content unit; raise ``MalformedContent`` on any bad field."""
    try:
        return _parse(raw, authors)
    except MalformedContent as exc:
        if exc.source_path is None:
            raise MalformedContent(exc.field, exc.message, raw.source_path) from exc
        raise


def _parse(raw: RawContent, authors: Optional[AuthorRegistry]) -> Document:
    try:
        text = raw.data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise MalformedContent("encoding", f"not valid UTF-8: {exc}") from exc
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    fm, body, first_line = split_front_matter(text)

    title = _required_text(fm, "title")
    published = parse_datetime(fm.get("date", fm.get("pubDate")))
    author = _required_text(fm, "author")
    if authors is not None and author not in authors:
        raise MalformedContent("author", f"unknown author '{author}'")
    if not slugify(author):
        raise MalformedContent("author", f"author '{author}' has no usable characters")

    explicit_slug = _optional_text(fm, "slug")
    slug = slugify(explicit_slug) if explicit_slug else derive_slug(raw.source_path)
    if not slug:
        raise MalformedContent("slug", "slug resolves to an empty string")

    tags = normalize_tags(fm.get("tags"))
    for tag in tags:
        if not slugify(tag):
            raise MalformedContent("tags", f"tag '{tag}' has no usable characters")
    series = _optional_text(fm, "series")
    if series is not None and not slugify(series):
        raise MalformedContent("series", f"series '{series}' has no usable characters")

    draft = fm.get("draft", False)
    if not isinstance(draft, bool):
        raise MalformedContent("draft", "must be true or false")

    return Document(
        slug=slug,
        title=title,
        author=author,
        published=published,
        kind=_document_kind(fm, raw.source_path),
        source_path=raw.source_path,
        description=_optional_text(fm, "description", "summary") or "",
        tags=tags,
        thumbnail=_optional_text(fm, "thumbnail", "image"),
        cover=_optional_text(fm, "cover"),
        series=series,
        issue=_issue_number(fm),
        draft=draft,
        body=parse_body(body, first_line),
    )
