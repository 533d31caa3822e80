"""
Write a BuildManifest to disk: manifest.json, one HTML fragment per page,
an RSS feed and a sitemap.

Output is deterministic: no wall-clock timestamps, sorted JSON keys,
LF newlines.
"""

import html
import json
import logging
from email.utils import format_datetime
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import htmlmin
import markdown

from blog_plugins.content_pipeline.models import BuildManifest, ManifestEntry, Navigation
from blog_plugins.content_pipeline.render_resolver import render_markup

log = logging.getLogger(f"mkdocs.plugins.{__name__}")

MARKDOWN_EXTENSIONS = ["fenced_code", "tables"]

HTMLMIN_DEFAULTS: Dict[str, Union[bool, str, Tuple[str, ...]]] = {
    "remove_comments": True,
    "remove_empty_space": True,
    "remove_all_empty_space": False,
    "reduce_empty_attributes": True,
    "reduce_boolean_attributes": False,
    "remove_optional_attribute_quotes": False,
    "convert_charrefs": True,
    "keep_pre": False,
    "pre_tags": ("pre", "textarea"),
    "pre_attr": "pre",
}


def write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if not content.endswith("\n"):
        content += "\n"
    path.write_text(content, encoding="utf-8", newline="\n")


def write_json(path: Path, data: Any) -> None:
    write_text(path, json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False))


def join_url(base: str, path: str) -> str:
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


# HTML pages


def minify_html(output: str, opts: Optional[dict] = None) -> str:
    """Minify HTML with the defaults above, overridden by recognized ``opts``."""
    output_opts = dict(HTMLMIN_DEFAULTS)
    for key, value in (opts or {}).items():
        if key in output_opts:
            output_opts[key] = value
        else:
            log.warning("htmlmin option '%s' not recognized", key)
    return htmlmin.minify(output, **output_opts)


def render_page_html(
    entry: ManifestEntry,
    navigation: Optional[Navigation] = None,
    manifest: Optional[BuildManifest] = None,
) -> str:
    """Render one entry as an <article> fragment.

    Text fragments go through Markdown with component markup inlined; the
    site's templates own the surrounding layout.
    """
    meta = entry.metadata
    body_html = markdown.markdown(render_markup(entry.tree), extensions=MARKDOWN_EXTENSIONS)

    parts = [
        f'<article class="content-page" data-slug="{html.escape(entry.slug, quote=True)}"'
        f' data-kind="{html.escape(meta.get("kind", ""), quote=True)}">',
        f"<h1>{html.escape(meta.get('title', entry.slug))}</h1>",
        f'<p class="content-meta"><time datetime="{html.escape(meta.get("published", ""), quote=True)}">'
        f"{html.escape(meta.get('published', '')[:10])}</time>"
        f" &middot; {html.escape(meta.get('author', ''))}</p>",
    ]
    cover = meta.get("cover")
    if cover:
        parts.append(f'<img class="content-cover" src="{html.escape(cover, quote=True)}" alt="">')
    parts.append(body_html)

    tags = meta.get("tags") or []
    if tags:
        parts.append(
            '<ul class="content-tags">'
            + "".join(f"<li>{html.escape(tag)}</li>" for tag in tags)
            + "</ul>"
        )

    if navigation is not None and manifest is not None:
        links = []
        for rel, slug in (("prev", navigation.previous), ("next", navigation.next)):
            target = manifest.entry_for_slug(slug) if slug else None
            if target is not None:
                title = html.escape(target.metadata.get("title", slug))
                links.append(f'<a rel="{rel}" href="../../{target.path}">{title}</a>')
        if links:
            parts.append('<nav class="content-nav">' + "".join(links) + "</nav>")

    parts.append("</article>")
    return "\n".join(parts)


def write_pages(
    manifest: BuildManifest,
    out_dir: Path,
    minify: bool = False,
    htmlmin_opts: Optional[dict] = None,
) -> int:
    count = 0
    for path, entry in manifest.entries.items():
        page = render_page_html(entry, manifest.navigation.get(entry.slug), manifest)
        if minify:
            page = minify_html(page, htmlmin_opts)
        write_text(Path(out_dir) / path / "index.html", page)
        count += 1
    log.debug(f"[content_pipeline] wrote {count} pages to {out_dir}")
    return count


# Feeds


def build_rss(
    manifest: BuildManifest,
    site_url: str,
    title: str,
    description: str = "",
    limit: int = 20,
) -> str:
    """RSS 2.0 over the newest ``limit`` entries (manifest order is newest first)."""
    entries = list(manifest.entries.values())[:limit]
    items = []
    for entry in entries:
        meta = entry.metadata
        link = join_url(site_url, entry.path)
        published = datetime.fromisoformat(meta["published"])
        lines = [
            "  <item>",
            f"    <title>{html.escape(meta.get('title', entry.slug))}</title>",
            f"    <link>{link}</link>",
            f'    <guid isPermaLink="true">{link}</guid>',
            f"    <pubDate>{format_datetime(published)}</pubDate>",
            f"    <author>{html.escape(meta.get('author', ''))}</author>",
        ]
        for tag in meta.get("tags") or []:
            lines.append(f"    <category>{html.escape(tag)}</category>")
        lines.append(f"    <description>{html.escape(meta.get('description', ''))}</description>")
        lines.append("  </item>")
        items.append("\n".join(lines))

    channel = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<rss version="2.0">',
        "<channel>",
        f"  <title>{html.escape(title)}</title>",
        f"  <link>{site_url.rstrip('/')}/</link>",
        f"  <description>{html.escape(description)}</description>",
    ]
    if entries:
        newest = datetime.fromisoformat(entries[0].metadata["published"])
        channel.append(f"  <lastBuildDate>{format_datetime(newest)}</lastBuildDate>")
    channel.extend(items)
    channel.extend(["</channel>", "</rss>"])
    return "\n".join(channel)


def build_sitemap(manifest: BuildManifest, site_url: str) -> str:
    urls: List[Tuple[str, Optional[str]]] = []
    for listing_path in sorted(manifest.listings):
        urls.append((join_url(site_url, listing_path), None))
    for entry in manifest.entries.values():
        urls.append((join_url(site_url, entry.path), entry.metadata["published"][:10]))

    items = []
    for url, lastmod in urls:
        lines = ["<url>", f"<loc>{html.escape(url)}</loc>"]
        if lastmod:
            lines.append(f"<lastmod>{lastmod}</lastmod>")
        lines.append("</url>")
        items.append("\n".join(lines))
    return "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
            "\n".join(items),
            "</urlset>",
        ]
    )


def emit_build(
    manifest: BuildManifest,
    out_dir: Path,
    base_url: str = "",
    site_name: str = "Blog",
    site_description: str = "",
    feed_limit: int = 20,
    minify: bool = False,
    htmlmin_opts: Optional[dict] = None,
) -> List[Path]:
    """Write every artifact for ``manifest`` under ``out_dir``; return the files written.

    ``base_url`` is the public URL of ``out_dir``; without it the feed and the
    sitemap are skipped.
    """
    out_dir = Path(out_dir)
    written = []

    manifest_path = out_dir / "manifest.json"
    write_json(manifest_path, manifest.to_dict())
    written.append(manifest_path)

    write_pages(manifest, out_dir, minify=minify, htmlmin_opts=htmlmin_opts)

    if not base_url:
        log.info("[content_pipeline] no site_url configured; skipping feed.xml and sitemap.xml")
        return written

    feed_path = out_dir / "feed.xml"
    write_text(feed_path, build_rss(manifest, base_url, site_name, site_description, feed_limit))
    written.append(feed_path)

    sitemap_path = out_dir / "sitemap.xml"
    write_text(sitemap_path, build_sitemap(manifest, base_url))
    written.append(sitemap_path)

    log.info(f"[content_pipeline] feed and sitemap written to {out_dir}")
    return written
