from datetime import datetime, timezone

import pytest

from blog_plugins.content_pipeline.authors import AuthorRegistry
from blog_plugins.content_pipeline.document_parser import (
    derive_slug,
    normalize_tags,
    parse_body,
    parse_document,
    split_front_matter,
)
from blog_plugins.content_pipeline.errors import MalformedContent
from blog_plugins.content_pipeline.models import (
    ComponentReference,
    DocumentKind,
    RawContent,
    TextNode,
)


def unit(path: str, text: str) -> RawContent:
    return RawContent(source_path=path, data=text.encode("utf-8"))


VALID = """---
title: Shipping the new pipeline
date: 2023-06-16
author: ada
tags: engineering, release
description: How we ship.
thumbnail: /img/thumb.png
---
Intro paragraph.
{{< cloud >}}
Closing words.
"""


class TestParseDocument:
    def test_valid_document(self):
        doc = parse_document(unit("posts/shipping.md", VALID))
        assert doc.slug == "shipping"
        assert doc.title == "Shipping the new pipeline"
        assert doc.author == "ada"
        assert doc.published == datetime(2023, 6, 16, tzinfo=timezone.utc)
        assert doc.tags == ("engineering", "release")
        assert doc.description == "How we ship."
        assert doc.thumbnail == "/img/thumb.png"
        assert doc.cover is None
        assert doc.kind is DocumentKind.POST
        assert doc.path == "posts/shipping/"

    def test_parsing_is_pure(self):
        """Parsing the same bytes twice gives equal documents."""
        raw = unit("posts/shipping.md", VALID)
        assert parse_document(raw) == parse_document(raw)

    def test_optional_fields_default(self):
        text = "---\ntitle: T\ndate: 2023-01-01\nauthor: ada\n---\nBody\n"
        doc = parse_document(unit("posts/t.md", text))
        assert doc.tags == ()
        assert doc.description == ""
        assert doc.thumbnail is None
        assert doc.series is None
        assert doc.issue is None
        assert doc.draft is False

    def test_missing_date_is_malformed(self):
        text = "---\ntitle: T\nauthor: ada\n---\nBody\n"
        with pytest.raises(MalformedContent) as excinfo:
            parse_document(unit("posts/t.md", text))
        assert excinfo.value.field == "date"
        assert excinfo.value.source_path == "posts/t.md"

    @pytest.mark.parametrize("value", ['"not-a-date"', "2023-13-45", "[2023]", "true"])
    def test_invalid_date_is_malformed(self, value):
        text = f"---\ntitle: T\ndate: {value}\nauthor: ada\n---\nBody\n"
        with pytest.raises(MalformedContent) as excinfo:
            parse_document(unit("posts/t.md", text))
        assert excinfo.value.field == "date"

    def test_date_time_with_offset_is_normalized_to_utc(self):
        text = '---\ntitle: T\ndate: "2023-08-28T09:30:00+02:00"\nauthor: ada\n---\n'
        doc = parse_document(unit("posts/t.md", text))
        assert doc.published == datetime(2023, 8, 28, 7, 30, tzinfo=timezone.utc)

    @pytest.mark.parametrize("author_line", ["", "author: ''", "author: '   '"])
    def test_missing_author_is_malformed(self, author_line):
        text = f"---\ntitle: T\ndate: 2023-01-01\n{author_line}\n---\nBody\n"
        with pytest.raises(MalformedContent) as excinfo:
            parse_document(unit("posts/t.md", text))
        assert excinfo.value.field == "author"

    def test_unknown_author_is_malformed(self):
        authors = AuthorRegistry.from_mapping({"grace": {"name": "Grace Hopper"}})
        with pytest.raises(MalformedContent) as excinfo:
            parse_document(unit("posts/shipping.md", VALID), authors)
        assert excinfo.value.field == "author"

    def test_known_author(self):
        authors = AuthorRegistry.from_mapping({"ada": "Ada Lovelace"})
        doc = parse_document(unit("posts/shipping.md", VALID), authors)
        assert authors.display_name(doc.author) == "Ada Lovelace"

    def test_missing_front_matter(self):
        with pytest.raises(MalformedContent) as excinfo:
            parse_document(unit("posts/t.md", "# Just a heading\n"))
        assert excinfo.value.field == "title"

    def test_invalid_yaml(self):
        text = "---\ntitle: [unclosed\n---\nBody\n"
        with pytest.raises(MalformedContent) as excinfo:
            parse_document(unit("posts/t.md", text))
        assert excinfo.value.field == "front_matter"

    def test_invalid_utf8(self):
        raw = RawContent(source_path="posts/t.md", data=b"---\ntitle: \xff\n---\n")
        with pytest.raises(MalformedContent) as excinfo:
            parse_document(raw)
        assert excinfo.value.field == "encoding"

    def test_explicit_slug(self):
        text = "---\ntitle: T\ndate: 2023-01-01\nauthor: ada\nslug: My Custom Slug\n---\n"
        assert parse_document(unit("posts/t.md", text)).slug == "my-custom-slug"

    def test_newsletter_kind_from_path(self):
        text = "---\ntitle: Issue 4\ndate: 2023-08-28\nauthor: ada\nissue: 4\nseries: Monthly\n---\n"
        doc = parse_document(unit("newsletter/issue-4.mdx", text))
        assert doc.kind is DocumentKind.NEWSLETTER
        assert doc.issue == 4
        assert doc.series == "Monthly"
        assert doc.path == "newsletter/issue-4/"

    def test_invalid_kind(self):
        text = "---\ntitle: T\ndate: 2023-01-01\nauthor: ada\nkind: podcast\n---\n"
        with pytest.raises(MalformedContent) as excinfo:
            parse_document(unit("posts/t.md", text))
        assert excinfo.value.field == "kind"

    def test_invalid_issue(self):
        text = "---\ntitle: T\ndate: 2023-01-01\nauthor: ada\nissue: four\n---\n"
        with pytest.raises(MalformedContent) as excinfo:
            parse_document(unit("newsletter/t.md", text))
        assert excinfo.value.field == "issue"

    @pytest.mark.parametrize(
        "line, field",
        [
            ("tags: ['!!!']", "tags"),
            ("tags: [ok, '#']", "tags"),
            ("series: '???'", "series"),
            ("author: '***'", "author"),
        ],
    )
    def test_values_without_a_usable_slug(self, line, field):
        """Tags, series and authors become listing paths, so they need a slug."""
        fm = {"title": "title: T", "date": "date: 2023-01-01", "author": "author: ada"}
        fm[line.split(":")[0]] = line
        text = "---\n" + "\n".join(fm.values()) + "\n---\nBody\n"
        with pytest.raises(MalformedContent) as excinfo:
            parse_document(unit("posts/t.md", text))
        assert excinfo.value.field == field

    def test_invalid_draft_flag(self):
        text = "---\ntitle: T\ndate: 2023-01-01\nauthor: ada\ndraft: maybe\n---\n"
        with pytest.raises(MalformedContent) as excinfo:
            parse_document(unit("posts/t.md", text))
        assert excinfo.value.field == "draft"


class TestSlugAndTags:
    @pytest.mark.parametrize(
        "path, expected",
        [
            ("posts/hello-world.md", "hello-world"),
            ("posts/hello-world/index.mdx", "hello-world"),
            ("Hello World.md", "hello-world"),
            ("2023/06/Launch_Day.md", "launch-day"),
        ],
    )
    def test_derive_slug(self, path, expected):
        assert derive_slug(path) == expected

    def test_normalize_tags(self):
        assert normalize_tags(None) == ()
        assert normalize_tags("a, b ,, a") == ("a", "b")
        assert normalize_tags(["x", " y ", "", "x"]) == ("x", "y")


class TestParseBody:
    def test_body_order_and_lines(self):
        _, body, first_line = split_front_matter(VALID)
        nodes = parse_body(body, first_line)
        assert nodes == (
            TextNode("Intro paragraph.\n"),
            ComponentReference(name="cloud", params=(), line=10),
            TextNode("\nClosing words.\n"),
        )

    def test_inline_components_and_params(self):
        nodes = parse_body('A {{< check >}} B {{< badge color="red" size="2" >}}\n')
        assert [type(n).__name__ for n in nodes] == [
            "TextNode",
            "ComponentReference",
            "TextNode",
            "ComponentReference",
            "TextNode",
        ]
        assert nodes[3].params == (("color", "red"), ("size", "2"))

    def test_shortcodes_in_code_fences_stay_text(self):
        body = "Before\n```\n{{< cloud >}}\n```\nAfter {{< check >}}\n"
        nodes = parse_body(body)
        refs = [n.name for n in nodes if isinstance(n, ComponentReference)]
        assert refs == ["check"]
        assert "{{< cloud >}}" in nodes[0].text

    def test_empty_body(self):
        assert parse_body("") == ()
