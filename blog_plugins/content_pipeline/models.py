from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from blog_plugins.component_library.component_library import ComponentKind


class DocumentKind(str, Enum):
    """Content types share one Document shape; the kind is only a tag."""

    POST = "post"
    NEWSLETTER = "newsletter"

    @property
    def path_prefix(self) -> str:
        if self is DocumentKind.NEWSLETTER:
            return "newsletter"
        return "posts"


@dataclass(frozen=True)
class RawContent:
    """One addressable content unit as read from disk."""

    source_path: str
    data: bytes


# Body nodes


@dataclass(frozen=True)
class TextNode:
    text: str


@dataclass(frozen=True)
class ComponentReference:
    name: str
    params: Tuple[Tuple[str, str], ...] = ()
    line: int = 0


BodyNode = Union[TextNode, ComponentReference]


@dataclass(frozen=True)
class Document:
    slug: str
    title: str
    author: str
    published: datetime
    kind: DocumentKind
    source_path: str
    description: str = ""
    tags: Tuple[str, ...] = ()
    thumbnail: Optional[str] = None
    cover: Optional[str] = None
    series: Optional[str] = None
    issue: Optional[int] = None
    draft: bool = False
    body: Tuple[BodyNode, ...] = ()

    @property
    def path(self) -> str:
        return f"{self.kind.path_prefix}/{self.slug}/"

    def metadata(self) -> Dict[str, Any]:
        """Return a JSON-ready snapshot of the header fields."""
        meta: Dict[str, Any] = {
            "slug": self.slug,
            "title": self.title,
            "author": self.author,
            "published": self.published.isoformat(),
            "kind": self.kind.value,
            "source_path": self.source_path,
            "description": self.description,
            "tags": list(self.tags),
        }
        for key in ("thumbnail", "cover", "series", "issue"):
            value = getattr(self, key)
            if value is not None:
                meta[key] = value
        return meta


# Render tree nodes


@dataclass(frozen=True)
class RenderedText:
    text: str

    @property
    def markup(self) -> str:
        return self.text

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class RenderedComponent:
    name: str
    kind: ComponentKind
    markup: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "component",
            "name": self.name,
            "kind": self.kind.value,
            "markup": self.markup,
        }


RenderNode = Union[RenderedText, RenderedComponent]
RenderTree = Tuple[RenderNode, ...]


# Build output


@dataclass(frozen=True)
class ManifestEntry:
    """A self-contained page: metadata snapshot plus its resolved tree."""

    path: str
    slug: str
    fingerprint: str
    metadata: Mapping[str, Any]
    tree: RenderTree

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "slug": self.slug,
            "fingerprint": self.fingerprint,
            "metadata": dict(self.metadata),
            "tree": [node.to_dict() for node in self.tree],
        }


@dataclass(frozen=True)
class Navigation:
    previous: Optional[str] = None
    next: Optional[str] = None


@dataclass(frozen=True)
class Listing:
    """One page of a paginated collection (home feed, tag, author, series)."""

    path: str
    title: str
    slugs: Tuple[str, ...]
    page: int
    pages: int
    previous: Optional[str] = None
    next: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "title": self.title,
            "slugs": list(self.slugs),
            "page": self.page,
            "pages": self.pages,
            "previous": self.previous,
            "next": self.next,
        }


@dataclass(frozen=True)
class BuildManifest:
    entries: Mapping[str, ManifestEntry] = field(default_factory=dict)
    navigation: Mapping[str, Navigation] = field(default_factory=dict)
    listings: Mapping[str, Listing] = field(default_factory=dict)

    def entry_for_slug(self, slug: str) -> Optional[ManifestEntry]:
        for entry in self.entries.values():
            if entry.slug == slug:
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": {path: e.to_dict() for path, e in self.entries.items()},
            "navigation": {
                slug: {"previous": nav.previous, "next": nav.next}
                for slug, nav in self.navigation.items()
            },
            "listings": {path: l.to_dict() for path, l in self.listings.items()},
        }


@dataclass(frozen=True)
class DocumentError:
    source_path: str
    slug: Optional[str]
    error: str
    message: str

    @classmethod
    def from_exception(
        cls, source_path: str, exc: Exception, slug: Optional[str] = None
    ) -> "DocumentError":
        return cls(
            source_path=source_path,
            slug=slug or getattr(exc, "slug", None),
            error=type(exc).__name__,
            message=str(exc),
        )


@dataclass(frozen=True)
class BuildReport:
    errors: Tuple[DocumentError, ...] = ()
    reused: int = 0
    rebuilt: int = 0
    drafts: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors

    def errors_for(self, slug: str) -> Tuple[DocumentError, ...]:
        return tuple(e for e in self.errors if e.slug == slug)
