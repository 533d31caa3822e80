"""
Derived, read-only collections over the whole document set.

Everything here is recomputed from scratch on each build; nothing is
patched in place. Ordering is publish date descending with slug ascending
as the tie-break, so pagination and previous/next links are stable.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from blog_plugins.content_pipeline.document_parser import slugify
from blog_plugins.content_pipeline.errors import DuplicateSlug
from blog_plugins.content_pipeline.models import Document, Listing, Navigation

DocumentSequence = Tuple[Document, ...]


@dataclass(frozen=True)
class ContentIndex:
    master: DocumentSequence = ()
    by_tag: Mapping[str, DocumentSequence] = field(default_factory=dict)
    by_author: Mapping[str, DocumentSequence] = field(default_factory=dict)
    by_series: Mapping[str, DocumentSequence] = field(default_factory=dict)

    def slugs(self) -> List[str]:
        return [doc.slug for doc in self.master]

    def tagged(self, tag: str) -> List[str]:
        return [doc.slug for doc in self.by_tag.get(tag, ())]


def sort_key(doc: Document):
    return (-doc.published.timestamp(), doc.slug)


def check_unique_slugs(documents: Iterable[Document]) -> None:
    paths_by_slug: Dict[str, List[str]] = defaultdict(list)
    for doc in documents:
        paths_by_slug[doc.slug].append(doc.source_path)
    for slug in sorted(paths_by_slug):
        if len(paths_by_slug[slug]) > 1:
            raise DuplicateSlug(slug, paths_by_slug[slug])


def _group(documents: Sequence[Document], keys: Callable[[Document], Iterable[str]]):
    groups: Dict[str, List[Document]] = defaultdict(list)
    for doc in documents:
        for key in keys(doc):
            groups[key].append(doc)
    # documents arrive already sorted, so each group keeps the master order
    return {key: tuple(groups[key]) for key in sorted(groups)}


def build_index(documents: Iterable[Document]) -> ContentIndex:
    """Build the master sequence and tag/author/series indices.

    Raises ``DuplicateSlug`` if two documents share a slug.
    """
    docs = list(documents)
    check_unique_slugs(docs)
    master = tuple(sorted(docs, key=sort_key))
    return ContentIndex(
        master=master,
        by_tag=_group(master, lambda d: d.tags),
        by_author=_group(master, lambda d: (d.author,)),
        by_series=_group(master, lambda d: (d.series,) if d.series else ()),
    )


# Pagination and navigation


def paginate(items: Sequence, page_size: int) -> List[Tuple]:
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    pages = [tuple(items[i:i + page_size]) for i in range(0, len(items), page_size)]
    return pages or [()]


def listing_path(base: str, page: int) -> str:
    if page == 1:
        return base
    return f"{base}page/{page}/"


def paginated_listings(
    base: str, title: str, documents: Sequence[Document], page_size: int
) -> List[Listing]:
    pages = paginate(documents, page_size)
    total = len(pages)
    listings = []
    for number, chunk in enumerate(pages, start=1):
        listings.append(
            Listing(
                path=listing_path(base, number),
                title=title,
                slugs=tuple(doc.slug for doc in chunk),
                page=number,
                pages=total,
                previous=listing_path(base, number - 1) if number > 1 else None,
                next=listing_path(base, number + 1) if number < total else None,
            )
        )
    return listings


def unique_bases(prefix: str, keys: Iterable[str]) -> Dict[str, str]:
    """Map each key to ``<prefix>/<slug>/``, suffixing slugs that collide.

    Keys are taken in sorted order, so ``C`` keeps ``tags/c/`` and ``C#``
    gets ``tags/c-2/`` on every build.
    """
    used = set()
    bases = {}
    for key in sorted(keys):
        slug = slugify(key)
        candidate, n = slug, 1
        while candidate in used:
            n += 1
            candidate = f"{slug}-{n}"
        used.add(candidate)
        bases[key] = f"{prefix}/{candidate}/"
    return bases


def build_listings(
    index: ContentIndex,
    page_size: int,
    author_name: Optional[Callable[[str], str]] = None,
) -> Dict[str, Listing]:
    """Home feed plus one paginated listing per tag, author and series."""
    author_name = author_name or (lambda author_id: author_id)
    listings: List[Listing] = paginated_listings("", "Latest", index.master, page_size)
    tag_bases = unique_bases("tags", index.by_tag)
    for tag, docs in index.by_tag.items():
        listings += paginated_listings(tag_bases[tag], tag, docs, page_size)
    author_bases = unique_bases("authors", index.by_author)
    for author, docs in index.by_author.items():
        listings += paginated_listings(
            author_bases[author], author_name(author), docs, page_size
        )
    series_bases = unique_bases("series", index.by_series)
    for series, docs in index.by_series.items():
        listings += paginated_listings(series_bases[series], series, docs, page_size)
    return {listing.path: listing for listing in listings}


def build_navigation(index: ContentIndex) -> Dict[str, Navigation]:
    """Previous = the next older document, next = the next newer one."""
    master = index.master
    navigation = {}
    for i, doc in enumerate(master):
        navigation[doc.slug] = Navigation(
            previous=master[i + 1].slug if i + 1 < len(master) else None,
            next=master[i - 1].slug if i > 0 else None,
        )
    return navigation
