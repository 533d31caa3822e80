import hashlib
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from blog_plugins.component_library.component_library import ComponentRegistry
from blog_plugins.content_pipeline.authors import AuthorRegistry
from blog_plugins.content_pipeline.content_index import (
    ContentIndex,
    build_index,
    build_listings,
    build_navigation,
    check_unique_slugs,
)
from blog_plugins.content_pipeline.document_parser import parse_document
from blog_plugins.content_pipeline.errors import (
    BuildCancelled,
    MalformedContent,
    UnknownComponent,
)
from blog_plugins.content_pipeline.models import (
    BuildManifest,
    BuildReport,
    Document,
    DocumentError,
    ManifestEntry,
    RawContent,
)
from blog_plugins.content_pipeline.render_resolver import resolve_document

log = logging.getLogger(f"mkdocs.plugins.{__name__}")


def fingerprint(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    fingerprint: str
    document: Document
    entry: ManifestEntry


class FingerprintCache:
    """
    Per-content-unit cache of parsed documents and their manifest entries.

    Keyed by the unit's source path, the only identity known before parsing.
    An entry is valid if and only if its fingerprint equals the current one.
    ``lock_for`` hands out one lock per key so at most one task works on a
    given unit at a time.
    """

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())

    def lookup(self, key: str, current_fingerprint: str) -> Optional[CacheEntry]:
        with self._guard:
            cached = self._entries.get(key)
        if cached is None or cached.fingerprint != current_fingerprint:
            return None
        return cached

    def store(self, key: str, cached: CacheEntry) -> None:
        with self._guard:
            self._entries[key] = cached

    def discard(self, key: str) -> None:
        with self._guard:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._guard:
            self._entries.clear()

    def prune(self, live_keys: Iterable[str]) -> int:
        """Drop entries for units that no longer exist; return how many."""
        live = set(live_keys)
        with self._guard:
            stale = [key for key in self._entries if key not in live]
            for key in stale:
                del self._entries[key]
                self._locks.pop(key, None)
        return len(stale)

    def __contains__(self, key: object) -> bool:
        with self._guard:
            return key in self._entries

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


@dataclass
class BuildContext:
    """Everything one build needs, passed explicitly through each stage.

    Reusing a context across builds is what makes rebuilds incremental;
    separate contexts never share state.
    """

    registry: ComponentRegistry
    authors: Optional[AuthorRegistry] = None
    cache: FingerprintCache = field(default_factory=FingerprintCache)
    max_workers: int = 4
    page_size: int = 10
    include_drafts: bool = False
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def author_name(self, author_id: str) -> str:
        if self.authors is None:
            return author_id
        return self.authors.display_name(author_id)


@dataclass(frozen=True)
class BuildResult:
    manifest: BuildManifest
    index: ContentIndex
    report: BuildReport


@dataclass(frozen=True)
class UnitOutcome:
    source_path: str
    document: Optional[Document] = None
    entry: Optional[ManifestEntry] = None
    error: Optional[DocumentError] = None
    reused: bool = False


class BuildOrchestrator:
    """Drive parse -> resolve per unit, then index the whole set once."""

    def __init__(self, context: BuildContext):
        self.context = context

    def process_unit(self, unit: RawContent) -> UnitOutcome:
        cache = self.context.cache
        current = fingerprint(unit.data)
        with cache.lock_for(unit.source_path):
            cached = cache.lookup(unit.source_path, current)
            if cached is not None:
                log.debug(f"[content_pipeline] cache hit for {unit.source_path}")
                return UnitOutcome(
                    unit.source_path, cached.document, cached.entry, reused=True
                )

            document = None
            try:
                document = parse_document(unit, self.context.authors)
                tree = resolve_document(document, self.context.registry)
            except (MalformedContent, UnknownComponent) as exc:
                cache.discard(unit.source_path)
                slug = document.slug if document is not None else None
                return UnitOutcome(
                    unit.source_path,
                    error=DocumentError.from_exception(unit.source_path, exc, slug),
                )

            entry = ManifestEntry(
                path=document.path,
                slug=document.slug,
                fingerprint=current,
                metadata=document.metadata(),
                tree=tree,
            )
            cache.store(unit.source_path, CacheEntry(current, document, entry))
            return UnitOutcome(unit.source_path, document, entry)

    def _run_unit(self, unit: RawContent) -> Optional[UnitOutcome]:
        if self.context.cancel_event.is_set():
            return None
        return self.process_unit(unit)

    def _process_all(self, units: List[RawContent]) -> List[Optional[UnitOutcome]]:
        workers = self.context.max_workers
        if workers <= 1 or len(units) <= 1:
            return [self._run_unit(unit) for unit in units]
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(self._run_unit, units))

    def build(self, units: Iterable[RawContent]) -> BuildResult:
        """
        Build a fresh manifest from the full set of content units.

        Per-document failures are collected in the report. ``DuplicateSlug``
        propagates and aborts the build. If the context's cancel event is set
        mid-build, ``BuildCancelled`` is raised with the completed units and the
        event is cleared so the context can run the next build.
        """
        units = list(units)
        log.info(f"[content_pipeline] building {len(units)} content units")
        outcomes = self._process_all(units)

        if any(outcome is None for outcome in outcomes):
            completed = [o.source_path for o in outcomes if o is not None]
            self.context.cancel_event.clear()
            raise BuildCancelled(completed)

        pruned = self.context.cache.prune(unit.source_path for unit in units)
        if pruned:
            log.debug(f"[content_pipeline] pruned {pruned} stale cache entries")

        errors = []
        parsed = []
        for outcome in outcomes:
            if outcome.error is not None:
                log.warning(
                    f"[content_pipeline] excluded {outcome.source_path}: {outcome.error.message}"
                )
                errors.append(outcome.error)
            else:
                parsed.append(outcome)

        # drafts reserve their slug even when they are not published
        check_unique_slugs(outcome.document for outcome in parsed)

        documents = []
        entries_by_slug = {}
        drafts = 0
        for outcome in parsed:
            if outcome.document.draft and not self.context.include_drafts:
                drafts += 1
                continue
            documents.append(outcome.document)
            entries_by_slug[outcome.document.slug] = outcome.entry

        index = build_index(documents)
        manifest = BuildManifest(
            entries={doc.path: entries_by_slug[doc.slug] for doc in index.master},
            navigation=build_navigation(index),
            listings=build_listings(
                index, self.context.page_size, self.context.author_name
            ),
        )
        report = BuildReport(
            errors=tuple(errors),
            reused=sum(1 for o in outcomes if o.reused),
            rebuilt=sum(1 for o in outcomes if o.document is not None and not o.reused),
            drafts=drafts,
        )
        log.info(
            f"[content_pipeline] built {len(manifest.entries)} documents "
            f"(reused={report.reused}, rebuilt={report.rebuilt}, errors={len(errors)})"
        )
        return BuildResult(manifest=manifest, index=index, report=report)
