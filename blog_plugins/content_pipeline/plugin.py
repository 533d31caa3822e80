import os
from pathlib import Path

import yaml
from mkdocs.config.config_options import Type
from mkdocs.exceptions import PluginError
from mkdocs.plugins import BasePlugin
from mkdocs.utils import log

from blog_plugins.component_library.component_library import load_component_library
from blog_plugins.content_pipeline.authors import load_authors
from blog_plugins.content_pipeline.document_parser import CONTENT_SUFFIXES
from blog_plugins.content_pipeline.emitters import emit_build, join_url
from blog_plugins.content_pipeline.errors import (
    ComponentDefinitionError,
    DuplicateComponent,
    DuplicateSlug,
)
from blog_plugins.content_pipeline.models import RawContent
from blog_plugins.content_pipeline.orchestrator import (
    BuildContext,
    BuildOrchestrator,
    FingerprintCache,
)


# Define plugin class
class ContentPipelinePlugin(BasePlugin):
    """
    Builds the blog and newsletter content set into a manifest, pages,
    feed and sitemap after MkDocs has written the site.

    The fingerprint cache lives on the plugin instance. Defining
    ``on_startup`` keeps that instance alive across ``mkdocs serve``
    rebuilds, so they only re-parse content units whose bytes changed. The
    cache is dropped whenever the component set or the author list changes.
    """

    config_scheme = (
        ("content_dir", Type(str, default="content")),
        ("skip_basenames", Type(list, default=[])),
        ("authors_file", Type(str, default="authors.yml")),
        ("components_dir", Type(str, default="")),
        ("output_dir", Type(str, default="blog")),
        ("page_size", Type(int, default=10)),
        ("feed_limit", Type(int, default=20)),
        ("max_workers", Type(int, default=4)),
        ("include_drafts", Type(bool, default=False)),
        ("minify_html", Type(bool, default=False)),
        ("htmlmin_opts", Type(dict, default={})),
        ("strict", Type(bool, default=False)),
    )

    def __init__(self):
        super().__init__()
        self.cache = FingerprintCache()
        self.context = None
        self.last_result = None
        self.registries_digest = None

    def on_startup(self, *, command, dirty):
        log.debug(f"[content_pipeline] starting for `mkdocs {command}`")

    # Registries are loaded once per config load, before any document is read
    def on_config(self, config, **kwargs):
        project_root = self.project_root(config)
        content_dir = self.content_dir(config)

        components_dir = self.config["components_dir"]
        if components_dir:
            components_dir = (project_root / components_dir).resolve()
        try:
            registry = load_component_library(components_dir=components_dir or None)
        except (DuplicateComponent, ComponentDefinitionError) as exc:
            raise PluginError(f"[content_pipeline] {exc}") from exc

        try:
            authors = load_authors(content_dir / self.config["authors_file"])
        except (ValueError, yaml.YAMLError) as exc:
            raise PluginError(f"[content_pipeline] unable to load authors: {exc}") from exc

        # cached trees embed component markup and passed the author check
        digest = registry.digest() + (authors.digest() if authors is not None else "")
        if self.registries_digest is not None and digest != self.registries_digest:
            log.info("[content_pipeline] components or authors changed; clearing cache")
            self.cache.clear()
        self.registries_digest = digest

        self.context = BuildContext(
            registry=registry,
            authors=authors,
            cache=self.cache,
            max_workers=self.config["max_workers"],
            page_size=self.config["page_size"],
            include_drafts=self.config["include_drafts"],
        )
        return config

    # Process will start after site build is complete
    def on_post_build(self, config, **kwargs):
        if self.context is None:
            self.on_config(config)

        content_dir = self.content_dir(config)
        if not content_dir.exists():
            log.warning(f"[content_pipeline] content directory not found at {content_dir}")
            return

        units = self.collect_content_units(content_dir, self.config["skip_basenames"])
        log.info(f"[content_pipeline] found {len(units)} content units in {content_dir}")

        try:
            result = BuildOrchestrator(self.context).build(units)
        except DuplicateSlug as exc:
            raise PluginError(f"[content_pipeline] {exc}") from exc
        self.last_result = result

        report = result.report
        if report.errors and self.config["strict"]:
            summary = "; ".join(f"{e.source_path}: {e.message}" for e in report.errors)
            raise PluginError(
                f"[content_pipeline] {len(report.errors)} documents failed: {summary}"
            )

        output_dir = self.config["output_dir"].strip("/")
        out_dir = Path(config["site_dir"]).resolve()
        if output_dir:
            out_dir = out_dir / output_dir
        site_url = config.get("site_url") or ""
        base_url = join_url(site_url, output_dir) if site_url and output_dir else site_url

        written = emit_build(
            result.manifest,
            out_dir,
            base_url=base_url,
            site_name=config.get("site_name") or "Blog",
            site_description=config.get("site_description") or "",
            feed_limit=self.config["feed_limit"],
            minify=self.config["minify_html"],
            htmlmin_opts=self.config["htmlmin_opts"],
        )
        log.info(
            f"[content_pipeline] wrote {len(result.manifest.entries)} pages and "
            f"{len(written)} index files to {out_dir}"
        )

    # ----- Helper functions -------

    @staticmethod
    def project_root(config) -> Path:
        config_file_path = config.get("config_file_path")
        if config_file_path:
            return Path(config_file_path).resolve().parent
        return Path.cwd()

    def content_dir(self, config) -> Path:
        content_dir = Path(self.config["content_dir"])
        if not content_dir.is_absolute():
            content_dir = self.project_root(config) / content_dir
        return content_dir.resolve()

    @staticmethod
    def collect_content_units(content_dir: Path, skip_basenames=()):
        """Read every *.md|*.mdx under content_dir, keyed by posix relative path."""
        units = []
        for root, _, files in os.walk(content_dir):
            for file in files:
                if not file.endswith(CONTENT_SUFFIXES) or file in skip_basenames:
                    continue
                path = Path(root) / file
                rel_path = path.relative_to(content_dir).as_posix()
                units.append(RawContent(source_path=rel_path, data=path.read_bytes()))
        return sorted(units, key=lambda unit: unit.source_path)
