import logging
from typing import Iterable, List, Optional

from blog_plugins.component_library.component_library import ComponentRegistry
from blog_plugins.content_pipeline.errors import MalformedContent, UnknownComponent
from blog_plugins.content_pipeline.models import (
    BodyNode,
    ComponentReference,
    Document,
    RenderedComponent,
    RenderedText,
    RenderNode,
    RenderTree,
    TextNode,
)

log = logging.getLogger(f"mkdocs.plugins.{__name__}")


def resolve_body(
    body: Iterable[BodyNode],
    registry: ComponentRegistry,
    slug: Optional[str] = None,
) -> RenderTree:
    """Resolve body nodes against the registry, keeping source order.

    The tree is only returned once every reference resolved; the first
    failure propagates and nothing partial escapes.
    """
    resolved: List[RenderNode] = []
    for node in body:
        if isinstance(node, TextNode):
            resolved.append(RenderedText(node.text))
        elif isinstance(node, ComponentReference):
            resolved.append(_resolve_reference(node, registry, slug))
        else:
            raise TypeError(f"unexpected body node {node!r}")
    return tuple(resolved)


def _resolve_reference(
    ref: ComponentReference, registry: ComponentRegistry, slug: Optional[str]
) -> RenderedComponent:
    try:
        component = registry.resolve(ref.name)
    except UnknownComponent:
        raise UnknownComponent(ref.name, slug=slug, line=ref.line) from None

    unexpected = [key for key, _ in ref.params if key not in component.params]
    if unexpected:
        raise MalformedContent(
            "body",
            f"component '{ref.name}' (line {ref.line}) takes no parameter(s) {', '.join(unexpected)}",
        )
    log.debug(f"[content_pipeline] resolved '{ref.name}' in {slug or '<body>'}")
    return RenderedComponent(name=component.name, kind=component.kind, markup=component.render())


def resolve_document(document: Document, registry: ComponentRegistry) -> RenderTree:
    try:
        return resolve_body(document.body, registry, slug=document.slug)
    except MalformedContent as exc:
        raise MalformedContent(exc.field, exc.message, document.source_path) from exc


def render_markup(tree: RenderTree) -> str:
    """Concatenate a tree back into one markup string (components inlined)."""
    return "".join(node.markup for node in tree)
