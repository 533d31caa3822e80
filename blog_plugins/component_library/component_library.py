import hashlib
import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from blog_plugins.content_pipeline.errors import (
    ComponentDefinitionError,
    DuplicateComponent,
    RegistryFrozen,
    UnknownComponent,
)

log = logging.getLogger(f"mkdocs.plugins.{__name__}")

COMPONENTS_PATH = Path(__file__).parent / "components.json"

Renderer = Callable[[], str]


class ComponentKind(str, Enum):
    """Closed set of presentational component kinds."""

    ICON = "icon"
    ILLUSTRATION = "illustration"


@dataclass(frozen=True)
class Component:
    name: str
    kind: ComponentKind
    renderer: Renderer
    params: Tuple[str, ...] = ()

    def render(self) -> str:
        return self.renderer()


class ComponentRegistry:
    """
    Name -> component lookup shared by every render resolution.

    Populated once at startup, then frozen. Registering a name twice raises
    ``DuplicateComponent``; looking up a missing name raises
    ``UnknownComponent``. A frozen registry is never mutated again, so
    concurrent readers need no locking.
    """

    def __init__(self):
        self._components: Dict[str, Component] = {}
        self._frozen = False

    def register(
        self,
        name: str,
        renderer: Renderer,
        kind: ComponentKind = ComponentKind.ICON,
        params: Tuple[str, ...] = (),
    ) -> Component:
        if self._frozen:
            raise RegistryFrozen(name)
        if name in self._components:
            raise DuplicateComponent(name)
        component = Component(name=name, kind=kind, renderer=renderer, params=tuple(params))
        self._components[name] = component
        log.debug(f"[component_library] registered {kind.value} '{name}'")
        return component

    def resolve(self, name: str) -> Component:
        try:
            return self._components[name]
        except KeyError:
            raise UnknownComponent(name) from None

    def freeze(self) -> "ComponentRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def names(self) -> List[str]:
        return sorted(self._components)

    def digest(self) -> str:
        """Hash of every name, kind, parameter set and rendered artifact."""
        h = hashlib.sha256()
        for name in self.names():
            component = self._components[name]
            h.update(
                f"{name}\0{component.kind.value}\0{','.join(component.params)}\0".encode("utf-8")
            )
            h.update(component.render().encode("utf-8"))
            h.update(b"\0")
        return "sha256:" + h.hexdigest()

    def __contains__(self, name: object) -> bool:
        return name in self._components

    def __len__(self) -> int:
        return len(self._components)


def fixed_renderer(markup: str) -> Renderer:
    """Renderer that always emits the same artifact."""

    def render() -> str:
        return markup

    return render


def validate_svg(name: str, markup: str) -> str:
    """Check that markup is exactly one <svg> element without scripts.

    Returns the stripped markup unchanged; the parsed tree is only used for
    validation so attribute casing (``viewBox``) is preserved.
    """
    if not isinstance(markup, str) or not markup.strip():
        raise ComponentDefinitionError(name, "empty markup")
    soup = BeautifulSoup(markup, "html.parser")
    roots = [el for el in soup.contents if isinstance(el, Tag)]
    if len(roots) != 1 or roots[0].name != "svg":
        raise ComponentDefinitionError(name, "markup must be a single <svg> element")
    if roots[0].find("script") is not None:
        raise ComponentDefinitionError(name, "<script> is not allowed in components")
    return markup.strip()


def load_component_definitions(path: Path) -> List[dict]:
    """Read the ``components`` list from a JSON definition file."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ComponentDefinitionError(Path(path).name, f"invalid JSON: {e}") from e
    definitions = data.get("components", []) if isinstance(data, dict) else None
    if not isinstance(definitions, list):
        raise ComponentDefinitionError(Path(path).name, "'components' must be a list")
    return definitions


def register_definitions(registry: ComponentRegistry, definitions: List[dict]) -> None:
    for definition in definitions:
        name = str(definition.get("name") or "").strip()
        if not name:
            raise ComponentDefinitionError("<unnamed>", "missing 'name'")
        try:
            kind = ComponentKind(definition.get("kind", ComponentKind.ICON.value))
        except ValueError:
            raise ComponentDefinitionError(
                name, f"unknown kind {definition.get('kind')!r}"
            ) from None
        markup = validate_svg(name, definition.get("svg", ""))
        registry.register(name, fixed_renderer(markup), kind=kind)


def register_svg_directory(registry: ComponentRegistry, directory: Path) -> int:
    """Register every ``*.svg`` file in ``directory`` as an icon named after its stem."""
    directory = Path(directory)
    if not directory.is_dir():
        log.warning(f"[component_library] components directory not found at {directory}")
        return 0
    count = 0
    for svg_path in sorted(directory.glob("*.svg")):
        markup = validate_svg(svg_path.stem, svg_path.read_text(encoding="utf-8"))
        registry.register(svg_path.stem, fixed_renderer(markup), kind=ComponentKind.ICON)
        count += 1
    return count


def load_component_library(
    definitions_path: Path = COMPONENTS_PATH,
    components_dir: Optional[Path] = None,
) -> ComponentRegistry:
    """Build the frozen registry used for a whole build.

    Built-in definitions are registered first, then any SVG files from
    ``components_dir``. A name clash between the two is a ``DuplicateComponent``.
    """
    definitions_path = Path(definitions_path)
    if not definitions_path.exists():
        raise FileNotFoundError(f"component definitions not found at {definitions_path}")

    registry = ComponentRegistry()
    register_definitions(registry, load_component_definitions(definitions_path))
    if components_dir:
        extra = register_svg_directory(registry, Path(components_dir))
        log.info(f"[component_library] registered {extra} components from {components_dir}")
    log.info(f"[component_library] {len(registry)} components available")
    return registry.freeze()
