"""Error taxonomy for the content pipeline.

Per-document errors (``MalformedContent``, ``UnknownComponent``) are caught by
the orchestrator and recorded in the build report. Everything else aborts.
"""

from typing import Iterable, Optional


class ContentPipelineError(Exception):
    """Base class for every error raised by the pipeline."""


class MalformedContent(ContentPipelineError):
    """A content unit is missing a required field or has an invalid one."""

    def __init__(self, field: str, message: str, source_path: Optional[str] = None):
        self.field = field
        self.message = message
        self.source_path = source_path
        where = f"{source_path}: " if source_path else ""
        super().__init__(f"{where}{field}: {message}")


class UnknownComponent(ContentPipelineError):
    """A body references a component the registry does not know."""

    def __init__(self, name: str, slug: Optional[str] = None, line: Optional[int] = None):
        self.name = name
        self.slug = slug
        self.line = line
        msg = f"unknown component '{name}'"
        if slug:
            msg += f" in '{slug}'"
        if line:
            msg += f" (line {line})"
        super().__init__(msg)


class DuplicateComponent(ContentPipelineError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"component '{name}' is already registered")


class ComponentDefinitionError(ContentPipelineError):
    def __init__(self, name: str, message: str):
        self.name = name
        super().__init__(f"component '{name}': {message}")


class RegistryFrozen(ContentPipelineError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"cannot register '{name}': registry is frozen")


class DuplicateSlug(ContentPipelineError):
    """Two or more documents resolved to the same slug."""

    def __init__(self, slug: str, source_paths: Iterable[str]):
        self.slug = slug
        self.source_paths = tuple(sorted(source_paths))
        super().__init__(
            f"duplicate slug '{slug}' from: {', '.join(self.source_paths)}"
        )


class BuildCancelled(ContentPipelineError):
    def __init__(self, completed: Iterable[str]):
        self.completed = tuple(completed)
        super().__init__(
            f"build cancelled after {len(self.completed)} content units"
        )
