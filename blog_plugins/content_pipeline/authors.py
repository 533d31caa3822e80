import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import yaml

log = logging.getLogger(f"mkdocs.plugins.{__name__}")


@dataclass(frozen=True)
class Author:
    id: str
    name: str
    url: Optional[str] = None


class AuthorRegistry:
    """Closed set of authors documents may be attributed to."""

    def __init__(self, authors: Optional[Dict[str, Author]] = None):
        self._authors: Dict[str, Author] = dict(authors or {})

    @classmethod
    def from_mapping(cls, data: dict) -> "AuthorRegistry":
        """
        Accepts ``{id: {name, url}}`` or ``{id: "Display Name"}``.
        """
        authors = {}
        for key, value in (data or {}).items():
            author_id = str(key).strip()
            if not author_id:
                continue
            if isinstance(value, dict):
                name = str(value.get("name") or author_id)
                url = value.get("url")
            else:
                name = str(value) if value else author_id
                url = None
            authors[author_id] = Author(id=author_id, name=name, url=url)
        return cls(authors)

    def get(self, author_id: str) -> Optional[Author]:
        return self._authors.get(author_id)

    def display_name(self, author_id: str) -> str:
        author = self._authors.get(author_id)
        return author.name if author else author_id

    def digest(self) -> str:
        h = hashlib.sha256()
        for author_id in sorted(self._authors):
            author = self._authors[author_id]
            h.update(f"{author.id}\0{author.name}\0{author.url or ''}\0".encode("utf-8"))
        return "sha256:" + h.hexdigest()

    def __contains__(self, author_id: object) -> bool:
        return author_id in self._authors

    def __len__(self) -> int:
        return len(self._authors)


def load_authors(path: Path) -> Optional[AuthorRegistry]:
    """Load the authors YAML file; return None if it does not exist."""
    path = Path(path)
    if not path.exists():
        log.warning(f"[content_pipeline] authors file not found at {path}; author names are not checked")
        return None
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"authors file {path} must contain a mapping")
    registry = AuthorRegistry.from_mapping(data)
    log.debug(f"[content_pipeline] loaded {len(registry)} authors from {path}")
    return registry
