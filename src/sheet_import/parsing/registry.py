from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

from sheet_import.errors import ConfigurationError, SourceNotFoundError

from .schema import ImportTemplate

logger = logging.getLogger(__name__)


class TemplateRegistry:
    """
    A registry that hands out `ImportTemplate`s stored as `<directory>/<id>.json`.

    Templates are parsed on first use and cached for the registry's lifetime.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self._cache: dict[str, ImportTemplate] = {}
        self._lock = threading.Lock()

    def _path_for(self, template_id: str) -> Path:
        if not template_id or "/" in template_id or "\\" in template_id or template_id.startswith("."):
            raise ConfigurationError(f"invalid template id: {template_id!r}")
        return self.directory / f"{template_id}.json"

    def get_template(self, template_id: str) -> ImportTemplate:
        with self._lock:
            cached = self._cache.get(template_id)
            if cached is not None:
                return cached

            path = self._path_for(template_id)
            template = load_template_file(path)
            if template.id != template_id:
                raise ConfigurationError(f"{path}: template id {template.id!r} does not match file name")

            self._cache[template_id] = template
            logger.debug("loaded template %s from %s", template_id, path)
            return template

    def save_template(self, template: ImportTemplate) -> Path:
        """Write (or overwrite) the template's JSON file and refresh the cache."""
        with self._lock:
            path = self._path_for(template.id)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(template.to_dict(), ensure_ascii=False, indent=2, default=str), encoding="utf-8")
            self._cache[template.id] = template
            return path


def load_template_file(path: Path) -> ImportTemplate:
    """Parse one template JSON file. Raise `ConfigurationError` on malformed content."""
    path = Path(path)
    if not path.exists():
        raise SourceNotFoundError(f"template file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{path}: invalid template JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: template must be a JSON object")
    return ImportTemplate.from_dict(data)
