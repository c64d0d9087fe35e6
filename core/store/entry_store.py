"""Local JSON store for parser variants and entries, one file per template."""

from __future__ import annotations

import json
import re
import uuid
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from core.extraction.models import Entry
from core.patterns.models import Variant

_STORE_VERSION = 1
_TEMPLATE_ID_RE = re.compile(r"[\w-]+")


class EntryStore:
    """Persist variants and entries keyed by template id under ``root``."""

    def __init__(self, root: Path) -> None:
        self._root = root

    def load_variants(self, template_id: str) -> list[Variant]:
        return self._read_data(template_id)["variants"]

    def save_variants(self, template_id: str, variants: list[Variant]) -> None:
        data = self._read_data(template_id)
        data["variants"] = list(variants)
        self._write_data(template_id, data)

    def load_entries(self, template_id: str) -> list[Entry]:
        entries: dict[str, Entry] = self._read_data(template_id)["entries"]
        return [entries[key] for key in sorted(entries)]

    def load_entry_map(self, template_id: str) -> dict[str, Entry]:
        return dict(self._read_data(template_id)["entries"])

    def save_entry(self, template_id: str, entry: Entry) -> Entry:
        """Insert or replace ``entry`` by key; keyless entries get a generated id."""

        stored = entry if entry.key else entry.model_copy(update={"key": uuid.uuid4().hex})
        data = self._read_data(template_id)
        data["entries"][stored.key] = stored
        self._write_data(template_id, data)
        return stored

    def delete_entry(self, template_id: str, key: str) -> bool:
        data = self._read_data(template_id)
        if key not in data["entries"]:
            return False
        del data["entries"][key]
        self._write_data(template_id, data)
        return True

    def list_template_ids(self) -> list[str]:
        if not self._root.exists():
            return []
        return sorted(path.stem for path in self._root.glob("*.json"))

    def _path_for(self, template_id: str) -> Path:
        if not _TEMPLATE_ID_RE.fullmatch(template_id):
            raise ValueError(f"Invalid template id: {template_id!r}")
        return self._root / f"{template_id}.json"

    def _read_data(self, template_id: str) -> dict[str, Any]:
        path = self._path_for(template_id)
        if not path.exists():
            return {"version": _STORE_VERSION, "variants": [], "entries": {}}

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid entry store JSON: {path}") from exc

        try:
            variants = [Variant.model_validate(item) for item in raw.get("variants", [])]
            entries = {
                key: Entry.model_validate(item) for key, item in raw.get("entries", {}).items()
            }
        except ValidationError as exc:
            raise ValueError(f"Invalid entry store schema: {path}") from exc

        version = int(raw.get("version", _STORE_VERSION))
        return {"version": version, "variants": variants, "entries": entries}

    def _write_data(self, template_id: str, data: dict[str, Any]) -> None:
        path = self._path_for(template_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(f"{path.suffix}.tmp")

        entries: dict[str, Entry] = data["entries"]
        payload = {
            "version": data["version"],
            "variants": [variant.model_dump(mode="json") for variant in data["variants"]],
            "entries": {key: entries[key].model_dump(mode="json") for key in sorted(entries)},
        }
        temp_path.write_text(
            json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False),
            encoding="utf-8",
        )
        temp_path.replace(path)
