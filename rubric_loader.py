"""Read and write rubric documents (JSON or YAML).

A rubric file is either a bare list of items or a mapping with ``name``,
``description`` and ``items``. Item keys may use the snake_case names of
``RubricItem`` or the camelCase names the hosted hub exports.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

import yaml

from rubric import Rubric, RubricItem

JSON_SUFFIXES = {".json"}
YAML_SUFFIXES = {".yaml", ".yml"}


@dataclass(frozen=True)
class RubricDefinition:
    name: str
    description: str
    rubric: Rubric


def read_document(path: Path, kind: str = "rubric") -> Any:
    """Parse a JSON or YAML file chosen by suffix; ``kind`` only shapes error messages."""
    if not path.is_file():
        raise FileNotFoundError(f"{kind.capitalize()} file not found: {path}")
    suffix = path.suffix.lower()
    with path.open(encoding="utf-8") as handle:
        if suffix in JSON_SUFFIXES:
            return json.load(handle)
        if suffix in YAML_SUFFIXES:
            return yaml.safe_load(handle)
    raise ValueError(f"Unsupported {kind} file type: {path.suffix}")


def coerce_items(raw_items: Sequence[Mapping[str, Any]]) -> List[RubricItem]:
    items: List[RubricItem] = []
    for position, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, Mapping):
            raise ValueError(f"Rubric item #{position} must be an object")
        if "id" not in raw or "task" not in raw:
            raise ValueError(f"Rubric item #{position} is missing required 'id' or 'task' fields")
        points = raw.get("max_points", raw.get("maxPoints", 1))
        try:
            points = float(points)
        except (TypeError, ValueError):
            raise ValueError(f"Rubric item #{position} has a non-numeric max_points: {points!r}")
        items.append(
            RubricItem(
                id=str(raw["id"]),
                category=str(raw.get("category", "")),
                task=str(raw["task"]),
                max_points=points,
                is_bonus=bool(raw.get("is_bonus", raw.get("isBonus", False))),
            )
        )
    if not items:
        raise ValueError("Rubric must include at least one item")
    return items


def item_to_dict(item: RubricItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "category": item.category,
        "task": item.task,
        "max_points": item.max_points,
        "is_bonus": item.is_bonus,
    }


def load_rubric(path: str | Path) -> RubricDefinition:
    path = Path(path)
    document = read_document(path)

    if isinstance(document, Mapping):
        if "items" not in document:
            raise ValueError("Rubric document must contain an 'items' array")
        raw_items = document["items"]
        meta = document
    elif isinstance(document, list):
        raw_items, meta = document, {}
    else:
        raise ValueError("Rubric file must be a list or an object with an 'items' list")

    return RubricDefinition(
        name=str(meta.get("name") or path.stem),
        description=str(meta.get("description") or ""),
        rubric=Rubric(coerce_items(raw_items)),
    )


def dump_rubric(definition: RubricDefinition, path: str | Path) -> Path:
    path = Path(path)
    document = {
        "name": definition.name,
        "description": definition.description,
        "items": [item_to_dict(item) for item in definition.rubric],
    }
    suffix = path.suffix.lower()
    if suffix in JSON_SUFFIXES:
        text = json.dumps(document, indent=2, ensure_ascii=False)
    elif suffix in YAML_SUFFIXES:
        text = yaml.safe_dump(document, sort_keys=False, allow_unicode=True)
    else:
        raise ValueError(f"Unsupported rubric file type: {path.suffix}")
    path.write_text(text, encoding="utf-8")
    return path
