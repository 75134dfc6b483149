"""Runtime configuration: defaults, an optional YAML/JSON file, then environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from rubric_loader import read_document
from serialization import parse_flag
from sessions import DEFAULT_WORKSPACE_ID

ENV_PREFIX = "AUDIT_HUB_"


@dataclass(frozen=True)
class HubConfig:
    data_dir: str = "hub_data"
    workspace_id: str = DEFAULT_WORKSPACE_ID
    cloud_enabled: bool = True
    remote_url: Optional[str] = None
    remote_token: Optional[str] = None
    remote_timeout: float = 30.0
    cloud_file: Optional[str] = None
    ollama_model: str = "llama3"
    temperature: float = 0.2
    ollama_base_url: Optional[str] = None
    llm_timeout: float = 60.0
    top_gaps: int = 5


def _coerce(name: str, value: Any) -> Any:
    default = getattr(HubConfig(), name)
    if value is None or value == "":
        return default
    if isinstance(default, bool):
        return parse_flag(value)
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return str(value)


def _load_file(path: Path) -> Dict[str, Any]:
    raw = read_document(path, "config") or {}
    if not isinstance(raw, Mapping):
        raise ValueError("Config file must contain a mapping")
    return dict(raw)


def load_hub_config(
    path: str | Path | None = None,
    env: Optional[Mapping[str, str]] = None,
) -> HubConfig:
    env = os.environ if env is None else env
    known = {f.name for f in fields(HubConfig)}
    values: Dict[str, Any] = {}

    if path is not None:
        raw = _load_file(Path(path))
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        values.update(raw)

    for name in known:
        env_name = ENV_PREFIX + name.upper()
        if env_name in env:
            values[name] = env[env_name]

    return replace(HubConfig(), **{name: _coerce(name, value) for name, value in values.items()})
