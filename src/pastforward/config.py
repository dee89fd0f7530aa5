from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import shlex

import yaml

DEFAULT_CONCURRENCY_LIMIT = 2


@dataclass(slots=True)
class PathsConfig:
    output: Path
    log: Path


@dataclass(slots=True)
class SchedulerConfig:
    concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT


@dataclass(slots=True)
class TransformerConfig:
    command_template: str
    timeout_seconds: float | None = None


@dataclass(slots=True)
class AlbumConfig:
    columns: int = 2
    cell_size: int = 512
    title: str = "Past Forward"


@dataclass(slots=True)
class AppConfig:
    paths: PathsConfig
    transformer: TransformerConfig
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    album: AlbumConfig = field(default_factory=AlbumConfig)


def _require(mapping: dict, key: str, section: str) -> object:
    if key not in mapping:
        raise ValueError(f"Missing `{section}.{key}` in config")
    return mapping[key]


def _section(raw: dict, key: str, *, required: bool = False) -> dict:
    value = _require(raw, key, "root") if required else raw.get(key, {})
    if value is None:
        value = {}
    if not isinstance(value, dict):
        raise ValueError(f"`{key}` must be a mapping")
    return value


def load_config(path: str | Path) -> AppConfig:
    config_path = Path(path).expanduser().resolve()
    raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("Config root must be a mapping")

    paths_raw = _section(raw, "paths", required=True)
    scheduler_raw = _section(raw, "scheduler")
    transformer_raw = _section(raw, "transformer", required=True)
    album_raw = _section(raw, "album")

    def to_path(key: str) -> Path:
        value = _require(paths_raw, key, "paths")
        output = Path(str(value)).expanduser()
        if not output.is_absolute():
            output = config_path.parent / output
        return output

    paths = PathsConfig(output=to_path("output"), log=to_path("log"))

    scheduler = SchedulerConfig(
        concurrency_limit=int(scheduler_raw.get("concurrency_limit", DEFAULT_CONCURRENCY_LIMIT)),
    )
    if scheduler.concurrency_limit < 1:
        raise ValueError("`scheduler.concurrency_limit` must be >= 1")

    timeout_raw = transformer_raw.get("timeout_seconds")
    transformer = TransformerConfig(
        command_template=str(_require(transformer_raw, "command_template", "transformer")).strip(),
        timeout_seconds=float(timeout_raw) if timeout_raw is not None else None,
    )
    try:
        template_args = shlex.split(transformer.command_template)
    except ValueError as exc:
        raise ValueError(f"`transformer.command_template` cannot be parsed: {exc}") from None
    if not template_args:
        raise ValueError("`transformer.command_template` must not be empty")
    if transformer.timeout_seconds is not None and transformer.timeout_seconds <= 0:
        raise ValueError("`transformer.timeout_seconds` must be > 0")

    album = AlbumConfig(
        columns=int(album_raw.get("columns", 2)),
        cell_size=int(album_raw.get("cell_size", 512)),
        title=str(album_raw.get("title", "Past Forward")),
    )
    if album.columns < 1:
        raise ValueError("`album.columns` must be >= 1")
    if album.cell_size < 64:
        raise ValueError("`album.cell_size` must be >= 64")

    return AppConfig(paths=paths, transformer=transformer, scheduler=scheduler, album=album)


def ensure_local_paths(config: AppConfig) -> None:
    config.paths.output.mkdir(parents=True, exist_ok=True)
    config.paths.log.parent.mkdir(parents=True, exist_ok=True)
