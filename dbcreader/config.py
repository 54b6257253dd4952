"""User config and schema path resolution."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import click

from dbcreader.dbc.schema import Schema, load_schema

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)


@dataclass
class Config:
    schema_dir: Optional[Path] = None
    localization: Optional[int] = None    # None: use each schema file's own


def get_config_path() -> Path:
    """Return the TOML config file path via click.get_app_dir."""
    return Path(click.get_app_dir("dbcreader")) / "config.toml"


def load_config(path: Optional[Path] = None) -> Config:
    """Read TOML config. Returns default Config if file missing."""
    path = path or get_config_path()
    if not path.exists():
        return Config()

    with open(path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise click.UsageError(f"Invalid config file {path}: {e}") from e

    schema_dir = data.get("schema_dir")
    localization = data.get("localization")
    if localization is not None and (isinstance(localization, bool) or not isinstance(localization, int)):
        raise click.UsageError(f"Invalid config file {path}: localization must be an integer, got {localization!r}")
    return Config(
        schema_dir=Path(schema_dir) if schema_dir else None,
        localization=localization,
    )


def save_config(config: Config, path: Optional[Path] = None) -> Path:
    """Write config to TOML using literal strings for paths."""
    path = path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    lines: list[str] = []
    if config.schema_dir:
        # TOML literal strings (single quotes) so backslashes aren't escapes
        lines.append(f"schema_dir = '{config.schema_dir}'")
    if config.localization is not None:
        lines.append(f"localization = {config.localization}")
    lines.append("")

    path.write_text("\n".join(lines), encoding="utf-8")
    return path


def derive_schema_path(dbc: Path, schema_dir: Optional[Path]) -> Optional[Path]:
    """Schema file for a table: <schema_dir>/<Table>.toml if it exists."""
    if schema_dir is None:
        return None
    p = schema_dir / f"{dbc.stem}.toml"
    return p if p.exists() else None


def resolve_schema(dbc: Path, schema: Optional[Path], config: Config) -> Optional[Schema]:
    """Resolve the schema for a table: --schema > config schema_dir > none."""
    if schema is not None:
        if not schema.exists():
            raise click.UsageError(f"Schema file not found: {schema}")
        return load_schema(schema, config.localization)

    path = derive_schema_path(dbc, config.schema_dir)
    if path is None:
        logger.debug("No schema found for %s", dbc.name)
        return None
    return load_schema(path, config.localization)
