"""Settings loading and validation for YAML-based flowercare configuration."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from flowercare.core.errors import ConfigLoadError, ConfigValidationError
from flowercare.core.identity import is_valid_address, normalize_address

LOGGER = logging.getLogger(__name__)

# Namespace packages have no importable resource root under editable installs.
_PACKAGE_ROOT = Path(__file__).resolve().parent.parent


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class Settings:
    scan_duration_s: float = 10.0
    connect_timeout_s: float = 10.0
    io_timeout_s: float = 10.0
    ignore_unknown: bool = False
    include_unknown: bool = False
    addresses: tuple[str, ...] = ()
    aliases: dict[str, str] = field(default_factory=dict)

    def resolve_target(self, target: str) -> str:
        """Map an alias or address spelling to a normalized address."""
        return normalize_address(self.aliases.get(target, target))


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = (_PACKAGE_ROOT / "schemas" / "config.schema.json").read_text(encoding="utf-8")
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _user_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "flowercare/config.yaml"


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read settings file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Settings file {path} must contain a mapping at root")
    return loaded


def _validate(doc: dict[str, Any], source: Path) -> None:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc


def _normalize_address(value: str, *, context: str) -> str:
    if not is_valid_address(value.strip()):
        raise ConfigValidationError(f"{context} must be a MAC address like c4:7c:8d:65:d5:26")
    return normalize_address(value.strip())


def _build_settings(doc: dict[str, Any]) -> Settings:
    addresses = tuple(
        _normalize_address(address, context=f"addresses[{i}]")
        for i, address in enumerate(doc.get("addresses", []))
    )
    aliases = {
        name: _normalize_address(address, context=f"aliases.{name}")
        for name, address in doc.get("aliases", {}).items()
    }
    return Settings(
        scan_duration_s=float(doc.get("scan_duration_s", Settings.scan_duration_s)),
        connect_timeout_s=float(doc.get("connect_timeout_s", Settings.connect_timeout_s)),
        io_timeout_s=float(doc.get("io_timeout_s", Settings.io_timeout_s)),
        ignore_unknown=bool(doc.get("ignore_unknown", Settings.ignore_unknown)),
        include_unknown=bool(doc.get("include_unknown", Settings.include_unknown)),
        addresses=addresses,
        aliases=aliases,
    )


def load_settings(path: Path | None = None) -> LoadedSettings:
    """Load packaged defaults, then overlay the user file (or `path`) on top."""
    warnings: list[str] = []

    packaged = _PACKAGE_ROOT / "defaults" / "config.yaml"
    doc = _read_yaml(packaged)
    _validate(doc, packaged)

    user_path = path or _user_config_path()
    if path is not None or user_path.is_file():
        user_doc = _read_yaml(user_path)
        _validate(user_doc, user_path)
        doc.update(user_doc)

    settings = _build_settings(doc)

    for name in settings.aliases:
        if is_valid_address(name):
            warnings.append(f"Alias '{name}' looks like an address and shadows it")
    if settings.ignore_unknown and not settings.addresses:
        warnings.append("'ignore_unknown' without 'addresses' keeps no devices")
    for warning in warnings:
        LOGGER.debug(warning)

    return LoadedSettings(settings=settings, warnings=tuple(warnings))
