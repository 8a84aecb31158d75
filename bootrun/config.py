"""Configuration document loading and schema validation for bootrun."""

from __future__ import annotations

import re
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from bootrun.constants import (
    DEFAULT_CONFIG_PATH,
    FIELD_TYPES,
    SCHEME_SECTION,
    SUPPORTED_ARCHES,
    SUPPORTED_ARCHS_KEY,
)
from bootrun.exceptions import ConfigError, DuplicateSchemeError
from bootrun.models import ConfigModel, Context, SchemeOverlay
from bootrun.utils import log, normalize_arch

YAML_SUFFIXES = {".yaml", ".yml"}

_TOML_NAME = r"""(?:"([^"]*)"|'([^']*)'|([A-Za-z0-9_-]+))"""
_TOML_TABLE_RE = re.compile(r"^[ \t]*\[")
_TOML_SCHEME_TABLE_RE = re.compile(r"^[ \t]*\[[ \t]*scheme[ \t]*\][ \t]*(?:#.*)?$")
_TOML_SCHEME_HEADER_RE = re.compile(
    r"^[ \t]*\[[ \t]*scheme[ \t]*\.[ \t]*" + _TOML_NAME + r"[ \t]*\][ \t]*(?:#.*)?$"
)
_TOML_KEY_RE = re.compile(r"^[ \t]*" + _TOML_NAME + r"[ \t]*([.=])")

BASE_SECTIONS = sorted({path.split(".", 1)[0] for path in FIELD_TYPES})


def _first_duplicate(names: List[str]) -> Optional[str]:
    seen = set()
    for name in names:
        if name in seen:
            return name
        seen.add(name)
    return None


def _toml_name(match: re.Match) -> str:
    return next(g for g in match.groups()[:3] if g is not None)


def _duplicate_toml_scheme(text: str) -> Optional[str]:
    """Find a scheme defined twice through headers, inline tables or dotted keys.

    Every ``[scheme.<name>]`` header and every ``<name> = ...`` line inside a
    ``[scheme]`` table is one definition. All ``<name>.<key> = ...`` lines of a
    single ``[scheme]`` table together count as one more.
    """
    names: List[str] = []
    dotted: List[str] = []
    in_scheme_table = False
    for line in text.splitlines():
        if _TOML_TABLE_RE.match(line):
            names.extend(dotted)
            dotted = []
            header = _TOML_SCHEME_HEADER_RE.match(line)
            if header:
                names.append(_toml_name(header))
            in_scheme_table = bool(_TOML_SCHEME_TABLE_RE.match(line))
            continue
        if not in_scheme_table:
            continue
        key = _TOML_KEY_RE.match(line)
        if key is None:
            continue
        name = _toml_name(key)
        if key.group(4) == "=":
            names.append(name)
        elif name not in dotted:
            dotted.append(name)
    names.extend(dotted)
    return _first_duplicate(names)


def _duplicate_yaml_scheme(text: str) -> Optional[str]:
    # safe_load keeps the last of two equal keys, so inspect the node graph.
    try:
        root = yaml.compose(text, Loader=yaml.SafeLoader)
    except yaml.YAMLError:
        return None
    if not isinstance(root, yaml.MappingNode):
        return None
    for key_node, value_node in root.value:
        if key_node.value == SCHEME_SECTION and isinstance(value_node, yaml.MappingNode):
            return _first_duplicate([str(k.value) for k, _ in value_node.value])
    return None


def load_config_document(path: Path) -> Dict[str, Any]:
    """Parse ``path`` as YAML or TOML (chosen by suffix) into a plain mapping."""
    if not path.exists():
        raise ConfigError(f"Configuration file missing: {path}")
    try:
        text = path.read_text()
    except OSError as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc

    if path.suffix.lower() in YAML_SUFFIXES:
        duplicate = _duplicate_yaml_scheme(text)
        if duplicate is not None:
            raise DuplicateSchemeError(duplicate)
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"{path} contains invalid YAML: {exc}") from exc
    else:
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            # tomllib rejects every redefinition; only the scan can name the scheme.
            duplicate = _duplicate_toml_scheme(text)
            if duplicate is not None:
                raise DuplicateSchemeError(duplicate) from exc
            raise ConfigError(f"{path} contains invalid TOML: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level, got {type(data).__name__}")
    return data


def _check_value(where: str, value: Any, expected: type) -> Any:
    if expected is list:
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ConfigError(f"'{where}' must be a list of strings")
        return list(value)
    if not isinstance(value, expected):
        raise ConfigError(f"'{where}' must be a {expected.__name__}, got {type(value).__name__}")
    return value


def _flatten_sections(table: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Turn ``{"boot": {"method": ...}}`` into ``{"boot.method": ...}``."""
    fields: Dict[str, Any] = {}
    for section, body in table.items():
        if section not in BASE_SECTIONS:
            raise ConfigError(f"Unknown configuration section '{prefix}{section}'")
        if not isinstance(body, dict):
            raise ConfigError(f"'{prefix}{section}' must be a table")
        for key, value in body.items():
            path = f"{section}.{key}"
            expected = FIELD_TYPES.get(path)
            if expected is None:
                raise ConfigError(f"Unknown configuration key '{prefix}{path}'")
            fields[path] = _check_value(prefix + path, value, expected)
    return fields


def _parse_supported_archs(name: str, raw: Any) -> List[str]:
    where = f"{SCHEME_SECTION}.{name}.{SUPPORTED_ARCHS_KEY}"
    archs = []
    for arch in _check_value(where, raw, list):
        normalized = normalize_arch(arch)
        if normalized not in SUPPORTED_ARCHES:
            supported = ", ".join(SUPPORTED_ARCHES)
            raise ConfigError(f"'{where}' lists unsupported arch '{arch}'. Supported: {supported}")
        archs.append(normalized)
    return archs


def _parse_scheme(name: str, body: Any) -> SchemeOverlay:
    if not isinstance(body, dict):
        raise ConfigError(f"'{SCHEME_SECTION}.{name}' must be a table")
    body = dict(body)
    archs: List[str] = []
    if SUPPORTED_ARCHS_KEY in body:
        archs = _parse_supported_archs(name, body.pop(SUPPORTED_ARCHS_KEY))
    overrides = _flatten_sections(body, prefix=f"{SCHEME_SECTION}.{name}.")
    return SchemeOverlay(name=name, supported_archs=tuple(archs), overrides=overrides)


def parse_model(data: Dict[str, Any]) -> ConfigModel:
    data = dict(data)
    contexts = {}
    for context in Context:
        raw = data.pop(context.value, None) or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"'{context.value}' must be a table")
        contexts[context] = _flatten_sections(raw, prefix=f"{context.value}.")

    raw_schemes = data.pop(SCHEME_SECTION, None) or {}
    if not isinstance(raw_schemes, dict):
        raise ConfigError(f"'{SCHEME_SECTION}' must be a table of named schemes")
    schemes = [_parse_scheme(str(name), body) for name, body in raw_schemes.items()]

    base = _flatten_sections(data)
    return ConfigModel.build(base=base, contexts=contexts, schemes=schemes)


def load_config(config_path: Optional[Path] = None) -> ConfigModel:
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    model = parse_model(load_config_document(config_path))
    log("DEBUG", f"Loaded {config_path} ({len(model.schemes)} schemes)")
    return model

