"""Data models for bootrun."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple, Union

from bootrun.exceptions import DuplicateSchemeError

FieldMap = Mapping[str, Any]


class Context(enum.Enum):
    RUN = "run"
    TEST = "test"


def _freeze(values: Optional[Mapping[str, Any]]) -> FieldMap:
    return MappingProxyType(dict(values or {}))


@dataclass(frozen=True)
class SchemeOverlay:
    name: str
    supported_archs: Tuple[str, ...] = ()
    overrides: FieldMap = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "supported_archs", tuple(self.supported_archs))
        object.__setattr__(self, "overrides", _freeze(self.overrides))

    def supports(self, arch: str) -> bool:
        """An empty ``supported_archs`` means every architecture."""
        return not self.supported_archs or arch in self.supported_archs


@dataclass(frozen=True)
class ConfigModel:
    """Loaded configuration document, flattened to canonical dotted paths.

    ``base`` holds the global sections, ``contexts`` the ``run``/``test``
    overlays and ``schemes`` the named overlays. Instances are read-only and
    may be shared between any number of resolutions.
    """

    base: FieldMap = field(default_factory=dict)
    contexts: Mapping[Context, FieldMap] = field(default_factory=dict)
    schemes: Mapping[str, SchemeOverlay] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "base", _freeze(self.base))
        contexts = {ctx: _freeze(self.contexts.get(ctx)) for ctx in Context}
        object.__setattr__(self, "contexts", MappingProxyType(contexts))
        object.__setattr__(self, "schemes", MappingProxyType(dict(self.schemes)))

    @classmethod
    def build(
        cls,
        base: Optional[Mapping[str, Any]] = None,
        contexts: Optional[Mapping[Context, Mapping[str, Any]]] = None,
        schemes: Iterable[SchemeOverlay] = (),
    ) -> "ConfigModel":
        by_name: Dict[str, SchemeOverlay] = {}
        for scheme in schemes:
            if scheme.name in by_name:
                raise DuplicateSchemeError(scheme.name)
            by_name[scheme.name] = scheme
        return cls(base=base or {}, contexts=contexts or {}, schemes=by_name)


@dataclass(frozen=True)
class ResolvedConfig:
    context: Context
    scheme: Optional[str]
    arch: str
    boot_method: str
    grub_protocol: str
    grub_mkrescue_path: str
    qemu_args: str
    qemu_path: str
    kcmd_args: Tuple[str, ...] = ()
    init_args: Tuple[str, ...] = ()
    initramfs_path: str = ""
    kernel_path: str = ""
    build_features: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class BuildArtifact:
    kind: str  # "iso" or "qcow2"
    inputs: FieldMap
    output: Path

    def __post_init__(self):
        object.__setattr__(self, "inputs", _freeze(self.inputs))


@dataclass(frozen=True)
class InvokeEmulator:
    argv: Tuple[str, ...]

    def __post_init__(self):
        object.__setattr__(self, "argv", tuple(self.argv))


Step = Union[BuildArtifact, InvokeEmulator]


@dataclass(frozen=True)
class LaunchPlan:
    boot_method: str
    steps: Tuple[Step, ...]
    build_features: FrozenSet[str] = frozenset()

    @property
    def build_steps(self) -> Tuple[BuildArtifact, ...]:
        return tuple(step for step in self.steps if isinstance(step, BuildArtifact))

    @property
    def invocation(self) -> InvokeEmulator:
        return self.steps[-1]  # type: ignore[return-value]
