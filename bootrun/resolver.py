"""Merge the base configuration, a context overlay and a scheme into one ResolvedConfig."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from bootrun.constants import (
    BOOT_METHODS,
    DEFAULT_GRUB_MKRESCUE,
    DEFAULT_GRUB_PROTOCOL,
    GRUB_PROTOCOLS,
)
from bootrun.exceptions import (
    InvalidBootMethodError,
    InvalidGrubProtocolError,
    UnknownSchemeError,
    UnsupportedArchitectureError,
)
from bootrun.expansion import ExpansionEngine
from bootrun.models import ConfigModel, Context, ResolvedConfig
from bootrun.utils import log, normalize_arch


def merge_layers(
    model: ConfigModel,
    context: Context,
    scheme_name: Optional[str],
    arch: str,
) -> Dict[str, Any]:
    """Return the merged, still unexpanded, field map.

    Each layer replaces whole fields of the layer below it: scheme over
    context over base. Lists are replaced, never appended to.
    """
    fields: Dict[str, Any] = dict(model.base)
    fields.update(model.contexts.get(context, {}))

    if scheme_name is not None:
        scheme = model.schemes.get(scheme_name)
        if scheme is None:
            raise UnknownSchemeError(scheme_name, model.schemes.keys())
        if not scheme.supports(arch):
            raise UnsupportedArchitectureError(scheme_name, arch, scheme.supported_archs)
        fields.update(scheme.overrides)
    return fields


def resolve(
    model: ConfigModel,
    context: Context,
    scheme_name: Optional[str] = None,
    arch: str = "x86_64",
    environ: Optional[Mapping[str, str]] = None,
    cwd: Optional[Union[str, Path]] = None,
) -> ResolvedConfig:
    arch = normalize_arch(arch)
    fields = merge_layers(model, context, scheme_name, arch)

    # Expansion runs once, after every layer has been applied.
    engine = ExpansionEngine(environ, cwd)

    def text(path: str, default: str = "") -> str:
        return engine.expand(fields.get(path, default))

    def words(path: str):
        return tuple(engine.expand(item) for item in fields.get(path, ()))

    resolved = ResolvedConfig(
        context=context,
        scheme=scheme_name,
        arch=arch,
        boot_method=text("boot.method"),
        grub_protocol=text("grub.protocol", DEFAULT_GRUB_PROTOCOL),
        grub_mkrescue_path=text("grub.mkrescue_path", DEFAULT_GRUB_MKRESCUE),
        qemu_args=text("qemu.args"),
        qemu_path=text("qemu.path", f"qemu-system-{arch}"),
        kcmd_args=words("boot.kcmd_args"),
        init_args=words("boot.init_args"),
        initramfs_path=text("boot.initramfs"),
        kernel_path=text("boot.kernel"),
        build_features=frozenset(words("build.features")),
    )

    if not resolved.boot_method:
        raise InvalidBootMethodError("boot.method is not set")
    if resolved.boot_method not in BOOT_METHODS:
        raise InvalidBootMethodError(
            f"Unknown boot.method '{resolved.boot_method}'. Supported: {', '.join(BOOT_METHODS)}"
        )
    if resolved.grub_protocol not in GRUB_PROTOCOLS:
        raise InvalidGrubProtocolError(
            f"Unknown grub.protocol '{resolved.grub_protocol}'. Supported: {', '.join(GRUB_PROTOCOLS)}"
        )

    log(
        "INFO",
        f"Resolved {context.value} config: scheme={scheme_name or 'default'}, arch={arch}, "
        f"boot={resolved.boot_method}, grub={resolved.grub_protocol}",
    )
    return resolved
