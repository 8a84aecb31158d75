"""Translate a ResolvedConfig into the ordered steps of a LaunchPlan."""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import Iterable, List, Optional, Union

from bootrun.constants import (
    BOOT_METHOD_DIRECT,
    BOOT_METHOD_QCOW2,
    BOOT_METHOD_RESCUE_ISO,
    DEFAULT_OUTPUT_DIR,
)
from bootrun.exceptions import MissingArtifactError, PlanError
from bootrun.models import BuildArtifact, InvokeEmulator, LaunchPlan, ResolvedConfig
from bootrun.utils import log


def kernel_cmdline(kcmd_args: Iterable[str], init_args: Iterable[str]) -> str:
    """Join kernel arguments; init arguments follow a ``--`` separator."""
    parts = list(kcmd_args)
    init = list(init_args)
    if init:
        parts.append("--")
        parts.extend(init)
    return " ".join(parts)


def split_qemu_args(qemu_args: str) -> List[str]:
    joined = qemu_args.replace("\\\r\n", " ").replace("\\\n", " ")
    try:
        return shlex.split(joined)
    except ValueError as exc:
        raise PlanError(f"qemu.args cannot be split into arguments: {exc}") from exc


def artifact_path(resolved: ResolvedConfig, kind: str, output_dir: Path) -> Path:
    return output_dir / f"bootrun-{resolved.scheme or 'default'}.{kind}"


def plan(
    resolved: ResolvedConfig,
    kernel_path: Optional[Union[str, Path]] = None,
    output_dir: Optional[Union[str, Path]] = None,
) -> LaunchPlan:
    method = resolved.boot_method
    kernel = str(kernel_path or resolved.kernel_path or "")
    if not kernel:
        raise MissingArtifactError("kernel", "set boot.kernel or pass --kernel")
    if not resolved.initramfs_path and method != BOOT_METHOD_DIRECT:
        raise MissingArtifactError("initramfs", f"boot.initramfs is empty but {method} requires it")

    out_dir = Path(output_dir) if output_dir else DEFAULT_OUTPUT_DIR
    emulator = [resolved.qemu_path, *split_qemu_args(resolved.qemu_args)]
    cmdline = kernel_cmdline(resolved.kcmd_args, resolved.init_args)

    if method == BOOT_METHOD_DIRECT:
        direct = ["-kernel", kernel]
        if resolved.initramfs_path:
            direct += ["-initrd", resolved.initramfs_path]
        steps = (InvokeEmulator(emulator + direct + ["-append", cmdline]),)
    elif method in (BOOT_METHOD_RESCUE_ISO, BOOT_METHOD_QCOW2):
        kind = "iso" if method == BOOT_METHOD_RESCUE_ISO else "qcow2"
        build = BuildArtifact(
            kind=kind,
            inputs={
                "kernel": kernel,
                "initramfs": resolved.initramfs_path,
                "cmdline": cmdline,
                "protocol": resolved.grub_protocol,
                "mkrescue": resolved.grub_mkrescue_path,
                "features": tuple(sorted(resolved.build_features)),
            },
            output=artifact_path(resolved, kind, out_dir),
        )
        if kind == "iso":
            attach = ["-cdrom", str(build.output)]
        else:
            attach = ["-drive", f"file={build.output},if=virtio,format=qcow2"]
        steps = (build, InvokeEmulator(emulator + attach))
    else:
        raise PlanError(f"No launch pipeline for boot method '{method}'")

    log("DEBUG", f"Planned {method}: {len(steps)} step(s)")
    return LaunchPlan(boot_method=method, steps=steps, build_features=resolved.build_features)
