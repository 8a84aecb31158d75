"""Shared test fixtures."""

from __future__ import annotations

import stat
import textwrap

import pytest

from bootrun.config import load_config
from bootrun.models import Context, ResolvedConfig

OSDK_TOML = '''\
[boot]
method = "grub-rescue-iso"

[run.boot]
kcmd_args = [
    "SHELL=/bin/sh",
    "LOGNAME=root",
    "HOME=/",
    "USER=root",
    "PATH=/bin:/benchmark",
    "init=/usr/bin/busybox",
]
init_args = ["sh", "-l"]
initramfs = "regression/build/initramfs.cpio.gz"

[test]
boot.method = "qemu-direct"

[grub]
protocol = "multiboot2"

[qemu]
args = "$(./tools/qemu_args.sh normal -ovmf)"

[test.qemu]
args = "$(./tools/qemu_args.sh test)"

[scheme."microvm"]
boot.method = "qemu-direct"
qemu.args = "$(./tools/qemu_args.sh microvm)"

[scheme."iommu"]
supported_archs = ["x86_64"]
qemu.args = "$(./tools/qemu_args.sh iommu)"

[scheme."tdx"]
supported_archs = ["x86_64"]
build.features = ["intel_tdx"]
boot.method = "grub-qcow2"
grub.mkrescue_path = "~/tdx-tools/grub"
grub.protocol = "linux"
qemu.args = """\\
    -accel kvm \\
    -name process=tdxvm,debug-threads=on \\
    -m ${MEM:-8G} \\
    -smp ${SMP:-1} \\
    -vga none \\
    -nographic \\
    -object tdx-guest,sept-ve-disable,id=tdx,quote-generation-service=vsock:2:4050 \\
    -machine q35,kernel_irqchip=split,confidential-guest-support=tdx \\
    -drive file=fs.img,if=none,format=raw,id=x0 \\
    -chardev stdio,id=mux,mux=on,logfile=./$(date '+%Y-%m-%dT%H%M%S').log \\
"""
'''

QEMU_ARGS_SCRIPT = """\
#!/bin/sh
case "$1" in
    normal) echo "-m 4G" ;;
    test) echo "-m 2G -device isa-debug-exit,iobase=0xf4,iosize=0x04" ;;
    microvm) echo "-M microvm -m 1G" ;;
    iommu) echo "-m 4G -device intel-iommu,intremap=on" ;;
    *) echo "unknown mode: $1" >&2; exit 3 ;;
esac
"""


def _write_script(path, body: str):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(body))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def write_script():
    """Write an executable stub script and return its path."""
    return _write_script


@pytest.fixture
def project_dir(tmp_path):
    """A project root holding OSDK.toml and a stub tools/qemu_args.sh."""
    (tmp_path / "OSDK.toml").write_text(OSDK_TOML)
    _write_script(tmp_path / "tools" / "qemu_args.sh", QEMU_ARGS_SCRIPT)
    return tmp_path


@pytest.fixture
def osdk_model(project_dir):
    return load_config(project_dir / "OSDK.toml")


@pytest.fixture
def clean_env(monkeypatch):
    """Clear every environment variable the resolver and CLI read."""
    for key in ("MEM", "SMP", "ARCH", "BOOTRUN_CONFIG", "BOOTRUN_SCHEME", "BOOTRUN_KERNEL", "BOOTRUN_OUTPUT_DIR"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def make_resolved():
    """Build a ResolvedConfig with sensible defaults, overridable per test."""

    def _make(**overrides) -> ResolvedConfig:
        values = dict(
            context=Context.RUN,
            scheme=None,
            arch="x86_64",
            boot_method="grub-rescue-iso",
            grub_protocol="multiboot2",
            grub_mkrescue_path="grub-mkrescue",
            qemu_args="-m 4G -nographic",
            qemu_path="qemu-system-x86_64",
            kcmd_args=("SHELL=/bin/sh", "init=/usr/bin/busybox"),
            init_args=("sh", "-l"),
            initramfs_path="build/initramfs.cpio.gz",
            kernel_path="build/kernel",
            build_features=frozenset(),
        )
        values.update(overrides)
        return ResolvedConfig(**values)

    return _make
