"""Global constants and default paths for bootrun."""

from __future__ import annotations

import os
from pathlib import Path

DEFAULT_CONFIG_PATH = Path("OSDK.toml")
DEFAULT_OUTPUT_DIR = Path("target/bootrun")
TRUTHY = {"1", "true", "yes", "on"}

BOOT_METHOD_RESCUE_ISO = "grub-rescue-iso"
BOOT_METHOD_DIRECT = "qemu-direct"
BOOT_METHOD_QCOW2 = "grub-qcow2"
BOOT_METHODS = (BOOT_METHOD_RESCUE_ISO, BOOT_METHOD_DIRECT, BOOT_METHOD_QCOW2)

GRUB_PROTOCOLS = ("multiboot2", "linux")
DEFAULT_GRUB_PROTOCOL = "multiboot2"
DEFAULT_GRUB_MKRESCUE = "grub-mkrescue"
QEMU_IMG = "qemu-img"

SUPPORTED_ARCHES = ("x86_64", "aarch64", "riscv64", "loongarch64", "ppc64", "s390x")

ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "riscv": "riscv64",
    "ppc64le": "ppc64",
    "ppc64el": "ppc64",
    "powerpc64": "ppc64",
    "loong64": "loongarch64",
}

# Canonical dotted paths accepted in the base document, the run/test
# overlays and scheme overlays, with their expected value type.
FIELD_TYPES = {
    "boot.method": str,
    "boot.kcmd_args": list,
    "boot.init_args": list,
    "boot.initramfs": str,
    "boot.kernel": str,
    "grub.protocol": str,
    "grub.mkrescue_path": str,
    "qemu.args": str,
    "qemu.path": str,
    "build.features": list,
}

SCHEME_SECTION = "scheme"
SUPPORTED_ARCHS_KEY = "supported_archs"

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in TRUTHY
