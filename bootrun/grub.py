"""GRUB configuration rendering for rescue ISO and qcow2 boot images."""

from __future__ import annotations

import textwrap

from bootrun.exceptions import InvalidGrubProtocolError


def render_grub_cfg(protocol: str, kernel_name: str, initramfs_name: str, cmdline: str) -> str:
    """Return a grub.cfg booting ``/boot/<kernel_name>`` with the initramfs as its module."""
    if protocol == "multiboot2":
        load = f"multiboot2 /boot/{kernel_name} {cmdline}".rstrip()
        module = f"module2 --nounzip /boot/{initramfs_name}"
    elif protocol == "linux":
        load = f"linux /boot/{kernel_name} {cmdline}".rstrip()
        module = f"initrd /boot/{initramfs_name}"
    else:
        raise InvalidGrubProtocolError(f"Unsupported grub.protocol '{protocol}'")

    return textwrap.dedent(
        f"""\
        set timeout_style=hidden
        set timeout=0

        menuentry 'bootrun' {{
            {load}
            {module}
            boot
        }}
        """
    )
