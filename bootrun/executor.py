"""Sequential execution of a LaunchPlan: image build, then the emulator."""

from __future__ import annotations

import shlex
import shutil
import signal
import subprocess
import tempfile
from pathlib import Path
from typing import List, Mapping, Optional, Union

from bootrun.constants import QEMU_IMG
from bootrun.exceptions import BuildError, ManagerError, MissingArtifactError, PlanError
from bootrun.grub import render_grub_cfg
from bootrun.models import BuildArtifact, InvokeEmulator, LaunchPlan
from bootrun.utils import ensure_directory, log, run


class LaunchExecutor:
    """Run the steps of one LaunchPlan in order.

    The invocation step only starts after every build step has succeeded and
    produced its output. Relative paths are resolved against ``cwd``.
    """

    def __init__(self, cwd: Optional[Union[str, Path]] = None, dry_run: bool = False) -> None:
        self.cwd = Path(cwd) if cwd is not None else None
        self.dry_run = dry_run

    def execute(self, plan: LaunchPlan) -> int:
        if not plan.steps or not isinstance(plan.steps[-1], InvokeEmulator):
            raise PlanError("Launch plan does not end with an emulator invocation")
        for step in plan.steps[:-1]:
            if not isinstance(step, BuildArtifact):
                raise PlanError("Launch plan has more than one emulator invocation")
            self.build(step)
        return self.invoke(plan.steps[-1])

    def _path(self, raw: Union[str, Path]) -> Path:
        path = Path(raw).expanduser()
        if not path.is_absolute() and self.cwd is not None:
            path = self.cwd / path
        return path

    def _mkrescue_command(self, raw: str) -> str:
        """A bare name is looked up on PATH; a directory is a GRUB install prefix."""
        if "/" not in raw and not raw.startswith("~"):
            return raw
        path = self._path(raw)
        if path.is_dir():
            return str(path / "bin" / "grub-mkrescue")
        return str(path)

    def _run_tool(self, cmd: List[str], label: str) -> None:
        try:
            run(cmd, cwd=self.cwd, capture_output=True)
        except FileNotFoundError as exc:
            raise BuildError(f"{label} not found: {cmd[0]}") from exc
        except subprocess.CalledProcessError as exc:
            message = f"{label} failed with status {exc.returncode}"
            stderr = (exc.stderr or "").strip()
            if stderr:
                message += f": {stderr}"
            raise BuildError(message) from exc

    def _build_rescue_iso(self, inputs: Mapping[str, object], output: Path) -> None:
        kernel = self._path(str(inputs["kernel"]))
        initramfs = self._path(str(inputs["initramfs"]))
        for label, path in (("kernel", kernel), ("initramfs", initramfs)):
            if not path.is_file():
                raise MissingArtifactError(label, f"{path} not found")

        with tempfile.TemporaryDirectory() as tmpdir:
            boot_dir = Path(tmpdir) / "iso_root" / "boot"
            ensure_directory(boot_dir / "grub")
            shutil.copy2(kernel, boot_dir / kernel.name)
            shutil.copy2(initramfs, boot_dir / initramfs.name)
            grub_cfg = render_grub_cfg(
                str(inputs["protocol"]), kernel.name, initramfs.name, str(inputs["cmdline"])
            )
            (boot_dir / "grub" / "grub.cfg").write_text(grub_cfg)
            mkrescue = self._mkrescue_command(str(inputs["mkrescue"]))
            self._run_tool([mkrescue, "-o", str(output), str(boot_dir.parent)], "grub-mkrescue")

    def build(self, step: BuildArtifact) -> None:
        output = self._path(step.output)
        features = ", ".join(step.inputs.get("features", ())) or "none"
        log("INFO", f"Building {step.kind} image {output} (features: {features})")
        if self.dry_run:
            log("INFO", f"[dry-run] kernel={step.inputs['kernel']} initramfs={step.inputs['initramfs']}")
            log("INFO", f"[dry-run] cmdline: {step.inputs['cmdline']}")
            return

        ensure_directory(output.parent)
        if step.kind == "iso":
            self._build_rescue_iso(step.inputs, output)
        elif step.kind == "qcow2":
            with tempfile.TemporaryDirectory() as tmpdir:
                iso = Path(tmpdir) / "boot.iso"
                self._build_rescue_iso(step.inputs, iso)
                self._run_tool([QEMU_IMG, "convert", "-O", "qcow2", str(iso), str(output)], "qemu-img")
        else:
            raise BuildError(f"Unknown artifact kind '{step.kind}'")

        if not output.exists() or output.stat().st_size == 0:
            raise MissingArtifactError(str(output), f"{step.kind} build produced no output")
        log("SUCCESS", f"Built {output}")

    def invoke(self, step: InvokeEmulator) -> int:
        log("INFO", f"Launching: {shlex.join(step.argv)}")
        if self.dry_run:
            return 0
        try:
            proc = subprocess.Popen(list(step.argv), cwd=self.cwd)
        except FileNotFoundError as exc:
            raise ManagerError(f"Emulator not found: {step.argv[0]}") from exc

        def _terminate_emulator(signum, frame):
            proc.terminate()

        prev_sigterm = signal.signal(signal.SIGTERM, _terminate_emulator)
        try:
            retcode = proc.wait()
        except KeyboardInterrupt:
            proc.send_signal(signal.SIGINT)
            retcode = proc.wait()
        finally:
            signal.signal(signal.SIGTERM, prev_sigterm)
        log("DEBUG", f"Emulator exited with status {retcode}")
        return retcode
