"""CLI entry points for bootrun."""

from __future__ import annotations

import argparse
import dataclasses
import traceback
from pathlib import Path
from typing import List, Optional

from bootrun.config import load_config
from bootrun.constants import DEFAULT_CONFIG_PATH, SUPPORTED_ARCHES
from bootrun.exceptions import ManagerError
from bootrun.executor import LaunchExecutor
from bootrun.models import ConfigModel, Context, ResolvedConfig
from bootrun.planner import plan
from bootrun.resolver import resolve
from bootrun.utils import detect_host_arch, get_env, log, normalize_arch


def list_schemes(model: ConfigModel) -> None:
    """Print the schemes defined in the configuration and the archs they accept."""
    if not model.schemes:
        log("WARN", "No schemes defined")
        return
    width = max(len(name) for name in model.schemes)
    for name in sorted(model.schemes):
        scheme = model.schemes[name]
        archs = ", ".join(scheme.supported_archs) or "all"
        overrides = ", ".join(sorted(scheme.overrides)) or "-"
        print(f"  {name:<{width}}  (archs={archs}; overrides: {overrides})")


def show_config(cfg: ResolvedConfig) -> None:
    """Print the resolved configuration and exit."""
    for field in dataclasses.fields(cfg):
        value = getattr(cfg, field.name)
        if isinstance(value, Context):
            value = value.value
        elif isinstance(value, frozenset):
            value = sorted(value)
        elif isinstance(value, tuple):
            value = list(value)
        print(f"  {field.name}: {value}")


def select_arch(raw: Optional[str]) -> str:
    candidate = raw or get_env("ARCH") or detect_host_arch()
    arch = normalize_arch(candidate)
    if arch not in SUPPORTED_ARCHES:
        raise ManagerError(f"Unsupported ARCH '{candidate}'. Supported: {', '.join(SUPPORTED_ARCHES)}")
    return arch


def _absolute(raw: Optional[str]) -> Optional[Path]:
    if not raw:
        return None
    return Path(raw).expanduser().resolve()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Resolve, build and boot kernel images under QEMU")
    parser.add_argument(
        "action",
        nargs="?",
        choices=[context.value for context in Context],
        default=Context.RUN.value,
        help="Boot for a normal run or for a test run (default: run)",
    )
    parser.add_argument("--scheme", help="Named scheme overlay to apply (env: BOOTRUN_SCHEME)")
    parser.add_argument("--arch", help="Target architecture (env: ARCH, default: host)")
    parser.add_argument("--config", help=f"Configuration file (env: BOOTRUN_CONFIG, default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("--kernel", help="Kernel image to boot (env: BOOTRUN_KERNEL)")
    parser.add_argument("--output-dir", help="Directory for built images (env: BOOTRUN_OUTPUT_DIR)")
    parser.add_argument("--list-schemes", action="store_true", help="List configured schemes and exit")
    parser.add_argument("--show-config", action="store_true", help="Show the resolved configuration and exit")
    parser.add_argument("--dry-run", action="store_true", help="Print the launch plan without running it")
    args = parser.parse_args(argv)

    config_path = Path(args.config or get_env("BOOTRUN_CONFIG") or DEFAULT_CONFIG_PATH)
    workdir = config_path.resolve().parent

    try:
        model = load_config(config_path)
        if args.list_schemes:
            list_schemes(model)
            return 0

        arch = select_arch(args.arch)
        scheme = args.scheme or get_env("BOOTRUN_SCHEME") or None
        resolved = resolve(model, Context(args.action), scheme, arch, cwd=workdir)
        if args.show_config:
            show_config(resolved)
            return 0

        launch_plan = plan(
            resolved,
            kernel_path=_absolute(args.kernel or get_env("BOOTRUN_KERNEL")),
            output_dir=_absolute(args.output_dir or get_env("BOOTRUN_OUTPUT_DIR")),
        )
        executor = LaunchExecutor(cwd=workdir, dry_run=args.dry_run)
        retcode = executor.execute(launch_plan)
    except ManagerError as exc:
        log("ERROR", str(exc))
        return exc.exit_code
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        traceback.print_exc()
        return 1

    if retcode != 0:
        log("WARN", f"Emulator exited with status {retcode}")
    return retcode
