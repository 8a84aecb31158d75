"""bootrun package."""

__all__ = [
    "cli",
    "config",
    "constants",
    "exceptions",
    "executor",
    "expansion",
    "grub",
    "models",
    "planner",
    "resolver",
    "utils",
]
