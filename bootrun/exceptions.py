"""Custom exceptions for bootrun.

Every error carries an ``exit_code`` so scripted callers can branch on the
failure class.
"""


class ManagerError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""

    exit_code = 1


class ConfigError(ManagerError):
    """The configuration document is missing, unparsable or fails the schema."""

    exit_code = 2


class DuplicateSchemeError(ConfigError):
    exit_code = 3

    def __init__(self, name: str) -> None:
        super().__init__(f"Scheme '{name}' is defined more than once")
        self.name = name


class ResolutionError(ManagerError):
    exit_code = 4


class UnknownSchemeError(ResolutionError):
    exit_code = 5

    def __init__(self, name: str, available=()) -> None:
        message = f"Unknown scheme '{name}'"
        if available:
            message += f". Available: {', '.join(sorted(available))}"
        super().__init__(message)
        self.name = name


class UnsupportedArchitectureError(ResolutionError):
    exit_code = 6

    def __init__(self, scheme: str, arch: str, supported=()) -> None:
        super().__init__(
            f"Scheme '{scheme}' does not support arch '{arch}' (supported: {', '.join(supported)})"
        )
        self.scheme = scheme
        self.arch = arch
        self.supported = tuple(supported)


class InvalidBootMethodError(ResolutionError):
    exit_code = 7


class InvalidGrubProtocolError(ResolutionError):
    exit_code = 8


class ExpansionError(ResolutionError):
    """A ``$(...)`` substitution failed or a required variable is unset."""

    exit_code = 9

    def __init__(self, token: str, cause: str) -> None:
        super().__init__(f"Failed to expand '{token}': {cause}")
        self.token = token
        self.cause = cause


class PlanError(ManagerError):
    exit_code = 10


class MissingArtifactError(PlanError):
    exit_code = 11

    def __init__(self, artifact: str, detail: str = "") -> None:
        message = f"Missing artifact: {artifact}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)
        self.artifact = artifact


class BuildError(ManagerError):
    """An external build tool (grub-mkrescue, qemu-img) failed."""

    exit_code = 12
