"""Project loading, build-system detection and configuration validation."""

import json
import tomllib
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from edgeship.core.exceptions import ProjectValidationError
from edgeship.deploy.models import PipelineStep

PLATFORM_MANIFEST = "wrangler.toml"
PACKAGE_MANIFEST = "package.json"
SETUP_CONFIG = "setup.config.json"
REQUIRED_FILES = (PLATFORM_MANIFEST, PACKAGE_MANIFEST)
REQUIRED_DIRS = ("src",)


class PackageManager(str, Enum):
    """JavaScript package managers, detected from lockfiles."""

    NPM = "npm"
    PNPM = "pnpm"
    YARN = "yarn"
    BUN = "bun"

    def install_args(self) -> list[str]:
        """Clean, lockfile-respecting install."""
        if self is PackageManager.NPM:
            return ["ci"]
        return ["install", "--frozen-lockfile"]

    def script_args(self, script: str) -> list[str]:
        return ["run", script]


# Checked in order; first lockfile found wins
LOCKFILES: list[tuple[str, PackageManager]] = [
    ("pnpm-lock.yaml", PackageManager.PNPM),
    ("yarn.lock", PackageManager.YARN),
    ("bun.lockb", PackageManager.BUN),
    ("bun.lock", PackageManager.BUN),
    ("package-lock.json", PackageManager.NPM),
]


def detect_package_manager(project_path: Path, package_json: dict[str, Any] | None = None) -> PackageManager:
    """Detect the build system of a project.

    The ``packageManager`` field of package.json wins over lockfiles.
    """
    declared = (package_json or {}).get("packageManager")
    if isinstance(declared, str):
        name = declared.split("@", 1)[0]
        try:
            return PackageManager(name)
        except ValueError:
            pass

    for filename, manager in LOCKFILES:
        if (project_path / filename).exists():
            return manager
    return PackageManager.NPM


@dataclass
class ProjectConfig:
    """Parsed project configuration."""

    path: Path
    wrangler: dict[str, Any]
    package: dict[str, Any]
    setup: dict[str, Any] = field(default_factory=dict)
    package_manager: PackageManager = PackageManager.NPM

    @property
    def name(self) -> str | None:
        return self.wrangler.get("name") or self.package.get("name")

    @property
    def scripts(self) -> dict[str, str]:
        scripts = self.package.get("scripts") or {}
        return scripts if isinstance(scripts, dict) else {}

    def has_script(self, name: str) -> bool:
        return bool(self.scripts.get(name))

    @property
    def environments(self) -> dict[str, Any]:
        envs = self.wrangler.get("env") or {}
        return envs if isinstance(envs, dict) else {}

    def has_environment(self, environment: str) -> bool:
        return environment in self.environments


def validate_project_structure(project_path: Path) -> None:
    """Check the files and directories every deployable project needs."""
    if not project_path.is_dir():
        raise ProjectValidationError(
            f"Project path is not a directory: {project_path}",
            stage=PipelineStep.VALIDATE,
        )

    for filename in REQUIRED_FILES:
        if not (project_path / filename).is_file():
            raise ProjectValidationError(
                f"Required file missing: {filename}",
                stage=PipelineStep.VALIDATE,
            )

    for dirname in REQUIRED_DIRS:
        if not (project_path / dirname).is_dir():
            raise ProjectValidationError(
                f"Required directory missing: {dirname}",
                stage=PipelineStep.VALIDATE,
            )


def load_project(project_path: str | Path) -> ProjectConfig:
    """Load and parse the project's manifests."""
    path = Path(project_path)

    try:
        with open(path / PLATFORM_MANIFEST, "rb") as f:
            wrangler = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ProjectValidationError(
            f"Invalid {PLATFORM_MANIFEST}: {e}", stage=PipelineStep.VALIDATE
        )
    except OSError as e:
        raise ProjectValidationError(
            f"Cannot read {PLATFORM_MANIFEST}: {e}", stage=PipelineStep.VALIDATE
        )

    package = _load_json(path / PACKAGE_MANIFEST, required=True)
    setup = _load_json(path / SETUP_CONFIG, required=False)

    return ProjectConfig(
        path=path,
        wrangler=wrangler,
        package=package,
        setup=setup,
        package_manager=detect_package_manager(path, package),
    )


def _load_json(path: Path, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ProjectValidationError(f"Required file missing: {path.name}", stage=PipelineStep.VALIDATE)
        return {}
    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ProjectValidationError(f"Invalid {path.name}: {e}", stage=PipelineStep.VALIDATE)
    except OSError as e:
        raise ProjectValidationError(f"Cannot read {path.name}: {e}", stage=PipelineStep.VALIDATE)

    if not isinstance(data, dict):
        raise ProjectValidationError(f"{path.name} must contain a JSON object", stage=PipelineStep.VALIDATE)
    return data


@dataclass
class ValidationReport:
    """Outcome of semantic configuration validation."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class ConfigValidator(Protocol):
    """Semantic validator for a loaded project."""

    def validate(self, project: ProjectConfig) -> ValidationReport: ...


class BasicConfigValidator:
    """Checks the manifest fields wrangler cannot deploy without."""

    def validate(self, project: ProjectConfig) -> ValidationReport:
        errors: list[str] = []
        warnings: list[str] = []

        if not project.wrangler.get("name"):
            errors.append(f"{PLATFORM_MANIFEST} must declare a 'name'")

        compat = project.wrangler.get("compatibility_date")
        if compat is None:
            warnings.append(f"{PLATFORM_MANIFEST} has no compatibility_date")
        elif not isinstance(compat, date):
            try:
                date.fromisoformat(str(compat))
            except ValueError:
                errors.append(f"Invalid compatibility_date: {compat}")

        if not project.package.get("name"):
            warnings.append(f"{PACKAGE_MANIFEST} has no 'name'")

        return ValidationReport(valid=not errors, errors=errors, warnings=warnings)
