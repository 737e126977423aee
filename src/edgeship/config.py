"""Configuration management for edgeship using Pydantic."""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from edgeship.core.exceptions import ConfigError
from edgeship.core.logging import LogLevel
from edgeship.core.output import OutputFormat


def _env(env: Mapping[str, str] | None) -> Mapping[str, str]:
    return os.environ if env is None else env


class PlatformConfig(BaseModel):
    """Edge platform (wrangler / Cloudflare API) configuration."""

    cli: str = "wrangler"
    api_base_url: str = "https://api.cloudflare.com/client/v4"
    api_token: str | None = None
    account_id: str | None = None
    validate_args: list[str] = Field(
        default_factory=lambda: ["deploy", "--dry-run", "--outdir", ".wrangler/validate"]
    )
    probe_timeout: float = 15.0
    timeout: int = 30

    def get_api_token(self, env: Mapping[str, str] | None = None) -> str | None:
        """Get API token from config or environment."""
        token = self.api_token
        if token == "from_env" or token is None:
            env = _env(env)
            token = env.get("EDGESHIP_API_TOKEN") or env.get("CLOUDFLARE_API_TOKEN")
        return token

    def get_account_id(self, env: Mapping[str, str] | None = None) -> str | None:
        """Get account id from config or environment."""
        env = _env(env)
        return (
            env.get("EDGESHIP_ACCOUNT_ID")
            or env.get("CLOUDFLARE_ACCOUNT_ID")
            or self.account_id
        )


class DeployConfig(BaseModel):
    """Pipeline and CI wrapper settings."""

    reports_dir: str = ".deployment-reports"
    ci_records_dir: str = ".ci-deployments"
    required_secrets: list[str] = Field(
        default_factory=lambda: ["CLOUDFLARE_API_TOKEN", "CLOUDFLARE_ACCOUNT_ID"]
    )
    secret_keys: list[str] = Field(
        default_factory=lambda: [
            "AIRTABLE_API_KEY",
            "AIRTABLE_BASE_ID",
            "DATABASE_URL",
            "API_SECRET_KEY",
        ]
    )
    variable_prefixes: list[str] = Field(default_factory=lambda: ["VITE_"])
    warmup_paths: list[str] = Field(default_factory=lambda: ["/api/health", "/api/status"])
    health_paths: list[str] = Field(default_factory=lambda: ["/health", "/api/status"])
    probe_timeout: float = 10.0

    def get_reports_dir(self, env: Mapping[str, str] | None = None) -> str:
        """Get the deployment reports directory."""
        return _env(env).get("EDGESHIP_REPORTS_DIR") or self.reports_dir

    def get_ci_records_dir(self, env: Mapping[str, str] | None = None) -> str:
        """Get the CI records directory."""
        return _env(env).get("EDGESHIP_CI_RECORDS_DIR") or self.ci_records_dir


class NotificationsConfig(BaseModel):
    """Notification channel settings."""

    slack_webhook_url: str | None = None
    webhook_url: str | None = None
    github_token: str | None = None
    github_api_url: str = "https://api.github.com"
    timeout: int = 10

    def get_slack_webhook_url(self, env: Mapping[str, str] | None = None) -> str | None:
        """Get Slack incoming webhook URL from config or environment."""
        return _env(env).get("SLACK_WEBHOOK_URL") or self.slack_webhook_url

    def get_webhook_url(self, env: Mapping[str, str] | None = None) -> str | None:
        """Get the generic deployment webhook URL from config or environment."""
        return _env(env).get("DEPLOYMENT_WEBHOOK_URL") or self.webhook_url

    def get_github_token(self, env: Mapping[str, str] | None = None) -> str | None:
        """Get GitHub token from config or environment."""
        token = self.github_token
        if token == "from_env" or token is None:
            env = _env(env)
            token = env.get("EDGESHIP_GITHUB_TOKEN") or env.get("GITHUB_TOKEN") or env.get("GH_TOKEN")
        return token


class ProfileConfig(BaseModel):
    """Profile configuration grouping all service settings."""

    platform: PlatformConfig = Field(default_factory=PlatformConfig)
    deploy: DeployConfig = Field(default_factory=DeployConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)


class GlobalConfig(BaseModel):
    """Global settings."""

    output_format: OutputFormat = OutputFormat.TABLE
    color: str = "auto"  # auto, always, never
    verbosity: LogLevel = LogLevel.WARNING
    dry_run: bool = False

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        if v not in ("auto", "always", "never"):
            raise ValueError("color must be 'auto', 'always', or 'never'")
        return v


class EdgeshipConfig(BaseModel):
    """Main configuration model."""

    model_config = {"populate_by_name": True}

    version: str = "1"
    global_settings: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    profiles: dict[str, ProfileConfig] = Field(default_factory=lambda: {"default": ProfileConfig()})

    def get_profile(self, name: str | None = None) -> ProfileConfig:
        """Get a profile by name, defaulting to 'default'."""
        profile_name = name or "default"
        if profile_name not in self.profiles:
            raise ConfigError(f"Profile '{profile_name}' not found")
        return self.profiles[profile_name]


class EnvSettings(BaseSettings):
    """Process-level overrides read from ``EDGESHIP_*`` variables."""

    model_config = SettingsConfigDict(env_prefix="EDGESHIP_", extra="ignore")

    output_format: OutputFormat | None = None
    verbosity: LogLevel | None = None
    dry_run: bool | None = None

    def as_overrides(self) -> dict[str, Any]:
        """Global-section overrides for the values that are set."""
        values = self.model_dump(exclude_none=True)
        return {"global": values} if values else {}


class ConfigLoader:
    """Loads and merges configuration from multiple sources."""

    CONFIG_FILENAMES = ["edgeship.yaml", "edgeship.yml", ".edgeship.yaml", ".edgeship.yml"]

    def __init__(self):
        self._config: EdgeshipConfig | None = None

    def load(
        self,
        config_file: str | Path | None = None,
        profile: str | None = None,
        start_dir: Path | None = None,
    ) -> EdgeshipConfig:
        """Load configuration from files and environment.

        Priority (highest to lowest):
        1. EDGESHIP_* environment variables (global settings only)
        2. Explicitly specified config file
        3. Project config (./edgeship.yaml)
        4. User config (~/.edgeship/config.yaml)

        Args:
            config_file: Optional explicit config file path
            profile: Profile name that must exist in the result
            start_dir: Directory to start the project config search from

        Returns:
            Merged configuration
        """
        configs: list[dict[str, Any]] = []

        user_config_path = Path.home() / ".edgeship" / "config.yaml"
        if user_config_path.exists():
            configs.append(self._load_yaml_file(user_config_path))

        project_config = self._find_project_config(start_dir)
        if project_config:
            configs.append(self._load_yaml_file(project_config))

        if config_file:
            config_path = Path(config_file)
            if not config_path.exists():
                raise ConfigError(f"Config file not found: {config_file}")
            configs.append(self._load_yaml_file(config_path))

        configs.append(EnvSettings().as_overrides())

        merged = self._merge_configs(configs)

        try:
            self._config = EdgeshipConfig(**merged)
        except ValueError as e:
            raise ConfigError(f"Invalid configuration: {e}")

        if profile:
            self._config.get_profile(profile)
        return self._config

    def _find_project_config(self, start_dir: Path | None = None) -> Path | None:
        """Find project config file in current or parent directories."""
        current = (start_dir or Path.cwd()).resolve()

        while current != current.parent:
            for filename in self.CONFIG_FILENAMES:
                config_path = current / filename
                if config_path.exists():
                    return config_path
            current = current.parent

        return None

    def _load_yaml_file(self, path: Path) -> dict[str, Any]:
        """Load a YAML config file."""
        try:
            with open(path) as f:
                content = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")
        except OSError as e:
            raise ConfigError(f"Cannot read {path}: {e}")

        if not isinstance(content, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return content

    def _merge_configs(self, configs: list[dict[str, Any]]) -> dict[str, Any]:
        """Deep merge multiple configuration dictionaries."""
        result: dict[str, Any] = {}
        for config in configs:
            result = self._deep_merge(result, config)
        return result

    def _deep_merge(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result


# Global config loader instance
_config_loader = ConfigLoader()


def load_config(
    config_file: str | Path | None = None,
    profile: str | None = None,
) -> EdgeshipConfig:
    """Load edgeship configuration.

    Args:
        config_file: Optional explicit config file path
        profile: Profile name to use

    Returns:
        Loaded configuration
    """
    return _config_loader.load(config_file, profile)


def get_default_config() -> EdgeshipConfig:
    """Get default configuration without loading from files."""
    return EdgeshipConfig()
