"""Configuration models and loaders for the action engine."""

from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from action_engine.handlers.process import (
    DEFAULT_SHELL_ARGS,
    DEFAULT_SHELL_ENV,
    DEFAULT_SHELL_PROGRAM,
)
from action_engine.handlers.shell import (
    DEFAULT_COMPLETION_TIMEOUT_S,
    DEFAULT_LONG_RUNNING_PATTERNS,
)
from action_engine.sandbox.local import DEFAULT_WORKDIR

CONFIG_FILE_NAMES: tuple[str, ...] = ("action_engine.yaml", "action_engine.yml", "pyproject.toml")
SANDBOX_MODES: frozenset[str] = frozenset({"local", "docker"})


class ConfigError(ValueError):
    """Raised when configuration is missing required structure or values."""


@dataclass(frozen=True)
class SandboxConfig:
    """Configuration for the sandbox actions run against.

    Attributes:
        mode: ``local`` to run on the host, ``docker`` to run in containers.
        workdir: Absolute sandbox path mapped onto the workspace root.
        docker_image: Image used in docker mode.
        docker_binary: Docker CLI executable.
        env: Environment variables added to every spawned process.
    """

    mode: str = "local"
    workdir: str = DEFAULT_WORKDIR
    docker_image: str = "node:20-slim"
    docker_binary: str = "docker"
    env: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ShellConfig:
    """Configuration for shell and post-import commands."""

    program: str = DEFAULT_SHELL_PROGRAM
    args: list[str] = field(default_factory=lambda: list(DEFAULT_SHELL_ARGS))
    env: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SHELL_ENV))
    completion_timeout_s: float = DEFAULT_COMPLETION_TIMEOUT_S
    long_running_patterns: list[str] = field(
        default_factory=lambda: list(DEFAULT_LONG_RUNNING_PATTERNS)
    )


@dataclass(frozen=True)
class LoggingConfig:
    """Configuration for application logging."""

    level: str = "INFO"
    format: str | None = None


@dataclass(frozen=True)
class EngineConfig:
    """Top-level configuration for the engine.

    Attributes:
        workspace_root: Host directory backing the sandbox workdir.
        sandbox: Sandbox selection and settings.
        shell: Shell handler settings.
        logging: Logging settings.
    """

    workspace_root: Path = Path(".")
    sandbox: SandboxConfig = field(default_factory=lambda: SandboxConfig())
    shell: ShellConfig = field(default_factory=lambda: ShellConfig())
    logging: LoggingConfig = field(default_factory=lambda: LoggingConfig())


def load_config(path: Path | None = None) -> EngineConfig:
    """Load engine configuration from disk.

    Args:
        path: Optional path to a configuration file or workspace directory.

    Returns:
        Parsed EngineConfig with defaults applied when no config exists.

    Raises:
        ConfigError: If the file type is unsupported or values are invalid.
    """

    config_path = _resolve_config_path(path)
    if config_path is None:
        return EngineConfig()

    if config_path.suffix in {".yaml", ".yml", ".json"}:
        raw_data = _load_yaml(config_path)
    elif config_path.name == "pyproject.toml" or config_path.suffix == ".toml":
        raw_data = _load_toml(config_path)
    else:
        raise ConfigError(f"Unsupported config file type: {config_path}")

    return _parse_engine_config(raw_data, base_path=config_path.parent)


def config_to_dict(config: EngineConfig) -> dict[str, Any]:
    """Serialize an EngineConfig into a JSON-compatible dictionary."""

    return {
        "workspace_root": str(config.workspace_root),
        "sandbox": {
            "mode": config.sandbox.mode,
            "workdir": config.sandbox.workdir,
            "docker_image": config.sandbox.docker_image,
            "docker_binary": config.sandbox.docker_binary,
            "env": dict(config.sandbox.env),
        },
        "shell": {
            "program": config.shell.program,
            "args": list(config.shell.args),
            "env": dict(config.shell.env),
            "completion_timeout_s": config.shell.completion_timeout_s,
            "long_running_patterns": list(config.shell.long_running_patterns),
        },
        "logging": {
            "level": config.logging.level,
            "format": config.logging.format,
        },
    }


def update_workspace_root(config: EngineConfig, workspace_root: Path) -> EngineConfig:
    """Return a config copy with an updated workspace root."""

    return replace(config, workspace_root=workspace_root)


def update_sandbox_mode(config: EngineConfig, mode: str) -> EngineConfig:
    """Return a config copy with an updated sandbox mode."""

    normalized = mode.strip().lower()
    if normalized not in SANDBOX_MODES:
        raise ConfigError(f"Unknown sandbox mode: {mode}")
    return replace(config, sandbox=replace(config.sandbox, mode=normalized))


def _resolve_config_path(path: Path | None) -> Path | None:
    candidate_paths: list[Path] = []
    if path is None:
        candidate_paths.extend(Path(name) for name in CONFIG_FILE_NAMES)
    elif path.is_dir():
        candidate_paths.extend(path / name for name in CONFIG_FILE_NAMES)
    else:
        candidate_paths.append(path)

    for candidate in candidate_paths:
        if candidate.exists():
            return candidate
    return None


def _load_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as handle:
        data = tomllib.load(handle)
    if path.name == "pyproject.toml":
        tool_config = data.get("tool", {}).get("action_engine", {})
        if not isinstance(tool_config, dict):
            raise ConfigError("tool.action_engine must be a mapping.")
        return tool_config
    return data


def _load_yaml(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
    if data is not None:
        if not isinstance(data, dict):
            raise ConfigError("YAML configuration must be a mapping.")
        return data
    try:
        import yaml  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "PyYAML is required to parse non-JSON YAML configuration files."
        ) from exc
    parsed = yaml.safe_load(text)
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ConfigError("YAML configuration must be a mapping.")
    return parsed


def _parse_engine_config(raw_data: dict[str, Any], base_path: Path) -> EngineConfig:
    sandbox_config = _parse_sandbox_config(raw_data.get("sandbox", {}))
    shell_config = _parse_shell_config(raw_data.get("shell", {}))
    logging_config = _parse_logging_config(raw_data.get("logging", {}))

    workspace_root = Path(raw_data.get("workspace_root", ".")) if raw_data else Path(".")
    if not workspace_root.is_absolute():
        workspace_root = (base_path / workspace_root).resolve()

    return EngineConfig(
        workspace_root=workspace_root,
        sandbox=sandbox_config,
        shell=shell_config,
        logging=logging_config,
    )


def _parse_sandbox_config(raw: Any) -> SandboxConfig:
    if not isinstance(raw, dict):
        return SandboxConfig()
    mode = str(raw.get("mode", "local")).strip().lower()
    if mode not in SANDBOX_MODES:
        raise ConfigError(f"Unknown sandbox mode: {mode}")
    workdir = str(raw.get("workdir", DEFAULT_WORKDIR))
    if not workdir.startswith("/"):
        raise ConfigError("sandbox.workdir must be an absolute path.")
    return SandboxConfig(
        mode=mode,
        workdir=workdir,
        docker_image=str(raw.get("docker_image", "node:20-slim")),
        docker_binary=str(raw.get("docker_binary", "docker")),
        env=_parse_env(raw.get("env", {})),
    )


def _parse_shell_config(raw: Any) -> ShellConfig:
    if not isinstance(raw, dict):
        return ShellConfig()
    args = raw.get("args", list(DEFAULT_SHELL_ARGS))
    if not isinstance(args, list):
        raise ConfigError("shell.args must be a list of strings.")
    patterns = raw.get("long_running_patterns", list(DEFAULT_LONG_RUNNING_PATTERNS))
    if not isinstance(patterns, list):
        raise ConfigError("shell.long_running_patterns must be a list of strings.")
    timeout = float(raw.get("completion_timeout_s", DEFAULT_COMPLETION_TIMEOUT_S))
    if timeout < 0:
        raise ConfigError("shell.completion_timeout_s must not be negative.")
    env = raw.get("env")
    return ShellConfig(
        program=str(raw.get("program", DEFAULT_SHELL_PROGRAM)),
        args=[str(item) for item in args],
        env=dict(DEFAULT_SHELL_ENV) if env is None else _parse_env(env),
        completion_timeout_s=timeout,
        long_running_patterns=[str(item) for item in patterns if str(item)],
    )


def _parse_logging_config(raw: Any) -> LoggingConfig:
    if not isinstance(raw, dict):
        return LoggingConfig()
    return LoggingConfig(
        level=str(raw.get("level", "INFO")),
        format=_optional_str(raw.get("format")),
    )


def _parse_env(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    return {str(key): str(value) for key, value in raw.items()}


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
