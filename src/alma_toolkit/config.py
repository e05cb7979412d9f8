#!/usr/bin/env python3
"""
Configuration Management

Resolves toolkit settings from command line flags, falling back to
environment variables for any flag the operator did not pass.
"""

import argparse
import os
from argparse import Namespace
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .constants import ENV_PREFIX

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(ValueError):
    """Raised for missing or invalid configuration."""

    pass


def env_prefix_for(prefix: str, subcommand: str | None = None) -> str:
    """Environment variable prefix; subcommand flags get the subcommand name appended."""
    if subcommand is None:
        return prefix
    return f"{prefix}{subcommand.upper().replace('-', '_')}_"


def env_var_name(prefix: str, action: argparse.Action) -> str:
    """ALMATOOLKIT_ + the flag's long name, upper-cased with dashes as underscores."""
    long_names = [option for option in action.option_strings if option.startswith("--")]
    name = (long_names or action.option_strings)[0].lstrip("-")
    return f"{prefix}{name.upper().replace('-', '_')}"


def _flag_given(action: argparse.Action, argv: Sequence[str]) -> bool:
    for arg in argv:
        for option in action.option_strings:
            if arg == option or arg.startswith(f"{option}="):
                return True
    return False


def _convert(action: argparse.Action, raw: str, var_name: str):
    if action.nargs == 0:
        # store_true / store_false style flags
        lowered = raw.strip().lower()
        if lowered in TRUE_VALUES:
            return action.const
        if lowered in FALSE_VALUES:
            return action.default
        raise ConfigError(f"{var_name} must be a boolean value, got '{raw}'")

    try:
        value = action.type(raw) if callable(action.type) else raw
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid value '{raw}' for {var_name}: {e}") from e

    if action.choices is not None and value not in action.choices:
        choices = ", ".join(str(choice) for choice in action.choices)
        raise ConfigError(f"invalid value '{raw}' for {var_name} (choose from {choices})")
    return value


def apply_env_overrides(
    parser: argparse.ArgumentParser,
    args: Namespace,
    argv: Sequence[str],
    prefix: str = ENV_PREFIX,
    environ: dict[str, str] | None = None,
) -> Namespace:
    """
    Fill flags that were not given on the command line from environment variables.

    Args:
        parser: Parser whose optional flags are considered
        args: Parsed arguments, updated in place
        argv: The arguments the parser saw, used to tell given flags from defaults
        prefix: Environment variable prefix
        environ: Environment mapping (defaults to os.environ)

    Returns:
        The updated args namespace

    Raises:
        ConfigError: If an environment variable holds a value the flag cannot accept
    """
    environ = os.environ if environ is None else environ

    for action in parser._actions:
        if not action.option_strings or action.dest in ("help", "version") or action.dest == argparse.SUPPRESS:
            continue
        if _flag_given(action, argv):
            continue
        var_name = env_var_name(prefix, action)
        if var_name in environ:
            setattr(args, action.dest, _convert(action, environ[var_name], var_name))

    return args


@dataclass
class ToolkitConfig:
    """Settings shared by every subcommand."""

    key: str
    host: str
    threshold: int
    concurrency: int
    timeout: int
    log_level: str = "INFO"
    log_file: Path | None = None

    @classmethod
    def from_args(cls, args: Namespace) -> "ToolkitConfig":
        config = cls(
            key=args.key or "",
            host=args.host,
            threshold=args.threshold,
            concurrency=args.concurrency,
            timeout=args.timeout,
            log_level=args.log_level,
            log_file=Path(args.log_file) if args.log_file else None,
        )
        config.validate()
        return config

    def validate(self) -> None:
        if not self.key:
            raise ConfigError(f"an Alma API key is required (--key or {ENV_PREFIX}KEY)")
        if not self.host:
            raise ConfigError("an Alma API host is required")
        if self.threshold < 0:
            raise ConfigError(f"threshold must not be negative, got {self.threshold}")
        if self.concurrency < 1:
            raise ConfigError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.timeout < 1:
            raise ConfigError(f"timeout must be at least 1 second, got {self.timeout}")
