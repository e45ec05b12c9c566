"""
Simulator configuration.

Settings come from defaults, an optional JSON file, and finally command-line
flags (see simulator.main).
"""

import json
from dataclasses import dataclass, asdict, fields
from typing import Optional

from algorithms.recovery import VICTIM_STRATEGIES
from algorithms.risk import DEFAULT_CONTENTION_THRESHOLD


RECOVERY_METHODS = ("none", "terminate", "preempt")


class ConfigError(Exception):
    """Exception raised when a configuration file or value is invalid."""
    pass


@dataclass
class SimulatorConfig:
    """
    Tick driver settings.

    Attributes:
        detect_interval: Ticks between detection runs
        auto_grant: Grant free units to waiting processes (FIFO) each tick
        recovery_method: Automatic resolution: none, terminate or preempt
        victim_strategy: Victim selection strategy for automatic resolution
        contention_threshold: Allocation + wait count above which contention is high
        max_steps: Ticks run by Simulation.run() when no count is given
        verbose: Enable debug logging
        log_file: Optional log file path
    """
    detect_interval: int = 1
    auto_grant: bool = True
    recovery_method: str = "none"
    victim_strategy: str = "priority"
    contention_threshold: int = DEFAULT_CONTENTION_THRESHOLD
    max_steps: int = 10
    verbose: bool = False
    log_file: Optional[str] = None

    def validate(self) -> "SimulatorConfig":
        """
        Check all values.

        Raises:
            ConfigError: If any value is out of range
        """
        if not isinstance(self.detect_interval, int) or self.detect_interval < 1:
            raise ConfigError(f"detect_interval must be a positive integer, got {self.detect_interval!r}")
        if self.recovery_method not in RECOVERY_METHODS:
            raise ConfigError(
                f"recovery_method must be one of {', '.join(RECOVERY_METHODS)}, got {self.recovery_method!r}"
            )
        if self.victim_strategy not in VICTIM_STRATEGIES:
            raise ConfigError(
                f"victim_strategy must be one of {', '.join(VICTIM_STRATEGIES)}, got {self.victim_strategy!r}"
            )
        if not isinstance(self.contention_threshold, int) or self.contention_threshold < 0:
            raise ConfigError(
                f"contention_threshold must be a non-negative integer, got {self.contention_threshold!r}"
            )
        if not isinstance(self.max_steps, int) or self.max_steps < 0:
            raise ConfigError(f"max_steps must be a non-negative integer, got {self.max_steps!r}")
        return self

    def merged(self, **overrides) -> "SimulatorConfig":
        """Copy with non-None overrides applied (used for CLI flags)."""
        values = asdict(self)
        for key, value in overrides.items():
            if value is not None:
                values[key] = value
        return SimulatorConfig(**values).validate()


def load_config(file_path: str) -> SimulatorConfig:
    """
    Load configuration from JSON file.

    Unknown keys are rejected so typos do not pass silently.

    Raises:
        ConfigError: If file cannot be loaded or is invalid
    """
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {file_path}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file: {e}")

    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a JSON object")

    known = {f.name for f in fields(SimulatorConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    return SimulatorConfig(**data).validate()
