#!/usr/bin/env python3
"""
Configuration classes for the R function bridge.

Provides configuration for the interpreter process, the call protocol
timings and logging. Configurations are immutable once built.
"""

"""
Copyright (c) 2025 Firefly Software Solutions Inc.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at:

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import toml
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Syntactic names callable from a statement, e.g. recommend or my.model_predict
R_NAME_PATTERN = re.compile(r"^(?:[A-Za-z]|\.[A-Za-z._])[A-Za-z0-9._]*$")
# CRAN package names
R_PACKAGE_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9.]*[A-Za-z0-9]$|^[A-Za-z]$")

DEFAULT_STARTUP_ARGS = ["--vanilla", "-q", "--slave"]


class InterpreterConfig(BaseModel):
    """Configuration for the interpreter process."""

    model_config = ConfigDict(frozen=True)

    executable: str = Field(default="/usr/bin/R", description="Interpreter executable path")
    startup_args: List[str] = Field(
        default_factory=lambda: list(DEFAULT_STARTUP_ARGS),
        description="Arguments selecting a quiet, non-interactive, vanilla session",
    )
    env: Dict[str, str] = Field(
        default_factory=dict, description="Extra environment variables for the process"
    )
    working_dir: Optional[str] = Field(default=None, description="Working directory")
    startup_check_ms: int = Field(
        default=200, ge=0, description="Time to watch for an immediate exit after spawning"
    )
    shutdown_timeout_ms: int = Field(
        default=5000, ge=0, description="Grace period before the process is killed"
    )

    @field_validator("executable")
    @classmethod
    def validate_executable(cls, v):
        if not v or not v.strip():
            raise ValueError("executable must not be empty")
        return v

    def get_command(self) -> List[str]:
        """Full command line used to spawn the interpreter."""
        return [self.executable, *self.startup_args]


class LoggingConfig(BaseModel):
    """Configuration for the rbridge logging system."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(default="INFO", description="Logging level")
    format: str = Field(default="json", description="Log format: json or text")
    interpreter_log_level: str = Field(
        default="INFO", description="Level of the logger receiving interpreter output"
    )
    output_file: Optional[str] = Field(default=None, description="Log output file path")
    max_file_size_mb: int = Field(default=100, ge=1, description="Maximum log file size in MB")
    backup_count: int = Field(default=5, ge=1, description="Number of backup log files to keep")
    include_thread_info: bool = Field(
        default=True, description="Include thread information in logs"
    )

    @field_validator("level", "interpreter_log_level")
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v):
        valid_formats = {"json", "text"}
        if v.lower() not in valid_formats:
            raise ValueError(f"Log format must be one of: {valid_formats}")
        return v.lower()


class BridgeConfig(BaseModel):
    """Main configuration of one function bridge."""

    model_config = ConfigDict(frozen=True)

    function_name: str = Field(description="Name of the interpreter function invoked per record")
    libraries: List[str] = Field(
        default_factory=list, description="Libraries loaded, in order, before any call"
    )
    init_code: Optional[str] = Field(
        default=None, description="Source text sent once after the libraries are loaded"
    )
    init_script: Optional[str] = Field(
        default=None, description="Path of a script file used when init_code is not set"
    )
    init_code_dirs: List[str] = Field(
        default_factory=lambda: ["."],
        description="Directories searched by with_named_init_code()",
    )
    json_library: str = Field(
        default="rjson", description="Library providing fromJSON()/toJSON() in the interpreter"
    )

    # Protocol timings
    poll_interval_ms: int = Field(
        default=100, ge=1, description="Receive timeout between health checks while waiting"
    )
    max_wait_ms: Optional[int] = Field(
        default=None, ge=1, description="Maximum wait for one response; None waits forever"
    )
    timeout_policy: str = Field(
        default="keep", description="On timeout: keep the process or restart it"
    )
    startup_handshake: bool = Field(
        default=True, description="Wait for an empty response frame at the end of prepare()"
    )
    startup_timeout_ms: int = Field(
        default=60000, ge=1, description="Maximum wait for the startup handshake"
    )
    error_drain_ms: int = Field(
        default=500,
        ge=0,
        description="Maximum wait for the rest of a call's error output once the first line arrived",
    )
    reader_idle_ms: int = Field(
        default=5, ge=1, description="Idle time of a stream reader when no data is available"
    )
    log_buffer_size: int = Field(
        default=2000, ge=1, description="Number of interpreter output lines kept in memory"
    )

    interpreter: InterpreterConfig = Field(
        default_factory=InterpreterConfig, description="Interpreter process configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    @field_validator("function_name")
    @classmethod
    def validate_function_name(cls, v):
        if not R_NAME_PATTERN.match(v or ""):
            raise ValueError(f"function_name is not a valid interpreter name: {v!r}")
        return v

    @field_validator("libraries")
    @classmethod
    def validate_libraries(cls, v):
        for lib in v:
            if not R_PACKAGE_PATTERN.match(lib or ""):
                raise ValueError(f"Invalid library name: {lib!r}")
        return v

    @field_validator("json_library")
    @classmethod
    def validate_json_library(cls, v):
        if not R_PACKAGE_PATTERN.match(v or ""):
            raise ValueError(f"Invalid library name: {v!r}")
        return v

    @field_validator("timeout_policy")
    @classmethod
    def validate_timeout_policy(cls, v):
        valid_policies = {"keep", "restart"}
        if v.lower() not in valid_policies:
            raise ValueError(f"timeout_policy must be one of: {valid_policies}")
        return v.lower()

    def get_libraries(self) -> List[str]:
        """Libraries to load: configured ones without duplicates, plus the JSON library."""
        seen = set()
        ordered = []
        for lib in [*self.libraries, self.json_library]:
            if lib not in seen:
                seen.add(lib)
                ordered.append(lib)
        return ordered

    def resolve_init_code(self) -> Optional[str]:
        """Return the init source text, reading init_script when needed."""
        if self.init_code is not None:
            return self.init_code
        if self.init_script:
            path = Path(self.init_script)
            if not path.exists():
                raise FileNotFoundError(f"Init script not found: {self.init_script}")
            return path.read_text(encoding="utf-8")
        return None

    def with_init_code(self, code: str) -> "BridgeConfig":
        """Copy of this configuration with the given init source text."""
        return self.model_copy(update={"init_code": code})

    def with_named_init_code(self, name: str) -> "BridgeConfig":
        """Copy of this configuration using the script <name>.R from init_code_dirs."""
        for directory in self.init_code_dirs:
            candidate = Path(directory) / f"{name}.R"
            if candidate.is_file():
                return self.with_init_code(candidate.read_text(encoding="utf-8"))
        raise FileNotFoundError(
            f"Init script {name}.R not found in: {', '.join(self.init_code_dirs)}"
        )

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "BridgeConfig":
        """Load configuration from a JSON, YAML or TOML file."""
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        content = path.read_text(encoding="utf-8")

        try:
            suffix = path.suffix.lower()
            if suffix in [".yml", ".yaml"]:
                data = yaml.safe_load(content)
            elif suffix == ".toml":
                data = toml.loads(content)
            else:
                data = json.loads(content)
        except (json.JSONDecodeError, yaml.YAMLError, toml.TomlDecodeError) as e:
            raise ValueError(f"Failed to parse configuration file: {e}")

        return cls(**(data or {}))

    @classmethod
    def from_env(cls, prefix: str = "RBRIDGE_", **overrides: Any) -> "BridgeConfig":
        """Load configuration from environment variables.

        Keyword overrides are applied on top, e.g. a function_name when the
        environment does not provide one.
        """
        data = ConfigurationManager._deep_merge(_read_env(prefix), overrides)
        return cls(**data)

    def to_file(self, config_path: Union[str, Path], format: str = "auto") -> None:
        """Save configuration to a file."""
        path = Path(config_path)

        if format == "auto":
            suffix = path.suffix.lower()
            if suffix in [".yml", ".yaml"]:
                format = "yaml"
            elif suffix == ".toml":
                format = "toml"
            else:
                format = "json"

        data = self.model_dump(exclude_none=format == "toml")

        if format == "yaml":
            content = yaml.dump(data, default_flow_style=False, sort_keys=False, indent=2)
        elif format == "toml":
            content = toml.dumps(data)
        else:
            content = json.dumps(data, indent=2)

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    def validate_configuration(self) -> List[str]:
        """Validate the configuration and return any warnings."""
        warnings = []

        if self.max_wait_ms is not None and self.max_wait_ms < self.poll_interval_ms:
            warnings.append("max_wait_ms is shorter than poll_interval_ms")

        if self.max_wait_ms is None and not self.startup_handshake:
            warnings.append(
                "No max_wait_ms and no startup handshake: a stuck interpreter blocks forever"
            )

        if self.poll_interval_ms > 1000:
            warnings.append("Large poll_interval_ms delays detection of a dead interpreter")

        if self.timeout_policy == "restart" and self.max_wait_ms is None:
            warnings.append("timeout_policy is restart but max_wait_ms is not set")

        if len(self.libraries) != len(set(self.libraries)):
            warnings.append("Duplicate libraries are loaded only once")

        if self.init_code is not None and self.init_script:
            warnings.append("Both init_code and init_script are set; init_script is ignored")

        if "--slave" not in self.interpreter.startup_args and (
            "--no-echo" not in self.interpreter.startup_args
        ):
            warnings.append("Interpreter startup args do not silence command echo")

        return warnings


def _as_bool(value: str) -> bool:
    return value.lower() in ("1", "true", "yes", "on")


def _as_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_mappings(prefix: str) -> Dict[str, Tuple[str, Callable[[str], Any]]]:
    return {
        f"{prefix}FUNCTION_NAME": ("function_name", str),
        f"{prefix}LIBRARIES": ("libraries", _as_list),
        f"{prefix}INIT_SCRIPT": ("init_script", str),
        f"{prefix}INIT_CODE_DIRS": ("init_code_dirs", _as_list),
        f"{prefix}JSON_LIBRARY": ("json_library", str),
        f"{prefix}POLL_INTERVAL_MS": ("poll_interval_ms", int),
        f"{prefix}MAX_WAIT_MS": ("max_wait_ms", int),
        f"{prefix}TIMEOUT_POLICY": ("timeout_policy", str),
        f"{prefix}STARTUP_HANDSHAKE": ("startup_handshake", _as_bool),
        f"{prefix}STARTUP_TIMEOUT_MS": ("startup_timeout_ms", int),
        f"{prefix}EXECUTABLE": ("interpreter.executable", str),
        f"{prefix}STARTUP_ARGS": ("interpreter.startup_args", str.split),
        f"{prefix}WORKING_DIR": ("interpreter.working_dir", str),
        f"{prefix}LOG_LEVEL": ("logging.level", str),
        f"{prefix}LOG_FORMAT": ("logging.format", str),
        f"{prefix}LOG_FILE": ("logging.output_file", str),
        f"{prefix}INTERPRETER_LOG_LEVEL": ("logging.interpreter_log_level", str),
    }


def _read_env(prefix: str) -> Dict[str, Any]:
    """Collect the environment variables that are actually set into nested config data."""
    config_data: Dict[str, Any] = {}

    for env_var, (config_key, converter) in _env_mappings(prefix).items():
        value = os.getenv(env_var)
        if value is not None:
            try:
                converted_value = converter(value)
            except (ValueError, TypeError) as e:
                raise ValueError(f"Invalid value for {env_var}: {value} ({e})")
            # Handle nested keys
            parts = config_key.split(".")
            current = config_data
            for part in parts[:-1]:
                current = current.setdefault(part, {})
            current[parts[-1]] = converted_value

    return config_data


class ConfigurationManager:
    """Utility class for managing configurations."""

    @staticmethod
    def create_default_config_file(
        path: Union[str, Path], function_name: str = "predict", format: str = "auto"
    ) -> None:
        """Create a default configuration file."""
        config = BridgeConfig(function_name=function_name)
        config.to_file(path, format)

    @staticmethod
    def merge_configs(*configs: BridgeConfig) -> BridgeConfig:
        """Merge multiple configurations, with later configs taking precedence."""
        if not configs:
            raise ValueError("At least one configuration is required")

        merged_data = configs[0].model_dump()

        for config in configs[1:]:
            config_data = config.model_dump(exclude_unset=True)
            merged_data = ConfigurationManager._deep_merge(merged_data, config_data)

        return BridgeConfig(**merged_data)

    @staticmethod
    def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigurationManager._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    @staticmethod
    def load_config(
        config_file: Optional[Union[str, Path]] = None,
        env_prefix: str = "RBRIDGE_",
        use_env: bool = True,
        **overrides: Any,
    ) -> BridgeConfig:
        """Load configuration from a file, environment variables and explicit overrides.

        Precedence, lowest first: file, environment, overrides.
        """
        data: Dict[str, Any] = {}

        if config_file:
            data = BridgeConfig.from_file(config_file).model_dump(exclude_unset=True)

        if use_env:
            data = ConfigurationManager._deep_merge(data, _read_env(env_prefix))

        if overrides:
            data = ConfigurationManager._deep_merge(data, overrides)

        return BridgeConfig(**data)
