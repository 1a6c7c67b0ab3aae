"""Configuration management for envd lifecycle."""

from __future__ import annotations

import ipaddress
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DockerConfig(BaseModel):
    """Docker host connection configuration."""

    base_url: str | None = Field(default=None, description="Daemon URL (None reads DOCKER_HOST)")
    api_version: str = Field(default="auto", description="API version, auto to negotiate")
    timeout_seconds: int = Field(default=60, ge=1, description="Per-request timeout")


class ReadinessConfig(BaseModel):
    """Readiness wait configuration."""

    poll_interval_seconds: float = Field(default=1.0, gt=0, description="Seconds between polls")
    default_timeout_seconds: float = Field(default=60.0, gt=0, description="Default wait timeout")


class ServicePortsConfig(BaseModel):
    """Container-side service ports."""

    ssh: int = Field(default=2222, ge=1, le=65535, description="sshd port in the container")
    jupyter: int = Field(default=8888, ge=1, le=65535, description="Jupyter port in the container")
    rstudio: int = Field(default=8787, ge=1, le=65535, description="RStudio server port in the container")


class EnvironmentConfig(BaseModel):
    """Environment container defaults."""

    home_prefix: str = Field(default="/home/envd", description="Home of the environment user")
    user: str = Field(default="envd", description="User the container runs as")
    loopback_ip: str = Field(default="127.0.0.1", description="Host address ports are published on")

    @field_validator("loopback_ip")
    @classmethod
    def validate_loopback(cls, v: str) -> str:
        """Ports are only ever published on a loopback address."""
        if not ipaddress.ip_address(v).is_loopback:
            raise ValueError(f"{v} is not a loopback address")
        return v


class GPUConfig(BaseModel):
    """GPU device request configuration."""

    driver: str = Field(default="nvidia", description="Device driver")
    runtime_name: str = Field(default="nvidia", description="Runtime probed for GPU support")
    capabilities: list[str] = Field(
        default_factory=lambda: ["gpu", "nvidia", "compute", "compat32", "graphics", "utility", "video", "display"],
        description="Capability set requested",
    )


class BuildDaemonConfig(BaseModel):
    """Build daemon container configuration."""

    config_path: str = Field(default="/etc/buildkit/buildkitd.toml", description="buildkitd config path")
    privileged: bool = Field(default=True, description="Run the daemon privileged")


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="console")
    metrics_port: int = Field(default=8003, ge=1, le=65535, description="Prometheus metrics port")
    otel_endpoint: str | None = Field(default=None)
    otel_service_name: str = Field(default="envd_lifecycle")


class Config(BaseSettings):
    """Main configuration for envd lifecycle."""

    model_config = SettingsConfigDict(
        env_prefix="ENVD_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    docker: DockerConfig = Field(default_factory=DockerConfig)
    readiness: ReadinessConfig = Field(default_factory=ReadinessConfig)
    services: ServicePortsConfig = Field(default_factory=ServicePortsConfig)
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    gpu: GPUConfig = Field(default_factory=GPUConfig)
    build_daemon: BuildDaemonConfig = Field(default_factory=BuildDaemonConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
