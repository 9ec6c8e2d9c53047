"""
Configuration models using Pydantic.

This module defines the configuration structure for the stream harness. All
models are frozen: one HarnessConfig is built up front and passed to the
orchestrator, the API client and every scenario.
"""

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class EndpointConfig(BaseModel):
    """Server endpoints under test."""

    model_config = ConfigDict(frozen=True)

    api: str = Field(default="http://localhost:2022", description="Management API base URL")
    rtmp: str = Field(default="rtmp://localhost", description="RTMP publish base URL")
    http: str = Field(default="http://localhost:8080", description="HTTP-FLV/HLS playback base URL")
    srt: str = Field(default="srt://localhost:10080", description="SRT publish URL")

    @field_validator("api", "rtmp", "http", "srt")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs so paths can be appended."""
        if "://" not in v:
            raise ValueError(f"endpoint must be a URL with a scheme, got {v!r}")
        return v.rstrip("/")


class MediaConfig(BaseModel):
    """Publisher and prober settings."""

    model_config = ConfigDict(frozen=True)

    input_file: Path = Field(
        default=Path("source.200kbps.768x320.flv"),
        description="Sample media file with one video and one audio track",
    )
    ffmpeg: str = Field(default="ffmpeg", description="Path to ffmpeg executable")
    ffprobe: str = Field(default="ffprobe", description="Path to ffprobe executable")
    probe_duration_ms: int = Field(
        default=16000, ge=1000, description="How long the prober captures the stream"
    )
    probe_timeout_ms: int = Field(
        default=21000, ge=1000, description="Overall budget for one probe, retries included"
    )
    ready_grace_ms: int = Field(
        default=1000, ge=0, description="Publisher alive time before it is considered ready"
    )
    retry_interval_ms: int = Field(
        default=3000, ge=100, description="Delay before retrying a capture of a missing stream"
    )
    capture_dir: Path = Field(default=Path("."), description="Directory for probe capture files")

    @model_validator(mode="after")
    def check_probe_budget(self) -> "MediaConfig":
        """The probe timeout has to cover the capture duration."""
        if self.probe_timeout_ms < self.probe_duration_ms:
            raise ValueError(
                f"probe_timeout_ms ({self.probe_timeout_ms}) must not be shorter "
                f"than probe_duration_ms ({self.probe_duration_ms})"
            )
        return self

    @property
    def probe_duration(self) -> float:
        """Probe duration in seconds."""
        return self.probe_duration_ms / 1000.0

    @property
    def probe_timeout(self) -> float:
        """Probe timeout in seconds."""
        return self.probe_timeout_ms / 1000.0

    @property
    def ready_grace(self) -> float:
        """Publisher readiness grace period in seconds."""
        return self.ready_grace_ms / 1000.0

    @property
    def retry_interval(self) -> float:
        """Capture retry interval in seconds."""
        return self.retry_interval_ms / 1000.0


class ServerConfig(BaseModel):
    """Facts about the deployment under test."""

    model_config = ConfigDict(frozen=True)

    system_password: str = Field(default="", description="Management password used to log in")
    domain_lets_encrypt: str = Field(
        default="", description="Domain for the lets-encrypt case; empty skips it"
    )
    https_insecure_verify: bool = Field(
        default=False, description="Skip TLS verification for the management API"
    )


class ScenarioConfig(BaseModel):
    """Scenario runner settings."""

    model_config = ConfigDict(frozen=True)

    timeout_ms: int = Field(default=64000, ge=1000, description="Deadline for each scenario")
    request_timeout_ms: int = Field(default=30000, ge=100, description="Timeout per HTTP request")
    no_media_test: bool = Field(default=False, description="Skip scenarios that publish media")
    no_bilibili_test: bool = Field(default=False, description="Skip the bilibili tutorial case")
    setting_poll_attempts: int = Field(
        default=20, ge=1, description="Polls before a server setting is considered not applied"
    )
    setting_poll_interval_ms: int = Field(
        default=1000, ge=10, description="Delay between setting polls"
    )
    min_probe_score: int = Field(default=90, ge=0, le=100, description="Probe score threshold")

    @property
    def timeout(self) -> float:
        """Scenario deadline in seconds."""
        return self.timeout_ms / 1000.0

    @property
    def request_timeout(self) -> float:
        """HTTP request timeout in seconds."""
        return self.request_timeout_ms / 1000.0

    @property
    def setting_poll_interval(self) -> float:
        """Setting poll interval in seconds."""
        return self.setting_poll_interval_ms / 1000.0


class HarnessConfig(BaseModel):
    """Main harness configuration."""

    model_config = ConfigDict(frozen=True)

    endpoints: EndpointConfig = Field(default_factory=EndpointConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    scenario: ScenarioConfig = Field(default_factory=ScenarioConfig)

    @classmethod
    def create_default(cls) -> "HarnessConfig":
        """Create default configuration."""
        return cls()

    def with_overrides(self, **sections: Optional[dict[str, Any]]) -> "HarnessConfig":
        """
        Return a copy with some fields of some sections replaced.

        Values that are None are ignored, so CLI options that were not given
        leave the loaded configuration alone.

        Args:
            **sections: Section name mapped to field overrides,
                e.g. endpoints={"api": "http://host:2022"}

        Returns:
            New validated HarnessConfig
        """
        data = self.model_dump()
        for section, overrides in sections.items():
            if section not in data:
                raise ValueError(f"Unknown configuration section: {section}")
            for key, value in (overrides or {}).items():
                if value is not None:
                    data[section][key] = value
        return HarnessConfig.model_validate(data)
