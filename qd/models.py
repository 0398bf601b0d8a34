"""Data models for identifiers, statistics and configuration."""

import uuid
from pathlib import Path

import base58
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import MalformedIdentifier
from .utils import parse_duration


class Identifier(BaseModel):
    """Random 128-bit job name, rendered as base-58."""

    model_config = ConfigDict(frozen=True)

    value: uuid.UUID

    @classmethod
    def generate(cls) -> "Identifier":
        """Create a fresh random identifier."""
        return cls(value=uuid.uuid4())

    @classmethod
    def parse(cls, text: str) -> "Identifier":
        """Parse the base-58 form produced by render()."""
        try:
            raw = base58.b58decode(text)
        except ValueError as e:
            raise MalformedIdentifier(f"Invalid base58 input {text!r}: {e}") from e

        if len(raw) != 16:
            raise MalformedIdentifier(f"Expected 16 bytes in {text!r}, got {len(raw)}")

        identifier = cls(value=uuid.UUID(bytes=raw))
        if identifier.render() != text:
            raise MalformedIdentifier(f"Non-canonical identifier {text!r}")
        return identifier

    def render(self) -> str:
        return base58.b58encode(self.value.bytes).decode("ascii")

    def __str__(self) -> str:
        return self.render()


class Stats(BaseModel):
    """Point-in-time entry counts."""
    ready: int = 0
    failed: int = 0


class Settings(BaseSettings):
    """Runtime configuration, overridable through QD_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="QD_")

    path: Path = Path("/var/spool/qd")
    scan_interval: float = 5.0  # seconds between scans
    retry_interval: float = 300.0  # minimum time a job stays failed
    tick: float = 1.0  # clock re-check period of the daemon loop
    job_id_env: str = "QD_JOB_ID"

    @field_validator("scan_interval", "retry_interval", "tick", mode="before")
    @classmethod
    def _parse_duration(cls, value):
        return parse_duration(value)
