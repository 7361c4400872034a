"""Configuration models for lbfo2set using Pydantic v2."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from lbfo2set.platform.base import SET_MIN_OS_BUILD, BandwidthMode, SetLoadBalancingAlgorithm


def _default_state_dir() -> Path:
    base = os.environ.get("ProgramData") or "/var/lib"
    return Path(base) / "lbfo2set"


class TimingSettings(BaseModel):
    """Wait policies of a run."""

    settle_seconds: float = Field(5.0, ge=0, description="Pause after each destructive platform mutation")
    drain_poll_interval_seconds: float = Field(1.0, gt=0, description="Cluster drain status poll interval")
    drain_timeout_seconds: float = Field(3600.0, ge=0, description="Give up waiting for drain (0 = wait forever)")


class PowerShellSettings(BaseModel):
    """How platform cmdlets are invoked."""

    executable: str = Field("powershell.exe", description="PowerShell executable")
    command_timeout: int = Field(300, ge=1, description="Per-command timeout in seconds")


class ClusterSettings(BaseModel):
    """Parameters of the node drain/resume requests."""

    drain_type: str = Field("Drain", description="Suspend-ClusterNode drain mode")
    drain_target_node: Optional[str] = Field(None, description="Node that receives drained roles")
    failback: str = Field("Immediate", pattern="^(Immediate|NoFailback|Policy)$")


class AppConfig(BaseModel):
    """Root application configuration."""

    state_dir: Path = Field(default_factory=_default_state_dir, description="Snapshot and report directory")
    min_os_build: int = Field(SET_MIN_OS_BUILD, description="Lowest host build accepted")
    timing: TimingSettings = TimingSettings()
    powershell: PowerShellSettings = PowerShellSettings()
    cluster: ClusterSettings = ClusterSettings()

    @classmethod
    def from_yaml(cls, path: str | Path) -> "AppConfig":
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    @classmethod
    def from_env_and_args(cls, **overrides) -> "AppConfig":
        """Build config from environment variables with CLI overrides."""
        base: dict = {"timing": {}, "powershell": {}}
        if os.environ.get("LBFO2SET_STATE_DIR"):
            base["state_dir"] = os.environ["LBFO2SET_STATE_DIR"]
        if os.environ.get("LBFO2SET_SETTLE_SECONDS"):
            base["timing"]["settle_seconds"] = os.environ["LBFO2SET_SETTLE_SECONDS"]
        if os.environ.get("LBFO2SET_POWERSHELL"):
            base["powershell"]["executable"] = os.environ["LBFO2SET_POWERSHELL"]

        # Deep merge overrides
        for key, value in overrides.items():
            if isinstance(value, dict) and key in base:
                base[key].update(value)
            else:
                base[key] = value
        return cls(**base)


# --- Per-run migration options ---

class MigrationRequest(BaseModel):
    """Options of one migration run.

    Precedence when resolving a switch setting: explicit override, then the
    value derived from the snapshot, then the platform default. ``use_defaults``
    drops the snapshot-derived switch settings (load balancing, default flow)
    and the adapter minimum bandwidth, DNS, WINS and NetBIOS settings. Host
    adapters still get their IP addresses, gateway routes, VLAN, maximum
    bandwidth and advanced driver properties.
    """

    new_names: list[str] = Field(default_factory=list, description="One new name per eligible switch")
    use_defaults: bool = Field(False, description="Discard non-default switch and adapter settings")
    load_balancing_algorithm: Optional[SetLoadBalancingAlgorithm] = None
    bandwidth_mode: Optional[BandwidthMode] = None
    notes: str = ""
    force: bool = Field(False, description="Do not ask for confirmation")
    dry_run: bool = False

    @field_validator("new_names")
    @classmethod
    def names_not_blank(cls, v: list[str]) -> list[str]:
        if any(not n.strip() for n in v):
            raise ValueError("new switch names must not be blank")
        return v
