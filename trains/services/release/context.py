from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from trains.core.config import ReleaseConfig
from trains.output.console import ConsoleProtocol
from trains.services.release.host import VersionControlHost
from trains.services.release.npm import PackageRegistry


@dataclass(frozen=True, slots=True)
class ReleaseContext:
    """Collaborators and configuration of one release run."""

    project_dir: Path
    config: ReleaseConfig
    host: VersionControlHost
    registry: PackageRegistry
    console: ConsoleProtocol
