"""Package registry contract and its npm CLI implementation."""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Protocol, runtime_checkable

from trains.core.config import ReleaseConfig
from trains.core.result import Err, Ok, Result
from trains.core.structured import as_obj_list, as_str_dict, get_str_map
from trains.output.console import ConsoleProtocol, Style
from trains.platform.process import ProcessError
from trains.platform.process import run as run_process
from trains.services.release.errors import ReleaseError
from trains.services.release.model import RegistryPackageInfo
from trains.services.release.semver import SemVer
from trains.services.release.timeouts import NPM_TIMEOUT_SECONDS


@runtime_checkable
class PackageRegistry(Protocol):
    def publish(
        self,
        *,
        package_dir: Path,
        dist_tag: str,
        registry_url: str | None,
    ) -> Result[None, ReleaseError]:
        """Publish the built package in ``package_dir`` under ``dist_tag``."""
        ...

    def set_dist_tag(
        self,
        *,
        packages: tuple[str, ...],
        tag: str,
        version: SemVer,
        registry_url: str | None,
    ) -> Result[None, ReleaseError]:
        """Point ``tag`` at ``version`` for every package."""
        ...

    def package_info(
        self,
        *,
        name: str,
        registry_url: str | None,
    ) -> Result[RegistryPackageInfo, ReleaseError]: ...


def ensure_npm_available() -> Result[None, ReleaseError]:
    if shutil.which("npm") is None:
        return Err(
            ReleaseError(
                kind="npm_missing",
                message="npm: missing",
                hint="Install Node.js: https://nodejs.org/",
            )
        )
    return Ok(None)


def _is_not_found(error: ProcessError) -> bool:
    # npm view prints "npm ERR! code E404" (npm 9 and older) or "npm error code E404".
    return "E404" in f"{error.stderr}\n{error.stdout}"


def _registry_args(registry_url: str | None) -> list[str]:
    return ["--registry", registry_url] if registry_url else []


def parse_package_info(*, name: str, payload: str) -> Result[RegistryPackageInfo, ReleaseError]:
    """Parse ``npm view <name> --json`` output."""
    try:
        obj: object = json.loads(payload)
    except json.JSONDecodeError as e:
        return Err(
            ReleaseError(kind="registry_failed", message=f"invalid JSON from npm view {name}: {e}")
        )

    data = as_str_dict(obj)
    if data is None:
        return Err(
            ReleaseError(kind="registry_failed", message=f"unexpected npm view payload: {name}")
        )

    raw_versions = data.get("versions")
    versions: tuple[str, ...]
    if isinstance(raw_versions, str):
        versions = (raw_versions,)
    else:
        versions = tuple(v for v in as_obj_list(raw_versions) or [] if isinstance(v, str))

    return Ok(
        RegistryPackageInfo(
            name=name,
            dist_tags=get_str_map(data, "dist-tags"),
            versions=versions,
            times=get_str_map(data, "time"),
        )
    )


class NpmRegistry:
    """Registry backed by the ``npm`` CLI."""

    def __init__(self, *, project_dir: Path, console: ConsoleProtocol) -> None:
        self._project_dir = project_dir
        self._console = console

    def publish(
        self,
        *,
        package_dir: Path,
        dist_tag: str,
        registry_url: str | None,
    ) -> Result[None, ReleaseError]:
        cmd = ["npm", "publish", "--access", "public", "--tag", dist_tag]
        cmd.extend(_registry_args(registry_url))
        self._console.print(f"npm publish {package_dir.name} --tag {dist_tag}", Style.DIM)
        result = run_process(cmd, cwd=package_dir, timeout=NPM_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(
                ReleaseError(
                    kind="publish_failed",
                    message=f"npm publish failed: {package_dir}",
                    hint=result.error.stderr.strip() or None,
                )
            )
        return Ok(None)

    def set_dist_tag(
        self,
        *,
        packages: tuple[str, ...],
        tag: str,
        version: SemVer,
        registry_url: str | None,
    ) -> Result[None, ReleaseError]:
        for pkg in packages:
            cmd = ["npm", "dist-tag", "add", f"{pkg}@{version}", tag, *_registry_args(registry_url)]
            self._console.print(" ".join(cmd[:4]) + f" {tag}", Style.DIM)
            result = run_process(cmd, cwd=self._project_dir, timeout=NPM_TIMEOUT_SECONDS)
            if isinstance(result, Err):
                return Err(
                    ReleaseError(
                        kind="registry_failed",
                        message=f'failed to set dist-tag "{tag}" for {pkg}@{version}',
                        hint=result.error.stderr.strip() or None,
                    )
                )
        return Ok(None)

    def package_info(
        self,
        *,
        name: str,
        registry_url: str | None,
    ) -> Result[RegistryPackageInfo, ReleaseError]:
        cmd = ["npm", "view", name, "--json", *_registry_args(registry_url)]
        result = run_process(cmd, cwd=self._project_dir, timeout=NPM_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            if _is_not_found(result.error):
                return Err(
                    ReleaseError(
                        kind="package_not_found",
                        message=f"{name} has never been published",
                    )
                )
            return Err(
                ReleaseError(
                    kind="registry_failed",
                    message=f"npm view failed: {name}",
                    hint=result.error.stderr.strip() or None,
                )
            )
        return parse_package_info(name=name, payload=result.value)


def is_version_published(
    *,
    registry: PackageRegistry,
    config: ReleaseConfig,
    version: SemVer,
) -> Result[bool, ReleaseError]:
    """Whether ``version`` of the primary package is already live.

    Tells "bumped in source but never published" apart from a published
    version. A package the registry does not know yet has no published
    versions.
    """
    info = registry.package_info(name=config.npm_packages[0], registry_url=config.publish_registry)
    if isinstance(info, Err):
        if info.error.kind == "package_not_found":
            return Ok(False)
        return info
    return Ok(str(version) in info.value.versions)
