"""Pipeline configuration models.

Loaded from ``shipwright.toml`` or the ``[tool.shipwright]`` table of
``pyproject.toml`` (see :func:`shipwright.core.pipeline.load_pipeline_config`).
The defaults describe the surface-dtx-daemon release pipeline.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SigningConvention(str, Enum):
    """How a package format carries its signature."""

    DETACHED = "detached"  # gpg --detach-sign, adds <file>.asc
    DPKG_SIG = "dpkg-sig"  # embedded in the .deb
    RPM = "rpm"  # embedded via rpm --resign


class CheckConfig(BaseModel):
    """A verification job (lint, test) that gates every build."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    display_name: str = ""
    command: list[str]


class TargetConfig(BaseModel):
    """One package format produced from the source tree."""

    model_config = ConfigDict(frozen=True)

    name: str
    display_name: str = ""
    artifact_name: str = ""  # artifact store namespace, defaults to name
    command: list[str]
    workdir: str = "."  # relative to the source tree
    manifest: str | None = None  # packaging manifest, relative to the source tree
    outputs: list[str]  # globs relative to the source tree
    env: dict[str, str] = {}  # extra environment for the toolchain
    signing: SigningConvention = SigningConvention.DETACHED
    required: bool = True  # release fails if this set is missing

    @property
    def namespace(self) -> str:
        return self.artifact_name or self.name

    @property
    def label(self) -> str:
        return self.display_name or self.name


class RepositoryConfig(BaseModel):
    """A downstream package repository fed with blob references."""

    model_config = ConfigDict(frozen=True)

    name: str
    display_name: str = ""
    url: str
    target: str  # TargetConfig.name whose set is replicated
    path: str  # directory inside the repository
    package_glob: str = "*"
    staging_branch: str = "u/staging"
    credential_id: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.name


class ReleaseConfig(BaseModel):
    """Where the unified release is published."""

    model_config = ConfigDict(frozen=True)

    host: str = "github"  # "github" or "directory"
    github_repository: str = "linux-surface/surface-dtx-daemon"
    directory: Path = Path(".shipwright/releases")


class SigningConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    key_id: str = "56C464BAAC421453"


class GitIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = "surfacebot"
    email: str = "surfacebot@users.noreply.github.com"


def _default_checks() -> list[CheckConfig]:
    return [
        CheckConfig(
            job_id="lint",
            display_name="Clippy",
            command=["cargo", "clippy", "--all", "--all-features", "--", "-Dwarnings"],
        ),
        CheckConfig(
            job_id="test",
            display_name="Test",
            command=["cargo", "test", "--all"],
        ),
    ]


def _default_targets() -> list[TargetConfig]:
    fedora = {
        "command": ["./makerpm"],
        "workdir": "pkg/fedora",
        "manifest": "pkg/fedora/surface-dtx-daemon.spec",
        "outputs": ["pkg/fedora/out/x86_64/*.rpm"],
        "signing": SigningConvention.RPM,
    }
    return [
        TargetConfig(
            name="binary",
            display_name="Binary package",
            artifact_name="binary-latest",
            command=["./pkg/bin/makebin"],
            outputs=["pkg/bin/*.tar.xz"],
            signing=SigningConvention.DETACHED,
        ),
        TargetConfig(
            name="debian",
            display_name="Debian package",
            artifact_name="debian-latest",
            command=["./pkg/deb/makedeb"],
            manifest="pkg/deb/debian/control",
            outputs=["pkg/deb/*.deb"],
            signing=SigningConvention.DPKG_SIG,
        ),
        TargetConfig(
            name="fedora-32",
            display_name="Fedora 32 package",
            artifact_name="fedora-32-latest",
            env={"FEDORA_RELEASE": "32"},
            **fedora,
        ),
        TargetConfig(
            name="fedora-31",
            display_name="Fedora 31 package",
            artifact_name="fedora-31-latest",
            env={"FEDORA_RELEASE": "31"},
            **fedora,
        ),
    ]


def _default_repositories() -> list[RepositoryConfig]:
    url = "https://github.com/linux-surface/repo.git"
    return [
        RepositoryConfig(
            name="debian",
            display_name="Debian",
            url=url,
            target="debian",
            path="debian",
            package_glob="*.deb",
            credential_id="surfacebot",
        ),
        RepositoryConfig(
            name="fedora-32",
            display_name="Fedora 32",
            url=url,
            target="fedora-32",
            path="fedora/f32",
            package_glob="*.rpm",
            credential_id="surfacebot",
        ),
        RepositoryConfig(
            name="fedora-31",
            display_name="Fedora 31",
            url=url,
            target="fedora-31",
            path="fedora/f31",
            package_glob="*.rpm",
            credential_id="surfacebot",
        ),
    ]


class PipelineConfig(BaseModel):
    """Project-level configuration for the release pipeline."""

    model_config = ConfigDict(frozen=True)

    package_name: str = "surface-dtx-daemon"
    tag_patterns: list[str] = [r"^v[0-9]+\..*", r"^testing-ci\..*"]
    checks: list[CheckConfig] = Field(default_factory=_default_checks)
    targets: list[TargetConfig] = Field(default_factory=_default_targets)
    repositories: list[RepositoryConfig] = Field(default_factory=_default_repositories)
    release: ReleaseConfig = ReleaseConfig()
    signing: SigningConfig = SigningConfig()
    git_identity: GitIdentity = GitIdentity()

    @model_validator(mode="after")
    def _check_references(self) -> PipelineConfig:
        names = [t.name for t in self.targets]
        if len(set(names)) != len(names):
            msg = f"Duplicate target names: {names}"
            raise ValueError(msg)
        repo_names = [r.name for r in self.repositories]
        if len(set(repo_names)) != len(repo_names):
            msg = f"Duplicate repository names: {repo_names}"
            raise ValueError(msg)
        for repo in self.repositories:
            if repo.target not in names:
                msg = f"Repository {repo.name!r} replicates unknown target {repo.target!r}"
                raise ValueError(msg)
        return self

    def get_target(self, name: str) -> TargetConfig:
        for target in self.targets:
            if target.name == name:
                return target
        raise KeyError(name)
