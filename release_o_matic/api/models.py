from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """On-disk and wire formats use camelCase keys; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class BuildInfo(CamelModel):
    """Contents of `build_info.json`, written by the build producer."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, strict=True)

    version: int
    built_at: int  # epoch ms
    built_at_readable: str
    git_commit_hash: str
    git_branch: str


class ReleaseInfo(CamelModel):
    key: str
    index: str
    files: str
    released_at: str
    built_at: str
    git_branch: str
    git_commit: str


class Releases(CamelModel):
    """The per-platform release ledger stored as `releases.json`."""

    current: str | None = None
    builds: list[ReleaseInfo] = Field(default_factory=list)

    @field_validator("current", mode="before")
    @classmethod
    def _empty_current_is_none(cls, v: object) -> object:
        # Older ledgers stored "" for "nothing published yet".
        return None if v == "" else v

    @model_validator(mode="after")
    def _current_points_at_a_build(self) -> "Releases":
        if self.builds and self.current is not None and not any(b.key == self.current for b in self.builds):
            raise ValueError(f"current release '{self.current}' is not among the recorded builds")
        return self


class DeployInfo(CamelModel):
    version: int
    git_branch: str
    git_commit_hash: str
    built_at: int
    built_at_readable: str | None = None
    deployed_at: str
    is_current: bool | None = None


class PrepareBuildResponse(CamelModel):
    new_build_version: int
    new_build_dir: str
    builds: list[int]


class FinalizeDeploymentResponse(CamelModel):
    build_version: str
    build_dir: str
    build_dir_alias: str
    removed_builds: list[int] = Field(default_factory=list)


class ReleaseResponse(CamelModel):
    """Returned by both publish and rollback."""

    path: str
    release: ReleaseInfo


class ReleaseDetail(ReleaseInfo):
    is_current: bool
    files_list: list[str]


class HealthResponse(CamelModel):
    status: str
    build_version: str | None = None
    deployed_at: str | None = None
    timestamp: int
    uptime: float


class RootResponse(CamelModel):
    game_builds_dir: str


class EnvResponse(CamelModel):
    game_builds_dir: str
    game_builds_dir_host: str
    bearer_token: str | None = None
    build_version: str | None = None
    deployed_at: str | None = None
    auth_required: bool
    deployments_to_keep: int
    releases_to_keep: int
