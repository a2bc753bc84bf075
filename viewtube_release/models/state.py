"""Installed-state record persisted on every host."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from viewtube_release.config import DEFAULT_RELEASE_REPO

DEFAULT_NEWTUBE_PORT = 8080
DEFAULT_NEWTUBE_HOST = "127.0.0.1"


class InstalledState(BaseModel):
    """What is installed on this host and where to look for updates.

    Mutated only by a successful update run, and then only the
    ``app_version`` field.  ``extra`` keeps keys this package does not
    interpret so a rewrite never drops them.
    """

    model_config = ConfigDict(frozen=True)

    media_root: Path
    www_root: Path
    app_version: str = ""
    release_repo: str = DEFAULT_RELEASE_REPO
    domain_name: str = ""
    newtube_port: int = DEFAULT_NEWTUBE_PORT
    newtube_host: str = DEFAULT_NEWTUBE_HOST
    extra: dict[str, str] = Field(default_factory=dict)

    def with_version(self, version: str) -> InstalledState:
        return self.model_copy(update={"app_version": version})
