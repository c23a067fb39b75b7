from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class BackportDirective:
    source_line: str
    target_branch: str


@dataclass(slots=True)
class LabelResolution:
    labels_to_apply: list[str] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)


@dataclass(slots=True)
class Credentials:
    username: str
    token: str = field(repr=False)


@dataclass(slots=True)
class ReplayJob:
    host: str
    owner: str
    repo: str
    source_pr: int
    target_branch: str
    commits: list[str]
    credentials: Credentials

    @property
    def working_branch(self) -> str:
        return f"backport-PR-{self.source_pr}-to-{self.target_branch}"

    @property
    def clone_url(self) -> str:
        return f"{self.host.rstrip('/')}/{self.owner}/{self.repo}"


@dataclass(slots=True)
class PrInfo:
    number: int | None
    url: str | None
    created: bool
