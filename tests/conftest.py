from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from backport_bot.config import Config
from backport_bot.credentials import CredentialError
from backport_bot.gh import GhClient, GhError
from backport_bot.models import Credentials
from backport_bot.transcript import CommandError, Transcript


class FakeRunner:
    def __init__(self, fail_on: str | None = None, failure_output: str = "error: command failed"):
        self.fail_on = fail_on
        self.failure_output = failure_output
        self.calls: list[tuple[list[str], Path]] = []
        self.envs: list[dict[str, str] | None] = []

    def run(
        self,
        transcript: Transcript,
        args: list[str],
        cwd: Path,
        display: list[str] | None = None,
        env: dict[str, str] | None = None,
    ) -> str:
        self.calls.append((list(args), cwd))
        self.envs.append(env)
        shown = " ".join(display if display is not None else args)
        failing = self.fail_on is not None and self.fail_on in shown
        output = self.failure_output if failing else ""
        entry = transcript.record(shown, output)
        if failing:
            raise CommandError(cmd=entry.command, exit_code=1, output=entry.output)
        return output

    @property
    def commands(self) -> list[str]:
        return [" ".join(args[1:]) for args, _ in self.calls]


class FakeGh(GhClient):
    def __init__(
        self,
        commits: list[str] | None = None,
        pr_labels: list[str] | None = None,
        branches: list[str] | None = None,
        repo_labels: list[str] | None = None,
        open_prs: dict[str, list[dict[str, Any]]] | None = None,
    ):
        super().__init__("https://github.com", "s3cr3t-token")
        self.commits = commits or []
        self.pr_labels = pr_labels or []
        self.branches = branches or []
        self.repo_labels = list(repo_labels or [])
        self.open_prs = open_prs or {}
        self.comments: list[tuple[str, str, int, str]] = []
        self.created_labels: list[tuple[str, str, str]] = []
        self.added_labels: list[tuple[int, list[str]]] = []
        self.created_prs: list[dict[str, Any]] = []
        self.fail_create_pr = False
        self.calls: list[str] = []

    def _run(self, args: list[str]) -> str:
        raise AssertionError(f"unexpected gh invocation: {args}")

    def list_pr_commits(self, owner, repo, pr):
        self.calls.append("list_pr_commits")
        return list(self.commits)

    def list_pr_labels(self, owner, repo, pr):
        self.calls.append("list_pr_labels")
        return list(self.pr_labels)

    def list_branches(self, owner, repo):
        self.calls.append("list_branches")
        return list(self.branches)

    def list_labels(self, owner, repo):
        self.calls.append("list_labels")
        return list(self.repo_labels)

    def create_label(self, owner, repo, name, color, description):
        self.calls.append("create_label")
        self.created_labels.append((name, color, description))
        self.repo_labels.append(name)

    def add_labels(self, owner, repo, number, labels):
        self.calls.append("add_labels")
        self.added_labels.append((number, list(labels)))

    def comment_issue(self, owner, repo, number, body):
        self.calls.append("comment_issue")
        self.comments.append((owner, repo, number, body))

    def list_open_prs_for_branch(self, owner, repo, branch):
        self.calls.append("list_open_prs_for_branch")
        return list(self.open_prs.get(branch, []))

    def create_pr(self, owner, repo, branch, base_branch, title, body, draft):
        self.calls.append("create_pr")
        if self.fail_create_pr:
            raise GhError(["api", "pulls"], 1, "", "Validation Failed")
        number = 100 + len(self.created_prs)
        payload = {
            "head": branch,
            "base": base_branch,
            "title": title,
            "body": body,
            "draft": draft,
            "number": number,
            "html_url": f"https://github.com/{owner}/{repo}/pull/{number}",
        }
        self.created_prs.append(payload)
        return payload


class FakeCredentialStore:
    def __init__(self, credentials: Credentials | None = None, error: str | None = None):
        self.credentials = credentials or Credentials(username="backport-bot", token="s3cr3t-token")
        self.error = error
        self.hosts: list[str] = []

    def get_credentials(self, host: str) -> Credentials:
        self.hosts.append(host)
        if self.error:
            raise CredentialError(self.error)
        return self.credentials


@pytest.fixture
def config(tmp_path: Path) -> Config:
    cfg = Config(workdir=tmp_path / "work", credentials_source="env")
    cfg.ensure_directories()
    return cfg


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(username="backport-bot", token="s3cr3t-token")
