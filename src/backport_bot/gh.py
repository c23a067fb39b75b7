from __future__ import annotations

import json
import os
import re
import subprocess
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urlsplit


@dataclass(slots=True)
class GhError(RuntimeError):
    cmd: list[str]
    exit_code: int
    stdout: str
    stderr: str

    def __str__(self) -> str:
        return (
            f"GitHub CLI command failed ({self.exit_code}): {' '.join(self.cmd)}\n"
            f"stderr: {self.stderr.strip()}"
        )


def hostname_for(host: str) -> str:
    parsed = urlsplit(host if "://" in host else f"https://{host}")
    return parsed.hostname or "github.com"


class GhClient:
    def __init__(self, host: str, token: str, gh_cmd: str = "gh"):
        self.host = host.rstrip("/")
        self.hostname = hostname_for(host)
        self.gh_cmd = gh_cmd
        self._token = token

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        env["GH_HOST"] = self.hostname
        env["GH_TOKEN"] = self._token
        env["GH_ENTERPRISE_TOKEN"] = self._token
        env["GH_PROMPT_DISABLED"] = "1"
        return env

    def _mask(self, text: str) -> str:
        if not self._token:
            return text
        return text.replace(self._token, "***")

    def _run(self, args: list[str]) -> str:
        cmd = [self.gh_cmd, *args]
        try:
            proc = subprocess.run(
                cmd,
                text=True,
                capture_output=True,
                env=self._env(),
                check=False,
            )
        except OSError as exc:
            raise GhError(cmd=cmd, exit_code=127, stdout="", stderr=str(exc)) from exc
        if proc.returncode != 0:
            raise GhError(
                cmd=cmd,
                exit_code=proc.returncode,
                stdout=proc.stdout or "",
                stderr=self._mask(proc.stderr or ""),
            )
        return proc.stdout or ""

    def gh_json(self, args: list[str]) -> Any:
        raw = self._run(args)
        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise GhError(args, 1, raw, f"Invalid JSON from gh: {exc}") from exc

    def gh_text(self, args: list[str]) -> str:
        return self._run(args)

    def api(self, endpoint: str, *fields: str, method: str | None = None) -> Any:
        args = ["api", "--hostname", self.hostname]
        if method:
            args.extend(["--method", method])
        args.append(endpoint)
        args.extend(fields)
        return self.gh_json(args)

    def api_lines(self, endpoint: str, jq: str) -> list[str]:
        out = self.gh_text(
            ["api", "--hostname", self.hostname, "--paginate", endpoint, "--jq", jq]
        )
        return [line.strip() for line in out.splitlines() if line.strip()]

    @staticmethod
    def _repo_path(owner: str, repo: str) -> str:
        return f"repos/{quote(owner, safe='')}/{quote(repo, safe='')}"

    def list_pr_commits(self, owner: str, repo: str, pr: int) -> list[str]:
        return self.api_lines(
            f"{self._repo_path(owner, repo)}/pulls/{pr}/commits?per_page=100",
            ".[].sha",
        )

    def list_pr_labels(self, owner: str, repo: str, pr: int) -> list[str]:
        return self.api_lines(
            f"{self._repo_path(owner, repo)}/issues/{pr}/labels?per_page=100",
            ".[].name",
        )

    def list_branches(self, owner: str, repo: str) -> list[str]:
        return self.api_lines(
            f"{self._repo_path(owner, repo)}/branches?per_page=100",
            ".[].name",
        )

    def list_labels(self, owner: str, repo: str) -> list[str]:
        return self.api_lines(
            f"{self._repo_path(owner, repo)}/labels?per_page=100",
            ".[].name",
        )

    def create_label(self, owner: str, repo: str, name: str, color: str, description: str) -> None:
        self.api(
            f"{self._repo_path(owner, repo)}/labels",
            "-f",
            f"name={name}",
            "-f",
            f"color={color}",
            "-f",
            f"description={description}",
            method="POST",
        )

    def add_labels(self, owner: str, repo: str, number: int, labels: list[str]) -> None:
        fields: list[str] = []
        for label in labels:
            fields.extend(["-f", f"labels[]={label}"])
        self.api(
            f"{self._repo_path(owner, repo)}/issues/{number}/labels",
            *fields,
            method="POST",
        )

    def comment_issue(self, owner: str, repo: str, number: int, body: str) -> None:
        self.api(
            f"{self._repo_path(owner, repo)}/issues/{number}/comments",
            "-f",
            f"body={body}",
            method="POST",
        )

    def list_open_prs_for_branch(self, owner: str, repo: str, branch: str) -> list[dict[str, Any]]:
        head = quote(f"{owner}:{branch}", safe="")
        data = self.api(f"{self._repo_path(owner, repo)}/pulls?state=open&head={head}")
        if not isinstance(data, list):
            return []
        return data

    def create_pr(
        self,
        owner: str,
        repo: str,
        branch: str,
        base_branch: str,
        title: str,
        body: str,
        draft: bool,
    ) -> dict[str, Any]:
        data = self.api(
            f"{self._repo_path(owner, repo)}/pulls",
            "-f",
            f"title={title}",
            "-f",
            f"head={branch}",
            "-f",
            f"base={base_branch}",
            "-f",
            f"body={body}",
            "-F",
            f"draft={'true' if draft else 'false'}",
            method="POST",
        )
        if not isinstance(data, dict):
            raise GhError(["api", "pulls"], 1, str(data), "Unexpected pull request payload")
        return data

    @staticmethod
    def parse_pr_number_from_url(url: str | None) -> int | None:
        if not url:
            return None
        match = re.search(r"/pull/(\d+)", url)
        if not match:
            return None
        return int(match.group(1))
