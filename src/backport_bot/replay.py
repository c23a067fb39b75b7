from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote, urlsplit

from .config import Config
from .models import Credentials, ReplayJob
from .pr import PRPublisher
from .transcript import CommandError, CommandRunner, Transcript


@dataclass(slots=True)
class ReplayResult:
    transcript: Transcript
    error: Exception | None
    pr_url: str | None = None
    workdir: Path | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def authenticated_base(host: str, credentials: Credentials) -> str:
    parsed = urlsplit(host)
    user = quote(credentials.username, safe="")
    token = quote(credentials.token, safe="")
    return f"{parsed.scheme}://{user}:{token}@{parsed.netloc}{parsed.path.rstrip('/')}/"


def noreply_email(host: str, username: str) -> str:
    hostname = urlsplit(host).hostname or "github.com"
    return f"{username}@users.noreply.{hostname}"


class ReplayPipeline:
    def __init__(
        self,
        config: Config,
        publisher: PRPublisher,
        runner: CommandRunner | None = None,
    ):
        self.config = config
        self.publisher = publisher
        self.runner = runner or CommandRunner(timeout_seconds=config.step_timeout_seconds)
        self.log = logging.getLogger(__name__)

    def replay(self, job: ReplayJob) -> ReplayResult:
        transcript = Transcript()
        transcript.redact(job.credentials.token)
        transcript.redact(quote(job.credentials.token, safe=""))
        error: Exception | None = None
        pr_url: str | None = None

        workdir = Path(tempfile.mkdtemp(prefix="backport-", dir=self.config.workdir))
        self.log.info(
            "replay started repo=%s/%s pr=%s target=%s commits=%s dir=%s",
            job.owner,
            job.repo,
            job.source_pr,
            job.target_branch,
            len(job.commits),
            workdir,
        )
        try:
            try:
                self._push_backport_branch(job, transcript, workdir)
            except CommandError as exc:
                error = exc
                self.log.error(
                    "replay step failed repo=%s/%s pr=%s target=%s error=%s",
                    job.owner,
                    job.repo,
                    job.source_pr,
                    job.target_branch,
                    exc,
                )
            except Exception as exc:
                error = exc
                self.log.exception(
                    "replay aborted repo=%s/%s pr=%s target=%s",
                    job.owner,
                    job.repo,
                    job.source_pr,
                    job.target_branch,
                )
            else:
                try:
                    pr = self.publisher.publish_backport_pr(
                        job.owner,
                        job.repo,
                        job.source_pr,
                        job.target_branch,
                        job.working_branch,
                    )
                    pr_url = pr.url
                    transcript.add_trailer(f"Created PR {pr.url}")
                except Exception as exc:
                    error = exc
                    transcript.add_trailer(f"Unable to create PR: {exc}")
                    self.log.exception(
                        "pr creation failed repo=%s/%s pr=%s target=%s",
                        job.owner,
                        job.repo,
                        job.source_pr,
                        job.target_branch,
                    )
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

        self._notify(job, transcript)
        self.log.info(
            "replay complete repo=%s/%s pr=%s target=%s ok=%s steps=%s",
            job.owner,
            job.repo,
            job.source_pr,
            job.target_branch,
            error is None,
            len(transcript),
        )
        return ReplayResult(transcript=transcript, error=error, pr_url=pr_url, workdir=workdir)

    def _push_backport_branch(self, job: ReplayJob, transcript: Transcript, workdir: Path) -> None:
        host = job.host.rstrip("/") + "/"
        auth_base = authenticated_base(job.host, job.credentials)
        clone_path = workdir / job.repo

        # rewrite applies to this process only and stays out of argv
        self._git(
            transcript,
            ["clone", job.clone_url, job.repo],
            cwd=workdir,
            env={
                "GIT_CONFIG_COUNT": "1",
                "GIT_CONFIG_KEY_0": f"url.{auth_base}.insteadOf",
                "GIT_CONFIG_VALUE_0": host,
            },
        )
        self._git(transcript, ["checkout", job.target_branch], cwd=clone_path)
        self._git(transcript, ["checkout", "-b", job.working_branch], cwd=clone_path)
        self._git(
            transcript,
            ["config", "--local", "user.email", noreply_email(job.host, job.credentials.username)],
            cwd=clone_path,
        )
        self._git(
            transcript,
            ["config", "--local", "user.name", job.credentials.username],
            cwd=clone_path,
        )
        for commit in job.commits:
            self.log.info("cherry-picking commit=%s target=%s", commit, job.target_branch)
            self._git(transcript, ["cherry-pick", commit], cwd=clone_path)

        self._git(
            transcript,
            ["config", "--local", f"url.{auth_base}.insteadOf", host],
            cwd=clone_path,
        )
        self.log.info("pushing branch=%s", job.working_branch)
        self._git(transcript, ["push", "origin", job.working_branch], cwd=clone_path)

    def _git(
        self,
        transcript: Transcript,
        args: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
    ) -> str:
        cmd = [self.config.git_cmd, *args]
        return self.runner.run(transcript, cmd, cwd=cwd, display=["git", *args], env=env)

    def _notify(self, job: ReplayJob, transcript: Transcript) -> None:
        try:
            self.publisher.notify(job.owner, job.repo, job.source_pr, transcript.render())
        except Exception:
            self.log.exception(
                "failed to publish transcript repo=%s/%s pr=%s",
                job.owner,
                job.repo,
                job.source_pr,
            )
