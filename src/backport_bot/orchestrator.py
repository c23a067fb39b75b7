from __future__ import annotations

import logging
from typing import Callable

from .config import Config
from .credentials import CredentialError, CredentialStore
from .directives import branches_from_labels, parse_directives, resolve_directives
from .events import (
    IssueCommentEvent,
    PingEvent,
    PullRequestCommentEvent,
    PullRequestEvent,
    Repository,
    WebhookEvent,
)
from .gh import GhClient, GhError
from .models import Credentials, LabelResolution, ReplayJob
from .pr import PRPublisher
from .replay import ReplayPipeline, ReplayResult
from .transcript import CommandRunner

GhFactory = Callable[[str, Credentials], GhClient]


class BackportOrchestrator:
    def __init__(
        self,
        config: Config,
        credentials: CredentialStore,
        gh_factory: GhFactory | None = None,
        runner: CommandRunner | None = None,
    ):
        self.config = config
        self.credentials = credentials
        self.gh_factory = gh_factory or self._default_gh_factory
        self.runner = runner
        self.log = logging.getLogger(__name__)
        self._handlers: dict[type, Callable[[WebhookEvent], str]] = {
            PingEvent: self._handle_ping,
            PullRequestEvent: self._handle_pull_request,
            PullRequestCommentEvent: self._handle_comment,
            IssueCommentEvent: self._handle_comment,
        }

    def _default_gh_factory(self, host: str, credentials: Credentials) -> GhClient:
        return GhClient(host, credentials.token, gh_cmd=self.config.gh_cmd)

    def handle(self, event: WebhookEvent) -> str:
        handler = self._handlers.get(type(event))
        if handler is None:
            self.log.info("ignoring webhook kind=%s", event.kind)
            return f"ignored webhook {event.kind}"
        return handler(event)

    def _handle_ping(self, event: PingEvent) -> str:
        self.log.info("received ping")
        return "pong from backport"

    def _handle_pull_request(self, event: PullRequestEvent) -> str:
        self.log.info(
            "pr hook repo=%s pr=%s action=%s merged=%s closed=%s",
            event.repository.full_name,
            event.number,
            event.action,
            event.merged,
            event.closed,
        )
        if event.action == "closed" and event.closed and event.merged:
            self.replay_pull_request(event.repository, event.number)
        return "processed PR hook"

    def _handle_comment(self, event: PullRequestCommentEvent | IssueCommentEvent) -> str:
        summary = (
            "processed PR comment hook"
            if isinstance(event, PullRequestCommentEvent)
            else "processed issue comment hook"
        )
        self.log.info(
            "comment hook repo=%s number=%s action=%s author=%s",
            event.repository.full_name,
            event.number,
            event.action,
            event.author,
        )
        if event.action != "created":
            return summary
        self.handle_comment(event.repository, event.number, event.body)
        return summary

    def _session(self, repository: Repository) -> tuple[Credentials, GhClient] | None:
        try:
            creds = self.credentials.get_credentials(repository.host)
        except CredentialError as exc:
            self.log.error("credential resolution failed host=%s error=%s", repository.host, exc)
            return None
        return creds, self.gh_factory(repository.host, creds)

    def handle_comment(self, repository: Repository, number: int, body: str) -> LabelResolution | None:
        directives = parse_directives(body)
        if not directives:
            return LabelResolution()
        for directive in directives:
            self.log.info("directive found number=%s line=%r", number, directive.source_line)

        session = self._session(repository)
        if session is None:
            return None
        _, gh = session
        publisher = PRPublisher(self.config, gh)
        owner, repo = repository.owner, repository.name
        try:
            branches = gh.list_branches(owner, repo)
        except GhError as exc:
            self.log.error("listing branches failed repo=%s error=%s", repository.full_name, exc)
            return None

        resolution = resolve_directives(directives, branches, self.config.label_prefix)
        try:
            for label in resolution.labels_to_apply:
                publisher.apply_label(owner, repo, number, label)
            if resolution.diagnostics:
                publisher.notify(owner, repo, number, "\n".join(resolution.diagnostics))
        except GhError as exc:
            self.log.error(
                "comment handling failed repo=%s number=%s error=%s",
                repository.full_name,
                number,
                exc,
            )
        return resolution

    def replay_pull_request(
        self,
        repository: Repository,
        number: int,
        branches: list[str] | None = None,
    ) -> dict[str, ReplayResult | None]:
        results: dict[str, ReplayResult | None] = {}
        session = self._session(repository)
        if session is None:
            return results
        creds, gh = session
        owner, repo = repository.owner, repository.name
        try:
            commits = gh.list_pr_commits(owner, repo, number)
            if branches is None:
                labels = gh.list_pr_labels(owner, repo, number)
                branches = branches_from_labels(labels, self.config.label_prefix)
        except GhError as exc:
            self.log.error("listing pr details failed repo=%s pr=%s error=%s", repository.full_name, number, exc)
            return results

        self.log.info(
            "backport targets repo=%s pr=%s commits=%s branches=%s",
            repository.full_name,
            number,
            len(commits),
            ",".join(branches) or "-",
        )
        if not commits or not branches:
            return results

        publisher = PRPublisher(self.config, gh)
        pipeline = ReplayPipeline(self.config, publisher, runner=self.runner)
        for branch in branches:
            job = ReplayJob(
                host=repository.host,
                owner=owner,
                repo=repo,
                source_pr=number,
                target_branch=branch,
                commits=list(commits),
                credentials=creds,
            )
            try:
                existing = publisher.find_open_backport(owner, repo, job.working_branch)
                if existing is not None:
                    self.log.info(
                        "backport already open pr=%s target=%s url=%s",
                        number,
                        branch,
                        existing.url,
                    )
                    results[branch] = None
                    continue
                result = pipeline.replay(job)
            except Exception:
                self.log.exception("backport failed pr=%s target=%s", number, branch)
                results[branch] = None
                continue
            results[branch] = result
            if result.ok:
                self.log.info("backport complete pr=%s target=%s url=%s", number, branch, result.pr_url)
            else:
                self.log.error("backport failed pr=%s target=%s error=%s", number, branch, result.error)
        return results
