from __future__ import annotations

import logging

from .config import Config
from .directives import branches_from_labels
from .gh import GhClient, GhError
from .models import PrInfo


class PRPublisher:
    def __init__(self, config: Config, gh: GhClient):
        self.config = config
        self.gh = gh
        self.log = logging.getLogger(__name__)

    def find_open_backport(self, owner: str, repo: str, working_branch: str) -> PrInfo | None:
        existing = self.gh.list_open_prs_for_branch(owner, repo, working_branch)
        if not existing:
            return None
        first = existing[0]
        return PrInfo(
            number=int(first["number"]) if first.get("number") is not None else None,
            url=first.get("html_url") or first.get("url"),
            created=False,
        )

    def publish_backport_pr(
        self,
        owner: str,
        repo: str,
        source_pr: int,
        target_branch: str,
        working_branch: str,
    ) -> PrInfo:
        title = f"Backporting PR-{source_pr} to {target_branch}"
        body = self._build_pr_body(owner, repo, source_pr)
        self.log.info(
            "creating pr repo=%s/%s head=%s base=%s draft=%s",
            owner,
            repo,
            working_branch,
            target_branch,
            self.config.draft_pr,
        )
        created = self.gh.create_pr(
            owner,
            repo,
            branch=working_branch,
            base_branch=target_branch,
            title=title,
            body=body,
            draft=self.config.draft_pr,
        )
        pr_url = created.get("html_url") or created.get("url")
        pr_number = created.get("number")
        if pr_number is None:
            pr_number = self.gh.parse_pr_number_from_url(pr_url)
        self.log.info("pr ready branch=%s pr_number=%s pr_url=%s", working_branch, pr_number, pr_url)
        return PrInfo(number=pr_number, url=pr_url, created=True)

    def notify(self, owner: str, repo: str, number: int, body: str) -> None:
        self.gh.comment_issue(owner, repo, number, body)
        self.log.info("posted comment repo=%s/%s number=%s", owner, repo, number)

    def apply_label(self, owner: str, repo: str, number: int, label: str) -> None:
        self.log.info("applying label label=%r repo=%s/%s number=%s", label, owner, repo, number)
        existing = self.gh.list_labels(owner, repo)
        if label not in existing:
            branches = branches_from_labels([label], self.config.label_prefix)
            target = branches[0] if branches else label
            try:
                self.gh.create_label(
                    owner,
                    repo,
                    name=label,
                    color=self.config.label_color,
                    description=f"Backport changes to the {target} branch",
                )
                self.log.info("created label label=%r repo=%s/%s", label, owner, repo)
            except GhError as exc:
                # another delivery may have created it in between
                if label not in self.gh.list_labels(owner, repo):
                    raise
                self.log.info("label created concurrently label=%r error=%s", label, exc.exit_code)
        self.gh.add_labels(owner, repo, number, [label])

    def _build_pr_body(self, owner: str, repo: str, source_pr: int) -> str:
        return "\n".join(
            [
                f"Backport from {self.gh.host}/{owner}/{repo}/pull/{source_pr}",
                "",
                "Commits were cherry-picked in their original order by the backport bot.",
            ]
        )
