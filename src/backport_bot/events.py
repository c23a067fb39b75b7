from __future__ import annotations

import hashlib
import hmac
import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping, Union
from urllib.parse import urlsplit


class WebhookError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class Repository:
    host: str
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True, slots=True)
class PingEvent:
    kind: ClassVar[str] = "ping"
    repository: Repository | None = None


@dataclass(frozen=True, slots=True)
class PushEvent:
    kind: ClassVar[str] = "push"
    repository: Repository
    ref: str
    after: str


@dataclass(frozen=True, slots=True)
class PullRequestEvent:
    kind: ClassVar[str] = "pull_request"
    repository: Repository
    action: str
    number: int
    merged: bool
    closed: bool
    title: str = ""
    labels: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class PullRequestCommentEvent:
    kind: ClassVar[str] = "pull_request_comment"
    repository: Repository
    action: str
    number: int
    body: str
    author: str


@dataclass(frozen=True, slots=True)
class IssueCommentEvent:
    kind: ClassVar[str] = "issue_comment"
    repository: Repository
    action: str
    number: int
    body: str
    author: str


@dataclass(frozen=True, slots=True)
class ReviewEvent:
    kind: ClassVar[str] = "review"
    repository: Repository
    action: str
    number: int
    state: str


@dataclass(frozen=True, slots=True)
class BranchEvent:
    kind: ClassVar[str] = "branch"
    repository: Repository
    action: str
    ref: str


@dataclass(frozen=True, slots=True)
class UnknownEvent:
    kind: str
    repository: Repository | None = None


WebhookEvent = Union[
    PingEvent,
    PushEvent,
    PullRequestEvent,
    PullRequestCommentEvent,
    IssueCommentEvent,
    ReviewEvent,
    BranchEvent,
    UnknownEvent,
]


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


def verify_signature(secret: str, body: bytes, headers: Mapping[str, str]) -> None:
    if not secret:
        return
    key = secret.encode("utf-8")
    signature = _header(headers, "X-Hub-Signature-256")
    if signature:
        expected = "sha256=" + hmac.new(key, msg=body, digestmod=hashlib.sha256).hexdigest()
    else:
        signature = _header(headers, "X-Hub-Signature")
        if not signature:
            raise WebhookError("missing signature header")
        expected = "sha1=" + hmac.new(key, msg=body, digestmod=hashlib.sha1).hexdigest()
    if not hmac.compare_digest(expected, signature.strip()):
        raise WebhookError("request signatures didn't match")


def _repository(payload: dict[str, Any], default_host: str) -> Repository | None:
    repo = payload.get("repository")
    if not isinstance(repo, dict):
        return None
    owner = repo.get("owner") or {}
    owner_login = owner.get("login") if isinstance(owner, dict) else None
    name = repo.get("name")
    if not owner_login or not name:
        full_name = str(repo.get("full_name") or "")
        if "/" not in full_name:
            return None
        owner_login, name = full_name.split("/", 1)
    host = default_host
    html_url = repo.get("html_url")
    if isinstance(html_url, str) and "://" in html_url:
        parsed = urlsplit(html_url)
        host = f"{parsed.scheme}://{parsed.netloc}"
    return Repository(host=host.rstrip("/"), owner=str(owner_login), name=str(name))


def _require_repository(payload: dict[str, Any], default_host: str, kind: str) -> Repository:
    repository = _repository(payload, default_host)
    if repository is None:
        raise WebhookError(f"{kind} webhook has no repository")
    return repository


def _label_names(raw: Any) -> tuple[str, ...]:
    if not isinstance(raw, list):
        return ()
    return tuple(str(label["name"]) for label in raw if isinstance(label, dict) and label.get("name"))


def _login(raw: Any) -> str:
    if isinstance(raw, dict):
        return str(raw.get("login") or "")
    return ""


def _mapping(raw: Any, field: str, kind: str) -> dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise WebhookError(f"{kind} webhook has a malformed {field}")
    return raw


def _number(raw: Any, kind: str) -> int:
    if not isinstance(raw, dict) or raw.get("number") is None:
        raise WebhookError(f"{kind} webhook has no number")
    try:
        return int(raw["number"])
    except (TypeError, ValueError) as exc:
        raise WebhookError(f"{kind} webhook has an invalid number") from exc


def parse_payload(kind: str, payload: dict[str, Any], default_host: str) -> WebhookEvent:
    action = str(payload.get("action") or "")
    if kind == "ping":
        return PingEvent(repository=_repository(payload, default_host))
    if kind == "push":
        return PushEvent(
            repository=_require_repository(payload, default_host, kind),
            ref=str(payload.get("ref") or ""),
            after=str(payload.get("after") or ""),
        )
    if kind == "pull_request":
        pr = payload.get("pull_request")
        return PullRequestEvent(
            repository=_require_repository(payload, default_host, kind),
            action=action,
            number=_number(pr, kind),
            merged=bool(pr.get("merged")),
            closed=str(pr.get("state") or "") == "closed",
            title=str(pr.get("title") or ""),
            labels=_label_names(pr.get("labels")),
        )
    if kind == "issue_comment":
        issue = payload.get("issue")
        comment = _mapping(payload.get("comment"), "comment", kind)
        fields = dict(
            repository=_require_repository(payload, default_host, kind),
            action=action,
            number=_number(issue, kind),
            body=str(comment.get("body") or ""),
            author=_login(comment.get("user")),
        )
        if issue.get("pull_request"):
            return PullRequestCommentEvent(**fields)
        return IssueCommentEvent(**fields)
    if kind == "pull_request_review_comment":
        comment = _mapping(payload.get("comment"), "comment", kind)
        return PullRequestCommentEvent(
            repository=_require_repository(payload, default_host, kind),
            action=action,
            number=_number(payload.get("pull_request"), kind),
            body=str(comment.get("body") or ""),
            author=_login(comment.get("user")),
        )
    if kind == "pull_request_review":
        review = _mapping(payload.get("review"), "review", kind)
        return ReviewEvent(
            repository=_require_repository(payload, default_host, kind),
            action=action,
            number=_number(payload.get("pull_request"), kind),
            state=str(review.get("state") or ""),
        )
    if kind in {"create", "delete"} and payload.get("ref_type") == "branch":
        return BranchEvent(
            repository=_require_repository(payload, default_host, kind),
            action=kind,
            ref=str(payload.get("ref") or ""),
        )
    return UnknownEvent(kind=kind, repository=_repository(payload, default_host))


def decode_event(
    headers: Mapping[str, str],
    body: bytes,
    secret: str,
    default_host: str = "https://github.com",
) -> WebhookEvent:
    kind = _header(headers, "X-GitHub-Event")
    if not kind:
        raise WebhookError("missing X-GitHub-Event header")
    verify_signature(secret, body, headers)
    try:
        payload = json.loads(body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise WebhookError(f"invalid JSON payload: {exc}") from exc
    if not isinstance(payload, dict):
        raise WebhookError("webhook payload must be a JSON object")
    return parse_payload(kind.strip(), payload, default_host)
