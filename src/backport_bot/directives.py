from __future__ import annotations

import re
from typing import Iterable

from .models import BackportDirective, LabelResolution

DIRECTIVE = "/backport"
LABEL_PREFIX = "Backport to "

_DIRECTIVE_RE = re.compile(rf"^{re.escape(DIRECTIVE)}\s+(\S.*)$")


def parse_directives(body: str | None) -> list[BackportDirective]:
    directives: list[BackportDirective] = []
    for line in (body or "").splitlines():
        match = _DIRECTIVE_RE.match(line)
        if not match:
            continue
        branch = match.group(1).strip()
        if branch:
            directives.append(BackportDirective(source_line=line, target_branch=branch))
    return directives


def resolve_directives(
    directives: Iterable[BackportDirective],
    known_branches: Iterable[str],
    label_prefix: str = LABEL_PREFIX,
) -> LabelResolution:
    known = set(known_branches)
    resolution = LabelResolution()
    for directive in directives:
        if directive.target_branch in known:
            resolution.labels_to_apply.append(f"{label_prefix}{directive.target_branch}")
        else:
            resolution.diagnostics.append(f"Unable to locate branch {directive.target_branch}")
    return resolution


def resolve_labels(
    body: str | None,
    known_branches: Iterable[str],
    label_prefix: str = LABEL_PREFIX,
) -> LabelResolution:
    return resolve_directives(parse_directives(body), known_branches, label_prefix)


def branches_from_labels(labels: Iterable[str], label_prefix: str = LABEL_PREFIX) -> list[str]:
    branches: list[str] = []
    for label in labels:
        if label.startswith(label_prefix):
            branch = label[len(label_prefix) :].strip()
            if branch:
                branches.append(branch)
    return branches

