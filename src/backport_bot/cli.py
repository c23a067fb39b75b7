from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
import tomllib

from .config import Config, ConfigError, default_config_path, load_config, normalize_log_level
from .credentials import build_credential_store
from .directives import resolve_labels
from .doctor import print_doctor_report, run_doctor
from .events import Repository
from .orchestrator import BackportOrchestrator
from .server import serve


def parse_repo_slug(slug: str) -> tuple[str, str]:
    parts = [part for part in slug.strip().strip("/").split("/") if part]
    if len(parts) != 2:
        raise ValueError(f"Expected OWNER/REPO, got {slug!r}")
    owner, repo = parts
    if repo.endswith(".git"):
        repo = repo[:-4]
    return owner, repo


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Backport bot: GitHub webhook that replays merged PRs onto release branches")

    def add_common_args(target: argparse.ArgumentParser, *, with_defaults: bool) -> None:
        config_default = str(default_config_path()) if with_defaults else argparse.SUPPRESS
        log_default = None if with_defaults else argparse.SUPPRESS
        log_file_default = None if with_defaults else argparse.SUPPRESS
        target.add_argument("--config", default=config_default, help="Path to config TOML file")
        target.add_argument(
            "--log-level",
            default=log_default,
            choices=["DEBUG", "INFO", "WARNING", "ERROR"],
            help="Logging level (defaults to LOG_LEVEL or DEBUG)",
        )
        target.add_argument(
            "--log-file",
            default=log_file_default,
            help="Optional path to a log file (logs are still written to stderr)",
        )

    add_common_args(parser, with_defaults=True)

    sub = parser.add_subparsers(dest="command", required=True)
    add_common_args(
        sub.add_parser("serve", help="Run the webhook server"),
        with_defaults=False,
    )
    add_common_args(
        sub.add_parser("doctor", help="Run environment and integration readiness checks"),
        with_defaults=False,
    )
    replay_parser = sub.add_parser("replay", help="Backport a merged pull request without a webhook")
    add_common_args(replay_parser, with_defaults=False)
    replay_parser.add_argument("--repo", required=True, help="Repository as OWNER/REPO")
    replay_parser.add_argument("--pr", required=True, type=int, help="Source pull request number")
    replay_parser.add_argument(
        "--branch",
        dest="branches",
        action="append",
        help="Target branch (repeatable); defaults to the PR's backport labels",
    )
    replay_parser.add_argument("--host", help="Forge base URL (defaults to scm_host)")
    resolve_parser = sub.add_parser(
        "resolve",
        help="Print the labels a comment read from stdin would apply",
    )
    add_common_args(resolve_parser, with_defaults=False)
    resolve_parser.add_argument(
        "--branch",
        dest="branches",
        action="append",
        default=[],
        help="Existing branch name (repeatable)",
    )
    return parser


def build_orchestrator(config: Config) -> BackportOrchestrator:
    return BackportOrchestrator(config=config, credentials=build_credential_store(config))


def cmd_serve(config: Config) -> int:
    serve(config, build_orchestrator(config))
    return 0


def cmd_doctor(config: Config) -> int:
    results, ok = run_doctor(config)
    print_doctor_report(results)
    return 0 if ok else 1


def cmd_replay(config: Config, slug: str, pr: int, branches: list[str] | None, host: str | None) -> int:
    owner, repo = parse_repo_slug(slug)
    repository = Repository(host=(host or config.scm_host).rstrip("/"), owner=owner, name=repo)
    results = build_orchestrator(config).replay_pull_request(repository, pr, branches=branches)
    if not results:
        print(f"No backports attempted for {repository.full_name}#{pr}")
        return 1
    failed = 0
    for branch, result in results.items():
        if result is None:
            print(f"{branch}: skipped")
        elif result.ok:
            print(f"{branch}: {result.pr_url}")
        else:
            failed += 1
            print(f"{branch}: failed ({result.error})")
    return 1 if failed else 0


def cmd_resolve(config: Config, branches: list[str]) -> int:
    body = sys.stdin.read()
    resolution = resolve_labels(body, branches, config.label_prefix)
    print(
        json.dumps(
            {
                "labels": resolution.labels_to_apply,
                "diagnostics": resolution.diagnostics,
            },
            indent=2,
        )
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = load_config(args.config)
    except (ConfigError, FileNotFoundError, tomllib.TOMLDecodeError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    log_level = normalize_log_level(args.log_level or config.log_level)
    log_file = getattr(args, "log_file", None)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        resolved_log_file = Path(log_file).expanduser().resolve()
        resolved_log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(resolved_log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=handlers,
    )
    if log_file:
        logging.getLogger(__name__).info("file logging enabled path=%s", resolved_log_file)

    try:
        if args.command == "serve":
            return cmd_serve(config)
        if args.command == "doctor":
            return cmd_doctor(config)
        if args.command == "replay":
            return cmd_replay(config, args.repo, args.pr, args.branches, args.host)
        if args.command == "resolve":
            return cmd_resolve(config, args.branches)
    except KeyboardInterrupt:
        return 130
    except Exception as exc:
        logging.getLogger(__name__).exception("fatal error: %s", exc)
        return 1
    parser.print_help(sys.stderr)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
