from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass

from .config import Config
from .credentials import CredentialError, build_credential_store


@dataclass(slots=True)
class CheckResult:
    name: str
    ok: bool
    message: str


def _run(cmd: list[str]) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        cmd,
        text=True,
        capture_output=True,
        check=False,
    )


def check_binaries(config: Config) -> list[CheckResult]:
    results: list[CheckResult] = []
    git_path = shutil.which(config.git_cmd)
    if git_path:
        results.append(CheckResult("git binary", True, git_path))
    else:
        results.append(CheckResult("git binary", False, f"{config.git_cmd!r} not found in PATH"))

    gh_path = shutil.which(config.gh_cmd)
    if gh_path:
        results.append(CheckResult("gh binary", True, gh_path))
    else:
        results.append(
            CheckResult(
                "gh binary",
                False,
                f"{config.gh_cmd!r} not found in PATH; set gh_cmd or install GitHub CLI",
            )
        )
    return results


def is_ready(config: Config) -> bool:
    return all(item.ok for item in check_binaries(config))


def run_doctor(config: Config) -> tuple[list[CheckResult], bool]:
    results = check_binaries(config)

    if shutil.which(config.git_cmd):
        version = _run([config.git_cmd, "--version"])
        if version.returncode == 0:
            results.append(CheckResult("git version", True, version.stdout.strip()))
        else:
            results.append(CheckResult("git version", False, (version.stderr or "unknown").strip()))

    if config.hmac_token:
        results.append(CheckResult("hmac token", True, "configured"))
    else:
        results.append(
            CheckResult("hmac token", False, "HMAC_TOKEN is empty; webhook signatures are not verified")
        )

    store = build_credential_store(config)
    try:
        creds = store.get_credentials(config.scm_host)
        results.append(CheckResult("credentials", True, f"{config.scm_host} as {creds.username}"))
    except CredentialError as exc:
        results.append(CheckResult("credentials", False, str(exc)))

    if config.workdir is not None:
        try:
            config.workdir.mkdir(parents=True, exist_ok=True)
            marker = config.workdir / ".doctor_write_test"
            marker.write_text("ok", encoding="utf-8")
            marker.unlink(missing_ok=True)
            results.append(CheckResult("workdir writable", True, str(config.workdir)))
        except OSError as exc:
            results.append(CheckResult("workdir writable", False, str(exc)))

    success = all(item.ok for item in results)
    return results, success


def print_doctor_report(results: list[CheckResult]) -> None:
    for item in results:
        status = "PASS" if item.ok else "FAIL"
        print(f"[{status}] {item.name}: {item.message}")
