from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
import tomllib

log = logging.getLogger(__name__)


class ConfigError(ValueError):
    pass


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _coalesce_env(name: str) -> str | None:
    prefixed = f"BACKPORT_{name}"
    if prefixed in os.environ:
        return os.environ[prefixed]
    if name in os.environ:
        return os.environ[name]
    return None


def default_config_path() -> Path:
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        base = Path(xdg_config_home).expanduser()
    else:
        base = Path.home() / ".config"
    if not base.is_absolute():
        base = (Path.cwd() / base).resolve()
    return (base / "backport-bot" / "config.toml").resolve()


@dataclass(slots=True)
class Config:
    port: int = 3000
    log_level: str = "DEBUG"
    hmac_token: str = ""
    scm_host: str = "https://github.com"
    label_prefix: str = "Backport to "
    label_color: str = "000000"
    git_cmd: str = "git"
    gh_cmd: str = "gh"
    step_timeout_seconds: int = 600
    workdir: Path | None = None
    credentials_source: str = "kubernetes"
    git_username: str | None = None
    git_token: str | None = None
    secret_annotation_prefix: str = "tekton.dev/git-"
    namespace_file: Path = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")
    gunicorn_workers: int = 1
    gunicorn_threads: int = 4
    draft_pr: bool = False

    def ensure_directories(self) -> None:
        if self.workdir is not None:
            self.workdir.mkdir(parents=True, exist_ok=True)


def read_hmac_token(token: str | None, token_path: str | None) -> str:
    if token:
        return token
    if not token_path:
        return ""
    try:
        return Path(token_path).expanduser().read_text(encoding="utf-8").strip()
    except OSError as exc:
        log.error("failed to read hmac token path=%s error=%s", token_path, exc)
        return ""


def normalize_log_level(value: str) -> str:
    level = value.strip().upper()
    if level == "WARN":
        level = "WARNING"
    if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        return "DEBUG"
    return level


def load_config(config_path: str | Path | None = None) -> Config:
    raw: dict[str, object] = {}
    resolved_config_path: Path | None = None
    default_path = default_config_path()
    if config_path:
        candidate = Path(config_path).expanduser()
        if candidate.exists():
            resolved_config_path = candidate.resolve()
            with candidate.open("rb") as handle:
                raw = tomllib.load(handle)
        elif candidate.resolve() != default_path:
            raise FileNotFoundError(f"Config file not found: {config_path}")
    elif default_path.exists():
        resolved_config_path = default_path
        with default_path.open("rb") as handle:
            raw = tomllib.load(handle)

    config_dir = resolved_config_path.parent if resolved_config_path else Path.cwd()

    def int_value(key: str, default: int) -> int:
        env = _coalesce_env(key.upper())
        val = raw.get(key) if env is None else env
        if val is None:
            return default
        try:
            return int(val)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{key} must be an integer, got {val!r}") from exc

    def str_value(key: str, default: str) -> str:
        env = _coalesce_env(key.upper())
        if env is not None:
            return env
        val = raw.get(key)
        return default if val is None else str(val)

    def optional_str_value(key: str) -> str | None:
        env = _coalesce_env(key.upper())
        if env is not None:
            return env.strip() or None
        val = raw.get(key)
        if val is None:
            return None
        val_str = str(val).strip()
        return val_str or None

    def bool_value(key: str, default: bool) -> bool:
        env = _coalesce_env(key.upper())
        if env is not None:
            return _parse_bool(env)
        val = raw.get(key)
        if val is None:
            return default
        if isinstance(val, bool):
            return val
        return _parse_bool(str(val))

    def path_value(raw_value: str | None) -> Path | None:
        if raw_value is None:
            return None
        path = Path(raw_value).expanduser()
        if not path.is_absolute():
            path = (config_dir / path).resolve()
        return path

    credentials_source = str_value("credentials_source", "kubernetes").strip().lower()
    if credentials_source not in {"kubernetes", "env"}:
        raise ConfigError(
            f"credentials_source must be 'kubernetes' or 'env', got {credentials_source!r}"
        )

    cfg = Config(
        port=int_value("port", 3000),
        log_level=normalize_log_level(str_value("log_level", "DEBUG")),
        hmac_token=read_hmac_token(
            optional_str_value("hmac_token"),
            optional_str_value("hmac_token_path"),
        ),
        scm_host=str_value("scm_host", "https://github.com").rstrip("/"),
        label_prefix=str_value("label_prefix", "Backport to "),
        label_color=str_value("label_color", "000000").lstrip("#"),
        git_cmd=str_value("git_cmd", "git"),
        gh_cmd=str_value("gh_cmd", "gh"),
        step_timeout_seconds=int_value("step_timeout_seconds", 600),
        workdir=path_value(optional_str_value("workdir")),
        credentials_source=credentials_source,
        git_username=optional_str_value("git_username"),
        git_token=optional_str_value("git_token"),
        secret_annotation_prefix=str_value("secret_annotation_prefix", "tekton.dev/git-"),
        namespace_file=Path(
            str_value(
                "namespace_file",
                "/var/run/secrets/kubernetes.io/serviceaccount/namespace",
            )
        ),
        gunicorn_workers=int_value("gunicorn_workers", 1),
        gunicorn_threads=int_value("gunicorn_threads", 4),
        draft_pr=bool_value("draft_pr", False),
    )
    cfg.ensure_directories()
    return cfg
