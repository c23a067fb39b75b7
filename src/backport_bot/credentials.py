from __future__ import annotations

import base64
import binascii
import logging
from pathlib import Path
from typing import Protocol

import urllib3
from kubernetes import client, config as kube_config
from kubernetes.config.config_exception import ConfigException

from .config import Config
from .models import Credentials

BASIC_AUTH_TYPE = "kubernetes.io/basic-auth"

log = logging.getLogger(__name__)


class CredentialError(RuntimeError):
    pass


class CredentialStore(Protocol):
    def get_credentials(self, host: str) -> Credentials: ...


def _decode_secret_value(data: dict[str, str] | None, key: str) -> str:
    raw = (data or {}).get(key)
    if not raw:
        return ""
    try:
        return base64.b64decode(raw, validate=True).decode("utf-8").strip()
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise CredentialError(f"secret field {key} is not valid base64 text: {exc}") from exc


class KubernetesCredentialStore:
    def __init__(self, annotation_prefix: str, namespace_file: Path):
        self.annotation_prefix = annotation_prefix
        self.namespace_file = namespace_file

    def _namespace(self) -> str:
        try:
            return self.namespace_file.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise CredentialError(f"unable to read namespace file {self.namespace_file}: {exc}") from exc

    def _list_secrets(self, namespace: str) -> list[client.V1Secret]:
        try:
            kube_config.load_incluster_config()
        except ConfigException as exc:
            raise CredentialError(f"not running inside a cluster: {exc}") from exc
        try:
            with client.ApiClient() as api_client:
                v1 = client.CoreV1Api(api_client)
                return list(v1.list_namespaced_secret(namespace).items)
        except client.exceptions.ApiException as exc:
            raise CredentialError(f"unable to list secrets in {namespace}: {exc.reason}") from exc
        except (urllib3.exceptions.HTTPError, OSError) as exc:
            raise CredentialError(f"unable to reach the cluster api for {namespace}: {exc}") from exc

    def get_credentials(self, host: str) -> Credentials:
        namespace = self._namespace()
        secrets = self._list_secrets(namespace)
        log.info("checking secrets namespace=%s count=%s host=%s", namespace, len(secrets), host)
        return self.select(secrets, host)

    def select(self, secrets: list[client.V1Secret], host: str) -> Credentials:
        wanted = host.rstrip("/")
        for secret in secrets:
            if secret.type != BASIC_AUTH_TYPE:
                continue
            annotations = (secret.metadata.annotations if secret.metadata else None) or {}
            for key, value in annotations.items():
                if key.startswith(self.annotation_prefix) and value.rstrip("/") == wanted:
                    username = _decode_secret_value(secret.data, "username")
                    token = _decode_secret_value(secret.data, "password")
                    if not username or not token:
                        raise CredentialError(
                            f"secret {secret.metadata.name} for {host} is missing username or password"
                        )
                    log.info(
                        "resolved credentials host=%s secret=%s username=%s",
                        host,
                        secret.metadata.name,
                        username,
                    )
                    return Credentials(username=username, token=token)
        raise CredentialError(f"no {BASIC_AUTH_TYPE} secret annotated for {host}")


class EnvCredentialStore:
    def __init__(self, username: str | None, token: str | None):
        self.username = username
        self.token = token

    def get_credentials(self, host: str) -> Credentials:
        if not self.username or not self.token:
            raise CredentialError(
                "BACKPORT_GIT_USERNAME and BACKPORT_GIT_TOKEN must be set for env credentials"
            )
        log.info("using env credentials host=%s username=%s", host, self.username)
        return Credentials(username=self.username, token=self.token)


def build_credential_store(config: Config) -> CredentialStore:
    if config.credentials_source == "env":
        return EnvCredentialStore(config.git_username, config.git_token)
    return KubernetesCredentialStore(
        annotation_prefix=config.secret_annotation_prefix,
        namespace_file=config.namespace_file,
    )
