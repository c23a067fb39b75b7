from __future__ import annotations

import base64
from pathlib import Path

import pytest
import urllib3
from kubernetes import client

from backport_bot import credentials as credentials_module
from backport_bot.config import Config
from backport_bot.credentials import (
    CredentialError,
    EnvCredentialStore,
    KubernetesCredentialStore,
    build_credential_store,
)
from backport_bot.models import Credentials


def _b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def _secret(name: str, host: str, secret_type: str = "kubernetes.io/basic-auth", username="bot", password="tok"):
    return client.V1Secret(
        type=secret_type,
        metadata=client.V1ObjectMeta(name=name, annotations={"tekton.dev/git-0": host}),
        data={"username": _b64(username), "password": _b64(password)},
    )


@pytest.fixture
def store(tmp_path: Path) -> KubernetesCredentialStore:
    return KubernetesCredentialStore("tekton.dev/git-", tmp_path / "namespace")


def test_selects_annotated_basic_auth_secret(store) -> None:
    secrets = [
        _secret("opaque", "https://github.com", secret_type="Opaque", username="wrong"),
        _secret("other-host", "https://gitlab.com", username="wrong"),
        _secret("github", "https://github.com", username="bot", password="tok"),
    ]
    creds = store.select(secrets, "https://github.com")
    assert creds == Credentials(username="bot", token="tok")


def test_trailing_slash_host_matches(store) -> None:
    creds = store.select([_secret("github", "https://github.com/")], "https://github.com")
    assert creds.username == "bot"


def test_no_matching_secret(store) -> None:
    with pytest.raises(CredentialError):
        store.select([_secret("gitlab", "https://gitlab.com")], "https://github.com")


def test_secret_without_password(store) -> None:
    with pytest.raises(CredentialError):
        store.select([_secret("github", "https://github.com", password="")], "https://github.com")


def test_malformed_secret_value_is_credential_error(store) -> None:
    secret = _secret("github", "https://github.com")
    secret.data["password"] = "not base64!"
    with pytest.raises(CredentialError):
        store.select([secret], "https://github.com")


def test_non_utf8_secret_value_is_credential_error(store) -> None:
    secret = _secret("github", "https://github.com")
    secret.data["username"] = base64.b64encode(b"\xff\xfe").decode()
    with pytest.raises(CredentialError):
        store.select([secret], "https://github.com")


def test_missing_namespace_file(store) -> None:
    with pytest.raises(CredentialError):
        store.get_credentials("https://github.com")


def test_token_not_in_repr() -> None:
    assert "tok-secret-value" not in repr(Credentials(username="bot", token="tok-secret-value"))


def test_env_store() -> None:
    assert EnvCredentialStore("bot", "tok").get_credentials("https://github.com").username == "bot"
    with pytest.raises(CredentialError):
        EnvCredentialStore(None, "tok").get_credentials("https://github.com")


def test_build_store_by_source() -> None:
    assert isinstance(build_credential_store(Config(credentials_source="env")), EnvCredentialStore)
    assert isinstance(build_credential_store(Config()), KubernetesCredentialStore)


def test_unreachable_cluster_api_is_credential_error(tmp_path, monkeypatch) -> None:
    (tmp_path / "namespace").write_text("ci\n", encoding="utf-8")
    store = KubernetesCredentialStore("tekton.dev/git-", tmp_path / "namespace")

    def refuse(self, namespace, **kwargs):
        raise urllib3.exceptions.MaxRetryError(None, f"/api/v1/namespaces/{namespace}/secrets")

    monkeypatch.setattr(credentials_module.kube_config, "load_incluster_config", lambda: None)
    monkeypatch.setattr(client.CoreV1Api, "list_namespaced_secret", refuse)
    with pytest.raises(CredentialError):
        store.get_credentials("https://github.com")
