"""Tests for credential and connection-parameter resolution."""

from __future__ import annotations

import socket
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from chclient.config import CLI, ENV, FILE, LayeredConfig
from chclient.connections import TransportCapabilities
from chclient.credentials import (
    CredentialResolver,
    apply_connection_profile,
    apply_environment,
    enable_secure_connection,
    is_local_host,
    load_private_key,
    port_from_config,
)
from chclient.errors import (
    CapabilityDisabled,
    ConfigurationError,
    ConflictingCredentials,
    ConflictingPasswordOptions,
    CredentialError,
    NotAPrivateKey,
    UnknownConnectionProfile,
)
from chclient.models import ASK_PASSWORD, Jwt, Password, SshKey, Target
from chclient.secrets import StaticSecretSource

ALL_CAPABILITIES = TransportCapabilities(jwt=True, ssh_keys=True)


def _resolver(config: LayeredConfig, *answers: str, local: bool = True) -> tuple[CredentialResolver, StaticSecretSource]:
    secrets = StaticSecretSource(*answers)
    resolver = CredentialResolver(
        config,
        secrets,
        capabilities=ALL_CAPABILITIES,
        is_local=lambda _host: local,
    )
    return resolver, secrets


def test_cloud_host_enables_tls_and_secure_port() -> None:
    config = LayeredConfig()

    assert enable_secure_connection(config, "db.clickhouse.cloud") is True
    assert port_from_config(config, "db.clickhouse.cloud") == 9440
    assert enable_secure_connection(config, "db.example.com") is False
    assert port_from_config(config, "db.example.com") == 9000


def test_explicit_flags_and_secure_port_decide_tls() -> None:
    assert enable_secure_connection(LayeredConfig({CLI: {"secure": True}}), "db") is True
    assert enable_secure_connection(LayeredConfig({CLI: {"no-secure": True}}), "x.clickhouse.cloud") is False
    assert enable_secure_connection(LayeredConfig(), "db", 9440) is True
    assert enable_secure_connection(LayeredConfig(), "db", 9000) is False


def test_cli_no_secure_beats_profile_secure() -> None:
    config = LayeredConfig(
        {
            FILE: {"connections_credentials": {"prod": {"name": "prod", "secure": True}}},
            CLI: {"no-secure": True},
        }
    )
    apply_connection_profile(config, "prod")

    assert enable_secure_connection(config, "prod") is False


def test_port_from_config_honours_overrides() -> None:
    assert port_from_config(LayeredConfig({FILE: {"tcp_port": 19000}}), "db") == 19000
    assert port_from_config(LayeredConfig({FILE: {"tcp_port_secure": 19440, "secure": True}}), "db") == 19440
    assert port_from_config(LayeredConfig({CLI: {"port": 9123}}), "db") == 9123


def test_environment_fills_missing_user_and_password() -> None:
    config = LayeredConfig()

    apply_environment(config, {"CLIENT_USER": "envuser", "CLIENT_PASSWORD": "envpass"})

    assert config.get_string("user") == "envuser"
    assert config.get_string("password") == "envpass"
    assert config.layer_of("password") == ENV


def test_environment_never_overrides_configured_values() -> None:
    config = LayeredConfig({CLI: {"user": "cliuser"}, FILE: {"password": "filepass"}})

    apply_environment(config, {"CLIENT_USER": "envuser", "CLIENT_PASSWORD": "envpass"})

    assert config.get_string("user") == "cliuser"
    assert config.get_string("password") == "filepass"


def test_environment_password_ignored_with_other_auth_method() -> None:
    config = LayeredConfig({CLI: {"jwt": "token"}})

    apply_environment(config, {"CLIENT_PASSWORD": "envpass"})

    assert not config.has("password")


def _profiles_config(**cli: object) -> LayeredConfig:
    return LayeredConfig(
        {
            FILE: {
                "user": "fileuser",
                "connections_credentials": {
                    "prod": {
                        "name": "prod",
                        "hostname": "prod.example.com",
                        "port": 9441,
                        "user": "produser",
                        "password": "prodpass",
                        "history_file": "~/.prod_history",
                        "prompt": "prod> ",
                    },
                    "local": {"name": "localhost", "user": "localuser"},
                },
            },
            CLI: cli,
        }
    )


def test_explicit_connection_profile_is_applied(tmp_path: Path) -> None:
    config = _profiles_config()

    profile, targets = apply_connection_profile(config, "prod", (), home=tmp_path)

    assert profile is not None and profile.name == "prod"
    assert targets == ()
    assert config.get_string("host") == "prod.example.com"
    assert config.get_int("port") == 9441
    assert config.get_string("user") == "produser"
    assert config.get_string("password") == "prodpass"
    assert config.get_string("history_file") == f"{tmp_path}/.prod_history"
    assert config.get_string("prompt") == "prod> "


def test_unknown_explicit_profile_is_fatal() -> None:
    with pytest.raises(UnknownConnectionProfile) as excinfo:
        apply_connection_profile(_profiles_config(), "staging")

    assert excinfo.value.code == 139


def test_profile_matched_by_first_host_rewrites_targets() -> None:
    config = _profiles_config()

    profile, targets = apply_connection_profile(config, None, (Target("prod", 9000), Target("other")))

    assert profile is not None
    assert targets == (Target("prod.example.com", 9000), Target("other"))


def test_profile_defaults_to_localhost_and_cli_wins() -> None:
    config = _profiles_config(user="cliuser")

    profile, _ = apply_connection_profile(config, None)

    assert profile is not None and profile.name == "localhost"
    assert config.get_string("user") == "cliuser"


def test_no_matching_implicit_profile_is_not_an_error() -> None:
    config = _profiles_config()

    profile, targets = apply_connection_profile(config, None, (Target("elsewhere"),))

    assert profile is None
    assert targets == (Target("elsewhere"),)
    assert config.get_string("user") == "fileuser"


@pytest.mark.parametrize(
    "values",
    [
        {"jwt": "token", "password": "pw"},
        {"jwt": "token", "ssh-key-file": "/key"},
        {"ssh-key-file": "/key", "password": "pw"},
        {"ssh-key-file": "/key", "ask-password": True},
        {"jwt": "token", "ask-password": True},
    ],
)
def test_two_secrets_are_a_configuration_error(values: dict[str, object]) -> None:
    resolver, _ = _resolver(LayeredConfig({CLI: values}))

    with pytest.raises(ConflictingCredentials):
        resolver.validate()
    with pytest.raises(ConfigurationError):
        resolver.resolve(Target("db"))


def test_password_and_ask_password_conflict() -> None:
    resolver, _ = _resolver(LayeredConfig({CLI: {"password": "pw", "ask-password": True}}))

    with pytest.raises(ConflictingPasswordOptions):
        resolver.validate()


def test_jwt_requires_transport_support() -> None:
    resolver = CredentialResolver(
        LayeredConfig({CLI: {"jwt": "token"}}),
        StaticSecretSource(),
        capabilities=TransportCapabilities(jwt=False),
    )

    with pytest.raises(CapabilityDisabled):
        resolver.validate()


def test_resolve_applies_defaults() -> None:
    resolver, _ = _resolver(LayeredConfig())

    config = resolver.resolve(Target())

    assert config.host == "localhost"
    assert config.port == 9000
    assert config.user == "default"
    assert config.secret is None
    assert config.secure is False
    assert config.compression is False
    assert config.timeouts.connect == 10
    assert config.timeouts.handshake == 300
    assert config.timeouts.sync_request == 5
    assert config.protocol_capabilities.send == "notchunked"


def test_resolve_uses_explicit_values() -> None:
    resolver, _ = _resolver(
        LayeredConfig(
            {
                CLI: {
                    "user": "alice",
                    "password": "pw",
                    "database": "sales",
                    "connect_timeout": 3,
                    "handshake_timeout_ms": 1500,
                    "accept-invalid-certificate": True,
                    "quota_key": "team-a",
                }
            }
        ),
        local=False,
    )

    config = resolver.resolve(Target("db.example.com", 9440))

    assert config.user == "alice"
    assert config.secret == Password("pw")
    assert config.database == "sales"
    assert config.secure is True
    assert config.compression is True
    assert config.timeouts.connect == 3
    assert config.timeouts.handshake == 1.5
    assert config.verify_certificate is False
    assert config.quota_key == "team-a"


def test_compression_flag_overrides_locality() -> None:
    resolver, _ = _resolver(LayeredConfig({CLI: {"compression": True}}), local=True)

    assert resolver.resolve(Target("localhost")).compression is True


@pytest.mark.parametrize("values", [{"password": ASK_PASSWORD}, {"ask-password": True}])
def test_password_prompt_paths(values: dict[str, object]) -> None:
    resolver, secrets = _resolver(LayeredConfig({CLI: {"user": "bob", **values}}), "typed")

    config = resolver.resolve(Target("db"))

    assert config.secret == Password("typed")
    assert secrets.prompts == ["Password for user (bob): "]


def test_secret_is_resolved_once_across_targets() -> None:
    resolver, secrets = _resolver(LayeredConfig({CLI: {"ask-password": True}}), "typed", "again")

    first = resolver.resolve(Target("a"))
    second = resolver.resolve(Target("b"))

    assert first.secret == second.secret == Password("typed")
    assert len(secrets.prompts) == 1


def test_require_password_prompt_asks_again() -> None:
    resolver, secrets = _resolver(LayeredConfig(), "fresh")

    assert resolver.resolve(Target("a")).secret is None
    assert resolver.can_escalate

    resolver.require_password_prompt()

    assert resolver.resolve(Target("a")).secret == Password("fresh")
    assert len(secrets.prompts) == 1


def test_jwt_secret_is_used_verbatim() -> None:
    resolver, secrets = _resolver(LayeredConfig({CLI: {"jwt": "token", "user": ""}}))

    config = resolver.resolve(Target("db"))

    assert config.secret == Jwt("token")
    assert config.password == ""
    assert not resolver.can_escalate
    assert secrets.prompts == []


def _ed25519_key() -> ed25519.Ed25519PrivateKey:
    return ed25519.Ed25519PrivateKey.generate()


def test_ssh_key_loaded_with_prompted_passphrase(tmp_path: Path) -> None:
    path = tmp_path / "id_ed25519"
    path.write_bytes(
        _ed25519_key().private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.BestAvailableEncryption(b"hunter2"),
        )
    )
    resolver, secrets = _resolver(LayeredConfig({CLI: {"ssh-key-file": str(path)}}), "hunter2")

    config = resolver.resolve(Target("db"))

    assert isinstance(config.secret, SshKey)
    assert isinstance(config.secret.key, ed25519.Ed25519PrivateKey)
    assert len(secrets.prompts) == 1
    assert "hunter2" not in repr(config)


def test_openssh_key_with_configured_empty_passphrase(tmp_path: Path) -> None:
    path = tmp_path / "id_ed25519"
    path.write_bytes(
        _ed25519_key().private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.OpenSSH,
            serialization.NoEncryption(),
        )
    )

    key = load_private_key(str(path), "")

    assert isinstance(key, ed25519.Ed25519PrivateKey)


def test_public_key_file_is_not_a_private_key(tmp_path: Path) -> None:
    path = tmp_path / "id_ed25519.pub"
    path.write_bytes(
        _ed25519_key().public_key().public_bytes(
            serialization.Encoding.OpenSSH,
            serialization.PublicFormat.OpenSSH,
        )
    )

    with pytest.raises(NotAPrivateKey, match="is it a public key"):
        load_private_key(str(path), "")


def test_encrypted_key_without_passphrase_is_credential_error(tmp_path: Path) -> None:
    path = tmp_path / "key.pem"
    path.write_bytes(
        _ed25519_key().private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.BestAvailableEncryption(b"hunter2"),
        )
    )

    with pytest.raises(CredentialError):
        load_private_key(str(path), "")


def test_missing_key_file_is_credential_error(tmp_path: Path) -> None:
    with pytest.raises(CredentialError):
        load_private_key(str(tmp_path / "missing"), "")


def test_localhost_is_local_without_dns(monkeypatch: pytest.MonkeyPatch) -> None:
    def _no_dns(*_args: object, **_kwargs: object) -> None:
        raise AssertionError("DNS lookup not expected")

    monkeypatch.setattr(socket, "getaddrinfo", _no_dns)

    assert is_local_host("localhost") is True


def test_loopback_address_is_local() -> None:
    assert is_local_host("127.0.0.1") is True


def test_unresolvable_host_is_remote(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(*_args: object, **_kwargs: object) -> None:
        raise socket.gaierror("no such host")

    monkeypatch.setattr(socket, "getaddrinfo", _fail)

    assert is_local_host("nowhere.invalid") is False
