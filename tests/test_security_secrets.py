import pytest

from fleetready.core.log import mask_secret
from fleetready.core.secrets import EnvSecretStore
from fleetready.core.security import Principal, StaticTokenValidator


def test_static_validator_subjects():
    v = StaticTokenValidator(["ops:abc123", "bare-token"])
    assert v.validate("abc123") == Principal(subject="ops")
    assert v.validate("bare-token") == Principal(subject="api")
    assert v.validate("nope") is None


def test_validator_follows_secret_rotation():
    store = EnvSecretStore({"FLEET_API_TOKENS": "ops:first"})
    v = StaticTokenValidator.from_secret_store(store, "FLEET_API_TOKENS")
    assert v.validate("first") is not None

    store.rotate("FLEET_API_TOKENS", "ops:second, auditor:third")
    assert v.validate("first") is None
    assert v.validate("second") == Principal(subject="ops")
    assert v.validate("third") == Principal(subject="auditor")


def test_secret_store_reads_env_and_require(monkeypatch):
    monkeypatch.setenv("VENDOR_A_SFTP_KEY", "  s3cret ")
    store = EnvSecretStore()
    assert store.get("VENDOR_A_SFTP_KEY") == "s3cret"
    monkeypatch.delenv("VENDOR_A_SFTP_KEY")
    with pytest.raises(RuntimeError):
        store.require("VENDOR_A_SFTP_KEY")


def test_rotation_notifies_only_matching_subscribers():
    store = EnvSecretStore({"A": "1", "B": "1"})
    seen = []
    store.subscribe("A", lambda key, value: seen.append((key, value)))
    store.rotate("B", "2")
    store.rotate("A", "2")
    assert seen == [("A", "2")]


@pytest.mark.parametrize(
    "raw,masked",
    [
        ("Bearer abcdefghijkl", "Bearer ****ijkl"),
        ("Bearer abc", "Bearer ****"),
        ("abcdefghijkl", "****ijkl"),
        (None, None),
    ],
)
def test_mask_secret(raw, masked):
    assert mask_secret(raw) == masked
