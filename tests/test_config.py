import pytest

from registry_harvester.cancellation import CancellationToken
from registry_harvester.config import (
    DEFAULT_RELAYS,
    RELAYS_ENV,
    CollectConfig,
    ExtractConfig,
    relays_from_env,
)
from registry_harvester.errors import CollectionCancelled, ConfigError


def test_collect_config_defaults() -> None:
    config = CollectConfig(source_id="church")
    assert config.max_items == 0
    assert config.skip_duplicates is True
    assert config.save_per_region is True
    assert config.relays == DEFAULT_RELAYS
    assert config.request_timeout == 30.0


def test_collect_config_validates_on_construction() -> None:
    with pytest.raises(ConfigError):
        CollectConfig(source_id="church", max_items=-5)
    with pytest.raises(ConfigError):
        CollectConfig(source_id="church", use_direct=False, relays=())


def test_extract_config_validates_on_construction() -> None:
    assert ExtractConfig().request_timeout == 15.0
    with pytest.raises(ConfigError):
        ExtractConfig(max_targets=-1)
    with pytest.raises(ConfigError):
        ExtractConfig(relays=("https://relay.test/",))


def test_relays_from_env() -> None:
    assert relays_from_env({}) == DEFAULT_RELAYS
    assert relays_from_env({RELAYS_ENV: " https://a.test/?u={url} , ,https://b.test/{url}"}) == (
        "https://a.test/?u={url}",
        "https://b.test/{url}",
    )


def test_cancellation_token() -> None:
    token = CancellationToken()
    assert token.cancelled is False
    assert token.wait(0) is False
    token.raise_if_cancelled()
    token.cancel()
    assert token.cancelled is True
    assert token.wait(5) is True
    with pytest.raises(CollectionCancelled):
        token.raise_if_cancelled()
