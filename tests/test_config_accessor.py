"""
Tests for the ordered configuration accessor and the local source.
"""

from typing import List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from kvconfig.infrastructure.config.accessor import ConfigurationUtil, LocalConfigurationSource


def remote_source(ordinal: int, values: Optional[dict] = None) -> Mock:
    values = values or {}
    source = Mock()
    source.ordinal = ordinal
    source.get.side_effect = values.get
    source.get_list_size.return_value = None
    source.get_map_keys.return_value = None
    source.watch = AsyncMock()
    return source


class TestLocalConfigurationSource:
    """Test cases for the in-memory source."""

    @pytest.fixture
    def source(self) -> LocalConfigurationSource:
        return LocalConfigurationSource({
            "db.url": "jdbc:a",
            "db.pool[0].size": "5",
            "db.pool[1].size": "10",
            "db.timeout": "30",
            "servers[0]": "a",
            "servers[1]": "b",
            "servers[3]": "d",
            "flag": "TRUE",
        })

    def test_typed_getters(self, source: LocalConfigurationSource) -> None:
        assert source.get("db.url") == "jdbc:a"
        assert source.get_integer("db.timeout") == 30
        assert source.get_long("db.timeout") == 30
        assert source.get_double("db.timeout") == 30.0
        assert source.get_float("db.timeout") == 30.0
        assert source.get_boolean("flag") is True
        assert source.get("missing") is None

    def test_list_size(self, source: LocalConfigurationSource) -> None:
        assert source.get_list_size("db.pool") == 2
        assert source.get_list_size("servers") == 2
        assert source.get_list_size("db.url") is None

    def test_map_keys(self, source: LocalConfigurationSource) -> None:
        assert source.get_map_keys("db") == ["url", "pool", "timeout"]
        assert source.get_map_keys("missing") is None

    def test_root_map_keys(self, source: LocalConfigurationSource) -> None:
        assert source.get_map_keys("") == ["db", "servers", "flag"]

    def test_set_serializes(self, source: LocalConfigurationSource) -> None:
        source.set("feature.flag", False)

        assert source.get("feature.flag") == "false"

    def test_ordinal(self) -> None:
        assert LocalConfigurationSource().ordinal == 100
        assert LocalConfigurationSource({"config_ordinal": "300"}).ordinal == 300


class TestConfigurationUtil:
    """Test cases for source ordering and lookups."""

    def test_local_only(self) -> None:
        config = ConfigurationUtil({"a": "1"})

        assert config.get("a") == "1"
        assert config.get_integer("a") == 1
        assert config.get("b") is None

    def test_higher_ordinal_wins(self) -> None:
        config = ConfigurationUtil({"a": "local", "b": "local-b"})
        config.add_source(remote_source(110, {"a": "remote"}))

        assert config.get("a") == "remote"
        assert config.get("b") == "local-b"

    def test_lower_ordinal_is_consulted_last(self) -> None:
        config = ConfigurationUtil({"a": "local"})
        config.add_source(remote_source(50, {"a": "low", "c": "low-c"}))

        assert config.get("a") == "local"
        assert config.get("c") == "low-c"

    def test_sources_sorted_by_ordinal(self) -> None:
        config = ConfigurationUtil()
        low = remote_source(10)
        high = remote_source(500)
        config.add_source(low)
        config.add_source(high)
        config.add_source(high)

        assert config.sources == [high, config.local, low]

    def test_failing_source_is_skipped(self) -> None:
        config = ConfigurationUtil({"a": "local"})
        broken = remote_source(110)
        broken.get.side_effect = RuntimeError("backend exploded")
        config.add_source(broken)

        assert config.get("a") == "local"

    def test_list_size_and_map_keys_fall_through(self) -> None:
        config = ConfigurationUtil({"items[0]": "x", "items[1]": "y", "m.k": "v"})
        config.add_source(remote_source(110))

        assert config.get_list_size("items") == 2
        assert config.get_map_keys("m") == ["k"]

    def test_set_writes_local(self) -> None:
        config = ConfigurationUtil()
        config.set("x", 5)

        assert config.get("x") == "5"

    @pytest.mark.asyncio
    async def test_subscribe_watches_every_source(self) -> None:
        config = ConfigurationUtil()
        remote = remote_source(110)
        config.add_source(remote)
        received: List[str] = []

        subscription_id = await config.subscribe("feature.flag", lambda key, value: received.append(value))
        await config.dispatcher.notify_change("feature.flag", "on")

        remote.watch.assert_awaited_once_with("feature.flag")
        assert received == ["on"]
        assert config.unsubscribe(subscription_id) is True

    @pytest.mark.asyncio
    async def test_subscribe_survives_watch_failure(self) -> None:
        config = ConfigurationUtil()
        remote = remote_source(110)
        remote.watch.side_effect = RuntimeError("cannot watch")
        config.add_source(remote)

        subscription_id = await config.subscribe("a", lambda key, value: None)

        assert subscription_id
