"""Tests for conflict detection and last-write-wins resolution."""

from datetime import datetime, timedelta, timezone

import pytest

from pedidolist.core.enums import EntityType, SyncStatus
from pedidolist.services.sync.conflict_resolver import (
    CLIENT_WINS,
    MANUAL,
    SERVER_WINS,
    ConflictResolver,
    detect_conflict,
    resolve_last_write_wins,
    resolve_with_strategy,
)
from pedidolist.services.sync.types import EntityRecord, Winner

T1 = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
T2 = T1 + timedelta(minutes=5)


def _local(price="10.00", version=1, modified=T1, status=SyncStatus.PENDING, **kwargs):
    return EntityRecord(
        entity_type=EntityType.PRODUCT,
        payload={"name": "Alfajor", "price": price},
        local_id="loc-1",
        server_id="srv-1",
        version=version,
        last_modified_at=modified,
        sync_status=status,
        **kwargs,
    )


def _server(price="12.00", version=2, modified=T2):
    return EntityRecord(
        entity_type=EntityType.PRODUCT,
        payload={"name": "Alfajor", "price": price},
        server_id="srv-1",
        version=version,
        last_modified_at=modified,
        sync_status=SyncStatus.SYNCED,
    )


class TestDetectConflict:

    def test_pending_local_behind_server_with_different_content(self):
        assert detect_conflict(_local(), _server()) is True

    def test_no_local_changes_is_never_a_conflict(self):
        assert detect_conflict(_local(status=SyncStatus.SYNCED), _server()) is False

    def test_server_not_ahead(self):
        assert detect_conflict(_local(version=2), _server(version=2)) is False

    def test_same_content_is_not_a_conflict(self):
        assert detect_conflict(_local(price="12.00"), _server(price="12.00")) is False

    def test_local_delete_against_newer_server_edit(self):
        local = _local(price="12.00", is_deleted=True)
        assert detect_conflict(local, _server(price="12.00")) is True


class TestLastWriteWins:

    def test_later_local_wins_whole_record(self):
        result = resolve_last_write_wins(_local(modified=T2), _server(modified=T1), EntityType.PRODUCT)
        assert result.winner is Winner.LOCAL
        assert result.resolved.payload["price"] == "10.00"

    def test_local_win_is_rebased_on_server_version(self):
        result = resolve_last_write_wins(_local(modified=T2, version=1), _server(modified=T1, version=4), EntityType.PRODUCT)
        assert result.resolved.version == 4
        assert result.resolved.local_id == "loc-1"

    def test_later_server_wins(self):
        result = resolve_last_write_wins(_local(modified=T1), _server(modified=T2), EntityType.PRODUCT)
        assert result.winner is Winner.SERVER
        assert result.resolved.payload["price"] == "12.00"
        assert result.resolved.local_id == "loc-1"
        assert result.resolved.sync_status is SyncStatus.SYNCED

    def test_tie_goes_to_server(self):
        result = resolve_last_write_wins(_local(modified=T1), _server(modified=T1), EntityType.PRODUCT)
        assert result.winner is Winner.SERVER

    def test_missing_local_timestamp_loses(self):
        result = resolve_last_write_wins(_local(modified=None), _server(modified=T1), EntityType.PRODUCT)
        assert result.winner is Winner.SERVER

    def test_naive_timestamps_are_treated_as_utc(self):
        naive_later = T2.replace(tzinfo=None)
        result = resolve_last_write_wins(_local(modified=naive_later), _server(modified=T1), EntityType.PRODUCT)
        assert result.winner is Winner.LOCAL

    def test_resolution_is_pure(self):
        local, server = _local(), _server()
        resolve_last_write_wins(local, server, EntityType.PRODUCT)
        assert local.payload["price"] == "10.00"
        assert server.local_id is None


class TestStrategies:

    def test_server_wins_ignores_timestamps(self):
        result = resolve_with_strategy(_local(modified=T2), _server(modified=T1), EntityType.PRODUCT, SERVER_WINS)
        assert result.winner is Winner.SERVER

    def test_client_wins_ignores_timestamps(self):
        result = resolve_with_strategy(_local(modified=T1), _server(modified=T2), EntityType.PRODUCT, CLIENT_WINS)
        assert result.winner is Winner.LOCAL
        assert result.resolved.version == 2

    def test_manual_leaves_both_copies_untouched(self):
        local = _local(modified=T2)
        server = _server(modified=T1)

        result = resolve_with_strategy(local, server, EntityType.PRODUCT, MANUAL)

        assert result.winner is Winner.MANUAL
        assert result.resolved == local
        assert result.server == server

    def test_manual_strategy_accepted_by_resolver(self):
        assert ConflictResolver(MANUAL).resolve(_local(), _server(), EntityType.PRODUCT).winner is Winner.MANUAL

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ValueError):
            ConflictResolver("merge_fields")

    def test_resolver_binds_strategy(self):
        resolver = ConflictResolver(SERVER_WINS)
        assert resolver.detect(_local(), _server()) is True
        assert resolver.resolve(_local(modified=T2), _server(modified=T1), EntityType.PRODUCT).winner is Winner.SERVER
