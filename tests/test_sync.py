"""Tests for the sync cycle."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from docker.errors import DockerException

from core.config import AdapterConfig
from core.errors import ApiError, AuthFailure, ConnectionFailure, SetupError
from core.state import load_state
from lib.homarr.homarr_client import HomarrClient
from lib.sync import app_manager
from lib.sync.label_utils import AppDescriptor
from runner.sync import SyncReport, run_sync
from tests.conftest import bootstrapped_state, read_state, write_state
from tests.mocks import FakeContainer, FakeDockerClient, FakeHomarrClient, homarr_container, make_response, trpc


def bootstrapped_client(apps: dict | None = None) -> FakeHomarrClient:
    return FakeHomarrClient(onboarding_complete=True, apps=apps)


class TestSyncCycle:
    """Tests for run_sync end to end against the fakes."""

    def test_fresh_state_runs_setup_then_adds_container(self, config: AdapterConfig, homarr: FakeHomarrClient,
                                                        state_file: Path) -> None:
        """Test that an empty state bootstraps first, then creates one tile per container."""
        docker = FakeDockerClient([homarr_container("grafana", "Grafana", "http://localhost:3001")])

        report = run_sync(config, client=homarr, docker_client=docker)

        assert report.created == 1
        assert len(homarr.calls_to("create_app")) == 1
        assert homarr.calls_to("attach_app_to_board") == [("attach_app_to_board", "tile-1", "board-1")]
        saved = read_state(state_file)
        assert saved["first_boot_completed"] is True
        assert saved["discovered_apps"] == {"grafana": "tile-1"}
        assert saved["last_sync_at"] is not None

    def test_known_app_is_not_recreated(self, config: AdapterConfig, state_file: Path) -> None:
        """Test that an app already recorded with a live tile produces no dashboard writes."""
        write_state(state_file, bootstrapped_state(discovered_apps={"sigk": "tile-1"}))
        client = bootstrapped_client({"tile-1": {"id": "tile-1", "name": "Signal K", "href": "http://localhost:3000"}})
        docker = FakeDockerClient([
            homarr_container("halos-signalk-1", "Signal K", "http://localhost:3000",
                             {"com.docker.compose.service": "sigk"}),
        ])
        before = read_state(state_file)

        report = run_sync(config, client=client, docker_client=docker)

        assert report.existing == 1
        assert client.calls_to("create_app") == []
        assert client.calls_to("attach_app_to_board") == []
        after = read_state(state_file)
        assert after.pop("last_sync_at") is not None
        before.pop("last_sync_at")
        assert after == before

    def test_second_run_is_idempotent(self, config: AdapterConfig, state_file: Path) -> None:
        write_state(state_file, bootstrapped_state())
        client = bootstrapped_client()
        docker = FakeDockerClient([
            homarr_container("grafana", "Grafana", "http://localhost:3001"),
            homarr_container("influx", "InfluxDB", "http://localhost:8086"),
        ])

        first = run_sync(config, client=client, docker_client=docker)
        second = run_sync(config, client=client, docker_client=docker)

        assert first.created == 2
        assert second.created == 0
        assert second.existing == 2
        assert len(client.calls_to("create_app")) == 2

    def test_removed_app_is_skipped(self, config: AdapterConfig, state_file: Path) -> None:
        write_state(state_file, bootstrapped_state(removed_apps=["grafana"]))
        client = bootstrapped_client()
        docker = FakeDockerClient([homarr_container("grafana", "Grafana", "http://localhost:3001")])

        report = run_sync(config, client=client, docker_client=docker)

        assert report.excluded == 1
        assert client.calls_to("create_app") == []
        assert read_state(state_file)["discovered_apps"] == {}

    def test_one_rejected_app_is_partial(self, config: AdapterConfig, state_file: Path) -> None:
        """Test that a dashboard rejection fails only that app and marks the run partial."""
        write_state(state_file, bootstrapped_state())
        client = bootstrapped_client()
        client.reject_app_names.add("Broken")
        docker = FakeDockerClient([
            homarr_container("grafana", "Grafana", "http://localhost:3001"),
            homarr_container("broken", "Broken", "http://localhost:9999"),
            homarr_container("influx", "InfluxDB", "http://localhost:8086"),
        ])

        report = run_sync(config, client=client, docker_client=docker)

        assert (report.created, report.failed) == (2, 1)
        assert report.partial is True
        assert set(read_state(state_file)["discovered_apps"]) == {"grafana", "influx"}

    def test_invalid_labels_are_partial(self, config: AdapterConfig, state_file: Path) -> None:
        write_state(state_file, bootstrapped_state())
        client = bootstrapped_client()
        docker = FakeDockerClient([
            homarr_container("grafana", "Grafana", "http://localhost:3001"),
            FakeContainer("broken", {"homarr.enable": "true", "homarr.name": "Broken"}),
        ])

        report = run_sync(config, client=client, docker_client=docker)

        assert report.created == 1
        assert report.invalid == 1
        assert report.partial is True

    def test_discovered_and_removed_stay_disjoint(self, config: AdapterConfig, state_file: Path) -> None:
        write_state(state_file, bootstrapped_state(discovered_apps={"grafana": "tile-1"}, removed_apps=["influx"]))
        client = bootstrapped_client({"tile-1": {"id": "tile-1", "name": "Grafana", "href": "http://localhost:3001"}})
        docker = FakeDockerClient([
            homarr_container("grafana", "Grafana", "http://localhost:3001"),
            homarr_container("influx", "InfluxDB", "http://localhost:8086"),
            homarr_container("signalk", "Signal K", "http://localhost:3000"),
        ])

        run_sync(config, client=client, docker_client=docker)

        saved = read_state(state_file)
        assert set(saved["discovered_apps"]).isdisjoint(saved["removed_apps"])
        assert set(saved["discovered_apps"]) == {"grafana", "signalk"}

    def test_dry_run_writes_nothing(self, config: AdapterConfig, state_file: Path) -> None:
        write_state(state_file, bootstrapped_state())
        before = state_file.read_text()
        client = bootstrapped_client()
        docker = FakeDockerClient([homarr_container("grafana", "Grafana", "http://localhost:3001")])

        report = run_sync(replace(config, dry_run=True), client=client, docker_client=docker)

        assert report.created == 1
        assert client.calls_to("create_app") == []
        assert state_file.read_text() == before

    def test_docker_unreachable(self, config: AdapterConfig, state_file: Path) -> None:
        write_state(state_file, bootstrapped_state())
        before = state_file.read_text()

        with pytest.raises(ConnectionFailure):
            run_sync(config, client=bootstrapped_client(), docker_client=FakeDockerClient(error=DockerException("gone")))

        assert state_file.read_text() == before

    def test_setup_failure_stops_sync(self, config: AdapterConfig, homarr: FakeHomarrClient) -> None:
        homarr.errors["mint_permanent_credential"] = AuthFailure("UNAUTHORIZED", status_code=401)
        docker = FakeDockerClient([homarr_container("grafana", "Grafana", "http://localhost:3001")])

        with pytest.raises(SetupError, match="rotate"):
            run_sync(config, client=homarr, docker_client=docker)

        assert docker.list_calls == 0
        assert homarr.calls_to("create_app") == []

    def test_board_resolved_by_name_when_unknown(self, config: AdapterConfig, state_file: Path) -> None:
        write_state(state_file, bootstrapped_state(board_id=None))
        client = FakeHomarrClient(onboarding_complete=True, boards={"HaLOS": {"id": "board-5", "name": "HaLOS"}})
        docker = FakeDockerClient([homarr_container("grafana", "Grafana", "http://localhost:3001")])

        run_sync(config, client=client, docker_client=docker)

        assert client.calls_to("attach_app_to_board") == [("attach_app_to_board", "tile-1", "board-5")]
        assert read_state(state_file)["board_id"] == "board-5"


class TestMalformedDashboardReplies:
    """Tests that a wrongly shaped dashboard reply fails one app, not the run."""

    def test_null_board_fails_each_app_and_state_is_saved(self, config: AdapterConfig, state_file: Path) -> None:
        write_state(state_file, bootstrapped_state())
        session = MagicMock()
        session.get.return_value = make_response(200, trpc(None))
        session.post.return_value = make_response(200, trpc({"appId": "tile-9"}))
        client = HomarrClient(config.homarr_url, retry_attempts=1, retry_backoff=0.0, session=session)
        docker = FakeDockerClient([
            homarr_container("grafana", "Grafana", "http://localhost:3001"),
            homarr_container("influx", "InfluxDB", "http://localhost:8086"),
        ])

        report = run_sync(config, client=client, docker_client=docker)

        assert (report.created, report.failed) == (0, 2)
        assert report.partial is True
        saved = read_state(state_file)
        assert saved["discovered_apps"] == {}
        assert saved["last_sync_at"] is not None


class TestDeletedBoard:
    """Tests for a board deleted on the dashboard after setup."""

    def test_board_found_again_by_name(self, config: AdapterConfig, state_file: Path) -> None:
        write_state(state_file, bootstrapped_state(board_id="board-1"))
        client = FakeHomarrClient(onboarding_complete=True, boards={"HaLOS": {"id": "board-2", "name": "HaLOS"}})
        client.deleted_board_ids.add("board-1")
        docker = FakeDockerClient([
            homarr_container("grafana", "Grafana", "http://localhost:3001"),
            homarr_container("influx", "InfluxDB", "http://localhost:8086"),
        ])

        report = run_sync(config, client=client, docker_client=docker)

        assert report.created == 2
        assert len(client.calls_to("create_app")) == 2
        assert client.calls_to("attach_app_to_board") == [
            ("attach_app_to_board", "tile-1", "board-1"),
            ("attach_app_to_board", "tile-1", "board-2"),
            ("attach_app_to_board", "tile-2", "board-2"),
        ]
        saved = read_state(state_file)
        assert saved["board_id"] == "board-2"
        assert saved["discovered_apps"] == {"grafana": "tile-1", "influx": "tile-2"}

    def test_board_gone_entirely(self, config: AdapterConfig, state_file: Path) -> None:
        write_state(state_file, bootstrapped_state(board_id="board-1"))
        client = bootstrapped_client()
        client.deleted_board_ids.add("board-1")
        docker = FakeDockerClient([homarr_container("grafana", "Grafana", "http://localhost:3001")])

        with pytest.raises(SetupError, match="HaLOS"):
            run_sync(config, client=client, docker_client=docker)

        assert read_state(state_file)["board_id"] is None


class TestTileVerification:
    """Tests for excluding apps whose tiles were deleted on the dashboard."""

    def test_deleted_tile_moves_app_to_removed(self, config: AdapterConfig, state_file: Path) -> None:
        write_state(state_file, bootstrapped_state(discovered_apps={"grafana": "tile-1", "influx": "tile-2"}))
        client = bootstrapped_client({"tile-2": {"id": "tile-2", "name": "InfluxDB", "href": "http://localhost:8086"}})
        docker = FakeDockerClient([
            homarr_container("grafana", "Grafana", "http://localhost:3001"),
            homarr_container("influx", "InfluxDB", "http://localhost:8086"),
        ])

        report = run_sync(config, client=client, docker_client=docker)

        assert report.evicted == 1
        assert report.excluded == 1
        assert client.calls_to("create_app") == []
        saved = read_state(state_file)
        assert saved["discovered_apps"] == {"influx": "tile-2"}
        assert saved["removed_apps"] == ["grafana"]

    def test_listing_failure_skips_verification(self, config: AdapterConfig, state_file: Path,
                                                log_messages: list[str]) -> None:
        write_state(state_file, bootstrapped_state(discovered_apps={"grafana": "tile-1"}))
        client = bootstrapped_client()
        client.errors["list_apps"] = ApiError("boom", status_code=500, procedure="app.all")

        report = run_sync(config, client=client, docker_client=FakeDockerClient([]))

        assert report.evicted == 0
        assert load_state(state_file).discovered_apps == {"grafana": "tile-1"}
        assert any("skipping tile verification" in message for message in log_messages)

    def test_empty_listing_skips_verification(self, config: AdapterConfig, state_file: Path) -> None:
        write_state(state_file, bootstrapped_state(discovered_apps={"grafana": "tile-1"}))

        report = run_sync(config, client=bootstrapped_client(), docker_client=FakeDockerClient([]))

        assert report.evicted == 0
        assert load_state(state_file).discovered_apps == {"grafana": "tile-1"}

    def test_no_listing_without_known_apps(self) -> None:
        client = bootstrapped_client()

        assert app_manager.evict_deleted_tiles(client, load_state("/nonexistent/state.json")) == 0
        assert client.calls_to("list_apps") == []


class TestSyncApp:
    """Tests for per-app reconciliation."""

    APP = AppDescriptor(app_id="grafana", name="Grafana", url="http://localhost:3001", width=2, height=2)

    def test_conflict_adopts_existing_tile(self) -> None:
        client = bootstrapped_client({"tile-9": {"id": "tile-9", "name": "Grafana", "href": "http://localhost:3001"}})
        client.conflict_app_names.add("Grafana")
        state = load_state("/nonexistent/state.json")

        outcome = app_manager.sync_app(client, state, self.APP, "board-1")

        assert outcome == app_manager.OUTCOME_CREATED
        assert state.discovered_apps == {"grafana": "tile-9"}
        assert client.calls_to("attach_app_to_board") == [("attach_app_to_board", "tile-9", "board-1")]

    def test_attach_failure_leaves_app_unrecorded(self) -> None:
        client = bootstrapped_client()
        client.errors["attach_app_to_board"] = ConnectionFailure("dashboard unreachable")
        state = load_state("/nonexistent/state.json")

        outcome = app_manager.sync_app(client, state, self.APP, "board-1")

        assert outcome == app_manager.OUTCOME_FAILED
        assert state.discovered_apps == {}


class TestSyncReport:
    def test_partial(self) -> None:
        assert SyncReport().partial is False
        assert SyncReport(failed=1).partial is True
        assert SyncReport(invalid=1).partial is True

    def test_record(self) -> None:
        report = SyncReport()
        report.record(app_manager.OUTCOME_CREATED)
        report.record(app_manager.OUTCOME_CREATED)
        report.record(app_manager.OUTCOME_FAILED)

        assert (report.created, report.failed) == (2, 1)
