from unittest.mock import MagicMock, patch

import pytest

from liga_typerow.services.scheduler_service import SchedulerService


@pytest.fixture
def mock_scheduler():
    scheduler = MagicMock()
    scheduler.get_jobs.return_value = []
    return scheduler


@pytest.fixture
def scheduler_service(app, mock_scheduler):
    with patch(
        "liga_typerow.services.scheduler_service.BackgroundScheduler",
        return_value=mock_scheduler,
    ), patch("liga_typerow.services.scheduler_service.atexit"):
        service = SchedulerService()
        service.init_app(app)
        yield service


class TestSchedulerLifecycle:

    def test_disabled_under_testing(self, scheduler_service, mock_scheduler):
        assert scheduler_service.is_running is False
        mock_scheduler.start.assert_not_called()

    def test_start_registers_settlement_jobs(self, scheduler_service, mock_scheduler):
        scheduler_service.start()

        assert scheduler_service.is_running is True
        mock_scheduler.start.assert_called_once()
        job_ids = [call.kwargs["id"] for call in mock_scheduler.add_job.call_args_list]
        assert job_ids == ["settle_pending_matches", "recompute_rankings"]

    def test_stop(self, scheduler_service, mock_scheduler):
        scheduler_service.start()
        scheduler_service.stop()

        assert scheduler_service.is_running is False
        mock_scheduler.shutdown.assert_called_once_with(wait=False)


class TestSchedulerJobs:

    def test_sweep_records_stats(self, scheduler_service):
        with patch(
            "liga_typerow.services.scheduler_service.settle_pending_matches",
            return_value=(2, []),
        ) as sweep:
            scheduler_service._settle_pending()

        sweep.assert_called_once()
        stats = scheduler_service.sync_stats
        assert stats["successful_runs"] == 1
        assert stats["matches_settled"] == 2
        assert stats["last_error"] is None

    def test_sweep_reports_failed_matches(self, scheduler_service):
        with patch(
            "liga_typerow.services.scheduler_service.settle_pending_matches",
            return_value=(1, [7]),
        ):
            scheduler_service._settle_pending()

        stats = scheduler_service.sync_stats
        assert stats["failed_runs"] == 1
        assert "7" in stats["last_error"]

    def test_sweep_survives_errors(self, scheduler_service):
        with patch(
            "liga_typerow.services.scheduler_service.settle_pending_matches",
            side_effect=RuntimeError("database unavailable"),
        ):
            scheduler_service._settle_pending()

        assert scheduler_service.sync_stats["failed_runs"] == 1
        assert scheduler_service.sync_stats["last_error"] == "database unavailable"

    def test_nightly_rankings(self, scheduler_service, make_profile):
        make_profile()
        make_profile()

        success, message = scheduler_service.force_run("rankings")

        assert success, message
        assert scheduler_service.sync_stats["successful_runs"] == 1

    def test_unknown_job(self, scheduler_service):
        success, _ = scheduler_service.force_run("weekly")
        assert success is False

    def test_status(self, scheduler_service):
        status = scheduler_service.get_status()
        assert status["is_running"] is False
        assert status["jobs"] == []
        assert status["stats"]["total_runs"] == 0
