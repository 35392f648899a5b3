"""Tests for cleanup planning and best-effort execution."""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, Mock

from celery_setup_cli.cleanup import (
    CleanupAction,
    StepStatus,
    execute_plan,
    instance_unit_name,
    plan_cleanup,
)
from celery_setup_cli.errors import ServiceError
from celery_setup_cli.models import ServiceKind


def make_manager(dry_run: bool = False, known: bool = True) -> MagicMock:
    manager = MagicMock()
    manager.runner.dry_run = dry_run
    manager.is_known.return_value = known
    return manager


class TestPlanCleanup(unittest.TestCase):
    """Test the computed cleanup plan."""

    def setUp(self) -> None:
        self.plan = plan_cleanup("acme")

    def test_plan_is_not_empty(self) -> None:
        self.assertTrue(self.plan)

    def test_single_units_stopped_disabled_and_removed(self) -> None:
        first = [(s.action, s.target) for s in self.plan[:3]]

        self.assertEqual(first, [
            (CleanupAction.STOP, "celery-acme.service"),
            (CleanupAction.DISABLE, "celery-acme.service"),
            (CleanupAction.REMOVE_FILE, "/etc/systemd/system/celery-acme.service"),
        ])
        targets = [s.target for s in self.plan]
        self.assertIn("/etc/systemd/system/celerybeat-acme.service", targets)

    def test_instance_units_stopped_but_templates_kept(self) -> None:
        targets = [(s.action, s.target) for s in self.plan]

        self.assertIn((CleanupAction.STOP, "celery-worker@acme.service"), targets)
        self.assertIn((CleanupAction.DISABLE, "celery-beat@acme.service"), targets)
        removed = [s.target for s in self.plan if s.action is CleanupAction.REMOVE_FILE]
        self.assertFalse(any("@" in t for t in removed))

    def test_runtime_dir_and_logs_removed(self) -> None:
        targets = [(s.action, s.target) for s in self.plan]

        self.assertIn((CleanupAction.REMOVE_DIR, "/run/celery-acme"), targets)
        self.assertIn((CleanupAction.REMOVE_GLOB, "/var/log/celery/acme-worker*.log"), targets)
        self.assertIn((CleanupAction.REMOVE_GLOB, "/var/log/celery/acme-beat*.log"), targets)

    def test_plan_ends_with_reload_and_reset(self) -> None:
        self.assertEqual(
            [s.action for s in self.plan[-2:]],
            [CleanupAction.DAEMON_RELOAD, CleanupAction.RESET_FAILED],
        )

    def test_custom_directories(self) -> None:
        plan = plan_cleanup("acme", log_dir="/data/logs/", unit_dir="/tmp/units/")
        targets = [s.target for s in plan]

        self.assertIn("/tmp/units/celery-acme.service", targets)
        self.assertIn("/data/logs/acme-worker*.log", targets)

    def test_instance_unit_name(self) -> None:
        self.assertEqual(instance_unit_name("acme", ServiceKind.WORKER), "celery-worker@acme.service")


class TestExecutePlan(unittest.TestCase):
    """Test best-effort execution."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.unit_dir = root / "units"
        self.log_dir = root / "logs"
        self.unit_dir.mkdir()
        self.log_dir.mkdir()
        (self.unit_dir / "celery-acme.service").write_text("[Unit]\n")
        (self.log_dir / "acme-worker.log").write_text("")
        (self.log_dir / "acme-worker-1.log").write_text("")
        (self.log_dir / "other-worker.log").write_text("")
        self.plan = plan_cleanup("acme", str(self.log_dir), str(self.unit_dir))

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def statuses(self, report, action: CleanupAction):
        return [o.status for o in report.outcomes if o.step.action is action]

    def test_every_step_reported_in_order(self) -> None:
        report = execute_plan(self.plan, make_manager(), "acme")

        self.assertEqual([o.step for o in report.outcomes], self.plan)
        self.assertEqual(report.failures, [])

    def test_failures_do_not_abort_later_steps(self) -> None:
        manager = make_manager()
        manager.stop.side_effect = ServiceError("stop failed")

        report = execute_plan(self.plan, manager, "acme")

        self.assertEqual(len(report.outcomes), len(self.plan))
        self.assertEqual(len(report.failures), 4)
        self.assertEqual(manager.disable.call_count, 4)
        manager.daemon_reload.assert_called_once_with()
        manager.reset_failed.assert_called_once_with(check=True)
        self.assertEqual(report.failures[0].error, "stop failed")

    def test_os_errors_are_recorded(self) -> None:
        manager = make_manager()
        manager.daemon_reload.side_effect = OSError("gone")

        report = execute_plan(self.plan, manager, "acme")

        self.assertEqual(self.statuses(report, CleanupAction.DAEMON_RELOAD), [StepStatus.FAILURE])
        self.assertEqual(self.statuses(report, CleanupAction.RESET_FAILED), [StepStatus.SUCCESS])

    def test_unknown_units_are_skipped(self) -> None:
        manager = make_manager(known=False)

        report = execute_plan(self.plan, manager, "acme")

        manager.stop.assert_not_called()
        self.assertEqual(set(self.statuses(report, CleanupAction.STOP)), {StepStatus.SKIPPED})

    def test_absent_files_are_skipped(self) -> None:
        manager = make_manager()

        report = execute_plan(self.plan, manager, "acme")

        self.assertEqual(
            self.statuses(report, CleanupAction.REMOVE_FILE),
            [StepStatus.SUCCESS, StepStatus.SKIPPED],
        )
        manager.runner.remove_file.assert_called_once_with(self.unit_dir / "celery-acme.service")

    def test_log_glob_removes_only_project_logs(self) -> None:
        manager = make_manager()

        report = execute_plan(self.plan, manager, "acme")

        manager.runner.run.assert_called_once_with([
            "rm", "-f",
            str(self.log_dir / "acme-worker-1.log"),
            str(self.log_dir / "acme-worker.log"),
        ])
        self.assertEqual(
            self.statuses(report, CleanupAction.REMOVE_GLOB),
            [StepStatus.SUCCESS, StepStatus.SKIPPED],
        )

    def test_dry_run_status(self) -> None:
        report = execute_plan(self.plan, make_manager(dry_run=True), "acme")

        self.assertEqual(self.statuses(report, CleanupAction.DAEMON_RELOAD), [StepStatus.DRY_RUN])

    def test_events_logged_per_step(self) -> None:
        event_logger = Mock()

        execute_plan(self.plan, make_manager(), "acme", event_logger)

        self.assertEqual(event_logger.log_cleanup_step.call_count, len(self.plan))


if __name__ == "__main__":
    unittest.main()
