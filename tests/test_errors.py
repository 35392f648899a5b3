"""Tests for error handling and input validation."""

import unittest
from unittest.mock import Mock, patch

from celery_setup_cli.errors import (
    CelerySetupError,
    ConfigError,
    ConfigErrorKind,
    ErrorHandler,
    PermissionError,
    ServiceError,
    UnitWriteError,
    handle_exception,
    handle_keyboard_interrupt,
    require_root_privileges,
)
from celery_setup_cli.validators import InputValidator, ValidationError


class TestErrorHandler(unittest.TestCase):
    """Test ErrorHandler."""

    def setUp(self) -> None:
        self.handler = ErrorHandler()

    def test_identify_permission_error(self) -> None:
        self.assertEqual(
            self.handler.identify_error_type("tee: /etc/systemd/system/x: Permission denied"),
            "permission_denied",
        )

    def test_identify_unit_failure(self) -> None:
        self.assertEqual(
            self.handler.identify_error_type("Job for celery-acme.service failed"),
            "unit_failed",
        )

    def test_generic_suggestions_for_unknown_error(self) -> None:
        suggestions = self.handler.get_suggestions("something odd")

        self.assertTrue(any("--dry-run" in s for s in suggestions))

    @patch('celery_setup_cli.errors.console')
    def test_display_error_prefers_error_suggestions(self, mock_console: Mock) -> None:
        error = CelerySetupError("boom", ["do this"])

        self.handler.display_error(error, "Testing")

        mock_console.print.assert_called_once()
        panel = mock_console.print.call_args[0][0]
        self.assertIn("1. do this", panel.renderable)
        self.assertIn("Testing", panel.renderable)

    @patch('celery_setup_cli.errors.console')
    def test_display_error_without_suggestions(self, mock_console: Mock) -> None:
        self.handler.display_error(Exception("permission denied"), show_suggestions=False)

        panel = mock_console.print.call_args[0][0]
        self.assertNotIn("Suggested solutions", panel.renderable)


class TestErrors(unittest.TestCase):
    """Test the exception hierarchy."""

    def test_config_error_default_suggestions(self) -> None:
        error = ConfigError(ConfigErrorKind.VENV_NOT_FOUND, "no venv", field="venv")

        self.assertEqual(error.kind, ConfigErrorKind.VENV_NOT_FOUND)
        self.assertEqual(error.field, "venv")
        self.assertTrue(any("--venv" in s for s in error.suggestions))

    def test_config_error_custom_suggestions(self) -> None:
        error = ConfigError(ConfigErrorKind.EMPTY_FIELD, "empty", suggestions=["x"])

        self.assertEqual(error.suggestions, ["x"])

    def test_every_kind_has_suggestions(self) -> None:
        for kind in ConfigErrorKind:
            with self.subTest(kind=kind):
                self.assertTrue(ConfigError(kind, "m").suggestions)

    def test_inheritance(self) -> None:
        for cls in (ConfigError, ServiceError, UnitWriteError, PermissionError):
            with self.subTest(cls=cls):
                self.assertTrue(issubclass(cls, CelerySetupError))

    @patch('celery_setup_cli.errors.console')
    def test_handle_exception_exits_1(self, mock_console: Mock) -> None:
        with self.assertRaises(SystemExit) as ctx:
            handle_exception(ServiceError("failed"))

        self.assertEqual(ctx.exception.code, 1)

    @patch('celery_setup_cli.errors.console')
    def test_keyboard_interrupt_exits_130(self, mock_console: Mock) -> None:
        with self.assertRaises(SystemExit) as ctx:
            handle_keyboard_interrupt()

        self.assertEqual(ctx.exception.code, 130)


class TestRequireRoot(unittest.TestCase):
    """Test require_root_privileges."""

    @patch('celery_setup_cli.errors.is_root', return_value=False)
    def test_without_sudo_as_user(self, mock_root: Mock) -> None:
        with self.assertRaises(PermissionError):
            require_root_privileges("setup", use_sudo=False)

    @patch('celery_setup_cli.errors.is_root', return_value=False)
    def test_with_sudo_as_user(self, mock_root: Mock) -> None:
        require_root_privileges("setup", use_sudo=True)

    @patch('celery_setup_cli.errors.is_root', return_value=True)
    def test_as_root(self, mock_root: Mock) -> None:
        require_root_privileges("setup", use_sudo=False)


class TestInputValidation(unittest.TestCase):
    """Test input validation and normalization."""

    def test_validate_project_name_valid(self) -> None:
        for name in ["acme", "acme_web", "acme.api", "acme-2", "_internal"]:
            with self.subTest(name=name):
                self.assertEqual(InputValidator.validate_project_name(f" {name} "), name)

    def test_validate_project_name_invalid(self) -> None:
        invalid_names = [
            "",
            "   ",
            "a" * 65,
            "-acme",
            "acme web",
            "acme/web",
            "acme@1",
        ]

        for name in invalid_names:
            with self.subTest(name=name):
                with self.assertRaises(ValidationError):
                    InputValidator.validate_project_name(name)

    def test_validate_linux_user(self) -> None:
        self.assertEqual(InputValidator.validate_linux_user("deploy"), "deploy")
        for user in ["", "Deploy", "1user", "de ploy", "a" * 33]:
            with self.subTest(user=user):
                with self.assertRaises(ValidationError):
                    InputValidator.validate_linux_user(user)

    def test_validate_absolute_path(self) -> None:
        self.assertEqual(InputValidator.validate_absolute_path("/srv/acme/"), "/srv/acme")
        self.assertEqual(InputValidator.validate_absolute_path("/"), "/")
        for path in ["", "srv/acme", "/srv/\nacme"]:
            with self.subTest(path=path):
                with self.assertRaises(ValidationError):
                    InputValidator.validate_absolute_path(path)

    def test_validate_optional_path(self) -> None:
        self.assertEqual(InputValidator.validate_optional_path(""), "")
        self.assertEqual(InputValidator.validate_optional_path(None), "")
        self.assertEqual(InputValidator.validate_optional_path("/opt/venv"), "/opt/venv")

    def test_validate_settings_module(self) -> None:
        self.assertEqual(InputValidator.validate_settings_module(""), "")
        self.assertEqual(InputValidator.validate_settings_module("acme.settings.prod"), "acme.settings.prod")
        for module in ["acme..settings", "acme/settings", "1acme.settings"]:
            with self.subTest(module=module):
                with self.assertRaises(ValidationError):
                    InputValidator.validate_settings_module(module)


if __name__ == "__main__":
    unittest.main()
