"""Tests for prompt collection and the setup wizard."""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, Mock, patch

from celery_setup_cli.config import Config
from celery_setup_cli.deployer import DeploymentResult, DeployOptions
from celery_setup_cli.errors import ConfigError, ConfigErrorKind, ServiceError
from celery_setup_cli.models import Broker, DeploymentConfig, UnitMode
from celery_setup_cli.validators import ValidationError
from celery_setup_cli.wizards import (
    CeleryServiceWizard,
    FieldDescriptor,
    collect_fields,
    deployment_fields,
    _validate_broker,
    _validate_project_name,
    _validate_settings_module,
)


@patch('celery_setup_cli.wizards.console')
class TestCollectFields(unittest.TestCase):
    """Test the generic prompt loop."""

    def fields(self):
        return [
            FieldDescriptor(name="project_name", prompt="Project", validator=_validate_project_name, required=True),
            FieldDescriptor(
                name="settings_module",
                prompt="Settings",
                default=lambda collected: f"{collected['project_name']}.settings",
                validator=_validate_settings_module,
            ),
            FieldDescriptor(
                name="broker",
                prompt="Broker",
                default="rabbitmq",
                validator=_validate_broker,
                choices=["rabbitmq", "redis"],
            ),
        ]

    def test_prompts_in_order_with_derived_defaults(self, mock_console: Mock) -> None:
        prompt = Mock(side_effect=["acme", "", "redis"])

        values = collect_fields(self.fields(), {}, prompt=prompt)

        self.assertEqual(values, {"project_name": "acme", "settings_module": "", "broker": "redis"})
        self.assertEqual(prompt.call_args_list[1][1]["default"], "acme.settings")
        self.assertEqual(prompt.call_args_list[2][1]["default"], "rabbitmq")

    def test_invalid_broker_reprompts(self, mock_console: Mock) -> None:
        prompt = Mock(side_effect=["kafka", "0", "2"])

        values = collect_fields(self.fields()[2:], {}, prompt=prompt)

        self.assertEqual(values["broker"], "redis")
        self.assertEqual(prompt.call_count, 3)

    def test_empty_required_value_reprompts(self, mock_console: Mock) -> None:
        prompt = Mock(side_effect=["", "acme"])

        values = collect_fields(self.fields()[:1], {}, prompt=prompt)

        self.assertEqual(values["project_name"], "acme")
        self.assertEqual(prompt.call_count, 2)

    def test_preset_values_skip_prompts(self, mock_console: Mock) -> None:
        prompt = Mock()

        values = collect_fields(
            self.fields(),
            {"project_name": "acme", "settings_module": "acme.prod", "broker": "1"},
            prompt=prompt,
        )

        prompt.assert_not_called()
        self.assertEqual(values["broker"], "rabbitmq")

    def test_invalid_preset_reprompts_interactively(self, mock_console: Mock) -> None:
        prompt = Mock(return_value="acme")

        values = collect_fields(self.fields()[:1], {"project_name": "bad name"}, prompt=prompt)

        self.assertEqual(values["project_name"], "acme")
        prompt.assert_called_once()

    def test_non_interactive_missing_required(self, mock_console: Mock) -> None:
        with self.assertRaises(ConfigError) as ctx:
            collect_fields(self.fields(), {}, interactive=False)

        self.assertEqual(ctx.exception.kind, ConfigErrorKind.EMPTY_FIELD)
        self.assertEqual(ctx.exception.field, "project_name")

    def test_blank_preset_is_empty_field(self, mock_console: Mock) -> None:
        for value in ("", "   "):
            with self.subTest(value=value):
                with self.assertRaises(ConfigError) as ctx:
                    collect_fields(self.fields(), {"project_name": value}, interactive=False)

                self.assertEqual(ctx.exception.kind, ConfigErrorKind.EMPTY_FIELD)
                self.assertEqual(ctx.exception.field, "project_name")

    @patch('celery_setup_cli.wizards.user_exists')
    def test_blank_user_is_empty_field_before_lookup(self, mock_exists: Mock, mock_console: Mock) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ConfigError) as ctx:
                collect_fields(
                    deployment_fields({}),
                    {"project_name": "acme", "project_dir": tmp, "linux_user": ""},
                    interactive=False,
                )

        self.assertEqual(ctx.exception.kind, ConfigErrorKind.EMPTY_FIELD)
        self.assertEqual(ctx.exception.field, "linux_user")
        mock_exists.assert_not_called()

    def test_non_interactive_uses_defaults(self, mock_console: Mock) -> None:
        values = collect_fields(self.fields(), {"project_name": "acme"}, interactive=False)

        self.assertEqual(values["settings_module"], "acme.settings")
        self.assertEqual(values["broker"], "rabbitmq")

    def test_non_interactive_invalid_value_raises(self, mock_console: Mock) -> None:
        with self.assertRaises(ConfigError):
            collect_fields(self.fields(), {"project_name": "acme", "broker": "kafka"}, interactive=False)

        with self.assertRaises(ValidationError):
            collect_fields(self.fields(), {"project_name": "bad name"}, interactive=False)


class TestDeploymentFields(unittest.TestCase):
    """Test the wizard field list."""

    def test_field_order(self) -> None:
        names = [f.name for f in deployment_fields({})]

        self.assertEqual(
            names,
            ["project_name", "project_dir", "linux_user", "venv", "settings_module", "broker", "log_dir"],
        )

    @patch('celery_setup_cli.wizards.user_exists', return_value=False)
    def test_missing_directory_reported_before_unknown_user(self, mock_exists: Mock) -> None:
        with self.assertRaises(ConfigError) as ctx:
            collect_fields(
                deployment_fields({}),
                {"project_name": "acme", "project_dir": "/does/not/exist", "linux_user": "ghost"},
                interactive=False,
            )

        self.assertEqual(ctx.exception.kind, ConfigErrorKind.DIRECTORY_NOT_FOUND)
        mock_exists.assert_not_called()

    def test_saved_defaults_seed_prompts(self) -> None:
        fields = {f.name: f for f in deployment_fields({"broker": "redis", "log_dir": "/data/logs"})}

        self.assertEqual(fields["broker"].default_for({}), "redis")
        self.assertEqual(fields["log_dir"].default_for({}), "/data/logs")

    def test_project_dir_must_exist(self) -> None:
        field = {f.name: f for f in deployment_fields({})}["project_dir"]

        with self.assertRaises(ConfigError) as ctx:
            field.validator("/does/not/exist", {})

        self.assertEqual(ctx.exception.kind, ConfigErrorKind.DIRECTORY_NOT_FOUND)

    @patch('celery_setup_cli.wizards.user_exists', return_value=False)
    def test_linux_user_must_exist(self, mock_exists: Mock) -> None:
        field = {f.name: f for f in deployment_fields({})}["linux_user"]

        with self.assertRaises(ConfigError) as ctx:
            field.validator("ghost", {})

        self.assertEqual(ctx.exception.kind, ConfigErrorKind.USER_NOT_FOUND)


@patch('celery_setup_cli.wizards.display_next_steps')
@patch('celery_setup_cli.wizards.display_cleanup_plan')
@patch('celery_setup_cli.wizards.display_unit_preview')
@patch('celery_setup_cli.wizards.display_config_summary')
@patch('celery_setup_cli.wizards.error_handler')
@patch('celery_setup_cli.wizards.console')
class TestCeleryServiceWizard(unittest.TestCase):
    """Test the wizard flow with collection, resolution and deployment mocked."""

    VALUES = {
        "project_name": "acme",
        "linux_user": "deploy",
        "project_dir": "/srv/acme",
        "venv": "",
        "settings_module": "",
        "broker": "redis",
        "log_dir": "/var/log/celery",
    }

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.defaults = Config(Path(self._tmp.name)).defaults()
        self.config = DeploymentConfig(
            project_name="acme",
            linux_user="deploy",
            project_dir=Path("/srv/acme"),
            venv_bin=Path("/srv/acme/.venv/bin"),
            settings_module="acme.settings",
            broker=Broker.REDIS,
        )
        self.manager = MagicMock()
        self.manager.runner.dry_run = True

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def wizard(self, **kwargs) -> CeleryServiceWizard:
        options = dict(
            manager=self.manager,
            defaults=self.defaults,
            assume_yes=True,
            interactive=False,
            event_logger=Mock(),
        )
        options.update(kwargs)
        return CeleryServiceWizard(**options)

    @patch('celery_setup_cli.wizards.Deployer')
    @patch('celery_setup_cli.wizards.ConfigResolver')
    @patch('celery_setup_cli.wizards.collect_fields')
    def test_successful_run(self, mock_collect, mock_resolver, mock_deployer, *mocks) -> None:
        mock_collect.return_value = dict(self.VALUES)
        mock_resolver.return_value.resolve.return_value = self.config
        mock_deployer.return_value.deploy.return_value = DeploymentResult(units=[], started=False)
        options = DeployOptions(cleanup=False)

        wizard = self.wizard(options=options, mode=UnitMode.TEMPLATE, start=True)

        self.assertTrue(wizard.run())
        raw = mock_resolver.return_value.resolve.call_args[0][0]
        self.assertEqual(raw.broker, "redis")
        self.assertIsNone(raw.venv)
        self.assertIsNone(raw.settings_module)
        self.assertEqual(raw.mode, "template")
        self.assertTrue(raw.start_immediately)
        mock_deployer.return_value.deploy.assert_called_once_with(self.config, options)
        wizard.event_logger.log_config_resolved.assert_called_once()

    @patch('celery_setup_cli.wizards.Deployer')
    @patch('celery_setup_cli.wizards.collect_fields')
    def test_config_error_returns_false(self, mock_collect, mock_deployer, *mocks) -> None:
        mock_collect.side_effect = ConfigError(ConfigErrorKind.EMPTY_FIELD, "Missing", field="project_name")

        wizard = self.wizard()

        self.assertFalse(wizard.run())
        wizard.event_logger.log_config_rejected.assert_called_once_with("project_name", "empty_field", "Missing")
        mock_deployer.assert_not_called()

    @patch('celery_setup_cli.wizards.Deployer')
    @patch('celery_setup_cli.wizards.ConfigResolver')
    @patch('celery_setup_cli.wizards.collect_fields')
    def test_fatal_deploy_error_returns_false(self, mock_collect, mock_resolver, mock_deployer, *mocks) -> None:
        mock_collect.return_value = dict(self.VALUES)
        mock_resolver.return_value.resolve.return_value = self.config
        mock_deployer.return_value.deploy.side_effect = ServiceError("enable failed")

        self.assertFalse(self.wizard().run())

    @patch('celery_setup_cli.wizards.Confirm.ask', return_value=False)
    @patch('celery_setup_cli.wizards.Deployer')
    @patch('celery_setup_cli.wizards.ConfigResolver')
    @patch('celery_setup_cli.wizards.collect_fields')
    def test_declined_confirmation_changes_nothing(
        self, mock_collect, mock_resolver, mock_deployer, mock_confirm, *mocks
    ) -> None:
        mock_collect.return_value = dict(self.VALUES)
        mock_resolver.return_value.resolve.return_value = self.config

        wizard = self.wizard(assume_yes=False, start=False)

        self.assertFalse(wizard.run())
        mock_deployer.return_value.deploy.assert_not_called()

    @patch('celery_setup_cli.wizards.Deployer')
    def test_blank_user_option_is_logged_as_empty_field(self, mock_deployer, *mocks) -> None:
        wizard = self.wizard(preset={"project_name": "acme", "project_dir": self._tmp.name, "linux_user": ""})

        self.assertFalse(wizard.run())
        wizard.event_logger.log_config_rejected.assert_called_once_with(
            "linux_user", "empty_field", "Missing required value: linux_user"
        )
        mock_deployer.assert_not_called()

    @patch('celery_setup_cli.wizards.collect_fields', side_effect=KeyboardInterrupt)
    def test_keyboard_interrupt_propagates(self, mock_collect, *mocks) -> None:
        with self.assertRaises(KeyboardInterrupt):
            self.wizard().run()


if __name__ == "__main__":
    unittest.main()
