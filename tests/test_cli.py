"""Smoke tests for the CLI.

Lifecycle functions are patched, so these tests need neither root nor a
real device.
"""

import json
import os
import subprocess
import sys
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from znx import __version__
from znx.cli import app, run
from znx.device.mount import NotManagedError
from znx.images.naming import ImageName
from znx.images.repository import RevertFailedError
from znx.types import OperationResult

runner = CliRunner()


def ok(message, **details):
    return OperationResult(success=True, message=message, details=details)


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Usage:" in result.stdout
        for command in ("init", "deploy", "update", "revert", "clean", "remove"):
            assert command in result.stdout

    def test_short_help(self) -> None:
        result = runner.invoke(app, ["-h"])
        assert result.exit_code == 0
        assert "Usage:" in result.stdout

    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_short_version_flag(self) -> None:
        result = runner.invoke(app, ["-v"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_command_help(self) -> None:
        result = runner.invoke(app, ["deploy", "--help"])
        assert result.exit_code == 0
        assert "deploy" in result.stdout.lower()


class TestArguments:
    """Argument validation happens before any operation runs."""

    @pytest.mark.parametrize(
        "args",
        [
            ["init"],
            ["deploy", "/dev/sdb", "acme/os"],
            ["update", "/dev/sdb"],
            ["revert", "/dev/sdb", "acme/os", "extra"],
            ["list"],
            ["frobnicate", "/dev/sdb"],
        ],
    )
    def test_wrong_arity_is_an_error(self, args) -> None:
        with patch("znx.cli.update_image") as update_image:
            result = runner.invoke(app, args)
        assert result.exit_code != 0
        update_image.assert_not_called()

    def test_invalid_image_name(self) -> None:
        with patch("znx.cli.update_image") as update_image:
            result = runner.invoke(app, ["update", "/dev/sdb", "no-slash"])

        assert result.exit_code == 1
        assert "Invalid image name" in result.stdout
        update_image.assert_not_called()

    def test_image_name_with_trailing_newline(self) -> None:
        with patch("znx.cli.update_image") as update_image:
            result = runner.invoke(app, ["update", "/dev/sdb", "acme/os\n"])

        assert result.exit_code == 1
        update_image.assert_not_called()


class TestCommands:
    """Commands delegate to the lifecycle and report the outcome."""

    def test_deploy(self) -> None:
        with patch("znx.cli.deploy_image", return_value=ok("Deployed acme/os")) as op:
            result = runner.invoke(
                app, ["deploy", "/dev/sdb", "acme/os", "/srv/os.iso"]
            )

        assert result.exit_code == 0
        assert "Deployed acme/os" in result.stdout
        ctx = op.call_args.args[0]
        assert ctx.device == "/dev/sdb"
        assert str(ctx.image) == "acme/os"
        assert op.call_args.kwargs["source"] == "/srv/os.iso"

    @pytest.mark.parametrize(
        ("command", "target"),
        [
            ("update", "znx.cli.update_image"),
            ("revert", "znx.cli.revert_image"),
            ("clean", "znx.cli.clean_image"),
            ("remove", "znx.cli.remove_image"),
        ],
    )
    def test_slot_commands(self, command, target) -> None:
        with patch(target, return_value=ok("done")) as op:
            result = runner.invoke(app, [command, "/dev/sdb", "acme/os"])

        assert result.exit_code == 0
        assert "done" in result.stdout
        assert str(op.call_args.args[0].image) == "acme/os"

    def test_init(self) -> None:
        with patch("znx.cli.init_device", return_value=ok("Initialized")) as op:
            result = runner.invoke(app, ["init", "/dev/sdb"])

        assert result.exit_code == 0
        assert op.call_args.args[0].image is None

    def test_error_exits_one(self) -> None:
        with patch(
            "znx.cli.revert_image",
            side_effect=RevertFailedError(ImageName.parse("acme/os")),
        ):
            result = runner.invoke(app, ["revert", "/dev/sdb", "acme/os"])

        assert result.exit_code == 1
        assert "no backup" in result.stdout

    def test_unmanaged_device(self) -> None:
        with patch("znx.cli.list_images", side_effect=NotManagedError("/dev/sdb")):
            result = runner.invoke(app, ["list", "/dev/sdb"])
        assert result.exit_code == 1

    def test_filesystem_error_is_reported(self) -> None:
        with patch(
            "znx.cli.remove_image",
            side_effect=PermissionError(1, "Operation not permitted"),
        ):
            result = runner.invoke(app, ["remove", "/dev/sdb", "acme/os"])

        assert result.exit_code == 1
        assert "Operation not permitted" in result.stdout
        assert not isinstance(result.exception, PermissionError)

    def test_invalid_environment_is_reported(self) -> None:
        with (
            patch.dict(os.environ, {"ZNX_UNMOUNT_RETRIES": "0"}),
            patch("znx.cli.list_images") as list_images,
        ):
            result = runner.invoke(app, ["list", "/dev/sdb"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.stdout
        assert "ZNX_UNMOUNT_RETRIES" in result.stdout
        list_images.assert_not_called()


class TestList:
    IMAGES = [
        {"name": "acme/kiosk", "state": "single"},
        {"name": "acme/os", "state": "dual"},
    ]

    def test_list(self) -> None:
        with patch("znx.cli.list_images", return_value=ok("2", images=self.IMAGES)):
            result = runner.invoke(app, ["list", "/dev/sdb"])

        assert result.exit_code == 0
        lines = result.stdout.splitlines()
        assert lines[0] == "acme/kiosk"
        assert lines[1].startswith("acme/os")
        assert "backup available" in lines[1]

    def test_list_json(self) -> None:
        with patch("znx.cli.list_images", return_value=ok("2", images=self.IMAGES)):
            result = runner.invoke(app, ["list", "/dev/sdb", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == self.IMAGES

    def test_list_empty(self) -> None:
        with patch("znx.cli.list_images", return_value=ok("0", images=[])):
            result = runner.invoke(app, ["list", "/dev/sdb"])

        assert result.exit_code == 0
        assert "No images deployed" in result.stdout


class TestCLIConfig:
    """Test CLI config command."""

    def test_config_command_shows_all_sections(self) -> None:
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Paths:" in result.stdout
        assert "Device:" in result.stdout
        assert "Operational:" in result.stdout
        assert "Timeouts (seconds):" in result.stdout
        assert "Sync engine" in result.stdout

    def test_config_json(self) -> None:
        result = runner.invoke(app, ["config", "--json"])
        assert result.exit_code == 0
        config_data = json.loads(result.stdout)
        for key in ("tmp_dir", "bootloader_dir", "zsync_bin", "log_level"):
            assert key in config_data, f"Missing key: {key}"


class TestRun:
    """The console entry point maps every failure to exit code 1."""

    def run_with(self, *args):
        with patch.object(sys, "argv", ["znx", *args]):
            with pytest.raises(SystemExit) as exc_info:
                run()
        return exc_info.value.code

    def test_success(self) -> None:
        with patch("znx.cli.clean_image", return_value=ok("Cleaned acme/os")):
            assert self.run_with("clean", "/dev/sdb", "acme/os") == 0

    def test_help(self) -> None:
        assert self.run_with("--help") == 0

    def test_missing_argument(self, capsys) -> None:
        assert self.run_with("update", "/dev/sdb") == 1
        assert "Missing argument" in capsys.readouterr().err

    def test_extra_argument(self) -> None:
        assert self.run_with("list", "/dev/sdb", "acme/os") == 1

    def test_operation_error(self) -> None:
        with patch("znx.cli.list_images", side_effect=NotManagedError("/dev/sdb")):
            assert self.run_with("list", "/dev/sdb") == 1

    def test_unexpected_os_error(self) -> None:
        with patch("znx.cli.list_images", side_effect=FileNotFoundError(2, "gone")):
            assert self.run_with("list", "/dev/sdb") == 1

    def test_signal_status_is_kept(self) -> None:
        with patch("znx.cli.list_images", side_effect=SystemExit(128 + 15)):
            assert self.run_with("list", "/dev/sdb") == 143


class TestModuleEntryPoint:
    """Test python -m znx entry point."""

    def test_module_help(self) -> None:
        result = subprocess.run(
            [sys.executable, "-m", "znx", "--help"],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0
        assert "Usage" in result.stdout

    def test_module_usage_error(self) -> None:
        result = subprocess.run(
            [sys.executable, "-m", "znx", "update"],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 1
