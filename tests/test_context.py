"""Tests for context.py and the shared types."""

from pathlib import Path

import pytest

from znx.config import Settings
from znx.context import CommandContext
from znx.images.naming import ImageName, InvalidImageNameError
from znx.types import OperationResult, SlotState


class TestCommandContext:
    def test_create_parses_image(self) -> None:
        ctx = CommandContext.create("/dev/sdb", "acme/os", settings=Settings())
        assert ctx.image == ImageName("acme", "os")
        assert ctx.require_image() == ImageName("acme", "os")

    def test_create_without_image(self) -> None:
        ctx = CommandContext.create("/dev/sdb")
        assert ctx.image is None
        with pytest.raises(RuntimeError):
            ctx.require_image()

    def test_create_rejects_bad_name(self) -> None:
        with pytest.raises(InvalidImageNameError):
            CommandContext.create("/dev/sdb", "acme/os/extra")

    def test_mount_dir_binds_once(self) -> None:
        ctx = CommandContext.create("/dev/sdb")
        assert ctx.is_bound is False
        with pytest.raises(RuntimeError):
            _ = ctx.mount_dir

        ctx.bind_mount(Path("/tmp/znx-1"))
        assert ctx.is_bound is True
        assert ctx.mount_dir == Path("/tmp/znx-1")

        with pytest.raises(RuntimeError):
            ctx.bind_mount(Path("/tmp/znx-2"))
        assert ctx.mount_dir == Path("/tmp/znx-1")


class TestTypes:
    def test_slot_state_values(self) -> None:
        assert SlotState.DUAL_GEN.value == "dual"
        assert SlotState("single") is SlotState.SINGLE_GEN

    def test_operation_result_defaults(self) -> None:
        result = OperationResult(success=True, message="ok")
        assert result.code is None
        assert result.details == {}
