"""
Tests for external command invocation and scratch space cleanup.
"""

import asyncio
import sys

import pytest

from external_tools import ExternalToolError, ScratchSpace, run_command, unique_name


def test_unique_names_differ():
    assert unique_name("page", ".png") != unique_name("page", ".png")
    assert unique_name("page", ".png").endswith(".png")


def test_run_command_returns_stdout():
    output = asyncio.run(run_command([sys.executable, "-c", "print('ok')"], timeout=30))
    assert output.strip() == b"ok"


def test_run_command_missing_program():
    with pytest.raises(ExternalToolError):
        asyncio.run(run_command(["definitely-not-an-installed-tool-4711"], timeout=5))


def test_run_command_nonzero_exit():
    with pytest.raises(ExternalToolError, match="exited with code 3"):
        asyncio.run(run_command([sys.executable, "-c", "import sys; sys.exit(3)"], timeout=30))


def test_run_command_timeout():
    with pytest.raises(ExternalToolError, match="timed out"):
        asyncio.run(run_command([sys.executable, "-c", "import time; time.sleep(10)"], timeout=0.5))


def test_scratch_space_removes_files_on_error():
    with pytest.raises(ValueError):
        with ScratchSpace("test") as scratch:
            path = scratch.write_bytes(b"data", "source", ".pdf")
            directory = scratch.directory
            assert path.exists()
            raise ValueError("boom")

    assert not path.exists()
    assert not directory.exists()


def test_scratch_space_requires_scope():
    with pytest.raises(RuntimeError):
        ScratchSpace().path("x", ".png")
