"""Shared fixtures."""

import pytest

from sheet_mirror.core.scratch import ScratchSpace

from fakes import FakeDrive, FakeSheetSource, InMemoryDestination


@pytest.fixture
def drive():
    return FakeDrive()


@pytest.fixture
def destination():
    return InMemoryDestination()


@pytest.fixture
def sheet():
    return FakeSheetSource()


@pytest.fixture
def scratch(tmp_path):
    return ScratchSpace(str(tmp_path / "scratch"))
