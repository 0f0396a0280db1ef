"""Pytest configuration and fixtures."""

import string

import pytest


@pytest.fixture
def lettered_groups():
    """17 selectable groups labeled A..Q, in display order."""
    from whatsapp_tagbot.core import SelectableItem
    return [
        SelectableItem(id=f"{1000 + i}@g.us", label=letter)
        for i, letter in enumerate(string.ascii_uppercase[:17])
    ]


@pytest.fixture
def settings_file(tmp_path):
    """Path for a settings file that does not exist yet."""
    return tmp_path / "config.json"
