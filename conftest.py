"""
Pytest configuration for npoverlay tests.

Provides:
- @pytest.mark.freetype marker for tests that measure or draw TrueType text
- Auto-skip of FreeType tests when Pillow was built without FreeType
"""

import pytest


def _is_freetype_available():
    """Check if Pillow has FreeType support."""
    from PIL import features

    return bool(features.check("freetype2"))


FREETYPE_AVAILABLE = _is_freetype_available()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "freetype: marks tests as requiring Pillow FreeType support (skipped if unavailable)"
    )


def pytest_collection_modifyitems(config, items):
    """Auto-skip FreeType tests when FreeType is unavailable."""
    if FREETYPE_AVAILABLE:
        return

    skip_freetype = pytest.mark.skip(reason="Pillow built without FreeType support")
    for item in items:
        if "freetype" in item.keywords:
            item.add_marker(skip_freetype)
