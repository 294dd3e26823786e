import pytest

from gatewright.component import ComponentRegistry


@pytest.fixture(autouse=True)
def clean_registries():
    ComponentRegistry._registered_names.clear()


@pytest.fixture
def site_dir(tmp_path):
    """Provide a site directory with static files, a folder and a function handler."""
    (tmp_path / "dist").mkdir()
    (tmp_path / "dist" / "index.html").write_text("<html></html>")
    (tmp_path / "dist" / "assets").mkdir()
    (tmp_path / "dist" / "assets" / "app.js").write_text("console.log('app');")
    (tmp_path / "dist" / "assets" / "style.css").write_text("body {}")
    (tmp_path / "functions").mkdir()
    (tmp_path / "functions" / "users.py").write_text("def handler(event, context):\n    ...\n")
    return tmp_path
