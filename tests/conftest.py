"""
Test Configuration
==================

Pytest configuration with fixtures for all test types.
Provides test settings, mocked network collaborators and test components.
"""

import os

# Must be set before the application modules read their settings
os.environ.setdefault("OG_IMAGE_ENVIRONMENT", "testing")
os.environ.setdefault("OG_IMAGE_FETCH_BASE_FONT_ON_STARTUP", "false")
os.environ.setdefault("OG_IMAGE_LOG_LEVEL", "DEBUG")

import shutil
import tempfile
from pathlib import Path
from typing import Generator
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from pydantic_settings import SettingsConfigDict

import src.config.settings as settings_module
from src.config.settings import Settings
from src.core.assets.cache import AssetCache
from src.core.assets.emoji import EmojiLoader
from src.core.assets.fonts import reset_base_font
from src.core.assets.google_fonts import GoogleFontsClient
from src.core.components import TemplateComponent
from src.core.rendering.layout import BasicLayoutEngine
from src.core.rendering.pipeline import RenderPipeline
from src.models.schemas import FontDescriptor

from tests.utils.fonts import build_box_font
from tests.utils.mocks import FakeRasterizer

FAKE_FONT_BYTES = b"\x00\x01\x00\x00fake-truetype"


# Test settings override
class TestSettings(Settings):
    """Test-specific settings."""

    environment: str = "testing"
    debug: bool = True
    fetch_base_font_on_startup: bool = False
    log_level: str = "DEBUG"

    model_config = SettingsConfigDict(env_file=".env.test", env_prefix="OG_IMAGE_")


@pytest.fixture(scope="session")
def temp_dir() -> Generator[Path, None, None]:
    """Create temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp(prefix="og_image_test_"))
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture(scope="session")
def test_settings(temp_dir: Path) -> TestSettings:
    """Test settings fixture with a placeholder base font on disk."""
    base_font_path = temp_dir / "base-font.ttf"
    base_font_path.write_bytes(FAKE_FONT_BYTES)
    return TestSettings(base_font_path=base_font_path)


@pytest.fixture(scope="session", autouse=True)
def override_settings(test_settings: TestSettings):
    """Override application settings for testing."""
    previous = settings_module.settings
    settings_module.settings = test_settings
    yield test_settings
    settings_module.settings = previous


@pytest.fixture(autouse=True)
def fresh_base_font():
    """Forget the loaded base font between tests."""
    reset_base_font()
    yield
    reset_base_font()


@pytest.fixture
def asset_cache() -> AssetCache:
    """Empty asset cache."""
    return AssetCache(dedupe_inflight=True)


@pytest.fixture
def mock_fonts_client() -> AsyncMock:
    """Google Fonts client that never touches the network."""
    client = AsyncMock(spec=GoogleFontsClient)
    client.load_font.return_value = b"fetched-font-bytes"
    return client


@pytest.fixture
def mock_emoji_loader() -> AsyncMock:
    """Emoji loader that never touches the network."""
    loader = AsyncMock(spec=EmojiLoader)
    loader.load_data_uri.return_value = "data:image/svg+xml;base64,PHN2Zy8+"
    return loader


@pytest.fixture
def fake_rasterizer() -> FakeRasterizer:
    return FakeRasterizer()


@pytest.fixture
def render_pipeline(
    test_settings: TestSettings,
    fake_rasterizer: FakeRasterizer,
    asset_cache: AssetCache,
    mock_fonts_client: AsyncMock,
    mock_emoji_loader: AsyncMock,
) -> RenderPipeline:
    """Render pipeline with real layout and mocked network/rasterizer."""
    return RenderPipeline(
        layout_engine=BasicLayoutEngine(),
        rasterizer=fake_rasterizer,
        cache=asset_cache,
        fonts_client=mock_fonts_client,
        emoji_loader=mock_emoji_loader,
        settings=test_settings,
    )


@pytest.fixture
def message_component() -> TemplateComponent:
    """Minimal component showing a message."""
    return TemplateComponent(
        '<div class="box"><p class="message">{{ text }}</p></div>',
        ".box { background: #111; padding: 40px; } .message { font-size: 48px; color: #eee; }",
        defaults={"text": "Hello"},
        name="message",
    )


@pytest.fixture
def custom_font() -> FontDescriptor:
    return FontDescriptor(name="Custom", data=FAKE_FONT_BYTES, weight=400, style="normal")


@pytest.fixture
def outline_font() -> FontDescriptor:
    """Parseable font covering the characters of "Hello, world!"."""
    return FontDescriptor(
        name="Box", data=build_box_font("Helo,wrd!"), weight=400, style="normal"
    )


@pytest.fixture
def fastapi_client(render_pipeline: RenderPipeline) -> Generator[TestClient, None, None]:
    """FastAPI test client rendering through the mocked pipeline."""
    import src.core.rendering.pipeline as pipeline_module
    from src.api.main import app

    previous = pipeline_module._render_pipeline
    pipeline_module._render_pipeline = render_pipeline
    with TestClient(app) as client:
        yield client
    pipeline_module._render_pipeline = previous


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: tests exercising the HTTP API")
