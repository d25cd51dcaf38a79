"""Shared fixtures for blog-images tests."""

from unittest.mock import MagicMock

import pytest

from blog_images.config import BlogImagesConfig
from blog_images.services.s3 import ObjectStore


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture(autouse=True)
def isolated_config_home(tmp_path, monkeypatch):
    """Keep config files and logs out of the real home directory."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for name in ("S3_ENDPOINT_URL", "REGION", "ACCESS_KEY_ID", "SECRET_ACCESS_KEY", "BUCKET"):
        monkeypatch.delenv(f"BLOG_IMAGES_{name}", raising=False)


@pytest.fixture
def config(tmp_path):
    """Configuration pointing at a fake R2 endpoint."""
    return BlogImagesConfig(
        s3_endpoint_url="https://account.r2.example.com",
        access_key_id="test-access-key",
        secret_access_key="test-secret-key",
        images_bucket="blog-assets",
        images_prefix="images/",
        public_url_base="https://assets.example.cc",
        cache_dir=tmp_path / "cache",
    )


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def mock_s3():
    """Mocked boto3 S3 client."""
    client = MagicMock()
    client.list_objects_v2.return_value = {}
    client.put_object.return_value = {}
    return client


@pytest.fixture
def store(config, mock_s3, recording_sleep):
    """ObjectStore wired to the mocked S3 client."""
    return ObjectStore(
        config_provider=lambda: config,
        client_factory=lambda settings: mock_s3,
        sleep=recording_sleep,
    )
