"""Tests for the blog-images CLI."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from blog_images import __version__
from blog_images.config import BlogImagesConfig
from blog_images.main import app
from blog_images.services.errors import (
    AuthError,
    FatalStoreError,
    NetworkUnreachableError,
)
from blog_images.services.images import ImageInfo
from blog_images.services.s3 import ObjectStore
from blog_images.services.uploads import UploadResult, UploadStatus

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path):
    """Saved config with a public URL base and a temporary cache."""
    path = tmp_path / "config.toml"
    BlogImagesConfig(
        s3_endpoint_url="https://account.r2.example.com",
        public_url_base="https://assets.example.cc",
        cache_dir=tmp_path / "cache",
    ).save(path)
    return path


@pytest.fixture
def mock_s3():
    client = MagicMock()
    client.list_objects_v2.return_value = {}
    return client


@pytest.fixture
def patched_store(mock_s3):
    """Make CLI commands use an ObjectStore backed by a mocked S3 client."""

    def build(config):
        return ObjectStore(config_provider=lambda: config, client_factory=lambda settings: mock_s3)

    with patch("blog_images.commands.images.get_object_store", side_effect=build):
        yield mock_s3


class TestGeneral:
    """Tests for top-level options and config command."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_config_path(self, tmp_path):
        result = runner.invoke(app, ["config", "path"])

        assert result.exit_code == 0
        assert "config.toml" in result.stdout

    def test_config_set_and_show(self, tmp_path):
        result = runner.invoke(app, ["config", "set", "images_bucket", "my-photos"])
        assert result.exit_code == 0

        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "my-photos" in result.stdout

    def test_config_set_rejects_bad_preview_format(self):
        result = runner.invoke(app, ["config", "set", "preview_image_base_name_format", "nope"])

        assert result.exit_code == 1
        assert "placeholder" in result.stdout

    def test_unknown_config_action(self):
        result = runner.invoke(app, ["config", "frobnicate"])

        assert result.exit_code == 1

    def test_session_log_written(self, tmp_path):
        runner.invoke(app, ["config", "path"])

        assert (tmp_path / "xdg" / "blog-images" / "logs" / "blog_images.log").exists()


class TestUrlCommands:
    """Tests for url and markdown commands."""

    def test_preview_url(self, config_file):
        result = runner.invoke(app, ["url", "trip", "beach.800x600.webp", "--preview", "-c", str(config_file)])

        assert result.exit_code == 0
        assert result.stdout.strip() == "https://assets.example.cc/images/trip/beach-240.webp"

    def test_image_url(self, config_file):
        result = runner.invoke(app, ["url", "trip", "beach.800x600.webp", "-c", str(config_file)])

        assert result.stdout.strip() == "https://assets.example.cc/images/trip/beach.800x600.webp"

    def test_unparseable_filename(self, config_file):
        result = runner.invoke(app, ["url", "trip", "noextension", "-c", str(config_file)])

        assert result.exit_code == 1

    def test_markdown_with_size_tag(self, config_file):
        result = runner.invoke(app, ["markdown", "trip", "beach.800x600.webp", "-c", str(config_file)])

        assert result.exit_code == 0
        assert result.stdout.strip() == (
            '{% image "https://assets.example.cc/images/trip/beach.800x600.webp", "800x600" %}'
        )

    def test_missing_config_file(self, tmp_path):
        result = runner.invoke(app, ["url", "trip", "a.webp", "-c", str(tmp_path / "none.toml")])

        assert result.exit_code == 1
        assert "Config file not found" in result.stdout


class TestStoreCommands:
    """Tests for commands that talk to the bucket."""

    def test_test_connection_success(self, config_file, patched_store):
        result = runner.invoke(app, ["test-connection", "-c", str(config_file)])

        assert result.exit_code == 0
        assert "Connected" in result.stdout

    @pytest.mark.parametrize(
        "error,expected",
        [
            (AuthError("Authentication failed. Please check your access credentials."), "Authentication failed"),
            (NetworkUnreachableError("down", endpoint="https://account.r2.example.com"), "account.r2.example.com"),
            (FatalStoreError("Connection test failed: boom", code="NoSuchBucket", http_status=404), "NoSuchBucket"),
        ],
    )
    def test_test_connection_failures(self, config_file, error, expected):
        store = MagicMock()
        store.test_connection = AsyncMock(side_effect=error)

        with patch("blog_images.commands.images.get_object_store", return_value=store):
            result = runner.invoke(app, ["test-connection", "-c", str(config_file)])

        assert result.exit_code == 1
        assert expected in result.stdout
        store.close.assert_called_once()

    def test_unreachable_endpoint_named_once(self, config_file):
        store = MagicMock()
        store.test_connection = AsyncMock(
            side_effect=NetworkUnreachableError("down", endpoint="https://account.r2.example.com")
        )

        with patch("blog_images.commands.images.get_object_store", return_value=store):
            result = runner.invoke(app, ["test-connection", "-c", str(config_file)])

        assert result.exit_code == 1
        assert result.stdout.count("account.r2.example.com") == 1

    def test_malformed_endpoint_reported(self, tmp_path):
        path = tmp_path / "bad.toml"
        BlogImagesConfig(s3_endpoint_url="r2.example.com", cache_dir=tmp_path / "cache").save(path)

        result = runner.invoke(app, ["test-connection", "-c", str(path)])

        assert result.exit_code == 1
        assert not isinstance(result.exception, ValueError)
        assert "Cannot connect to endpoint: r2.example.com" in " ".join(result.stdout.split())

    def test_folders(self, config_file, patched_store):
        patched_store.list_objects_v2.return_value = {
            "CommonPrefixes": [{"Prefix": "images/alps/"}, {"Prefix": "images/trip/"}]
        }

        result = runner.invoke(app, ["folders", "-c", str(config_file)])

        assert result.exit_code == 0
        assert "alps" in result.stdout
        assert "trip" in result.stdout

    def test_images(self, config_file, patched_store):
        patched_store.list_objects_v2.return_value = {
            "Contents": [{"Key": "images/trip/beach.800x600.webp"}, {"Key": "images/trip/beach-240.webp"}]
        }

        result = runner.invoke(app, ["images", "trip", "-c", str(config_file)])

        assert result.exit_code == 0
        assert "beach.800x600.webp" in result.stdout
        assert "beach-240.webp" not in result.stdout

    def test_images_invalid_folder(self, config_file, patched_store):
        result = runner.invoke(app, ["images", "not/valid", "-c", str(config_file)])

        assert result.exit_code == 1
        assert "Invalid folder name" in result.stdout

    def test_upload_reports_each_file(self, config_file, tmp_path):
        good = tmp_path / "beach.jpg"
        bad = tmp_path / "broken.jpg"
        good.write_bytes(b"x")
        bad.write_bytes(b"x")
        uploader = MagicMock()
        uploader.upload_images = AsyncMock(
            return_value=[
                UploadResult(
                    source=good,
                    status=UploadStatus.SUCCESS,
                    image=ImageInfo(filename="beach.800x600.webp", name="beach"),
                ),
                UploadResult(source=bad, status=UploadStatus.ERROR, error="cannot identify image file"),
            ]
        )

        with patch("blog_images.commands.images.ImageUploader", return_value=uploader):
            result = runner.invoke(app, ["upload", "trip", str(good), str(bad), "-c", str(config_file)])

        assert result.exit_code == 1
        assert "beach.800x600.webp" in result.stdout
        assert "cannot identify image file" in result.stdout
        folder, sources = uploader.upload_images.call_args.args
        assert folder == "trip"
        assert sources == [good, bad]


class TestCacheCommands:
    """Tests for cache commands."""

    def test_sweep_empty_cache(self, config_file, tmp_path):
        result = runner.invoke(app, ["cache", "sweep", "-c", str(config_file)])

        assert result.exit_code == 0
        assert (tmp_path / "cache").is_dir()
        assert "empty" in result.stdout

    def test_get_cached_hit(self, config_file, tmp_path):
        cached = tmp_path / "cache" / "trip" / "beach.webp"
        cached.parent.mkdir(parents=True)
        cached.write_bytes(b"webp")

        result = runner.invoke(app, ["cache", "get", "trip", "beach.800x600.webp", "-c", str(config_file)])

        assert result.exit_code == 0
        assert Path(result.stdout.strip()) == cached
