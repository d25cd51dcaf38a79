"""Tests for blog-images configuration management."""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from blog_images.config import (
    BlogImagesConfig,
    ConfigManager,
    ConnectionSettings,
    ensure_config_exists,
    get_config_dir,
    get_config_path,
)
from blog_images.services.s3 import ObjectStore


class TestBlogImagesConfig:
    """Tests for BlogImagesConfig class."""

    def test_default_values(self):
        config = BlogImagesConfig()

        assert config.s3_endpoint_url == ""
        assert config.region == "auto"
        assert config.force_path_style is True
        assert config.images_prefix == "images/"
        assert config.image_size_max == 2048
        assert config.preview_image_base_name_format == "%s-240"
        assert config.preview_image_height == 480

    def test_load_from_file(self, tmp_path):
        config_file = tmp_path / "config.toml"
        config_file.write_text(
            """
[s3]
endpoint_url = "https://xxx.r2.cloudflarestorage.com"
region = "us-east-1"
force_path_style = false
bucket = "my-assets"
prefix = "photos/"

[public]
url_base = "https://assets.example.cc"

[images]
size_max = 1600
preview_format = "thumb-%s"
preview_height = 320

[cache]
dir = "/custom/cache"
"""
        )

        config = BlogImagesConfig.load(config_file)

        assert config.s3_endpoint_url == "https://xxx.r2.cloudflarestorage.com"
        assert config.region == "us-east-1"
        assert config.force_path_style is False
        assert config.images_bucket == "my-assets"
        assert config.images_prefix == "photos/"
        assert config.public_url_base == "https://assets.example.cc"
        assert config.image_size_max == 1600
        assert config.preview_image_base_name_format == "thumb-%s"
        assert config.preview_image_height == 320
        assert config.cache_dir == Path("/custom/cache")

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            BlogImagesConfig.load(tmp_path / "missing.toml")

    def test_env_overrides(self, tmp_path, monkeypatch):
        config_file = tmp_path / "config.toml"
        config_file.write_text('[s3]\nbucket = "from-file"\n')
        monkeypatch.setenv("BLOG_IMAGES_BUCKET", "from-env")
        monkeypatch.setenv("BLOG_IMAGES_ACCESS_KEY_ID", "env-key")
        monkeypatch.setenv("BLOG_IMAGES_SECRET_ACCESS_KEY", "env-secret")

        config = BlogImagesConfig.load(config_file)

        assert config.images_bucket == "from-env"
        assert config.access_key_id == "env-key"
        assert config.secret_access_key == "env-secret"

    def test_save_roundtrip_omits_credentials(self, tmp_path):
        config = BlogImagesConfig(
            images_bucket="saved",
            access_key_id="secret-id",
            secret_access_key="secret",
            cache_dir=tmp_path / "cache",
        )
        path = tmp_path / "nested" / "config.toml"

        config.save(path)
        loaded = BlogImagesConfig.load(path)

        assert loaded.images_bucket == "saved"
        assert loaded.cache_dir == tmp_path / "cache"
        assert loaded.access_key_id == ""
        assert "access_key" not in path.read_text()

    def test_set_preserves_types(self):
        config = BlogImagesConfig()

        config.set("image_size_max", "1024")
        config.set("force_path_style", "false")
        config.set("cache_dir", "/tmp/c")
        config.set("images_bucket", "b")

        assert config.image_size_max == 1024
        assert config.force_path_style is False
        assert config.cache_dir == Path("/tmp/c")
        assert config.images_bucket == "b"
        assert config.get("cache_dir") == "/tmp/c"

    def test_set_invalid_key(self):
        with pytest.raises(ValueError, match="Invalid config key"):
            BlogImagesConfig().set("nonexistent", "x")

    @pytest.mark.parametrize(
        "field,value",
        [
            ("preview_image_base_name_format", "preview"),
            ("preview_image_base_name_format", "%s-%s"),
            ("images_prefix", "images"),
            ("image_size_max", 0),
            ("preview_image_height", -1),
        ],
    )
    def test_validate_rejects(self, field, value):
        config = BlogImagesConfig()
        setattr(config, field, value)

        with pytest.raises(ValueError):
            config.validate()

    def test_validate_accepts_empty_prefix(self):
        BlogImagesConfig(images_prefix="").validate()

    def test_connection_settings_compare_by_value(self):
        a = BlogImagesConfig(s3_endpoint_url="https://e", access_key_id="k")
        b = BlogImagesConfig(s3_endpoint_url="https://e", access_key_id="k", images_bucket="other")

        assert a.connection_settings() == b.connection_settings()
        assert isinstance(a.connection_settings(), ConnectionSettings)
        b.force_path_style = False
        assert a.connection_settings() != b.connection_settings()


class TestConfigPaths:
    """Tests for config path helpers."""

    @pytest.mark.skipif(sys.platform == "win32", reason="XDG paths")
    def test_xdg_config_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))

        assert get_config_dir() == tmp_path / "blog-images"
        assert get_config_path() == tmp_path / "blog-images" / "config.toml"

    @pytest.mark.skipif(sys.platform == "win32", reason="XDG paths")
    def test_ensure_config_exists_creates_default(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))

        config = ensure_config_exists()

        assert (tmp_path / "blog-images" / "config.toml").exists()
        assert config.images_prefix == "images/"

    @pytest.mark.skipif(sys.platform == "win32", reason="XDG paths")
    def test_ensure_config_exists_replaces_corrupt_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        path = tmp_path / "blog-images" / "config.toml"
        path.parent.mkdir(parents=True)
        path.write_text("this is [not toml")

        config = ensure_config_exists()

        assert config.images_bucket == BlogImagesConfig().images_bucket
        assert "[s3]" in path.read_text()


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_loads_once(self):
        loader = MagicMock(return_value=BlogImagesConfig())
        manager = ConfigManager(loader=loader)

        assert manager.get() is manager.get()
        loader.assert_called_once()

    def test_update_notifies_listeners(self):
        manager = ConfigManager(loader=BlogImagesConfig)
        original = manager.get()
        listener = MagicMock()
        manager.subscribe(listener)

        new = BlogImagesConfig(images_bucket="new")
        manager.update(new)

        listener.assert_called_once()
        old_arg, new_arg = listener.call_args.args
        assert old_arg is original
        assert new_arg.images_bucket == "new"
        assert manager.get().images_bucket == "new"

    def test_update_validates(self):
        manager = ConfigManager(loader=BlogImagesConfig)

        with pytest.raises(ValueError):
            manager.update(BlogImagesConfig(preview_image_base_name_format="none"))

    def test_reload_from_path(self, tmp_path):
        path = tmp_path / "config.toml"
        BlogImagesConfig(images_bucket="first").save(path)
        manager = ConfigManager(path=path)
        assert manager.get().images_bucket == "first"

        BlogImagesConfig(images_bucket="second").save(path)
        assert manager.reload().images_bucket == "second"

    def test_credential_change_invalidates_object_store(self):
        manager = ConfigManager(loader=lambda: BlogImagesConfig(access_key_id="old"))
        clients = []

        def factory(settings):
            clients.append(MagicMock())
            return clients[-1]

        store = ObjectStore(config_provider=manager.get, client_factory=factory)
        manager.subscribe(store.on_config_change)
        store.get_client()

        manager.update(BlogImagesConfig(access_key_id="new"))

        clients[0].close.assert_called_once()
        store.get_client()
        assert len(clients) == 2
