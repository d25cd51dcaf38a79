"""Configuration management for blog-images.

Handles loading, saving, and validating TOML configuration stored in:
- macOS: ~/.config/blog-images/config.toml
- Linux: ~/.config/blog-images/config.toml (XDG_CONFIG_HOME)
- Windows: %APPDATA%\\blog-images\\config.toml

Credentials are normally taken from the environment so they never appear
in config files:
    BLOG_IMAGES_ACCESS_KEY_ID
    BLOG_IMAGES_SECRET_ACCESS_KEY
"""

import logging
import os
import sys
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, List, Optional

import tomllib
import tomli_w

logger = logging.getLogger(__name__)

ENV_PREFIX = "BLOG_IMAGES_"


def get_config_dir() -> Path:
    """Get the platform-specific config directory.

    Returns:
        Path to the config directory for blog-images.
    """
    if sys.platform == "darwin" or sys.platform == "linux":
        xdg_config = os.environ.get("XDG_CONFIG_HOME")
        if xdg_config:
            return Path(xdg_config) / "blog-images"
        return Path.home() / ".config" / "blog-images"
    elif sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "blog-images"
        return Path.home() / "AppData" / "Roaming" / "blog-images"
    else:
        return Path.home() / ".config" / "blog-images"


def get_config_path() -> Path:
    """Get the path to the config.toml file."""
    return get_config_dir() / "config.toml"


@dataclass(frozen=True)
class ConnectionSettings:
    """Connection-affecting subset of the configuration.

    Two settings objects are equal when all fields are equal, which is
    what decides whether a cached transport client can be reused.
    """

    endpoint_url: str
    region: str
    access_key_id: str
    secret_access_key: str
    force_path_style: bool


@dataclass
class BlogImagesConfig:
    """Configuration for blog-images.

    Attributes:
        s3_endpoint_url: Custom S3-compatible endpoint (empty for AWS)
        region: Bucket region ("auto" for R2)
        access_key_id: Access key id
        secret_access_key: Secret access key
        force_path_style: Use path-style addressing
        images_bucket: Bucket holding the images
        images_prefix: Key prefix under which folders live (ends with "/")
        public_url_base: Public URL base serving the bucket
        image_size_max: Longest side of uploaded originals
        preview_image_base_name_format: Preview base name, one "%s" placeholder
        preview_image_height: Height of generated previews
        cache_dir: Local cache root
    """

    # Object store connection
    s3_endpoint_url: str = ""
    region: str = "auto"
    access_key_id: str = ""
    secret_access_key: str = ""
    force_path_style: bool = True

    # Bucket layout
    images_bucket: str = "blog-assets"
    images_prefix: str = "images/"
    public_url_base: str = ""

    # Image generation
    image_size_max: int = 2048
    preview_image_base_name_format: str = "%s-240"
    preview_image_height: int = 480

    # Local cache
    cache_dir: Path = field(default_factory=lambda: get_config_dir() / "cache")

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "BlogImagesConfig":
        """Load configuration from TOML file.

        Args:
            path: Path to config file (defaults to standard location)

        Returns:
            BlogImagesConfig instance with loaded values

        Raises:
            FileNotFoundError: If config file doesn't exist
        """
        if path is None:
            path = get_config_path()

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "rb") as f:
            data = tomllib.load(f)

        config = cls()

        if "s3" in data:
            s3 = data["s3"]
            config.s3_endpoint_url = s3.get("endpoint_url", config.s3_endpoint_url)
            config.region = s3.get("region", config.region)
            config.access_key_id = s3.get("access_key_id", config.access_key_id)
            config.secret_access_key = s3.get("secret_access_key", config.secret_access_key)
            config.force_path_style = s3.get("force_path_style", config.force_path_style)
            config.images_bucket = s3.get("bucket", config.images_bucket)
            config.images_prefix = s3.get("prefix", config.images_prefix)

        if "public" in data:
            config.public_url_base = data["public"].get("url_base", config.public_url_base)

        if "images" in data:
            images = data["images"]
            config.image_size_max = images.get("size_max", config.image_size_max)
            config.preview_image_base_name_format = images.get(
                "preview_format", config.preview_image_base_name_format
            )
            config.preview_image_height = images.get("preview_height", config.preview_image_height)

        if "cache" in data:
            cache_dir = data["cache"].get("dir")
            if cache_dir:
                config.cache_dir = Path(cache_dir)

        config.apply_env_overrides()
        return config

    def apply_env_overrides(self) -> None:
        """Override values from BLOG_IMAGES_* environment variables (takes precedence)."""
        overrides = {
            "S3_ENDPOINT_URL": "s3_endpoint_url",
            "REGION": "region",
            "ACCESS_KEY_ID": "access_key_id",
            "SECRET_ACCESS_KEY": "secret_access_key",
            "BUCKET": "images_bucket",
        }
        for env_name, attr in overrides.items():
            value = os.environ.get(f"{ENV_PREFIX}{env_name}")
            if value:
                setattr(self, attr, value)

    def save(self, path: Optional[Path] = None) -> None:
        """Save configuration to TOML file.

        Credentials are never written; supply them through the environment.

        Args:
            path: Path to save config (defaults to standard location)
        """
        if path is None:
            path = get_config_path()

        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "s3": {
                "endpoint_url": self.s3_endpoint_url,
                "region": self.region,
                "force_path_style": self.force_path_style,
                "bucket": self.images_bucket,
                "prefix": self.images_prefix,
            },
            "public": {"url_base": self.public_url_base},
            "images": {
                "size_max": self.image_size_max,
                "preview_format": self.preview_image_base_name_format,
                "preview_height": self.preview_image_height,
            },
            "cache": {"dir": str(self.cache_dir)},
        }

        with open(path, "wb") as f:
            tomli_w.dump(data, f)

    def validate(self) -> None:
        """Check field values.

        Raises:
            ValueError: If a field holds an unusable value
        """
        if self.preview_image_base_name_format.count("%s") != 1:
            raise ValueError(
                "preview_image_base_name_format must contain exactly one '%s' placeholder"
            )
        if self.images_prefix and not self.images_prefix.endswith("/"):
            raise ValueError(f"images_prefix must end with '/': {self.images_prefix}")
        if self.image_size_max <= 0 or self.preview_image_height <= 0:
            raise ValueError("Image sizes must be positive")

    def connection_settings(self) -> ConnectionSettings:
        """Project the fields that require a new transport client when changed."""
        return ConnectionSettings(
            endpoint_url=self.s3_endpoint_url,
            region=self.region,
            access_key_id=self.access_key_id,
            secret_access_key=self.secret_access_key,
            force_path_style=self.force_path_style,
        )

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get a configuration value by attribute name."""
        if not hasattr(self, key):
            return default
        value = getattr(self, key)
        if isinstance(value, Path):
            return str(value)
        return value

    def set(self, key: str, value: str) -> None:
        """Set a configuration value by attribute name, preserving its type.

        Args:
            key: Configuration key (e.g. "images_bucket")
            value: Configuration value as text
        """
        if key.startswith("_") or not hasattr(self, key):
            raise ValueError(f"Invalid config key: {key}")

        current = getattr(self, key)
        if isinstance(current, bool):
            new_value = value.lower() in ("true", "1", "yes")
        elif isinstance(current, int):
            new_value = int(value)
        elif isinstance(current, Path):
            new_value = Path(value)
        else:
            new_value = value

        setattr(self, key, new_value)


def ensure_config_exists() -> BlogImagesConfig:
    """Ensure config file exists, creating default if needed.

    Returns:
        BlogImagesConfig instance
    """
    config_path = get_config_path()

    if config_path.exists():
        try:
            return BlogImagesConfig.load(config_path)
        except (tomllib.TOMLDecodeError, ValueError) as e:
            logger.warning(f"Config at {config_path} is unreadable, recreating: {e}")

    config = BlogImagesConfig()
    config.save(config_path)
    config.apply_env_overrides()
    return config


ConfigListener = Callable[[Optional[BlogImagesConfig], BlogImagesConfig], None]


class ConfigManager:
    """Process-wide holder of the current configuration.

    The configuration is loaded lazily and cached. ``update`` and
    ``reload`` replace it and notify every subscribed listener with the
    previous and the new configuration.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        loader: Optional[Callable[[], BlogImagesConfig]] = None,
    ):
        self.path = path
        self._loader = loader
        self._config: Optional[BlogImagesConfig] = None
        self._listeners: List[ConfigListener] = []
        self._lock = threading.Lock()

    def _load(self) -> BlogImagesConfig:
        if self._loader is not None:
            return self._loader()
        if self.path is not None:
            return BlogImagesConfig.load(self.path)
        return ensure_config_exists()

    def get(self) -> BlogImagesConfig:
        """Return the cached configuration, loading it on first use."""
        with self._lock:
            if self._config is None:
                self._config = self._load()
            return self._config

    def subscribe(self, listener: ConfigListener) -> None:
        """Register a callback invoked with ``(old, new)`` after every change."""
        self._listeners.append(listener)

    def update(self, config: BlogImagesConfig) -> None:
        """Replace the configuration and notify listeners."""
        config.validate()
        with self._lock:
            old = self._config
            self._config = replace(config)
        self._notify(old, self._config)

    def reload(self) -> BlogImagesConfig:
        """Drop the cached configuration, load it again and notify listeners."""
        with self._lock:
            old = self._config
            self._config = self._load()
            new = self._config
        self._notify(old, new)
        return new

    def _notify(self, old: Optional[BlogImagesConfig], new: BlogImagesConfig) -> None:
        for listener in list(self._listeners):
            listener(old, new)
