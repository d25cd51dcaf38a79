"""Image identity, bucket keys and public URLs.

Images live at ``{images_prefix}{folder}/{filename}`` in the bucket. An
uploaded original is named ``{name}.{WIDTHxHEIGHT}.webp``; its preview is
named after ``preview_image_base_name_format`` with ``%s`` replaced by the
image name, plus ``.webp``.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import quote

import httpx

from blog_images.config import BlogImagesConfig
from blog_images.services.errors import ImageNotFoundError
from blog_images.services.s3 import ObjectStore
from blog_images.services.transcoder import read_image_size

logger = logging.getLogger(__name__)

IMAGE_FILENAME_PATTERN = re.compile(r"^(.*?)(?:\.(\d+x\d+))?\.[^.]+$")
FOLDER_PREFIX_PATTERN = re.compile(r"^.*/([^/]+)/$")
FOLDER_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")

MAX_LISTED_IMAGES = 20000
FETCH_TIMEOUT_SECONDS = 30.0
PREVIEW_SUFFIX = ".webp"


@dataclass(frozen=True)
class ImageInfo:
    """One logical image within a folder.

    Attributes:
        filename: Object basename, including size tag and extension
        name: Base name with size tag and extension stripped
    """

    filename: str
    name: str


def basename(path: str) -> str:
    return path[path.rfind("/") + 1 :]


def parse_image_info(filename: str) -> Optional[ImageInfo]:
    """Parse a key, path or basename into an ImageInfo.

    Returns:
        ImageInfo, or None if the basename has no extension-delimited name
    """
    m = IMAGE_FILENAME_PATTERN.match(basename(filename))
    if not m or not m.group(1):
        return None
    return ImageInfo(filename=m.group(0), name=m.group(1))


def parse_size_tag(filename: str) -> Optional[str]:
    """Return the embedded "WIDTHxHEIGHT" tag of a filename, if any."""
    m = IMAGE_FILENAME_PATTERN.match(basename(filename))
    return m.group(2) if m else None


def is_valid_folder(folder: str) -> bool:
    return bool(FOLDER_NAME_PATTERN.match(folder))


def validate_folder(folder: str) -> str:
    """Raise ValueError unless ``folder`` is a usable folder name."""
    if not is_valid_folder(folder):
        raise ValueError(f"Invalid folder name: {folder!r}")
    return folder


def get_image_filename(name: str, size: str) -> str:
    return f"{name}.{size}.webp"


def get_preview_base_name(name: str, config: BlogImagesConfig) -> str:
    return config.preview_image_base_name_format.replace("%s", name)


def get_image_key(folder: str, image: ImageInfo, config: BlogImagesConfig) -> str:
    return f"{config.images_prefix}{folder}/{image.filename}"


def get_preview_image_key(folder: str, image: ImageInfo, config: BlogImagesConfig) -> str:
    return f"{config.images_prefix}{folder}/{get_preview_base_name(image.name, config)}{PREVIEW_SUFFIX}"


def _public_url(config: BlogImagesConfig, folder: str, filename: str) -> str:
    prefix = quote(config.images_prefix, safe="/")
    return (
        f"{config.public_url_base.rstrip('/')}/{prefix}"
        f"{quote(folder, safe='')}/{quote(filename, safe='')}"
    )


def get_image_url(folder: str, image: ImageInfo, config: BlogImagesConfig) -> str:
    """Public URL of the original image."""
    return _public_url(config, folder, image.filename)


def get_image_preview_url(folder: str, image: ImageInfo, config: BlogImagesConfig) -> str:
    """Public URL of the image preview."""
    return _public_url(config, folder, get_preview_base_name(image.name, config) + PREVIEW_SUFFIX)


def preview_key_pattern(config: BlogImagesConfig) -> re.Pattern:
    """Regex matching keys of previews, so listings can skip them."""
    escaped = re.escape(config.preview_image_base_name_format).replace(re.escape("%s"), ".*")
    return re.compile("^.*/" + escaped + re.escape(PREVIEW_SUFFIX) + "$")


async def list_images(folder: str, store: ObjectStore) -> List[ImageInfo]:
    """List the original images of a folder, sorted by name.

    Previews and keys that do not parse as images are skipped.
    """
    config = store.config
    validate_folder(folder)
    keys = await store.list_keys(
        config.images_bucket, f"{config.images_prefix}{folder}/", MAX_LISTED_IMAGES
    )
    previews = preview_key_pattern(config)

    images = []
    for key in keys:
        if previews.match(key):
            continue
        image = parse_image_info(key)
        if image is None:
            logger.debug(f"Skipping unparseable key: {key}")
            continue
        images.append(image)

    return sorted(images, key=lambda i: i.name)


async def list_folders(store: ObjectStore) -> List[str]:
    """List folder names under the images prefix."""
    config = store.config
    prefixes = await store.list_directories(config.images_bucket, config.images_prefix)

    folders = []
    for prefix in prefixes:
        m = FOLDER_PREFIX_PATTERN.match(prefix)
        name = m.group(1) if m else prefix.rstrip("/")
        if is_valid_folder(name):
            folders.append(name)
        else:
            logger.debug(f"Skipping folder with invalid name: {prefix}")
    return folders


async def fetch_public_image(url: str, http_client: Optional[httpx.AsyncClient] = None) -> bytes:
    """Download an image from its public URL.

    Raises:
        ImageNotFoundError: On an HTTP error status or a transport failure
    """
    try:
        if http_client is not None:
            response = await http_client.get(url)
        else:
            async with httpx.AsyncClient(follow_redirects=True, timeout=FETCH_TIMEOUT_SECONDS) as client:
                response = await client.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise ImageNotFoundError(url, e.response.status_code) from e
    except httpx.RequestError as e:
        raise ImageNotFoundError(url) from e
    return response.content


async def get_image_size(
    folder: str,
    image: ImageInfo,
    config: BlogImagesConfig,
    http_client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Return "WIDTHxHEIGHT" from the filename, or by downloading the original.

    Raises:
        ImageNotFoundError: If the original cannot be downloaded
    """
    size = parse_size_tag(image.filename)
    if size:
        return size

    data = await fetch_public_image(get_image_url(folder, image, config), http_client)
    return read_image_size(data)


async def get_image_markdown(
    folder: str,
    image: ImageInfo,
    config: BlogImagesConfig,
    http_client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Embed tag for an image: ``{% image "URL", "WxH" %}``."""
    size = await get_image_size(folder, image, config, http_client)
    return f'{{% image "{get_image_url(folder, image, config)}", "{size}" %}}'
