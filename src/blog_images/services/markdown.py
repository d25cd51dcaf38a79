"""Parsing of ``{% image "URL" ... %}`` embed tags.

A renderer finds embed tags in post source and swaps the full-size image
for its preview. The folder is the second-to-last URL path segment and
the image identity is parsed from the last one.
"""

import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple
from urllib.parse import unquote

from blog_images.config import BlogImagesConfig
from blog_images.services.images import ImageInfo, get_image_preview_url, parse_image_info

BLOG_IMAGE_RE = re.compile(r'\{%\s*image\s*"([^"]+)".*?%\}')
PREVIEW_DISPLAY_HEIGHT = "240"


@dataclass(frozen=True)
class ImageEmbed:
    """An image embed tag found in markdown source.

    Attributes:
        url: URL as written in the tag
        folder: Folder parsed from the URL
        image: Image identity parsed from the URL
        start: Offset of the tag in the source
        end: Offset just past the tag
    """

    url: str
    folder: str
    image: ImageInfo
    start: int = 0
    end: int = 0


def split_image_url(url: str) -> Optional[Tuple[str, ImageInfo]]:
    """Split an image URL into (folder, ImageInfo), or None if it is not an image."""
    slash = url.rfind("/")
    filename = unquote(url[slash + 1 :])
    folder = unquote(url[:slash][url[:slash].rfind("/") + 1 :]) if slash >= 0 else ""
    image = parse_image_info(filename)
    if image is None:
        return None
    return folder, image


def parse_image_embed(source: str, pos: int = 0) -> Optional[ImageEmbed]:
    """Parse an embed tag starting exactly at ``pos``."""
    if not source.startswith("{%", pos):
        return None
    m = BLOG_IMAGE_RE.match(source, pos)
    if not m:
        return None
    parsed = split_image_url(m.group(1))
    if parsed is None:
        return None
    folder, image = parsed
    return ImageEmbed(url=m.group(1), folder=folder, image=image, start=m.start(), end=m.end())


def find_image_embeds(source: str) -> Iterator[ImageEmbed]:
    """Yield every parseable embed tag in ``source``, in order."""
    for m in BLOG_IMAGE_RE.finditer(source):
        embed = parse_image_embed(source, m.start())
        if embed is not None:
            yield embed


def preview_attributes(embed: ImageEmbed, config: BlogImagesConfig) -> List[Tuple[str, str]]:
    """Attributes of the ``<img>`` token a renderer should emit for an embed."""
    return [
        ("src", get_image_preview_url(embed.folder, embed.image, config)),
        ("alt", ""),
        ("title", embed.image.name),
        ("height", PREVIEW_DISPLAY_HEIGHT),
    ]
