"""Upload local images as WebP originals and previews."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

from blog_images.services.cache import ImageCache
from blog_images.services.errors import ImageParseError, StoreError, describe_store_error
from blog_images.services.images import (
    ImageInfo,
    get_image_filename,
    get_image_key,
    get_preview_image_key,
    parse_image_info,
    validate_folder,
)
from blog_images.services.s3 import ObjectStore
from blog_images.services.transcoder import ImageTranscoder, PillowTranscoder

logger = logging.getLogger(__name__)

WEBP_CONTENT_TYPE = "image/webp"


class UploadStatus(str, Enum):
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


@dataclass
class UploadResult:
    """Outcome of uploading one source file.

    Attributes:
        source: Local file that was uploaded
        status: SUCCESS or ERROR
        image: Identity of the uploaded image (on success)
        error: Error message (on failure)
    """

    source: Path
    status: UploadStatus
    image: Optional[ImageInfo] = None
    error: Optional[str] = None


class ImageUploader:
    """Transcode local images and write them to the bucket.

    Attributes:
        store: Object store client
        cache: Optional cache seeded with every uploaded original
        transcoder: WebP transcoder
    """

    def __init__(
        self,
        store: ObjectStore,
        cache: Optional[ImageCache] = None,
        transcoder: Optional[ImageTranscoder] = None,
    ):
        self.store = store
        self.cache = cache
        self.transcoder = transcoder or PillowTranscoder()

    async def upload_image(self, folder: str, source: Path) -> ImageInfo:
        """Upload one image and its preview.

        Raises:
            ImageParseError: If no image name can be derived from ``source``
            StoreError: If writing to the bucket fails
        """
        validate_folder(folder)
        parsed = parse_image_info(source.name)
        if parsed is None:
            raise ImageParseError(f"Cannot parse image name: {source.name}")

        config = self.store.config
        loop = asyncio.get_running_loop()
        converted = await loop.run_in_executor(
            None,
            self.transcoder.transcode,
            source,
            config.image_size_max,
            config.preview_image_height,
        )

        image = ImageInfo(
            filename=get_image_filename(parsed.name, converted.image_size),
            name=parsed.name,
        )
        await self.store.write_object(
            config.images_bucket,
            get_image_key(folder, image, config),
            converted.image,
            WEBP_CONTENT_TYPE,
            {"image-size": converted.image_size},
        )
        await self.store.write_object(
            config.images_bucket,
            get_preview_image_key(folder, image, config),
            converted.preview,
            WEBP_CONTENT_TYPE,
            {"image-size": converted.preview_size},
        )

        if self.cache is not None:
            try:
                await self.cache.write_through(folder, image, converted.image)
            except OSError as e:
                # Cache is best-effort once both objects are written
                logger.warning(f"Could not cache {folder}/{image.filename}: {e}")

        logger.info(f"Uploaded {source} as {folder}/{image.filename}")
        return image

    async def upload_images(self, folder: str, sources: List[Path]) -> List[UploadResult]:
        """Upload files one after another, in order.

        A failing file does not stop the batch; its error is recorded in
        the result list instead.
        """
        results = []
        for source in sources:
            try:
                image = await self.upload_image(folder, source)
                results.append(UploadResult(source=source, status=UploadStatus.SUCCESS, image=image))
            except Exception as e:
                message = describe_store_error(e) if isinstance(e, StoreError) else str(e)
                logger.error(f"Upload of {source} failed: {message}")
                results.append(UploadResult(source=source, status=UploadStatus.ERROR, error=message))
        return results
