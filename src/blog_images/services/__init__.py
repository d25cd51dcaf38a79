"""Services for blog-images.

Provides the object store client, image cache, uploads and embed parsing.
"""

from blog_images.services.cache import ImageCache
from blog_images.services.images import ImageInfo, parse_image_info
from blog_images.services.s3 import ObjectStore
from blog_images.services.uploads import ImageUploader

__all__ = ["ImageCache", "ImageInfo", "ImageUploader", "ObjectStore", "parse_image_info"]
