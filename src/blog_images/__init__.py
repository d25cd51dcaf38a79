"""Blog Images - folder-organized blog images in S3-compatible storage.

This package provides tools for:
- Listing image folders and images in a bucket
- Uploading WebP originals and previews
- Caching images locally with age-based eviction
"""

__version__ = "0.1.0"
