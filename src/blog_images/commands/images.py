"""Image commands for blog-images.

Provides CLI commands for checking the connection, listing folders and
images, uploading files and printing URLs and embed tags.
"""

import asyncio
from pathlib import Path
from typing import List

import typer
from rich.console import Console
from rich.table import Table

from blog_images.commands import load_config
from blog_images.commands.cache import get_image_cache
from blog_images.config import BlogImagesConfig
from blog_images.services.errors import ImageNotFoundError, StoreError, describe_store_error
from blog_images.services.images import (
    get_image_markdown,
    get_image_preview_url,
    get_image_url,
    list_folders,
    list_images,
    parse_image_info,
)
from blog_images.services.s3 import ObjectStore
from blog_images.services.uploads import ImageUploader, UploadStatus

console = Console()

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to config file")


def get_object_store(config: BlogImagesConfig) -> ObjectStore:
    """Get an object store client for a fixed configuration."""
    return ObjectStore(config_provider=lambda: config)


def _parse_image_or_exit(filename: str):
    image = parse_image_info(filename)
    if image is None:
        console.print(f"[red]Not an image filename: {filename}[/red]")
        raise typer.Exit(1)
    return image


def test_connection(config_path: Path = CONFIG_OPTION) -> None:
    """Check that the bucket is reachable with the configured credentials."""
    config = load_config(config_path, console)
    store = get_object_store(config)
    try:
        asyncio.run(store.test_connection())
    except StoreError as e:
        console.print(f"[red]{describe_store_error(e)}[/red]")
        raise typer.Exit(1)
    finally:
        store.close()
    console.print(f"[green]Connected to bucket {config.images_bucket}[/green]")


def show_folders(config_path: Path = CONFIG_OPTION) -> None:
    """List image folders."""
    config = load_config(config_path, console)
    store = get_object_store(config)
    try:
        folders = asyncio.run(list_folders(store))
    except StoreError as e:
        console.print(f"[red]{describe_store_error(e)}[/red]")
        raise typer.Exit(1)
    finally:
        store.close()

    if not folders:
        console.print("[yellow]No folders found[/yellow]")
        return
    for folder in folders:
        console.print(folder)


def show_images(
    folder: str = typer.Argument(..., help="Folder name"),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """List the images of a folder."""
    config = load_config(config_path, console)
    store = get_object_store(config)
    try:
        images = asyncio.run(list_images(folder, store))
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    except StoreError as e:
        console.print(f"[red]{describe_store_error(e)}[/red]")
        raise typer.Exit(1)
    finally:
        store.close()

    table = Table(title=f"Images in {folder}")
    table.add_column("Name", style="cyan")
    table.add_column("Filename")
    for image in images:
        table.add_row(image.name, image.filename)
    console.print(table)


def upload(
    folder: str = typer.Argument(..., help="Folder to upload into"),
    files: List[Path] = typer.Argument(..., help="Image files", exists=True, dir_okay=False),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Upload images as WebP originals and previews."""
    config = load_config(config_path, console)
    store = get_object_store(config)
    cache = get_image_cache(config)
    uploader = ImageUploader(store, cache=cache)
    try:
        results = asyncio.run(uploader.upload_images(folder, list(files)))
    finally:
        store.close()

    failed = 0
    for result in results:
        if result.status is UploadStatus.SUCCESS:
            console.print(f"[green]✓[/green] {result.source.name} → {folder}/{result.image.filename}")
        else:
            failed += 1
            console.print(f"[red]✗ {result.source.name}: {result.error}[/red]")

    if failed:
        raise typer.Exit(1)


def show_url(
    folder: str = typer.Argument(..., help="Folder name"),
    filename: str = typer.Argument(..., help="Image filename"),
    preview: bool = typer.Option(False, "--preview", "-p", help="Show the preview URL"),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Print the public URL of an image or its preview."""
    config = load_config(config_path, console)
    image = _parse_image_or_exit(filename)
    url = get_image_preview_url(folder, image, config) if preview else get_image_url(folder, image, config)
    typer.echo(url)


def show_markdown(
    folder: str = typer.Argument(..., help="Folder name"),
    filename: str = typer.Argument(..., help="Image filename"),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Print the embed tag for an image."""
    config = load_config(config_path, console)
    image = _parse_image_or_exit(filename)
    try:
        tag = asyncio.run(get_image_markdown(folder, image, config))
    except ImageNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    typer.echo(tag)
