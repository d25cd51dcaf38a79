"""Cache commands for blog-images."""

import asyncio
from pathlib import Path

import typer
from rich.console import Console

from blog_images.commands import load_config
from blog_images.config import BlogImagesConfig
from blog_images.services.cache import ImageCache
from blog_images.services.errors import ImageNotFoundError
from blog_images.services.images import parse_image_info

console = Console()
app = typer.Typer(help="Local image cache")

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to config file")


def get_image_cache(config: BlogImagesConfig) -> ImageCache:
    """Get an initialized image cache rooted at the configured cache directory."""
    cache = ImageCache(config.cache_dir, config_provider=lambda: config)
    cache.initialize()
    return cache


@app.command("get")
def get_cached(
    folder: str = typer.Argument(..., help="Folder name"),
    filename: str = typer.Argument(..., help="Image filename"),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Print the local path of an image, downloading it if needed."""
    config = load_config(config_path, console)
    image = parse_image_info(filename)
    if image is None:
        console.print(f"[red]Not an image filename: {filename}[/red]")
        raise typer.Exit(1)

    cache = get_image_cache(config)
    try:
        path = asyncio.run(cache.get_cached_path(folder, image))
    except (ImageNotFoundError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    typer.echo(str(path))


@app.command("sweep")
def sweep(config_path: Path = CONFIG_OPTION) -> None:
    """Remove cached images older than 30 days."""
    config = load_config(config_path, console)
    cache = get_image_cache(config)
    empty = asyncio.run(cache.sweep())
    if empty:
        console.print(f"[green]Cache at {config.cache_dir} is empty[/green]")
    else:
        console.print(f"[green]Swept cache at {config.cache_dir}[/green]")
