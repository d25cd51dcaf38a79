"""CLI command groups for blog-images."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from blog_images.config import BlogImagesConfig, ensure_config_exists


def load_config(config_path: Optional[Path], console: Console) -> BlogImagesConfig:
    """Load config from ``config_path`` or the standard location, exiting on error."""
    try:
        config = BlogImagesConfig.load(config_path) if config_path else ensure_config_exists()
        config.validate()
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {config_path}[/red]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(1)
    return config
