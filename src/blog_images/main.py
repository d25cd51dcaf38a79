"""Main entry point for blog-images CLI.

Provides a Typer-based CLI for managing blog images stored in an
S3-compatible bucket.
"""

import typer
from rich.console import Console
from rich.panel import Panel

from blog_images import __version__
from blog_images.commands import cache as cache_commands
from blog_images.commands import images as image_commands
from blog_images.config import ensure_config_exists, get_config_dir, get_config_path
from blog_images.logging_config import setup_logging

console = Console()

app = typer.Typer(
    name="blog-images",
    help="Manage blog images in S3-compatible storage",
    rich_markup_mode="rich",
)

# Image commands live at the top level, cache commands in a group
app.command("test-connection")(image_commands.test_connection)
app.command("folders")(image_commands.show_folders)
app.command("images")(image_commands.show_images)
app.command("upload")(image_commands.upload)
app.command("url")(image_commands.show_url)
app.command("markdown")(image_commands.show_markdown)
app.add_typer(cache_commands.app, name="cache", help="Local image cache")


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        console.print(f"blog-images version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """blog-images: manage blog images in S3-compatible storage.

    ## Getting Started

    1. Point the tool at your bucket:
       [dim]$ blog-images config set s3_endpoint_url https://<account>.r2.cloudflarestorage.com[/dim]

    2. Export credentials:
       [dim]$ export BLOG_IMAGES_ACCESS_KEY_ID=... BLOG_IMAGES_SECRET_ACCESS_KEY=...[/dim]

    3. Check the connection:
       [dim]$ blog-images test-connection[/dim]
    """
    setup_logging(get_config_dir() / "logs")


@app.command()
def config(
    action: str = typer.Argument(
        ...,
        help="Action to perform (show, set, path)",
    ),
    key: str = typer.Argument(
        None,
        help="Configuration key (for set action)",
    ),
    value: str = typer.Argument(
        None,
        help="Configuration value (for set action)",
    ),
) -> None:
    """Manage configuration.

    Examples:
        blog-images config show
        blog-images config set images_bucket my-bucket
        blog-images config path
    """
    if action == "show":
        cfg = ensure_config_exists()
        console.print(
            Panel.fit(
                f"[cyan]Endpoint:[/cyan] {cfg.s3_endpoint_url or '[not set]'}\n"
                f"[cyan]Region:[/cyan] {cfg.region}\n"
                f"[cyan]Access Key:[/cyan] {'[set]' if cfg.access_key_id else '[not set]'}\n"
                f"[cyan]Path Style:[/cyan] {cfg.force_path_style}\n"
                f"[cyan]Bucket:[/cyan] {cfg.images_bucket}\n"
                f"[cyan]Prefix:[/cyan] {cfg.images_prefix}\n"
                f"[cyan]Public URL:[/cyan] {cfg.public_url_base or '[not set]'}\n"
                f"[cyan]Max Size:[/cyan] {cfg.image_size_max}\n"
                f"[cyan]Preview Format:[/cyan] {cfg.preview_image_base_name_format}\n"
                f"[cyan]Preview Height:[/cyan] {cfg.preview_image_height}\n"
                f"[cyan]Cache Dir:[/cyan] {cfg.cache_dir}",
                title="Configuration",
                border_style="green",
            )
        )

    elif action == "set":
        if not key or value is None:
            console.print("[red]Usage: blog-images config set <key> <value>[/red]")
            raise typer.Exit(1)

        try:
            cfg = ensure_config_exists()
            cfg.set(key, value)
            cfg.validate()
            cfg.save()
            console.print(f"[green]Set {key} = {value}[/green]")
        except ValueError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1)

    elif action == "path":
        typer.echo(get_config_path())

    else:
        console.print(f"[red]Unknown action: {action}[/red]")
        console.print("Valid actions: show, set, path")
        raise typer.Exit(1)


def cli_entry() -> None:
    """Entry point for the CLI application."""
    app()


if __name__ == "__main__":
    cli_entry()
