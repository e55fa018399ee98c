#!/usr/bin/env python3
"""CLI for running a generation against a Dream Weaver server.

Usage:
    # Generate a three-scene draft
    python -m cli.generate --outline "A knight befriends a dragon" \\
        --character "Aria:brave knight" --character "Ember:shy dragon" \\
        --style fantasy --scenes 3 --preset draft

    # List quality presets
    python -m cli.generate --list-presets
"""

import argparse
import json
import os
import sys
from pathlib import Path

# Add src to path for imports
src_path = Path(__file__).parent.parent
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

import httpx
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from api.sse import iter_sse_events
from utils.cost_tracker import format_cost
from utils.logging import setup_logging

console = Console()

DEFAULT_SERVER = "http://localhost:8000"


def parse_character(value: str) -> dict:
    """Parse ``Name:traits`` into a character dict."""
    name, _, traits = value.partition(":")
    name = name.strip()
    if not name:
        raise argparse.ArgumentTypeError(f"Character needs a name: {value!r}")
    return {"name": name, "traits": traits.strip()}


def build_headers(api_key: str | None, models: dict) -> dict:
    headers = {"Accept": "text/event-stream"}
    if api_key:
        headers["x-api-key"] = api_key
    if models:
        headers["x-model-selection"] = json.dumps(models)
    return headers


def show_result(result: dict) -> None:
    """Print the scenes table and metadata of a final snapshot."""
    table = Table(title="Generated Scenes")
    table.add_column("Scene", style="cyan")
    table.add_column("Description")
    table.add_column("Image")
    table.add_column("Attempts", justify="right")
    table.add_column("Verification")

    for scene in result.get("scenes", []):
        verification = scene.get("verification")
        if verification is None:
            status = "[dim]-[/dim]"
        elif verification.get("passed"):
            status = "[green]passed[/green]"
        else:
            status = "[yellow]needs review[/yellow]"
        image = scene.get("image_url") or f"[red]{scene.get('error', 'failed')}[/red]"
        if image.startswith("data:"):
            image = "[dim](inline)[/dim]"
        table.add_row(
            scene.get("scene_id", ""),
            scene.get("description", ""),
            image,
            str(scene.get("attempts", 0)),
            status,
        )

    console.print(table)

    metadata = result.get("metadata", {})
    console.print(
        f"[dim]Passed: {metadata.get('passed_verification', 0)}, "
        f"needs review: {metadata.get('needs_review', 0)}, "
        f"time: {metadata.get('generation_time_seconds', 0)}s, "
        f"cost: {format_cost(metadata.get('actual_cost') or 0.0)}[/dim]"
    )
    if result.get("result_id"):
        console.print(f"[dim]Result id: {result['result_id']}[/dim]")


def run_generation(server: str, payload: dict, headers: dict) -> int:
    """Stream a generation and render progress. Returns an exit code."""
    final = None
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Starting...", total=100)

        with httpx.Client(timeout=None) as client:
            with client.stream(
                "POST", f"{server.rstrip('/')}/api/generate", json=payload, headers=headers
            ) as response:
                if response.status_code != 200:
                    response.read()
                    console.print(f"[red]Error {response.status_code}: {response.text}[/red]")
                    return 1

                for event in iter_sse_events(response.iter_lines()):
                    progress.update(
                        task, completed=event.get("progress", 0), description=event.get("message", "")
                    )
                    if event.get("stage") == "error":
                        console.print(f"[red]✗ {event.get('message')}[/red]")
                        return 1
                    if event.get("stage") == "complete":
                        final = event.get("data")

    if final is None:
        console.print("[red]✗ Stream ended without a result[/red]")
        return 1

    console.print("[green]✓ Generation complete[/green]")
    show_result(final)
    return 0


def list_presets(server: str) -> int:
    response = httpx.get(f"{server.rstrip('/')}/api/presets")
    response.raise_for_status()
    data = response.json()

    table = Table(title="Quality Presets")
    table.add_column("ID", style="cyan")
    table.add_column("Attempts", justify="right")
    table.add_column("Verification")
    table.add_column("Cost", justify="right")
    table.add_column("Description")
    for preset in data["presets"]:
        verification = "skipped" if preset["skip_verification"] else f"{preset['verification_threshold']:.0%}"
        table.add_row(
            preset["id"],
            str(preset["max_attempts"]),
            verification,
            f"x{preset['cost_multiplier']}",
            preset["description"],
        )
    console.print(table)
    return 0


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Generate an illustrated anime story with a Dream Weaver server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m cli.generate --outline "A knight befriends a dragon" \\
        --character "Aria:brave knight" --scenes 3 --preset draft

    python -m cli.generate --list-presets
        """,
    )

    parser.add_argument("--outline", type=str, help="Story outline")
    parser.add_argument(
        "--character",
        type=parse_character,
        action="append",
        default=[],
        help="Character as 'Name:traits' (repeat for up to 5)",
    )
    parser.add_argument("--style", type=str, default="shounen", help="Anime style (default: shounen)")
    parser.add_argument("--scenes", type=int, default=4, help="Number of scenes, 1-10 (default: 4)")
    parser.add_argument(
        "--preset",
        type=str,
        default="standard",
        choices=["draft", "standard", "premium"],
        help="Quality preset (default: standard)",
    )
    parser.add_argument("--comic", action="store_true", help="Render dialogue inside images")
    parser.add_argument("--text-model", type=str, help="Override the story model")
    parser.add_argument("--image-model", type=str, help="Override the image model")
    parser.add_argument("--verification-model", type=str, help="Override the verification model")
    parser.add_argument(
        "--api-key",
        type=str,
        default=os.getenv("OPENROUTER_API_KEY"),
        help="OpenRouter API key (default: $OPENROUTER_API_KEY)",
    )
    parser.add_argument(
        "--server",
        type=str,
        default=os.getenv("DREAM_WEAVER_SERVER", DEFAULT_SERVER),
        help=f"Server URL (default: {DEFAULT_SERVER})",
    )
    parser.add_argument("--list-presets", action="store_true", help="Show quality presets")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    setup_logging("DEBUG" if args.verbose else "WARNING")

    try:
        if args.list_presets:
            sys.exit(list_presets(args.server))

        if not args.outline or not args.character:
            console.print("[red]Error: --outline and at least one --character are required[/red]")
            parser.print_help()
            sys.exit(1)

        if not 1 <= args.scenes <= 10:
            console.print("[red]Error: --scenes must be between 1 and 10[/red]")
            sys.exit(1)

        payload = {
            "outline": args.outline,
            "characters": args.character[:5],
            "style": args.style,
            "scene_count": args.scenes,
            "comic_mode": args.comic,
            "quality_preset": args.preset,
        }
        models = {
            key: value
            for key, value in {
                "textModel": args.text_model,
                "imageModel": args.image_model,
                "verificationModel": args.verification_model,
            }.items()
            if value
        }
        sys.exit(run_generation(args.server, payload, build_headers(args.api_key, models)))
    except httpx.HTTPError as e:
        console.print(f"[red]Error: cannot reach {args.server}: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
