"""CLI for segner train|inspect commands."""

import logging
from pathlib import Path
from typing import Any

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from segner.config import RunConfig
from segner.errors import SegnerError
from segner.pipeline import Pipeline, corpus_statistics

app = typer.Typer()
console = Console()


def load_config(config_path: str) -> RunConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML config file

    Returns:
        RunConfig instance
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        config_dict = yaml.safe_load(f) or {}

    return RunConfig(**config_dict)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_or_exit(config_path: str) -> RunConfig:
    try:
        return load_config(config_path)
    except (FileNotFoundError, yaml.YAMLError, ValidationError) as e:
        console.print(f"[bold red]Invalid config:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1)


@app.command()
def train(
    config_path: str,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log per-epoch losses."),
) -> None:
    """Train an extractor and evaluate it."""
    _setup_logging(verbose)
    console.print(f"[bold]Loading config from {config_path}[/bold]")
    config = _load_or_exit(config_path)

    console.print(f"[bold]Embeddings:[/bold] {config.embeddings_path}")
    console.print(f"[bold]Train corpus:[/bold] {config.train_path} ({config.corpus_format})")
    console.print(f"[bold]Beta:[/bold] {config.trainer.beta}  [bold]Threads:[/bold] {config.trainer.num_threads}")

    try:
        summary = Pipeline(config).run()
    except SegnerError as e:
        console.print(f"[bold red]Training failed:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1)

    console.print(f"[bold]Labels:[/bold] {', '.join(summary['labels'])}")
    console.print(f"\n[bold]Evaluation metrics ({summary['evaluation']['split']} set):[/bold]")
    console.print(f"  {_format_metrics(summary['evaluation']['metrics'])}")

    output_path = summary.get("output_path")
    if output_path:
        console.print(f"[bold]Summary written to:[/bold] {output_path}")


@app.command()
def inspect(config_path: str) -> None:
    """Print corpus statistics without training."""
    config = _load_or_exit(config_path)
    try:
        instances = Pipeline(config).load_train()
    except SegnerError as e:
        console.print(f"[bold red]Cannot read corpus:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1)

    stats = corpus_statistics(instances)
    console.print(
        f"[bold]Sentences:[/bold] {stats['sentences']}  "
        f"[bold]Tokens:[/bold] {stats['tokens']}  "
        f"[bold]Entities:[/bold] {stats['entities']}"
    )

    table = Table("id", "label", "count")
    for label_id, (label, count) in enumerate(stats["labels"].items(), start=1):
        table.add_row(str(label_id), label, str(count))
    console.print(table)


def _format_metrics(metrics: dict[str, Any]) -> str:
    if not metrics:
        return "no metrics"
    formatted = []
    for key, value in metrics.items():
        if isinstance(value, float):
            formatted.append(f"{key}={value:.4f}")
        else:
            formatted.append(f"{key}={value}")
    return ", ".join(formatted)


if __name__ == "__main__":
    app()
