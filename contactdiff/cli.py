"""
Command-line interface for contactdiff
"""

import json
import sys
from pathlib import Path
from typing import Optional

import click
import numpy as np
import pandas as pd

from . import __version__, check_dependencies, get_info
from .config import Config, get_default_config, load_config, save_config
from .core import ContactDiffAnalysis
from .utils import save_table, setup_logging


class CLIContext:
    def __init__(self):
        self.config_file: Optional[Path] = None
        self.config: Optional[Config] = None
        self.verbose: bool = False
        self.quiet: bool = False

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.verbose else "WARNING" if self.quiet else "INFO"


@click.group()
@click.version_option(__version__)
@click.option(
    "--config", "-c", type=click.Path(exists=True), help="Configuration file path"
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--quiet", "-q", is_flag=True, help="Enable quiet mode (minimal output)")
@click.pass_context
def main(ctx, config, verbose, quiet):
    """
    contactdiff: differential analysis of two chromatin contact maps

    Fits robust negative-binomial dependency models between corresponding
    cells of two contact maps and reports cells and regions that deviate
    significantly from them.
    """
    cli_ctx = CLIContext()
    cli_ctx.verbose = verbose
    cli_ctx.quiet = quiet

    setup_logging(level=cli_ctx.log_level)

    if config:
        cli_ctx.config_file = Path(config)
        cli_ctx.config = load_config(cli_ctx.config_file)

    ctx.obj = cli_ctx


@main.command()
def info():
    """Show contactdiff package information"""

    info_data = get_info()

    click.echo("=" * 50)
    click.echo(f"contactdiff v{info_data['version']}")
    click.echo("=" * 50)
    click.echo(f"Description: {info_data['description']}")
    click.echo(f"Python version: {info_data['python_version']}")
    click.echo()

    click.echo("Dependency status:")
    for dep, available in check_dependencies().items():
        status = "✓" if available else "✗"
        click.echo(f"  {status} {dep}")


@main.command()
@click.argument("output_file", type=click.Path())
@click.option(
    "--format",
    type=click.Choice(["yaml", "json"]),
    default="yaml",
    help="Output format for configuration file",
)
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def init_config(output_file, format, force):
    """Write a configuration file with default settings"""

    output_path = Path(output_file)

    if output_path.exists() and not force:
        if not click.confirm(f"File {output_path} already exists. Overwrite?"):
            click.echo("Configuration initialization cancelled.")
            return

    config = get_default_config()

    if format == "json":
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w") as f:
            json.dump(config.to_dict(), f, indent=2)
    else:
        save_config(config, output_path)

    click.echo(f"Configuration file created: {output_path}")


@main.command()
@click.argument("config_file", type=click.Path(exists=True))
def validate_config(config_file):
    """Validate a configuration file"""

    from .config import validate_config as validate_config_func

    config = load_config(config_file)
    issues = validate_config_func(config)

    if not issues:
        click.echo("✓ Configuration is valid")
        return

    click.echo("Configuration issues found:")
    for issue in issues:
        click.echo(f"  ✗ {issue}")
    sys.exit(1)


@main.command()
@click.argument("pixels_a", type=click.Path(exists=True))
@click.argument("pixels_b", type=click.Path(exists=True))
@click.option(
    "--dimensions",
    "-d",
    type=click.Path(exists=True),
    required=True,
    help="TSV of chrom and number of bins",
)
@click.option("--output", "-o", type=click.Path(), help="Output directory")
@click.option("--workers", "-w", type=int, help="Worker pool size")
@click.pass_context
def run(ctx, pixels_a, pixels_b, dimensions, output, workers):
    """Compare two pixel tables (chrom, i, j, count)"""

    cli_ctx = ctx.obj
    config = cli_ctx.config or get_default_config()

    if output:
        config.output_dir = str(output)
    if workers is not None:
        config.worker_count = workers
    if config.output_dir is None:
        click.echo("Error: no output directory. Use --output or set output_dir", err=True)
        sys.exit(1)

    try:
        analysis = ContactDiffAnalysis(config, log_level=cli_ctx.log_level)
        results = analysis.run_files(pixels_a, pixels_b, dimensions)
        output_files = analysis.save_results()
    except Exception as e:
        click.echo(f"Analysis failed: {e}", err=True)
        if cli_ctx.verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)

    for chrom, result in results.items():
        if result.success:
            click.echo(f"  ✓ {chrom}: {len(result.regions)} regions")
        else:
            click.echo(f"  ✗ {chrom}: {result.error_type} - {result.error_message}")

    click.echo(f"Results written to {output_files['summary'].parent}")


@main.command()
@click.argument("output_dir", type=click.Path())
@click.option("--n-bins", type=int, default=200, show_default=True)
@click.option("--max-diagonal", type=int, default=20, show_default=True)
@click.option("--slope", type=float, default=2.0, show_default=True)
@click.option("--n-outliers", type=int, default=3, show_default=True)
@click.option("--seed", type=int, help="Random seed (defaults to config random_seed)")
@click.pass_context
def simulate(ctx, output_dir, n_bins, max_diagonal, slope, n_outliers, seed):
    """Write a synthetic pair of pixel tables with injected outliers"""

    from .differential import simulate_contact_pair

    cli_ctx = ctx.obj
    config = cli_ctx.config or get_default_config()
    rng = np.random.default_rng(config.random_seed if seed is None else seed)

    # Consecutive cells along diagonal 2 form one 8-connected region
    start = n_bins // 2
    outliers = [(start + k, start + k + 2) for k in range(n_outliers)]

    matrix_a, matrix_b = simulate_contact_pair(
        rng,
        chrom="chr1",
        n_bins=n_bins,
        max_diagonal=max_diagonal,
        slope=slope,
        outliers=outliers,
    )

    output_path = Path(output_dir)
    for name, matrix in (("a", matrix_a), ("b", matrix_b)):
        pixels = matrix.pixels.copy()
        pixels.insert(0, "chrom", matrix.chrom)
        save_table(pixels, output_path / f"pixels_{name}.tsv")

    save_table(
        pd.DataFrame({"chrom": [matrix_a.chrom], "n_bins": [n_bins]}),
        output_path / "dimensions.tsv",
    )
    save_table(
        pd.DataFrame(outliers, columns=["i", "j"]), output_path / "outliers.tsv"
    )

    click.echo(f"Simulated {matrix_a.nnz} cells with {n_outliers} outliers in {output_path}")


if __name__ == "__main__":
    main()
