"""
Core contactdiff analysis orchestrator
"""

import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import pandas as pd

from .config import Config, load_config
from .differential import (ChromosomeResult, ContactMatrix,
                           DifferentialAnalyzer, skip_report, summarize)
from .exceptions import InvalidContactMatrix
from .utils import (get_logger, log_execution_time, read_dimensions,
                    read_pixel_table, save_table, setup_logging,
                    validate_environment)

logger = get_logger(__name__)


def build_matrices(
    pixels: pd.DataFrame, dimensions: Dict[str, int]
) -> Tuple[Dict[str, ContactMatrix], Dict[str, str]]:
    """
    Split a pixel table into per-chromosome contact matrices

    Chromosomes without a declared dimension are skipped with a warning.

    Returns:
        Tuple of (chromosome -> matrix, chromosome -> reason) where the
        second mapping holds chromosomes whose pixels were rejected
    """
    matrices = {}
    invalid = {}
    for chrom, chrom_pixels in pixels.groupby("chrom", sort=True):
        if chrom not in dimensions:
            logger.warning(f"No dimension declared for {chrom}, skipping")
            continue
        try:
            matrices[chrom] = ContactMatrix(
                chrom=chrom,
                dimension=dimensions[chrom],
                pixels=chrom_pixels[["i", "j", "count"]],
            )
        except InvalidContactMatrix as e:
            logger.error(f"{chrom} rejected: {e}")
            invalid[chrom] = str(e)
    return matrices, invalid


class ContactDiffAnalysis:
    """
    Main orchestrator for a differential contact-map run

    Loads both datasets, runs the per-chromosome pipeline and writes the
    significance records, regions, skip report and summary.
    """

    def __init__(
        self,
        config: Union[str, Path, Config, Dict[str, Any]],
        log_level: Optional[str] = None,
        log_file: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize the analysis

        Args:
            config: Configuration file path, Config object, or config dict
            log_level: Logging level; defaults to the configured level
            log_file: Optional log file path
        """
        if isinstance(config, (str, Path)):
            self.config = load_config(config)
        elif isinstance(config, dict):
            self.config = Config(**config)
        elif isinstance(config, Config):
            self.config = config
        else:
            raise ValueError(
                "Invalid config type. Expected str, Path, dict, or Config object"
            )

        setup_logging(level=log_level or self.config.log_level, log_file=log_file)
        validate_environment()

        self.analyzer = DifferentialAnalyzer(self.config)
        self.results: Dict[str, ChromosomeResult] = {}
        self.execution_time: Optional[float] = None

    def load(
        self,
        pixels_a: Union[str, Path],
        pixels_b: Union[str, Path],
        dimensions: Union[str, Path],
    ):
        """
        Read both pixel tables and the chromosome dimension table

        Returns:
            Tuple of (matrices A, matrices B, rejected chromosome -> reason)
        """
        dims = read_dimensions(dimensions)
        matrices_a, invalid_a = build_matrices(read_pixel_table(pixels_a), dims)
        matrices_b, invalid_b = build_matrices(read_pixel_table(pixels_b), dims)

        invalid = {}
        for label, rejected in (("A", invalid_a), ("B", invalid_b)):
            for chrom, reason in rejected.items():
                message = f"dataset {label}: {reason}"
                invalid[chrom] = (
                    f"{invalid[chrom]}; {message}" if chrom in invalid else message
                )
        return matrices_a, matrices_b, invalid

    def run(
        self,
        matrices_a: Dict[str, ContactMatrix],
        matrices_b: Dict[str, ContactMatrix],
        invalid: Optional[Dict[str, str]] = None,
    ) -> Dict[str, ChromosomeResult]:
        """Run the differential pipeline on all chromosomes"""
        logger.info("=" * 60)
        logger.info(f"Starting {self.config.project_name}")
        logger.info("=" * 60)

        start_time = time.time()
        self.results = self.analyzer.run(matrices_a, matrices_b, invalid)
        self.execution_time = time.time() - start_time

        self._log_summary()
        return self.results

    @log_execution_time
    def run_files(
        self,
        pixels_a: Union[str, Path],
        pixels_b: Union[str, Path],
        dimensions: Union[str, Path],
    ) -> Dict[str, ChromosomeResult]:
        matrices_a, matrices_b, invalid = self.load(pixels_a, pixels_b, dimensions)
        return self.run(matrices_a, matrices_b, invalid)

    def significance_records(self) -> pd.DataFrame:
        frames = [
            result.significance.to_records()
            for result in self.results.values()
            if result.success
        ]
        if not frames:
            return pd.DataFrame(
                columns=["chrom", "i", "j", "p_value", "p_adjusted", "deviation", "status"]
            )
        return pd.concat(frames, ignore_index=True)

    def region_records(self) -> pd.DataFrame:
        frames = [
            result.detection.to_frame()
            for result in self.results.values()
            if result.success
        ]
        if not frames:
            return pd.DataFrame(
                columns=["chrom", "region_id", "i_min", "i_max", "j_min", "j_max", "n_cells"]
            )
        return pd.concat(frames, ignore_index=True)

    def save_results(self, output_dir: Optional[Union[str, Path]] = None) -> Dict[str, Path]:
        """
        Write result tables as TSV

        Args:
            output_dir: Target directory; defaults to config.output_dir

        Returns:
            Mapping of table name to written path
        """
        output_dir = output_dir or self.config.output_dir
        if output_dir is None:
            raise ValueError("Output directory not set")

        output_path = Path(output_dir)
        output_files = {
            "significance": save_table(
                self.significance_records(), output_path / "significance.tsv"
            ),
            "regions": save_table(self.region_records(), output_path / "regions.tsv"),
            "skipped": save_table(skip_report(self.results), output_path / "skipped.tsv"),
            "summary": save_table(summarize(self.results), output_path / "summary.tsv"),
        }

        logger.info(f"Results saved: {len(output_files)} files in {output_path}")
        return output_files

    def _log_summary(self) -> None:
        logger.info("=" * 50)
        logger.info("CONTACTDIFF RUN SUMMARY")
        logger.info("=" * 50)

        for chrom, result in self.results.items():
            if result.success:
                logger.info(
                    f"  {chrom}: {len(result.regions)} regions, "
                    f"{len(result.unmodeled)} unmodeled pool directions"
                )
            else:
                logger.info(f"  {chrom}: SKIPPED ({result.error_type}) {result.error_message}")

        logger.info(f"  TOTAL: {self.execution_time:.2f} seconds")
