"""
Tab-separated table helpers used at the command-line boundary
"""

import logging
from pathlib import Path
from typing import Dict, Union

import pandas as pd

logger = logging.getLogger(__name__)

PIXEL_COLUMNS = {"chrom": "object", "i": "int64", "j": "int64", "count": "int64"}
DIMENSION_COLUMNS = {"chrom": "object", "n_bins": "int64"}


def standardize_chromosomes(chroms: pd.Series) -> pd.Series:
    """Prefix bare chromosome names with 'chr'"""
    chroms = chroms.astype(str)
    return chroms.where(chroms.str.startswith("chr"), "chr" + chroms)


def _read_tsv(file_path: Union[str, Path], columns: Dict[str, str]) -> pd.DataFrame:
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Table not found: {path}")

    df = pd.read_csv(path, sep="\t", comment="#")

    # Headerless files: fall back to positional column names
    if not set(columns).issubset(df.columns):
        df = pd.read_csv(path, sep="\t", comment="#", header=None)
        if df.shape[1] < len(columns):
            raise ValueError(
                f"{path} must have at least {len(columns)} columns: {list(columns)}"
            )
        df = df.iloc[:, : len(columns)]
        df.columns = list(columns)

    df = df[list(columns)].astype(columns)
    df["chrom"] = standardize_chromosomes(df["chrom"])
    return df


def read_pixel_table(file_path: Union[str, Path]) -> pd.DataFrame:
    """
    Read sparse upper-triangle pixels

    Args:
        file_path: TSV with columns chrom, i, j, count (header optional)

    Returns:
        DataFrame with the pixel schema
    """
    pixels = _read_tsv(file_path, PIXEL_COLUMNS)
    logger.info(
        f"Loaded {len(pixels)} pixels on {pixels['chrom'].nunique()} chromosomes "
        f"from {file_path}"
    )
    return pixels


def read_dimensions(file_path: Union[str, Path]) -> Dict[str, int]:
    """Read a chrom -> number of bins table"""
    dims = _read_tsv(file_path, DIMENSION_COLUMNS)
    return dict(zip(dims["chrom"], dims["n_bins"].astype(int)))


def save_table(df: pd.DataFrame, output_file: Union[str, Path]) -> Path:
    """Write a DataFrame as TSV, creating parent directories"""
    output_path = Path(output_file)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, sep="\t", index=False, na_rep="NA")
    logger.info(f"Saved {len(df)} rows to {output_path}")
    return output_path
