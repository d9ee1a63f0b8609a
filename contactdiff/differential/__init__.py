"""
Differential analysis module for contactdiff

Pairs corresponding cells of two contact maps, pools diagonals with similar
count distributions, fits robust negative-binomial dependency models in both
directions, scores every cell against them with Benjamini-Hochberg
correction, and reports connected regions of significant cells.
"""

from .alignment import ContactMatrix, align_matrices
from .analyzer import (ChromosomeResult, DifferentialAnalyzer, skip_report,
                       summarize)
from .fitting import DependencyModelFitter
from .models import (DependencyModel, Direction, ModelKind, ModelStatus,
                     PlainNegativeBinomial, RobustNegativeBinomial,
                     create_model)
from .pooling import DiagonalPool, DiagonalPooler, PoolingResult
from .regions import (Adjacency, DetectionStage, Region, RegionDetection,
                      RegionDetector, label_components, regions_to_frame,
                      two_segment_breakpoint)
from .significance import (CellStatus, CombineStrategy, SignificanceEngine,
                           SignificanceMatrix, benjamini_hochberg,
                           clamp_probabilities, combine_directional)
from .simulation import simulate_contact_pair

__all__ = [
    "ContactMatrix",
    "align_matrices",
    "DiagonalPool",
    "DiagonalPooler",
    "PoolingResult",
    "DependencyModel",
    "Direction",
    "ModelKind",
    "ModelStatus",
    "RobustNegativeBinomial",
    "PlainNegativeBinomial",
    "create_model",
    "DependencyModelFitter",
    "SignificanceEngine",
    "SignificanceMatrix",
    "CellStatus",
    "CombineStrategy",
    "benjamini_hochberg",
    "clamp_probabilities",
    "combine_directional",
    "RegionDetector",
    "RegionDetection",
    "DetectionStage",
    "Region",
    "Adjacency",
    "label_components",
    "regions_to_frame",
    "two_segment_breakpoint",
    "DifferentialAnalyzer",
    "ChromosomeResult",
    "skip_report",
    "summarize",
    "simulate_contact_pair",
]
