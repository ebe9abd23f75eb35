"""
Comparative Analysis Module

Ranks an athlete's canonical metrics against professional population
buckets and labels them with rating bands.
"""

from .percentile_engine import PopulationBucket, compute_bucket, rank, rating
from .analysis import (
    FAMILIES,
    ComparativeAnalysis,
    ComparativeResult,
    calculate_asymmetry,
    compare,
    get_family,
)

__all__ = [
    'PopulationBucket',
    'compute_bucket',
    'rank',
    'rating',
    'FAMILIES',
    'ComparativeAnalysis',
    'ComparativeResult',
    'calculate_asymmetry',
    'compare',
    'get_family',
]
