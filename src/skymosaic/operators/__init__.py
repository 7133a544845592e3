"""Resampling operators (spatial samplers and depth rebinning)."""

from skymosaic.operators.depth import DepthSampler
from skymosaic.operators.sampling import (
    LanczosSampler,
    LISampler,
    NNSampler,
    Sampler,
    available_samplers,
    sampler_factory,
)

__all__ = [
    "DepthSampler",
    "LISampler",
    "LanczosSampler",
    "NNSampler",
    "Sampler",
    "available_samplers",
    "sampler_factory",
]
