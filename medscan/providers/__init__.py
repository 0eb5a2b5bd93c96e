"""Analysis providers and the registry that selects between them."""

from .base import AnalysisProvider, CancelToken, ProviderInfo
from .heuristic import HeuristicProvider
from .registry import ProviderRegistry
from .remote import EndpointProvider, GatewayVisionProvider

__all__ = [
    "AnalysisProvider",
    "CancelToken",
    "EndpointProvider",
    "GatewayVisionProvider",
    "HeuristicProvider",
    "ProviderInfo",
    "ProviderRegistry",
]
