from pricing_toolkit.pricing.orchestrator import (
    PriceFetcherOrchestrator,
    build_default_orchestrator,
)

__all__ = ["PriceFetcherOrchestrator", "build_default_orchestrator"]
