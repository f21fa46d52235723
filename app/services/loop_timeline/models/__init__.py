from .cycle_state import (
    EffectiveMarker,
    EngineObservation,
    LoopConfig,
    LoopRunState,
    Marker,
    MarkerKey,
)

__all__ = [
    "EffectiveMarker",
    "EngineObservation",
    "LoopConfig",
    "LoopRunState",
    "Marker",
    "MarkerKey",
]
