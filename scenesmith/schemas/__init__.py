from .generation import (
    ArtifactMetadata,
    CharacterReferences,
    GenerationResult,
    ProgressState,
    Variation,
    VariationRef,
)
from .script import Character, Scene, Script

__all__ = [
    "ArtifactMetadata",
    "Character",
    "CharacterReferences",
    "GenerationResult",
    "ProgressState",
    "Scene",
    "Script",
    "Variation",
    "VariationRef",
]
