from .character import build_character_prompt
from .storyboard import build_scene_prompt, character_clause

__all__ = ["build_character_prompt", "build_scene_prompt", "character_clause"]
