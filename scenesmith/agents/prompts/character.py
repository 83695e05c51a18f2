from __future__ import annotations

from scenesmith.schemas.script import Character

CHARACTER_QUALITY_TOKENS = "masterpiece, high quality, anime character design"

# 角色设定图：全身、多角度，作为后续场景的参考
CHARACTER_SHEET_DIRECTIVE = (
    "full body character sheet, full body reference, multiple angles, "
    "detailed facial features, high detail, professional character design"
)

CHARACTER_FORMAT_FLAGS = "--ar 1:1 --v 6 --style raw"


def build_character_prompt(character: Character) -> str:
    """构建角色参考图 prompt（纯函数，相同输入得到相同输出）"""
    parts = [
        CHARACTER_QUALITY_TOKENS,
        character.description.strip(),
        character.style_prompt.strip(),
        CHARACTER_SHEET_DIRECTIVE,
    ]
    return f"{', '.join(p for p in parts if p)} {CHARACTER_FORMAT_FLAGS}"
