from __future__ import annotations

from collections.abc import Mapping, Sequence

from scenesmith.schemas.script import Scene, Script

SCENE_QUALITY_TOKENS = "masterpiece, best quality"
SCENE_COMPOSITION_DIRECTIVE = "detailed lighting, perfect composition"
SCENE_FORMAT_FLAGS = "--ar 16:9 --v 6 --style raw"

CHARACTER_REFERENCE_FLAG = "--cref"
CHARACTER_WEIGHT_FLAG = "--cw 1"
STYLE_REFERENCE_FLAG = "--sref"


def character_clause(names: Sequence[str], script: Script) -> str:
    """渲染场景中的角色描述

    已知角色渲染为 "名字 (外观, 风格)"，未知名字原样保留。
    """
    rendered: list[str] = []
    for name in names:
        char = script.find_character(name)
        if char is None:
            rendered.append(name)
        else:
            rendered.append(f"{char.name} ({char.description}, {char.style_prompt})")
    return " and ".join(rendered)


def reference_flags(names: Sequence[str], references: Mapping[str, str]) -> str:
    """为已有参考图的角色追加 --cref，列表第一个角色额外加 --cw 权重"""
    flags = ""
    for index, name in enumerate(names):
        handle = references.get(name)
        if not handle:
            continue
        flags += f" {CHARACTER_REFERENCE_FLAG} {handle}"
        if index == 0:
            flags += f" {CHARACTER_WEIGHT_FLAG}"
    return flags


def build_scene_prompt(
    scene: Scene,
    script: Script,
    references: Mapping[str, str],
    *,
    style_reference: str | None = None,
) -> str:
    """构建场景图片 prompt（纯函数）

    Args:
        scene: 场景
        script: 所属脚本（用于查找角色描述和整体画风）
        references: 角色名 -> 已生成的参考图 URL
        style_reference: 可选的风格参考图 URL

    Returns:
        可直接提交给后端的 prompt
    """
    parts = [
        SCENE_QUALITY_TOKENS,
        character_clause(scene.characters, script),
        scene.action,
        f"in {scene.setting}" if scene.setting else "",
        scene.mood,
        scene.camera_angle,
        script.art_style,
        SCENE_COMPOSITION_DIRECTIVE,
        SCENE_FORMAT_FLAGS,
    ]
    prompt = ", ".join(p for p in parts if p)
    prompt += reference_flags(scene.characters, references)
    if style_reference:
        prompt += f" {STYLE_REFERENCE_FLAG} {style_reference}"
    return prompt
