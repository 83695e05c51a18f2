from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

_UNSAFE_CHARS = re.compile(r"[^\w\-]+")


def character_output_name(name: str) -> str:
    """角色图片的文件名（不含扩展名），如 character_rin"""
    slug = _UNSAFE_CHARS.sub("_", name.strip().lower()).strip("_")
    return f"character_{slug or 'unnamed'}"


class _ScriptModel(BaseModel):
    # 脚本 JSON 使用 camelCase 键（sceneNumber、artStyle ...）
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Character(_ScriptModel):
    """角色"""

    name: str = Field(min_length=1)
    description: str
    style_prompt: str
    reference_handle: str | None = None


class Scene(_ScriptModel):
    """场景（分镜）"""

    scene_number: int = Field(ge=0)
    description: str = ""
    characters: list[str] = Field(default_factory=list)
    setting: str
    mood: str
    camera_angle: str | None = None
    action: str


class Script(_ScriptModel):
    title: str
    style: str | None = None
    art_style: str
    characters: list[Character] = Field(default_factory=list)
    scenes: list[Scene] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_unique_character_names(self) -> "Script":
        # 文件名忽略大小写和标点，"Rin" 与 "rin" 也会写到同一组文件
        owners: dict[str, str] = {}
        clashes: list[str] = []
        for character in self.characters:
            output_name = character_output_name(character.name)
            owner = owners.get(output_name)
            if owner is not None:
                clashes.append(f"{owner!r} / {character.name!r} -> {output_name}")
            else:
                owners[output_name] = character.name
        if clashes:
            raise ValueError(f"character names collide on output files: {'; '.join(clashes)}")
        return self

    def find_character(self, name: str) -> Character | None:
        for character in self.characters:
            if character.name == name:
                return character
        return None

    def unknown_references(self) -> list[tuple[int, str]]:
        """场景中引用了但角色列表里不存在的名字"""
        known = {c.name for c in self.characters}
        return [
            (scene.scene_number, name)
            for scene in self.scenes
            for name in scene.characters
            if name not in known
        ]
