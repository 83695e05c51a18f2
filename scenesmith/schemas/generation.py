from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Variation(BaseModel):
    id: str
    hash: str | None = None
    uri: str


class GenerationResult(BaseModel):
    """后端一次提交（或 Upscale）的返回结果

    options 中的顺序由后端决定，下标 0 为默认选择。
    """

    id: str | None = None
    hash: str | None = None
    flags: int = 0
    uri: str | None = None
    options: list[Variation] = Field(default_factory=list)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VariationRef(_CamelModel):
    id: str
    uri: str


class ArtifactMetadata(_CamelModel):
    """与生成图片放在一起的元数据记录"""

    prompt: str
    generation_id: str | None = None
    selected_variation_id: str
    all_variation_ids: list[str] = Field(default_factory=list)
    all_variations: list[VariationRef] = Field(default_factory=list)
    reference_handle: str | None = None
    local_path: str
    timestamp: datetime


class ProgressState(_CamelModel):
    completed_characters: list[str] = Field(default_factory=list)
    completed_scenes: list[str] = Field(default_factory=list)

    def has_character(self, name: str) -> bool:
        return name in self.completed_characters

    def has_scene(self, scene_id: str) -> bool:
        return scene_id in self.completed_scenes

    def mark_character(self, name: str) -> None:
        if name not in self.completed_characters:
            self.completed_characters.append(name)

    def mark_scene(self, scene_id: str) -> None:
        if scene_id not in self.completed_scenes:
            self.completed_scenes.append(scene_id)


class CharacterReferences(_CamelModel):
    """跨运行复用的角色参考信息：名字 -> 参考 URL / 本地文件"""

    uris: dict[str, str] = Field(default_factory=dict)
    files: dict[str, str] = Field(default_factory=dict)
