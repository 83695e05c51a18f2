"""生成结果存储

目录结构（root 下）：

    characters/
        character_<name>.png
        character_<name>_metadata.json
        variations/character_<name>/variation_<n>.png
    scenes/
        scene_<nnn>.png
        scene_<nnn>_metadata.json
        variations/scene_<nnn>/variation_<n>.png
    progress.json
    character_references.json
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from pydantic import ValidationError

from scenesmith.exceptions import StorageSetupError
from scenesmith.schemas.generation import ArtifactMetadata, CharacterReferences
from scenesmith.services.file_io import read_json, write_json_atomic

logger = logging.getLogger(__name__)

AssetKind = Literal["character", "scene"]

_KIND_DIRS: dict[str, str] = {
    "character": "characters",
    "scene": "scenes",
}

PROGRESS_FILE = "progress.json"
REFERENCES_FILE = "character_references.json"


class AssetStore:
    """把生成的图片和元数据落盘，并把逻辑名映射为路径"""

    def __init__(self, root: Path | str):
        self.root = Path(root)

    @property
    def progress_path(self) -> Path:
        return self.root / PROGRESS_FILE

    @property
    def references_path(self) -> Path:
        return self.root / REFERENCES_FILE

    def kind_dir(self, kind: AssetKind) -> Path:
        return self.root / _KIND_DIRS[kind]

    def image_path(self, kind: AssetKind, output_name: str) -> Path:
        return self.kind_dir(kind) / f"{output_name}.png"

    def metadata_path(self, kind: AssetKind, output_name: str) -> Path:
        return self.kind_dir(kind) / f"{output_name}_metadata.json"

    def variations_dir(self, kind: AssetKind, output_name: str) -> Path:
        return self.kind_dir(kind) / "variations" / output_name

    def variation_path(self, kind: AssetKind, output_name: str, index: int) -> Path:
        # 文件名从 1 开始编号
        return self.variations_dir(kind, output_name) / f"variation_{index + 1}.png"

    def scaffold(self) -> None:
        """创建输出目录结构，失败即致命错误"""
        dirs = [self.root]
        for kind in _KIND_DIRS:
            dirs.append(self.kind_dir(kind))  # type: ignore[arg-type]
            dirs.append(self.kind_dir(kind) / "variations")  # type: ignore[arg-type]
        try:
            for d in dirs:
                d.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageSetupError(
                f"Cannot create output directory {self.root}: {exc}",
                details={"root": str(self.root)},
            ) from exc

    def persist_artifact(self, data: bytes, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info("Saved image to %s", path)
        return path

    def persist_metadata(self, record: ArtifactMetadata, path: Path) -> Path:
        write_json_atomic(path, record.model_dump(mode="json", by_alias=True))
        return path

    def load_metadata(self, kind: AssetKind, output_name: str) -> ArtifactMetadata | None:
        data = read_json(self.metadata_path(kind, output_name))
        if data is None:
            return None
        try:
            return ArtifactMetadata.model_validate(data)
        except ValidationError as exc:
            logger.warning("Ignoring malformed metadata for %s: %s", output_name, exc)
            return None

    def load_character_references(self) -> CharacterReferences:
        data = read_json(self.references_path)
        if data is None:
            return CharacterReferences()
        try:
            return CharacterReferences.model_validate(data)
        except ValidationError as exc:
            logger.warning("Ignoring malformed character references file: %s", exc)
            return CharacterReferences()

    def save_character_references(self, refs: CharacterReferences) -> None:
        write_json_atomic(self.references_path, refs.model_dump(mode="json", by_alias=True))
