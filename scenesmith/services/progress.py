from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from scenesmith.schemas.generation import ProgressState
from scenesmith.services.file_io import read_json, write_json_atomic

logger = logging.getLogger(__name__)


class ProgressLedger:
    """断点续传进度记录

    只有在图片和元数据都写盘之后才调用 save()，保证"已完成"的条目一定可恢复。
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self) -> ProgressState:
        data = read_json(self.path)
        if data is None:
            return ProgressState()
        try:
            return ProgressState.model_validate(data)
        except ValidationError as exc:
            # 损坏的进度文件按首次运行处理
            logger.warning("Progress ledger %s is invalid, starting fresh: %s", self.path, exc)
            return ProgressState()

    def save(self, state: ProgressState) -> None:
        write_json_atomic(self.path, state.model_dump(mode="json", by_alias=True))
