from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from scenesmith.exceptions import ScriptLoadError
from scenesmith.schemas.script import Script

logger = logging.getLogger(__name__)


def load_script(path: Path | str) -> Script:
    """读取并校验脚本 JSON

    格式错误直接拒绝；场景引用了不存在的角色只记录警告，生成时按原名处理。
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ScriptLoadError(f"Cannot read script {path}: {exc}", details={"path": str(path)}) from exc

    try:
        script = Script.model_validate_json(raw)
    except ValidationError as exc:
        raise ScriptLoadError(
            f"Invalid script {path}: {exc.error_count()} validation error(s)",
            details={"path": str(path), "errors": exc.errors(include_url=False)},
        ) from exc

    for scene_number, name in script.unknown_references():
        logger.warning("Scene %s references unknown character %r", scene_number, name)

    logger.info(
        "Loaded script %r: %d characters, %d scenes",
        script.title,
        len(script.characters),
        len(script.scenes),
    )
    return script
