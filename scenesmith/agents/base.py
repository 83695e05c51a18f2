from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from scenesmith.agents.utils import utcnow
from scenesmith.config import Settings
from scenesmith.exceptions import GenerationError
from scenesmith.schemas.generation import (
    ArtifactMetadata,
    CharacterReferences,
    GenerationResult,
    ProgressState,
    Variation,
    VariationRef,
)
from scenesmith.schemas.script import Character, Script
from scenesmith.services.asset_store import AssetKind, AssetStore
from scenesmith.services.backend import ImageBackendProtocol, ProgressCallback
from scenesmith.services.downloader import ImageFetcherProtocol
from scenesmith.services.progress import ProgressLedger

logger = logging.getLogger(__name__)


@dataclass
class TargetIds:
    """精细化控制的目标：只（重新）生成指定的角色名 / 场景 ID"""
    character_names: list[str] = field(default_factory=list)
    scene_ids: list[str] = field(default_factory=list)

    def has_targets(self) -> bool:
        return bool(self.character_names or self.scene_ids)


@dataclass
class AgentContext:
    settings: Settings
    script: Script
    backend: ImageBackendProtocol
    downloader: ImageFetcherProtocol
    store: AssetStore
    ledger: ProgressLedger
    progress: ProgressState
    # 本次运行中已解析的角色参考（只包含已完成的角色）
    references: CharacterReferences = field(default_factory=CharacterReferences)
    # 上次运行留下的参考汇总文件，用于恢复已完成角色的参考
    saved_references: CharacterReferences = field(default_factory=CharacterReferences)
    targets: TargetIds | None = None
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep


@dataclass
class ItemOutcome:
    reference_handle: str
    local_path: Path
    metadata: ArtifactMetadata


@dataclass
class PhaseReport:
    phase: str
    total: int = 0
    completed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.completed) + len(self.failed)


@dataclass
class RunSummary:
    characters: PhaseReport
    scenes: PhaseReport
    references: dict[str, str]
    resolved_characters: list[Character]
    completed_items: int
    total_items: int

    @property
    def failed_items(self) -> list[str]:
        return [*self.characters.failed, *self.scenes.failed]


def select_variation(options: Sequence[Variation], index: int) -> tuple[int, Variation]:
    """按配置的序号选出正式图片；序号越界时退回第一个变体"""
    if not 0 <= index < len(options):
        logger.warning(
            "Variation index %d out of range for %d options, using the first one",
            index,
            len(options),
        )
        index = 0
    return index, options[index]


class BaseAgent:
    name: str = "base"
    kind: AssetKind

    def is_targeted(self, ctx: AgentContext, key: str) -> bool | None:
        """有目标列表时返回该项是否被选中；没有目标列表时返回 None"""
        if ctx.targets is None or not ctx.targets.has_targets():
            return None
        keys = ctx.targets.character_names if self.kind == "character" else ctx.targets.scene_ids
        return key in keys

    def should_generate(self, ctx: AgentContext, key: str, done: bool) -> bool:
        targeted = self.is_targeted(ctx, key)
        if targeted is None:
            return not done
        return targeted

    def progress_callback(self, label: str, stage: str) -> ProgressCallback:
        def _on_progress(uri: str, progress: str) -> None:
            logger.info("%s %s progress: %s", label, stage, progress)

        return _on_progress

    async def pause(self, ctx: AgentContext) -> None:
        """每项提交后的固定等待，避免后端限流"""
        delay = ctx.settings.item_delay_s
        if delay > 0:
            await ctx.sleep(delay)

    async def generate_and_select(
        self,
        ctx: AgentContext,
        prompt: str,
        output_name: str,
    ) -> ItemOutcome:
        """提交 prompt，保存全部变体，选出正式图片并写入元数据

        Raises:
            GenerationError: 后端没有返回可用结果
        """
        logger.info("Generating %s with prompt: %s", output_name, prompt)
        result = await ctx.backend.submit_prompt(prompt, self.progress_callback(output_name, "generation"))
        if result is None or not result.options:
            raise GenerationError(f"Backend returned no variations for {output_name}")

        # 保存全部变体
        variation_data: list[bytes] = []
        for i, variation in enumerate(result.options):
            data = await ctx.downloader.fetch(variation.uri)
            ctx.store.persist_artifact(data, ctx.store.variation_path(self.kind, output_name, i))
            variation_data.append(data)

        index, selected = select_variation(result.options, ctx.settings.variation_index)
        canonical_uri = selected.uri
        canonical_data = variation_data[index]

        if ctx.settings.upscale_selected:
            canonical_uri = await self._upscale(ctx, result, index, output_name)
            canonical_data = await ctx.downloader.fetch(canonical_uri)

        main_path = ctx.store.image_path(self.kind, output_name)
        ctx.store.persist_artifact(canonical_data, main_path)

        metadata = ArtifactMetadata(
            prompt=prompt,
            generation_id=result.id,
            selected_variation_id=selected.id,
            all_variation_ids=[opt.id for opt in result.options],
            all_variations=[VariationRef(id=opt.id, uri=opt.uri) for opt in result.options],
            reference_handle=canonical_uri,
            local_path=str(main_path),
            timestamp=utcnow(),
        )
        ctx.store.persist_metadata(metadata, ctx.store.metadata_path(self.kind, output_name))

        return ItemOutcome(reference_handle=canonical_uri, local_path=main_path, metadata=metadata)

    async def _upscale(
        self,
        ctx: AgentContext,
        result: GenerationResult,
        index: int,
        output_name: str,
    ) -> str:
        if not result.id:
            raise GenerationError(f"Cannot upscale {output_name}: generation has no id")
        upscaled = await ctx.backend.upscale(
            index=index + 1,
            msg_id=result.id,
            hash=result.hash,
            flags=result.flags,
            on_progress=self.progress_callback(output_name, "upscale"),
        )
        if upscaled is None or not upscaled.uri:
            raise GenerationError(f"Failed to upscale {output_name}")
        return upscaled.uri

    async def run(self, ctx: AgentContext) -> PhaseReport:  # pragma: no cover
        raise NotImplementedError
