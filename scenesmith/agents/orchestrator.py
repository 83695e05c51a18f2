from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from scenesmith.agents.base import AgentContext, PhaseReport, RunSummary, TargetIds
from scenesmith.agents.character_artist import CharacterArtistAgent
from scenesmith.agents.storyboard_artist import StoryboardArtistAgent
from scenesmith.agents.utils import scene_ids
from scenesmith.config import Settings
from scenesmith.exceptions import BackendConnectionError
from scenesmith.schemas.generation import ProgressState
from scenesmith.schemas.script import Script
from scenesmith.services.asset_store import AssetStore
from scenesmith.services.backend import ImageBackendProtocol
from scenesmith.services.downloader import ImageDownloader, ImageFetcherProtocol
from scenesmith.services.progress import ProgressLedger

logger = logging.getLogger(__name__)


def count_completed(script: Script, progress: ProgressState) -> tuple[int, int]:
    """返回 (已完成数, 总数)，角色和场景合计"""
    ids = [scene_id for scene_id, _ in scene_ids(script.scenes)]
    done = sum(1 for c in script.characters if progress.has_character(c.name))
    done += sum(1 for scene_id in ids if progress.has_scene(scene_id))
    return done, len(script.characters) + len(ids)


class GenerationOrchestrator:
    """两阶段生成流程：先生成全部角色参考，再生成场景

    后端被视为单一的限流资源，所有提交严格串行。
    """

    def __init__(
        self,
        *,
        settings: Settings,
        backend: ImageBackendProtocol,
        downloader: ImageFetcherProtocol | None = None,
        store: AssetStore | None = None,
        ledger: ProgressLedger | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.backend = backend
        self.downloader = downloader or ImageDownloader(settings)
        self.store = store or AssetStore(settings.output_dir)
        self.ledger = ledger or ProgressLedger(self.store.progress_path)
        self.sleep = sleep
        self.agents = [
            CharacterArtistAgent(),  # 生成角色参考图
            StoryboardArtistAgent(),  # 使用角色参考生成场景图
        ]

    async def _connect(self) -> None:
        try:
            await self.backend.connect()
        except BackendConnectionError:
            raise
        except Exception as exc:
            raise BackendConnectionError(f"Failed to connect to image backend: {exc}") from exc

    @staticmethod
    def _warn_unmatched_targets(script: Script, targets: TargetIds) -> None:
        names = {c.name for c in script.characters}
        ids = {scene_id for scene_id, _ in scene_ids(script.scenes)}
        for name in targets.character_names:
            if name not in names:
                logger.warning("Target character %r is not in the script; nothing to regenerate", name)
        for scene_id in targets.scene_ids:
            if scene_id not in ids:
                logger.warning("Target scene %r is not in the script (expected ids like scene_001)", scene_id)

    async def run(self, script: Script, *, targets: TargetIds | None = None) -> RunSummary:
        # 输出目录无法创建时直接终止
        self.store.scaffold()
        progress = self.ledger.load()
        saved_references = self.store.load_character_references()

        for scene_number, name in script.unknown_references():
            logger.warning("Scene %s references unknown character %r; using the bare name", scene_number, name)
        if targets is not None:
            self._warn_unmatched_targets(script, targets)

        ctx = AgentContext(
            settings=self.settings,
            script=script,
            backend=self.backend,
            downloader=self.downloader,
            store=self.store,
            ledger=self.ledger,
            progress=progress,
            saved_references=saved_references,
            targets=targets,
            sleep=self.sleep,
        )

        reports: dict[str, PhaseReport] = {}
        try:
            await self._connect()
            # 阶段边界：全部角色尝试完之后才开始场景
            for agent in self.agents:
                reports[agent.name] = await agent.run(ctx)
        finally:
            await self.backend.disconnect()

        completed, total = count_completed(script, ctx.progress)
        summary = RunSummary(
            characters=reports["character_artist"],
            scenes=reports["storyboard_artist"],
            references=dict(ctx.references.uris),
            resolved_characters=[
                c.model_copy(update={"reference_handle": ctx.references.uris.get(c.name)})
                for c in script.characters
            ],
            completed_items=completed,
            total_items=total,
        )
        logger.info("%d of %d items completed", completed, total)
        if summary.failed_items:
            logger.warning(
                "Failed items (will be retried on the next run): %s",
                ", ".join(summary.failed_items),
            )
        return summary
