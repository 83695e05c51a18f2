from __future__ import annotations

import logging

from scenesmith.agents.base import AgentContext, BaseAgent, ItemOutcome, PhaseReport
from scenesmith.agents.prompts.storyboard import build_scene_prompt
from scenesmith.agents.utils import scene_ids
from scenesmith.schemas.script import Scene

logger = logging.getLogger(__name__)


class StoryboardArtistAgent(BaseAgent):
    """为每个场景生成图片（使用角色参考图保持一致性）"""
    name = "storyboard_artist"
    kind = "scene"

    async def _generate_scene_image(
        self,
        ctx: AgentContext,
        scene_id: str,
        scene: Scene,
        style_reference: str | None,
    ) -> ItemOutcome:
        prompt = build_scene_prompt(
            scene,
            ctx.script,
            ctx.references.uris,
            style_reference=style_reference,
        )
        outcome = await self.generate_and_select(ctx, prompt, scene_id)

        progress = ctx.progress.model_copy(deep=True)
        progress.mark_scene(scene_id)
        ctx.ledger.save(progress)
        ctx.progress = progress
        return outcome

    def _stored_handle(self, ctx: AgentContext, scene_id: str) -> str | None:
        metadata = ctx.store.load_metadata(self.kind, scene_id)
        if metadata is None:
            return None
        return metadata.reference_handle

    async def run(self, ctx: AgentContext) -> PhaseReport:
        scenes = scene_ids(ctx.script.scenes)
        total = len(scenes)
        report = PhaseReport(phase="scenes", total=total)
        logger.info(
            "Generating %d scenes with %d character references",
            total,
            len(ctx.references.uris),
        )

        use_style_reference = ctx.settings.scene_style_reference
        # 第一个场景作为后续场景的风格参考
        style_reference: str | None = None

        for i, (scene_id, scene) in enumerate(scenes):
            done = ctx.progress.has_scene(scene_id)
            if not self.should_generate(ctx, scene_id, done):
                if done and use_style_reference and i == 0:
                    style_reference = self._stored_handle(ctx, scene_id)
                if done:
                    logger.info("Skipping already generated scene: %s", scene_id)
                report.skipped.append(scene_id)
                continue

            missing = [n for n in scene.characters if n not in ctx.references.uris]
            if missing:
                logger.info("Scene %s has no reference for: %s", scene_id, ", ".join(missing))

            logger.info("Generating scene %d/%d: %s", i + 1, total, scene_id)
            try:
                outcome = await self._generate_scene_image(
                    ctx,
                    scene_id,
                    scene,
                    style_reference if i > 0 else None,
                )
            except Exception as exc:
                logger.warning("Scene %s generation failed: %s", scene_id, exc, exc_info=True)
                report.failed.append(scene_id)
                if done and use_style_reference and i == 0:
                    style_reference = self._stored_handle(ctx, scene_id)
            else:
                logger.info("Generated scene %s at %s", scene_id, outcome.local_path)
                report.completed.append(scene_id)
                if use_style_reference and i == 0:
                    style_reference = outcome.reference_handle

            await self.pause(ctx)

        logger.info(
            "Scene phase finished: %d generated, %d skipped, %d failed",
            len(report.completed),
            len(report.skipped),
            len(report.failed),
        )
        return report
