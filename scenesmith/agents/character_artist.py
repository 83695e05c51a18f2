from __future__ import annotations

import logging

from scenesmith.agents.base import AgentContext, BaseAgent, ItemOutcome, PhaseReport
from scenesmith.agents.prompts.character import build_character_prompt
from scenesmith.agents.utils import character_output_name
from scenesmith.schemas.script import Character

logger = logging.getLogger(__name__)


class CharacterArtistAgent(BaseAgent):
    """为角色生成参考图片"""
    name = "character_artist"
    kind = "character"

    async def _generate_character_image(self, ctx: AgentContext, character: Character) -> ItemOutcome:
        prompt = build_character_prompt(character)
        outcome = await self.generate_and_select(ctx, prompt, character_output_name(character.name))

        # 先写参考汇总，再写进度：进度里标记完成的角色一定能找回参考
        references = ctx.references.model_copy(deep=True)
        references.uris[character.name] = outcome.reference_handle
        references.files[character.name] = str(outcome.local_path)
        ctx.store.save_character_references(references)

        progress = ctx.progress.model_copy(deep=True)
        progress.mark_character(character.name)
        ctx.ledger.save(progress)

        ctx.references = references
        ctx.progress = progress
        return outcome

    def _restore_reference(self, ctx: AgentContext, character: Character) -> None:
        """恢复已完成角色的参考：优先参考汇总文件，其次元数据"""
        name = character.name
        handle = ctx.saved_references.uris.get(name)
        path = ctx.saved_references.files.get(name)
        if not handle:
            output_name = character_output_name(name)
            metadata = ctx.store.load_metadata(self.kind, output_name)
            if metadata is not None and metadata.reference_handle:
                handle = metadata.reference_handle
                path = metadata.local_path
        if not handle:
            logger.warning("No reference recorded for completed character %s; scenes will omit it", name)
            return
        ctx.references.uris[name] = handle
        if path:
            ctx.references.files[name] = path

    async def run(self, ctx: AgentContext) -> PhaseReport:
        characters = ctx.script.characters
        total = len(characters)
        report = PhaseReport(phase="characters", total=total)
        logger.info("Generating character references for %d characters", total)

        for i, character in enumerate(characters):
            name = character.name
            done = ctx.progress.has_character(name)
            if not self.should_generate(ctx, name, done):
                if done:
                    self._restore_reference(ctx, character)
                    logger.info("Skipping already generated character: %s", name)
                report.skipped.append(name)
                continue

            logger.info("Generating character %d/%d: %s", i + 1, total, name)
            try:
                outcome = await self._generate_character_image(ctx, character)
            except Exception as exc:
                # 单个失败不影响其他
                logger.warning("Character %s generation failed: %s", name, exc, exc_info=True)
                report.failed.append(name)
                if done:
                    # 重新生成失败时沿用上次的参考
                    self._restore_reference(ctx, character)
            else:
                logger.info("Generated reference for %s: %s", name, outcome.reference_handle)
                report.completed.append(name)

            await self.pause(ctx)

        logger.info(
            "Character phase finished: %d generated, %d skipped, %d failed",
            len(report.completed),
            len(report.skipped),
            len(report.failed),
        )
        return report
