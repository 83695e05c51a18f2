from __future__ import annotations

import logging

import pytest

from scenesmith.agents.base import TargetIds
from scenesmith.agents.orchestrator import GenerationOrchestrator, count_completed
from scenesmith.exceptions import BackendConnectionError, StorageSetupError
from scenesmith.schemas.generation import ProgressState
from tests.agent_fixtures import FakeDownloader, FakeImageBackend, RecordingSleep
from tests.factories import make_character, make_scene, make_script


class Abort(BaseException):
    """不会被单项错误处理捕获的中断"""


def make_orchestrator(settings, backend=None, sleep=None) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        settings=settings,
        backend=backend or FakeImageBackend(),
        downloader=FakeDownloader(),
        sleep=sleep or RecordingSleep(),
    )


@pytest.mark.asyncio
async def test_run_generates_characters_then_scenes(test_settings, two_character_script):
    backend = FakeImageBackend()
    orchestrator = make_orchestrator(test_settings, backend)

    summary = await orchestrator.run(two_character_script)

    assert summary.characters.completed == ["A", "B"]
    assert summary.scenes.completed == ["scene_001"]
    assert summary.completed_items == 2 + 1
    assert summary.total_items == 3
    assert summary.failed_items == []
    assert [c.reference_handle for c in summary.resolved_characters] == [
        "http://image.test/gen-1/1.png",
        "http://image.test/gen-2/1.png",
    ]
    # 脚本本身不被修改
    assert two_character_script.characters[0].reference_handle is None
    assert backend.connect_calls == 1
    assert backend.disconnect_calls == 1


@pytest.mark.asyncio
async def test_resume_performs_no_submissions(test_settings, two_character_script):
    await make_orchestrator(test_settings).run(two_character_script)

    backend = FakeImageBackend()
    sleep = RecordingSleep()
    summary = await make_orchestrator(test_settings, backend, sleep).run(two_character_script)

    assert backend.prompts == []
    assert sleep.delays == []
    assert summary.characters.skipped == ["A", "B"]
    assert summary.scenes.skipped == ["scene_001"]
    assert summary.completed_items == summary.total_items == 3
    # 已完成角色的参考仍可用
    assert summary.references == {
        "A": "http://image.test/gen-1/1.png",
        "B": "http://image.test/gen-2/1.png",
    }


@pytest.mark.asyncio
async def test_scenes_only_use_references_from_character_phase(test_settings):
    script = make_script(
        characters=[
            make_character("A", description="a tall knight"),
            make_character("B", description="cursed mage"),
        ],
        scenes=[
            make_scene(1, characters=["B", "A"]),
            make_scene(2, characters=["A"]),
        ],
    )
    backend = FakeImageBackend(fail_on=("anime character design, cursed mage",))
    summary = await make_orchestrator(test_settings, backend).run(script)

    assert summary.characters.completed == ["A"]
    assert summary.characters.failed == ["B"]
    # 所有角色提交都在场景之前
    assert [p.startswith("masterpiece, high quality") for p in backend.prompts] == [True, True, False, False]
    scene_prompt = backend.prompts[2]
    assert scene_prompt.endswith(" --cref http://image.test/gen-1/1.png")
    assert "--cw" not in scene_prompt
    assert summary.scenes.completed == ["scene_001", "scene_002"]
    assert summary.completed_items == 3


@pytest.mark.asyncio
async def test_partial_failure_is_retried_next_run(test_settings):
    script = make_script(characters=[make_character("A"), make_character("B", description="cursed")])
    await make_orchestrator(test_settings, FakeImageBackend(fail_on=("cursed",))).run(script)

    backend = FakeImageBackend()
    summary = await make_orchestrator(test_settings, backend).run(script)

    assert len(backend.prompts) == 1
    assert "cursed" in backend.prompts[0]
    assert summary.characters.completed == ["B"]
    assert summary.characters.skipped == ["A"]


@pytest.mark.asyncio
async def test_delay_applied_after_each_attempted_item(test_settings, two_character_script):
    settings = test_settings.model_copy(update={"item_delay_s": 5.0})
    sleep = RecordingSleep()
    await make_orchestrator(settings, sleep=sleep).run(two_character_script)

    assert sleep.delays == [5.0, 5.0, 5.0]


@pytest.mark.asyncio
async def test_connect_failure_is_fatal_and_disconnects(test_settings, two_character_script):
    backend = FakeImageBackend(connect_error=RuntimeError("refused"))

    with pytest.raises(BackendConnectionError, match="refused"):
        await make_orchestrator(test_settings, backend).run(two_character_script)

    assert backend.prompts == []
    assert backend.disconnect_calls == 1


@pytest.mark.asyncio
async def test_storage_failure_is_fatal(test_settings, two_character_script, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    settings = test_settings.model_copy(update={"output_dir": blocker})
    backend = FakeImageBackend()

    with pytest.raises(StorageSetupError):
        await make_orchestrator(settings, backend).run(two_character_script)

    assert backend.connect_calls == 0


@pytest.mark.asyncio
async def test_disconnect_on_unexpected_error(test_settings, two_character_script):
    class ExplodingBackend(FakeImageBackend):
        async def submit_prompt(self, text, on_progress=None):
            raise Abort

    backend = ExplodingBackend()
    with pytest.raises(Abort):
        await make_orchestrator(test_settings, backend).run(two_character_script)

    assert backend.disconnect_calls == 1


@pytest.mark.asyncio
async def test_targets_limit_generation(test_settings, two_character_script):
    await make_orchestrator(test_settings).run(two_character_script)

    backend = FakeImageBackend()
    summary = await make_orchestrator(test_settings, backend).run(
        two_character_script,
        targets=TargetIds(scene_ids=["scene_001"]),
    )

    assert len(backend.prompts) == 1
    assert summary.scenes.completed == ["scene_001"]
    assert summary.characters.skipped == ["A", "B"]
    assert " --cref http://image.test/gen-1/1.png --cw 1" in backend.prompts[0]


def test_count_completed(two_character_script):
    progress = ProgressState(completed_characters=["A", "Z"], completed_scenes=["scene_001"])
    assert count_completed(two_character_script, progress) == (2, 3)


@pytest.mark.asyncio
async def test_unmatched_targets_are_reported(test_settings, two_character_script, caplog):
    backend = FakeImageBackend()

    with caplog.at_level(logging.WARNING, logger="scenesmith.agents.orchestrator"):
        summary = await make_orchestrator(test_settings, backend).run(
            two_character_script,
            targets=TargetIds(character_names=["A", "Zed"], scene_ids=["scene_1"]),
        )

    assert len(backend.prompts) == 1
    assert summary.characters.completed == ["A"]
    messages = [r.getMessage() for r in caplog.records]
    assert any("'Zed' is not in the script" in m for m in messages)
    assert any("'scene_1' is not in the script" in m for m in messages)
    assert not any("'A' is not in the script" in m for m in messages)
