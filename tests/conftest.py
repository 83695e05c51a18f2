from __future__ import annotations

from pathlib import Path

import pytest

from scenesmith.config import Settings
from scenesmith.schemas.script import Script
from tests.factories import make_character, make_scene, make_script


@pytest.fixture()
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        output_dir=tmp_path / "output",
        midjourney_base_url="http://mj.test",
        midjourney_poll_interval_s=0.0,
        max_retries=0,
        item_delay_s=0.0,
    )


@pytest.fixture()
def two_character_script() -> Script:
    return make_script(
        characters=[
            make_character("A", description="a tall knight", style_prompt="silver armor"),
            make_character("B", description="a young mage", style_prompt="blue robes"),
        ],
        scenes=[
            make_scene(1, characters=["A", "B"], setting="a ruined castle", mood="tense", action="A duels B"),
        ],
    )
