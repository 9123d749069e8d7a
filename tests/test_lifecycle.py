"""Tests for dialogue_loop.lifecycle."""

import random

import pytest

from dialogue_loop.lifecycle import SceneDirector, pick_next_scene


@pytest.mark.parametrize("seed", range(25))
def test_never_picks_current_scene(seed: int) -> None:
    rng = random.Random(seed)
    assert pick_next_scene(["A", "B", "C"], "B", rng) in {"A", "C"}


def test_picks_all_other_scenes_eventually() -> None:
    rng = random.Random(1)
    seen = {pick_next_scene(["A", "B", "C"], "B", rng) for _ in range(100)}
    assert seen == {"A", "C"}


def test_empty_scene_list() -> None:
    assert pick_next_scene([], "A", random.Random()) is None


def test_only_current_scene() -> None:
    assert pick_next_scene(["A", "A"], "A", random.Random()) is None


def test_current_not_in_candidates() -> None:
    assert pick_next_scene(["A"], "lobby", random.Random()) == "A"


class TestSceneDirector:
    def test_counts_loaded_scenes(self) -> None:
        director = SceneDirector(rng=random.Random(0), restart=lambda: None)
        director.request_scene_transition(["A", "B"], "A")
        director.request_scene_transition(["A", "B"], "B")
        assert director.scenes_loaded == 2

    def test_failed_transition_not_counted(self) -> None:
        director = SceneDirector(restart=lambda: None)
        assert director.request_scene_transition([], "A") is None
        assert director.scenes_loaded == 0

    def test_restart_calls_hook(self) -> None:
        calls = []
        director = SceneDirector(restart=lambda: calls.append("restart"))
        director.request_restart()
        assert calls == ["restart"]
        assert director.restart_requested is True
