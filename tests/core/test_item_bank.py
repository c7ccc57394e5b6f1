"""
Tests for the item parameter store and default parameters.
"""
import random
import threading

import pytest

from cat_engine.core.cat.exceptions import UnknownItemError
from cat_engine.core.cat.irt import ItemParameters
from cat_engine.core.cat.item_bank import (
    CHOICE_GUESSING,
    DEFAULT_CATEGORY,
    DEFAULT_GUESSING,
    ItemParameterStore,
    default_item_parameters,
    question_category,
)
from libs.domain_types import DifficultyLevel, QuestionType


class TestDefaultItemParameters:
    """Tests for default_item_parameters."""

    @pytest.mark.parametrize(
        "difficulty,expected_b",
        [
            (DifficultyLevel.VERY_EASY, -2.0),
            (DifficultyLevel.EASY, -1.0),
            (DifficultyLevel.MEDIUM, 0.0),
            (DifficultyLevel.HARD, 1.0),
            (DifficultyLevel.VERY_HARD, 2.0),
        ],
    )
    def test_difficulty_maps_to_b(self, question_factory, difficulty, expected_b):
        params = default_item_parameters(
            question_factory("q1", difficulty), rng=random.Random(0)
        )
        assert params.b == expected_b

    @pytest.mark.parametrize(
        "question_type,expected_c",
        [
            (QuestionType.MULTIPLE_CHOICE.value, CHOICE_GUESSING),
            (QuestionType.SINGLE_CHOICE.value, CHOICE_GUESSING),
            (QuestionType.TRUE_FALSE.value, DEFAULT_GUESSING),
            (QuestionType.ESSAY.value, DEFAULT_GUESSING),
        ],
    )
    def test_guessing_by_type(self, question_factory, question_type, expected_c):
        question = question_factory("q1", question_type=question_type)
        assert default_item_parameters(question, rng=random.Random(0)).c == expected_c

    def test_discrimination_in_range(self, question_factory):
        rng = random.Random(99)
        for i in range(50):
            params = default_item_parameters(question_factory(f"q{i}"), rng=rng)
            assert 1.0 <= params.a <= 1.5

    def test_custom_range(self, question_factory):
        params = default_item_parameters(
            question_factory("q1"), rng=random.Random(1), discrimination_range=(2.0, 2.0)
        )
        assert params.a == 2.0

    def test_deterministic_with_rng(self, question_factory):
        question = question_factory("q1")
        assert default_item_parameters(question, rng=random.Random(5)) == (
            default_item_parameters(question, rng=random.Random(5))
        )


class TestQuestionCategory:
    def test_first_category(self, question_factory):
        assert question_category(question_factory("q1", categories=["algebra", "x"])) == "algebra"

    def test_default(self, question_factory):
        assert question_category(question_factory("q1")) == DEFAULT_CATEGORY


class TestItemParameterStore:
    """Tests for ItemParameterStore."""

    def test_register_only_new_items(self, question_factory):
        store = ItemParameterStore(rng=random.Random(0))
        assert store.register_questions([question_factory("q1"), question_factory("q2")]) == [
            "q1",
            "q2",
        ]
        first = store.get("q1")

        assert store.register_questions([question_factory("q1"), question_factory("q3")]) == [
            "q3"
        ]
        assert store.get("q1") == first
        assert len(store) == 3

    def test_calibrated_parameters_survive_registration(self, question_factory):
        store = ItemParameterStore()
        calibrated = ItemParameters(a=2.1, b=0.7, c=0.05)
        store.update("q1", calibrated)

        store.register_questions([question_factory("q1", DifficultyLevel.VERY_EASY)])

        assert store.get("q1") == calibrated

    def test_update_replaces(self):
        store = ItemParameterStore()
        store.update("q1", ItemParameters(a=1.0, b=0.0))
        store.update("q1", ItemParameters(a=1.5, b=1.0))
        assert store.require("q1").b == 1.0

    def test_require_unknown(self):
        store = ItemParameterStore()
        assert store.get("missing") is None
        with pytest.raises(UnknownItemError) as exc_info:
            store.require("missing")
        assert exc_info.value.context == {"item_id": "missing"}
        assert "item_id=missing" in str(exc_info.value)

    def test_contains_and_snapshot(self):
        store = ItemParameterStore()
        store.update("q1", ItemParameters(a=1.0, b=0.0))
        snapshot = store.snapshot()
        snapshot["q2"] = ItemParameters(a=1.0, b=0.0)

        assert "q1" in store
        assert "q2" not in store

    def test_concurrent_registration(self, question_factory):
        store = ItemParameterStore(rng=random.Random(0))
        questions = [question_factory(f"q{i}") for i in range(200)]
        registered = []

        def worker():
            registered.extend(store.register_questions(questions))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store) == 200
        assert sorted(registered) == sorted(q.id for q in questions)
