"""
Tests for the persona classifiers — centroid (numpy), Mistral (mocked client), hybrid.

These tests mock the Mistral client; no API key or network access is needed.
"""
import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from persona_pipeline.errors import ClassifierFailure
from persona_pipeline.persona.centroids import (
    PERSONA_CENTROIDS,
    centroid_classifier,
    classify_by_vector,
    infer_mood,
)
from persona_pipeline.persona.llm_classifier import (
    HybridClassifier,
    MistralClassifier,
    build_classification_prompt,
    parse_classification,
)
from persona_pipeline.persona.schemas import BehaviorFeatures, Mood, PersonaType


def _features(vector=None, **overrides) -> BehaviorFeatures:
    return BehaviorFeatures(vector=vector or [0.0] * 10 + [0.5, 0.3], **overrides)


def _make_mock_mistral(content: str = '{"persona": "designer", "confidence": 0.8, "mood": "focused"}') -> MagicMock:
    """Create a mock Mistral client returning a canned reply."""
    mock = MagicMock()
    mock_response = MagicMock()
    mock_response.choices = [MagicMock()]
    mock_response.choices[0].message.content = content
    mock.chat.complete_async = AsyncMock(return_value=mock_response)
    return mock


# ---------------------------------------------------------------------------
# Centroid classifier
# ---------------------------------------------------------------------------

class TestCentroids:

    @pytest.mark.parametrize("persona", list(PERSONA_CENTROIDS))
    def test_centroid_classifies_as_itself(self, persona):
        best, confidence, scores = classify_by_vector(list(PERSONA_CENTROIDS[persona]))
        assert best == persona
        assert confidence == pytest.approx(1.0)
        assert scores[persona.value] == pytest.approx(1.0)
        assert set(scores) == {p.value for p in PersonaType}

    def test_confidence_floor_is_zero(self):
        vector = [0.0] * 12
        vector[3] = 1.0
        _, confidence, _ = classify_by_vector(vector)
        assert confidence == 0.0

    def test_zero_vector_does_not_divide_by_zero(self):
        _, confidence, scores = classify_by_vector([0.0] * 12)
        assert confidence == 0.0
        assert all(score == 0.0 for score in scores.values())

    @pytest.mark.asyncio
    async def test_classifier_protocol(self):
        result = await centroid_classifier(_features(list(PERSONA_CENTROIDS[PersonaType.engineer])))
        assert result.persona == PersonaType.engineer
        assert result.rationale is None


class TestMood:

    def test_professional(self):
        assert infer_mood(_features(navigation_speed=0.9, scroll_depth=0.1)) == Mood.professional

    def test_casual(self):
        assert infer_mood(_features(idle_time=90)) == Mood.casual

    def test_focused(self):
        assert infer_mood(_features(scroll_depth=0.95, navigation_speed=0.2)) == Mood.focused

    def test_playful(self):
        assert infer_mood(_features(played_demos_count=2)) == Mood.playful

    def test_exploratory_default(self):
        assert infer_mood(_features()) == Mood.exploratory

    def test_professional_checked_before_casual(self):
        assert infer_mood(_features(navigation_speed=0.9, scroll_depth=0.1, idle_time=120)) == Mood.professional


# ---------------------------------------------------------------------------
# Mistral classifier
# ---------------------------------------------------------------------------

class TestParse:

    def test_json_inside_prose(self):
        result = parse_classification('Sure! {"persona": "cto", "confidence": 0.72, "mood": "professional"} Hope it helps.')
        assert result.persona == PersonaType.cto
        assert result.confidence == pytest.approx(0.72)

    def test_reasoning_key_accepted_as_rationale(self):
        result = parse_classification('{"persona": "gamer", "confidence": 0.6, "mood": "playful", "reasoning": "demos"}')
        assert result.rationale == "demos"

    @pytest.mark.parametrize("reply", [
        "I think they are an engineer.",
        '{"persona": "engineer", "confidence": 0.7',
        '{"persona": "wizard", "confidence": 0.7, "mood": "focused"}',
        '{"persona": "engineer", "confidence": 1.7, "mood": "focused"}',
        "",
    ])
    def test_unusable_reply(self, reply):
        with pytest.raises(ClassifierFailure):
            parse_classification(reply)


class TestMistralClassifier:

    @pytest.mark.asyncio
    async def test_calls_provider_and_parses(self):
        client = _make_mock_mistral()
        classifier = MistralClassifier(client, asyncio.Semaphore(1), model="mistral-test")

        result = await classifier(_features(navigation_path=["/", "/design"]))

        assert result.persona == PersonaType.designer
        assert result.mood == Mood.focused
        kwargs = client.chat.complete_async.call_args.kwargs
        assert kwargs["model"] == "mistral-test"
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 256

    @pytest.mark.asyncio
    async def test_provider_error_becomes_classifier_failure(self):
        client = MagicMock()
        client.chat.complete_async = AsyncMock(side_effect=RuntimeError("429 rate limited"))
        classifier = MistralClassifier(client, asyncio.Semaphore(1))

        with pytest.raises(ClassifierFailure):
            await classifier(_features())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("choices", [None, []])
    async def test_reply_without_choices_becomes_classifier_failure(self, choices):
        client = MagicMock()
        client.chat.complete_async = AsyncMock(return_value=SimpleNamespace(choices=choices))
        classifier = MistralClassifier(client, asyncio.Semaphore(1))

        with pytest.raises(ClassifierFailure):
            await classifier(_features())

    def test_prompt_summarises_behavior(self):
        prompt = build_classification_prompt(_features(
            navigation_path=["/", "/projects", "/code"],
            hovered_keywords=["typescript"],
            clicked_resume=True,
            scroll_depth=0.45,
        ))
        assert "/ → /projects → /code" in prompt
        assert "resume" in prompt
        assert "typescript" in prompt
        assert "45%" in prompt


class TestHybrid:

    @pytest.mark.asyncio
    async def test_confident_vector_skips_llm(self):
        client = _make_mock_mistral()
        hybrid = HybridClassifier(MistralClassifier(client, asyncio.Semaphore(1)))

        result = await hybrid(_features(list(PERSONA_CENTROIDS[PersonaType.recruiter])))

        assert result.persona == PersonaType.recruiter
        client.chat.complete_async.assert_not_called()

    @pytest.mark.asyncio
    async def test_ambiguous_vector_asks_llm_and_averages(self):
        vector = [0.0] * 12
        vector[3] = 1.0
        _, local_confidence, _ = classify_by_vector(vector)
        assert local_confidence < 0.6

        client = _make_mock_mistral()
        hybrid = HybridClassifier(MistralClassifier(client, asyncio.Semaphore(1)))
        result = await hybrid(_features(vector))

        assert result.persona == PersonaType.designer
        assert result.confidence == pytest.approx((local_confidence + 0.8) / 2)
        client.chat.complete_async.assert_awaited_once()
