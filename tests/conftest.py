"""
Shared fixtures: a scripted LLM client, in-memory persistence and a
deterministic clock.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from coding_prompt_eval.core.config import EvaluationConfiguration
from coding_prompt_eval.core.exceptions import LLMError
from coding_prompt_eval.core.models import GroundTruth, Prediction, TestRunDraft
from coding_prompt_eval.repository import InMemoryPersistence
from coding_prompt_eval.scoring import score


class FakeLLMClient:
    """
    Stand-in for GeminiClient/OpenAIClient.

    Responses are returned in order; an Exception instance in the script is
    raised instead of returned. Every call is recorded.
    """

    def __init__(self, responses=(), model_name: str = "fake-model"):
        self._responses = list(responses)
        self._model_name = model_name
        self.calls: List[dict] = []

    def queue(self, *responses) -> None:
        self._responses.extend(responses)

    def generate(
        self,
        prompt: str,
        document: Optional[bytes] = None,
        mime_type: str = "application/pdf",
        json_output: bool = False,
    ) -> str:
        self.calls.append(
            {"prompt": prompt, "document": document, "mime_type": mime_type, "json_output": json_output}
        )
        if not self._responses:
            raise LLMError("No scripted response left", provider=self.provider_name)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def provider_name(self) -> str:
        return "fake"


class SteppingClock:
    """Returns a fixed start time advanced by one second per call."""

    def __init__(self, start: Optional[datetime] = None):
        self._next = start or datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        moment = self._next
        self._next += timedelta(seconds=1)
        return moment


def prediction_json(primary: str, cpts=(), secondary=(), reasoning: str = "") -> str:
    return json.dumps(
        {
            "primary_icd": primary,
            "secondary_icds": list(secondary),
            "cpt_codes": list(cpts),
            "reasoning": reasoning,
        }
    )


def make_draft(
    case_key: str = "7654321",
    prompt_name: str = "Baseline",
    primary_match: bool = True,
    gold_cpts=("52356",),
    pred_cpts=("52356",),
    prompt_text: str = "Code this note.",
) -> TestRunDraft:
    """Build a scored draft from gold and predicted codes."""
    gold = GroundTruth(primary_code="N20.0", procedure_codes=tuple(gold_cpts))
    pred = Prediction(
        primary_code="N20.0" if primary_match else "R31.9", procedure_codes=tuple(pred_cpts)
    )
    return TestRunDraft.from_score(
        case_key=case_key,
        model="fake-model",
        prompt_name=prompt_name,
        prompt_text=prompt_text,
        gold=gold,
        prediction=pred,
        score=score(gold, pred),
    )


@pytest.fixture
def persistence():
    return InMemoryPersistence()


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def fake_client():
    return FakeLLMClient()


@pytest.fixture
def config(tmp_path):
    return EvaluationConfiguration(
        llm_provider="gemini",
        gemini_api_key="test-key",
        data_directory=str(tmp_path / "data"),
        rate_limit_delay=0.0,
    )
