"""
Shared fixtures: in-memory document store, scripted providers and an
in-memory vector index.
"""

import json
import time
from typing import Dict, List, Optional, Sequence

import pytest

from feedback_agent.ai.base_provider import BaseProvider
from feedback_agent.config.providers import ProviderCapabilities, ProviderConfig
from feedback_agent.rag.vector_index import VectorIndex, datapoint_id
from feedback_agent.storage.blob_store import BlobStore
from feedback_agent.storage.document_store import AGENTS, DocumentStore


STUDENT_TEXT = (
    "Fotosyntesen omvandlar ljusenergi till kemisk energi i kloroplasterna. "
    "Koldioxid och vatten blir glukos och syre, vilket visar hur växter lagrar energi. "
    "Jag jämför sedan med cellandningen som frigör energin igen i mitokondrierna."
)


class FakeProvider(BaseProvider):
    """
    Scripted provider.

    ``responses`` maps a model name to a list of outputs consumed in order
    (the last one repeats); an Exception instance is raised instead of
    returned. ``delays`` maps a model name to seconds slept before answering.
    """

    def __init__(
        self,
        responses: Optional[Dict[str, list]] = None,
        delays: Optional[Dict[str, float]] = None,
        ocr_text: str = "",
        embed_error: Optional[Exception] = None
    ):
        super().__init__(ProviderConfig(
            id="fake",
            capabilities=ProviderCapabilities(chat=True, embeddings=True, json_mode=True),
        ))
        self.responses = {k: list(v) for k, v in (responses or {}).items()}
        self.delays = delays or {}
        self.ocr_text = ocr_text
        self.embed_error = embed_error
        self.calls: List[dict] = []
        self.embed_calls: List[List[str]] = []

    def generate(self, model, parts, system_instruction=None, temperature=None, json_output=False):
        self.calls.append({
            "model": model,
            "parts": list(parts),
            "system_instruction": system_instruction,
            "temperature": temperature,
            "json_output": json_output,
        })
        if model in self.delays:
            time.sleep(self.delays[model])
        queue = self.responses.get(model)
        if not queue:
            raise RuntimeError(f"no scripted response for {model}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def embed(self, model, texts):
        self.embed_calls.append(list(texts))
        if self.embed_error is not None:
            raise self.embed_error
        return [[float(len(t) % 7 + 1), float(t.count("a") + 1), 1.0] for t in texts]

    def extract_text_from_image(self, model, image_bytes, mime_type="image/png"):
        return self.ocr_text

    def calls_for(self, model: str) -> List[dict]:
        return [c for c in self.calls if c["model"] == model]


class FakeVectorIndex(VectorIndex):
    """Keeps vectors in a dict; queries return the agent's ids in insertion order."""

    def __init__(self, fail_query: bool = False):
        self.points: Dict[str, dict] = {}
        self.fail_query = fail_query
        self.queries: List[str] = []

    def upsert(self, agent_id: str, material_id: str, vectors: Sequence[Sequence[float]]) -> int:
        for i, vector in enumerate(vectors):
            self.points[datapoint_id(material_id, i)] = {
                "agent_id": agent_id,
                "material_id": material_id,
                "vector": list(vector),
            }
        return len(vectors)

    def remove(self, agent_id: str, material_id: str) -> None:
        for key in [k for k, p in self.points.items() if p["material_id"] == material_id and p["agent_id"] == agent_id]:
            del self.points[key]

    def remove_agent(self, agent_id: str) -> None:
        for key in [k for k, p in self.points.items() if p["agent_id"] == agent_id]:
            del self.points[key]

    def query(self, agent_id: str, vector: Sequence[float], k: int = 6) -> List[str]:
        self.queries.append(agent_id)
        if self.fail_query:
            raise ConnectionError("index unavailable")
        return [key for key, p in self.points.items() if p["agent_id"] == agent_id][:k]


def route_to(provider: FakeProvider):
    """Chat route that uses the task name as the model name."""
    return lambda task: (provider, task)


def grading_json(met: bool = True, score: float = 90, quote: str = "ljusenergi till kemisk energi i kloroplasterna",
                 reflection: float = 90, criterion_ids=("c1", "c2")) -> str:
    """A well-formed grader answer for every criterion id."""
    return json.dumps({
        "formalia": {"status": "PASS", "word_count": 40, "ref_check": "OK"},
        "criteria_results": [
            {
                "id": cid,
                "met": met,
                "score": score,
                "evidence_quote": quote,
                "self_reflection_score": reflection,
            }
            for cid in criterion_ids
        ],
        "teacher_insights": {
            "common_errors": ["Vag slutsats"],
            "strengths": ["Tydlig begreppsanvändning"],
            "teaching_actions": ["Öva jämförande analys"],
        },
    })


@pytest.fixture
def store():
    return DocumentStore.from_url("sqlite://")


@pytest.fixture
def blobs(tmp_path):
    return BlobStore(tmp_path / "blobs")


@pytest.fixture
def index():
    return FakeVectorIndex()


@pytest.fixture
def agent_id(store):
    """An agent with a two-row criteria matrix owned by teacher-1."""
    store.set(AGENTS, "agent-1", {
        "name": "Biologi 1",
        "description": "Förklara fotosyntesen och jämför med cellandning.",
        "criteria_matrix": [
            {"id": "c1", "name": "Begrepp", "description": "Använder begrepp korrekt", "indicator": "Definierar fotosyntes",
             "reliability_score": 0.8, "weight": 2},
            {"id": "c2", "name": "Jämförelse", "description": "Jämför processer", "indicator": "Jämför med cellandning",
             "reliability_score": 0.6},
        ],
        "stringency": "standard",
        "owner_uid": "teacher-1",
        "visible_to": ["teacher-2"],
    })
    return "agent-1"
