"""
Tests for the grading orchestrator's call policy.
"""

import asyncio
import time

from conftest import STUDENT_TEXT, FakeProvider, grading_json, route_to
from feedback_agent.core.models import Criterion
from feedback_agent.grading.orchestrator import (
    ERROR_INVALID_JSON,
    ERROR_PROVIDER,
    ERROR_TIMEOUT,
    GradingOrchestrator,
    GradingRequest,
)
from feedback_agent.prompts.grading import JSON_RETRY_SUFFIX

CRITERIA = [
    Criterion(id="c1", name="Begrepp", description="Begrepp", indicator="Definierar"),
    Criterion(id="c2", name="Jämförelse", description="Jämför", indicator="Jämför"),
]


def make_request(reference="--- KALLA 1 ---\nFotosyntes i bladen") -> GradingRequest:
    return GradingRequest.build(STUDENT_TEXT, "Förklara fotosyntesen", CRITERIA, reference, "strict")


def test_request_parts_order():
    request = make_request()
    assert len(request.parts) == 3
    assert "KALLA 1" in request.parts[0]
    assert "c1" in request.parts[1]
    assert STUDENT_TEXT in request.parts[2]


def test_malformed_json_is_retried_once_at_temperature_zero():
    provider = FakeProvider(responses={"assessment": ["Sorry, here you go: no json", grading_json()]})
    orchestrator = GradingOrchestrator(route_to(provider), timeout_s=2)
    request = make_request()

    run = asyncio.run(orchestrator.run_model("Model A", "assessment", request.parts, request.system_prompt, 2))

    assert run.ok
    assert run.attempts == 2
    first, second = provider.calls_for("assessment")
    assert first["temperature"] is None
    assert second["temperature"] == 0.0
    assert second["system_instruction"].endswith(JSON_RETRY_SUFFIX)
    assert first["json_output"] and second["json_output"]


def test_retry_records_the_provider_it_called():
    first = FakeProvider(responses={"assessment": ["no json"]})
    second = FakeProvider(responses={"assessment": [grading_json()]})
    second.config.id = "fallback"
    routes = iter([(first, "model-1"), (second, "model-2")])
    orchestrator = GradingOrchestrator(lambda task: next(routes))
    request = make_request()

    run = asyncio.run(orchestrator.run_model("Model A", "assessment", request.parts, request.system_prompt, 2))

    assert run.ok
    assert (run.provider_id, run.model) == ("fallback", "model-2")
    assert len(first.calls) == 1 and len(second.calls) == 1
    assert second.calls[0]["model"] == "model-2"


def test_malformed_json_twice_is_reported():
    provider = FakeProvider(responses={"assessment": ["nope"]})
    orchestrator = GradingOrchestrator(route_to(provider))
    request = make_request()

    run = asyncio.run(orchestrator.run_model("Model A", "assessment", request.parts, request.system_prompt, 2))

    assert not run.ok
    assert run.error_kind == ERROR_INVALID_JSON
    assert len(provider.calls_for("assessment")) == 2


def test_timeout_is_not_retried():
    provider = FakeProvider(responses={"assessment": [grading_json()]}, delays={"assessment": 0.5})
    orchestrator = GradingOrchestrator(route_to(provider))
    request = make_request()

    run = asyncio.run(orchestrator.run_model("Model A", "assessment", request.parts, request.system_prompt, 0.05))

    assert not run.ok
    assert run.error_kind == ERROR_TIMEOUT
    assert run.attempts == 1


def test_provider_error_is_captured():
    provider = FakeProvider(responses={"assessment": [RuntimeError("503 overloaded")]})
    orchestrator = GradingOrchestrator(route_to(provider))
    request = make_request()

    run = asyncio.run(orchestrator.run_model("Model A", "assessment", request.parts, request.system_prompt, 2))

    assert run.error_kind == ERROR_PROVIDER
    assert "503 overloaded" in run.error
    assert len(provider.calls) == 1


def test_primary_pair_runs_concurrently():
    provider = FakeProvider(
        responses={"assessment": [grading_json()], "assessmentB": [grading_json()]},
        delays={"assessment": 0.3, "assessmentB": 0.3},
    )
    orchestrator = GradingOrchestrator(route_to(provider), timeout_s=0.5)

    started = time.perf_counter()
    run_a, run_b = asyncio.run(orchestrator.run_primary_pair(make_request()))
    elapsed = time.perf_counter() - started

    assert elapsed < 0.55
    assert run_a.ok and run_b.ok
    assert run_a.label == "Model A" and run_b.label == "Model B"
    assert provider.calls_for("assessment")[0]["parts"] == provider.calls_for("assessmentB")[0]["parts"]


def test_adjudicator_sees_both_assessments():
    provider = FakeProvider(responses={
        "assessment": [grading_json(met=True)],
        "assessmentB": [grading_json(met=False)],
        "adjudicator": [grading_json()],
    })
    orchestrator = GradingOrchestrator(route_to(provider))
    request = make_request()

    async def scenario():
        run_a, run_b = await orchestrator.run_primary_pair(request)
        return await orchestrator.run_adjudicator(request, run_a, run_b, "\nRESOLVE")

    run = asyncio.run(scenario())

    assert run.ok
    call = provider.calls_for("adjudicator")[0]
    assert len(call["parts"]) == 5
    assert call["system_instruction"].endswith("\nRESOLVE")
