"""
Grading Orchestrator - runs the grading models for one submission.

Two independently routed graders (A and B) receive identical parts and the
same stringency-parameterized system prompt and run concurrently, each under
its own deadline. An adjudicator call reuses the same machinery with a longer
deadline.

Failure policy per call:
- timeout: the call is abandoned, not retried; a late result is discarded
- malformed JSON: one retry at temperature 0 with a stricter instruction
- provider error: surfaced on the ModelRun, not retried here (transport
  retries live in the provider adapters)
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from feedback_agent.ai.base_provider import BaseProvider
from feedback_agent.config.constants import (
    ADJUDICATOR_TIMEOUT_S,
    ASSESSMENT_TIMEOUT_S,
    JSON_RETRY_ATTEMPTS,
)
from feedback_agent.config.providers import TASK_ADJUDICATOR, TASK_ASSESSMENT, TASK_ASSESSMENT_B
from feedback_agent.core.exceptions import MalformedOutputError
from feedback_agent.core.models import Criterion
from feedback_agent.prompts.grading import (
    JSON_RETRY_SUFFIX,
    build_context_part,
    build_grading_system_prompt,
    build_model_assessment_part,
    build_reference_part,
    build_student_part,
)
from feedback_agent.utils.json_extractor import extract_json_from_response

# task name -> (provider, model)
ChatRoute = Callable[[str], Tuple[BaseProvider, str]]

ERROR_TIMEOUT = "timeout"
ERROR_INVALID_JSON = "invalid_json"
ERROR_PROVIDER = "provider"


@dataclass
class ModelRun:
    """Outcome of one grading-model call."""
    label: str
    task: str
    provider_id: Optional[str] = None
    model: Optional[str] = None
    parsed: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    latency_ms: Optional[float] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.parsed is not None

    def summary(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "provider": self.provider_id,
            "model": self.model,
            "ok": self.ok,
            "error_kind": self.error_kind,
            "latency_ms": self.latency_ms,
            "attempts": self.attempts,
        }


@dataclass
class GradingRequest:
    """The three context parts and system prompt shared by every grading call."""
    reference_part: str
    context_part: str
    student_part: str
    system_prompt: str
    criteria: List[Criterion] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        student_text: str,
        description: str,
        criteria: List[Criterion],
        reference_context: Optional[str],
        stringency: str
    ) -> "GradingRequest":
        return cls(
            reference_part=build_reference_part(reference_context),
            context_part=build_context_part(description, [c.model_dump() for c in criteria]),
            student_part=build_student_part(student_text),
            system_prompt=build_grading_system_prompt(stringency),
            criteria=criteria,
        )

    @property
    def parts(self) -> List[str]:
        return [self.reference_part, self.context_part, self.student_part]

    def adjudicator_parts(self, run_a: ModelRun, run_b: ModelRun) -> List[str]:
        return [
            self.reference_part,
            self.context_part,
            build_model_assessment_part("A", run_a.parsed),
            build_model_assessment_part("B", run_b.parsed),
            self.student_part,
        ]


class GradingOrchestrator:
    """Issues routed model calls with deadlines and the JSON retry policy."""

    def __init__(
        self,
        route: ChatRoute,
        timeout_s: float = ASSESSMENT_TIMEOUT_S,
        adjudicator_timeout_s: float = ADJUDICATOR_TIMEOUT_S,
        json_attempts: int = JSON_RETRY_ATTEMPTS
    ):
        self._route = route
        self.timeout_s = timeout_s
        self.adjudicator_timeout_s = adjudicator_timeout_s
        self.json_attempts = json_attempts

    async def generate(
        self,
        task: str,
        parts: Sequence[str],
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
        json_output: bool = False,
        timeout_s: Optional[float] = None
    ) -> str:
        """
        One routed chat call off the event loop.

        The blocking SDK call runs in a worker thread; on timeout the thread
        is left to finish and its result is dropped.
        """
        provider, model = self._route(task)
        return await self._call(provider, model, parts, system_instruction, temperature, json_output, timeout_s)

    @staticmethod
    async def _call(
        provider: BaseProvider,
        model: str,
        parts: Sequence[str],
        system_instruction: Optional[str],
        temperature: Optional[float],
        json_output: bool,
        timeout_s: Optional[float]
    ) -> str:
        call = asyncio.to_thread(
            provider.generate,
            model,
            list(parts),
            system_instruction=system_instruction,
            temperature=temperature,
            json_output=json_output,
        )
        if timeout_s is None:
            return await call
        return await asyncio.wait_for(call, timeout_s)

    async def run_model(
        self,
        label: str,
        task: str,
        parts: Sequence[str],
        system_prompt: str,
        timeout_s: float
    ) -> ModelRun:
        """
        Run one grading model and parse its JSON output.

        Never raises: the error is recorded on the returned ModelRun.
        """
        run = ModelRun(label=label, task=task)
        started = time.perf_counter()

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.json_attempts),
                retry=retry_if_exception_type(MalformedOutputError),
                reraise=True,
            ):
                with attempt:
                    run.attempts = attempt.retry_state.attempt_number
                    retrying = run.attempts > 1
                    # One resolution per attempt so the recorded route is the one called
                    provider, model = self._route(task)
                    run.provider_id, run.model = provider.id, model
                    text = await self._call(
                        provider,
                        model,
                        parts,
                        system_prompt + JSON_RETRY_SUFFIX if retrying else system_prompt,
                        0.0 if retrying else None,
                        True,
                        timeout_s,
                    )
                    parsed = extract_json_from_response(text or "")
                    if parsed is None:
                        raise MalformedOutputError(f"{label} returned invalid JSON")
                    run.parsed = parsed

        except asyncio.TimeoutError:
            run.error, run.error_kind = f"{label} timeout after {timeout_s}s", ERROR_TIMEOUT
        except MalformedOutputError as e:
            run.error, run.error_kind = str(e), ERROR_INVALID_JSON
        except Exception as e:
            run.error, run.error_kind = f"{label} failed: {e}", ERROR_PROVIDER
        finally:
            run.latency_ms = round((time.perf_counter() - started) * 1000, 1)

        if run.ok:
            logger.info(f"{label} ({run.provider_id}/{run.model}) answered in {run.latency_ms}ms")
        else:
            logger.warning(f"{label} failed after {run.attempts} attempt(s): {run.error}")
        return run

    async def run_primary_pair(self, request: GradingRequest) -> Tuple[ModelRun, ModelRun]:
        """Run graders A and B concurrently on the same request."""
        run_a, run_b = await asyncio.gather(
            self.run_model("Model A", TASK_ASSESSMENT, request.parts, request.system_prompt, self.timeout_s),
            self.run_model("Model B", TASK_ASSESSMENT_B, request.parts, request.system_prompt, self.timeout_s),
        )
        return run_a, run_b

    async def run_adjudicator(
        self,
        request: GradingRequest,
        run_a: ModelRun,
        run_b: ModelRun,
        instruction_suffix: str
    ) -> ModelRun:
        """Ask the adjudicator to resolve the primary outputs (either may be missing)."""
        return await self.run_model(
            "Adjudicator",
            TASK_ADJUDICATOR,
            request.adjudicator_parts(run_a, run_b),
            request.system_prompt + instruction_suffix,
            self.adjudicator_timeout_s,
        )
