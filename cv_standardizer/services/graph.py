"""
Per-candidate processing pipeline.

A LangGraph ``StateGraph`` sequences the run::

    extract -> parse -> evaluate -> generate -> render -> persist
        \\-> reject_empty (no text could be extracted)

Loading the candidate, the ``processing`` status write and the terminal
``error`` handling wrap the graph in ``CandidatePipeline.run_pipeline``.
Every run recomputes everything from the stored resume.
"""
import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple, TypedDict

from langgraph.graph import END, StateGraph

from cv_standardizer.helpers.parsing import extract_text
from cv_standardizer.helpers.prompts import (
    GENERATOR_SYSTEM_PROMPT,
    PARSER_SYSTEM_PROMPT,
    REPAIR_SYSTEM_PROMPT,
    build_generator_input,
    build_repair_input,
    truncate_for_model,
)
from cv_standardizer.models.models import (
    CandidateStatus,
    EvaluationResult,
    GeneratedContent,
    GenerateOptions,
    RawProfile,
    Requirements,
    ResumeRef,
)
from cv_standardizer.models.settings import PipelineSettings, load_settings
from cv_standardizer.services.db import get_store
from cv_standardizer.services.evaluation import evaluate
from cv_standardizer.services.json_recovery import parse_with_recovery
from cv_standardizer.services.normalization import fallback_content, normalize_generated_content, normalize_profile
from cv_standardizer.services.rendering import render_template
from cv_standardizer.utils.exceptions import GenerationDegraded, ParseFailure, UpstreamTimeout
from cv_standardizer.utils.logging_config import PerformanceMonitor, get_logger
from cv_standardizer.utils.utils import OllamaGenerator

logger = get_logger(__name__)

EMPTY_TEXT_NOTE = "No text could be extracted from the resume."
FAILURE_NOTE_PREFIX = "AI processing failed: "
DEFAULT_TEMPLATE_SETTING = "default_cv_template_key"
GENERATOR_THRESHOLD_MS = 30_000


class PipelineState(TypedDict, total=False):
    candidate_id: str
    candidate: Dict[str, Any]
    default_template_key: str
    text: str
    profile: RawProfile
    profile_recovered: bool
    requirements: Requirements
    evaluation: EvaluationResult
    content: GeneratedContent
    generation: Dict[str, Any]
    template_key: str
    markdown: str


def resume_of(candidate: Dict[str, Any]) -> Optional[ResumeRef]:
    """The candidate's resume locator; a list of uploads resolves to its first entry."""
    resume = candidate.get("resume")
    if isinstance(resume, list):
        resume = resume[0] if resume else None
    if not isinstance(resume, dict) or not resume.get("url"):
        return None
    return ResumeRef.model_validate(resume)


async def call_generator(generator, system: str, user: str, opts: GenerateOptions) -> str:
    """Run one generator call under ``opts.timeout_ms``."""
    try:
        return await asyncio.wait_for(generator.generate(system, user, opts), timeout=opts.timeout_ms / 1000)
    except asyncio.TimeoutError as e:
        raise UpstreamTimeout(f"Generator call timed out after {opts.timeout_ms}ms", timeout_ms=opts.timeout_ms, cause=e) from e


async def quick_extract_profile(text: str, generator, settings: Optional[PipelineSettings] = None) -> Tuple[RawProfile, bool]:
    """
    Truncate free text, run the parse-mode generator call and normalize the
    recovered JSON into a profile.

    Returns:
        (profile, recovered) where ``recovered`` tells whether the JSON needed repairs

    Raises:
        ParseFailure: the generator output is not a JSON object
        UpstreamError: the generator call failed or timed out
    """
    settings = settings or PipelineSettings()
    llm = settings.llm_settings
    prompt_text = truncate_for_model(text, settings.processing_settings.max_cv_chars)
    if len(prompt_text) < len(text):
        logger.info(f"CV text truncated from {len(text)} to {len(prompt_text)} chars")
    raw = await call_generator(
        generator, PARSER_SYSTEM_PROMPT, prompt_text,
        GenerateOptions(timeout_ms=llm.parse_timeout_ms, max_output_tokens=llm.parse_max_tokens, temperature=llm.temperature),
    )
    result = parse_with_recovery(raw)
    if not isinstance(result.value, dict):
        raise ParseFailure(
            f"Expected a JSON object for the profile, got {type(result.value).__name__}",
            stage="parse",
        )
    return normalize_profile(result.value), result.recovered


class CandidatePipeline:
    """Runs one candidate from stored resume to rendered standardized CV."""

    def __init__(
        self,
        store,
        generator,
        extractor: Callable[..., str] = extract_text,
        settings: Optional[PipelineSettings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.generator = generator
        self.extractor = extractor
        self.settings = settings or PipelineSettings()
        self.clock = clock
        self.graph = self.build_graph()

    def build_graph(self):
        g = StateGraph(PipelineState)
        g.add_node("extract", self.node_extract)
        g.add_node("reject_empty", self.node_reject_empty)
        g.add_node("parse", self.node_parse)
        g.add_node("evaluate", self.node_evaluate)
        g.add_node("generate", self.node_generate)
        g.add_node("render", self.node_render)
        g.add_node("persist", self.node_persist)
        g.set_entry_point("extract")
        g.add_conditional_edges(
            "extract",
            lambda state: "parse" if state.get("text") else "reject_empty",
            {"parse": "parse", "reject_empty": "reject_empty"},
        )
        g.add_edge("reject_empty", END)
        g.add_edge("parse", "evaluate")
        g.add_edge("evaluate", "generate")
        g.add_edge("generate", "render")
        g.add_edge("render", "persist")
        g.add_edge("persist", END)
        return g.compile()

    async def run_pipeline(self, candidate_id: str) -> None:
        """
        Process one candidate. Safe to re-invoke; every run starts over.

        A candidate without a resume is skipped silently. An empty resume
        ends in ``error`` without raising. Any other failure ends in
        ``error`` and is re-raised.
        """
        candidate = await self.store.get_candidate(candidate_id)
        if candidate is None:
            logger.warning(f"Candidate {candidate_id} not found, nothing to process")
            return
        if resume_of(candidate) is None:
            logger.info(f"Candidate {candidate_id} has no resume, skipping")
            return

        try:
            default_key = await self.store.get_setting(
                DEFAULT_TEMPLATE_SETTING, self.settings.processing_settings.default_template_key
            )
            await self.store.update_candidate(candidate_id, {"status": CandidateStatus.PROCESSING.value})
            logger.info(f"Processing candidate {candidate_id}")

            with PerformanceMonitor(f"candidate {candidate_id} pipeline", logger, threshold_ms=4 * GENERATOR_THRESHOLD_MS):
                await self.graph.ainvoke({
                    "candidate_id": candidate_id,
                    "candidate": candidate,
                    "default_template_key": default_key,
                })
        except Exception as e:
            message = str(e) or e.__class__.__name__
            await self.store.update_candidate(candidate_id, {
                "status": CandidateStatus.ERROR.value,
                "processing_note": f"{FAILURE_NOTE_PREFIX}{message}",
            })
            logger.error(f"Failed candidate {candidate_id}: {message}")
            raise

    async def node_extract(self, state: PipelineState):
        candidate_id = state["candidate_id"]
        ref = resume_of(state["candidate"])
        with PerformanceMonitor(f"candidate {candidate_id} extract", logger):
            text = await asyncio.to_thread(self.extractor, ref, self.settings.processing_settings.resume_root)
        text = (text or "").strip()
        return {"text": text}

    async def node_reject_empty(self, state: PipelineState):
        candidate_id = state["candidate_id"]
        await self.store.update_candidate(candidate_id, {
            "status": CandidateStatus.ERROR.value,
            "processing_note": EMPTY_TEXT_NOTE,
        })
        logger.warning(f"Candidate {candidate_id}: {EMPTY_TEXT_NOTE}")
        return {"text": ""}

    async def node_parse(self, state: PipelineState):
        candidate_id = state["candidate_id"]
        with PerformanceMonitor(f"candidate {candidate_id} parse", logger, threshold_ms=GENERATOR_THRESHOLD_MS):
            profile, recovered = await quick_extract_profile(state["text"], self.generator, self.settings)
        if recovered:
            logger.warning(f"Candidate {candidate_id}: parse output needed JSON recovery")
        return {"profile": profile, "profile_recovered": recovered}

    async def node_evaluate(self, state: PipelineState):
        candidate_id = state["candidate_id"]
        with PerformanceMonitor(f"candidate {candidate_id} evaluate", logger, threshold_ms=100):
            requirements = await self.store.get_requirements(state["candidate"].get("job_posting_id"))
            evaluation = evaluate(
                requirements,
                state["profile"],
                now=self.clock(),
                settings=self.settings.scoring_settings,
                matching=self.settings.matching_settings,
            )
        logger.info(f"Candidate {candidate_id} scored {evaluation.score}: {evaluation.notes}")
        return {"requirements": requirements, "evaluation": evaluation}

    async def node_generate(self, state: PipelineState):
        candidate_id = state["candidate_id"]
        with PerformanceMonitor(f"candidate {candidate_id} generate", logger, threshold_ms=GENERATOR_THRESHOLD_MS):
            content, meta = await self.generate_content(candidate_id, state["profile"], state["evaluation"])
        return {"content": normalize_generated_content(content), "generation": meta}

    async def node_render(self, state: PipelineState):
        markdown, template_key = render_template(
            state["candidate"].get("cv_template_key"),
            state["content"],
            default_key=state.get("default_template_key") or self.settings.processing_settings.default_template_key,
        )
        return {"markdown": markdown, "template_key": template_key}

    async def node_persist(self, state: PipelineState):
        candidate_id = state["candidate_id"]
        candidate = state["candidate"]
        profile: RawProfile = state["profile"]
        evaluation: EvaluationResult = state["evaluation"]
        generation = state["generation"]

        fields: Dict[str, Any] = {
            "status": CandidateStatus.PROCESSED.value,
            "extracted_data": {
                "profile": profile.model_dump(by_alias=True),
                "evaluation": evaluation.model_dump(by_alias=True),
                "generatedContent": state["content"].model_dump(by_alias=True),
                "cvTemplateKeyUsed": state["template_key"],
                "recovery": {
                    "profileRecovered": state.get("profile_recovered", False),
                    "contentRecovered": generation["recovered"],
                    "contentRepaired": generation["repaired"],
                    "contentDegraded": generation["degraded"],
                },
            },
            "score": evaluation.score,
            "standardized_cv_markdown": state["markdown"],
            "processing_note": None,
        }
        # never overwrite user-provided identity
        if not candidate.get("full_name") and profile.contact.full_name:
            fields["full_name"] = profile.contact.full_name
        if not candidate.get("email") and profile.contact.email:
            fields["email"] = profile.contact.email

        await self.store.update_candidate(candidate_id, fields)
        logger.info(f"Candidate {candidate_id} processed with template '{state['template_key']}'")
        return {"template_key": state["template_key"]}

    def _generate_options(self, timeout_ms: int) -> GenerateOptions:
        llm = self.settings.llm_settings
        return GenerateOptions(timeout_ms=timeout_ms, max_output_tokens=llm.generate_max_tokens, temperature=llm.temperature)

    @staticmethod
    def _parse_content(raw: str) -> Tuple[GeneratedContent, bool]:
        result = parse_with_recovery(raw)
        if not isinstance(result.value, dict):
            raise ParseFailure("Generated content is not a JSON object", stage="generate")
        return normalize_generated_content(result.value), result.recovered

    async def generate_content(
        self, candidate_id: str, profile: RawProfile, evaluation: EvaluationResult
    ) -> Tuple[GeneratedContent, Dict[str, Any]]:
        """
        Polished content for the renderer, with at most two generator calls.

        Unparsable output gets one repair call; a failed call gets one more
        generate call. If the second attempt fails too, content is built from
        the profile instead.
        """
        llm = self.settings.llm_settings
        meta = {"attempts": 1, "recovered": False, "repaired": False, "degraded": False}
        user_prompt = build_generator_input(profile, evaluation)

        raw = None
        try:
            raw = await call_generator(self.generator, GENERATOR_SYSTEM_PROMPT, user_prompt, self._generate_options(llm.generate_timeout_ms))
            content, meta["recovered"] = self._parse_content(raw)
            return content, meta
        except Exception as e:
            first_error = e
            logger.warning(f"Candidate {candidate_id}: content generation attempt 1 failed: {e}")

        meta["attempts"] = 2
        try:
            if raw is None:
                raw = await call_generator(self.generator, GENERATOR_SYSTEM_PROMPT, user_prompt, self._generate_options(llm.generate_timeout_ms))
            else:
                meta["repaired"] = True
                raw = await call_generator(self.generator, REPAIR_SYSTEM_PROMPT, build_repair_input(raw), self._generate_options(llm.repair_timeout_ms))
            content, meta["recovered"] = self._parse_content(raw)
            return content, meta
        except Exception as e:
            degraded = GenerationDegraded(
                f"Content generation failed twice ({first_error}; {e}), using profile content",
                attempts=2, cause=e,
            )
            logger.warning(f"Candidate {candidate_id}: {degraded.message}")

        meta["degraded"] = True
        return fallback_content(profile), meta


_pipeline: Optional[CandidatePipeline] = None


def get_pipeline() -> CandidatePipeline:
    global _pipeline
    if _pipeline is None:
        settings = load_settings()
        _pipeline = CandidatePipeline(
            store=get_store(),
            generator=OllamaGenerator(settings.llm_settings),
            extractor=extract_text,
            settings=settings,
        )
    return _pipeline
