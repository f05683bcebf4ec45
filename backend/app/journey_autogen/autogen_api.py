"""
AutoGen API Endpoints
Pipeline state, step mapping, test generation and failure classification
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from .codegen.generator import GenerateTestOptions, generate_test
from .config import AutogenConfig
from .context import AutogenContext
from .core.step_matcher import StepMatcher
from .errors import AutogenError, JourneyValidationError
from .journey.normalizer import normalize_journey, validate_journey_for_codegen
from .journey.parser import parse_journey_for_autogen
from .pipeline.state import PipelineStage, PipelineStateMachine
from .verify.classifier import classify_output

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/autogen", tags=["autogen"])

_config: Optional[AutogenConfig] = None


def get_config() -> AutogenConfig:
    """Configuration from the environment, loaded once"""
    global _config
    if _config is None:
        _config = AutogenConfig.from_env(strict=False)
    return _config


def get_state_machine(config: AutogenConfig = Depends(get_config)) -> PipelineStateMachine:
    return PipelineStateMachine(config=config)


def get_matcher(config: AutogenConfig = Depends(get_config)) -> StepMatcher:
    return StepMatcher.default(config)


def get_context(config: AutogenConfig = Depends(get_config)) -> AutogenContext:
    return AutogenContext(config=config)


# ==================== Request models ====================

class TransitionRequest(BaseModel):
    command: str
    target: PipelineStage
    journey_ids: Optional[List[str]] = None
    test_paths: Optional[List[str]] = None
    blocked_reason: Optional[str] = None


class MapStepRequest(BaseModel):
    text: str


class GenerateRequest(BaseModel):
    journey_markdown: str
    existing_code: Optional[str] = None
    source_path: str = "virtual.journey.md"
    strict: bool = False
    include_comments: bool = True


class ClassifyRequest(BaseModel):
    output: str
    exit_code: int = 1


# ==================== Endpoints ====================

@router.get("/status")
async def get_status(machine: PipelineStateMachine = Depends(get_state_machine)):
    """Current pipeline state summary"""
    return machine.summary()


@router.post("/transition")
async def transition(request: TransitionRequest, machine: PipelineStateMachine = Depends(get_state_machine)):
    """Move the pipeline to another stage"""
    result = machine.transition(
        request.command,
        request.target,
        journey_ids=request.journey_ids,
        test_paths=request.test_paths,
        blocked_reason=request.blocked_reason,
    )
    if not result.ok:
        raise HTTPException(status_code=409, detail=result.reason)
    return {"success": True, "state": result.state.to_json()}


@router.post("/reset")
async def reset(machine: PipelineStateMachine = Depends(get_state_machine)):
    """Start over from the initial stage"""
    state = machine.reset()
    return {"success": True, "state": state.to_json()}


@router.post("/map-step")
async def map_step(
    request: MapStepRequest,
    matcher: StepMatcher = Depends(get_matcher),
    ctx: AutogenContext = Depends(get_context)
):
    """Map one step sentence to an IR instruction"""
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Step text is required")

    result = matcher.map_step_text(request.text, ctx)
    return {
        "primitive": result.primitive.to_wire(),
        "tier": result.matched_tier,
        "confidence": result.confidence,
        "patternName": result.pattern_name,
        "isAssertion": result.is_assertion,
        "blocked": result.is_blocked,
        "message": result.message,
    }


@router.post("/generate")
async def generate(
    request: GenerateRequest,
    matcher: StepMatcher = Depends(get_matcher),
    ctx: AutogenContext = Depends(get_context)
):
    """Journey markdown to Playwright test code, merged into existing code when given"""
    try:
        parsed = parse_journey_for_autogen(request.journey_markdown, request.source_path)
        normalized = normalize_journey(parsed, matcher=matcher, ctx=ctx, strict=request.strict)
    except JourneyValidationError as e:
        raise HTTPException(status_code=422, detail={"code": e.code, "errors": e.errors})
    except AutogenError as e:
        raise HTTPException(status_code=400, detail={"code": e.code, "errors": [e.message]})

    options = GenerateTestOptions(
        include_comments=request.include_comments,
        strategy="blocks" if request.existing_code else "full",
        existing_code=request.existing_code,
    )
    result = generate_test(normalized.journey, options)
    ready, problems = validate_journey_for_codegen(normalized)

    logger.info(f"[API] Generated {result.filename} ({normalized.stats['blocked_steps']} blocked)")
    return {
        "code": result.code,
        "filename": result.filename,
        "journeyId": result.journey_id,
        "ir": normalized.journey.to_wire(),
        "blockedSteps": [
            {"stepId": b.step_id, "sourceText": b.source_text, "reason": b.reason}
            for b in normalized.blocked_steps
        ],
        "warnings": normalized.warnings + problems,
        "ready": ready,
        "stats": normalized.stats,
    }


@router.post("/classify")
async def classify(request: ClassifyRequest) -> Dict[str, Any]:
    """Classify Playwright failure output"""
    failures = classify_output(request.output, request.exit_code)
    return {
        "failures": [
            {
                "category": f.category.value,
                "message": f.message,
                "location": (
                    {"file": f.location.file, "line": f.location.line, "column": f.location.column}
                    if f.location else None
                ),
                "suggestion": f.suggestion,
                "testTitle": f.test_title,
            }
            for f in failures
        ],
        "count": len(failures),
    }
