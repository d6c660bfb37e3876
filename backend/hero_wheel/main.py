"""Hero Wheel FastAPI Application."""
import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles

from hero_wheel.config import settings
from hero_wheel.constants import SUPERHEROES, build_prompt
from hero_wheel.errors import ErrorCode, WheelError
from hero_wheel.generation import create_generator
from hero_wheel.logic.models import SpinAdmission, SpinOutcome, SpinPlan
from hero_wheel.logic.rng import ProductionRNG
from hero_wheel.logic.wheel import SpinWheel
from hero_wheel.middleware import (
    ClientKeyMiddleware,
    ErrorHandlerMiddleware,
    RateLimitMiddleware,
)
from hero_wheel.protocol import (
    GenerateRequest,
    HistoryItem,
    HistoryResponse,
    SpinAnimation,
    SpinRequest,
    SpinResponse,
    UploadResponse,
    WheelConfiguration,
)
from hero_wheel.rate_limit import InMemoryRateLimitStore, RateLimiter
from hero_wheel.redis_service import redis_service
from hero_wheel.storage import FILES_ROUTE, RESULTS_FOLDER, UPLOADS_FOLDER, image_storage
from hero_wheel.telemetry import (
    GenerationCompletedEvent,
    GenerationFailedEvent,
    SpinCompletedEvent,
    telemetry_service,
)
from hero_wheel.validators import validate_generate_request, validate_upload


logger = logging.getLogger(__name__)


def build_rate_limiter() -> RateLimiter:
    """In-process limiter configured from settings."""
    return RateLimiter(
        store=InMemoryRateLimitStore(),
        max_requests=settings.rate_limit_max_requests,
        window_ms=settings.rate_limit_window_ms,
        cleanup_threshold=settings.rate_limit_cleanup_threshold,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage Redis connection and storage directories."""
    image_storage.ensure_dirs()
    await redis_service.connect()
    yield
    await redis_service.close()


app = FastAPI(
    title="Hero Wheel",
    version="0.1.0",
    description="Spin a wheel of superheroes and turn your photo into the winner",
    lifespan=lifespan,
)
app.state.rate_limiter = build_rate_limiter()

# Last added runs first: errors -> client key -> rate limit -> route
app.add_middleware(RateLimitMiddleware)
app.add_middleware(ClientKeyMiddleware)
app.add_middleware(ErrorHandlerMiddleware)

app.mount(
    FILES_ROUTE,
    StaticFiles(directory=settings.storage_root, check_dir=False),
    name="files",
)

wheel_rng = ProductionRNG()
image_generator = create_generator()


def _now_ms() -> float:
    return time.time() * 1000


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/heroes")
async def heroes() -> dict:
    """Wheel layout, art styles and upload limits."""
    return WheelConfiguration().model_dump()


@app.post("/upload")
async def upload(request: Request, image: UploadFile | None = File(default=None)) -> dict:
    """
    POST /upload (multipart field `image`).

    Stores the photo and returns its public URL for /spin and /generate.
    """
    if image is None:
        raise WheelError(ErrorCode.INVALID_REQUEST, "No image file provided")

    # Read one byte past the limit so oversize files are detected without reading them whole
    data = await image.read(settings.max_image_size + 1)
    validate_upload(image.content_type, len(data))

    stored = await image_storage.save(data, image.content_type, UPLOADS_FOLDER)
    logger.info("Upload from %s stored at %s", request.state.client_key, stored.url)

    return UploadResponse(
        imageUrl=stored.url,
        filename=stored.filename,
        size=stored.size,
        type=stored.content_type,
    ).model_dump()


@app.post("/spin")
async def spin(request: Request, body: SpinRequest) -> dict:
    """
    POST /spin.

    Implements:
    - Wheel admission (disabled without a photo, busy while the last spin animates)
    - Spin plan from the client's last resting angle
    - Outcome decoding from the final angle
    - Persisting the new resting angle and in-flight plan
    """
    client_key = request.state.client_key
    now_ms = _now_ms()
    spin_id = str(uuid.uuid4())

    # 1) Restore the client's wheel
    state = await redis_service.get_wheel_state(client_key) or {}

    def emit_completed(outcome: SpinOutcome) -> None:
        telemetry_service.emit_spin_completed(
            SpinCompletedEvent(
                client_key=client_key,
                spin_id=spin_id,
                hero=outcome.label,
                hero_index=outcome.index,
                full_rotations=outcome.plan.full_rotations,
                duration_ms=outcome.plan.duration_ms,
            )
        )

    wheel = SpinWheel(
        SUPERHEROES,
        rng=wheel_rng,
        angle=state.get("angle", 0.0),
        on_complete=emit_completed,
        min_rotations=settings.spin_min_rotations,
        max_rotations=settings.spin_max_rotations,
        min_duration_ms=settings.spin_min_duration_ms,
        max_duration_ms=settings.spin_max_duration_ms,
    )
    in_flight = state.get("plan")
    if in_flight is not None:
        plan = SpinPlan(**in_flight)
        if now_ms < plan.end_time_ms:
            wheel.resume(plan)
    wheel.disabled = not body.imageUrl

    # 2) Admission
    admission = wheel.spin(now_ms)
    if admission == SpinAdmission.DISABLED:
        raise WheelError(ErrorCode.WHEEL_DISABLED, "Upload a photo before spinning the wheel.")
    if admission == SpinAdmission.BUSY:
        raise WheelError(ErrorCode.SPIN_IN_PROGRESS, "The wheel is still spinning.")

    # 3) Resolve: the outcome depends only on the final angle, so jump to the end
    plan = wheel.plan
    update = wheel.tick(plan.end_time_ms)
    outcome = update.outcome

    # 4) Persist resting angle; the plan keeps the wheel busy until it ends
    await redis_service.save_wheel_state(
        client_key,
        {"angle": outcome.final_angle, "plan": plan.model_dump()},
    )

    return SpinResponse(
        spinId=spin_id,
        hero=outcome.label,
        heroIndex=outcome.index,
        finalAngle=outcome.final_angle,
        animation=SpinAnimation(
            startAngle=plan.start_angle,
            targetAngle=plan.target_angle,
            fullRotations=plan.full_rotations,
            randomOffset=plan.random_offset,
            durationMs=plan.duration_ms,
        ),
    ).model_dump()


@app.post("/generate")
async def generate(request: Request, body: GenerateRequest) -> Response:
    """
    POST /generate.

    Returns the generated image bytes. With result saving enabled the image is
    also stored, its URL returned in X-Result-Url and recorded in history.
    """
    client_key = request.state.client_key

    # 1) Validate request
    validate_generate_request(body)
    hero = body.selectedHero
    style = body.style

    # 2) Fixed prompt, no user text
    prompt = build_prompt(hero, style)

    # 3) One generation per client at a time
    async with redis_service.client_lock(client_key) as lock_metrics:
        t0 = time.monotonic()
        try:
            image = await image_generator.generate(prompt, body.imageUrl, body.seed)
        except WheelError as e:
            telemetry_service.emit_generation_failed(
                GenerationFailedEvent(
                    client_key=client_key,
                    hero=hero,
                    style=style,
                    provider=image_generator.name,
                    reason=e.code.value,
                    elapsed_ms=(time.monotonic() - t0) * 1000,
                )
            )
            raise
        elapsed_ms = (time.monotonic() - t0) * 1000

        headers = {
            "Cache-Control": "no-store",
            "X-Hero": hero,
            "X-Style": style,
        }

        # 4) Persist result and record history
        if settings.save_results:
            stored = await image_storage.save(image.content, image.content_type, RESULTS_FOLDER)
            headers["X-Result-Url"] = stored.url
            await redis_service.push_history(
                client_key,
                HistoryItem(
                    id=str(uuid.uuid4()),
                    originalImage=body.imageUrl,
                    generatedImage=stored.url,
                    hero=hero,
                    style=style,
                    createdAt=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
                ).model_dump(),
            )

        telemetry_service.emit_generation_completed(
            GenerationCompletedEvent(
                client_key=client_key,
                hero=hero,
                style=style,
                provider=image_generator.name,
                image_bytes=len(image.content),
                content_type=image.content_type,
                elapsed_ms=elapsed_ms,
                lock_acquire_ms=lock_metrics.acquire_ms,
                result_saved=settings.save_results,
            )
        )

    return Response(content=image.content, media_type=image.content_type, headers=headers)


@app.get("/history")
async def history(request: Request) -> dict:
    """Recent generations for this client, newest first."""
    items = await redis_service.get_history(request.state.client_key)
    return HistoryResponse(items=[HistoryItem(**item) for item in items]).model_dump()


@app.delete("/history")
async def clear_history(request: Request) -> dict:
    """Forget this client's generations."""
    await redis_service.clear_history(request.state.client_key)
    return HistoryResponse().model_dump()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run(
        "hero_wheel.main:app",
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "info",
    )
