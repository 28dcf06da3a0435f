"""HTTP boundary for the report pipeline.

Maps pipeline errors to status codes and wraps every failure in the
``{"error": {"code", "message", "details"}}`` envelope. The websocket route
runs the same request while streaming progress updates.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Literal, Optional, Tuple

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from slowapi.errors import RateLimitExceeded

from .config import (
    DEFAULT_LAST_X_MATCHES,
    DEFAULT_TIME_WINDOW,
    MAX_LAST_X_MATCHES,
    MIN_LAST_X_MATCHES,
    REPORT_RATE_LIMIT,
    cors_origins_from_env,
    settings_from_env,
)
from .generator import GenerateReportRequest, InsufficientDataError, ScoutingReportGenerator
from .grid_client import (
    GridAuthError,
    GridConfigError,
    GridGraphQLError,
    GridRequestError,
    is_permission_denied,
    is_rate_limited,
)
from .grid_ingest import TitleNotFoundError
from .ratelimit import ConnectionRateLimiter, build_limiter, rate_limit_key, retry_after_ms
from .team_resolver import TeamNotFoundError

logger = logging.getLogger(__name__)

RATE_LIMITED_MESSAGE = "Too many report requests; try again shortly."


class ScoutingReportBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: Literal["val", "lol"]
    opponent_team_name: str = Field(alias="opponentTeamName", min_length=1)
    last_x_matches: int = Field(
        default=DEFAULT_LAST_X_MATCHES, alias="lastXMatches", ge=MIN_LAST_X_MATCHES, le=MAX_LAST_X_MATCHES
    )
    time_window: str = Field(default=DEFAULT_TIME_WINDOW, alias="timeWindow")
    tournament_filter: Optional[str] = Field(default=None, alias="tournamentFilter")
    own_team_name: Optional[str] = Field(default=None, alias="ownTeamName")

    def to_request(self) -> GenerateReportRequest:
        return GenerateReportRequest(
            title=self.title,
            opponent_team_name=self.opponent_team_name.strip(),
            last_x_matches=self.last_x_matches,
            time_window=self.time_window,
            tournament_filter=self.tournament_filter or None,
            own_team_name=self.own_team_name or None,
        )


class InvalidRequestError(ValueError):
    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.details = details


def parse_report_request(payload: Any) -> GenerateReportRequest:
    try:
        report_request = ScoutingReportBody.model_validate(payload).to_request()
    except ValidationError as exc:
        raise InvalidRequestError(
            "Invalid request body.", exc.errors(include_url=False, include_context=False)
        ) from exc
    try:
        report_request.validate()
    except ValueError as exc:
        raise InvalidRequestError(str(exc)) from exc
    return report_request


def error_body(code: str, message: str, details: Any = None) -> Dict[str, Any]:
    return {"code": code, "message": message, "details": details}


def error_response(status: int, code: str, message: str, details: Any = None) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": error_body(code, message, details)})


def classify_error(exc: Exception) -> Tuple[int, str]:
    if isinstance(exc, (TeamNotFoundError, TitleNotFoundError)):
        return 404, "NOT_FOUND"
    if isinstance(exc, InsufficientDataError):
        return 422, "INSUFFICIENT_DATA"
    if isinstance(exc, GridConfigError):
        return 500, "CONFIG_ERROR"
    if isinstance(exc, GridAuthError):
        return exc.status, "UPSTREAM_AUTH"
    if isinstance(exc, GridGraphQLError):
        if is_rate_limited(exc):
            return 429, "UPSTREAM_RATE_LIMITED"
        if is_permission_denied(exc):
            return 403, "UPSTREAM_PERMISSION_DENIED"
        return 502, "UPSTREAM_GRAPHQL_ERROR"
    if isinstance(exc, GridRequestError):
        return 502, "UPSTREAM_UNAVAILABLE"
    return 500, "INTERNAL_ERROR"


def _log_failure(status: int, exc: Exception) -> None:
    if status >= 500:
        logger.exception(f"[api] report generation failed: {exc}")
    else:
        logger.info(f"[api] report generation rejected ({status}): {exc}")


def _error_details(exc: Exception) -> Any:
    return exc.context if isinstance(exc, GridGraphQLError) else None


def get_generator(request: Request) -> ScoutingReportGenerator:
    return request.app.state.generator


def create_app(
    generator: Optional[ScoutingReportGenerator] = None,
    rate_limit: str = REPORT_RATE_LIMIT,
    cors_origins: Optional[List[str]] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        owned = app.state.generator is None
        if owned:
            load_dotenv()
            app.state.generator = ScoutingReportGenerator.from_settings(settings_from_env())
        yield
        if owned:
            await app.state.generator.aclose()

    app = FastAPI(title="Scouting Report API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins if cors_origins is not None else cors_origins_from_env(),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.generator = generator
    limiter = build_limiter()
    app.state.limiter = limiter
    ws_limiter = ConnectionRateLimiter(rate_limit)

    async def rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        item, identifiers = request.state.view_rate_limit
        retry_ms = retry_after_ms(request.app.state.limiter.limiter, item, identifiers)
        logger.info(f"[api] rate limited {rate_limit_key(request)} ({exc.detail})")
        return error_response(429, "RATE_LIMITED", RATE_LIMITED_MESSAGE, {"retryAfterMs": retry_ms})

    app.add_exception_handler(RateLimitExceeded, rate_limited)

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/scouting-report")
    @limiter.limit(rate_limit)
    async def scouting_report(
        request: Request,
        generator: ScoutingReportGenerator = Depends(get_generator),
    ) -> Any:
        try:
            payload = await request.json()
        except ValueError:
            return error_response(400, "INVALID_REQUEST", "Request body must be JSON.")
        try:
            report_request = parse_report_request(payload)
        except InvalidRequestError as exc:
            return error_response(400, "INVALID_REQUEST", str(exc), exc.details)

        try:
            return await generator.generate(report_request)
        except Exception as exc:
            status, code = classify_error(exc)
            _log_failure(status, exc)
            return error_response(status, code, str(exc), _error_details(exc))

    @app.websocket("/ws/scouting-report")
    async def scouting_report_ws(websocket: WebSocket) -> None:
        await websocket.accept()
        generator: ScoutingReportGenerator = websocket.app.state.generator

        async def send_error(code: str, message: str, details: Any = None) -> None:
            await websocket.send_json(
                {"status": "error", "progress": 0, "message": message, "error": error_body(code, message, details)}
            )
            await websocket.close()

        try:
            decision = ws_limiter.check(rate_limit_key(websocket))
            if not decision.ok:
                await send_error("RATE_LIMITED", RATE_LIMITED_MESSAGE, {"retryAfterMs": decision.retry_after_ms})
                return

            try:
                payload = await websocket.receive_json()
            except ValueError:
                await send_error("INVALID_REQUEST", "Message must be JSON.")
                return
            try:
                report_request = parse_report_request(payload)
            except InvalidRequestError as exc:
                await send_error("INVALID_REQUEST", str(exc), exc.details)
                return

            async def progress(percent: int, message: str) -> None:
                await websocket.send_json({"status": "processing", "progress": percent, "message": message})

            try:
                result = await generator.generate(report_request, progress)
            except WebSocketDisconnect:
                raise
            except Exception as exc:
                status, code = classify_error(exc)
                _log_failure(status, exc)
                await send_error(code, str(exc), _error_details(exc))
                return

            await websocket.send_json(
                {"status": "completed", "progress": 100, "message": "Report ready.", "result": result}
            )
            await websocket.close()
        except WebSocketDisconnect:
            logger.info("[api] websocket client disconnected")

    return app
