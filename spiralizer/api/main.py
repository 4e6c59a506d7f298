"""FastAPI application exposing the spiral engine."""

from typing import List, Optional, Tuple

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, Field

from .. import __version__
from ..cache.manager import ComputeResult, SpiralEngine
from ..config import Settings, get_settings
from ..core.colors import Palette
from ..core.errors import ValidationError
from ..core.performance import PerformanceProfile, select_profile
from ..logging_config import configure_logging
from ..render import export_bytes, make_filename

logger = structlog.get_logger()

MEDIA_TYPES = {"png": "image/png", "svg": "image/svg+xml"}


# Request/Response models
class SpiralRequest(BaseModel):
    """Parameters of a spiral computation."""

    angle_start: float = Field(0, description="Starting angle in radians")
    angle_end: float = Field(100, description="Ending angle in radians")
    num_points: int = Field(300, description="Number of spiral points")
    truncate: bool = Field(False, description="Drop outlier points by radius")
    truncate_factor: Optional[float] = Field(None, gt=0, description="Multiple of the median radius to keep")
    slot: Optional[str] = Field(None, description="UI slot; newer requests supersede older ones")


class RenderRequest(SpiralRequest):
    """Spiral parameters plus palette options."""

    palette: Optional[str] = Field(None, description="Palette name (turbo, viridis, ..., custom)")
    invert: bool = Field(False, description="Reverse the palette")
    custom_start: Optional[str] = Field(None, description="Custom palette start color")
    custom_end: Optional[str] = Field(None, description="Custom palette end color")


class ValidationResponse(BaseModel):
    valid: bool
    message: str


class SpiralResponse(BaseModel):
    """Summary of a computed spiral."""

    cache_key: str
    source: str
    stale: bool
    point_count: int
    cell_count: int
    bounded_count: int
    elapsed_ms: float
    limits: Tuple[float, float]


class CellPolygon(BaseModel):
    polygon: List[Tuple[float, float]]
    color: str


class RenderResponse(BaseModel):
    """Bounded cell polygons with their colors for client-side drawing."""

    cache_key: str
    limits: Tuple[float, float]
    cells: List[CellPolygon]


class PaletteResponse(BaseModel):
    palette: str
    colors: List[str]


class ProfileResponse(BaseModel):
    mode: str
    max_points: int
    debounce_ms: int
    cache_size_mb: int
    enable_animations: bool


def get_engine(request: Request) -> SpiralEngine:
    """Engine created at startup for this process."""
    return request.app.state.engine


def _result_or_error(result: ComputeResult) -> ComputeResult:
    """Map failed or superseded results onto HTTP errors."""
    if result.error is not None:
        status = 422 if isinstance(result.error, ValidationError) else 400
        raise HTTPException(status_code=status, detail=result.message)
    if result.entry is None:
        raise HTTPException(status_code=409, detail="Request superseded by a newer one")
    return result


def _compute_sync(engine: SpiralEngine, request: SpiralRequest) -> ComputeResult:
    params = engine.make_params(request.angle_start, request.angle_end, request.num_points,
                                request.truncate, request.truncate_factor)
    return _result_or_error(engine.compute(params, slot=request.slot))


def create_app(settings: Optional[Settings] = None,
               profile: Optional[PerformanceProfile] = None) -> FastAPI:
    """Build the API around one SpiralEngine owned by the app's lifetime."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Spiralizer API",
        description="Voronoi artwork from Fermat spirals",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Event handlers
    @app.on_event("startup")
    async def startup_event():
        """Create the engine and warm the cache."""
        configure_logging(settings.log_level, settings.log_format)
        logger.info("Starting Spiralizer API", profile=settings.profile)

        active_profile = profile or select_profile(settings)
        engine = SpiralEngine.from_settings(settings, profile=active_profile)
        app.state.engine = engine
        app.state.profile = active_profile

        if settings.cache.warm_on_startup:
            engine.warm_cache()
        logger.info("API startup complete")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Release the precomputed store connection."""
        logger.info("Shutting down Spiralizer API")
        app.state.engine.close()

    # API endpoints
    @app.get("/")
    async def root():
        return {"message": "Spiralizer API", "version": __version__, "status": "running"}

    @app.get("/health")
    async def health_check(engine: SpiralEngine = Depends(get_engine)):
        return {"status": "healthy",
                "precomputed": engine.store.kind if engine.store else None}

    @app.post("/validate", response_model=ValidationResponse)
    async def validate(request: SpiralRequest, engine: SpiralEngine = Depends(get_engine)):
        result = engine.validate(request.angle_start, request.angle_end, request.num_points)
        return ValidationResponse(valid=result.valid, message=result.message)

    @app.post("/spiral", response_model=SpiralResponse)
    async def compute_spiral(request: SpiralRequest, engine: SpiralEngine = Depends(get_engine)):
        """Compute (or fetch from cache) a spiral tessellation."""
        params = engine.make_params(request.angle_start, request.angle_end, request.num_points,
                                    request.truncate, request.truncate_factor)
        result = _result_or_error(await engine.compute_async(params, slot=request.slot))
        entry = result.entry

        return SpiralResponse(
            cache_key=params.cache_key,
            source=result.source,
            stale=result.stale,
            point_count=len(entry.points),
            cell_count=entry.tessellation.cell_count,
            bounded_count=entry.bounded_count,
            elapsed_ms=entry.elapsed_ms,
            limits=engine.plot_limits(entry),
        )

    @app.post("/spiral/limits")
    def spiral_limits(request: SpiralRequest, engine: SpiralEngine = Depends(get_engine)):
        """Symmetric plot limits for a spiral."""
        result = _compute_sync(engine, request)
        return {"cache_key": result.params.cache_key, "limits": engine.plot_limits(result.entry)}

    @app.post("/spiral/render", response_model=RenderResponse)
    def render_spiral(request: RenderRequest, engine: SpiralEngine = Depends(get_engine)):
        """Bounded cell polygons and colors for the live view."""
        result = _compute_sync(engine, request)
        entry = result.entry
        colors = engine.colors(request.palette, entry.bounded_count, request.invert,
                               request.custom_start, request.custom_end)
        cells = [CellPolygon(polygon=[tuple(v) for v in cell.polygon().tolist()], color=color)
                 for cell, color in zip(entry.tessellation.bounded_cells, colors)]
        return RenderResponse(cache_key=result.params.cache_key,
                              limits=engine.plot_limits(entry), cells=cells)

    @app.get("/palette", response_model=PaletteResponse)
    async def palette(name: str = Query(Palette.TURBO.value),
                      n: int = Query(..., ge=0, le=100_000),
                      invert: bool = False,
                      custom_start: Optional[str] = None,
                      custom_end: Optional[str] = None,
                      engine: SpiralEngine = Depends(get_engine)):
        colors = engine.colors(name, n, invert, custom_start, custom_end)
        return PaletteResponse(palette=name, colors=colors)

    @app.get("/estimate")
    async def estimate(num_points: int = Query(..., ge=0),
                       engine: SpiralEngine = Depends(get_engine)):
        return {"num_points": num_points, "estimate_ms": engine.estimate_time(num_points)}

    @app.get("/profile", response_model=ProfileResponse)
    async def get_profile(request: Request):
        active: PerformanceProfile = request.app.state.profile
        return ProfileResponse(mode=active.mode.value, max_points=active.max_points,
                               debounce_ms=active.debounce_ms,
                               cache_size_mb=active.cache_size_mb,
                               enable_animations=active.enable_animations)

    def _export(fmt: str, request: RenderRequest, engine: SpiralEngine) -> Response:
        result = _compute_sync(engine, request)
        entry = result.entry
        colors = engine.colors(request.palette, entry.bounded_count, request.invert,
                               request.custom_start, request.custom_end)
        content = export_bytes(entry, fmt, colors, engine.plot_limits(entry), settings.export)
        filename = make_filename(result.params, fmt)
        return Response(content=content, media_type=MEDIA_TYPES[fmt],
                        headers={"Content-Disposition": f'attachment; filename="{filename}"'})

    @app.post("/export/png")
    def export_png(request: RenderRequest, engine: SpiralEngine = Depends(get_engine)):
        return _export("png", request, engine)

    @app.post("/export/svg")
    def export_svg(request: RenderRequest, engine: SpiralEngine = Depends(get_engine)):
        return _export("svg", request, engine)

    @app.get("/cache/stats")
    async def cache_stats(engine: SpiralEngine = Depends(get_engine)):
        return engine.stats()

    @app.post("/cache/clear")
    async def cache_clear(engine: SpiralEngine = Depends(get_engine)):
        engine.clear()
        return {"status": "cleared"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    active = get_settings()
    uvicorn.run(app, host=active.api_host, port=active.api_port)
