"""
Capacity Planner Sidecar - FastAPI application

Endpoints:
- POST /classify/zone - Classify a host from utilization averages and peaks
- POST /model/cost - Monthly cost delta of a resize recommendation
- POST /analyze/host - Analyse the latest backup of one host
- POST /analyze/fleet - Full fleet run with ledger append and trends
"""

from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional
import asyncio
import logging
import os

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from capacity_planner import __version__
from capacity_planner.analysis import AnalysisRecord, FleetAnalyzer, FleetReport, HostAnalyzer
from capacity_planner.classifier import Recommendation, ZoneClassifier
from capacity_planner.config import Settings
from capacity_planner.inventory import HostSkipped, latest_backup, resolve_host_dir
from capacity_planner.optimizer import CostModeler, load_family_catalog, load_pricing_catalog
from capacity_planner.trends import HistoricalLedger

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# ============================================================================
# Request/Response Models
# ============================================================================

class ZoneClassifyRequest(BaseModel):
    """Utilization summary of one host."""
    avg_cpu: float = Field(..., ge=0, le=100)
    avg_mem: float = Field(..., ge=0, le=100)
    peak_cpu: float = Field(0, ge=0)
    peak_mem: float = Field(0, ge=0)
    vcpu_count: Optional[int] = Field(None, ge=0, description="Unknown compares as 0")
    memory_gb: Optional[float] = Field(None, ge=0, description="Unknown compares as 0")


class ZoneClassifyResponse(BaseModel):
    zone: str
    recommendation: str
    cpu_state: str
    mem_state: str


class CostModelRequest(BaseModel):
    """Request for a resize cost delta."""
    instance_type: str
    recommendation: str = Field(..., description="upsize, downsize, or any other recommendation")


class CostModelResponse(BaseModel):
    instance_type: str
    recommendation: str
    target_instance_type: Optional[str]
    monthly_delta: float


class HostAnalyzeRequest(BaseModel):
    hostname: str = Field(..., min_length=1)
    days: Optional[int] = Field(None, ge=1, description="Analysis window override")


class AnalysisRecordResponse(BaseModel):
    """One host's result; mirrors the pipe-delimited result row."""
    hostname: str
    avg_cpu: Optional[float]
    peak_cpu: Optional[float]
    avg_mem: Optional[float]
    peak_mem: Optional[float]
    zone: str
    recommendation: str
    vcpu_count: Optional[int]
    memory_gb: Optional[float]
    platform: str
    instance_type: str
    cpu_state: str
    mem_state: str
    cpu_cv: int
    mem_cv: int
    daily_cpu: List[float]
    daily_mem: List[float]
    monthly_savings: float
    row: str


class FleetAnalyzeRequest(BaseModel):
    host: Optional[str] = Field(None, description="Restrict the run to one host directory")
    days: Optional[int] = Field(None, ge=1)
    today: Optional[date] = Field(None, description="Run date; defaults to the current date")


class SkippedHostResponse(BaseModel):
    hostname: str
    reason: str


class StaleHostResponse(BaseModel):
    hostname: str
    last_backup: date
    age_days: int


class StorageFindingResponse(BaseModel):
    hostname: str
    mount_point: str
    provisioned_gb: float
    used_gb: float
    used_percent: float
    status: str


class FleetSummaryResponse(BaseModel):
    total_hosts: int
    analyzed: int
    hot: int
    optimize: int
    cold: int
    optimal: int
    no_data: int
    stale: int
    skipped: int
    action_required: int
    efficiency: float
    potential_monthly_savings: float
    underutilized_storage: int


class SustainedStatusResponse(BaseModel):
    status: str
    hostname: str
    instance_type: str
    vcpu_count: Optional[int]
    memory_gb: Optional[float]
    avg_cpu: Optional[float]
    avg_mem: Optional[float]
    monthly_savings: float


class TrendResponse(BaseModel):
    as_of: date
    reference_date: date
    current_efficiency: float
    thirty_day_efficiency: float
    direction: str
    reference_hosts: int
    sustained: List[SustainedStatusResponse]


class FleetAnalyzeResponse(BaseModel):
    run_date: date
    records: List[AnalysisRecordResponse]
    skipped: List[SkippedHostResponse]
    stale: List[StaleHostResponse]
    storage: List[StorageFindingResponse]
    summary: FleetSummaryResponse
    trends: Optional[TrendResponse]


def _record_response(record: AnalysisRecord) -> AnalysisRecordResponse:
    return AnalysisRecordResponse(
        hostname=record.hostname,
        avg_cpu=record.avg_cpu,
        peak_cpu=record.peak_cpu,
        avg_mem=record.avg_mem,
        peak_mem=record.peak_mem,
        zone=record.zone.value,
        recommendation=record.recommendation.value,
        vcpu_count=record.vcpu_count,
        memory_gb=record.memory_gb,
        platform=record.platform,
        instance_type=record.instance_type,
        cpu_state=record.cpu_state.value,
        mem_state=record.mem_state.value,
        cpu_cv=record.cpu_cv,
        mem_cv=record.mem_cv,
        daily_cpu=record.daily_cpu,
        daily_mem=record.daily_mem,
        monthly_savings=record.monthly_savings,
        row=record.to_row(),
    )


def _fleet_response(report: FleetReport) -> FleetAnalyzeResponse:
    summary = report.summary
    trends = None
    if report.trends is not None:
        trends = TrendResponse(
            as_of=report.trends.as_of,
            reference_date=report.trends.reference_date,
            current_efficiency=report.trends.current_efficiency,
            thirty_day_efficiency=report.trends.thirty_day_efficiency,
            direction=report.trends.direction,
            reference_hosts=report.trends.reference_hosts,
            sustained=[
                SustainedStatusResponse(
                    status=s.kind.value,
                    hostname=s.hostname,
                    instance_type=s.instance_type,
                    vcpu_count=s.vcpu_count,
                    memory_gb=s.memory_gb,
                    avg_cpu=s.avg_cpu,
                    avg_mem=s.avg_mem,
                    monthly_savings=s.monthly_savings,
                )
                for s in report.trends.sustained
            ],
        )

    return FleetAnalyzeResponse(
        run_date=report.run_date,
        records=[_record_response(r) for r in report.records],
        skipped=[SkippedHostResponse(hostname=s.hostname, reason=s.reason) for s in report.skipped],
        stale=[
            StaleHostResponse(hostname=s.hostname, last_backup=s.last_backup, age_days=s.age_days)
            for s in report.stale
        ],
        storage=[
            StorageFindingResponse(
                hostname=f.hostname,
                mount_point=f.mount_point,
                provisioned_gb=f.provisioned_gb,
                used_gb=f.used_gb,
                used_percent=f.used_percent,
                status=f.status,
            )
            for f in report.storage
        ],
        summary=FleetSummaryResponse(
            total_hosts=summary.total_hosts,
            analyzed=summary.analyzed,
            hot=summary.hot,
            optimize=summary.optimize,
            cold=summary.cold,
            optimal=summary.optimal,
            no_data=summary.no_data,
            stale=summary.stale,
            skipped=summary.skipped,
            action_required=summary.action_required,
            efficiency=summary.efficiency,
            potential_monthly_savings=summary.potential_monthly_savings,
            underutilized_storage=summary.underutilized_storage,
        ),
        trends=trends,
    )


# ============================================================================
# Lifespan Management
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load settings and reference catalogs once per process."""
    settings = Settings.from_env()
    logger.info(f"Starting Capacity Planner Sidecar (data root: {settings.data_root})...")

    app.state.settings = settings
    app.state.classifier = ZoneClassifier()
    app.state.cost_modeler = CostModeler(
        pricing=load_pricing_catalog(settings.pricing_file),
        families=load_family_catalog(settings.family_file),
    )
    app.state.ledger = HistoricalLedger(settings.trends_file)
    # The ledger has a single writer; fleet runs queue behind each other
    app.state.fleet_lock = asyncio.Lock()
    yield
    logger.info("Shutting down Capacity Planner Sidecar...")


app = FastAPI(
    title="Capacity Planner Sidecar",
    description="Fleet capacity planning from SAR backups: zones, rightsizing costs and trends",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _host_analyzer(request: Request, days: Optional[int]) -> HostAnalyzer:
    state = request.app.state
    return HostAnalyzer(
        cost_modeler=state.cost_modeler,
        classifier=state.classifier,
        days=days or state.settings.analysis_days,
    )


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/")
async def root():
    """Service banner."""
    return {
        "service": "Capacity Planner Sidecar",
        "version": __version__,
        "status": "healthy",
        "endpoints": [
            "/classify/zone",
            "/model/cost",
            "/analyze/host",
            "/analyze/fleet",
        ],
    }


@app.get("/health")
async def health(request: Request):
    """Detailed health check."""
    state = request.app.state
    settings = state.settings
    return {
        "status": "healthy",
        "components": {
            "data_root": "ok" if settings.data_root.is_dir() else "missing",
            "pricing": len(state.cost_modeler.pricing),
            "ledger": "ok" if settings.trends_file.exists() else "not created",
        },
    }


@app.post("/classify/zone", response_model=ZoneClassifyResponse)
async def classify_zone(payload: ZoneClassifyRequest, request: Request):
    """
    Classify a host into cold / optimal / hot / optimize.

    Exemptions (high peak, small system) only ever pull a host out of
    cold or optimize; a hot host stays hot.
    """
    try:
        verdict = request.app.state.classifier.classify(
            payload.avg_cpu, payload.avg_mem,
            payload.vcpu_count, payload.memory_gb,
            payload.peak_cpu, payload.peak_mem,
        )
        return ZoneClassifyResponse(
            zone=verdict.zone.value,
            recommendation=verdict.recommendation.value,
            cpu_state=verdict.cpu_state.value,
            mem_state=verdict.mem_state.value,
        )
    except Exception as e:
        logger.error(f"Zone classification error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/model/cost", response_model=CostModelResponse)
async def model_cost(payload: CostModelRequest, request: Request):
    """Monthly savings (positive) or added cost (negative) of moving one size."""
    try:
        recommendation = Recommendation(payload.recommendation)
        modeler = request.app.state.cost_modeler
        return CostModelResponse(
            instance_type=payload.instance_type,
            recommendation=recommendation.value,
            target_instance_type=modeler.families.target_for(payload.instance_type, recommendation),
            monthly_delta=modeler.monthly_delta(payload.instance_type, recommendation),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Cost modeling error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/analyze/host", response_model=AnalysisRecordResponse)
async def analyze_host(payload: HostAnalyzeRequest, request: Request):
    """
    Analyse the latest backup of one host without touching the ledger.

    404 when the host has no data directory, 422 when it cannot be
    analysed (no backups, sysstat missing).
    """
    settings = request.app.state.settings
    try:
        host_dir = resolve_host_dir(settings.data_root, payload.hostname)
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    try:
        backup = latest_backup(host_dir)
        analysis = await run_in_threadpool(
            _host_analyzer(request, payload.days).analyze, payload.hostname, backup.path
        )
        return _record_response(analysis.record)
    except HostSkipped as e:
        raise HTTPException(status_code=422, detail=e.reason)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Host analysis error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/analyze/fleet", response_model=FleetAnalyzeResponse)
async def analyze_fleet(payload: FleetAnalyzeRequest, request: Request):
    """
    Run the fleet analysis, append to the historical ledger and report trends.

    Runs are serialized; a second request waits for the first to finish.
    """
    state = request.app.state
    analyzer = FleetAnalyzer(
        data_root=state.settings.data_root,
        host_analyzer=_host_analyzer(request, payload.days),
        ledger=state.ledger,
        stale_threshold_days=state.settings.stale_days,
    )
    try:
        async with state.fleet_lock:
            report = await run_in_threadpool(analyzer.run, payload.host, payload.today)
        return _fleet_response(report)
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Fleet analysis error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# ============================================================================
# Run with uvicorn
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    settings = Settings.from_env()
    uvicorn.run(app, host=settings.host, port=settings.port)
