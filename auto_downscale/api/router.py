from fastapi import APIRouter, Depends
from auto_downscale.api.v1 import environments, placeholder
from auto_downscale.api.schemas.environments import SweepSummary
from auto_downscale.dependencies import get_downscale_worker
from auto_downscale.workers.downscale_worker import DownscaleWorker

router = APIRouter()

@router.get("/health")
async def health():
    return {"status": "healthy"}

@router.get("/worker/status")
async def worker_status(worker: DownscaleWorker = Depends(get_downscale_worker)):
    results = worker.get_last_run_results()
    return {
        "running": worker.running,
        "healthy": worker.is_healthy(),
        "last_run": SweepSummary(
            timestamp=results.get("timestamp"),
            summary=results.get("summary", {}),
            errors=results.get("errors", []),
        ),
    }

router.include_router(environments.router)

# En dernier: capture toutes les autres routes GET
router.include_router(placeholder.router)
