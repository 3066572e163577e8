from fastapi import FastAPI
import uvicorn
import asyncio
import logging
from contextlib import asynccontextmanager

from auto_downscale.api.middleware import setup_middlewares
from auto_downscale.api.router import router
from auto_downscale.config import settings
from auto_downscale.core.logging import setup_logging
from auto_downscale.dependencies import get_downscale_worker, get_upscale_service


setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Démarrage de l'application")

    app.state.worker = None
    app.state.worker_task = None

    # Sans période, le balayage est lancé par un planificateur externe
    if settings.SWEEP_INTERVAL_SECONDS > 0:
        worker = get_downscale_worker()
        worker_task = asyncio.create_task(worker.start())
        worker._task = worker_task
        app.state.worker = worker
        app.state.worker_task = worker_task
        logger.info("Worker de mise en veille démarré en arrière-plan")

    yield

    logger.info("Arrêt de l'application")

    if app.state.worker:
        app.state.worker.stop()
        app.state.worker_task.cancel()
        try:
            await asyncio.wait_for(app.state.worker_task, timeout=10.0)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            logger.warning("Worker forcé à s'arrêter (timeout ou annulation)")

    # Uniquement si une relance a pu être lancée
    if get_upscale_service.cache_info().currsize:
        await get_upscale_service().shutdown()
    logger.info("Application arrêtée proprement")

app = FastAPI(
    title=settings.APP_NAME,
    description="Mise en veille automatique des environnements inactifs et relance à la demande",
    version="1.0.0",
    lifespan=lifespan
)

setup_middlewares(app)
app.include_router(router)


if __name__ == "__main__":
    uvicorn.run("auto_downscale.main:app", host="0.0.0.0", port=3000)
