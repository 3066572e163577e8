from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from auto_downscale.config import settings


def setup_middlewares(app: FastAPI) -> None:
    """La page d'attente appelle l'API depuis le domaine de l'environnement"""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
