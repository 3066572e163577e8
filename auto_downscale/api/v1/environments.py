import asyncio
import re
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from auto_downscale.api.schemas.environments import StatusResponse, UpscaleResponse
from auto_downscale.config import settings
from auto_downscale.core.exceptions import NotDownscaledError, TransportError
from auto_downscale.dependencies import get_ingress_service, get_upscale_service
from auto_downscale.services.ingress_service import IngressService
from auto_downscale.services.upscale_service import UpscaleService

router = APIRouter(tags=["environments"])


def get_deny_list() -> List[str]:
    return settings.UPSCALE_DENY_LIST


async def find_ingress(domain: str, ingress_service: IngressService) -> dict:
    """Ingress du domaine, 404 si inconnu"""
    try:
        ingress = await asyncio.to_thread(ingress_service.find_by_hostname, domain)
    except TransportError as e:
        raise HTTPException(status_code=502, detail=f"API Kubernetes indisponible: {e}")
    if not ingress:
        raise HTTPException(status_code=404, detail="Environnement non trouvé")
    return ingress


@router.post("/upscale", response_model=UpscaleResponse)
async def upscale(
    domain: str,
    ingress_service: IngressService = Depends(get_ingress_service),
    upscale_service: UpscaleService = Depends(get_upscale_service),
    deny_list: List[str] = Depends(get_deny_list),
):
    """Relance un environnement en veille, identifié par le domaine de son ingress"""
    if any(re.search(pattern, domain) for pattern in deny_list):
        raise HTTPException(status_code=403, detail="Relance interdite pour ce domaine")

    ingress = await find_ingress(domain, ingress_service)
    try:
        return await upscale_service.upscale(ingress)
    except NotDownscaledError:
        raise HTTPException(status_code=404, detail="Environnement non trouvé ou déjà actif")
    except TransportError as e:
        raise HTTPException(status_code=502, detail=f"Erreur lors de la relance: {e}")


@router.get("/status", response_model=StatusResponse)
async def status(
    domain: str,
    ingress_service: IngressService = Depends(get_ingress_service),
    upscale_service: UpscaleService = Depends(get_upscale_service),
):
    """État de la relance d'un environnement"""
    ingress = await find_ingress(domain, ingress_service)
    return await upscale_service.status(ingress)
