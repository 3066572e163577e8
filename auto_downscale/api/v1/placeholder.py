import asyncio
from html import escape
from string import Template

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import HTMLResponse

from auto_downscale.config import settings
from auto_downscale.core import annotations
from auto_downscale.core.exceptions import TransportError
from auto_downscale.dependencies import get_ingress_service
from auto_downscale.services.ingress_service import IngressService

router = APIRouter(tags=["placeholder"])

ROBOTS_HEADER = {"x-robots-tag": "noindex, nofollow"}

_PAGE = Template("""<!DOCTYPE html>
<html>
<head>
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <link rel="shortcut icon" type="image/x-icon" href="data:image/x-icon;,">
    <title>$ingress_name en veille</title>
    <style>
      body { font-family: "Overpass", sans-serif; text-align: center; }
      h2 { font-size: 20px; margin-bottom: 10%; color: #5b37bf; font-weight: 800; }
      button#launch {
          display: inline-block; min-width: 12.5rem; padding: 1rem; color: #fff;
          background: #5b37bf; border: 0; border-radius: 3px; cursor: pointer; font-size: 16px;
      }
      #progress { height: 20px; position: relative; background: #E7E6EB; border-radius: 25px; width: 40%; margin: auto; }
      #progressBar { display: block; height: 100%; width: 0%; background-color: #5B37BF; border-radius: 25px; }
      #progressPercentage { width: 100%; position: absolute; top: 25px; left: 0; color: #5B37BF; font-weight: bold; }
    </style>
</head>
<body>
<h2>L'environnement $ingress_name est en veille</h2>
<div id="progress">
    <div id="progressBar"></div>
    <div id="progressPercentage"></div>
</div>
<button id="launch" onclick="relaunch()">Relancer</button>
<script>
  document.getElementById("progress").style.display = "none";

  async function relaunch() {
    document.getElementById("launch").style.display = "none";
    document.getElementById("progress").style.display = "block";

    await fetch("//$api_domain/upscale?domain=$hostname", {method: "post"});

    const poll = setInterval(async function () {
      const response = await fetch("//$api_domain/status?domain=$hostname");
      const data = await response.json();

      if (data.done) {
        clearInterval(poll);
        window.location.reload();
      }
      else {
        document.getElementById("progressPercentage").innerHTML = data.percentage + "%";
        document.getElementById("progressBar").style.width = data.percentage + "%";
      }
    }, 5000);
  }
</script>
</body>
</html>
""")


def placeholder_page_content(hostname: str, ingress_name: str, api_domain: str) -> str:
    return _PAGE.substitute(
        hostname=escape(hostname),
        ingress_name=escape(ingress_name),
        api_domain=escape(api_domain or hostname),
    )


@router.get("/{path:path}", include_in_schema=False)
async def placeholder(
    request: Request,
    path: str,
    ingress_service: IngressService = Depends(get_ingress_service),
):
    """Page d'attente servie à la place d'un environnement en veille"""
    # Retire le port en local
    hostname = request.headers.get("host", "").split(":")[0]

    try:
        ingress = await asyncio.to_thread(ingress_service.find_by_hostname, hostname)
    except TransportError:
        return Response(status_code=404, headers=ROBOTS_HEADER)

    if not ingress or not annotations.is_down(ingress):
        return Response(status_code=404, headers=ROBOTS_HEADER)

    content = placeholder_page_content(hostname, ingress["metadata"]["name"], settings.PLACEHOLDER_DOMAIN)
    return HTMLResponse(content=content, status_code=404, headers=ROBOTS_HEADER)
