# layerproxy/api/proxy/endpoints.py
from fastapi import APIRouter, Request, Depends, Query, status
from fastapi.responses import RedirectResponse, StreamingResponse
from starlette.background import BackgroundTask
import logging
from typing import Optional

from layerproxy.core.config import settings
from layerproxy.models.reference import ImageReference
from layerproxy.services.registry_client_service import (
    RegistryClient,
    get_registry_client,
    resolve_layer,
)

router = APIRouter()
logger = logging.getLogger(__name__)

# 업스트림 응답을 클라이언트로 넘길 때 제외할 hop-by-hop 헤더
HOP_BY_HOP_HEADERS = {"connection", "keep-alive", "transfer-encoding", "server"}


@router.api_route("/{reference:path}", methods=["GET", "HEAD"])
async def proxy_reference(
    request: Request,
    reference: str,
    mode: Optional[str] = Query(None, alias="type", description="'blob'이면 블롭을 그대로 전달, 그 외에는 매니페스트를 해석"),
    layer: int = Query(settings.DEFAULT_LAYER, description="리디렉트할 레이어 인덱스 (음수는 끝에서부터)"),
    registry_client: RegistryClient = Depends(get_registry_client),
):
    """
    이미지 참조(`domain/path[:tag][@digest]`)를 받아
    - `type=blob`: 레지스트리의 블롭 응답(리디렉트 포함)을 그대로 돌려줍니다.
    - 그 외: 매니페스트의 `layers[layer]` 다이제스트로 `type=blob` 리디렉트를 돌려줍니다.
    """
    image_reference = ImageReference.parse(reference)

    if mode == "blob":
        upstream_response = await registry_client.request(
            image_reference, "blobs", method=request.method, stream=True, follow_redirects=False
        )
        logger.info(f"Blob {image_reference}: upstream responded {upstream_response.status_code}")
        # aiter_raw: content-encoding/content-length를 업스트림 그대로 유지
        response = StreamingResponse(
            upstream_response.aiter_raw(),
            status_code=upstream_response.status_code,
            background=BackgroundTask(upstream_response.aclose),
        )
        # 같은 이름의 헤더가 여러 개여도 합치지 않고 그대로 전달
        response.raw_headers = [
            (key.lower().encode("latin-1"), value.encode("latin-1"))
            for key, value in upstream_response.headers.multi_items()
            if key.lower() not in HOP_BY_HOP_HEADERS
        ]
        return response

    manifest = await registry_client.fetch_manifest(image_reference)
    image_reference.digest = resolve_layer(manifest, layer)

    redirect_url = request.url.replace(path=f"/{image_reference}").include_query_params(type="blob", layer=layer)
    logger.info(f"Resolved {reference} layer {layer} -> {image_reference.digest}")
    return RedirectResponse(url=str(redirect_url), status_code=status.HTTP_302_FOUND)
