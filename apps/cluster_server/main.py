"""FastAPI server exposing map clustering as actions."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from src.spatial import NotFoundError, query
from src.tools.config_loader import ConfigLoader, controller_config_from_profile

from .schemas.models import (
    ClustersRequest,
    ClustersResponse,
    LeavesRequest,
    LeavesResponse,
    LoadPointsRequest,
    LoadPointsResponse,
    SpiderfyRequest,
    SpiderfyResponse,
)
from .tools.clusters import (
    StoredIndex,
    get_index_store,
    load_points,
    marker_from_item,
    skipped_records,
    spiral_point,
    spiral_positions,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Map Cluster Server", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _stored_or_404(dataset_id: str) -> StoredIndex:
    stored = get_index_store().get(dataset_id)
    if stored is None:
        raise HTTPException(status_code=404, detail=f"Unknown or expired dataset '{dataset_id}'.")
    return stored


def _device_width() -> int:
    return controller_config_from_profile(ConfigLoader.load_default_or_env_profile()).device_width


@app.get("/health")
async def health_check() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/cache/stats")
async def cache_stats() -> Dict[str, Any]:
    return get_index_store().stats()


@app.post("/actions/load_points")
async def load_points_action(request: LoadPointsRequest) -> Dict[str, Any]:
    try:
        dataset_id, stored = load_points(request)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    response = LoadPointsResponse(
        dataset_id=dataset_id,
        num_features=len(stored.adapted.features),
        num_passthrough=len(stored.adapted.passthrough),
        skipped=skipped_records(stored.adapted),
        diagnostics=stored.index.diagnostics().to_dict(),
    )
    logger.info(
        "Loaded dataset %s: %d features, %d passthrough",
        dataset_id,
        response.num_features,
        response.num_passthrough,
    )
    return response.model_dump(by_alias=True)


@app.post("/actions/clusters")
async def clusters_action(request: ClustersRequest) -> Dict[str, Any]:
    stored = _stored_or_404(request.dataset_id)
    result = query(stored.index, request.region.to_region(), device_width=_device_width())

    response = ClustersResponse(
        bbox=list(result.bbox),
        zoom=result.zoom,
        markers=[marker_from_item(item) for item in result.result_set],
    )

    widget_payload = {
        "widget": "geo.markerClusters",
        "props": {
            "center": {"lat": request.region.lat, "lng": request.region.lng},
            "zoom": response.zoom,
            "markers": [marker.model_dump(by_alias=True) for marker in response.markers],
        },
        "assetsBaseUrl": "/assets",
    }

    payload = response.model_dump(by_alias=True)
    payload["_meta"] = {"openai": {"outputTemplate": widget_payload}}
    return payload


@app.post("/actions/leaves")
async def leaves_action(request: LeavesRequest) -> Dict[str, Any]:
    stored = _stored_or_404(request.dataset_id)
    try:
        leaves = stored.index.get_leaves(request.cluster_id, request.limit, request.offset)
        expansion_zoom = stored.index.get_cluster_expansion_zoom(request.cluster_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    response = LeavesResponse(
        cluster_id=request.cluster_id,
        leaves=[marker_from_item(leaf) for leaf in leaves],
        expansion_zoom=expansion_zoom,
    )
    return response.model_dump(by_alias=True)


@app.post("/actions/spiderfy")
async def spiderfy_action(request: SpiderfyRequest) -> Dict[str, Any]:
    stored = _stored_or_404(request.dataset_id)
    profile = ConfigLoader.load_default_or_env_profile()
    config = controller_config_from_profile(profile)

    result = query(stored.index, request.region.to_region(), device_width=config.device_width)
    try:
        positions = spiral_positions(
            stored.index, list(result.result_set), request.cluster_id, config.spiral
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    response = SpiderfyResponse(
        zoom=result.zoom,
        positions=[spiral_point(position) for position in positions],
    )

    widget_payload = {
        "widget": "geo.spiderLegs",
        "props": {
            "center": {"lat": request.region.lat, "lng": request.region.lng},
            "legs": [position.model_dump(by_alias=True) for position in response.positions],
        },
        "assetsBaseUrl": "/assets",
    }

    payload = response.model_dump(by_alias=True)
    payload["_meta"] = {"openai": {"outputTemplate": widget_payload}}
    return payload


__all__ = ["app"]
