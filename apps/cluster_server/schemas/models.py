"""Pydantic models for the cluster action server."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from src.spatial import ClusterOptions, Region


class LatLng(BaseModel):
    """Simple latitude/longitude container."""

    lat: float = Field(..., description="Latitude in decimal degrees")
    lng: float = Field(..., description="Longitude in decimal degrees")


class PointInput(BaseModel):
    """A map point as supplied by the client. Extra fields are kept as properties."""

    id: Optional[str] = None
    name: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    cluster: Optional[bool] = Field(
        default=None, description="Set to false to keep the point out of clustering"
    )

    model_config = {"extra": "allow"}


class ClusterOptionsModel(BaseModel):
    radius: float = Field(40.0, gt=0)
    max_zoom: int = Field(20, ge=0, le=30, alias="maxZoom")
    min_zoom: int = Field(1, ge=0, le=30, alias="minZoom")
    min_points: int = Field(2, ge=1, alias="minPoints")
    extent: int = Field(512, gt=0)
    node_size: int = Field(64, ge=1, alias="nodeSize")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _check_zoom_range(self) -> "ClusterOptionsModel":
        if self.min_zoom > self.max_zoom:
            raise ValueError("minZoom must not exceed maxZoom")
        return self

    def to_options(self) -> ClusterOptions:
        return ClusterOptions(
            radius=self.radius,
            max_zoom=self.max_zoom,
            min_zoom=self.min_zoom,
            min_points=self.min_points,
            extent=self.extent,
            node_size=self.node_size,
        )


class RegionModel(BaseModel):
    """Visible map region (centre plus spans in degrees)."""

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    lat_span: float = Field(..., ge=0, alias="latSpan")
    lng_span: float = Field(..., alias="lngSpan")

    model_config = {"populate_by_name": True}

    def to_region(self) -> Region:
        return Region(self.lat, self.lng, self.lat_span, self.lng_span)


class SkippedRecord(BaseModel):
    original_index: int = Field(..., alias="originalIndex")
    reason: str

    model_config = {"populate_by_name": True}


class LoadPointsRequest(BaseModel):
    dataset_id: Optional[str] = Field(default=None, alias="datasetId")
    points: List[PointInput]
    options: Optional[ClusterOptionsModel] = None
    profile: Optional[str] = Field(default=None, description="Clustering profile name")

    model_config = {"populate_by_name": True}


class LoadPointsResponse(BaseModel):
    dataset_id: str = Field(..., alias="datasetId")
    num_features: int = Field(..., alias="numFeatures")
    num_passthrough: int = Field(..., alias="numPassthrough")
    skipped: List[SkippedRecord] = Field(default_factory=list)
    diagnostics: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class ClusterMarker(BaseModel):
    """A single map marker: either one point or a cluster."""

    is_cluster: bool = Field(..., alias="isCluster")
    lat: float
    lng: float
    cluster_id: Optional[int] = Field(default=None, alias="clusterId")
    point_count: int = Field(1, alias="pointCount")
    point_count_abbreviated: Optional[str] = Field(default=None, alias="pointCountAbbreviated")
    original_index: Optional[int] = Field(default=None, alias="originalIndex")
    properties: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class ClustersRequest(BaseModel):
    dataset_id: str = Field(..., alias="datasetId")
    region: RegionModel

    model_config = {"populate_by_name": True}


class ClustersResponse(BaseModel):
    bbox: List[float]
    zoom: int
    markers: List[ClusterMarker]


class LeavesRequest(BaseModel):
    dataset_id: str = Field(..., alias="datasetId")
    cluster_id: int = Field(..., alias="clusterId")
    limit: Optional[int] = Field(default=None, ge=0, description="None returns every leaf")
    offset: int = Field(0, ge=0)

    model_config = {"populate_by_name": True}


class LeavesResponse(BaseModel):
    cluster_id: int = Field(..., alias="clusterId")
    leaves: List[ClusterMarker]
    expansion_zoom: int = Field(..., alias="expansionZoom")

    model_config = {"populate_by_name": True}


class SpiralPoint(BaseModel):
    original_index: int = Field(..., alias="originalIndex")
    lat: float
    lng: float
    center: LatLng

    model_config = {"populate_by_name": True}


class SpiderfyRequest(BaseModel):
    dataset_id: str = Field(..., alias="datasetId")
    region: RegionModel
    cluster_id: Optional[int] = Field(
        default=None, alias="clusterId", description="Explode only this cluster"
    )

    model_config = {"populate_by_name": True}


class SpiderfyResponse(BaseModel):
    zoom: int
    positions: List[SpiralPoint]
