from fastapi.testclient import TestClient
import pytest

from apps.cluster_server.main import app
from apps.cluster_server.schemas.models import RegionModel
from apps.cluster_server.tools.clusters import IndexStore, get_index_store
from src.spatial import Coordinate, region_for_zoom


@pytest.fixture()
def client() -> TestClient:
    get_index_store().clear()
    yield TestClient(app)
    get_index_store().clear()


def _region_payload(center, zoom):
    region = region_for_zoom(center, zoom)
    return RegionModel(lat=region.lat, lng=region.lng, lat_span=region.lat_span, lng_span=region.lng_span).model_dump(
        by_alias=True
    )


@pytest.fixture()
def loaded(client: TestClient, tight_points, stacked_points):
    points = tight_points + [
        {"id": f"gate_{p['id']}", "lat": p["lat"] + 0.05, "lng": p["lng"]} for p in stacked_points
    ]
    points.append({"id": "floating-label"})
    response = client.post("/actions/load_points", json={"datasetId": "demo", "points": points})
    assert response.status_code == 200
    return response.json()


def test_health(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_load_points_reports_passthrough(loaded):
    assert loaded["datasetId"] == "demo"
    assert loaded["numFeatures"] == 13
    assert loaded["numPassthrough"] == 1
    assert loaded["skipped"] == [{"originalIndex": 13, "reason": "no coordinate"}]
    assert loaded["diagnostics"]["num_points"] == 13


def test_load_points_generates_dataset_id(client: TestClient, tight_points):
    first = client.post("/actions/load_points", json={"points": tight_points}).json()
    second = client.post("/actions/load_points", json={"points": tight_points}).json()
    assert first["datasetId"] == second["datasetId"]
    assert client.get("/cache/stats").json()["size"] == 1


def test_load_points_rejects_bad_options(client: TestClient, tight_points):
    payload = {"points": tight_points, "options": {"minZoom": 12, "maxZoom": 4}}
    response = client.post("/actions/load_points", json=payload)
    assert response.status_code == 422


def test_load_points_unknown_profile(client: TestClient, tight_points):
    response = client.post("/actions/load_points", json={"points": tight_points, "profile": "nope"})
    assert response.status_code == 404


def test_clusters_action_returns_widget(client: TestClient, loaded, tokyo_station):
    payload = {"datasetId": "demo", "region": _region_payload(tokyo_station, 10)}

    response = client.post("/actions/clusters", json=payload)
    assert response.status_code == 200
    data = response.json()

    assert data["zoom"] == 10
    assert len(data["bbox"]) == 4
    assert sorted(m["pointCount"] for m in data["markers"]) == [5, 8]
    assert all(m["isCluster"] for m in data["markers"])
    assert data["_meta"]["openai"]["outputTemplate"]["widget"] == "geo.markerClusters"


def test_clusters_action_unknown_dataset(client: TestClient, tokyo_station):
    payload = {"datasetId": "missing", "region": _region_payload(tokyo_station, 10)}
    response = client.post("/actions/clusters", json=payload)
    assert response.status_code == 404


def test_leaves_action(client: TestClient, loaded, tokyo_station):
    clusters = client.post(
        "/actions/clusters", json={"datasetId": "demo", "region": _region_payload(tokyo_station, 10)}
    ).json()
    cluster = next(m for m in clusters["markers"] if m["pointCount"] == 5)

    response = client.post(
        "/actions/leaves",
        json={"datasetId": "demo", "clusterId": cluster["clusterId"], "limit": 3},
    )
    assert response.status_code == 200
    data = response.json()

    assert len(data["leaves"]) == 3
    assert all(leaf["properties"]["id"].startswith("tight_") for leaf in data["leaves"])
    assert data["expansionZoom"] > 10


def test_leaves_action_unknown_cluster(client: TestClient, loaded):
    response = client.post("/actions/leaves", json={"datasetId": "demo", "clusterId": 987654321})
    assert response.status_code == 404


def test_spiderfy_action(client: TestClient, loaded, tokyo_station):
    gate = Coordinate(tokyo_station.lat + 0.05, tokyo_station.lng)
    payload = {"datasetId": "demo", "region": _region_payload(gate, 19)}

    response = client.post("/actions/spiderfy", json=payload)
    assert response.status_code == 200
    data = response.json()

    assert data["zoom"] == 19
    assert len(data["positions"]) == 8
    assert len({(p["lat"], p["lng"]) for p in data["positions"]}) == 8
    assert len({(p["center"]["lat"], p["center"]["lng"]) for p in data["positions"]}) == 1
    assert data["_meta"]["openai"]["outputTemplate"]["widget"] == "geo.spiderLegs"


def test_spiderfy_action_unknown_cluster(client: TestClient, loaded, tokyo_station):
    payload = {"datasetId": "demo", "region": _region_payload(tokyo_station, 19), "clusterId": 987654321}
    response = client.post("/actions/spiderfy", json=payload)
    assert response.status_code == 404


def test_index_store_reports_its_own_ttl():
    store = IndexStore(maxsize=4, ttl=30)
    assert store.stats() == {"size": 0, "maxsize": 4, "ttl": 30}
