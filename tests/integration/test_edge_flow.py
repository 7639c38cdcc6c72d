"""
Integration tests for a two-node edge fleet running in-process.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from shared.config import get_config
from service_edge.app.adapters.geolocation_client import GeolocationClient
from service_edge.app.adapters.origin_client import OriginClient
from service_edge.app.adapters.peer_client import PeerStatsClient
from service_edge.app.main import create_app
from service_edge.app.store.kv_store import MemoryStore


NODE_A = "https://a.edge.example"
NODE_B = "https://b.edge.example"


class TestEdgeFleetFlow:
    """Content served on two nodes shows up in either node's global stats."""

    @pytest.fixture
    def fleet_files(self, tmp_path):
        nodes_file = tmp_path / "nodes.yaml"
        nodes_file.write_text(
            f"- url: {NODE_A}\n  longitude: -0.12\n  latitude: 51.5\n"
            f"- url: {NODE_B}\n  longitude: 139.7\n  latitude: 35.7\n"
        )
        blacklist_file = tmp_path / "blacklist.txt"
        blacklist_file.write_text("hotlinker.example\n")
        return nodes_file, blacklist_file

    @pytest.fixture
    def origin_requests(self):
        return []

    def make_node(self, self_url, tmp_path, fleet_files, origin_requests, peer_transport):
        nodes_file, blacklist_file = fleet_files

        def origin(request):
            origin_requests.append((self_url, str(request.url)))
            return httpx.Response(200, content=b"x" * 64, headers={"Content-Type": "image/png"})

        def geolocation(request):
            # Tokyo
            return httpx.Response(200, json={"longitude": 139.69, "latitude": 35.68})

        config = get_config(
            "edge",
            3000,
            store_backend="memory",
            blob_dir=str(tmp_path / self_url.split("//")[1] / "blobs"),
            nodes_file=str(nodes_file),
            blacklist_file=str(blacklist_file),
            self_url=self_url,
        )
        return create_app(
            config,
            store=MemoryStore(),
            origin_client=OriginClient(client=httpx.AsyncClient(transport=httpx.MockTransport(origin))),
            peer_client=PeerStatsClient(client=httpx.AsyncClient(transport=peer_transport)),
            geolocation_client=GeolocationClient(
                "http://geo.example",
                client=httpx.AsyncClient(transport=httpx.MockTransport(geolocation)),
            ),
        )

    def test_fleet_stats_and_routing(self, tmp_path, fleet_files, origin_requests):
        """Two nodes serve content; node A's global stats include node B's raw counters."""
        unreachable = httpx.MockTransport(lambda request: httpx.Response(503))
        app_b = self.make_node(NODE_B, tmp_path, fleet_files, origin_requests, unreachable)
        app_a = self.make_node(NODE_A, tmp_path, fleet_files, origin_requests, httpx.ASGITransport(app=app_b))

        with TestClient(app_b) as client_b, TestClient(app_a) as client_a:
            for _ in range(3):
                assert client_a.get("/serve/https://img.example/logo.png").status_code == 200
            assert client_b.get("/serve/https://img.example/logo.png").status_code == 200
            assert client_b.get(
                "/serve/https://img.example/logo.png",
                headers={"Referer": "http://hotlinker.example/page"},
            ).status_code == 403

            assert client_a.get("/stats").json() == {"cdnHits": 3, "cdnData": 192, "cacheStorageUsage": 64}
            assert client_b.get("/stats").json() == {"cdnHits": 2, "cdnData": 64, "cacheStorageUsage": 64}

            response = client_a.get("/global-stats")
            assert response.status_code == 200
            assert response.json() == {"cdnHits": 5, "cdnData": 256, "cacheStorageUsage": 128}

            # Node B's peer (node A) answers 503 through its transport
            assert client_b.get("/global-stats").status_code == 502

            nearest = client_a.get("/nodes", params={"k": 2}).json()
            assert [node["url"] for node in nearest] == [NODE_B, NODE_A]

        # Each node fetched from origin once
        assert origin_requests == [
            (NODE_A, "https://img.example/logo.png"),
            (NODE_B, "https://img.example/logo.png"),
        ]
