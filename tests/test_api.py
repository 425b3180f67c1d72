from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

import main
from dnr import topology
from dnr.topology import ComponentKind, ComponentRule, Topology

from conftest import FakeEngine

PROXY = "proj-proxy-proxy-1"


@pytest.fixture
def engine():
    eng = FakeEngine({PROXY: {"bridge"}})
    main.app.dependency_overrides[main.get_runtime] = lambda: eng
    yield eng
    main.app.dependency_overrides.clear()


@pytest.fixture
def client(engine):
    with TestClient(main.app) as c:
        yield c


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy", "docker": True}


def test_topology(client):
    r = client.get("/topology")
    assert r.status_code == 200
    kinds = [rule["kind"] for rule in r.json()["rules"]]
    assert kinds[0] == "proxy"
    assert "website" in kinds


def test_reconcile_and_history(client, engine):
    r = client.post("/reconcile", json={"project": "proj", "environment": "prod"})
    assert r.status_code == 200
    body = r.json()
    assert body["converged"] is True
    assert engine.containers[PROXY] == {"bridge", "frontend-proj-prod", "proj-shared-network"}

    runs = client.get("/runs", params={"project": "proj"}).json()
    assert len(runs) == 1

    detail = client.get(f"/runs/{runs[0]['id']}").json()
    assert detail["id"] == runs[0]["id"]
    assert detail["containers"][0]["component"] == "proxy"

    events = client.get("/events", params={"container": PROXY}).json()
    assert any(e["message"].startswith("Connected to") for e in events)


def test_reconcile_without_containers_is_404(client, engine):
    r = client.post("/reconcile", json={"project": "ghost"})
    assert r.status_code == 404
    assert engine.calls == []


def test_reconcile_rejects_bad_project(client):
    r = client.post("/reconcile", json={"project": "bad name"})
    assert r.status_code == 422


def test_unknown_run_is_404(client):
    assert client.get("/runs/999").status_code == 404


def test_verify(client, engine):
    r = client.get("/verify", params={"project": "proj"})
    assert r.status_code == 200
    assert r.json()["report"]["containers"][0]["missing"] == ["frontend-proj-staging", "proj-shared-network"]
    assert engine.calls == []


def test_provision(client, engine):
    r = client.post("/provision", params={"project": "proj"})
    assert r.status_code == 200
    assert all(a["ok"] for a in r.json())
    assert "proj-proxy_default" in engine.networks


def test_domains(client):
    r = client.get("/domains", params={"project": "aiotp", "environment": "dev", "domain_base": "example.org"})
    assert r.status_code == 200
    body = r.json()
    assert body["domains"]["emr"] == "dev-aiotp.example.org"
    assert body["domains"]["website"] == "dev.example.org"
    assert body["urls"]["telehealth-app"] == "https://vc-dev.example.org"


@pytest.mark.parametrize("content", ['{"rules": []}', "not json"])
def test_invalid_topology_file_is_422(client, engine, tmp_path, monkeypatch, content):
    path = tmp_path / "topology.json"
    path.write_text(content)
    monkeypatch.setattr(topology, "settings", replace(topology.settings, topology_path=str(path)))

    assert client.get("/topology").status_code == 422
    r = client.post("/reconcile", json={"project": "proj"})
    assert r.status_code == 422
    assert "Invalid topology" in r.json()["detail"]
    assert engine.calls == []


def test_missing_topology_file_is_422(client, tmp_path, monkeypatch):
    monkeypatch.setattr(topology, "settings", replace(topology.settings, topology_path=str(tmp_path / "absent.json")))
    assert client.get("/verify", params={"project": "proj"}).status_code == 422


def test_overlap_for_project_is_422(client, engine):
    topo = Topology(
        rules=[
            ComponentRule(kind=ComponentKind.TELEHEALTH_WEB, patterns=["{project}-web"]),
            ComponentRule(kind=ComponentKind.WEBSITE, patterns=["proj-web-x"]),
        ]
    )
    main.app.dependency_overrides[main.get_topology] = lambda: topo

    r = client.post("/reconcile", json={"project": "proj"})

    assert r.status_code == 422
    assert "Ambiguous container patterns" in r.json()["detail"]
