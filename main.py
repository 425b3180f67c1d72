from __future__ import annotations

from dataclasses import asdict

from docker.errors import DockerException
from fastapi import Depends, FastAPI, HTTPException

from dnr import db
from dnr.api_models import ReconcileRequest
from dnr.docker_ops import DockerRuntime
from dnr.domains import access_urls, component_domains
from dnr.provision import provision_networks
from dnr.reconciler import NetworkReconciler, NoContainersFound
from dnr.settings import settings
from dnr.topology import DeploymentConfig, Topology, load_topology

app = FastAPI(title="Docker Network Reconciler")


def get_runtime() -> DockerRuntime:
    return DockerRuntime()


def get_topology() -> Topology:
    try:
        return load_topology()
    except (ValueError, OSError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid topology: {e}")


def _config(project: str | None, environment: str | None, domain_base: str | None = None) -> DeploymentConfig:
    try:
        return DeploymentConfig.from_settings(project=project, environment=environment, domain_base=domain_base)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _reconciler(cfg: DeploymentConfig, topo: Topology, runtime: DockerRuntime) -> NetworkReconciler:
    try:
        return NetworkReconciler(cfg, topo, runtime)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.on_event("startup")
def startup() -> None:
    db.init_db()


@app.get("/health")
def health(runtime: DockerRuntime = Depends(get_runtime)):
    return {"status": "healthy", "docker": runtime.available()}


@app.get("/topology")
def topology(topo: Topology = Depends(get_topology)):
    return topo.model_dump(mode="json")


@app.post("/reconcile")
def reconcile(
    req: ReconcileRequest,
    runtime: DockerRuntime = Depends(get_runtime),
    topo: Topology = Depends(get_topology),
):
    cfg = _config(req.project, req.environment, req.domain_base)
    rec = _reconciler(cfg, topo, runtime)
    try:
        report = rec.run(dry_run=req.dry_run)
    except NoContainersFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DockerException as e:
        raise HTTPException(status_code=503, detail=f"Docker unavailable: {e}")
    return report.to_dict()


@app.get("/verify")
def verify(
    project: str | None = None,
    environment: str | None = None,
    runtime: DockerRuntime = Depends(get_runtime),
    topo: Topology = Depends(get_topology),
):
    cfg = _config(project, environment)
    rec = _reconciler(cfg, topo, runtime)
    try:
        report = rec.verify()
        networks = rec.membership()
    except NoContainersFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DockerException as e:
        raise HTTPException(status_code=503, detail=f"Docker unavailable: {e}")
    return {"report": report.to_dict(), "networks": networks}


@app.get("/runs")
def runs(project: str | None = None, limit: int = 20):
    return [r.to_dict() for r in db.list_runs(project=project, limit=max(1, min(limit, 500)))]


@app.get("/runs/{run_id}")
def run_detail(run_id: int):
    report = db.get_run_report(run_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return report


@app.get("/events")
def events(limit: int = 100, container: str | None = None):
    return db.latest_events(limit=max(1, min(limit, 1000)), container=container)


@app.post("/provision")
def provision(project: str | None = None, environment: str | None = None, runtime: DockerRuntime = Depends(get_runtime)):
    cfg = _config(project, environment)
    return [asdict(a) for a in provision_networks(cfg, runtime)]


@app.get("/domains")
def domains(project: str | None = None, environment: str | None = None, domain_base: str | None = None):
    cfg = _config(project, environment, domain_base)
    try:
        hosts = component_domains(cfg)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {
        "domains": {k.value: v for k, v in hosts.items()},
        "urls": access_urls(cfg, settings.npm_admin_port),
    }
