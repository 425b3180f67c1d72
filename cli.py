from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict

import requests
from docker.errors import DockerException

from dnr import db
from dnr.docker_ops import DockerRuntime
from dnr.domains import access_urls, apply_domains, component_domains
from dnr.provision import provision_networks, teardown_networks
from dnr.reconciler import NetworkReconciler, NoContainersFound
from dnr.settings import settings
from dnr.templates import TemplateError, deployment_values, render_file
from dnr.topology import DeploymentConfig, load_topology

REMOTE_COMMANDS = {"reconcile", "verify", "runs", "events"}


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _remote(args: argparse.Namespace) -> int:
    base = args.api.rstrip("/")

    if args.cmd == "reconcile":
        payload = {
            "project": args.project,
            "environment": args.environment,
            "domain_base": args.domain,
            "dry_run": args.dry_run,
        }
        r = requests.post(f"{base}/reconcile", json=payload, timeout=300)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "verify":
        params = {k: v for k, v in {"project": args.project, "environment": args.environment}.items() if v}
        r = requests.get(f"{base}/verify", params=params, timeout=60)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "runs":
        params = {"limit": args.limit}
        if args.project:
            params["project"] = args.project
        _print(requests.get(f"{base}/runs", params=params, timeout=10).json())
        return 0

    if args.cmd == "events":
        params = {"limit": args.limit}
        if args.container:
            params["container"] = args.container
        _print(requests.get(f"{base}/events", params=params, timeout=10).json())
        return 0

    return 2


def _local(args: argparse.Namespace) -> int:
    if args.cmd == "runs":
        _print([r.to_dict() for r in db.list_runs(project=args.project, limit=args.limit)])
        return 0

    if args.cmd == "events":
        _print(db.latest_events(limit=args.limit, container=args.container))
        return 0

    if args.cmd == "topology":
        _print(load_topology(args.topology).model_dump(mode="json"))
        return 0

    cfg = DeploymentConfig.from_settings(project=args.project, environment=args.environment, domain_base=args.domain)

    if args.cmd == "render":
        values = deployment_values(
            cfg, admin_port=args.npm_admin_port, http_port=args.npm_http_port, https_port=args.npm_https_port
        )
        out = render_file(args.template, args.output, values)
        _print({"output": out, "values": values})
        return 0

    if args.cmd == "domains":
        hosts = component_domains(cfg)
        updates = apply_domains(cfg, root=args.root, dry_run=not args.apply) if args.root else []
        _print(
            {
                "domains": {k.value: v for k, v in hosts.items()},
                "urls": access_urls(cfg, settings.npm_admin_port),
                "env_files": [{**asdict(u), "changed": u.changed} for u in updates],
            }
        )
        return 0

    runtime = DockerRuntime()

    if args.cmd == "provision":
        _print([asdict(a) for a in provision_networks(cfg, runtime)])
        return 0

    if args.cmd == "teardown":
        _print([asdict(a) for a in teardown_networks(cfg, runtime, dry_run=not args.yes)])
        return 0

    rec = NetworkReconciler(cfg, load_topology(args.topology), runtime)

    if args.cmd == "reconcile":
        _print(rec.run(dry_run=args.dry_run).to_dict())
        return 0

    if args.cmd == "verify":
        _print({"report": rec.verify().to_dict(), "networks": rec.membership()})
        return 0

    return 2


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Docker Network Reconciler CLI")
    p.add_argument("--api", default=None, help="DNR service base URL; if set, talk to it instead of the local engine")
    sub = p.add_subparsers(dest="cmd", required=True)

    dep = argparse.ArgumentParser(add_help=False)
    dep.add_argument("--project", default=None, help=f"Project identifier (default: {settings.project})")
    dep.add_argument("--environment", default=None, help=f"Environment name (default: {settings.environment})")
    dep.add_argument("--domain", default=None, help="Base domain, used to derive hostnames (domains, render)")
    dep.add_argument("--topology", default=None, help="JSON topology file (default: built-in table)")

    s_rec = sub.add_parser("reconcile", parents=[dep], help="Converge container network memberships")
    s_rec.add_argument("--dry-run", action="store_true", help="Only show what would change")

    sub.add_parser("verify", parents=[dep], help="Show remaining differences and network members")
    sub.add_parser("provision", parents=[dep], help="Create the frontend, shared and proxy networks")

    s_td = sub.add_parser("teardown", parents=[dep], help="Remove the project's networks")
    s_td.add_argument("--yes", action="store_true", help="Actually remove; without it only lists the networks")

    sub.add_parser("topology", parents=[dep], help="Print the component table")

    s_ren = sub.add_parser("render", parents=[dep], help="Render a deployment script template")
    s_ren.add_argument("--template", required=True)
    s_ren.add_argument("--output", required=True)
    s_ren.add_argument("--npm-admin-port", type=int, default=settings.npm_admin_port)
    s_ren.add_argument("--npm-http-port", type=int, default=settings.npm_http_port)
    s_ren.add_argument("--npm-https-port", type=int, default=settings.npm_https_port)

    s_dom = sub.add_parser("domains", parents=[dep], help="Show component hostnames and access URLs")
    s_dom.add_argument("--root", default=None, help="Deployment directory whose component .env files get DOMAIN= updated")
    s_dom.add_argument("--apply", action="store_true", help="Write the .env files; without it only shows the changes")

    s_runs = sub.add_parser("runs", help="Show recorded runs")
    s_runs.add_argument("--project", default=None)
    s_runs.add_argument("--limit", type=int, default=20)

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)
    s_ev.add_argument("--container", default=None)

    args = p.parse_args(argv)

    if args.api:
        if args.cmd not in REMOTE_COMMANDS:
            _print({"error": f"'{args.cmd}' is only available locally"})
            return 2
        return _remote(args)

    db.init_db()
    try:
        return _local(args)
    except NoContainersFound as e:
        _print({"error": str(e)})
        return 1
    except DockerException as e:
        _print({"error": f"Docker unavailable: {e}"})
        return 1
    except (ValueError, TemplateError, OSError) as e:
        _print({"error": str(e)})
        return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
