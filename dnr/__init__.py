"""Docker Network Reconciler (DNR).

Single-host helper that keeps a multi-service deployment's containers
attached to the right Docker networks:
 - discover the project's running containers
 - classify them into components by name
 - diff actual vs. required network membership and converge

Runs are idempotent; re-running after a partial failure converges further.
"""
