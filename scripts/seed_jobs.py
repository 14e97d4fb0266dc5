"""
Seed script — submits a few sample builds for demo purposes.

Usage:
    python -m scripts.seed_jobs

This creates:
- 1 single-target build on amd64
- 1 pipeline building two packages on every mainline target
- 1 guaranteed-failure build (needs BUILD_ENVIRONMENT=simulated on the worker)

Run this after the API, the dispatcher and at least one worker are up.
"""

import httpx

BASE_URL = "http://localhost:8000"


def seed():
    client = httpx.Client(base_url=BASE_URL, timeout=10.0)

    jobs = [
        {
            "target": "amd64",
            "payload": {"packages": ["bash"], "git_ref": "stable", "build_flags": {"duration": 2.0}},
        },
        {
            "target": "amd64",
            "max_attempts": 2,
            "payload": {
                "packages": ["broken-package"],
                "git_ref": "stable",
                "build_flags": {"duration": 0.5, "fail_probability": 1.0},
            },
        },
    ]
    pipeline = {
        "targets": ["mainline"],
        "payload": {"packages": ["fish", "zsh"], "git_ref": "stable", "github_pr": 1234},
    }

    print(f"Submitting {len(jobs)} jobs and 1 pipeline to {BASE_URL}...\n")

    for job in jobs:
        resp = client.post("/jobs/", json=job)
        resp.raise_for_status()
        data = resp.json()
        print(f"  [{data['status']}] {data['target']}: {' '.join(data['payload']['packages'])} (id: {data['id'][:8]}...)")

    resp = client.post("/pipelines/", json=pipeline)
    resp.raise_for_status()
    data = resp.json()
    print(f"  pipeline {data['id'][:8]}... → {len(data['jobs'])} jobs on {', '.join(data['targets'])}")

    print("\nDone! Jobs are now waiting for workers.")
    print("Check status:  curl http://localhost:8000/jobs/stats")
    print("Fleet:         curl http://localhost:8000/fleet/status")


if __name__ == "__main__":
    seed()
