#!/usr/bin/env python
"""Start the gateway with uvicorn (binds to 0.0.0.0 for container use)."""

import os
import sys

import uvicorn

# Run from the repo root so the "gateway" package resolves
repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
os.chdir(repo_root)

if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    reload = os.getenv("RELOAD", "0") == "1"
    print(f"Starting capability gateway on {host}:{port}", file=sys.stderr)
    uvicorn.run("gateway.main:app", host=host, port=port, reload=reload)
