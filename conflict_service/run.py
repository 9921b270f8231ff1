#!/usr/bin/env python3
"""
Quick runner for Conflict Service
=================================

Usage:
    python -m conflict_service.run
    # or
    python conflict_service/run.py
"""

import uvicorn

if __name__ == "__main__":
    print("Starting Conflict Service...")
    print("API docs: http://localhost:8000/docs")
    print("Health:   http://localhost:8000/health")
    print()

    uvicorn.run(
        "conflict_service.api:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
