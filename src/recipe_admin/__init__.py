"""
Recipe Admin - orchestration service for the recipe-PDF generation backend

This package provides the logic behind the recipe administration dashboard.
It enables:

- Submitting AI-driven PDF generation requests (single dish, menu, theme, custom list)
- Tracking generation progress by polling the backend or simulating it locally
- Caching the catalog of generated PDFs stored in the external bucket
- Filtering, sorting and deleting catalog entries
- Deriving dashboard statistics from the catalog snapshot

The package does not render anything itself; a presentation layer reads
snapshots and issues commands through the JSON API in `main`.

Key Components:
    - main: FastAPI application exposing the dashboard operations
    - dashboard: wiring and lifetime of the components below
    - orchestrator: generation job lifecycle (submit, poll, simulate, settle)
    - catalog: bucket artifact snapshot with refresh/delete/filter/sort
    - stats: counters derived from the catalog snapshot
    - backend: async HTTP client for the recipe backend
    - configuration: config loading and merging logic

Usage:
    Run the API server with:
        uvicorn recipe_admin.main:app --reload --host 0.0.0.0 --port 8000
"""
