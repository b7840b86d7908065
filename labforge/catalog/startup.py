from __future__ import annotations

import logging
from pathlib import Path

from labforge.catalog.registry import Catalog
from labforge.catalog.singleton import init_catalog


logger = logging.getLogger(__name__)

# labforge/catalog/startup.py -> repo root
PROJECT_ROOT = Path(__file__).resolve().parents[2]


def init_catalog_for_app(*, project_root: Path | None = None) -> Catalog:
    """Load the catalog for a process entry point (API, resolver, admin CLI)."""

    cat = init_catalog(project_root=project_root or PROJECT_ROOT)
    logger.info(
        "Catalog ready: %d actions, %d research nodes, %d categories",
        len(cat.actions()),
        len(cat.research_nodes()),
        len(cat.categories()),
    )
    return cat
