"""Seed convoy loader for the in-memory convoy store."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List

from pydantic import ValidationError

from ..config import settings
from ..models.domain import ConvoySpec
from ..schemas.convoys import ConvoyCreateRequest
from ..services.outputs.formatter import spec_from_request

logger = logging.getLogger(__name__)


def load_seed_convoys(source: Path | None = None) -> List[ConvoySpec]:
    """Read the seed convoy list. Missing file or malformed entries are logged and skipped."""
    seed_path = source or settings.seed_convoys_file
    if not seed_path.exists():
        logger.warning(f"Seed convoy file not found: {seed_path}")
        return []

    try:
        with seed_path.open("r", encoding="utf-8") as handle:
            rows = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning(f"Unreadable seed convoy file {seed_path}: {exc}")
        return []
    if not isinstance(rows, list):
        logger.warning(f"Seed convoy file {seed_path} must contain a list of convoys")
        return []

    specs: List[ConvoySpec] = []
    for row in rows:
        try:
            specs.append(spec_from_request(ConvoyCreateRequest.model_validate(row)))
        except ValidationError as exc:
            logger.warning(f"Skipping invalid seed convoy: {exc.error_count()} validation errors")
    return specs
