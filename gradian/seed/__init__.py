"""Default schemas, relation types and companies shipped with the package."""

import json
from importlib import resources
from typing import Any, Dict, List

from ..storage import COMPANIES_COLLECTION, RELATION_TYPES_COLLECTION, SCHEMAS_COLLECTION

SEED_COLLECTIONS = (SCHEMAS_COLLECTION, RELATION_TYPES_COLLECTION, COMPANIES_COLLECTION)


def load_defaults() -> Dict[str, List[Dict[str, Any]]]:
    """Read the bundled ``all-<collection>.json`` files."""
    package = resources.files(__name__)
    return {
        collection: json.loads(package.joinpath(f"all-{collection}.json").read_text(encoding="utf-8"))
        for collection in SEED_COLLECTIONS
    }
