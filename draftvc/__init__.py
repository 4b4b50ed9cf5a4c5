"""
draftvc - Content-addressed version control for structured drafts.

This package versions structured documents such as résumé drafts:
- Saves create a new version only when the content hash changes
- Versions form families linked by parent_id and indexed by root_id
- Any two versions can be compared side by side
- Restoring replays old content as a new head; history is never rewritten
- Deletion is a soft tombstone that never removes the last active version

Architecture:
    ┌──────────────┐     ┌──────────────────────────┐
    │  HTTP API    │────▶│  DraftVersioningService  │
    │  (FastAPI)   │     └────────────┬─────────────┘
    └──────────────┘                  │
                 ┌──────────────┬─────┴───────┬──────────────────┐
                 ▼              ▼             ▼                  ▼
          ┌───────────┐  ┌───────────┐  ┌────────────┐  ┌──────────────┐
          │  Engine   │  │ Lineage   │  │ Comparator │  │ Restore /    │
          │ (+Hasher) │  │ Resolver  │  │            │  │ Delete       │
          └─────┬─────┘  └─────┬─────┘  └─────┬──────┘  └──────┬───────┘
                └──────────────┴──────┬───────┴────────────────┘
                                      ▼
                          ┌───────────────────────┐
                          │ VersionStore          │
                          │ (SQLite / in-memory)  │
                          └───────────────────────┘

Invariants:
    - content_hash is a pure function of content
    - version_number is unique and increasing per family, assigned by the store
    - Content is never mutated after creation
    - Rows are never removed

Version: 1.0.0
"""

__version__ = "1.0.0"

from .compare import Comparator, VersionComparison
from .config import ServiceConfig, VersioningConfig
from .controller import RestoreDeleteController
from .engine import CreateOutcome, NoChange, VersionCreated, VersionEngine
from .errors import (
    ComparisonInputError,
    DraftVcError,
    ForbiddenError,
    InvariantViolation,
    NotFoundError,
    StorageFailure,
    ValidationError,
    VersionConflictError,
)
from .hashing import content_hash
from .lineage import LineageResolver
from .service import DraftVersioningService
from .store import (
    DraftVersion,
    InMemoryVersionStore,
    OriginSource,
    SqliteVersionStore,
    VersionStore,
    create_version_store,
)

__all__ = [
    "__version__",
    # Service
    "DraftVersioningService",
    "ServiceConfig",
    "VersioningConfig",
    # Components
    "VersionEngine",
    "LineageResolver",
    "Comparator",
    "RestoreDeleteController",
    "content_hash",
    # Outcomes
    "CreateOutcome",
    "VersionCreated",
    "NoChange",
    "VersionComparison",
    # Store
    "VersionStore",
    "DraftVersion",
    "OriginSource",
    "InMemoryVersionStore",
    "SqliteVersionStore",
    "create_version_store",
    # Errors
    "DraftVcError",
    "NotFoundError",
    "ForbiddenError",
    "ValidationError",
    "StorageFailure",
    "VersionConflictError",
    "InvariantViolation",
    "ComparisonInputError",
]
