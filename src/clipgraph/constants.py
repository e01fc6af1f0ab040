"""Tunable constants for clipgraph.

Single home for thresholds, defaults and limits so call sites never
hard-code them.
"""

# Similarity
DEFAULT_SIMILARITY_THRESHOLD = 0.5  # edges form strictly above this
SIMILARITY_THRESHOLD_MIN = 0.0  # exclusive
SIMILARITY_THRESHOLD_MAX = 1.0  # exclusive

# Items
DEFAULT_PROVENANCE = "clip"
DEFAULT_OWNER_ID = "demo-user"
MAX_TITLE_LENGTH = 500

# Embeddings
DEFAULT_EMBEDDING_MODEL = "all-MiniLM-L6-v2"

# Storage
DB_FILENAME = "clipgraph.db"
LOG_FILENAME = "clipgraph.log"
SCHEMA_VERSION = 1
SQLITE_BUSY_TIMEOUT_MS = 30000

# Display
TEXT_PREVIEW_CHARS = 60
