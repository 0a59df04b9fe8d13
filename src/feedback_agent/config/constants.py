"""
Constants and configuration values for the feedback agent.

Defines thresholds, limits, and system-wide defaults.
"""

from typing import Final

# Chunking
CHUNK_SIZE: Final[int] = 1200
CHUNK_OVERLAP: Final[int] = 200
MAX_PREVIEW_CHARS: Final[int] = 20_000

# Embeddings
EMBEDDING_BATCH_SIZE: Final[int] = 100
EMBEDDING_BATCH_TOKEN_LIMIT: Final[int] = 18_000
EMBEDDING_CHARS_PER_TOKEN: Final[int] = 4  # used only for truncation length
TOKEN_ESTIMATE_CHARS: Final[int] = 3       # conservative chars/token estimate
TRIM_TOKEN_BUDGET: Final[int] = 9_000

# Document extraction
DOC_AI_PAGE_LIMIT: Final[int] = 30
PDF_OCR_DPI: Final[int] = 200

# Vector index
VECTOR_UPSERT_BATCH_SIZE: Final[int] = 50
NEIGHBOR_COUNT: Final[int] = 6
FALLBACK_MATERIAL_LIMIT: Final[int] = 6

# Document store
STORE_BATCH_SIZE: Final[int] = 400

# Access sessions
ACCESS_TOKEN_BYTES: Final[int] = 24
SESSION_ID_LENGTH: Final[int] = 16

# Verification codes
PREFIX_MIN: Final[int] = 200
PREFIX_MAX: Final[int] = 998
SCORE_BUCKET_DIVISOR: Final[int] = 100
SCORE_BUCKET_MULTIPLIER: Final[int] = 1000
MAX_SCORE: Final[int] = 100_000
SENTINEL_CODE: Final[str] = "9999"
HASH_MODULUS: Final[int] = 2_147_483_647

# Arbitration
CRITERION_PASS_THRESHOLD: Final[float] = 70.0
BOUNDARY_MARGIN: Final[float] = 5.0
ESCALATION_THRESHOLD: Final[float] = 0.7
DIFFICULTY_WEIGHTS: Final[dict] = {
    "disagreement": 0.5,
    "boundary": 0.2,
    "self_reflection": 0.15,
    "evidence_gap": 0.15,
}
DEFAULT_SELF_REFLECTION: Final[float] = 50.0

# Evidence validation
EVIDENCE_MIN_CHARS: Final[int] = 30
FUZZY_MATCH_THRESHOLD: Final[float] = 0.85
FUZZY_WINDOW_PADDING: Final[int] = 50
FUZZY_WINDOW_MIN: Final[int] = 200
FUZZY_WINDOW_MAX: Final[int] = 800
FUZZY_STEP_MIN: Final[int] = 120

# Criteria defaults
DEFAULT_RELIABILITY: Final[float] = 0.6
DEFAULT_WEIGHT: Final[float] = 1.0
DEFAULT_BLOOM_LEVEL: Final[str] = "Unspecified"
LOW_RELIABILITY_THRESHOLD: Final[float] = 0.6

# Grading
ASSESSMENT_TIMEOUT_S: Final[float] = 15.0
ADJUDICATOR_TIMEOUT_S: Final[float] = 20.0
STUDENT_TEXT_MAX_CHARS: Final[int] = 20_000
JSON_RETRY_ATTEMPTS: Final[int] = 2
IMPROVE_TEMPERATURE: Final[float] = 0.1
STRINGENCY_LEVELS: Final[tuple] = ("generous", "standard", "strict")
DEFAULT_STRINGENCY: Final[str] = "standard"
FEEDBACK_FALLBACK_TEXT: Final[str] = "Feedback generation failed."

# Provider calls
MAX_RETRIES: Final[int] = 3
MAX_TOKENS: Final[int] = 8192
API_CONNECT_TIMEOUT: Final[float] = 10.0
API_READ_TIMEOUT: Final[float] = 120.0
CALL_HISTORY_LIMIT: Final[int] = 200

# Model routing cache
MODEL_CONFIG_TTL_S: Final[float] = 60.0

# Storage
DATA_DIR: Final[str] = "data"
BLOB_DIR_NAME: Final[str] = "blobs"
