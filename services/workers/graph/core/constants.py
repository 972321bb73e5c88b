from pathlib import Path

PHASE_ORDER = [
    "classify",
    "extract",
    "resolve",
    "compute",
    "render",
    "assemble",
]

DATA_SOURCES = ("wikipedia", "court_data", "csv", "unknown")
ANALYSIS_TYPES = ("correlation", "regression", "count", "visualization", "statistical_summary")
OUTPUT_FORMATS = ("json_array", "json_object", "base64_image")

_MAX_DELIMITED_ROWS = 10_000
_MAX_PREVIEW_ROWS = 3
_MAX_IMAGE_BYTES = 100_000
_DATA_TABLE_CLASS = "wikitable"

# (width, height) in pixels, tried in order until the image fits the budget
_RESOLUTION_TIERS = [(800, 600), (600, 400), (400, 300)]
_RENDER_DPI = 100

_SANE_DELAY_WINDOW = (0, 3650)

_SCRAPE_TIMEOUT = 30.0
_QUERY_TIMEOUT = 120.0
_TASK_TIMEOUT = 180.0
_LLM_TIMEOUT = 30.0

_NULL_SENTINELS = {"", "null", "NULL", "NaN", "nan", "None", "-", "—"}

_TEMPLATE_DIR = Path(__file__).resolve().parents[1] / "templates"
_CLASSIFY_TEMPLATE_NAME = "classify_task.j2"
_QUESTIONS_TEMPLATE_NAME = "extract_questions.j2"

FILMS_URL = "https://en.wikipedia.org/wiki/List_of_highest-grossing_films"
COURT_PARQUET_PATH = (
    "s3://indian-high-court-judgments/metadata/parquet/"
    "year=*/court=*/bench=*/metadata.parquet?s3_region=ap-south-1"
)

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

# keyword tables for the deterministic classifier
_WIKIPEDIA_KEYWORDS = ("wikipedia", "highest-grossing", "films")
_COURT_KEYWORDS = ("court", "judgment", "judgement", "indian high court")
_CSV_KEYWORDS = ("csv", "upload")
_VISUALIZATION_KEYWORDS = ("plot", "chart", "scatter", "graph")
_IMAGE_KEYWORDS = ("base64", "data:image")
_COUNT_KEYWORDS = ("how many", "count")
