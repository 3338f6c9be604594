from pathlib import Path
from dotenv import load_dotenv
import os

load_dotenv()

BASE_DIR = Path(__file__).parent

# Data directory (gitignored)
DATA_DIR = BASE_DIR / "data"
DATA_DIR.mkdir(exist_ok=True)

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR}/routes.db")

# API
API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8000"))
CORS_ORIGINS: list[str] = [
    origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
]
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# Connection search
DEFAULT_RADIUS_METRES: float = float(os.getenv("DEFAULT_RADIUS_METRES", "500"))
# Upper bound accepted by the HTTP endpoint; the search itself has no cap.
MAX_RADIUS_METRES: float = float(os.getenv("MAX_RADIUS_METRES", "10000"))

# Route import
GEOJSON_FETCH_TIMEOUT_SECONDS: float = float(os.getenv("GEOJSON_FETCH_TIMEOUT_SECONDS", "30"))
