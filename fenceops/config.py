import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Local development falls back to a SQLite file; production points this at PostgreSQL
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./fenceops.db")

# Frontend origins allowed through CORS (comma separated)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Scheduling / clustering
MAX_JOBS_PER_DAY = int(os.getenv("MAX_JOBS_PER_DAY", "6"))  # per technician route
CLUSTER_RADIUS_MILES = float(os.getenv("CLUSTER_RADIUS_MILES", "5"))
TRAVEL_MINUTES_PER_MILE = float(os.getenv("TRAVEL_MINUTES_PER_MILE", "2"))
FUEL_COST_PER_MILE = float(os.getenv("FUEL_COST_PER_MILE", "0.15"))  # gas + vehicle wear
BASE_TRIP_MILES = float(os.getenv("BASE_TRIP_MILES", "25"))  # average one-way trip to a job site
FLEX_WINDOW_DAYS = int(os.getenv("FLEX_WINDOW_DAYS", "14"))
UNSCHEDULED_LOOKBACK_DAYS = int(os.getenv("UNSCHEDULED_LOOKBACK_DAYS", "7"))
DEFAULT_JOB_DURATION_HOURS = float(os.getenv("DEFAULT_JOB_DURATION_HOURS", "4"))

# Quotes
QUOTE_VALID_DAYS = int(os.getenv("QUOTE_VALID_DAYS", "30"))

# Pricing approvals
APPROVAL_TTL_DAYS = int(os.getenv("APPROVAL_TTL_DAYS", "7"))
ANOMALY_LOOKBACK_DAYS = int(os.getenv("ANOMALY_LOOKBACK_DAYS", "90"))
COMPETITOR_LOOKBACK_DAYS = int(os.getenv("COMPETITOR_LOOKBACK_DAYS", "180"))

# Geocoding (OpenStreetMap Nominatim fallback when the ZIP dataset has no match)
NOMINATIM_BASE_URL = os.getenv("NOMINATIM_BASE_URL", "https://nominatim.openstreetmap.org").rstrip("/")
# Required by Nominatim policy (include a way to contact you)
NOMINATIM_USER_AGENT = os.getenv("NOMINATIM_USER_AGENT", "FenceOps/1.0 (support@fenceops.io)")
GEOCODE_CACHE_SECONDS = int(os.getenv("GEOCODE_CACHE_SECONDS", "86400"))
GEOCODE_TIMEOUT_SECONDS = float(os.getenv("GEOCODE_TIMEOUT_SECONDS", "5"))
