import logging
import os

from dotenv import load_dotenv

load_dotenv()

# Held-Karp needs a 2^n x n table; 20 cities is the hard ceiling.
HARD_MAX_CITIES = 20

MAX_CITIES = min(int(os.getenv("TSP_MAX_CITIES", HARD_MAX_CITIES)), HARD_MAX_CITIES)
MAX_TABLE_BYTES = int(os.getenv("TSP_MAX_TABLE_BYTES", 256 * 1024 * 1024))
MAX_POINTS = MAX_CITIES

INPUT_DIR = os.getenv("TSP_INPUT_DIR", "input")
OUTPUT_DIR = os.getenv("TSP_OUTPUT_DIR", "output")
LOG_LEVEL = os.getenv("TSP_LOG_LEVEL", "INFO")

SECRET_KEY = os.getenv("FLASK_SECRET_KEY") or os.urandom(24)


def configure_logging(level=None):
    if level is None:
        level = LOG_LEVEL
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # basicConfig is a no-op once handlers exist, so set the level separately.
    logging.getLogger().setLevel(level)
