"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    GITHUB_TOKEN                — Token for the GitHub Actions REST API (required for artifacts)
    GITHUB_API_URL              — API base URL (default: https://api.github.com)
    POLL_INTERVAL_SECONDS       — Seconds between run status queries (default: 10)
    MAX_POLL_ATTEMPTS           — Status queries before giving up watching (default: 180)
    INITIAL_POLL_DELAY_SECONDS  — Wait before the first lookup after a push (default: 10)
    PAYLOAD_EXTENSION           — Extension of the build product inside artifacts (default: .apk)
    CANONICAL_PAYLOAD_NAME      — File name the payload is staged under (default: app-debug.apk)
    DOWNLOADS_DIR               — Where artifacts are downloaded (default: downloads)
    APP_CONFIG_PATH             — App configuration file (default: apk-config.json)
    DEFAULT_BRANCH              — Branch pushed when detection fails (default: main)

Watch Window:
    POLL_INTERVAL_SECONDS * MAX_POLL_ATTEMPTS is the total observation window
    (30 minutes with the defaults). A run still pending after that is reported
    as timed out; it may still finish on GitHub afterwards.
"""
import os
from dotenv import load_dotenv

load_dotenv()

GITHUB_TOKEN = os.getenv("GITHUB_TOKEN") or os.getenv("GH_TOKEN")
GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip("/")
GITHUB_WEB_URL = os.getenv("GITHUB_WEB_URL", "https://github.com").rstrip("/")

# Watcher
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", 10))
MAX_POLL_ATTEMPTS = int(os.getenv("MAX_POLL_ATTEMPTS", 180))
INITIAL_POLL_DELAY_SECONDS = float(os.getenv("INITIAL_POLL_DELAY_SECONDS", 10))

# Artifacts
PAYLOAD_EXTENSION = os.getenv("PAYLOAD_EXTENSION", ".apk")
CANONICAL_PAYLOAD_NAME = os.getenv("CANONICAL_PAYLOAD_NAME", "app-debug.apk")
DOWNLOADS_DIR = os.getenv("DOWNLOADS_DIR", "downloads")

# HTTP timeout for a single provider call
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", 20))

# Packaging project
APP_CONFIG_PATH = os.getenv("APP_CONFIG_PATH", "apk-config.json")
DEFAULT_BRANCH = os.getenv("DEFAULT_BRANCH", "main")
RESULTS_PATH = os.getenv("RESULTS_PATH", "build-report.json")
