import os
from dataclasses import dataclass
from typing import Dict, Optional

from dotenv import dotenv_values

from .logging import get_logger

log = get_logger("config")

DEFAULT_EXTRACTION_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_EXTRACTION_MODEL = "gemini-2.5-flash"
DEFAULT_TOTAL_FEE = 20000
SHEET_URL_PLACEHOLDER = "YOUR_APPS_SCRIPT_URL_HERE"


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir.

    This makes running tools from subdirectories (e.g., `src/`) still find
    repository-level config files like `.env`.
    """
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: str) -> Dict[str, str]:
    """Read the nearest .env into a mapping; does not mutate environment."""
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return {}
    try:
        raw = dotenv_values(path)
    except (OSError, UnicodeDecodeError) as e:
        log.warning(f"Failed reading .env: {e}")
        return {}
    env = {str(k): str(v).strip() for k, v in raw.items() if v is not None}
    log.debug(f"Loaded {len(env)} key(s) from .env at {path}")
    return env


def _lookup(env: Dict[str, str], *names: str) -> Optional[str]:
    for name in names:
        v = os.environ.get(name)
        if v and v.strip():
            return v.strip()
    for name in names:
        v = env.get(name)
        if v:
            return v
    return None


def load_extraction(dotenv_dir: str) -> tuple[Optional[str], str, str]:
    """Return (api_key, base_url, model) for the extraction service.

    The key is looked up as EXTRACTION_API_KEY, then GEMINI_API_KEY, then
    OPENAI_API_KEY. Base URL defaults to Gemini's OpenAI-compatible endpoint.
    """
    env = _read_dotenv(dotenv_dir)
    api_key = _lookup(env, "EXTRACTION_API_KEY", "GEMINI_API_KEY", "OPENAI_API_KEY")
    base_url = _lookup(env, "EXTRACTION_BASE_URL") or DEFAULT_EXTRACTION_BASE_URL
    model = _lookup(env, "EXTRACTION_MODEL") or DEFAULT_EXTRACTION_MODEL
    if not api_key:
        log.warning("No extraction API key found in env/.env; uploads will fail until one is set")
    return api_key, base_url, model


def load_sheet_url(dotenv_dir: str) -> str:
    env = _read_dotenv(dotenv_dir)
    return _lookup(env, "SHEET_WEBAPP_URL") or ""


def load_total_fee(dotenv_dir: str) -> int:
    env = _read_dotenv(dotenv_dir)
    raw = _lookup(env, "COURSE_TOTAL_FEE")
    if not raw:
        return DEFAULT_TOTAL_FEE
    try:
        return int(raw)
    except ValueError:
        log.warning(f"COURSE_TOTAL_FEE={raw!r} is not an integer; using {DEFAULT_TOTAL_FEE}")
        return DEFAULT_TOTAL_FEE


@dataclass
class DeskSettings:
    extraction_api_key: Optional[str]
    extraction_base_url: str
    extraction_model: str
    sheet_url: str
    total_fee: int = DEFAULT_TOTAL_FEE


def load_settings(dotenv_dir: str) -> DeskSettings:
    """Collect every environment-driven setting in one place."""
    api_key, base_url, model = load_extraction(dotenv_dir)
    settings = DeskSettings(
        extraction_api_key=api_key,
        extraction_base_url=base_url,
        extraction_model=model,
        sheet_url=load_sheet_url(dotenv_dir),
        total_fee=load_total_fee(dotenv_dir),
    )
    log.info(f"Extraction model   : {settings.extraction_model}")
    log.info(f"Extraction base URL: {settings.extraction_base_url}")
    log.info(f"Sheet endpoint set : {bool(settings.sheet_url)}")
    log.info(f"Course total fee   : {settings.total_fee}")
    return settings
