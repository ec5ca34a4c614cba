import os
from typing import Dict, Optional, Tuple

from dotenv import dotenv_values

from .logging import get_logger

log = get_logger("config")

DEFAULT_BACKEND_URL = "http://127.0.0.1:8001"
DEFAULT_LLM_MODEL = "gpt-4o-mini"
DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_PRODUCT_DB_URL = "https://world.openfoodfacts.org"


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir.

    This makes running tools from subdirectories (e.g., `src/`) still find
    the repository-level `.env`.
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
    """Read the nearest .env into a mapping; does not mutate the environment."""
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return {}
    try:
        values = dotenv_values(path, encoding="utf-8")
    except OSError as e:
        log.warning(f"Failed reading .env: {e}")
        return {}
    env = {k: v.strip() for k, v in values.items() if v is not None}
    log.debug(f"Loaded {len(env)} key(s) from .env at {path}")
    return env


def _lookup(dotenv_dir: str, *names: str) -> Optional[str]:
    for name in names:
        v = os.environ.get(name)
        if v and v.strip():
            return v.strip()
    env = _read_dotenv(dotenv_dir)
    for name in names:
        v = env.get(name)
        if v:
            return v
    return None


def load_backend(dotenv_dir: str, fallback: str = DEFAULT_BACKEND_URL) -> Tuple[str, Optional[str]]:
    """Return (base_url, anon_key) of the analysis backend."""
    url = _lookup(dotenv_dir, "INGREDIENT_LENS_URL") or fallback
    key = _lookup(dotenv_dir, "INGREDIENT_LENS_ANON_KEY")
    if not key:
        log.debug("INGREDIENT_LENS_ANON_KEY not set; requests will omit the apikey header")
    return url.rstrip("/"), key


def load_auth_url(dotenv_dir: str, *, fallback_to_backend: bool = True) -> Optional[str]:
    """Auth API base URL.

    Clients fall back to the backend URL; the server passes
    fallback_to_backend=False so it never asks itself about tokens.
    """
    v = _lookup(dotenv_dir, "INGREDIENT_LENS_AUTH_URL")
    if v:
        return v.rstrip("/")
    if not fallback_to_backend:
        return None
    return load_backend(dotenv_dir)[0]


def load_llm(dotenv_dir: str) -> Tuple[Optional[str], str, Optional[str]]:
    """Return (api_key, model_name, base_url) for the language model.

    LLM_API_KEY wins over OPENAI_API_KEY; base URL is optional and lets the
    OpenAI SDK target a compatible endpoint.
    """
    api_key = _lookup(dotenv_dir, "LLM_API_KEY", "OPENAI_API_KEY")
    if api_key:
        log.info("Language model API key found")
    else:
        log.debug("LLM_API_KEY/OPENAI_API_KEY not found in env or .env")
    model = _lookup(dotenv_dir, "LLM_MODEL") or DEFAULT_LLM_MODEL
    base_url = _lookup(dotenv_dir, "OPENAI_BASE_URL")
    return api_key, model, base_url


def load_dev_tokens(dotenv_dir: str) -> Dict[str, str]:
    """Parse INGREDIENT_LENS_DEV_TOKENS="token:user,token2:user2"."""
    raw = _lookup(dotenv_dir, "INGREDIENT_LENS_DEV_TOKENS")
    tokens: Dict[str, str] = {}
    if not raw:
        return tokens
    for pair in raw.split(","):
        token, sep, user = pair.strip().partition(":")
        if not sep or not token.strip() or not user.strip():
            log.warning(f"Ignoring malformed dev token entry: {pair!r}")
            continue
        tokens[token.strip()] = user.strip()
    log.info(f"Loaded {len(tokens)} development token(s)")
    return tokens


def load_request_timeout(dotenv_dir: str) -> int:
    v = _lookup(dotenv_dir, "INGREDIENT_LENS_TIMEOUT")
    if not v:
        return DEFAULT_TIMEOUT_SECONDS
    try:
        return max(1, int(v))
    except ValueError:
        log.warning(f"INGREDIENT_LENS_TIMEOUT={v!r} is not an integer; using {DEFAULT_TIMEOUT_SECONDS}")
        return DEFAULT_TIMEOUT_SECONDS


def load_product_db_url(dotenv_dir: str) -> str:
    """Base URL of the Open Food Facts compatible product database."""
    v = _lookup(dotenv_dir, "INGREDIENT_LENS_PRODUCT_DB_URL") or DEFAULT_PRODUCT_DB_URL
    return v.rstrip("/")
