import json
import os
import logging
from dataclasses import dataclass, field

logger = logging.getLogger("api")
logger.setLevel(logging.INFO)

DEFAULT_ALLOWED_HOSTS = 'holara.ai,content.holara.ai,www.holara.ai'

CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
}


def _env(name: str, default: str = '') -> str:
    return (os.environ.get(name) or default).strip()


def _env_flag(name: str, default: bool = True) -> bool:
    raw = _env(name)
    if not raw:
        return default
    return raw.lower() in ('1', 'true', 'yes', 'on')


def _env_number(name: str, default, cast=int):
    raw = _env(name)
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


@dataclass
class Settings:
    github_owner: str = 'your-username'
    github_repo: str = 'anime-gallery-data'
    github_branch: str = 'main'
    github_token: str = ''
    images_path: str = 'images.json'
    github_api_base: str = 'https://api.github.com'
    github_raw_base: str = 'https://raw.githubusercontent.com'
    timeout_seconds: float = 10.0
    max_retries: int = 3
    degrade_like_failures: bool = True
    degrade_download_failures: bool = True
    sample_data_fallback: bool = True
    discord_webhook_url: str = ''
    allowed_hosts: frozenset = field(default_factory=lambda: frozenset(DEFAULT_ALLOWED_HOSTS.split(',')))

    @property
    def collection(self) -> str:
        return f"{self.github_owner}/{self.github_repo}"


def load_settings() -> Settings:
    """
    Reads configuration from the environment on every call so each
    invocation sees the deployment's current variables.
    """
    hosts = _env('DOWNLOAD_ALLOWED_HOSTS', DEFAULT_ALLOWED_HOSTS)
    return Settings(
        github_owner=_env('GITHUB_OWNER', 'your-username'),
        github_repo=_env('GITHUB_REPO', 'anime-gallery-data'),
        github_branch=_env('GITHUB_BRANCH', 'main'),
        github_token=_env('GITHUB_TOKEN'),
        images_path=_env('IMAGES_PATH', 'images.json').lstrip('/'),
        github_api_base=_env('GITHUB_API_BASE', 'https://api.github.com').rstrip('/'),
        github_raw_base=_env('GITHUB_RAW_BASE', 'https://raw.githubusercontent.com').rstrip('/'),
        timeout_seconds=_env_number('GITHUB_TIMEOUT_SECONDS', 10.0, float),
        max_retries=max(1, _env_number('COUNTER_MAX_RETRIES', 3)),
        degrade_like_failures=_env_flag('DEGRADE_LIKE_FAILURES'),
        degrade_download_failures=_env_flag('DEGRADE_DOWNLOAD_FAILURES'),
        sample_data_fallback=_env_flag('SAMPLE_DATA_FALLBACK'),
        discord_webhook_url=_env('DISCORD_WEBHOOK_URL'),
        allowed_hosts=frozenset(h.strip().lower() for h in hosts.split(',') if h.strip()),
    )


def cors_headers(methods: str = "GET,OPTIONS") -> dict:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": methods,
        "Access-Control-Allow-Headers": "Content-Type",
    }


def json_response(data: dict, status: int = 200, extra_headers: dict | None = None, methods: str = "GET,OPTIONS"):
    body = json.dumps(data, ensure_ascii=False)
    headers = {
        "Content-Type": "application/json; charset=utf-8",
        **cors_headers(methods),
        **CACHE_HEADERS,
    }
    if extra_headers:
        headers.update(extra_headers)
    return (body, status, headers)


def error_response(message: str, status: int, methods: str = "GET,OPTIONS"):
    return json_response({'status': 'error', 'error': message}, status, methods=methods)


def preflight_or_method_check(request, allowed: str, methods: str):
    """
    Returns the early response for CORS preflight and disallowed methods,
    or None when the handler should go on.
    """
    if request.method == "OPTIONS":
        return ('', 200, {**cors_headers(methods), **CACHE_HEADERS})
    if request.method != allowed:
        return error_response('Method not allowed', 405, methods=methods)
    return None


def read_image_id(request):
    """
    Pulls `imageId` out of a JSON body. Returns (image_id, None) or
    (None, error_response).
    """
    methods = "POST,OPTIONS"
    try:
        payload = json.loads(request.get_data(as_text=True) or 'null')
    except ValueError:
        return None, error_response('Invalid JSON body', 400, methods=methods)
    image_id = payload.get('imageId') if isinstance(payload, dict) else None
    if not isinstance(image_id, str) or not image_id.strip():
        return None, error_response('imageId is required', 400, methods=methods)
    return image_id.strip(), None
