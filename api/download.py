import re
import traceback
from urllib.parse import urljoin, urlparse

METHODS = "GET,OPTIONS"
MAX_IMAGE_BYTES = 20 * 1024 * 1024
MAX_REDIRECTS = 5
REDIRECT_STATUSES = (301, 302, 303, 307, 308)
CHUNK_SIZE = 64 * 1024


class ProxyError(Exception):
    pass


def check_image_url(url: str, allowed_hosts) -> str:
    try:
        parsed = urlparse((url or '').strip())
        host = (parsed.hostname or '').lower()
    except ValueError as e:
        raise ProxyError('invalid url') from e
    if parsed.scheme != 'https':
        raise ProxyError('https only')
    if host not in allowed_hosts:
        raise ProxyError('host not allowed')
    return parsed.geturl()


def attachment_filename(url: str) -> str:
    last = urlparse(url).path.split('/')[-1]
    return re.sub(r'[^a-zA-Z0-9._-]', '_', last or 'image.jpg')


def _read_capped(resp) -> bytes:
    body = bytearray()
    for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
        body.extend(chunk)
        if len(body) > MAX_IMAGE_BYTES:
            raise ProxyError('image too large')
    return bytes(body)


def fetch_image(url: str, settings):
    import requests

    target = check_image_url(url, settings.allowed_hosts)
    current = target
    # Every hop is checked against the allow-list before it is requested
    for _ in range(MAX_REDIRECTS + 1):
        try:
            resp = requests.get(current, timeout=settings.timeout_seconds, allow_redirects=False, stream=True)
        except requests.RequestException as e:
            raise ProxyError(f'upstream failed: {e}') from e
        try:
            if resp.status_code in REDIRECT_STATUSES:
                location = resp.headers.get('location')
                if not location:
                    raise ProxyError(f'upstream failed: {resp.status_code}')
                current = check_image_url(urljoin(current, location), settings.allowed_hosts)
                continue
            if not 200 <= resp.status_code < 300:
                raise ProxyError(f'upstream failed: {resp.status_code}')
            body = _read_capped(resp)
            content_type = resp.headers.get('content-type') or 'application/octet-stream'
            return body, content_type, attachment_filename(target)
        finally:
            resp.close()
    raise ProxyError('too many redirects')


def handler(request):
    from api._shared import logger, load_settings, cors_headers, preflight_or_method_check, json_response

    early = preflight_or_method_check(request, "GET", METHODS)
    if early is not None:
        return early
    url = (request.args.get('url') or '').strip()
    if not url:
        return json_response({'error': 'url is required'}, 400)
    try:
        body, content_type, filename = fetch_image(url, load_settings())
    except ProxyError as e:
        logger.info("[PROXY] Rejected %s: %s", url, e)
        return json_response({'error': str(e)}, 400)
    except Exception as e:  # noqa: BLE001
        logger.error("[PROXY] Error: %s", traceback.format_exc())
        return json_response({'error': str(e) or 'download failed'}, 400)
    logger.info("[PROXY] Served %s (%d bytes)", url, len(body))
    headers = {
        **cors_headers(METHODS),
        "Content-Type": content_type,
        "Content-Disposition": f'attachment; filename="{filename}"',
        "Cache-Control": "no-store",
    }
    return (body, 200, headers)
