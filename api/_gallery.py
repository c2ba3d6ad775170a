import random
import time
from datetime import datetime, timedelta, timezone
from urllib.parse import quote

import requests

from api._shared import logger
from api._store import iso_now

SAMPLE_COUNT = 50
SAMPLE_MESSAGE = 'Sample data - configure GitHub repository'

CHARACTERS = [
    'Rei Ayanami', 'Asuka Langley', 'Misato Katsuragi',
    'Miku Hatsune', 'Rem', 'Ram', '2B', 'Zero Two',
    'Sakura', 'Mai Sakurajima', 'Megumin', 'Aqua',
]

SERIES = [
    'Evangelion', 'Vocaloid', 'Re:Zero', 'NieR:Automata',
    'Darling in the Franxx', 'Fate', 'Bunny Girl Senpai', 'KonoSuba',
]

TAGS = [
    'anime', 'manga', 'HD', 'wallpaper', 'illustration',
    'fan art', 'cute', 'sexy', 'bikini', 'school uniform',
    'maid', 'swimsuit', '4K', 'digital art', 'original',
]


class ImageListUnavailable(Exception):
    pass


def generate_sample_images(count: int = SAMPLE_COUNT, rng=None, now: datetime | None = None):
    """
    Placeholder gallery used when the real images.json cannot be loaded.
    """
    rng = rng or random.Random()
    now = now or datetime.now(timezone.utc)
    images = []
    for i in range(1, count + 1):
        character = rng.choice(CHARACTERS)
        serie = rng.choice(SERIES)
        # 3-5 draws, duplicates collapse
        tags = []
        for _ in range(rng.randint(3, 5)):
            tag = rng.choice(TAGS)
            if tag not in tags:
                tags.append(tag)
        label = quote(character)
        images.append({
            'id': f'img_{i:04d}',
            'title': f'{character} - {serie} #{i}',
            'character': character,
            'series': serie,
            'thumbnail': f'https://via.placeholder.com/400x600/ff69b4/ffffff?text={label}',
            'fullUrl': f'https://via.placeholder.com/1920x2880/ff69b4/ffffff?text={label}',
            'size': rng.randint(1_000_000, 5_999_999),
            'quality': 'HD' if rng.random() > 0.3 else 'Standard',
            'downloads': rng.randint(0, 9999),
            'likes': rng.randint(0, 4999),
            'uploadDate': iso_now(now - timedelta(seconds=rng.random() * 30 * 24 * 60 * 60)),
            'tags': tags,
            'adult': True,
            'nsfw': rng.random() > 0.5,
        })
    return images


def images_url(settings) -> str:
    return (f"{settings.github_raw_base}/{settings.github_owner}/{settings.github_repo}"
            f"/{settings.github_branch}/{settings.images_path}")


def fetch_image_list(settings) -> dict:
    url = images_url(settings)
    live_url = f"{url}?t={int(time.time() * 1000)}"
    headers = {'Cache-Control': 'no-cache', 'Pragma': 'no-cache'}
    if settings.github_token:
        headers['Authorization'] = f'token {settings.github_token}'
    logger.info("[GET-IMAGES] Fetching from: %s", url)
    try:
        resp = requests.get(live_url, timeout=settings.timeout_seconds, headers=headers)
    except requests.RequestException as e:
        raise ImageListUnavailable(f'fetch failed: {e}') from e
    if resp.status_code != 200:
        raise ImageListUnavailable(f'{url} returned {resp.status_code}')
    try:
        data = resp.json()
    except ValueError as e:
        raise ImageListUnavailable(f'{url} is not valid JSON') from e
    if not isinstance(data, dict):
        raise ImageListUnavailable(f'{url} is not a JSON object')
    return data


def build_image_list(settings):
    """
    Returns (payload, status). Failures are reported in the payload; with the
    sample fallback enabled a labelled placeholder gallery is attached.
    """
    try:
        data = fetch_image_list(settings)
    except ImageListUnavailable as e:
        logger.error("[GET-IMAGES] %s", e)
        if not settings.sample_data_fallback:
            return {'status': 'error', 'error': f'Image list unavailable: {e}'}, 502
        images = generate_sample_images()
        return {
            'status': 'success',
            'images': images,
            'total': len(images),
            'placeholder': True,
            'message': SAMPLE_MESSAGE,
            'error': str(e),
        }, 200

    images = data.get('images')
    if not isinstance(images, list):
        images = []
    logger.info("[GET-IMAGES] Success - images loaded: %d", len(images))
    return {
        'status': 'success',
        'images': images,
        'total': len(images),
        'lastUpdate': data.get('lastUpdate') or iso_now(),
    }, 200
