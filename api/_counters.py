from dataclasses import dataclass

from api._shared import logger, json_response, error_response
from api._store import (
    VersionedDocumentStore,
    MutationResult,
    StoreError,
    NotFound,
    AuthError,
    find_image,
    increment_downloads,
    increment_likes,
)

METHODS = "POST,OPTIONS"


@dataclass(frozen=True)
class CounterSpec:
    tag: str
    field: str
    mutation: object
    commit_message: str
    local_only_message: str
    dropped_message: str


LIKES = CounterSpec('LIKE', 'likes', increment_likes, 'Update like stats',
                    'Like counted (local only)', 'Like counted (not persisted)')
DOWNLOADS = CounterSpec('DOWNLOAD', 'downloads', increment_downloads, 'Update download stats',
                        'Download counted (local only)', 'Download counted (not persisted)')


def build_store(settings) -> VersionedDocumentStore:
    return VersionedDocumentStore(
        settings.github_token,
        api_base=settings.github_api_base,
        branch=settings.github_branch,
        timeout=settings.timeout_seconds,
    )


def _soft_success(message: str):
    return json_response({'status': 'success', 'message': message}, 200, methods=METHODS)


def increment_counter(spec: CounterSpec, image_id: str, settings, degrade_on_persistence_failure: bool,
                      store=None, on_applied=None):
    """
    Runs one counter increment and maps its outcome onto a response.

    With `degrade_on_persistence_failure` the caller always hears that the
    click was registered unless the image is unknown; otherwise persistence
    failures surface as 409/502/503.
    """
    tag = spec.tag
    logger.info("[%s] Processing %s for image: %s", tag, spec.field, image_id)
    if not settings.github_token:
        logger.warning("[%s] GitHub token not configured", tag)
        if degrade_on_persistence_failure:
            return _soft_success(spec.local_only_message)
        return error_response('Counter storage is not configured', 503, methods=METHODS)

    store = store or build_store(settings)
    try:
        result = store.apply_mutation(
            settings.collection,
            settings.images_path,
            spec.mutation(image_id),
            max_retries=settings.max_retries,
            commit_message=spec.commit_message,
        )
    except NotFound:
        logger.info("[%s] Images data not found", tag)
        return error_response('Image not found', 404, methods=METHODS)
    except AuthError as e:
        logger.error("[%s] GitHub rejected credentials: %s", tag, e)
        if degrade_on_persistence_failure:
            return _soft_success(spec.local_only_message)
        return error_response('Counter storage is misconfigured', 503, methods=METHODS)
    except StoreError as e:
        logger.error("[%s] Failed to update %s: %s", tag, spec.field, e)
        if degrade_on_persistence_failure:
            return _soft_success(spec.local_only_message)
        return error_response('Counter storage unavailable', 502, methods=METHODS)

    if result.status == MutationResult.NOT_FOUND:
        return error_response('Image not found', 404, methods=METHODS)
    if result.status == MutationResult.CONFLICT:
        logger.warning("[%s] Dropped %s increment for %s after %d attempts",
                       tag, spec.field, image_id, result.attempts)
        if degrade_on_persistence_failure:
            payload = {'status': 'success', 'message': spec.dropped_message}
            image = find_image(result.content, image_id) if isinstance(result.content, dict) else None
            if image is not None and on_applied:
                payload.update(on_applied(image))
            return json_response(payload, 200, methods=METHODS)
        return error_response('Too many concurrent updates, please retry', 409, methods=METHODS)

    image = find_image(result.content, image_id)
    payload = {'status': 'success', spec.field: image[spec.field]}
    if on_applied:
        payload.update(on_applied(image))
    logger.info("[%s] Success - %s: %s", tag, spec.field, image[spec.field])
    return json_response(payload, 200, methods=METHODS)
