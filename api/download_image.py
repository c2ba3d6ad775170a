import traceback


def _download_fields(image: dict) -> dict:
    return {
        'downloadUrl': image.get('fullUrl'),
        'fileName': f"{image.get('character') or 'image'}_{image.get('id')}.jpg",
    }


def handler(request):
    from api._shared import logger, load_settings, preflight_or_method_check, read_image_id, error_response
    from api._counters import DOWNLOADS, increment_counter

    early = preflight_or_method_check(request, "POST", "POST,OPTIONS")
    if early is not None:
        return early
    try:
        image_id, bad_request = read_image_id(request)
        if bad_request is not None:
            return bad_request
        settings = load_settings()
        return increment_counter(DOWNLOADS, image_id, settings, settings.degrade_download_failures,
                                 on_applied=_download_fields)
    except Exception as e:  # noqa: BLE001
        logger.error("[DOWNLOAD] Error: %s", traceback.format_exc())
        return error_response(str(e) or 'Download failed', 500, methods="POST,OPTIONS")
