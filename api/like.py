import traceback


def handler(request):
    from api._shared import logger, load_settings, preflight_or_method_check, read_image_id, error_response
    from api._counters import LIKES, increment_counter

    early = preflight_or_method_check(request, "POST", "POST,OPTIONS")
    if early is not None:
        return early
    try:
        image_id, bad_request = read_image_id(request)
        if bad_request is not None:
            return bad_request
        settings = load_settings()
        return increment_counter(LIKES, image_id, settings, settings.degrade_like_failures)
    except Exception:  # noqa: BLE001
        logger.error("[LIKE] Error: %s", traceback.format_exc())
        return error_response('Failed to register like', 500, methods="POST,OPTIONS")
