import traceback


def handler(request):
    from api._shared import logger, json_response, load_settings, preflight_or_method_check, error_response
    from api._gallery import build_image_list

    early = preflight_or_method_check(request, "GET", "GET,OPTIONS")
    if early is not None:
        return early
    try:
        payload, status = build_image_list(load_settings())
        return json_response(payload, status)
    except Exception as e:  # noqa: BLE001
        logger.error("[GET-IMAGES] Error: %s", traceback.format_exc())
        return error_response(str(e) or 'Failed to load images', 500)
