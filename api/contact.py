import traceback

METHODS = "POST,OPTIONS"
FORM_FIELDS = ('messageType', 'name', 'email', 'subject', 'message')


def handler(request):
    from api._shared import logger, load_settings, json_response, error_response, preflight_or_method_check
    from api._discord import Attachment, DiscordNotifier, MAX_FILE_SIZE, validate_form

    early = preflight_or_method_check(request, "POST", METHODS)
    if early is not None:
        return early

    settings = load_settings()
    if not settings.discord_webhook_url:
        logger.error("[CONTACT] Discord webhook URL not configured")
        return error_response(
            'Contact form not configured. Please set DISCORD_WEBHOOK_URL environment variable.',
            500, methods=METHODS)

    try:
        form = {name: (request.form.get(name) or '').strip() for name in FORM_FIELDS}
        upload = request.files.get('file')
        attachment = None
        if upload is not None and upload.filename:
            attachment = Attachment(upload.filename, upload.mimetype or 'application/octet-stream', upload.read())

        logger.info("[CONTACT] Form submission: type=%s email=%s subject=%s has_file=%s",
                    form['messageType'], form['email'], form['subject'], attachment is not None)

        problem = validate_form(form)
        if problem:
            return error_response(problem, 400, methods=METHODS)
        if attachment is not None and attachment.size > MAX_FILE_SIZE:
            return error_response('File too large. Maximum size is 10MB.', 400, methods=METHODS)

        notifier = DiscordNotifier(settings.discord_webhook_url, timeout=settings.timeout_seconds)
        file_status = notifier.notify(form, attachment)
        logger.info("[CONTACT] Successfully sent to Discord (file: %s)", file_status)
        return json_response({
            'status': 'success',
            'message': 'Your message has been sent successfully!',
            'fileStatus': file_status,
        }, 200, methods=METHODS)
    except Exception:  # noqa: BLE001
        logger.error("[CONTACT] Error: %s", traceback.format_exc())
        return error_response('Failed to submit contact form. Please try again later.', 500, methods=METHODS)
