import json
import os


def handler(request):
    # Health check without the heavier shared imports
    body = json.dumps({
        "ok": True,
        "storage": bool((os.environ.get("GITHUB_TOKEN") or "").strip()),
        "contact": bool((os.environ.get("DISCORD_WEBHOOK_URL") or "").strip()),
    })
    headers = {
        "Content-Type": "application/json; charset=utf-8",
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET,OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
        "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    }
    if request.method == "OPTIONS":
        return ("", 200, headers)
    return (body, 200, headers)
