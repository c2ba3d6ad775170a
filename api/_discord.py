import json
import re
from dataclasses import dataclass

import requests

from api._store import iso_now

MAX_FILE_SIZE = 10 * 1024 * 1024
DISCORD_UPLOAD_LIMIT = 8 * 1024 * 1024
MESSAGE_LIMIT = 1000
EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

MESSAGE_EMOJIS = {
    'general': '💬',
    'support': '🛠️',
    'dmca': '⚖️',
    'feedback': '💡',
    'bug': '🐛',
    'partnership': '🤝',
    'other': '📌',
}

MESSAGE_COLORS = {
    'general': 0x5865F2,
    'support': 0xFEE75C,
    'dmca': 0xED4245,
    'feedback': 0x57F287,
    'bug': 0xEB459E,
    'partnership': 0x5865F2,
    'other': 0x99AAB5,
}

DEFAULT_EMOJI = '📧'
DEFAULT_COLOR = 0xFF69B4


class WebhookError(Exception):
    pass


@dataclass
class Attachment:
    filename: str
    mime_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def format_file_size(size: int) -> str:
    if size < 1024:
        return f'{size} B'
    if size < 1024 * 1024:
        return f'{size / 1024:.1f} KB'
    return f'{size / (1024 * 1024):.1f} MB'


def validate_form(form: dict):
    """Returns an error message, or None when the submission is acceptable."""
    if not form.get('email') or not form.get('subject') or not form.get('message'):
        return 'Required fields are missing'
    if not EMAIL_RE.match(form['email']):
        return 'Invalid email address'
    return None


def build_embed(form: dict) -> dict:
    message_type = form.get('messageType') or ''
    message = form['message']
    if len(message) > MESSAGE_LIMIT:
        message = message[:MESSAGE_LIMIT] + '...'
    return {
        'title': f"📧 {MESSAGE_EMOJIS.get(message_type, DEFAULT_EMOJI)} New Contact Form Submission",
        'color': MESSAGE_COLORS.get(message_type, DEFAULT_COLOR),
        'fields': [
            {'name': '📋 Message Type', 'value': message_type or 'General', 'inline': True},
            {'name': '👤 Name', 'value': form.get('name') or 'Anonymous', 'inline': True},
            {'name': '📧 Email', 'value': form['email'], 'inline': True},
            {'name': '📝 Subject', 'value': form['subject'], 'inline': False},
            {'name': '💬 Message', 'value': message, 'inline': False},
        ],
        'footer': {'text': 'AnimeGallery Contact Form'},
        'timestamp': iso_now(),
    }


def build_payload(embed: dict) -> dict:
    return {
        'username': 'AnimeGallery Contact',
        'avatar_url': 'https://via.placeholder.com/128/ff69b4/ffffff?text=AG',
        'embeds': [embed],
    }


def _attachment_field(attachment: Attachment, too_large: bool) -> dict:
    value = f'File: {attachment.filename}\nSize: {format_file_size(attachment.size)}'
    if too_large:
        value += '\n⚠️ File too large for Discord (>8MB). Saved separately.'
    return {'name': '📎 Attachment', 'value': value, 'inline': False}


class DiscordNotifier:
    def __init__(self, webhook_url: str, timeout: float = 10, session=None):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _upload(self, payload: dict, attachment: Attachment) -> bool:
        files = {'file': (attachment.filename, attachment.data, attachment.mime_type)}
        try:
            resp = self.session.post(self.webhook_url, data={'payload_json': json.dumps(payload)},
                                     files=files, timeout=self.timeout)
        except requests.RequestException:
            return False
        return resp.ok

    def notify(self, form: dict, attachment: Attachment | None = None):
        """
        Posts the submission and returns the file status: None without an
        attachment, otherwise 'uploaded', 'failed' or 'too_large'.
        """
        embed = build_embed(form)
        payload = build_payload(embed)
        file_status = None
        if attachment is not None:
            if attachment.size <= DISCORD_UPLOAD_LIMIT:
                file_status = 'uploaded' if self._upload(payload, attachment) else 'failed'
            else:
                file_status = 'too_large'
            if file_status != 'uploaded':
                embed['fields'].append(_attachment_field(attachment, file_status == 'too_large'))

        if file_status != 'uploaded':
            try:
                resp = self.session.post(self.webhook_url, json=payload, timeout=self.timeout)
            except requests.RequestException as e:
                raise WebhookError(f'Discord webhook failed: {e}') from e
            if not resp.ok:
                raise WebhookError(f'Discord webhook failed: {resp.status_code}')
        return file_status
