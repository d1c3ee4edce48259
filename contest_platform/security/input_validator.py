# contest_platform/security/input_validator.py

import re
import html
import math
import bleach
from datetime import datetime, timezone
from urllib.parse import urlparse

from contest_platform.database.models import CATEGORIES, STATUSES
from contest_platform.errors import ValidationError

# Explicit validation layer: every public operation validates its payload here
# before any domain logic runs. Failures are collected per field and raised
# together as a single ValidationError.

COMPETITION_FIELDS = {
    'title': 'title',
    'description': 'description',
    'category': 'category',
    'startDate': 'start_date',
    'endDate': 'end_date',
    'maxEntries': 'max_entries',
    'entryFee': 'entry_fee',
    'prizePool': 'prize_pool',
    'status': 'status',
}
COMPETITION_REQUIRED = ('title', 'description', 'category', 'startDate', 'endDate')
# Upper bound of a 32-bit signed INTEGER column
MAX_ENTRIES_LIMIT = 2**31 - 1
READ_ONLY_FIELDS = ('id', 'creatorId', 'creator', 'createdAt')


class InputValidator:
    def __init__(self):
        self.allowed_html_tags = []
        self.allowed_html_attributes = {}

        self.patterns = {
            'email': re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'),
            'username': re.compile(r'^[A-Za-z0-9_.-]+$'),
            'xss_script': re.compile(r'<script[^>]*>.*?</script>', re.IGNORECASE | re.DOTALL),
        }

    def sanitize_string(self, input_str, max_length=255):
        if not isinstance(input_str, str):
            raise ValueError("Input must be a string")
        sanitized = re.sub(self.patterns['xss_script'], '', input_str)
        sanitized = bleach.clean(sanitized, tags=self.allowed_html_tags,
                                 attributes=self.allowed_html_attributes, strip=True)
        # bleach escapes bare '&', '<', '>'; store the plain text form
        sanitized = html.unescape(sanitized).strip()
        return sanitized[:max_length]

    def validate_email(self, email):
        return isinstance(email, str) and bool(self.patterns['email'].match(email))

    def validate_url(self, value):
        if not isinstance(value, str) or len(value) > 2048:
            return False
        parsed = urlparse(value.strip())
        return parsed.scheme in ('http', 'https') and bool(parsed.netloc)

    def parse_datetime(self, value):
        # ISO 8601 date or datetime; aware values are converted to naive UTC.
        if not isinstance(value, str) or not value.strip():
            raise ValueError("must be an ISO 8601 date")
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed

    # ------------------------------------------------------------------ #

    def require_object(self, payload):
        if not isinstance(payload, dict):
            raise ValidationError(
                [{'field': None, 'message': 'Request body must be a JSON object'}])
        return payload

    def validate_registration(self, payload):
        payload = self.require_object(payload)
        errors = []
        username = payload.get('username')
        email = payload.get('email')
        password = payload.get('password')

        if not isinstance(username, str) or len(username.strip()) < 3:
            errors.append(_error('username', 'Username must be at least 3 characters long'))
        elif len(username.strip()) > 50 or not self.patterns['username'].match(username.strip()):
            errors.append(_error('username', 'Username may only contain letters, digits, ".", "_" and "-" (max 50)'))
        if not self.validate_email(email.strip() if isinstance(email, str) else email):
            errors.append(_error('email', 'Please provide a valid email'))
        if not isinstance(password, str) or len(password) < 6:
            errors.append(_error('password', 'Password must be at least 6 characters long'))
        if errors:
            raise ValidationError(errors)
        return {
            'username': username.strip(),
            'email': email.strip().lower(),
            'password': password,
        }

    def validate_login(self, payload):
        payload = self.require_object(payload)
        errors = []
        email = payload.get('email')
        password = payload.get('password')
        if not self.validate_email(email.strip() if isinstance(email, str) else email):
            errors.append(_error('email', 'Please provide a valid email'))
        if not isinstance(password, str) or not password:
            errors.append(_error('password', 'Please provide a password'))
        if errors:
            raise ValidationError(errors)
        return {'email': email.strip().lower(), 'password': password}

    def validate_competition(self, payload, partial=False):
        """Validate a competition create payload, or an update patch when partial.

        Returns the cleaned fields keyed by model attribute name. Cross-field
        rules that need the stored record (date order on a patch, status
        transitions) are checked by the lifecycle manager.
        """
        payload = self.require_object(payload)
        errors = []
        clean = {}

        for key in payload:
            if key in READ_ONLY_FIELDS:
                errors.append(_error(key, f'{key} cannot be changed'))
            elif key not in COMPETITION_FIELDS:
                errors.append(_error(key, 'Unknown field'))

        if not partial:
            for key in COMPETITION_REQUIRED:
                if payload.get(key) in (None, ''):
                    errors.append(_error(key, f'Please provide a {_label(key)}'))
            if 'status' in payload:
                errors.append(_error('status', 'New competitions always start as upcoming'))

        if 'title' in payload and payload['title'] not in (None, ''):
            self._text(payload, 'title', 100, clean, errors, 'Title cannot be more than 100 characters')
        elif partial and 'title' in payload:
            errors.append(_error('title', 'Please provide a competition title'))

        if 'description' in payload and payload['description'] not in (None, ''):
            self._text(payload, 'description', 500, clean, errors, 'Description cannot be more than 500 characters')
        elif partial and 'description' in payload:
            errors.append(_error('description', 'Please provide a description'))

        if 'category' in payload and payload['category'] not in (None, ''):
            if payload['category'] in CATEGORIES:
                clean['category'] = payload['category']
            else:
                errors.append(_error('category', f'Category must be one of: {", ".join(CATEGORIES)}'))
        elif partial and 'category' in payload:
            errors.append(_error('category', 'Please provide a category'))

        for key in ('startDate', 'endDate'):
            if key in payload and payload[key] not in (None, ''):
                try:
                    clean[COMPETITION_FIELDS[key]] = self.parse_datetime(payload[key])
                except (TypeError, ValueError):
                    errors.append(_error(key, f'{key} must be an ISO 8601 date'))
            elif partial and key in payload:
                errors.append(_error(key, f'Please provide a {_label(key)}'))

        if 'start_date' in clean and 'end_date' in clean and clean['start_date'] >= clean['end_date']:
            errors.append(_error('endDate', 'endDate must be after startDate'))

        if 'maxEntries' in payload:
            value = payload['maxEntries']
            if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= MAX_ENTRIES_LIMIT:
                errors.append(_error('maxEntries', f'maxEntries must be an integer between 1 and {MAX_ENTRIES_LIMIT}'))
            else:
                clean['max_entries'] = value

        for key in ('entryFee', 'prizePool'):
            if key in payload:
                number = _finite_float(payload[key])
                if number is None or number < 0:
                    errors.append(_error(key, f'{key} must be a non-negative number'))
                else:
                    clean[COMPETITION_FIELDS[key]] = number

        if partial and 'status' in payload:
            if payload['status'] in STATUSES:
                clean['status'] = payload['status']
            else:
                errors.append(_error('status', f'Status must be one of: {", ".join(STATUSES)}'))

        if errors:
            raise ValidationError(errors)
        return clean

    def validate_entry(self, payload):
        payload = self.require_object(payload)
        errors = []
        clean = {}
        for key, label in (('title', 'an entry title'), ('description', 'a description')):
            if payload.get(key) in (None, ''):
                errors.append(_error(key, f'Please provide {label}'))
            else:
                limit = 100 if key == 'title' else 500
                self._text(payload, key, limit, clean, errors,
                           f'{key.capitalize()} cannot be more than {limit} characters')
        media_url = payload.get('mediaUrl')
        if media_url in (None, ''):
            errors.append(_error('mediaUrl', 'Please provide a media URL'))
        elif not self.validate_url(media_url):
            errors.append(_error('mediaUrl', 'mediaUrl must be an http(s) URL'))
        else:
            clean['media_url'] = media_url.strip()
        if errors:
            raise ValidationError(errors)
        return clean

    def _text(self, payload, key, limit, clean, errors, too_long):
        value = payload[key]
        if not isinstance(value, str):
            errors.append(_error(key, f'{key} must be a string'))
            return
        sanitized = self.sanitize_string(value, max_length=limit + 1)
        if not sanitized:
            errors.append(_error(key, f'{key} must not be empty'))
        elif len(sanitized) > limit:
            errors.append(_error(key, too_long))
        else:
            clean[COMPETITION_FIELDS.get(key, key)] = sanitized


def _error(field, message):
    return {'field': field, 'message': message}


def _label(key):
    return {
        'title': 'competition title',
        'startDate': 'start date',
        'endDate': 'end date',
    }.get(key, key)


def _finite_float(value):
    # JSON allows NaN, Infinity and integers too large for a float
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None
