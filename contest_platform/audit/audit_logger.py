# contest_platform/audit/audit_logger.py

import os
import json
import base64
import hashlib
import logging
import threading
from datetime import datetime, timezone

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from contest_platform.errors import ConfigurationError

# Append-only security event log with hash chaining and Ed25519 signatures.
# Each record carries the hash of its predecessor, so removing or editing a
# line breaks verify_log_integrity().

logger = logging.getLogger(__name__)


class AuditLogger:
    def __init__(self, log_dir='logs', signing_key=None, enabled=True):
        self.enabled = enabled
        self.log_dir = log_dir
        self.log_file = os.path.join(log_dir, 'audit.log')
        self.previous_hash = None
        self._lock = threading.Lock()

        self.signing_key = signing_key or Ed25519PrivateKey.generate()
        if self.enabled:
            os.makedirs(log_dir, exist_ok=True)
            self._load_previous_hash()

    @classmethod
    def from_settings(cls, settings):
        signing_key = None
        if settings.audit_signing_key_path:
            try:
                signing_key = load_signing_key(settings.audit_signing_key_path)
            except (OSError, ValueError) as e:
                raise ConfigurationError(f"Cannot load audit signing key: {e}")
        return cls(log_dir=settings.audit_log_dir, signing_key=signing_key,
                   enabled=settings.audit_log_enabled)

    def _load_previous_hash(self):
        if not os.path.exists(self.log_file):
            return
        with open(self.log_file, 'r') as f:
            lines = [line for line in f if line.strip()]
        if lines:
            try:
                self.previous_hash = json.loads(lines[-1]).get('hash')
            except json.JSONDecodeError:
                logger.warning("Last audit record in %s is not valid JSON", self.log_file)
                self.previous_hash = None

    def log_security_event(self, event_type, data, user_id=None):
        if not self.enabled:
            return
        # The chain is only valid if records are appended one at a time.
        with self._lock:
            record = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "event_type": event_type,
                "data": data,
                "user_id": user_id,
                "previous_hash": self.previous_hash,
            }
            try:
                sealed = self._seal(record)
                with open(self.log_file, 'a') as f:
                    f.write(json.dumps(sealed) + "\n")
            except (OSError, TypeError, ValueError):
                # Audit failures must not fail the request that triggered them.
                logger.exception("Audit log write failed for event %s", event_type)
                return
            self.previous_hash = sealed['hash']

    def records(self):
        """Yield the parsed records of the log file, oldest first."""
        if not os.path.exists(self.log_file):
            return
        with open(self.log_file, 'r') as f:
            for line in f:
                if line.strip():
                    yield json.loads(line)

    def verify_log_integrity(self):
        public_key = self.signing_key.public_key()
        expected_previous = None
        try:
            for sealed in self.records():
                body = {k: v for k, v in sealed.items() if k not in ('hash', 'signature')}
                if body.get('previous_hash') != expected_previous:
                    return False
                canonical = _canonical(body)
                if hashlib.sha256(canonical).hexdigest() != sealed['hash']:
                    return False
                public_key.verify(base64.b64decode(sealed['signature']), canonical)
                expected_previous = sealed['hash']
        except (KeyError, ValueError, InvalidSignature):
            return False
        return True

    def _seal(self, record):
        canonical = _canonical(record)
        return dict(
            record,
            hash=hashlib.sha256(canonical).hexdigest(),
            signature=base64.b64encode(self.signing_key.sign(canonical)).decode(),
        )


def _canonical(record):
    return json.dumps(record, sort_keys=True).encode()


def load_signing_key(path):
    with open(path, 'rb') as f:
        key = serialization.load_pem_private_key(f.read(), password=None)
    if not isinstance(key, Ed25519PrivateKey):
        raise ValueError(f"{path} does not contain an Ed25519 private key")
    return key
