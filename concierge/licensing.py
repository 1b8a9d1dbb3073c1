"""Signed license keys.

A license key is ``base64url(payload_json).base64url(signature)`` where the
signature is an Ed25519 signature over the raw payload bytes. Keys are
issued with the private key held by the operator and verified with the
public key configured on each deployment.
"""
import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from .audit import log_audit
from .models import LicenseRecord, commit_changes, db
from .utils import utc_now_naive

REASON_NOT_CONFIGURED = 'License is not configured.'
REASON_BAD_FORMAT = 'License format is invalid.'
REASON_BAD_PAYLOAD = 'License payload is invalid.'
REASON_BAD_SIGNATURE = 'License signature is invalid.'
REASON_BAD_EXPIRATION = 'License expiration is invalid.'
REASON_EXPIRED = 'License has expired.'


@dataclass
class LicenseStatus:
    valid: bool
    reason: Optional[str] = None
    payload: Optional[dict] = field(default=None)

    def to_dict(self):
        data = {'valid': self.valid}
        if self.reason:
            data['reason'] = self.reason
        if self.payload is not None:
            data['payload'] = self.payload
        return data


def b64url_encode(raw):
    return base64.urlsafe_b64encode(raw).rstrip(b'=').decode('ascii')


def b64url_decode(value):
    padded = value + '=' * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode('ascii'))


def _parse_timestamp(value):
    if not isinstance(value, str) or not value.strip():
        raise ValueError('timestamp must be a non-empty string')
    parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_payload(raw):
    try:
        payload = json.loads(raw.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    if not payload.get('tenantId') or not payload.get('plan') or not payload.get('issuedAt'):
        return None
    return payload


def load_public_key(pem):
    key = serialization.load_pem_public_key(pem.encode('utf-8'))
    if not isinstance(key, Ed25519PublicKey):
        raise ValueError('License public key must be an Ed25519 key.')
    return key


def load_private_key(pem):
    key = serialization.load_pem_private_key(pem.encode('utf-8'), password=None)
    if not isinstance(key, Ed25519PrivateKey):
        raise ValueError('License private key must be an Ed25519 key.')
    return key


def generate_keypair():
    """Return a fresh ``(private_pem, public_pem)`` pair for issuing licenses."""
    private_key = Ed25519PrivateKey.generate()
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode('ascii')
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode('ascii')
    return private_pem, public_pem


def evaluate_license(license_key, public_key_pem, now=None):
    if not public_key_pem or not license_key:
        return LicenseStatus(valid=False, reason=REASON_NOT_CONFIGURED)

    parts = license_key.strip().split('.')
    if len(parts) != 2:
        return LicenseStatus(valid=False, reason=REASON_BAD_FORMAT)
    try:
        payload_bytes = b64url_decode(parts[0])
        signature = b64url_decode(parts[1])
    except (binascii.Error, ValueError):
        return LicenseStatus(valid=False, reason=REASON_BAD_FORMAT)

    payload = _parse_payload(payload_bytes)
    if payload is None:
        return LicenseStatus(valid=False, reason=REASON_BAD_PAYLOAD)

    try:
        load_public_key(public_key_pem).verify(signature, payload_bytes)
    except (InvalidSignature, UnsupportedAlgorithm, ValueError, TypeError):
        return LicenseStatus(valid=False, reason=REASON_BAD_SIGNATURE)

    if payload.get('expiresAt'):
        try:
            expires_at = _parse_timestamp(payload['expiresAt'])
        except (TypeError, ValueError):
            return LicenseStatus(valid=False, reason=REASON_BAD_EXPIRATION)
        now = now or datetime.now(timezone.utc)
        if expires_at < now:
            return LicenseStatus(valid=False, reason=REASON_EXPIRED)

    return LicenseStatus(valid=True, payload=payload)


def sign_license(private_key_pem, tenant_id, plan, features=None, expires_at=None, issued_at=None):
    issued_at = issued_at or datetime.now(timezone.utc)
    payload = {
        'tenantId': tenant_id,
        'plan': plan,
        'features': list(features or []),
        'issuedAt': issued_at.isoformat().replace('+00:00', 'Z'),
    }
    if expires_at is not None:
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        payload['expiresAt'] = expires_at.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')
    payload_bytes = json.dumps(payload, separators=(',', ':'), sort_keys=True).encode('utf-8')
    signature = load_private_key(private_key_pem).sign(payload_bytes)
    return f'{b64url_encode(payload_bytes)}.{b64url_encode(signature)}'


def license_key_for_tenant(tenant_id, fallback_key=''):
    record = LicenseRecord.query.filter_by(tenant_id=tenant_id).first()
    if record is not None:
        return record.license_key
    return fallback_key


def store_license(tenant_id, license_key, actor, plan=None):
    record = LicenseRecord.query.filter_by(tenant_id=tenant_id).first()
    if record is None:
        record = LicenseRecord(tenant_id=tenant_id, license_key=license_key)
        db.session.add(record)
    record.license_key = license_key
    record.issued_by_id = getattr(actor, 'user_id', None)
    record.issued_at = utc_now_naive()
    commit_changes()
    log_audit(actor, 'license.issue', LicenseRecord.__tablename__, {'tenantId': tenant_id, 'plan': plan})
    return record
