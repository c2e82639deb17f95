"""Webhook authentication, IP allow-listing and HMAC signature checks."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import ipaddress
import logging
import time
from typing import Any, Mapping

import jwt

from ..core.exceptions import WebhookAuthError, WebhookReplayError

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def fingerprint(value: str | None) -> str:
    """Loggable stand-in for a secret-derived value."""
    if not value:
        return "<none>"
    return f"{value[:8]}..."


def header(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def check_ip_allowed(client_ip: str | None, allow_list: list[str] | None, trigger_id: str | None = None) -> None:
    """Accept any address when the list is empty; entries may be single IPs or CIDR networks."""
    if not allow_list:
        return
    if client_ip:
        try:
            address = ipaddress.ip_address(client_ip)
        except ValueError:
            address = None
        for entry in allow_list:
            if entry == client_ip:
                return
            if address is not None and "/" in entry:
                try:
                    if address in ipaddress.ip_network(entry, strict=False):
                        return
                except ValueError:
                    logger.warning("Ignoring malformed allow-list entry %r on trigger %s", entry, trigger_id)
    raise WebhookAuthError(f"IP {client_ip} is not allowed", trigger_id)


def verify_authentication(
    auth_config: dict[str, Any] | None,
    headers: Mapping[str, str],
    trigger_id: str | None = None,
) -> dict[str, Any]:
    """
    Check the request against the trigger's ``authentication`` block.

    Returns the decoded JWT claims for ``jwt`` and an empty dict otherwise.

    Raises:
        WebhookAuthError: Credentials missing or wrong.
    """
    auth_config = auth_config or {}
    auth_type = auth_config.get("type", "none")

    if auth_type == "none":
        return {}

    if auth_type == "basic":
        expected = auth_config.get("basicAuth") or {}
        value = header(headers, "Authorization")
        if not value or not value.startswith("Basic "):
            raise WebhookAuthError("Missing or invalid Authorization header", trigger_id)
        try:
            username, _, password = base64.b64decode(value[6:]).decode("utf-8").partition(":")
        except (binascii.Error, UnicodeDecodeError):
            raise WebhookAuthError("Malformed basic credentials", trigger_id)
        valid_user = hmac.compare_digest(username, str(expected.get("username", "")))
        valid_password = hmac.compare_digest(password, str(expected.get("password", "")))
        if not (valid_user and valid_password):
            raise WebhookAuthError("Invalid credentials", trigger_id)
        return {}

    if auth_type == "header":
        expected = auth_config.get("headerAuth") or {}
        name = expected.get("headerName")
        if not name:
            raise WebhookAuthError("Header auth configuration missing", trigger_id)
        value = header(headers, name)
        if value is None or not hmac.compare_digest(value, str(expected.get("expectedValue", ""))):
            raise WebhookAuthError("Invalid header value", trigger_id)
        return {}

    if auth_type == "jwt":
        expected = auth_config.get("jwtAuth") or {}
        secret = expected.get("jwtSecret")
        if not secret:
            raise WebhookAuthError("JWT auth configuration missing", trigger_id)
        token = header(headers, expected.get("headerName") or "Authorization")
        if not token:
            raise WebhookAuthError("Missing JWT", trigger_id)
        if token.startswith("Bearer "):
            token = token[7:]
        try:
            return jwt.decode(token, secret, algorithms=[expected.get("jwtAlgorithm") or "HS256"])
        except jwt.PyJWTError as e:
            raise WebhookAuthError(f"Invalid JWT: {e}", trigger_id)

    raise WebhookAuthError(f"Unsupported authentication type: {auth_type}", trigger_id)


def compute_signature(secret: str, timestamp: str, method: str, path: str, raw_body: bytes) -> str:
    """HMAC-SHA256 hex digest of ``timestamp + METHOD + path + raw body``."""
    message = f"{timestamp}{method.upper()}{path}".encode("utf-8") + raw_body
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(
    secret: str,
    signature: str,
    timestamp: str,
    method: str,
    path: str,
    raw_body: bytes,
    trigger_id: str | None = None,
) -> None:
    """Constant-time comparison; accepts an optional ``sha256=`` prefix."""
    received = signature[len(SIGNATURE_PREFIX):] if signature.startswith(SIGNATURE_PREFIX) else signature
    expected = compute_signature(secret, timestamp, method, path, raw_body)
    if not hmac.compare_digest(received.lower(), expected):
        logger.warning("Signature mismatch on trigger %s (received %s)", trigger_id, fingerprint(received))
        raise WebhookAuthError("Invalid webhook signature", trigger_id)


def verify_timestamp(
    timestamp: str,
    tolerance_seconds: float,
    trigger_id: str | None = None,
    now: float | None = None,
) -> int:
    """
    Parse a unix-seconds timestamp and reject it outside the tolerance window.

    Raises:
        WebhookReplayError: Timestamp too old, in the future, or unparseable.
    """
    try:
        value = int(timestamp)
    except (TypeError, ValueError):
        raise WebhookReplayError("Invalid X-Webhook-Timestamp", trigger_id)

    current = time.time() if now is None else now
    if abs(current - value) > tolerance_seconds:
        raise WebhookReplayError("Webhook timestamp outside the accepted window", trigger_id)
    return value
