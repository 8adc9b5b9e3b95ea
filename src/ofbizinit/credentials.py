"""
Admin account provisioning.

OFBiz stores passwords as ``$SHA$<salt>$<digest>`` where ``digest`` is the
URL-safe base64 (unpadded) SHA-1 of salt followed by password. That format
is fixed by OFBiz's login service, so it is reproduced exactly here even
though SHA-1 is weak.

The provisioned credential is written into a one-off copy of the admin
login data template, loaded with the bulk loader, and the copy is removed
again whether or not the load succeeds.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import os
import re
import secrets
import string
import tempfile
from pathlib import Path
from typing import Optional, Union
from xml.sax.saxutils import escape

from opentelemetry import trace

from ofbizinit.config import InitializationConfig
from ofbizinit.errors import ConfigurationError
from ofbizinit.loader import BulkLoader
from ofbizinit.logger import StageLogger
from ofbizinit.stages import Stage, StageStore

__all__ = [
    "SCHEME_TAG",
    "SALT_LENGTH",
    "SALT_ALPHABET",
    "generate_salt",
    "hash_password",
    "render_admin_record",
    "CredentialProvisioner",
]

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("ofbizinit.credentials")

SCHEME_TAG = "SHA"
SEPARATOR = "$"
SALT_LENGTH = 16
SALT_ALPHABET = string.ascii_letters + string.digits

USER_LOGIN_PLACEHOLDER = "@userLoginId@"
_CURRENT_PASSWORD = re.compile(r'currentPassword="[^"]*"')


def generate_salt(length: int = SALT_LENGTH) -> str:
    """Random alphanumeric salt from the system CSPRNG."""
    return "".join(secrets.choice(SALT_ALPHABET) for _ in range(length))


def hash_password(password: str, salt: Optional[str] = None) -> str:
    """
    Encode a password in OFBiz's salted SHA-1 format.

    Example:
        >>> hash_password("ofbiz", salt="AAAAAAAAAAAAAAAA")
        '$SHA$AAAAAAAAAAAAAAAA$m5_ILvlse7etY-GDIG_ToCnRvps'
    """
    if salt is None:
        salt = generate_salt()
    digest = hashlib.sha1((salt + password).encode("utf-8")).digest()
    encoded = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
    return f"{SEPARATOR}{SCHEME_TAG}{SEPARATOR}{salt}{SEPARATOR}{encoded}"


def render_admin_record(template: str, user_login_id: str, credential: str) -> str:
    """Substitute the login id and password hash into the admin data template."""
    quoted_user = escape(user_login_id, {'"': "&quot;"})
    rendered = template.replace(USER_LOGIN_PLACEHOLDER, quoted_user)
    return _CURRENT_PASSWORD.sub(lambda _: f'currentPassword="{credential}"', rendered)


class CredentialProvisioner:
    """Loads the bootstrap admin account once per persistent volume."""

    def __init__(
        self,
        store: StageStore,
        loader: BulkLoader,
        template_path: Union[str, Path],
        events: Optional[StageLogger] = None,
    ):
        self.store = store
        self.loader = loader
        self.template_path = Path(template_path)
        self.events = events or StageLogger()

    def run(self, config: InitializationConfig) -> None:
        stage = Stage.ADMIN_LOADED
        if self.store.has_completed(stage):
            self.events.stage_skipped(stage.value)
            return

        with tracer.start_as_current_span(f"stage:{stage.value}") as span:
            self.events.stage_started(stage.value)
            span.set_attribute("ofbiz.admin_user", config.admin_user)

            try:
                template = self.template_path.read_text(encoding="utf-8")
            except OSError as exc:
                raise ConfigurationError(self.template_path, exc.strerror or str(exc)) from exc

            credential = hash_password(config.admin_password.get_secret_value())
            record = render_admin_record(template, config.admin_user, credential)
            self._load_record(record)

            self.store.mark_completed(stage)
            self.events.stage_completed(stage.value)

    def _load_record(self, record: str) -> None:
        fd, temp_path = tempfile.mkstemp(prefix="ofbiz-admin-", suffix=".xml")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(record)
            self.loader.load_file(temp_path)
        finally:
            os.unlink(temp_path)
            logger.debug(f"Removed admin login record {temp_path}")
