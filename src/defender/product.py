"""
Product Identity

Name, service name and version of this client build. Resolved once per
process from PRODUCT.toml (or a bare VERSION file) next to the client, with
hard-coded defaults for anything missing.
"""

import logging
from pathlib import Path
from typing import Optional

from . import config_store
from .models import ProductIdentity
from .paths import get_client_dir

logger = logging.getLogger(__name__)

DEFAULT_NAME = "AI Defender"
DEFAULT_SERVICE_NAME = "AI_DEFENDER_AGENT"
DEFAULT_VERSION = "0.1.1-alpha"

DEFAULT_IDENTITY = ProductIdentity(
    name=DEFAULT_NAME,
    service_name=DEFAULT_SERVICE_NAME,
    version=DEFAULT_VERSION,
)


def parse_product_descriptor(text: str, fallback: ProductIdentity = DEFAULT_IDENTITY) -> ProductIdentity:
    """Parse PRODUCT.toml; keys are matched case-insensitively, blanks fall back."""
    fields = {key.lower(): value for key, value in config_store.parse(text).items()}

    def pick(key: str, default: str) -> str:
        value = config_store.parse_string(fields.get(key))
        return value.strip() if value and value.strip() else default

    return ProductIdentity(
        name=pick("name", fallback.name),
        service_name=pick("service_name", fallback.service_name),
        version=pick("version", fallback.version),
    )


def load_product_identity(client_dir: Optional[Path] = None) -> ProductIdentity:
    """Resolve the identity from disk without touching the process cache."""
    client_dir = client_dir or get_client_dir()
    identity = DEFAULT_IDENTITY

    try:
        descriptor = client_dir / "PRODUCT.toml"
        if descriptor.is_file():
            return parse_product_descriptor(descriptor.read_text(encoding="utf-8-sig"), identity)

        version_file = client_dir / "VERSION"
        if version_file.is_file():
            version = version_file.read_text(encoding="utf-8-sig").strip()
            if version:
                identity = ProductIdentity(identity.name, identity.service_name, version)
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Product descriptor unreadable, using defaults: {e}")

    return identity


# Process-wide identity, resolved on first access
_identity: Optional[ProductIdentity] = None


def get_product_identity() -> ProductIdentity:
    """Get the process-wide product identity."""
    global _identity
    if _identity is None:
        _identity = load_product_identity()
        logger.debug(f"Product identity: {_identity}")
    return _identity


def set_product_identity(identity: Optional[ProductIdentity]) -> None:
    """Set (or with None, clear) the process-wide product identity."""
    global _identity
    _identity = identity
