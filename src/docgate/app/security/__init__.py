"""Signing, identity, and permission policy for the sharing engine."""

from .identity import (
    CallerIdentity,
    decode_identity_token,
    get_caller_identity,
    get_optional_identity,
)
from .permissions import (
    Capability,
    Relation,
    Role,
    capabilities_for,
    relation_to_bundle,
    relation_to_document,
    require_capability,
)
from .secrets import (
    SecretValidationError,
    load_signing_keys,
    parse_signing_keys,
    validate_signing_keys,
)
from .signing import SignatureService, SigningKey

__all__ = [
    'CallerIdentity',
    'Capability',
    'Relation',
    'Role',
    'SecretValidationError',
    'SignatureService',
    'SigningKey',
    'capabilities_for',
    'decode_identity_token',
    'get_caller_identity',
    'get_optional_identity',
    'load_signing_keys',
    'parse_signing_keys',
    'relation_to_bundle',
    'relation_to_document',
    'require_capability',
    'validate_signing_keys',
]
