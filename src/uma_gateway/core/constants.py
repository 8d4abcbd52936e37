"""Application-wide constants.

This module defines constants used throughout the application
to avoid magic numbers and ensure consistency.
"""

# Tenant defaults
DEFAULT_MIN_SENDABLE_SATS = 1
DEFAULT_MAX_SENDABLE_SATS = 10_000_000
DEFAULT_TENANT_TOKEN_LENGTH = 2

# String field lengths
MAX_TENANT_ID_LENGTH = 64
MAX_NAME_LENGTH = 255
MAX_DOMAIN_LENGTH = 253
MAX_URL_LENGTH = 2048
MAX_PUBLIC_KEY_LENGTH = 256
MAX_USERNAME_LENGTH = 128
MAX_PARTITION_LENGTH = 128
MAX_KYC_STATUS_LENGTH = 32

# Protocol
MSATS_PER_SAT = 1000
DEFAULT_NONCE_RETENTION_SECONDS = 2 * 24 * 60 * 60  # two days
DEFAULT_SENDER_KEY_CACHE_SECONDS = 60 * 60
DEFAULT_COMMENT_ALLOWED = 255
UMA_MAJOR_VERSION = 1
PUBKEY_WELL_KNOWN_PATH = "/.well-known/lnurlpubkey"

# Redis key prefixes
NONCE_CACHE_PREFIX = "uma:nonce:"
PUBKEY_CACHE_PREFIX = "uma:pubkeys:"

# Generic client-facing reasons
INTERNAL_ERROR_REASON = "Internal server error"
INVALID_TENANT_REASON = "Not valid tenant"
