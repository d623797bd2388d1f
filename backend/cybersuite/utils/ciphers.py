# cybersuite/utils/ciphers.py
"""
Cipher suite name helpers.

Names arrive in two schemes depending on where they come from:

    IANA     TLS_ECDHE_RSA_WITH_AES_128_CBC_SHA, TLS_AES_256_GCM_SHA384
    OpenSSL  ECDHE-RSA-AES128-SHA, DES-CBC3-SHA, EXP-RC4-MD5

Python's ssl module reports OpenSSL names for TLS 1.2 and below and IANA
names for TLS 1.3, so every helper accepts both.
"""

from __future__ import annotations

import re
from typing import List

# Tokens of a cipher name once split on "_" / "-"
AEAD_TOKENS = {"GCM", "CCM", "CCM8", "POLY1305", "CHACHA20"}
STREAM_TOKENS = {"RC4", "NULL"}
SMALL_BLOCK_TOKENS = {"3DES", "DES", "DES40", "CBC3", "IDEA", "RC2"}
WEAK_TOKENS = {"RC4", "NULL", "MD5", "ANON", "ADH", "AECDH"} | SMALL_BLOCK_TOKENS
FS_TOKENS = {"ECDHE", "DHE", "EDH", "EECDH"}


# ---------------------------------------------------------------------------
# Cipher helpers
# ---------------------------------------------------------------------------

def _cipher_tokens(name: str) -> List[str]:
    return [t for t in re.split(r"[_\-]", (name or "").upper()) if t]


def _is_iana_name(name: str) -> bool:
    return (name or "").upper().startswith(("TLS_", "SSL_"))


def is_export_cipher(name: str) -> bool:
    return any(t.startswith("EXP") for t in _cipher_tokens(name))


def is_small_block_cipher(name: str) -> bool:
    """64-bit block ciphers (SWEET32): 3DES, DES, IDEA, RC2."""
    return any(t in SMALL_BLOCK_TOKENS for t in _cipher_tokens(name))


def is_cbc_cipher(name: str) -> bool:
    """
    CBC-mode suite in either naming scheme.

    IANA names spell the mode out (TLS_RSA_WITH_AES_128_CBC_SHA). OpenSSL
    names leave it implicit: ECDHE-RSA-AES128-SHA is CBC because it uses a
    block cipher without an AEAD mode.
    """
    tokens = _cipher_tokens(name)
    if not tokens:
        return False
    if any(t.startswith("CBC") for t in tokens):
        return True
    if _is_iana_name(name):
        return False
    if any(t in AEAD_TOKENS for t in tokens) or any(t in STREAM_TOKENS for t in tokens):
        return False
    return any(
        t.startswith(("AES", "CAMELLIA", "ARIA")) or t in {"SEED", "DES", "3DES", "IDEA", "RC2"}
        for t in tokens
    )


def uses_hmac(name: str) -> bool:
    """Suite authenticates with an HMAC (SHA*/MD5) rather than an AEAD tag."""
    tokens = _cipher_tokens(name)
    return bool(tokens) and tokens[-1].startswith(("SHA", "MD5"))


def has_forward_secrecy(name: str) -> bool:
    tokens = _cipher_tokens(name)
    if any(t in FS_TOKENS for t in tokens):
        return True
    # TLS 1.3 suites (TLS_AES_128_GCM_SHA256) always use ephemeral key exchange
    return _is_iana_name(name) and "WITH" not in tokens


def classify_cipher_suite(name: str) -> str:
    """strong, weak, deprecated or medium."""
    tokens = _cipher_tokens(name)
    if is_export_cipher(name) or any(t in WEAK_TOKENS for t in tokens):
        return "weak"
    if any(t in {"GCM", "POLY1305", "CHACHA20", "CCM", "CCM8"} for t in tokens):
        return "strong"
    if is_cbc_cipher(name):
        return "deprecated"
    return "medium"
