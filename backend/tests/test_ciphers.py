"""Tests for the cipher-name helpers (OpenSSL and IANA naming)."""

import pytest

from cybersuite.utils.ciphers import (
    classify_cipher_suite,
    has_forward_secrecy,
    is_cbc_cipher,
    is_export_cipher,
    is_small_block_cipher,
    uses_hmac,
)


class TestCipherPredicates:

    @pytest.mark.parametrize("name,expected", [
        ("EXP-RC4-MD5", True),
        ("TLS_RSA_EXPORT_WITH_RC4_40_MD5", True),
        ("ECDHE-RSA-AES128-GCM-SHA256", False),
        ("", False),
    ])
    def test_export(self, name, expected):
        assert is_export_cipher(name) is expected

    @pytest.mark.parametrize("name,expected", [
        ("DES-CBC3-SHA", True),
        ("TLS_RSA_WITH_3DES_EDE_CBC_SHA", True),
        ("IDEA-CBC-SHA", True),
        ("AES128-SHA", False),
        ("TLS_AES_128_GCM_SHA256", False),
    ])
    def test_small_block(self, name, expected):
        assert is_small_block_cipher(name) is expected

    @pytest.mark.parametrize("name,expected", [
        ("ECDHE-RSA-AES128-SHA", True),
        ("AES256-SHA256", True),
        ("TLS_RSA_WITH_AES_128_CBC_SHA", True),
        ("ECDHE-RSA-AES128-GCM-SHA256", False),
        ("ECDHE-RSA-CHACHA20-POLY1305", False),
        ("TLS_AES_256_GCM_SHA384", False),
        ("RC4-SHA", False),
        (None, False),
    ])
    def test_cbc(self, name, expected):
        assert is_cbc_cipher(name) is expected

    def test_hmac(self):
        assert uses_hmac("ECDHE-RSA-AES128-SHA")
        assert uses_hmac("TLS_RSA_WITH_AES_128_CBC_SHA256")
        assert not uses_hmac("ECDHE-RSA-CHACHA20-POLY1305")
        assert not uses_hmac("")

    @pytest.mark.parametrize("name,expected", [
        ("ECDHE-RSA-AES128-GCM-SHA256", True),
        ("DHE-RSA-AES256-SHA", True),
        ("TLS_AES_128_GCM_SHA256", True),
        ("TLS_ECDHE_RSA_WITH_AES_128_GCM_SHA256", True),
        ("TLS_RSA_WITH_AES_128_CBC_SHA", False),
        ("AES128-SHA", False),
    ])
    def test_forward_secrecy(self, name, expected):
        assert has_forward_secrecy(name) is expected


class TestClassifyCipherSuite:

    @pytest.mark.parametrize("name,expected", [
        ("TLS_AES_256_GCM_SHA384", "strong"),
        ("ECDHE-RSA-CHACHA20-POLY1305", "strong"),
        ("RC4-MD5", "weak"),
        ("DES-CBC3-SHA", "weak"),
        ("EXP-DES-CBC-SHA", "weak"),
        ("ADH-AES128-SHA", "weak"),
        ("ECDHE-RSA-AES128-SHA", "deprecated"),
        ("TLS_RSA_WITH_AES_128_CBC_SHA", "deprecated"),
        ("TLS_RSA_WITH_AES_128_SHA", "medium"),
    ])
    def test_classification(self, name, expected):
        assert classify_cipher_suite(name) == expected
