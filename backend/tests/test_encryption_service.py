"""
Testes do serviço de criptografia de campos PII.
"""

import logging

import pytest
from pydantic import ValidationError as PydanticValidationError

from src.config import Settings
from src.domain.exceptions import CryptoFailure
from src.infrastructure.services.encryption_service import (
    NONCE_SIZE,
    FieldCipher,
    derive_key,
    is_envelope,
    mask_value,
)
from tests.utils import TEST_ENCRYPTION_KEY


# ===== TESTE 1: IDA E VOLTA =====

@pytest.mark.parametrize("plaintext", [
    "artist@example.com",
    "+33 6 12 34 56 78",
    "ção é ü 🎵",
    "a",
])
def test_encrypt_then_decrypt_returns_original(cipher, plaintext):
    """Descriptografar o envelope devolve exatamente o texto original."""
    assert cipher.decrypt(cipher.encrypt(plaintext)) == plaintext


def test_same_plaintext_never_produces_same_envelope(cipher):
    """Nonce aleatório: dois envelopes do mesmo texto nunca são iguais."""
    envelopes = {cipher.encrypt("artist@example.com") for _ in range(50)}
    assert len(envelopes) == 50


def test_envelope_format(cipher):
    envelope = cipher.encrypt("artist@example.com")
    nonce_hex, cipher_hex = envelope.split(":")

    assert len(nonce_hex) == NONCE_SIZE * 2
    bytes.fromhex(nonce_hex)
    bytes.fromhex(cipher_hex)
    assert "artist" not in envelope
    assert is_envelope(envelope)


# ===== TESTE 2: VALORES VAZIOS E LEGADOS =====

@pytest.mark.parametrize("value", [None, ""])
def test_empty_values_pass_through(cipher, value):
    assert cipher.encrypt(value) == value
    assert cipher.decrypt(value) == value


@pytest.mark.parametrize("legacy", [
    "plain@example.com",
    "not:hex-at-all",
    "a:b:c",
    "abcd:ef01",  # nonce com tamanho errado
])
def test_legacy_values_are_returned_unchanged(cipher, legacy):
    """Dados antigos (antes da criptografia) voltam sem alteração."""
    assert cipher.decrypt(legacy) == legacy


def test_wrong_key_degrades_to_raw_value_and_warns(cipher, caplog):
    """Chave errada não derruba a leitura: volta o valor bruto e loga aviso."""
    envelope = cipher.encrypt("artist@example.com")
    other = FieldCipher("another-key-that-is-also-long-enough-32")

    with caplog.at_level(logging.WARNING):
        result = other.decrypt(envelope, context="lead.email")

    assert result == envelope
    assert any("descriptografar" in r.getMessage() for r in caplog.records)
    # Nem texto claro nem chave nos logs
    assert "artist@example.com" not in caplog.text
    assert TEST_ENCRYPTION_KEY not in caplog.text


def test_tampered_envelope_is_not_decrypted(cipher):
    envelope = cipher.encrypt("artist@example.com")
    nonce_hex, cipher_hex = envelope.split(":")
    flipped = format(int(cipher_hex[0], 16) ^ 1, "x") + cipher_hex[1:]
    tampered = f"{nonce_hex}:{flipped}"

    assert cipher.decrypt(tampered) == tampered


# ===== TESTE 3: CHAVE =====

@pytest.mark.parametrize("key", [None, "", "short-key"])
def test_missing_or_short_key_is_rejected(key):
    with pytest.raises(CryptoFailure):
        FieldCipher(key)


def test_settings_refuse_short_key():
    """O processo não sobe sem chave válida."""
    with pytest.raises(PydanticValidationError):
        Settings(_env_file=None, encryption_key="short")


def test_derive_key_is_256_bits_and_stable():
    assert len(derive_key(TEST_ENCRYPTION_KEY)) == 32
    assert derive_key(TEST_ENCRYPTION_KEY) == derive_key(TEST_ENCRYPTION_KEY)


def test_encrypt_non_text_raises_crypto_failure(cipher):
    with pytest.raises(CryptoFailure) as exc:
        cipher.encrypt(12345, context="lead.phone")

    assert exc.value.kind == "crypto_failure"
    assert "12345" not in exc.value.message


# ===== TESTE 4: HELPERS =====

def test_encrypt_and_decrypt_fields(cipher):
    data = {"email": "artist@example.com", "phone": None, "artist_name": "Luna"}

    encrypted = cipher.encrypt_fields(data)
    assert is_envelope(encrypted["email"])
    assert encrypted["phone"] is None
    assert encrypted["artist_name"] == "Luna"
    # Não altera o dicionário original
    assert data["email"] == "artist@example.com"

    assert cipher.decrypt_fields(encrypted) == data


def test_mask_value():
    assert mask_value("artist@example.com") == "art****"
    assert mask_value("abc") == "****"
    assert mask_value(None) == ""


def test_is_envelope_rejects_plain_values():
    assert not is_envelope("artist@example.com")
    assert not is_envelope(None)
    assert not is_envelope("zz" * NONCE_SIZE + ":00")
