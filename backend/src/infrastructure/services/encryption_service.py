"""
ENCRYPTION SERVICE
==================

Criptografia de campos PII (email, telefone) dos leads.
Usa AES-256-GCM (autenticado) com nonce aleatório a cada chamada.

Formato armazenado (envelope): "<nonce_hex>:<cipher_hex>"
(o tag GCM vai no final do cipher_hex).

A chave vem da configuração no start do processo e é injetada no
FieldCipher. Sem chave (ou chave curta) o processo não sobe.
"""

import os
import logging
import hashlib
import binascii
from typing import Dict, Any, Iterable, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from src.config import MIN_ENCRYPTION_KEY_LENGTH, get_settings
from src.domain.exceptions import CryptoFailure

logger = logging.getLogger(__name__)

NONCE_SIZE = 12  # 96 bits, tamanho recomendado para GCM
ENVELOPE_SEPARATOR = ":"

# Campos do lead que nunca ficam em texto claro no banco
PII_FIELDS = ("email", "phone")


def derive_key(secret: str) -> bytes:
    """
    Deriva a chave AES-256 (32 bytes) da string configurada via SHA256.
    """
    return hashlib.sha256(secret.encode("utf-8")).digest()


class FieldCipher:
    """
    Criptografa/descriptografa campos individuais de texto.

    Usage:
        cipher = FieldCipher(settings.encryption_key)
        envelope = cipher.encrypt("artist@example.com")
        email = cipher.decrypt(envelope)
    """

    def __init__(self, key: Optional[str]):
        if not key:
            raise CryptoFailure("ENCRYPTION_KEY não configurada")
        if len(key) < MIN_ENCRYPTION_KEY_LENGTH:
            raise CryptoFailure(
                f"ENCRYPTION_KEY deve ter pelo menos {MIN_ENCRYPTION_KEY_LENGTH} caracteres"
            )
        self._aesgcm = AESGCM(derive_key(key))

    def encrypt(self, plaintext: Optional[str], context: str = "data") -> Optional[str]:
        """
        Criptografa um valor. Vazio/None volta como está.

        Raises:
            CryptoFailure: nunca devolve texto claro em caso de erro
        """
        if not plaintext:
            return plaintext
        if not isinstance(plaintext, str):
            raise CryptoFailure(f"Valor de '{context}' precisa ser texto")

        try:
            nonce = os.urandom(NONCE_SIZE)
            ciphertext = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        except Exception as e:
            logger.error(
                "Erro ao criptografar campo",
                extra={"context": context, "error_type": type(e).__name__},
            )
            raise CryptoFailure(f"Falha ao criptografar '{context}'") from None

        return f"{nonce.hex()}{ENVELOPE_SEPARATOR}{ciphertext.hex()}"

    def decrypt(self, envelope: Optional[str], context: str = "data") -> Optional[str]:
        """
        Descriptografa um envelope.

        Valores sem o formato de envelope são dados legados (antes da
        criptografia) e voltam sem alteração. Não usar isso como caminho
        para dados novos.
        """
        if not envelope or not isinstance(envelope, str):
            return envelope

        parts = envelope.split(ENVELOPE_SEPARATOR)
        if len(parts) != 2:
            return envelope

        nonce_hex, cipher_hex = parts
        try:
            nonce = bytes.fromhex(nonce_hex)
            ciphertext = bytes.fromhex(cipher_hex)
        except (ValueError, binascii.Error):
            return envelope

        if len(nonce) != NONCE_SIZE:
            return envelope

        try:
            return self._aesgcm.decrypt(nonce, ciphertext, None).decode("utf-8")
        except (InvalidTag, UnicodeDecodeError):
            # Chave errada ou dado adulterado: devolve o valor bruto
            logger.warning(
                "Falha ao descriptografar campo - possível corrupção ou chave incorreta",
                extra={"context": context},
            )
            return envelope

    def encrypt_fields(
        self,
        data: Dict[str, Any],
        fields: Iterable[str] = PII_FIELDS,
        context: str = "object",
    ) -> Dict[str, Any]:
        """Criptografa os campos indicados de um dicionário (cópia)."""
        result = dict(data)
        for field in fields:
            value = result.get(field)
            if value and isinstance(value, str):
                result[field] = self.encrypt(value, context=f"{context}.{field}")
        return result

    def decrypt_fields(
        self,
        data: Dict[str, Any],
        fields: Iterable[str] = PII_FIELDS,
        context: str = "object",
    ) -> Dict[str, Any]:
        """Descriptografa os campos indicados de um dicionário (cópia)."""
        result = dict(data)
        for field in fields:
            value = result.get(field)
            if value and isinstance(value, str):
                result[field] = self.decrypt(value, context=f"{context}.{field}")
        return result


def is_envelope(value: Optional[str]) -> bool:
    """Verifica se o valor tem cara de envelope criptografado."""
    if not value or not isinstance(value, str):
        return False
    parts = value.split(ENVELOPE_SEPARATOR)
    if len(parts) != 2 or len(parts[0]) != NONCE_SIZE * 2:
        return False
    try:
        bytes.fromhex(parts[0])
        bytes.fromhex(parts[1])
    except ValueError:
        return False
    return True


def mask_value(value: Optional[str], visible: int = 3) -> str:
    """
    Mascara valor sensível para logs/respostas.
    Mostra apenas os primeiros caracteres.
    """
    if not value:
        return ""
    str_value = str(value)
    if len(str_value) > visible + 1:
        return f"{str_value[:visible]}****"
    return "****"


# Instância do processo (chave lida uma vez no start)
_field_cipher: Optional[FieldCipher] = None


def get_field_cipher() -> FieldCipher:
    """
    Retorna o FieldCipher do processo, construído com a chave da configuração.
    """
    global _field_cipher
    if _field_cipher is None:
        _field_cipher = FieldCipher(get_settings().encryption_key)
    return _field_cipher


def reset_field_cipher() -> None:
    """Descarta a instância do processo (usar só em testes)."""
    global _field_cipher
    _field_cipher = None
