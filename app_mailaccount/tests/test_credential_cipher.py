"""
单元测试：CredentialCipher

测试覆盖：
- 加密/解密
- 记录 ID 绑定（关联数据）
- 篡改检测
- 信封格式幂等
- 密钥解析
"""
import base64
import uuid

from django.test import SimpleTestCase

from app_mailaccount.exceptions.account_exception import CryptoException
from app_mailaccount.services.credential_cipher import CredentialCipher, is_envelope, parse_key
from common.exceptions.configuration_error_exception import ConfigurationErrorException

HEX_KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"


class TestCredentialCipher(SimpleTestCase):
    """测试凭证加密"""

    def setUp(self):
        self.cipher = CredentialCipher(HEX_KEY)
        self.record_id = uuid.uuid4()

    def test_encrypt_then_decrypt_same_record(self):
        envelope = self.cipher.encrypt(self.record_id, "ya29.secret-token")

        self.assertTrue(is_envelope(envelope))
        self.assertNotIn("secret", envelope)
        self.assertEqual(self.cipher.decrypt(self.record_id, envelope), "ya29.secret-token")

    def test_envelope_format(self):
        envelope = self.cipher.encrypt(self.record_id, "abc")
        nonce, tag, ciphertext = envelope.split(":")

        self.assertEqual(len(nonce), 24)
        self.assertEqual(len(tag), 32)
        self.assertEqual(len(ciphertext), 6)
        self.assertEqual(envelope, envelope.lower())

    def test_nonce_is_random(self):
        self.assertNotEqual(self.cipher.encrypt(self.record_id, "same"),
                            self.cipher.encrypt(self.record_id, "same"))

    def test_decrypt_with_other_record_fails(self):
        envelope = self.cipher.encrypt(self.record_id, "secret")

        with self.assertRaises(CryptoException):
            self.cipher.decrypt(uuid.uuid4(), envelope)

    def test_tampered_ciphertext_fails(self):
        nonce, tag, ciphertext = self.cipher.encrypt(self.record_id, "secret").split(":")
        flipped = format(int(ciphertext[:2], 16) ^ 0x01, "02x") + ciphertext[2:]

        with self.assertRaises(CryptoException):
            self.cipher.decrypt(self.record_id, ":".join((nonce, tag, flipped)))

    def test_malformed_envelope_fails(self):
        for value in ("plain-text", "zz:yy:xx", "00:11"):
            with self.assertRaises(CryptoException):
                self.cipher.decrypt(self.record_id, value)

    def test_encrypt_envelope_is_noop(self):
        envelope = self.cipher.encrypt(self.record_id, "secret")
        self.assertEqual(self.cipher.encrypt(self.record_id, envelope), envelope)

    def test_empty_values(self):
        self.assertIsNone(self.cipher.encrypt(self.record_id, None))
        self.assertIsNone(self.cipher.encrypt(self.record_id, ""))
        self.assertIsNone(self.cipher.decrypt(self.record_id, None))

    def test_missing_record_id_fails(self):
        with self.assertRaises(CryptoException):
            self.cipher.encrypt(None, "secret")

    def test_unicode_round_trip(self):
        envelope = self.cipher.encrypt(self.record_id, "mot de passe é 密码")
        self.assertEqual(self.cipher.decrypt(self.record_id, envelope), "mot de passe é 密码")


class TestParseKey(SimpleTestCase):
    """测试密钥解析"""

    def test_hex_key(self):
        self.assertEqual(parse_key(HEX_KEY), bytes.fromhex(HEX_KEY))

    def test_base64_key(self):
        raw = bytes(range(32))
        self.assertEqual(parse_key(base64.urlsafe_b64encode(raw).decode()), raw)

    def test_missing_key(self):
        with self.assertRaises(ConfigurationErrorException):
            parse_key("")

    def test_wrong_length(self):
        with self.assertRaises(ConfigurationErrorException):
            parse_key("abcd")
