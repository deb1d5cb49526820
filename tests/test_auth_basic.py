import base64
import hashlib
import hmac
import unittest

from reposync.security import _parse_basic_auth_header, verify_webhook_signature


class BasicAuthParsingTests(unittest.TestCase):
    def test_parse_basic_auth_header_valid(self):
        token = base64.b64encode(b"user:pass").decode("ascii")
        creds = _parse_basic_auth_header(f"Basic {token}")
        self.assertIsNotNone(creds)
        assert creds is not None
        self.assertEqual(creds.username, "user")
        self.assertEqual(creds.password, "pass")

    def test_parse_basic_auth_header_invalid_scheme(self):
        token = base64.b64encode(b"user:pass").decode("ascii")
        creds = _parse_basic_auth_header(f"Bearer {token}")
        self.assertIsNone(creds)

    def test_parse_basic_auth_header_invalid_base64(self):
        creds = _parse_basic_auth_header("Basic !!!notbase64!!!")
        self.assertIsNone(creds)

    def test_parse_basic_auth_header_missing_colon(self):
        token = base64.b64encode(b"userpass").decode("ascii")
        creds = _parse_basic_auth_header(f"Basic {token}")
        self.assertIsNone(creds)


class WebhookSignatureTests(unittest.TestCase):
    body = b'{"action":"published"}'

    def _sign(self, secret: str) -> str:
        return "sha256=" + hmac.new(secret.encode(), self.body, hashlib.sha256).hexdigest()

    def test_valid_signature(self):
        self.assertTrue(verify_webhook_signature("s3cret", self.body, self._sign("s3cret")))

    def test_wrong_secret(self):
        self.assertFalse(verify_webhook_signature("s3cret", self.body, self._sign("other")))

    def test_tampered_body(self):
        header = self._sign("s3cret")
        self.assertFalse(verify_webhook_signature("s3cret", self.body + b" ", header))

    def test_missing_or_malformed_header(self):
        digest = hmac.new(b"s3cret", self.body, hashlib.sha256).hexdigest()
        self.assertFalse(verify_webhook_signature("s3cret", self.body, None))
        self.assertFalse(verify_webhook_signature("s3cret", self.body, digest))
        self.assertFalse(verify_webhook_signature("s3cret", self.body, "sha1=" + digest))

    def test_no_secret_configured(self):
        self.assertFalse(verify_webhook_signature(None, self.body, self._sign("s3cret")))
