import hashlib
import hmac

from delivery.payment.signatures import (
    payment_signature,
    verify_payment_signature,
    verify_webhook_signature,
)

SECRET = "secret_test_456"


class TestPaymentSignature:
    def test_signs_order_and_payment_ids(self):
        expected = hmac.new(SECRET.encode(), b"order_1|pay_1", hashlib.sha256).hexdigest()
        assert payment_signature("order_1", "pay_1", SECRET) == expected

    def test_valid_signature_verifies(self):
        signature = payment_signature("order_1", "pay_1", SECRET)
        assert verify_payment_signature("order_1", "pay_1", signature, SECRET)

    def test_tampered_payment_id_fails(self):
        signature = payment_signature("order_1", "pay_1", SECRET)
        assert not verify_payment_signature("order_1", "pay_2", signature, SECRET)

    def test_wrong_secret_fails(self):
        signature = payment_signature("order_1", "pay_1", "other")
        assert not verify_payment_signature("order_1", "pay_1", signature, SECRET)

    def test_missing_signature_fails(self):
        assert not verify_payment_signature("order_1", "pay_1", "", SECRET)


class TestWebhookSignature:
    def test_signature_covers_exact_raw_body(self):
        raw = '{"event": "payment.captured"}'
        signature = hmac.new(b"whsec", raw.encode(), hashlib.sha256).hexdigest()
        assert verify_webhook_signature(raw, signature, "whsec")
        assert verify_webhook_signature(raw.encode(), signature, "whsec")

    def test_reformatted_body_fails(self):
        raw = '{"event": "payment.captured"}'
        signature = hmac.new(b"whsec", raw.encode(), hashlib.sha256).hexdigest()
        assert not verify_webhook_signature('{"event":"payment.captured"}', signature, "whsec")
