"""
Storage and payment providers with the SDK boundaries mocked (no network).
"""
import io
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
import stripe
from google.api_core import exceptions as gcs_exceptions

from recreate.features.payments.provider import PaymentProviderError
from recreate.features.payments.stripe_provider import StripeProvider
from recreate.features.storage.gcs_provider import GCSStorageProvider
from recreate.features.storage.provider import StorageError


@pytest.fixture
def gcs_client():
    client = MagicMock()
    blob = MagicMock()
    client.bucket.return_value.blob.return_value = blob
    return client, blob


class TestGCSStorageProvider:
    def test_requires_bucket(self):
        with pytest.raises(StorageError):
            GCSStorageProvider(None, client=MagicMock())

    def test_put_uploads_with_timeout(self, gcs_client):
        client, blob = gcs_client
        provider = GCSStorageProvider("bucket", timeout=12, client=client)

        data = io.BytesIO(b"abc")
        provider.put("works/w/1-a.png", data, content_type="image/png", size=3)

        client.bucket.assert_called_with("bucket")
        client.bucket.return_value.blob.assert_called_with("works/w/1-a.png")
        kwargs = blob.upload_from_file.call_args.kwargs
        assert kwargs["content_type"] == "image/png"
        assert kwargs["timeout"] == 12
        assert kwargs["size"] == 3

    def test_put_failure_is_storage_error(self, gcs_client):
        client, blob = gcs_client
        blob.upload_from_file.side_effect = gcs_exceptions.ServiceUnavailable("down")
        provider = GCSStorageProvider("bucket", client=client)
        with pytest.raises(StorageError):
            provider.put("k", io.BytesIO(b"x"))

    def test_sign_get_is_v4_with_ttl(self, gcs_client):
        client, blob = gcs_client
        blob.generate_signed_url.return_value = "https://signed.example/get"
        provider = GCSStorageProvider("bucket", client=client)

        url = provider.sign_get("works/w/1-a.png", 300, download_name="a.png")

        assert url == "https://signed.example/get"
        kwargs = blob.generate_signed_url.call_args.kwargs
        assert kwargs["version"] == "v4"
        assert kwargs["method"] == "GET"
        assert kwargs["expiration"] == timedelta(seconds=300)
        assert 'filename="a.png"' in kwargs["response_disposition"]

    def test_sign_put(self, gcs_client):
        client, blob = gcs_client
        blob.generate_signed_url.return_value = "https://signed.example/put"
        provider = GCSStorageProvider("bucket", client=client)

        assert provider.sign_put("k", 900, content_type="video/mp4") == "https://signed.example/put"
        kwargs = blob.generate_signed_url.call_args.kwargs
        assert kwargs["method"] == "PUT"
        assert kwargs["content_type"] == "video/mp4"

    def test_delete_ignores_missing_objects(self, gcs_client):
        client, blob = gcs_client
        blob.delete.side_effect = gcs_exceptions.NotFound("gone")
        GCSStorageProvider("bucket", client=client).delete("k")

    def test_exists(self, gcs_client):
        client, blob = gcs_client
        blob.exists.return_value = False
        assert GCSStorageProvider("bucket", client=client).exists("k") is False


class TestStripeProvider:
    def test_requires_secret_key(self):
        with pytest.raises(PaymentProviderError):
            StripeProvider(None)

    @patch("recreate.features.payments.stripe_provider.stripe.StripeClient")
    def test_creates_one_off_checkout(self, mock_client_cls):
        session = MagicMock()
        session.url = "https://checkout.stripe.test/cs_1"
        mock_client_cls.return_value.checkout.sessions.create.return_value = session

        provider = StripeProvider("sk_test", timeout=7)
        url = provider.create_checkout_url(
            amount=1500,
            currency="jpy",
            description="Illustration",
            success_url="https://app.test/ok",
            cancel_url="https://app.test/cancel",
            metadata={"work_id": "w1"},
        )

        assert url == "https://checkout.stripe.test/cs_1"
        params = mock_client_cls.return_value.checkout.sessions.create.call_args.kwargs["params"]
        assert params["mode"] == "payment"
        item = params["line_items"][0]
        assert item["price_data"]["unit_amount"] == 1500
        assert item["price_data"]["currency"] == "jpy"
        assert item["price_data"]["product_data"]["name"] == "Illustration"
        assert params["metadata"] == {"work_id": "w1"}

    @patch("recreate.features.payments.stripe_provider.stripe.StripeClient")
    def test_stripe_error_is_wrapped(self, mock_client_cls):
        mock_client_cls.return_value.checkout.sessions.create.side_effect = stripe.StripeError("boom")
        provider = StripeProvider("sk_test")
        with pytest.raises(PaymentProviderError):
            provider.create_checkout_url(1000, "jpy", "x", "https://a", "https://b")
