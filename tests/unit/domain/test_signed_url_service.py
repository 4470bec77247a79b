from datetime import timedelta
from urllib.parse import parse_qs, urlparse

from files_control.domain.file_storage.signed_url_service import (
    READ_ACTION,
    UPLOAD_ACTION,
    SignedUrlService,
)


def query(url):
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


class TestSignedUrlService:
    def test_read_url_shape(self, clock):
        svc = SignedUrlService(secret_key="secret", base_url="https://files.example/",
                               ttl_seconds=600, clock=clock)
        signed = svc.read_url("abc123")

        assert signed.url.startswith("https://files.example/storage/files/abc123?")
        params = query(signed.url)
        assert int(params["expires"]) == int((clock.now + timedelta(seconds=600)).timestamp())
        assert params["signature"] == signed.signature
        assert signed.get_remaining_seconds(clock.now) == 600

    def test_upload_url_validates(self, clock):
        svc = SignedUrlService(secret_key="secret", clock=clock)
        signed = svc.upload_url()
        assert signed.url.startswith("/storage/upload?")
        params = query(signed.url)
        assert svc.validate(UPLOAD_ACTION, "", params["expires"], params["signature"]) is True

    def test_signature_bound_to_action_and_subject(self, clock):
        svc = SignedUrlService(secret_key="secret", clock=clock)
        params = query(svc.read_url("abc").url)
        assert svc.validate(READ_ACTION, "abc", params["expires"], params["signature"]) is True
        assert svc.validate(READ_ACTION, "abd", params["expires"], params["signature"]) is False
        assert svc.validate(UPLOAD_ACTION, "abc", params["expires"], params["signature"]) is False

    def test_tampered_or_missing_values(self, clock):
        svc = SignedUrlService(secret_key="secret", clock=clock)
        params = query(svc.read_url("abc").url)
        later = str(int(params["expires"]) + 60)
        assert svc.validate(READ_ACTION, "abc", later, params["signature"]) is False
        assert svc.validate(READ_ACTION, "abc", params["expires"], None) is False
        assert svc.validate(READ_ACTION, "abc", "soon", params["signature"]) is False
        assert svc.validate(READ_ACTION, "abc", None, params["signature"]) is False

    def test_expired_url_rejected(self, clock):
        svc = SignedUrlService(secret_key="secret", ttl_seconds=60, clock=clock)
        params = query(svc.read_url("abc").url)
        clock.advance(seconds=61)
        assert svc.validate(READ_ACTION, "abc", params["expires"], params["signature"]) is False

    def test_other_secret_rejected(self, clock):
        params = query(SignedUrlService(secret_key="one", clock=clock).read_url("abc").url)
        other = SignedUrlService(secret_key="two", clock=clock)
        assert other.validate(READ_ACTION, "abc", params["expires"], params["signature"]) is False

    def test_generated_secret(self):
        assert len(SignedUrlService().secret_key) == 64

    def test_storage_id_is_quoted(self, clock):
        svc = SignedUrlService(secret_key="secret", clock=clock)
        assert "/storage/files/a%2Fb?" in svc.read_url("a/b").url
