"""Tests for the clip server client."""

import httpx
import pytest

from clipshare.client import SubmissionError, encode_length
from clipshare.models import ClipMetadata, ProcessedOutput

from fakes import SERVER_URL, make_client

OUTPUT = ProcessedOutput(trimmed_video=b"MP4DATA", thumbnail=b"JPEGDATA", duration_seconds=10.0)


class TestEncodeLength:
    @pytest.mark.parametrize("value, expected", [(10.0, "10"), (9.6, "10"), (0.3, "1"), (59.49, "59")])
    def test_whole_seconds(self, value, expected):
        assert encode_length(value) == expected


class TestCategories:
    def test_list(self):
        client = make_client()
        cats = client.list_categories()
        assert [(c.id, c.name) for c in cats] == [("1", "Gaming"), ("2", "Sports")]

    def test_wrapped_in_object(self):
        client = make_client(lambda req: httpx.Response(200, json={"categories": [{"id": 7, "name": "Music"}]}))
        assert client.list_categories()[0].id == "7"

    def test_server_error_raises(self):
        client = make_client(lambda req: httpx.Response(500))
        with pytest.raises(httpx.HTTPStatusError):
            client.list_categories()


class TestSubmit:
    def test_multipart_fields(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["method"] = request.method
            captured["path"] = request.url.path
            captured["content_type"] = request.headers["content-type"]
            captured["body"] = request.read()
            return httpx.Response(200, json={"success": True, "clipId": "xyz"})

        client = make_client(handler)
        clip_id = client.submit(OUTPUT, ClipMetadata("Test Clip", is_private=True, category_ids={"2", "1"}))

        assert clip_id == "xyz"
        assert captured["method"] == "POST"
        assert captured["path"] == "/api/upload"
        assert captured["content_type"].startswith("multipart/form-data")
        body = captured["body"]
        assert b'name="video"; filename="trimmed-video.mp4"' in body
        assert b'name="thumbnail"; filename="thumbnail.jpg"' in body
        assert b"MP4DATA" in body and b"JPEGDATA" in body
        assert b'name="clipName"\r\n\r\nTest Clip' in body
        assert b'name="length"\r\n\r\n10' in body
        assert b'name="private"\r\n\r\ntrue' in body
        assert b'name="categories"\r\n\r\n1,2' in body

    def test_public_clip_without_categories(self):
        captured = {}

        def handler(request):
            captured["body"] = request.read()
            return httpx.Response(200, json={"id": "abc"})

        make_client(handler).submit(OUTPUT, ClipMetadata("x"))
        assert b'name="private"\r\n\r\nfalse' in captured["body"]
        assert b'name="categories"' not in captured["body"]

    def test_error_message_surfaced_verbatim(self):
        client = make_client(lambda req: httpx.Response(400, json={"error": "Invalid length value"}))
        with pytest.raises(SubmissionError, match="Invalid length value") as exc:
            client.submit(OUTPUT, ClipMetadata("x"))
        assert exc.value.status_code == 400

    def test_message_field_and_non_json_body(self):
        client = make_client(lambda req: httpx.Response(413, json={"message": "Too big"}))
        with pytest.raises(SubmissionError, match="Too big"):
            client.submit(OUTPUT, ClipMetadata("x"))

        client = make_client(lambda req: httpx.Response(502, text="<html>bad gateway</html>"))
        with pytest.raises(SubmissionError, match="Bad Gateway"):
            client.submit(OUTPUT, ClipMetadata("x"))

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SubmissionError, match="Could not reach the server"):
            make_client(handler).submit(OUTPUT, ClipMetadata("x"))

    def test_missing_id(self):
        client = make_client(lambda req: httpx.Response(200, json={"success": True}))
        with pytest.raises(SubmissionError, match="clip id"):
            client.submit(OUTPUT, ClipMetadata("x"))


class TestClipUrl:
    def test_url(self):
        assert make_client().clip_url("abc") == f"{SERVER_URL}/clip/abc"
