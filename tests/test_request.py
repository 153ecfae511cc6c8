"""Tests for tdclient.request: immutable requests and replayable bodies."""

from __future__ import annotations

import io
from dataclasses import FrozenInstanceError

import pytest

from tdclient.errors import ContentResetError
from tdclient.request import ApiRequest, RequestContent, redact_params


def drain(content: RequestContent) -> bytes:
    return b"".join(content.iter_chunks(size=4))


class TestApiRequest:
    def test_method_normalised(self):
        assert ApiRequest("get", "/x").method == "GET"

    def test_unknown_method_rejected(self):
        with pytest.raises(ValueError, match="Unsupported HTTP method"):
            ApiRequest("PATCH", "/x")

    def test_frozen(self):
        req = ApiRequest.get("/x")
        with pytest.raises(FrozenInstanceError):
            req.path = "/y"

    def test_params_read_only(self):
        req = ApiRequest.get("/x", {"a": "1"})
        with pytest.raises(TypeError):
            req.params["b"] = "2"

    def test_caller_dict_copied(self):
        params = {"a": "1"}
        req = ApiRequest.get("/x", params)
        params["a"] = "changed"
        assert req.params["a"] == "1"

    def test_values_stringified(self):
        assert ApiRequest.get("/x", {"limit": 10}).params["limit"] == "10"

    def test_with_header_leaves_original(self):
        req = ApiRequest.get("/x")
        signed = req.with_header("Authorization", "TD1 k")
        assert signed.headers["Authorization"] == "TD1 k"
        assert "Authorization" not in req.headers

    def test_with_header_overwrites(self):
        req = ApiRequest.get("/x").with_header("X", "1").with_header("X", "2")
        assert dict(req.headers) == {"X": "2"}

    def test_with_params_replaces_whole_mapping(self):
        req = ApiRequest.get("/x", {"a": "1", "b": "2"}).with_params({"c": "3"})
        assert dict(req.params) == {"c": "3"}

    def test_with_headers_replaces_whole_mapping(self):
        req = ApiRequest("GET", "/x", headers={"A": "1"}).with_headers({"B": "2"})
        assert dict(req.headers) == {"B": "2"}

    def test_with_param_merges(self):
        req = ApiRequest.get("/x", {"a": "1"}).with_param("b", "2")
        assert dict(req.params) == {"a": "1", "b": "2"}

    def test_working_copy_equal_but_distinct(self):
        req = ApiRequest.post("/x", {"a": "1"}).with_header("H", "v")
        copy = req.working_copy()
        assert copy == req
        assert copy is not req
        assert copy.params is not req.params

    def test_put_wraps_body(self):
        req = ApiRequest.put("/up", b"abc")
        assert req.method == "PUT"
        assert isinstance(req.content, RequestContent)
        assert req.content.length == 3

    def test_delete(self):
        req = ApiRequest.delete("/v3/database/delete/db")
        assert req.method == "DELETE"
        assert req.content is None

    def test_repr_masks_credential_params(self):
        req = ApiRequest.post("/v3/user/authenticate", {"user": "me", "password": "hunter2"})
        assert "hunter2" not in repr(req)
        assert "'password': '***'" in repr(req)
        assert "'me'" in repr(req)

    def test_repr_hides_header_values(self):
        req = ApiRequest.get("/x").with_header("Authorization", "TD1 secret-key")
        assert "secret-key" not in repr(req)
        assert "Authorization" in repr(req)


class TestRequestContent:
    def test_bytes_replay(self):
        content = RequestContent(b"hello world")
        assert content.resettable
        assert drain(content) == b"hello world"
        assert content.consumed
        content.reset()
        assert not content.consumed
        assert drain(content) == b"hello world"

    def test_path_replay(self, tmp_path):
        f = tmp_path / "part.bin"
        f.write_bytes(b"0123456789")
        content = RequestContent(f)
        assert content.length == 10
        assert drain(content) == b"0123456789"
        content.reset()
        assert drain(content) == b"0123456789"
        content.close()

    def test_str_path_accepted(self, tmp_path):
        f = tmp_path / "part.bin"
        f.write_bytes(b"x")
        assert RequestContent(str(f)).length == 1

    def test_seekable_stream_resets_to_mark(self):
        stream = io.BytesIO(b"headerBODY")
        stream.seek(6)
        content = RequestContent(stream)
        assert content.length == 4
        assert drain(content) == b"BODY"
        content.reset()
        assert drain(content) == b"BODY"

    def test_reset_before_consumption_is_noop(self):
        class NoSeek(io.BytesIO):
            def seekable(self):
                return False

        content = RequestContent(NoSeek(b"x"))
        content.reset()
        assert not content.consumed

    def test_unseekable_stream_cannot_reset(self):
        class NoSeek(io.BytesIO):
            def seekable(self):
                return False

        content = RequestContent(NoSeek(b"abc"))
        assert not content.resettable
        assert content.length is None
        drain(content)
        with pytest.raises(ContentResetError):
            content.reset()

    def test_close_leaves_caller_stream_open(self):
        stream = io.BytesIO(b"abc")
        content = RequestContent(stream)
        drain(content)
        content.close()
        assert not stream.closed

    def test_close_closes_own_file(self, tmp_path):
        f = tmp_path / "part.bin"
        f.write_bytes(b"abc")
        content = RequestContent(f)
        drain(content)
        content.close()
        # Reopens on the next read.
        assert drain(content) == b"abc"
        content.close()

    def test_repr(self, tmp_path):
        assert repr(RequestContent(b"abcd")) == "RequestContent(bytes=4)"
        assert "part.bin" in repr(RequestContent(tmp_path / "part.bin"))

    def test_fork_has_own_position(self):
        content = RequestContent(b"abcdef")
        drain(content)
        fork = content.fork()
        assert fork is not content
        assert not fork.consumed
        assert drain(fork) == b"abcdef"

    def test_fork_of_path(self, tmp_path):
        f = tmp_path / "part.bin"
        f.write_bytes(b"abc")
        content = RequestContent(f)
        fork = content.fork()
        assert drain(fork) == b"abc"
        fork.close()
        assert not content.consumed

    def test_fork_of_caller_stream_is_same_object(self):
        content = RequestContent(io.BytesIO(b"abc"))
        assert content.fork() is content


class TestRedactParams:
    def test_masks_sensitive_keys(self):
        assert redact_params({"password": "p", "ApiKey": "k", "api_key": "k2", "q": "1"}) == {
            "password": "***",
            "ApiKey": "***",
            "api_key": "***",
            "q": "1",
        }

    def test_returns_copy(self):
        params = {"password": "p"}
        redact_params(params)
        assert params == {"password": "p"}
