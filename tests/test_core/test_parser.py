"""Tests for reqparser.parser — the parse / clean entry points."""

import os

import pytest

from reqparser.config import ParserConfig
from reqparser.exceptions import CaptureError, ConfigurationError, DecodeError
from reqparser.parser import ReqParser
from reqparser.storage import FilesystemStorage, MemoryStorage

from tests.conftest import (
    build_multipart_body,
    make_failing_receive,
    make_receive,
    make_scope,
    multipart_headers,
)

FORM = {"Content-Type": "application/x-www-form-urlencoded"}


class TestConstruction:
    def test_defaults_to_memory(self) -> None:
        parser = ReqParser()
        assert isinstance(parser.storage, MemoryStorage)
        assert parser.config.parameter_limit == 10_000

    def test_options(self, storage_root) -> None:
        parser = ReqParser(storage=storage_root, parameter_limit=5)
        assert isinstance(parser.storage, FilesystemStorage)
        assert parser.config.parameter_limit == 5

    def test_config_object(self) -> None:
        config = ParserConfig(parameter_limit=3)
        assert ReqParser(config).config is config

    def test_config_and_options_conflict(self) -> None:
        with pytest.raises(ConfigurationError):
            ReqParser(ParserConfig(), storage="memory")

    def test_unknown_option(self) -> None:
        with pytest.raises(ConfigurationError):
            ReqParser(storag="memory")


class TestParseUrlAndRawBody:
    async def test_get_without_stream(self) -> None:
        parser = ReqParser()
        scope = make_scope(path="/foo", query_string="bar=baz")
        context = await parser.parse(scope, None)

        assert context.url.scheme == "http"
        assert context.url.host == "localhost"
        assert context.url.pathname == "/foo"
        assert context.url.query == {"bar": "baz"}
        assert context.raw_body is None
        assert context.raw_body_path is None
        assert context.ended
        assert context.error is None

    async def test_get_empty_body(self) -> None:
        context = await ReqParser().parse(make_scope(), make_receive())
        assert context.raw_body is None
        assert context.form_fields is None
        assert context.form_files is None

    async def test_https_request(self) -> None:
        scope = make_scope(path="/foo", query_string="bar=baz", scheme="https")
        context = await ReqParser().parse(scope)
        assert context.url.protocol == "https:"
        assert context.url.search == "?bar=baz"
        assert context.url.port is None

    async def test_forwarded_proto_header(self) -> None:
        scope = make_scope(headers={"X-Forwarded-Proto": "https", "Host": "example.com"})
        context = await ReqParser().parse(scope)
        assert context.url.scheme == "https"
        assert context.url.href == "https://example.com/"

    async def test_request_id_from_scope(self) -> None:
        scope = make_scope(extras={"request_id": "abc-123"})
        context = await ReqParser().parse(scope)
        assert context.id == "abc-123"

    async def test_generated_ids_are_unique(self) -> None:
        parser = ReqParser()
        first = await parser.parse(make_scope())
        second = await parser.parse(make_scope())
        assert first.id != second.id

    async def test_raw_body_memory(self) -> None:
        scope = make_scope(method="POST")
        context = await ReqParser().parse(scope, make_receive(b"foo", b"bar"))
        assert context.raw_body == b"foobar"
        assert context.raw_body_path is None
        assert context.form_fields is None

    async def test_raw_body_filesystem(self, storage_root) -> None:
        scope = make_scope(method="POST", headers={"Content-Type": "application/json"})
        context = await ReqParser(storage=storage_root).parse(
            scope, make_receive(b'{"a":', b"1}")
        )
        assert context.raw_body is None
        with open(context.raw_body_path, "rb") as fh:
            assert fh.read() == b'{"a":1}'
        assert context.form_fields is None

    async def test_unwritable_storage(self, tmp_path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_bytes(b"")
        parser = ReqParser(storage=str(blocker / "storage"))

        with pytest.raises(CaptureError) as info:
            await parser.parse(make_scope(method="POST"), make_receive(b"foobar"))

        context = info.value.context
        assert context.raw_body_path is None
        assert context.url.pathname == "/"
        assert context.ended
        assert context.error is info.value
        assert os.listdir(tmp_path) == ["blocker"]

    async def test_transport_failure(self) -> None:
        receive = make_failing_receive(OSError("connection reset by peer"), b"abc")

        with pytest.raises(CaptureError) as info:
            await ReqParser().parse(make_scope(method="POST"), receive)

        context = info.value.context
        assert context.ended
        assert context.error is info.value
        assert context.raw_body is None
        assert isinstance(info.value.__cause__, OSError)


class TestParseUrlencoded:
    async def test_fields(self, storage_root) -> None:
        for parser in (ReqParser(), ReqParser(storage=storage_root)):
            context = await parser.parse(
                make_scope(method="POST", headers=FORM),
                make_receive(b"foo=bar&tag=a&tag=b"),
            )
            assert context.form_fields == {"foo": "bar", "tag": ["a", "b"]}
            assert context.form_files == {}

    async def test_raw_body_is_kept(self) -> None:
        context = await ReqParser().parse(
            make_scope(method="POST", headers=FORM),
            make_receive(b"a=1"),
        )
        assert context.raw_body == b"a=1"

    async def test_empty_body(self) -> None:
        context = await ReqParser().parse(
            make_scope(method="POST", headers=FORM), make_receive()
        )
        assert context.form_fields == {}

    async def test_get_is_not_decoded(self) -> None:
        context = await ReqParser().parse(
            make_scope(method="GET", headers=FORM), make_receive(b"a=1")
        )
        assert context.raw_body == b"a=1"
        assert context.form_fields is None

    async def test_header_name_case(self) -> None:
        scope = make_scope(
            method="POST",
            headers={"CONTENT-TYPE": "Application/X-WWW-Form-Urlencoded; charset=utf-8"},
        )
        context = await ReqParser().parse(scope, make_receive(b"a=1"))
        assert context.form_fields == {"a": "1"}

    async def test_unreadable_body(self, storage_root, monkeypatch) -> None:
        parser = ReqParser(storage=storage_root)

        async def broken_read_back(ref):
            from reqparser.exceptions import StorageError

            raise StorageError("gone")
            yield b""  # pragma: no cover

        monkeypatch.setattr(parser.storage, "read_back", broken_read_back)

        with pytest.raises(DecodeError) as info:
            await parser.parse(make_scope(method="POST", headers=FORM), make_receive(b"a=1"))
        assert info.value.context.form_fields == {}


class TestParseMultipart:
    BOUNDARY = "xYzZy"

    def body(self) -> bytes:
        return build_multipart_body(self.BOUNDARY, [
            {"name": "arr[]", "data": "x"},
            {"name": "arr[]", "data": "y"},
            {"name": "doc", "filename": "r.txt", "data": "hello"},
        ])

    async def test_memory(self) -> None:
        body = self.body()
        context = await ReqParser().parse(
            make_scope(method="POST", headers=multipart_headers(self.BOUNDARY)),
            make_receive(body[:10], body[10:]),
        )
        assert context.form_fields == {"arr": ["x", "y"]}
        assert context.form_files["doc"].filename == "r.txt"
        assert await context.form_files["doc"].read() == b"hello"
        assert context.raw_body == body

    async def test_filesystem(self, storage_root) -> None:
        parser = ReqParser(storage=storage_root)
        context = await parser.parse(
            make_scope(method="POST", headers=multipart_headers(self.BOUNDARY)),
            make_receive(self.body()),
        )
        doc = context.form_files["doc"]
        assert context.form_fields == {"arr": ["x", "y"]}
        assert doc.written
        assert await doc.read() == b"hello"
        assert len(os.listdir(storage_root)) == 2

    async def test_missing_boundary_is_raw(self) -> None:
        scope = make_scope(method="POST", headers={"Content-Type": "multipart/form-data"})
        context = await ReqParser().parse(scope, make_receive(b"--x"))
        assert context.raw_body == b"--x"
        assert context.form_fields is None


class TestClean:
    async def test_clean_removes_request_files(self, storage_root) -> None:
        parser = ReqParser(storage=storage_root)
        body = build_multipart_body("b", [
            {"name": "keep", "filename": "k.txt", "data": "k"},
            {"name": "drop", "filename": "d.txt", "data": "d"},
        ])
        context = await parser.parse(
            make_scope(method="POST", headers=multipart_headers("b")),
            make_receive(body),
        )
        context.form_files["keep"].manual_cleanup = True

        calls: list[int] = []
        parser.clean(context, lambda: calls.append(1))
        assert calls == [1]
        await parser.wait_cleanups()

        assert os.listdir(storage_root) == [os.path.basename(context.form_files["keep"].path)]

        # A second clean changes nothing
        parser.clean(context)
        await parser.wait_cleanups()
        assert os.path.exists(context.form_files["keep"].path)

    async def test_clean_memory(self) -> None:
        parser = ReqParser()
        context = await parser.parse(make_scope(method="POST"), make_receive(b"x"))
        assert parser.clean(context) is None
        await parser.wait_cleanups()
