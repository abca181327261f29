"""
Unit tests for dataset connectors
"""

import json
import logging
from typing import Any, List

import httpx
import pytest
from ingestion.base import IngestionContext
from ingestion.catalog import DailyMedConnector, OpenFdaStyleConnector, PubMedCentralConnector
from ingestion.connectors import (
    ArchiveRecordsConnector,
    BulkFileConfig,
    BulkFileConnector,
    PagedApiConfig,
    PagedApiConnector,
    StaticConnector,
    transcode_archive,
)
from ingestion.sources import DatasetSourceName
from core.exceptions import (
    ArchiveFormatError,
    IngestionCancelledError,
    NetworkError,
    PayloadFormatError,
    UpstreamAuthError,
    UpstreamFetchError,
    UpstreamNotFoundError,
    UpstreamRateLimitError,
)


class ItemsConnector(PagedApiConnector):
    def parse_items(self, body: Any) -> List[Any]:
        return body.get("items", [])


def items_connector(**overrides) -> ItemsConnector:
    config = dict(
        base_url="https://api.example.com/v1",
        resource_path="items",
        page_param="page",
        page_size_param="size",
        default_page_size=2,
    )
    config.update(overrides)
    return ItemsConnector(DatasetSourceName.DAILYMED, PagedApiConfig(**config))


def context_for(client: httpx.AsyncClient, tmp_path) -> IngestionContext:
    return IngestionContext(
        storage_dir=str(tmp_path / "datasets"),
        temp_dir=str(tmp_path / "tmp"),
        http_client=client,
        logger=logging.getLogger("datasets.test"),
    )


async def collect(stream) -> str:
    parts = []
    async for chunk in stream:
        parts.append(chunk if isinstance(chunk, str) else chunk.decode("utf-8"))
    return "".join(parts)


class TestPagedApiConnector:
    """Test page walking and error mapping"""

    @pytest.mark.asyncio
    async def test_stops_after_first_empty_page(self, tmp_path):
        pages = {1: [{"id": 1}, {"id": 2}], 2: [{"id": 3}, {"id": 4}], 3: [{"id": 5}], 4: []}
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["page"])
            requested.append(page)
            assert request.url.path == "/v1/items"
            assert request.url.params["size"] == "2"
            return httpx.Response(200, json={"items": pages.get(page, [])})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            output = await items_connector().prepare(context_for(client, tmp_path))

            # Nothing is fetched until the stream is consumed
            assert requested == []

            text = await collect(output.stream)

        assert requested == [1, 2, 3, 4]
        assert text.splitlines() == [f'{{"id":{n}}}' for n in range(1, 6)]
        assert output.file_extension == ".jsonl"
        assert output.content_type == "application/jsonl"

    @pytest.mark.asyncio
    async def test_static_params_and_api_key_are_sent(self, tmp_path):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"items": []})

        connector = items_connector(
            static_params={"db": "pmc"},
            api_key_header="X-API-KEY",
            api_key="secret",
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            output = await connector.prepare(context_for(client, tmp_path))
            await collect(output.stream)

        assert seen[0].url.params["db"] == "pmc"
        assert seen[0].headers["X-API-KEY"] == "secret"

    @pytest.mark.asyncio
    async def test_offset_mode_advances_by_page_size(self, tmp_path):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            offset = int(request.url.params["page"])
            requested.append(offset)
            items = [{"offset": offset}] if offset < 4 else []
            return httpx.Response(200, json={"items": items})

        connector = items_connector(mode="offset")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            output = await connector.prepare(context_for(client, tmp_path))
            await collect(output.stream)

        assert requested == [0, 2, 4]

    def test_rejects_unknown_mode(self):
        with pytest.raises(ValueError):
            items_connector(mode="cursor")

    def test_parse_items_must_be_implemented(self):
        with pytest.raises(TypeError):
            PagedApiConnector(
                DatasetSourceName.DAILYMED,
                PagedApiConfig(base_url="https://api.example.com", resource_path="items", page_param="page"),
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code, expected",
        [
            (401, UpstreamAuthError),
            (403, UpstreamAuthError),
            (404, UpstreamNotFoundError),
            (429, UpstreamRateLimitError),
            (500, UpstreamFetchError),
        ]
    )
    async def test_http_status_mapping(self, tmp_path, status_code, expected):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status_code, json={"error": "nope"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            output = await items_connector().prepare(context_for(client, tmp_path))
            with pytest.raises(expected) as exc_info:
                await collect(output.stream)

        assert exc_info.type is expected
        assert exc_info.value.context["status_code"] == status_code
        assert str(status_code) in exc_info.value.message

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"Retry-After": "30"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            output = await items_connector().prepare(context_for(client, tmp_path))
            with pytest.raises(UpstreamRateLimitError) as exc_info:
                await collect(output.stream)

        assert exc_info.value.retry_after == 30

    @pytest.mark.asyncio
    async def test_invalid_json_is_payload_error(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>maintenance</html>")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            output = await items_connector().prepare(context_for(client, tmp_path))
            with pytest.raises(PayloadFormatError):
                await collect(output.stream)

    @pytest.mark.asyncio
    async def test_transport_failure_is_network_error(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            output = await items_connector().prepare(context_for(client, tmp_path))
            with pytest.raises(NetworkError):
                await collect(output.stream)

    @pytest.mark.asyncio
    async def test_cancelled_context_stops_paging(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"items": [{"id": 1}]})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            context = context_for(client, tmp_path)
            context.cancel_event.set()
            output = await items_connector().prepare(context)
            with pytest.raises(IngestionCancelledError):
                await collect(output.stream)


class TestAuthoritativeTotals:
    """Sources whose responses carry totals decide continuation themselves"""

    @pytest.mark.asyncio
    async def test_openfda_stops_when_total_reached(self, tmp_path, test_settings):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            skip = int(request.url.params["skip"])
            requested.append(skip)
            assert request.url.params["limit"] == "100"
            return httpx.Response(200, json={
                "meta": {"results": {"skip": skip, "limit": 100, "total": 250}},
                "results": [{"skip": skip}],
            })

        connector = OpenFdaStyleConnector(
            DatasetSourceName.FAERS, test_settings, "faers", "drug/event.json"
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            output = await connector.prepare(context_for(client, tmp_path))
            text = await collect(output.stream)

        assert requested == [0, 100, 200]
        assert len(text.splitlines()) == 3

    @pytest.mark.asyncio
    async def test_pubmed_accepts_string_counters(self, tmp_path, test_settings):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(request.url.params["retstart"])
            return httpx.Response(200, json={
                "esearchresult": {"count": "3", "retstart": "0", "retmax": "100", "idlist": ["1", "2", "3"]}
            })

        connector = PubMedCentralConnector(test_settings)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            output = await connector.prepare(context_for(client, tmp_path))
            text = await collect(output.stream)

        assert requested == ["0"]
        assert text.splitlines() == ['"1"', '"2"', '"3"']

    @pytest.mark.asyncio
    async def test_dailymed_uses_total_pages(self, tmp_path, test_settings):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["page"])
            requested.append(page)
            return httpx.Response(200, json={
                "metadata": {"current_page": page, "total_pages": 2},
                "data": [{"drug_name": f"Drug {page}", "setid": f"set-{page}", "last_updated": "2024-01-15"}],
            })

        connector = DailyMedConnector(test_settings)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            output = await connector.prepare(context_for(client, tmp_path))
            text = await collect(output.stream)

        assert requested == [1, 2]
        first = json.loads(text.splitlines()[0])
        assert first == {"name": "Drug 1", "setId": "set-1", "updated": "2024-01-15"}


class TestBulkFileConnector:

    @pytest.mark.asyncio
    async def test_zip_download_is_streamed(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                content=b"PK-bytes",
                headers={"Content-Type": "application/zip", "ETag": '"abc"'},
            )

        connector = BulkFileConnector(
            DatasetSourceName.CMS_PUF, BulkFileConfig(download_url="https://files.example.com/puf.zip")
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            output = await connector.prepare(context_for(client, tmp_path))
            body = b"".join([chunk async for chunk in output.stream])

        assert body == b"PK-bytes"
        assert output.file_extension == ".zip"
        assert output.content_type == "application/zip"
        assert output.metadata["downloadUrl"] == "https://files.example.com/puf.zip"
        assert output.metadata["etag"] == '"abc"'
        assert output.metadata["contentLength"] == len(b"PK-bytes")

    @pytest.mark.asyncio
    async def test_other_content_types_become_bin(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"data", headers={"Content-Type": "application/octet-stream"})

        connector = BulkFileConnector(
            DatasetSourceName.NPPES, BulkFileConfig(download_url="https://files.example.com/npi")
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            output = await connector.prepare(context_for(client, tmp_path))
            await collect(output.stream)

        assert output.file_extension == ".bin"

    @pytest.mark.asyncio
    async def test_empty_body_fails_the_attempt(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"", headers={"Content-Type": "application/zip"})

        connector = BulkFileConnector(
            DatasetSourceName.CMS_PUF, BulkFileConfig(download_url="https://files.example.com/empty.zip")
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            output = await connector.prepare(context_for(client, tmp_path))
            with pytest.raises(UpstreamFetchError):
                await collect(output.stream)

    @pytest.mark.asyncio
    async def test_non_success_fails_before_streaming(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403)

        connector = BulkFileConnector(
            DatasetSourceName.SYNTHEA, BulkFileConfig(download_url="https://files.example.com/synthea.zip")
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(UpstreamAuthError):
                await connector.prepare(context_for(client, tmp_path))


class TestArchive:
    """Test ZIP to JSON-lines transcoding"""

    def test_transcodes_first_matching_member(self, make_zip):
        payload = make_zip({"readme.txt": "ignore me", "data/Products.TSV": "a\tb\n1\t2\n"})

        transcoded = transcode_archive(payload)

        assert transcoded.member == "data/Products.TSV"
        assert transcoded.headers == ["a", "b"]
        assert transcoded.records == [{"a": "1", "b": "2"}]
        assert transcoded.to_jsonl() == ['{"a":"1","b":"2"}\n']

    def test_missing_and_surplus_values(self, make_zip):
        payload = make_zip({"rows.tsv": " a \t b \tc\n1\t2\n\n3\t4\t5\t6\n"})

        transcoded = transcode_archive(payload)

        assert transcoded.headers == ["a", "b", "c"]
        assert transcoded.records == [
            {"a": "1", "b": "2", "c": ""},
            {"a": "3", "b": "4", "c": "5"},
        ]

    def test_rows_break_only_on_newlines(self, make_zip):
        payload = make_zip({"rows.tsv": "a\tb\r\n1\tx\x0cy\r\n2\tz\u2028w\n"})

        transcoded = transcode_archive(payload)

        assert transcoded.headers == ["a", "b"]
        assert transcoded.records == [
            {"a": "1", "b": "x\x0cy"},
            {"a": "2", "b": "z\u2028w"},
        ]

    def test_custom_delimiter_and_suffix(self, make_zip):
        payload = make_zip({"export.csv": "x,y\n10,20\n"})

        transcoded = transcode_archive(payload, member_suffix=".csv", delimiter=",")

        assert transcoded.records == [{"x": "10", "y": "20"}]

    def test_missing_member_raises(self, make_zip):
        with pytest.raises(ArchiveFormatError):
            transcode_archive(make_zip({"readme.txt": "no data here"}))

    def test_non_zip_payload_raises(self):
        with pytest.raises(ArchiveFormatError):
            transcode_archive(b"definitely not a zip")

    @pytest.mark.asyncio
    async def test_connector_reports_counts_and_headers(self, tmp_path, make_zip):
        payload = make_zip({"Products.tsv": "a\tb\n1\t2\n"})

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=payload, headers={"Content-Type": "application/zip"})

        connector = ArchiveRecordsConnector(
            DatasetSourceName.ORANGE_BOOK,
            BulkFileConfig(download_url="https://files.example.com/orange-book.zip"),
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            output = await connector.prepare(context_for(client, tmp_path))
            text = await collect(output.stream)

        assert text == '{"a":"1","b":"2"}\n'
        assert output.file_extension == ".jsonl"
        assert output.item_count == 1
        assert output.metadata["itemCount"] == 1
        assert output.metadata["headers"] == ["a", "b"]
        assert output.metadata["archiveMember"] == "Products.tsv"

    @pytest.mark.asyncio
    async def test_connector_names_source_on_format_error(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"garbage", headers={"Content-Type": "application/zip"})

        connector = ArchiveRecordsConnector(
            DatasetSourceName.ORANGE_BOOK,
            BulkFileConfig(download_url="https://files.example.com/orange-book.zip"),
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ArchiveFormatError) as exc_info:
                await connector.prepare(context_for(client, tmp_path))

        assert exc_info.value.context["source"] == "Orange Book"


class TestStaticConnector:

    @pytest.mark.asyncio
    async def test_list_payload_reports_item_count(self, tmp_path):
        connector = StaticConnector(DatasetSourceName.LUNA16, [{"id": 1}, {"id": 2}])

        async with httpx.AsyncClient() as client:
            output = await connector.prepare(context_for(client, tmp_path))
            text = await collect(output.stream)

        assert json.loads(text) == [{"id": 1}, {"id": 2}]
        assert output.file_extension == ".json"
        assert output.item_count == 2

    @pytest.mark.asyncio
    async def test_callable_payload_is_rebuilt(self, tmp_path):
        calls = []

        def payload():
            calls.append(1)
            return {"message": "manual upload", "call": len(calls)}

        connector = StaticConnector(DatasetSourceName.SEER, payload)

        async with httpx.AsyncClient() as client:
            first = await connector.prepare(context_for(client, tmp_path))
            second = await connector.prepare(context_for(client, tmp_path))
            first_text = await collect(first.stream)
            second_text = await collect(second.stream)

        assert json.loads(first_text)["call"] == 1
        assert json.loads(second_text)["call"] == 2
        assert first.item_count is None
