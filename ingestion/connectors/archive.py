"""
ZIP archive transcoder and the connector built on it.

The archive path is the one deliberately buffered path: the whole download
and its first matching member must fit in memory. Parsing happens in a
worker thread so concurrent ingestions keep streaming.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import asyncio
import csv
import io
import re
import zipfile

import pandas as pd

from ingestion.base import ConnectorOutput, IngestionContext, dumps_record, iterate_chunks
from ingestion.connectors.bulk_file import BulkFileConfig, BulkFileConnector
from ingestion.sources import DatasetSourceName
from core.exceptions import ArchiveFormatError

LINE_BREAK = re.compile(r"\r?\n")


@dataclass
class TranscodedArchive:
    """Records recovered from one delimited-text archive member"""
    member: str
    headers: List[str]
    records: List[Dict[str, str]] = field(default_factory=list)

    def to_jsonl(self) -> List[str]:
        return [f"{dumps_record(record)}\n" for record in self.records]


def find_member(archive: zipfile.ZipFile, member_suffix: str) -> Optional[str]:
    suffix = member_suffix.lower()
    for name in archive.namelist():
        if name.lower().endswith(suffix):
            return name
    return None


def transcode_archive(payload: bytes, member_suffix: str = ".tsv", delimiter: str = "\t") -> TranscodedArchive:
    """
    Unpack a ZIP payload and turn its first delimited-text member into records.

    The first non-empty line is the header row. Each later non-empty line
    is split on the delimiter and zipped onto the trimmed headers; missing
    values become "" and surplus values are dropped.

    Raises:
        ArchiveFormatError: Payload is not a ZIP, or no member matches
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(payload))
    except zipfile.BadZipFile as e:
        raise ArchiveFormatError(
            "Downloaded payload is not a valid ZIP archive",
            context={"payload_bytes": len(payload)},
            original_exception=e
        )

    with archive:
        member = find_member(archive, member_suffix)
        if member is None:
            raise ArchiveFormatError(
                f"ZIP archive does not contain a {member_suffix} file",
                context={"member_suffix": member_suffix, "members": archive.namelist()[:20]}
            )
        raw = archive.read(member)

    text = raw.decode("utf-8", errors="replace")
    lines = [line for line in LINE_BREAK.split(text) if line.strip()]
    if not lines:
        return TranscodedArchive(member=member, headers=[])

    width = len(lines[0].split(delimiter))
    frame = pd.read_csv(
        io.StringIO("\n".join(lines)),
        sep=delimiter,
        header=None,
        index_col=False,
        dtype=str,
        keep_default_na=False,
        quoting=csv.QUOTE_NONE,
        engine="python",
        on_bad_lines=lambda bad_line: bad_line[:width],
    )
    frame = frame.fillna("").apply(lambda column: column.str.strip())

    rows = frame.values.tolist()
    headers = [str(value) for value in rows[0]]
    records = [
        {header: ("" if value is None else str(value)) for header, value in zip(headers, row)}
        for row in rows[1:]
    ]

    return TranscodedArchive(member=member, headers=headers, records=records)


class ArchiveRecordsConnector(BulkFileConnector):
    """
    Download a ZIP, pull out its delimited-text member and emit it as JSON lines.
    """

    def __init__(
        self,
        source: DatasetSourceName,
        config: BulkFileConfig,
        member_suffix: str = ".tsv",
        delimiter: str = "\t"
    ):
        super().__init__(source, config)
        self.member_suffix = member_suffix
        self.delimiter = delimiter

    async def prepare(self, context: IngestionContext) -> ConnectorOutput:
        response = await self.open_download(context)
        payload = b"".join([chunk async for chunk in self.iterate_body(response, context)])

        try:
            transcoded = await asyncio.to_thread(
                transcode_archive, payload, self.member_suffix, self.delimiter
            )
        except ArchiveFormatError as e:
            e.context["source"] = self.source.value
            e.message = f"{e.message} ({self.source.value})"
            raise

        context.logger.info(
            f"Transcoded {len(transcoded.records)} records from {transcoded.member} "
            f"for {self.source.value}"
        )

        metadata: Dict[str, Any] = {
            **self.get_metadata(response),
            "itemCount": len(transcoded.records),
            "headers": transcoded.headers,
            "archiveMember": transcoded.member,
        }

        return ConnectorOutput(
            stream=iterate_chunks(*transcoded.to_jsonl()),
            file_extension=".jsonl",
            content_type="application/jsonl",
            metadata=metadata,
            item_count=len(transcoded.records),
        )
