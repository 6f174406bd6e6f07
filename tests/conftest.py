import os
from typing import List

import pytest

from receipt_emulator.config.settings import RenderSettings
from receipt_emulator.printing.document import Document
from receipt_emulator.printing.jobs import JobSegmenter
from receipt_emulator.printing.layout import DocumentBuilder
from receipt_emulator.printing.writer import EscPosWriter
from receipt_emulator.protocol.decoder import CommandDecoder


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep RECEIPT_* variables of the developer's shell out of the tests."""
    for key in list(os.environ):
        if key.startswith("RECEIPT_"):
            monkeypatch.delenv(key)


@pytest.fixture
def settings() -> RenderSettings:
    return RenderSettings(_env_file=None)


@pytest.fixture
def decoder() -> CommandDecoder:
    return CommandDecoder()


@pytest.fixture
def segmenter() -> JobSegmenter:
    return JobSegmenter()


@pytest.fixture
def builder() -> DocumentBuilder:
    return DocumentBuilder()


@pytest.fixture
def writer() -> EscPosWriter:
    return EscPosWriter()


@pytest.fixture
def layout(decoder, segmenter, builder):
    """Decode, segment and build a byte stream into documents."""
    def _layout(data: bytes) -> List[Document]:
        return [builder.build(job) for job in segmenter.segment(decoder.decode(data))]
    return _layout


@pytest.fixture
def checkerboard() -> bytes:
    """16x2 raster image: 0xAA 0xAA / 0x55 0x55."""
    return b"\xaa\xaa\x55\x55"
