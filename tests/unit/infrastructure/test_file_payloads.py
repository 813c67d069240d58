"""Unit tests for file-backed payloads"""

import io
import os

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from knowledge_upload.infrastructure.external.file_payloads import LocalFilePayload, save_upload_file


class TestLocalFilePayload:
    """Test LocalFilePayload"""

    def test_properties(self, tmp_path):
        path = tmp_path / "guideline.pdf"
        path.write_bytes(b"%PDF-1.7 body")

        payload = LocalFilePayload(str(path))

        assert payload.name == "guideline.pdf"
        assert payload.size == 13
        assert payload.content_type == "application/pdf"

    @pytest.mark.asyncio
    async def test_read_range(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_bytes(b"0123456789")
        payload = LocalFilePayload(str(path), content_type="text/plain")

        assert await payload.read(2, 3) == b"234"
        assert await payload.read(8) == b"89"
        assert await payload.read() == b"0123456789"

    def test_discard(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_bytes(b"x")
        payload = LocalFilePayload(str(path))

        payload.discard()
        payload.discard()

        assert not path.exists()


class TestSaveUploadFile:
    """Test spooling request uploads to disk"""

    @pytest.mark.asyncio
    async def test_spools_upload(self, tmp_path):
        data = b"Patient education notes\n" * 100
        upload = UploadFile(
            file=io.BytesIO(data),
            filename="notes.txt",
            headers=Headers({"content-type": "text/plain"})
        )
        spool_dir = str(tmp_path / "spool")

        payload = await save_upload_file(upload, spool_dir)

        assert payload.name == "notes.txt"
        assert payload.content_type == "text/plain"
        assert payload.size == len(data)
        assert os.path.dirname(payload.path) == spool_dir
        assert await payload.read() == data

    @pytest.mark.asyncio
    async def test_path_components_are_stripped(self, tmp_path):
        upload = UploadFile(file=io.BytesIO(b"x"), filename="../../etc/passwd.txt")

        payload = await save_upload_file(upload, str(tmp_path))

        assert os.path.dirname(payload.path) == str(tmp_path)
        assert payload.path.endswith("_passwd.txt")
