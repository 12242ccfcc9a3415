"""Tests for the zip archive writer."""

from __future__ import annotations

import os
import shutil
import zipfile
from unittest.mock import patch

from provision_spine.provision.archive import ArchiveWriter, make_executable


class TestArchiveWriter:
    def test_files_bytes_and_directories(self, tmp_path):
        binary = tmp_path / "bin"
        binary.write_bytes(b"\x7fELF")
        site = tmp_path / "site"
        (site / "css").mkdir(parents=True)
        (site / "index.html").write_text("<html/>")
        (site / "css" / "app.css").write_text("body{}")

        path = tmp_path / "out.zip"
        with ArchiveWriter(path) as archive:
            archive.add_file(binary, arcname="bootstrap")
            archive.add_bytes("manifest.json", '{"a": 1}')
            assert archive.add_directory(site) == 2

        with zipfile.ZipFile(path) as zf:
            assert sorted(zf.namelist()) == ["bootstrap", "css/app.css", "index.html", "manifest.json"]
            assert zf.read("manifest.json") == b'{"a": 1}'

    def test_annotator_sets_unix_permissions(self, tmp_path):
        binary = tmp_path / "bin"
        binary.write_bytes(b"\x7fELF")
        path = tmp_path / "out.zip"
        with ArchiveWriter(path) as archive:
            archive.add_file(binary, arcname="bootstrap", annotator=make_executable)

        with zipfile.ZipFile(path) as zf:
            info = zf.getinfo("bootstrap")
        assert info.create_system == 3
        assert (info.external_attr >> 16) & 0o777 == 0o777

    def test_close_is_idempotent(self, tmp_path):
        archive = ArchiveWriter(tmp_path / "a.zip")
        archive.close()
        archive.close()

    def test_large_file_is_streamed(self, tmp_path):
        payload = os.urandom(3 * 1024 * 1024)
        binary = tmp_path / "bin"
        binary.write_bytes(payload)
        path = tmp_path / "out.zip"

        with patch("provision_spine.provision.archive.shutil.copyfileobj", wraps=shutil.copyfileobj) as copy:
            with ArchiveWriter(path) as archive:
                archive.add_file(binary, arcname="bootstrap")
        copy.assert_called_once()

        with zipfile.ZipFile(path) as zf:
            assert zf.read("bootstrap") == payload
            assert zf.getinfo("bootstrap").file_size == len(payload)
