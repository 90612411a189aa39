"""Tests for the CMake file API reader."""

import json
from pathlib import Path

import pytest

from msvc_analyze.cmake_api import (
    check_cmake_version,
    create_api_query,
    find_latest_index,
    load_cmake_api_replies,
    load_reply_index,
    parse_reply_file,
)
from msvc_analyze.errors import ConfigurationError, MetadataError


class TestCreateApiQuery:
    def test_writes_query(self, tmp_path: Path):
        """The query requests codemodel v2 and toolchains v1."""
        query_file = create_api_query(tmp_path / "api")

        assert query_file == tmp_path / "api" / "query" / "client-msvc-ca-action" / "query.json"
        payload = json.loads(query_file.read_text())
        assert payload == {"requests": [{"kind": "codemodel", "version": 2}, {"kind": "toolchains", "version": 1}]}

    def test_existing_query_left_alone(self, tmp_path: Path):
        """An identical query file is not rewritten."""
        query_file = create_api_query(tmp_path)
        mtime = query_file.stat().st_mtime_ns
        assert create_api_query(tmp_path) == query_file
        assert query_file.stat().st_mtime_ns == mtime


class TestReplyIndex:
    def test_latest_index_is_lexicographic_max(self, tmp_path: Path):
        """The newest index is the greatest index-*.json name."""
        for name in ("index-2021-01-01.json", "index-2021-03-01.json", "index-2021-02-01.json", "zz.json"):
            (tmp_path / name).write_text("{}")
        assert find_latest_index(tmp_path).name == "index-2021-03-01.json"

    def test_no_index(self, tmp_path: Path):
        """A reply directory without an index is an error."""
        assert find_latest_index(tmp_path / "missing") is None
        with pytest.raises(MetadataError, match="index reply"):
            load_reply_index(tmp_path)

    def test_load_reply_index(self, reply_builder):
        """Response paths and CMake version come from the index."""
        reply_builder.add_target("app", "app", ["app/main.cpp"])
        reply_dir = reply_builder.write()

        index = load_reply_index(reply_dir.parent)

        assert index.codemodel_path == str(reply_dir / "codemodel-v2-0001.json")
        assert index.toolchains_path == str(reply_dir / "toolchains-v1-0001.json")
        assert index.version_string == "3.21.1"

    def test_index_without_client_responses(self, tmp_path: Path):
        """An index without this client's responses is an error."""
        reply_dir = tmp_path / "reply"
        reply_dir.mkdir()
        (reply_dir / "index-1.json").write_text(json.dumps({"cmake": {"version": {"string": "3.22.0"}}, "reply": {}}))
        with pytest.raises(MetadataError, match="client-msvc-ca-action"):
            load_reply_index(tmp_path)

    def test_parse_missing_and_malformed(self, tmp_path: Path):
        """Missing and malformed reply files raise MetadataError."""
        with pytest.raises(MetadataError, match="Failed to find"):
            parse_reply_file(tmp_path / "nope.json")
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")
        with pytest.raises(MetadataError, match="Malformed"):
            parse_reply_file(bad)


class TestVersion:
    @pytest.mark.parametrize("version", ["3.20.5", "3.21.0", "3.100.0", "4.0.0-rc1"])
    def test_supported(self, version):
        """Versions at or above the floor are accepted."""
        check_cmake_version(version)

    @pytest.mark.parametrize("version", ["3.20.4", "3.9.9", "2.8.12"])
    def test_unsupported(self, version):
        """Versions below the floor are rejected, compared numerically."""
        with pytest.raises(MetadataError, match=">= 3.20.5"):
            check_cmake_version(version)


class TestLoadCMakeApiReplies:
    def test_empty_build_root(self, tmp_path: Path, no_cmake):
        """An empty build directory is rejected before CMake runs."""
        empty = tmp_path / "empty"
        empty.mkdir()
        with pytest.raises(ConfigurationError, match="non-empty"):
            load_cmake_api_replies(str(empty))
        assert no_cmake == []

    def test_full_flow(self, reply_builder, build_dir: Path, no_cmake):
        """Query, reconfigure and load the reply index."""
        reply_builder.add_target("app", "app", ["app/main.cpp"])
        reply_builder.write()

        index = load_cmake_api_replies(str(build_dir))

        assert no_cmake == [str(build_dir)]
        assert (build_dir / ".cmake/api/v1/query/client-msvc-ca-action/query.json").exists()
        assert index.codemodel_path.endswith("codemodel-v2-0001.json")

    def test_old_cmake_rejected(self, reply_builder, build_dir: Path, no_cmake):
        """A reply from an old CMake is rejected."""
        reply_builder.add_target("app", "app", ["app/main.cpp"])
        reply_builder.write(cmake_version="3.19.0")
        with pytest.raises(MetadataError, match="3.19.0"):
            load_cmake_api_replies(str(build_dir))

    def test_cmake_failure(self, build_dir: Path, monkeypatch):
        """A failing CMake re-run is a metadata error."""
        from msvc_analyze import runner
        from msvc_analyze.models import ExecResult

        monkeypatch.setattr(runner, "find_executable", lambda name: "/usr/bin/cmake")
        monkeypatch.setattr(runner, "run_process", lambda args, **kw: ExecResult(1, stderr="CMake Error"))
        with pytest.raises(MetadataError, match="CMake failed"):
            load_cmake_api_replies(str(build_dir))
