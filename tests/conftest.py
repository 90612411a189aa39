"""Pytest configuration and fixtures for msvc-analyze tests."""

import json
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from msvc_analyze.models import AnalyzeOptions, ExecResult

TOOLSET = "14.29.30133"


@pytest.fixture
def vs_root(tmp_path: Path) -> Path:
    """Root of a fake Visual Studio installation."""
    return tmp_path / "VS" / "2019" / "Enterprise"


@pytest.fixture
def cl_exe(vs_root: Path) -> str:
    """Fake cl.exe inside a Hostx64/x64 toolset with EspXEngine.dll and official rulesets."""
    bin_dir = vs_root / "VC" / "Tools" / "MSVC" / TOOLSET / "bin" / "Hostx64" / "x64"
    bin_dir.mkdir(parents=True)
    (bin_dir / "cl.exe").write_text("")
    (bin_dir / "EspXEngine.dll").write_text("")

    rulesets = vs_root / "Team Tools" / "Static Analysis Tools" / "Rule Sets"
    rulesets.mkdir(parents=True)
    (rulesets / "NativeRecommendedRules.ruleset").write_text("<RuleSet/>")

    build_dir = vs_root / "VC" / "Auxiliary" / "Build"
    build_dir.mkdir(parents=True)
    (build_dir / "vcvarsall.bat").write_text("")
    return str(bin_dir / "cl.exe")


class CMakeReplyBuilder:
    """Writes a CMake file API reply tree into a build directory."""

    def __init__(self, build_dir: Path, source_dir: Path, compiler: str) -> None:
        self.build_dir = build_dir
        self.source_dir = source_dir
        self.compiler = compiler
        self.reply_dir = build_dir / ".cmake" / "api" / "v1" / "reply"
        self.targets: List[Dict] = []
        self.toolchains: Optional[List[Dict]] = None

    def add_target(
        self,
        name: str,
        directory: str,
        sources: List[str],
        language: str = "CXX",
        includes: Optional[List[Dict]] = None,
        defines: Optional[List[str]] = None,
        fragments: Optional[List[str]] = None,
    ) -> "CMakeReplyBuilder":
        (self.source_dir / directory).mkdir(parents=True, exist_ok=True)
        for source in sources:
            (self.source_dir / source).parent.mkdir(parents=True, exist_ok=True)
            (self.source_dir / source).write_text("int main() { return 0; }\n")
        self.targets.append({
            "name": name,
            "directory": directory,
            "sources": sources,
            "group": {
                "language": language,
                "languageStandard": {"backtraces": [1], "standard": "17"},
                "compileCommandFragments": [{"fragment": f} for f in (fragments or ["/DWIN32 /EHsc", "/W4"])],
                "includes": includes or [],
                "defines": [{"define": d} for d in (defines or [])],
                "sourceIndexes": list(range(len(sources))),
            },
        })
        return self

    def default_toolchains(self) -> List[Dict]:
        return [
            {"language": "C", "compiler": {"id": "MSVC", "path": self.compiler, "version": "19.29.30133.0",
                                           "implicit": {}}},
            {"language": "CXX", "compiler": {"id": "MSVC", "path": self.compiler, "version": "19.29.30133.0",
                                             "implicit": {}}},
            {"language": "RC", "compiler": {"id": "", "path": "C:/rc.exe", "implicit": {}}},
        ]

    def write(
        self,
        configurations: tuple = ("Debug",),
        cmake_version: str = "3.21.1",
        index_name: str = "index-2021-08-01T12-00-00-0000.json",
    ) -> Path:
        self.reply_dir.mkdir(parents=True, exist_ok=True)
        directories = sorted({t["directory"] for t in self.targets})

        config_docs = []
        for config_name in configurations:
            targets = []
            for target in self.targets:
                json_file = f"target-{target['name']}-{config_name}.json"
                (self.reply_dir / json_file).write_text(json.dumps({
                    "name": target["name"],
                    "sources": [{"path": s} for s in target["sources"]],
                    "compileGroups": [target["group"]],
                }))
                targets.append({
                    "name": target["name"],
                    "directoryIndex": directories.index(target["directory"]),
                    "jsonFile": json_file,
                })
            config_docs.append({
                "name": config_name,
                "directories": [{"source": d} for d in directories],
                "targets": targets,
            })

        codemodel_file = "codemodel-v2-0001.json"
        (self.reply_dir / codemodel_file).write_text(json.dumps({
            "paths": {"source": str(self.source_dir), "build": str(self.build_dir)},
            "configurations": config_docs,
        }))

        toolchains_file = "toolchains-v1-0001.json"
        (self.reply_dir / toolchains_file).write_text(json.dumps({
            "kind": "toolchains",
            "toolchains": self.toolchains if self.toolchains is not None else self.default_toolchains(),
        }))

        index = {
            "cmake": {"version": {"string": cmake_version}},
            "reply": {
                "client-msvc-ca-action": {
                    "query.json": {
                        "responses": [
                            {"kind": "codemodel", "jsonFile": codemodel_file},
                            {"kind": "toolchains", "jsonFile": toolchains_file},
                        ]
                    }
                }
            },
        }
        (self.reply_dir / index_name).write_text(json.dumps(index))
        return self.reply_dir


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    path = tmp_path / "src"
    path.mkdir()
    return path


@pytest.fixture
def build_dir(tmp_path: Path) -> Path:
    path = tmp_path / "build"
    path.mkdir()
    (path / "CMakeCache.txt").write_text("CMAKE_GENERATOR:INTERNAL=Ninja\n")
    return path


@pytest.fixture
def reply_builder(build_dir: Path, source_dir: Path, cl_exe: str) -> CMakeReplyBuilder:
    return CMakeReplyBuilder(build_dir, source_dir, cl_exe)


@pytest.fixture
def options(tmp_path: Path) -> AnalyzeOptions:
    """Options that need no external helper."""
    return AnalyzeOptions(load_implicit_compiler_env=False, project_root=str(tmp_path))


@pytest.fixture
def no_cmake(monkeypatch):
    """Skip the CMake re-run; replies are written by the test."""
    calls = []
    monkeypatch.setattr("msvc_analyze.runner.reconfigure", lambda build_root: calls.append(build_root))
    return calls


def sarif_result(rule_id="C6001", message="Using uninitialized memory 'x'.", uri="file:///src/a.cpp",
                 line=10, column=5) -> Dict:
    return {
        "ruleId": rule_id,
        "message": {"text": message},
        "locations": [{
            "physicalLocation": {
                "artifactLocation": {"uri": uri},
                "region": {"startLine": line, "startColumn": column},
            }
        }],
    }


def sarif_log(results: List[Dict], tool: Optional[Dict] = None) -> Dict:
    return {
        "version": "2.1.0",
        "runs": [{
            "tool": tool if tool is not None else {"driver": {"name": "PREfast", "version": "14.29.30133.0"}},
            "results": results,
        }],
    }


@pytest.fixture
def write_sarif(tmp_path: Path):
    """Write a SARIF document and return its path."""
    counter = {"n": 0}

    def _write(document: Dict, name: Optional[str] = None) -> Path:
        counter["n"] += 1
        path = tmp_path / (name or f"log{counter['n']}.sarif")
        path.write_text(json.dumps(document))
        return path

    return _write


class FakeCompiler:
    """Stands in for cl.exe: writes canned SARIF to the /analyze:log path."""

    def __init__(self, results_by_source: Dict[str, List[Dict]], failing: tuple = ()) -> None:
        self.results_by_source = results_by_source
        self.failing = failing
        self.calls: List[str] = []

    def __call__(self, invocation, cwd):
        self.calls.append(invocation.source)
        name = Path(invocation.source).name
        if name in self.failing:
            return ExecResult(exit_code=2, stdout=f"{name}: fatal error C1083")
        log_args = [a for a in invocation.args if a.startswith("/analyze:log") and not a.startswith("/analyze:log:")]
        assert log_args == [f"/analyze:log{invocation.sarif_log}"]
        Path(invocation.sarif_log).write_text(json.dumps(sarif_log(self.results_by_source.get(name, []))))
        return ExecResult(exit_code=0)
