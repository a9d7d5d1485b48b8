"""Pytest configuration and fixtures for rrfbuild tests.

The ARM toolchain is never executed in unit tests. FakeToolchain stands in for
arm-none-eabi-gcc/g++/objcopy/size by producing object files, dependency
records, images and size reports the way the real tools would.

This conftest also addresses Python 3.13 compatibility issues with pytest's capture fixtures.
Python 3.13 changed how stdout/stderr are handled, causing "I/O operation on closed file"
errors during test teardown. This is a known issue: https://github.com/pytest-dev/pytest/issues/11439
"""

import re
import subprocess
import sys
import threading
import warnings
from pathlib import Path
from typing import List, Optional

import pytest

from rrfbuild import output
from rrfbuild.build.build_context import BuildConfig
from rrfbuild.platform_configs import load_platform_config

# Suppress ResourceWarnings from file cleanup in Python 3.13
if sys.version_info >= (3, 13):
    warnings.filterwarnings("ignore", category=ResourceWarning)

_INCLUDE = re.compile(r'#include "([^"]+)"')

SIZE_REPORT = """RepRapFirmware.elf  :
section              size        addr
.text              104200      524288
.relocate            1352   536870912
.bss                30120   536872264
.stack               1024   536902384
Total              136696
"""


@pytest.fixture(autouse=True)
def _restore_stdio():  # noqa: PT004
    """Ensure stdout/stderr are always restored after each test.

    This prevents "I/O operation on closed file" errors in Python 3.13
    when tests raise exceptions that close stdout/stderr.
    """
    yield

    # Restore if they were closed during the test
    if sys.stdout.closed:
        sys.stdout = sys.__stdout__
    if sys.stderr.closed:
        sys.stderr = sys.__stderr__


@pytest.fixture(autouse=True)
def _reset_output():  # noqa: PT004
    """Keep verbose mode from leaking between tests."""
    yield
    output.set_verbose(False)


class FakeProcess:
    """Minimal Popen stand-in."""

    def __init__(self, returncode: int, stdout: str = "", stderr: str = "", release: Optional[threading.Event] = None):
        self.returncode: Optional[int] = None if release is not None else returncode
        self._final_returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.release = release
        self.terminated = False

    def communicate(self):
        if self.release is not None:
            self.release.wait(timeout=10)
            if self.returncode is None:
                self.returncode = self._final_returncode
        return self.stdout, self.stderr

    def poll(self) -> Optional[int]:
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        self.returncode = -15
        if self.release is not None:
            self.release.set()


class FakeToolchain:
    """Stands in for the ARM compiler, linker, objcopy and size binaries.

    Sources containing ``#error`` fail to compile. Sources whose file name is
    in ``blocking`` keep their compiler process running until terminated.
    """

    def __init__(self):
        self.compiled: List[Path] = []
        self.commands: List[List[str]] = []
        self.processes: List[FakeProcess] = []
        self.blocking: set[str] = set()
        self.size_stdout = SIZE_REPORT
        self._lock = threading.Lock()

    def compiled_names(self) -> List[str]:
        return [path.name for path in self.compiled]

    def popen(self, cmd, **kwargs):
        with self._lock:
            self.commands.append(list(cmd))

        mf_flag = next(arg for arg in cmd if arg.startswith("-MF"))
        source = Path(cmd[cmd.index(mf_flag) - 1])
        dep_path = Path(mf_flag[3:])
        obj_path = Path(cmd[cmd.index("-o") + 1])

        with self._lock:
            self.compiled.append(source)

        if source.name in self.blocking:
            process = FakeProcess(0, release=threading.Event())
        else:
            text = source.read_text()
            if "#error" in text:
                process = FakeProcess(1, stderr=f"{source}:1:2: error: #error stop here")
            else:
                headers = [source.parent / name for name in _INCLUDE.findall(text)]
                obj_path.write_bytes(f"OBJ {source.name}\n{text}".encode())
                rule = f"{obj_path}: {source}" + "".join(f" \\\n {header}" for header in headers)
                phony = "".join(f"\n{header}:\n" for header in headers)
                dep_path.write_text(rule + "\n" + phony)
                process = FakeProcess(0)

        with self._lock:
            self.processes.append(process)
        return process

    def run(self, cmd, **kwargs):
        with self._lock:
            self.commands.append(list(cmd))

        if "-Wl,--start-group" in cmd:
            return self._link(cmd)
        if cmd[1:3] == ["-O", "binary"]:
            Path(cmd[4]).write_bytes(Path(cmd[3]).read_bytes()[len(b"ELF\n"):])
            return subprocess.CompletedProcess(cmd, 0, "", "")
        if "-A" in cmd:
            return subprocess.CompletedProcess(cmd, 0, self.size_stdout, "")
        raise AssertionError(f"Unexpected tool invocation: {cmd}")

    def _link(self, cmd):
        start = cmd.index("-Wl,--start-group")
        end = cmd.index("-Wl,--end-group")
        members = cmd[start + 1 : end]
        elf_path = Path(cmd[cmd.index("-o") + 1])
        elf_path.write_bytes(b"ELF\n" + b"".join(Path(member).read_bytes() for member in members))

        map_flag = next((arg for arg in cmd if arg.startswith("-Wl,-Map,")), None)
        if map_flag:
            Path(map_flag[len("-Wl,-Map,"):]).write_text("\n".join(members))
        return subprocess.CompletedProcess(cmd, 0, "", "")


@pytest.fixture
def fake_toolchain(monkeypatch):
    """Route compiler, linker, objcopy and size invocations to a FakeToolchain.

    The process layer underneath safe_popen/safe_run is replaced, so the
    verbose command echo still runs.
    """
    fake = FakeToolchain()
    monkeypatch.setattr("rrfbuild.subprocess_utils.subprocess.Popen", fake.popen)
    monkeypatch.setattr("rrfbuild.subprocess_utils.subprocess.run", fake.run)
    return fake


def make_project(root: Path, jobs: int = 1) -> BuildConfig:
    """Lay out an already provisioned project: toolchain, firmware and libraries present."""
    platform = load_platform_config()
    config = BuildConfig.create(root, platform, jobs=jobs)

    bin_dir = config.toolchain_dir / platform.toolchain.bin_dir
    bin_dir.mkdir(parents=True)
    for tool in ("gcc", "g++", "objcopy", "size"):
        (bin_dir / f"{platform.toolchain.prefix}-{tool}").touch()

    for rel in list(platform.sources.c_dirs) + list(platform.sources.cxx_dirs):
        (config.toolchain_dir / rel).mkdir(parents=True, exist_ok=True)

    config.linker_script.parent.mkdir(parents=True, exist_ok=True)
    config.linker_script.write_text("/* flash.ld */\n")
    config.system_archive.parent.mkdir(parents=True, exist_ok=True)
    config.system_archive.write_bytes(b"!<arch>\n")

    config.libraries_dir.mkdir(parents=True)
    return config


@pytest.fixture
def project(tmp_path) -> BuildConfig:
    """BuildConfig for a provisioned project with an empty firmware tree."""
    return make_project(tmp_path / "project")


def _never_prompt(question: str) -> str:
    raise AssertionError(f"Unexpected prompt: {question}")


@pytest.fixture
def no_prompt():
    """Prompt callable that fails the test if the operator is asked anything."""
    return _never_prompt


@pytest.fixture
def project_factory(tmp_path):
    """Create provisioned projects with custom settings (e.g., jobs)."""

    def factory(name: str = "project", jobs: int = 1) -> BuildConfig:
        return make_project(tmp_path / name, jobs=jobs)

    return factory
