"""Subprocess discoverer: message protocol, environment, and failure modes."""

from __future__ import annotations

import asyncio
import json
import os
import sys
import textwrap
from pathlib import Path

import pytest

from lib_functions_discovery.adapters.discovery.process import (
    UNKNOWN_PROBLEM_MESSAGE,
    SubprocessAnnotationDiscoverer,
    build_parser_env,
    remove_inspect_options,
)
from lib_functions_discovery.application.ports import AnnotationDiscoverer
from lib_functions_discovery.domain.errors import DiscoveryError


def _parser(tmp_path: Path, body: str) -> SubprocessAnnotationDiscoverer:
    script = tmp_path / "parser.py"
    script.write_text(textwrap.dedent(body), encoding="utf-8")
    return SubprocessAnnotationDiscoverer([sys.executable, str(script)])


def _run(discoverer: SubprocessAnnotationDiscoverer, source_dir: Path, **kwargs) -> list:
    return asyncio.run(
        discoverer.discover(
            kwargs.get("project_id", "demo"),
            str(source_dir),
            kwargs.get("config_values", {}),
            kwargs.get("envs", {}),
        )
    )


def test_satisfies_port(tmp_path: Path) -> None:
    assert isinstance(_parser(tmp_path, "pass"), AnnotationDiscoverer)


def test_empty_command_rejected() -> None:
    with pytest.raises(ValueError):
        SubprocessAnnotationDiscoverer([])


def test_triggers_message_returned(tmp_path: Path) -> None:
    discoverer = _parser(
        tmp_path,
        """
        import json, os, sys
        print("loading functions...")
        print(json.dumps({"triggers": [{
            "name": "api",
            "entryPoint": "api",
            "httpsTrigger": {},
            "source": sys.argv[1],
            "project": os.environ["GCLOUD_PROJECT"],
            "config": json.loads(os.environ["CLOUD_RUNTIME_CONFIG"]),
            "apiUrl": os.environ["API_URL"],
        }]}))
        """,
    )
    triggers = _run(
        discoverer,
        tmp_path,
        config_values={"service": {"key": "v"}},
        envs={"API_URL": "https://x"},
    )
    assert len(triggers) == 1
    trigger = triggers[0]
    assert trigger["source"] == str(tmp_path)
    assert trigger["project"] == "demo"
    assert trigger["config"] == {"service": {"key": "v"}}
    assert trigger["apiUrl"] == "https://x"


def test_first_message_wins_and_other_output_is_skipped(tmp_path: Path) -> None:
    discoverer = _parser(
        tmp_path,
        """
        import json
        print("{not json")
        print(json.dumps({"level": "info", "msg": "structured user log"}))
        print(json.dumps({"triggers": [{"name": "first"}]}))
        print(json.dumps({"triggers": []}))
        """,
    )
    assert _run(discoverer, tmp_path) == [{"name": "first"}]


def test_parser_kept_alive_by_user_code_still_resolves(tmp_path: Path) -> None:
    pid_file = tmp_path / "parser.pid"
    discoverer = _parser(
        tmp_path,
        f"""
        import json, os, time
        with open({str(pid_file)!r}, "w") as handle:
            handle.write(str(os.getpid()))
        print(json.dumps({{"triggers": [{{"name": "f"}}]}}), flush=True)
        time.sleep(30)
        """,
    )

    async def _bounded() -> list:
        return await asyncio.wait_for(discoverer.discover("demo", str(tmp_path), {}, {}), timeout=10)

    assert asyncio.run(_bounded()) == [{"name": "f"}]
    assert not _is_alive(int(pid_file.read_text()))


def test_cancelled_discovery_kills_parser(tmp_path: Path) -> None:
    pid_file = tmp_path / "parser.pid"
    discoverer = _parser(
        tmp_path,
        f"""
        import os, time
        with open({str(pid_file)!r}, "w") as handle:
            handle.write(str(os.getpid()))
        time.sleep(30)
        """,
    )

    async def _wait_for_pid() -> None:
        while not pid_file.exists() or not pid_file.read_text():
            await asyncio.sleep(0.05)

    async def _cancel_midway() -> None:
        task = asyncio.ensure_future(discoverer.discover("demo", str(tmp_path), {}, {}))
        await asyncio.wait_for(_wait_for_pid(), timeout=10)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(_cancel_midway())
    assert not _is_alive(int(pid_file.read_text()))


def _is_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


def test_explicit_error_exit_code_one(tmp_path: Path) -> None:
    discoverer = _parser(
        tmp_path,
        """
        import json, sys
        print(json.dumps({"error": "Cannot find module 'firebase-functions'"}))
        sys.exit(1)
        """,
    )
    with pytest.raises(DiscoveryError, match="firebase-functions") as info:
        _run(discoverer, tmp_path)
    assert info.value.exit_code == 1


def test_silent_crash_is_unknown_problem(tmp_path: Path) -> None:
    discoverer = _parser(tmp_path, "raise SystemExit(3)")
    with pytest.raises(DiscoveryError) as info:
        _run(discoverer, tmp_path)
    assert str(info.value) == UNKNOWN_PROBLEM_MESSAGE
    assert info.value.exit_code == 2


def test_clean_exit_without_message_is_unknown_problem(tmp_path: Path) -> None:
    discoverer = _parser(tmp_path, "print('done')")
    with pytest.raises(DiscoveryError) as info:
        _run(discoverer, tmp_path)
    assert info.value.exit_code == 2


def test_non_list_triggers_is_unknown_problem(tmp_path: Path) -> None:
    discoverer = _parser(tmp_path, "print('{\"triggers\": {\"name\": \"api\"}}')")
    with pytest.raises(DiscoveryError, match="unknown problem"):
        _run(discoverer, tmp_path)


def test_build_parser_env_layers_variables() -> None:
    env = build_parser_env({"PATH": "/bin", "GCLOUD_PROJECT": "stale"}, "demo", {"a": {"b": 1}}, {"A": "1"})
    assert env["PATH"] == "/bin"
    assert env["GCLOUD_PROJECT"] == "demo"
    assert json.loads(env["CLOUD_RUNTIME_CONFIG"]) == {"a": {"b": 1}}
    assert env["A"] == "1"


def test_build_parser_env_does_not_mutate_base() -> None:
    base = {"NODE_OPTIONS": "--inspect-brk"}
    build_parser_env(base, "demo", {}, {})
    assert base == {"NODE_OPTIONS": "--inspect-brk"}


def test_remove_inspect_options() -> None:
    options = ["--inspect", "--inspect-brk=0.0.0.0:9229", "--max-old-space-size=256", "--enable-source-maps"]
    assert remove_inspect_options(options) == ["--max-old-space-size=256", "--enable-source-maps"]


def test_base_env_defaults_to_process_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DISCOVERY_PROBE", "present")
    discoverer = _parser(
        tmp_path,
        """
        import json, os
        print(json.dumps({"triggers": [os.environ.get("DISCOVERY_PROBE")]}))
        """,
    )
    assert _run(discoverer, tmp_path) == ["present"]
    assert os.environ["DISCOVERY_PROBE"] == "present"
