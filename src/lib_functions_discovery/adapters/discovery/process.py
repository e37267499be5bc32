"""Subprocess-backed trigger annotation discovery.

Purpose
-------
Implement :class:`lib_functions_discovery.application.ports.AnnotationDiscoverer`
by running a trigger parser program against the user's source directory. The
parser loads the user's code with the project's runtime configuration in its
environment and prints exactly one JSON message on stdout:

* ``{"triggers": [...]}`` – success with the raw annotations;
* ``{"error": "..."}`` – an explicit, user-facing failure.

Discovery resolves on the first message, even when the user's code keeps the
parser alive afterwards; the child is then stopped. A parser that closes
stdout without a message is reported as an unknown problem.

System Role
-----------
Default discoverer wired by :func:`lib_functions_discovery.core.discover`. The
call is the single asynchronous boundary of discovery; it applies no timeout of
its own, but a cancelled call still kills the parser.
"""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Mapping, Sequence
from typing import Any

from ...domain.errors import DiscoveryError
from ...observability import log_debug, log_error, make_event

UNKNOWN_PROBLEM_MESSAGE = "There was an unknown problem while trying to parse function triggers."

_STREAM_LIMIT = 16 * 1024 * 1024
"""Longest stdout line accepted; a triggers message is a single line."""


class SubprocessAnnotationDiscoverer:
    """Run ``command + [source_dir]`` and read the annotations it reports.

    Parameters
    ----------
    command:
        Parser argv, e.g. ``("node", "/opt/parser/triggerParser.js")``.
    base_env:
        Environment the child inherits before discovery variables are layered
        on top. Defaults to :data:`os.environ`.
    """

    def __init__(self, command: Sequence[str], *, base_env: Mapping[str, str] | None = None) -> None:
        if not command:
            raise ValueError("A trigger parser command is required")
        self._command = tuple(command)
        self._base_env = os.environ if base_env is None else base_env

    async def discover(
        self,
        project_id: str,
        source_dir: str,
        config_values: Mapping[str, Any],
        envs: Mapping[str, str],
    ) -> list[Mapping[str, Any]]:
        env = build_parser_env(self._base_env, project_id, config_values, envs)
        log_debug("trigger_parser_started", **make_event(project_id, None, {"command": list(self._command)}))
        process = await asyncio.create_subprocess_exec(
            *self._command,
            source_dir,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
            limit=_STREAM_LIMIT,
        )
        stderr_task = asyncio.ensure_future(process.stderr.read())
        try:
            message = await _first_message(process.stdout)
            if message is None:
                returncode = await process.wait()
                stderr = await stderr_task
                log_error(
                    "discovery_failed",
                    **make_event(
                        project_id,
                        None,
                        {"returncode": returncode, "stderr": stderr.decode("utf-8", "replace")[-2000:]},
                    ),
                )
                raise DiscoveryError(UNKNOWN_PROBLEM_MESSAGE, exit_code=2)
            return _resolve(message, project_id)
        finally:
            await _stop(process, stderr_task)


def _resolve(message: Mapping[str, Any], project_id: str) -> list[Mapping[str, Any]]:
    """Turn the parser's message into annotations or a :class:`DiscoveryError`."""

    if "triggers" in message:
        triggers = message["triggers"]
        if not isinstance(triggers, list):
            raise DiscoveryError(UNKNOWN_PROBLEM_MESSAGE, exit_code=2)
        return triggers
    if message.get("error"):
        log_error("discovery_failed", **make_event(project_id, None, {"error": message["error"]}))
        raise DiscoveryError(str(message["error"]), exit_code=1)
    raise DiscoveryError(UNKNOWN_PROBLEM_MESSAGE, exit_code=2)


async def _first_message(stdout: asyncio.StreamReader) -> dict[str, Any] | None:
    """Return the first ``triggers``/``error`` message on *stdout*, or ``None`` at EOF.

    Any other output of the user's code, JSON or not, is skipped.
    """

    while True:
        raw = await stdout.readline()
        if not raw:
            return None
        line = raw.decode("utf-8", "replace").strip()
        if not line.startswith("{"):
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict) and ("triggers" in payload or "error" in payload):
            return payload


async def _stop(process: asyncio.subprocess.Process, stderr_task: asyncio.Future[bytes]) -> None:
    """Kill *process* if it is still running and reap it along with its stderr reader."""

    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
    if not stderr_task.done():
        stderr_task.cancel()
    await asyncio.gather(stderr_task, return_exceptions=True)


def build_parser_env(
    base_env: Mapping[str, str],
    project_id: str,
    config_values: Mapping[str, Any],
    envs: Mapping[str, str],
) -> dict[str, str]:
    """Return the environment handed to the trigger parser.

    Examples
    --------
    >>> env = build_parser_env({"NODE_OPTIONS": "--inspect=9229 --max-old-space-size=512"}, "demo", {}, {"A": "1"})
    >>> env["GCLOUD_PROJECT"], env["A"], env["NODE_OPTIONS"], "CLOUD_RUNTIME_CONFIG" in env
    ('demo', '1', '--max-old-space-size=512', False)
    """

    env = dict(base_env)
    env.update(envs)
    env["GCLOUD_PROJECT"] = project_id
    if config_values:
        env["CLOUD_RUNTIME_CONFIG"] = json.dumps(config_values)
    if env.get("NODE_OPTIONS"):
        env["NODE_OPTIONS"] = " ".join(remove_inspect_options(env["NODE_OPTIONS"].split(" ")))
    return env


def remove_inspect_options(options: Sequence[str]) -> list[str]:
    """Drop ``--inspect``/``--inspect-brk`` flags so the child does not grab the debugger port."""

    return [option for option in options if not option.startswith("--inspect")]
