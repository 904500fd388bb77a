"""Shared cross-compilation environment for every stage command.

All stages inherit the same size-tuned compiler and linker flags, the
dependency prefix (so later stages find earlier stages' headers) and the
runtime library path of the install root.
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from dappforge.models.config import DEFAULT_CFLAGS, PipelineConfig

# Variables that accumulate flags; action overrides are appended, not replaced.
FLAG_VARIABLES: frozenset[str] = frozenset(
    {"CFLAGS", "CXXFLAGS", "CPPFLAGS", "LDFLAGS"}
)


def _join(*parts: str) -> str:
    return " ".join(p for part in parts for p in part.split())


def build_environment(
    config: PipelineConfig, base: Mapping[str, str] | None = None
) -> dict[str, str]:
    """Return the environment every stage command runs with.

    *base* defaults to the current process environment; flags already set
    there are kept in front of the pipeline's own.
    """
    env = dict(os.environ if base is None else base)
    lib_dir = config.dest / "lib"

    cflags = _join(env.get("CFLAGS", ""), " ".join(DEFAULT_CFLAGS), config.cflags)
    env["CFLAGS"] = cflags
    env["CXXFLAGS"] = _join(env.get("CXXFLAGS", ""), cflags, config.cxxflags)
    env["CPPFLAGS"] = _join(f"-I{config.deps_prefix / 'include'}", "-DNDEBUG")
    env["LDFLAGS"] = _join(
        env.get("LDFLAGS", ""),
        f"-Wl,-rpath,{lib_dir}",
        f"-L{lib_dir}",
        "-Wl,--gc-sections",
        "-Wl,--as-needed",
        config.ldflags,
    )

    env["DEST"] = str(config.dest)
    env["DEPS"] = str(config.deps_prefix)
    if config.host:
        env["HOST"] = config.host
    if config.toolchain_bin:
        env["PATH"] = os.pathsep.join(
            p for p in (str(config.toolchain_bin), env.get("PATH", "")) if p
        )
    return env


def merge_action_env(
    env: Mapping[str, str], overrides: Mapping[str, str]
) -> dict[str, str]:
    """Layer an action's own variables over the shared environment."""
    merged = dict(env)
    for key, value in overrides.items():
        if key in FLAG_VARIABLES and merged.get(key):
            merged[key] = _join(merged[key], value)
        else:
            merged[key] = value
    return merged


def make(config: PipelineConfig, *targets: str, jobs: int | None = None) -> list[str]:
    """``make -jN [targets]`` honouring the configured parallelism."""
    return ["make", f"-j{jobs or config.make_jobs}", *targets]
