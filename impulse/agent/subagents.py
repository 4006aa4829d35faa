"""Subagent kinds: the tools each may call and the prompt it starts from."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

EXPLORE_PROMPT = """You are a fast, read-only exploration agent.

Search and read the codebase to answer the request. You cannot modify
files or run commands. Use glob to find files, grep to search contents
and file_read to inspect them. Finish with a concise answer that cites
file paths and line numbers where relevant."""

GENERAL_PROMPT = """You are a general-purpose agent working on a scoped task.

You may read, create and edit files and run shell commands. Keep changes
minimal and focused on the task. When you are done, reply with a short
summary of what you changed and anything left unresolved."""


@dataclass(frozen=True)
class SubagentProfile:
    name: str
    description: str
    tools: Tuple[str, ...]
    prompt: str


EXPLORE = SubagentProfile(
    name="explore",
    description="Fast agent for codebase search and analysis with read-only tools",
    tools=("file_read", "glob", "grep"),
    prompt=EXPLORE_PROMPT,
)

GENERAL = SubagentProfile(
    name="general",
    description="General-purpose agent for complex multi-step tasks",
    tools=("file_read", "file_write", "file_edit", "bash"),
    prompt=GENERAL_PROMPT,
)

SUBAGENTS: Dict[str, SubagentProfile] = {p.name: p for p in (EXPLORE, GENERAL)}


def get_profile(kind: str) -> Optional[SubagentProfile]:
    return SUBAGENTS.get(kind)


def subagent_kinds() -> List[str]:
    return list(SUBAGENTS)
