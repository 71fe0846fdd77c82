"""Configuration — Pydantic models for agentdeck settings."""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class InteractiveConfig(BaseModel):
    """Interactive (attached) mode settings.

    Key names use Textual's key naming (``ctrl+backslash``, ``alt+v``).
    """

    exit_key: str = Field(
        default="ctrl+backslash", description="Leave interactive mode"
    )
    attach_key: str = Field(
        default="ctrl+right_square_bracket",
        description="Leave interactive mode and attach the real terminal",
    )
    copy_key: str = Field(default="alt+c", description="Copy the visible output")
    paste_key: str = Field(default="alt+v", description="Paste the system clipboard")
    scrollback_lines: int = Field(
        default=600, gt=0, description="Lines of history captured per poll"
    )


class TerminalConfig(BaseModel):
    """Terminal backend settings."""

    history_limit: int = Field(
        default=10_000, gt=0, description="Scrollback kept by each session"
    )
    session_prefix: str = Field(
        default="deck-", description="Prefix of sessions shown in the dashboard"
    )
    default_shell: str | None = Field(
        default=None, description="Shell for new sessions (defaults to $SHELL)"
    )
    cols: int = Field(default=80, gt=0, description="Initial pty width")
    rows: int = Field(default=25, gt=0, description="Initial pty height")


class DeckConfig(BaseModel):
    """Top-level agentdeck configuration."""

    interactive: InteractiveConfig = Field(default_factory=InteractiveConfig)
    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    work_dir: str = Field(
        default=".", description="Working directory for new sessions"
    )

    @classmethod
    def load(cls, config_path: str | None = None) -> DeckConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            AGENTDECK_SCROLLBACK       - Lines captured per poll in interactive mode
            AGENTDECK_HISTORY_LIMIT    - Scrollback kept by each session
            AGENTDECK_SESSION_PREFIX   - Prefix of dashboard sessions
            AGENTDECK_SHELL            - Shell for new sessions
        """
        load_dotenv(override=True)

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        interactive = config_data.get("interactive", {})
        terminal = config_data.get("terminal", {})

        env_scrollback = os.environ.get("AGENTDECK_SCROLLBACK")
        if env_scrollback:
            interactive["scrollback_lines"] = int(env_scrollback)

        env_history = os.environ.get("AGENTDECK_HISTORY_LIMIT")
        if env_history:
            terminal["history_limit"] = int(env_history)

        env_prefix = os.environ.get("AGENTDECK_SESSION_PREFIX")
        if env_prefix:
            terminal["session_prefix"] = env_prefix

        env_shell = os.environ.get("AGENTDECK_SHELL")
        if env_shell:
            terminal["default_shell"] = env_shell

        if interactive:
            config_data["interactive"] = interactive
        if terminal:
            config_data["terminal"] = terminal

        return cls.model_validate(config_data)
