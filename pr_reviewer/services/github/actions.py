"""GitHub Actions runtime helpers: event payload, outputs and workflow commands."""

import json
import os
import uuid
from pathlib import Path
from typing import Any

import structlog

from pr_reviewer.core.config import Settings
from pr_reviewer.core.exceptions import ConfigurationError
from pr_reviewer.services.github.models import PRContext

logger = structlog.get_logger()


def load_event() -> dict[str, Any]:
    """Read the webhook payload that triggered the workflow."""
    event_path = os.environ.get("GITHUB_EVENT_PATH")
    if not event_path or not Path(event_path).exists():
        return {}
    with open(event_path, encoding="utf-8") as f:
        data: dict[str, Any] = json.load(f)
    return data


def get_repository() -> tuple[str, str]:
    full_name = os.environ.get("GITHUB_REPOSITORY", "")
    if "/" not in full_name:
        raise ConfigurationError("GITHUB_REPOSITORY is not set or malformed")
    owner, repo = full_name.split("/", 1)
    return owner, repo


def extract_pr_context(settings: Settings) -> PRContext:
    """
    Work out which pull request this run reviews.

    Manual runs (``workflow_dispatch`` or an explicit ``pr_number`` input)
    take the PR number from the input; the head SHA is refreshed from the
    PR later. Otherwise the event must be a pull request event.

    Raises:
        ConfigurationError: If no pull request can be determined.
    """
    owner, repo = get_repository()
    event_name = os.environ.get("GITHUB_EVENT_NAME", "")

    if event_name == "workflow_dispatch" or settings.pr_number:
        if not settings.pr_number:
            raise ConfigurationError(
                "PR number is required when running manually. "
                "Use workflow_dispatch with pr_number input."
            )
        return PRContext(
            owner=owner,
            repo=repo,
            pull_number=settings.pr_number,
            sha=os.environ.get("GITHUB_SHA", ""),
        )

    pull_request = load_event().get("pull_request")
    if not pull_request:
        raise ConfigurationError(
            "This action can only be run on pull request events "
            "or manual workflow dispatch with pr_number"
        )

    return PRContext(
        owner=owner,
        repo=repo,
        pull_number=pull_request["number"],
        sha=pull_request["head"]["sha"],
        base_sha=pull_request["base"]["sha"],
    )


def get_workspace() -> Path:
    return Path(os.environ.get("GITHUB_WORKSPACE") or os.getcwd())


def set_output(name: str, value: str) -> None:
    """Write a step output, using heredoc syntax for multi-line values."""
    output_file = os.environ.get("GITHUB_OUTPUT")
    if not output_file:
        logger.debug("GITHUB_OUTPUT not set, skipping output", name=name)
        return
    with open(output_file, "a", encoding="utf-8") as f:
        if "\n" in value:
            delimiter = f"ghadelimiter_{uuid.uuid4()}"
            f.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")
        else:
            f.write(f"{name}={value}\n")


def write_step_summary(markdown: str) -> bool:
    """Append markdown to the job summary page."""
    summary_path = os.environ.get("GITHUB_STEP_SUMMARY")
    if not summary_path:
        logger.debug("GITHUB_STEP_SUMMARY not set, skipping job summary")
        return False
    try:
        with open(summary_path, "a", encoding="utf-8") as f:
            f.write(markdown)
        return True
    except OSError as e:
        logger.warning("Failed to write job summary", error=str(e))
        return False


def _escape_data(message: str) -> str:
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def warning(message: str) -> None:
    """Emit a ``::warning::`` annotation."""
    print(f"::warning::{_escape_data(message)}", flush=True)


def set_failed(message: str) -> int:
    """Emit a ``::error::`` annotation and return the failing exit code."""
    print(f"::error::{_escape_data(message)}", flush=True)
    return 1
