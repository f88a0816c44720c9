"""Troubleshooting guidance surfaced alongside SDK integration failures."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from yuugen.errors import ErrorCode


@dataclass(frozen=True)
class Guidance:
    description: str
    solution: str
    documentation: Optional[str] = None


DEFAULT_GUIDANCE = Guidance(
    description="The SDK reported an integration problem without specific guidance",
    solution="Check the SDK configuration and the error details, then consult the troubleshooting guide.",
    documentation="https://docs.ai-yuugen.com/troubleshooting",
)

GUIDANCE: Mapping[str, Guidance] = MappingProxyType(
    {
        ErrorCode.INIT_FAILED: Guidance(
            description="SDK initialization failed due to invalid configuration",
            solution=(
                "Check your API key and configuration parameters. "
                "Ensure all required fields are provided."
            ),
            documentation="https://docs.ai-yuugen.com/getting-started/initialization",
        ),
        ErrorCode.NOT_INITIALIZED: Guidance(
            description="An SDK operation was called before initialization completed",
            solution="Await initialize() and only request ads once it has resolved.",
            documentation="https://docs.ai-yuugen.com/getting-started/initialization",
        ),
        ErrorCode.SDK_DESTROYED: Guidance(
            description="An SDK operation was called after destroy()",
            solution="Create a new SDK instance instead of reusing a destroyed one.",
            documentation="https://docs.ai-yuugen.com/getting-started/lifecycle",
        ),
        ErrorCode.INVALID_API_KEY: Guidance(
            description="The provided API key is invalid or expired",
            solution=(
                "Verify your API key in the developer portal and ensure it has "
                "the correct permissions."
            ),
            documentation="https://docs.ai-yuugen.com/authentication/api-keys",
        ),
        ErrorCode.INSUFFICIENT_PERMISSIONS: Guidance(
            description="The API key does not have sufficient permissions for this environment",
            solution="Grant the key access to the target environment in the developer portal.",
            documentation="https://docs.ai-yuugen.com/authentication/permissions",
        ),
        ErrorCode.PLACEMENT_NOT_FOUND: Guidance(
            description="The specified ad placement ID was not found",
            solution=(
                "Check your placement configuration in the developer portal "
                "and ensure the ID is correct."
            ),
            documentation="https://docs.ai-yuugen.com/ad-placements/configuration",
        ),
    }
)


def get_guidance(code: str) -> Guidance:
    """Return guidance for ``code``, falling back to the generic entry."""
    return GUIDANCE.get(code, DEFAULT_GUIDANCE)


def format_guidance(code: str, category: str) -> str:
    guidance = get_guidance(code)
    lines = [
        "Troubleshooting guidance",
        f"  Error code:  {code}",
        f"  Category:    {category}",
        f"  Description: {guidance.description}",
        f"  Solution:    {guidance.solution}",
    ]
    if guidance.documentation:
        lines.append(f"  Docs:        {guidance.documentation}")
    return "\n".join(lines)
