"""Prompt construction helpers for the image rendering step."""

from __future__ import annotations

STYLE_DIRECTIVE = (
    "Create a rebus puzzle image with the following specifications:\n"
    "- Background: pure black (#000000)\n"
    "- All visual elements: white (#FFFFFF) or light colors that contrast well with black\n"
    "- Content: show ONLY the rebus puzzle visual elements\n"
    "- DO NOT include any hints, answers, captions or text explanations in the image\n"
    "- The image should be clean and clear, focusing solely on the puzzle elements"
)

STYLE_FOOTER = (
    "Style: modern, clean, minimalist rebus puzzle design with black background "
    "and white or light colored elements."
)


def build_render_prompt(description: str) -> str:
    """Wrap a puzzle description with the fixed visual style directive."""

    return "\n\n".join(
        [
            STYLE_DIRECTIVE,
            f"Rebus puzzle description: {description.strip()}",
            STYLE_FOOTER,
        ]
    )
