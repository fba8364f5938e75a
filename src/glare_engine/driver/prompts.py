"""
Prompt templates for the glare edit.

The wording is part of the contract with the remote application: it restricts
the edit to the glare on the glasses. Do not rephrase.
"""

PROMPT_WITH_REFERENCE = (
    "Edit the first image to remove the glare from the glasses. "
    "Use the second image as reference for the eyes. "
    "Keep everything else exactly the same."
)

PROMPT_WITHOUT_REFERENCE = (
    "Edit this image to remove the glare from the glasses. Keep everything else exactly the same."
)


def select_prompt(with_reference: bool) -> str:
    return PROMPT_WITH_REFERENCE if with_reference else PROMPT_WITHOUT_REFERENCE
