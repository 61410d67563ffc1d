"""Prompt builders for the Ghibli detox clinic."""

from typing import Sequence

GENERATION_INSTRUCTION = (
    "Create a realistic photographic image that represents what this scene would look like "
    "in real life, completely free of any Studio Ghibli or anime aesthetics."
)


def build_system_prompt() -> str:
    """Return the system prompt for the diagnosis call."""
    return (
        "You're an AI physician at the Ghibli Detox Clinic. Analyze the provided image to detect "
        "Ghibli-style elements (like Totoro, soot sprites, whimsical landscapes, magical creatures, "
        "fantasy elements, etc.). Respond with 3 diagnosis points, 3 treatment points, a scene "
        "description with an entirely accurate description of the scene - make this description "
        "pixel perfect, add every detail in every inch since this will be used to recreate a version "
        "of this image, and a contamination level from 1-100."
    )


def build_user_prompt() -> str:
    return (
        "Analyze this image and provide a humorous medical diagnosis of its Ghibli-style contamination. "
        "Be creative and funny while providing specific details about what Ghibli elements you detect."
    )


def build_generation_prompt(description: str) -> str:
    """Return the exact prompt sent to the image model for a scene description."""
    return f"Scene: {description.strip()} \n{GENERATION_INSTRUCTION}"


def description_from_prompt(prompt: str) -> str:
    """Recover the scene description from a prompt built by `build_generation_prompt`.

    Prompts that do not follow that shape are returned stripped, unchanged.
    """
    text = prompt.strip()
    if text.endswith(GENERATION_INSTRUCTION):
        text = text[: -len(GENERATION_INSTRUCTION)].rstrip()
    if text.startswith("Scene:"):
        text = text[len("Scene:"):].strip()
    return text


def build_treatment_system_prompt() -> str:
    return (
        "You're the attending physician at the Ghibli Detox Clinic. Given a patient's diagnosis, "
        "prescribe exactly 3 short, humorous treatment points that return the image to boring, "
        "photographic reality."
    )


def build_treatment_user_prompt(diagnosis_points: Sequence[str], contamination_level: int) -> str:
    """Summarize the diagnosis for the treatment call."""
    if diagnosis_points:
        findings = "\n".join(f"- {point}" for point in diagnosis_points)
    else:
        findings = "- No specific findings recorded."
    return (
        f"Contamination level: {contamination_level}/100\n"
        f"Diagnosis:\n{findings}\n"
        "Prescribe the treatment plan."
    )
