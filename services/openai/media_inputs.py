"""Utilities to build multimodal input payloads for the Responses API."""

import base64
from typing import Any, Dict, List


def to_image_data_url(image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
    """Convert raw image bytes into a data URL suitable for vision input."""
    if not image_bytes:
        raise ValueError("Image bytes are required.")
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def text_message(role: str, text: str) -> Dict[str, Any]:
    return {"type": "message", "role": role, "content": [{"type": "input_text", "text": text}]}


def build_inputs(system_prompt: str, user_prompt: str, *, image_url: str) -> List[Dict[str, Any]]:
    """Build the Responses API input array: system text, user text, then the image."""
    return [
        text_message("system", system_prompt),
        text_message("user", user_prompt),
        {"type": "message", "role": "user", "content": [{"type": "input_image", "image_url": image_url}]},
    ]
