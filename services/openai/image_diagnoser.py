"""Description: Ghibli contamination diagnosis using OpenAI's Responses API."""

import logging
import time
from typing import Any, Dict, List

from openai import AsyncOpenAI

from services.openai.detox_prompts import build_system_prompt, build_user_prompt
from services.openai.detox_schema import DIAGNOSIS_FUNCTION, DIAGNOSIS_FUNCTION_NAME
from services.openai.diagnosis_result import DiagnosisResult, parse_diagnosis
from services.openai.media_inputs import build_inputs, to_image_data_url
from services.openai.response_parser import extract_usage, parse_function_arguments

logger = logging.getLogger(__name__)


class ImageDiagnoser:
    """Ask a vision model for a comedic diagnosis of an image."""

    def __init__(self, client: AsyncOpenAI, model: str = "gpt-4o", max_output_tokens: int = 800) -> None:
        """Initialize the diagnoser with an OpenAI async client."""
        if client is None:
            raise ValueError("OpenAI client must be provided.")
        self.client = client
        self.model = model
        self.max_output_tokens = max_output_tokens
        self.system_prompt = build_system_prompt()

    async def diagnose(self, image_bytes: bytes, mime_type: str) -> DiagnosisResult:
        """Return the decoded diagnosis for raw image bytes."""
        start_time = time.time()
        inputs = build_inputs(
            self.system_prompt,
            build_user_prompt(),
            image_url=to_image_data_url(image_bytes, mime_type),
        )
        response = await self._create_response(inputs)
        arguments = parse_function_arguments(response, tool_name=DIAGNOSIS_FUNCTION_NAME)
        result = parse_diagnosis(arguments)

        usage = extract_usage(response)
        logger.info(
            "Diagnosis complete in %.2fs (level=%d, points=%d, input_tokens=%s, output_tokens=%s)",
            time.time() - start_time,
            result.contamination_level,
            len(result.diagnosis_points),
            usage["input_tokens"],
            usage["output_tokens"],
        )
        return result

    async def _create_response(self, inputs: List[Dict[str, Any]]) -> Any:
        """Send the multimodal request to the OpenAI Responses API."""
        try:
            return await self.client.responses.create(
                model=self.model,
                input=inputs,
                tools=[DIAGNOSIS_FUNCTION],
                tool_choice={"type": "function", "name": DIAGNOSIS_FUNCTION_NAME},
                max_output_tokens=self.max_output_tokens,
            )
        except Exception as exc:
            logger.error("Error during OpenAI Responses API call: %s", exc)
            raise
