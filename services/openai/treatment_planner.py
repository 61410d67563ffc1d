"""Treatment plan generation for the second phase."""

import logging
from typing import List, Sequence

from openai import AsyncOpenAI

from services.openai.detox_prompts import build_treatment_system_prompt, build_treatment_user_prompt
from services.openai.detox_schema import TREATMENT_FUNCTION, TREATMENT_FUNCTION_NAME
from services.openai.diagnosis_result import parse_treatment
from services.openai.media_inputs import text_message
from services.openai.response_parser import parse_function_arguments

logger = logging.getLogger(__name__)

# Used when the model returns no usable treatment lines.
FALLBACK_TREATMENT_POINTS = [
    "Immediate removal of all soot sprites from the premises.",
    "Daily exposure to fluorescent office lighting and beige walls.",
    "Strict abstinence from whimsical skies until further notice.",
]


class TreatmentPlanner:
    def __init__(self, client: AsyncOpenAI, model: str = "gpt-4o-mini") -> None:
        if client is None:
            raise ValueError("OpenAI client must be provided.")
        self.client = client
        self.model = model

    async def plan(self, diagnosis_points: Sequence[str], contamination_level: int) -> List[str]:
        """Return treatment points for a diagnosis, falling back to a stock plan."""
        try:
            response = await self.client.responses.create(
                model=self.model,
                input=[
                    text_message("system", build_treatment_system_prompt()),
                    text_message("user", build_treatment_user_prompt(diagnosis_points, contamination_level)),
                ],
                tools=[TREATMENT_FUNCTION],
                tool_choice={"type": "function", "name": TREATMENT_FUNCTION_NAME},
            )
        except Exception as exc:
            logger.error("Error during OpenAI treatment call: %s", exc)
            raise

        plan = parse_treatment(parse_function_arguments(response, tool_name=TREATMENT_FUNCTION_NAME))
        if not plan.treatment_points:
            logger.warning("Treatment call returned no points; using the stock plan")
            return list(FALLBACK_TREATMENT_POINTS)
        return plan.treatment_points
