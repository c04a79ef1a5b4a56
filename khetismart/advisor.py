"""Uncached assistant calls: free-form advice, crop guides and crop-health photos."""

import logging
from typing import Optional

from google.genai import types

from khetismart.llm_utils import GeminiGenerator, TextGenerator
from khetismart.prompts import CROP_HEALTH_PROMPT, SYSTEM_MSG_ADVISOR, guide_prompt
from khetismart.results import TransportError

logger = logging.getLogger(__name__)

ADVICE_EMPTY = "Sorry, I couldn't generate advice at this moment."
ADVICE_FAILED = "An error occurred while connecting to the farming database."
GUIDE_EMPTY = "माफ गर्नुहोस्, जानकारी उपलब्ध हुन सकेन।"
GUIDE_FAILED = "प्राविधिक समस्याको कारण जानकारी लोड गर्न सकिएन। कृपया पुनः प्रयास गर्नुहोस्।"
ANALYSIS_EMPTY = "Could not analyze the image."
ANALYSIS_FAILED = "Failed to analyze the image. Please try again."


class FarmingAdvisor:
    def __init__(self, generator: Optional[TextGenerator] = None) -> None:
        self.generator = generator or GeminiGenerator()

    async def advice(self, question: str) -> str:
        try:
            result = await self.generator.generate_async(
                question, system_instruction=SYSTEM_MSG_ADVISOR
            )
        except TransportError as exc:
            logger.error("Error fetching advice: %s", exc)
            return ADVICE_FAILED
        return result.text or ADVICE_EMPTY

    async def guide(self, crop_name: str) -> str:
        """Step-by-step growing guide for ``crop_name``, written in Nepali."""
        try:
            result = await self.generator.generate_async(guide_prompt(crop_name))
        except TransportError as exc:
            logger.error("Error generating farming guide: %s", exc)
            return GUIDE_FAILED
        return result.text or GUIDE_EMPTY

    async def analyze_crop_health(self, image: bytes, mime_type: str = "image/jpeg") -> str:
        contents = [
            types.Part.from_bytes(data=image, mime_type=mime_type),
            CROP_HEALTH_PROMPT,
        ]
        try:
            result = await self.generator.generate_async(contents)
        except TransportError as exc:
            logger.error("Error analyzing crop: %s", exc)
            return ANALYSIS_FAILED
        return result.text or ANALYSIS_EMPTY
