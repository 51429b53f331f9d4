from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

import requests

from timetable_config import RecognizerSettings
from timetable_errors import RecognizerError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert at parsing timetable images. Extract ALL class periods with their subject names, "
    "days of week, start times, end times, locations (if visible), and teachers (if visible). Be thorough and "
    "capture every single period visible in the timetable. Pay special attention to abbreviations and match "
    "them with full subject names when provided. Pay attention to any additional context provided by the user "
    "about time formats, special notations, or conventions used in the timetable. Return the data as a JSON "
    "array with ALL periods found."
)

USER_PROMPT = (
    "Please analyze this timetable image and extract ALL periods visible in the image. For each period, provide: "
    "subject name, day_of_week (0=Sunday, 1=Monday, etc.), start_time (HH:MM format), end_time (HH:MM format), "
    "location (if visible), and teacher (if visible). Return as JSON array with format: "
    '[{"subject": "...", "day_of_week": 1, "start_time": "09:00", "end_time": "10:00", "location": "...", '
    '"teacher": "..."}]. If you cannot determine a field, omit it or use null.'
)

EXISTING_SUBJECTS_HINT = (
    "\n\nIMPORTANT: The user already has these subjects in their system: {names}. When you see subject names or "
    "abbreviations in the timetable, try to match them to these existing subjects. For example:\n"
    '- "CN" could be "Computer Networks"\n'
    '- "SE" could be "Software Engineering"\n'
    '- "Predictive Analytics" and "Predictive Analysis" are the same subject\n'
    "Use the EXACT subject name from this list when there's a clear match. Only create a new subject name if it "
    "doesn't match any existing subject."
)

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


def build_user_prompt(additional_context: Optional[str], existing_subject_names: Sequence[str]) -> str:
    prompt = USER_PROMPT
    names = [n for n in existing_subject_names if n]
    if names:
        prompt += EXISTING_SUBJECTS_HINT.format(names=", ".join(names))
    if additional_context and additional_context.strip():
        prompt += f"\n\nAdditional context about this timetable: {additional_context.strip()}"
    return prompt


def extract_periods(reply: str) -> List[Dict[str, Any]]:
    """Pull the JSON array of periods out of a model reply. Anything that is not a list means nothing found."""
    match = _JSON_ARRAY.search(reply or "")
    try:
        parsed = json.loads(match.group(0) if match else reply)
    except (TypeError, ValueError) as e:
        raise RecognizerError(
            "Could not parse timetable. Please ensure the image is clear and contains a visible timetable."
        ) from e
    if not isinstance(parsed, list):
        return []
    return [p for p in parsed if isinstance(p, dict)]


class TimetableRecognizer:
    """
    Client for an OpenAI-compatible chat-completions endpoint with image input.

    One request per call, no retries: the caller sees a single pass/fail.
    """

    def __init__(self, settings: RecognizerSettings, session: Optional[requests.Session] = None) -> None:
        self.settings = settings
        self.session = session or requests.Session()

    def recognize(
        self,
        image_base64: str,
        *,
        additional_context: Optional[str] = None,
        existing_subject_names: Sequence[str] = (),
        mime_type: str = "image/jpeg",
    ) -> List[Dict[str, Any]]:
        if not image_base64:
            raise RecognizerError("No image provided")
        if not self.settings.api_key:
            raise RecognizerError("GROQ_API_KEY is not configured")

        body = {
            "model": self.settings.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_user_prompt(additional_context, existing_subject_names)},
                        {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{image_base64}"}},
                    ],
                },
            ],
            "temperature": self.settings.temperature,
        }
        headers = {"Authorization": f"Bearer {self.settings.api_key}", "Content-Type": "application/json"}

        logger.info("sending timetable image to %s (%s)", self.settings.url, self.settings.model)
        try:
            response = self.session.post(self.settings.url, headers=headers, json=body, timeout=self.settings.timeout_s)
        except requests.RequestException as e:
            raise RecognizerError(f"recognizer request failed: {e}") from e

        if response.status_code == 429:
            raise RecognizerError("Rate limit exceeded. Please try again later.", status_code=429)
        if response.status_code == 402:
            raise RecognizerError("AI credits exhausted. Please add credits to continue.", status_code=402)
        if not response.ok:
            logger.error("recognizer error %s: %s", response.status_code, response.text)
            raise RecognizerError(f"AI API error: {response.status_code}", status_code=response.status_code)

        try:
            reply = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise RecognizerError("unexpected recognizer response shape") from e
        logger.debug("recognizer reply: %s", reply)

        periods = extract_periods(reply)
        logger.info("recognizer extracted %d periods", len(periods))
        return periods
