# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import logging
import random
from typing import List, Optional

from google import genai
from google.genai import types

from shared.types import ChatMessage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
REPLY_MAX_OUTPUT_TOKENS = 1000
# Earlier turns sent along with a new message.
HISTORY_MESSAGES = 10

SYSTEM_INSTRUCTION = (
    "You are a careful health consultation assistant. Answer in plain language, "
    "keep replies short, never give a diagnosis, and recommend booking an "
    "expert consultation when symptoms are serious or persistent."
)

# Replies used when no API key is configured.
CANNED_RESPONSES = (
    "I understand your concern. Based on the symptoms you've described, it appears that you might be experiencing stress and anxiety, which can manifest in various physical ways. It might be beneficial to take some time to relax, practice mindfulness, and consider consulting a professional for further guidance.",
    "That's a great question! Maintaining a balanced diet and regular exercise routine is essential for overall health. Consider incorporating more fruits, vegetables, and lean proteins into your meals, and aim to engage in physical activity for at least 30 minutes each day to improve your well-being.",
    "Based on current medical guidelines, it is advisable to get this checked by a specialist, especially if your symptoms persist or worsen. Early intervention can lead to better outcomes, and a specialist will be able to provide you with a more personalized treatment plan to address your concerns.",
    "I'm here to help! Could you please provide more details about your symptoms so I can better understand your situation? The more information you share, the more accurately I can suggest steps or recommend professional advice tailored to your needs.",
    "From what you've shared, it seems like a common condition that can often be managed effectively with proper care and lifestyle adjustments. However, it might be beneficial to monitor your symptoms closely and consult with a healthcare professional for a comprehensive evaluation and advice, ensuring you receive the most appropriate care.",
)


class GeminiInvalidResponseException(Exception):
    pass


def _to_contents(message: str, history: List[ChatMessage]) -> list:
    contents = []
    for previous in history[-HISTORY_MESSAGES:]:
        if not previous.text:
            continue
        role = "user" if previous.sender == "user" else "model"
        contents.append(
            types.Content(role=role, parts=[types.Part.from_text(text=previous.text)])
        )
    contents.append(
        types.Content(role="user", parts=[types.Part.from_text(text=message)])
    )
    return contents


def call_predict(
    message: str,
    history: Optional[List[ChatMessage]] = None,
    model: str = DEFAULT_MODEL,
    api_key: Optional[str] = None,
) -> str:
    """Asks Gemini for the assistant's reply to `message`."""
    client = genai.Client(api_key=api_key)
    response = client.models.generate_content(
        model=model,
        contents=_to_contents(message, history or []),
        config=types.GenerateContentConfig(
            system_instruction=SYSTEM_INSTRUCTION,
            temperature=0.4,
            max_output_tokens=REPLY_MAX_OUTPUT_TOKENS,
        ),
    )
    if not response.text:
        raise GeminiInvalidResponseException()
    return response.text


def canned_reply(message: str, history: Optional[List[ChatMessage]] = None) -> str:
    return random.choice(CANNED_RESPONSES)


class ConsultationResponder:
    """Produces assistant replies, from Gemini when an API key is set."""

    def __init__(self, api_key: Optional[str] = None, model: str = DEFAULT_MODEL):
        self.api_key = api_key
        self.model = model

    def __call__(self, message: str, history: List[ChatMessage]) -> str:
        if not self.api_key:
            return canned_reply(message, history)
        return call_predict(message, history, model=self.model, api_key=self.api_key)
