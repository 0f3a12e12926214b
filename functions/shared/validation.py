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

import re

from shared.constants import MAX_CHAT_MESSAGE_LENGTH, MIN_CHAT_MESSAGE_LENGTH

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
STRONG_PASSWORD_PATTERN = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$"
)
SUSPICIOUS_CHAT_PATTERNS = (
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+=", re.IGNORECASE),
)


def is_valid_email(email: str | None) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(email))


def is_strong_password(password: str | None) -> bool:
    """At least 8 characters with upper, lower, digit and one of @$!%*?&."""
    return bool(password) and bool(STRONG_PASSWORD_PATTERN.match(password))


def password_strength_feedback(password: str | None) -> str:
    if not password:
        return "Password is required"
    if len(password) < 8:
        return "Password must be at least 8 characters"
    if not re.search(r"[A-Z]", password):
        return "Password must include an uppercase letter"
    if not re.search(r"[a-z]", password):
        return "Password must include a lowercase letter"
    if not re.search(r"\d", password):
        return "Password must include a number"
    if not re.search(r"[@$!%*?&]", password):
        return "Password must include a special character"
    if not STRONG_PASSWORD_PATTERN.match(password):
        return "Password may only contain letters, numbers and @$!%*?&"
    return "Password is strong"


def is_valid_chat_message(
    message: str | None, max_length: int = MAX_CHAT_MESSAGE_LENGTH
) -> bool:
    if not message or len(message.strip()) < MIN_CHAT_MESSAGE_LENGTH:
        return False
    if len(message) > max_length:
        return False
    return not any(pattern.search(message) for pattern in SUSPICIOUS_CHAT_PATTERNS)


def validate_chat_message(
    message: str | None, max_length: int = MAX_CHAT_MESSAGE_LENGTH
) -> str | None:
    """Returns the trimmed message, or None if it must be rejected."""
    if not is_valid_chat_message(message, max_length):
        return None
    return message.strip()
