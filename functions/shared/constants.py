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

DAY_MS = 24 * 60 * 60 * 1000
MINUTE_MS = 60 * 1000

DEFAULT_CURRENCY = "INR"

# Chat
MIN_CHAT_MESSAGE_LENGTH = 2
MAX_CHAT_MESSAGE_LENGTH = 1000
CHAT_TITLE_MAX_LENGTH = 50
CHAT_TITLE_MESSAGE_THRESHOLD = 4
DEFAULT_CHAT_TITLE = "New Conversation"
CHARS_PER_TOKEN = 4
MAX_ESTIMATED_OUTPUT_TOKENS = 1000

# Notifications
NOTIFICATION_PAGE_SIZE = 50
TOAST_PREVIEW_LENGTH = 50
APPOINTMENT_HISTORY_URL = "/dashboard/history"

# Appointments
MAX_NOTES_LENGTH = 1000
MAX_CANCELLATION_REASON_LENGTH = 500
APPOINTMENT_RESET_DAYS = 30
REMINDER_WINDOW_MS = DAY_MS
MEETING_LINK_PREFIX = "https://meet.google.com/abc-"
REMOVED_APPOINTMENT_REASON = "Appointment was removed from the system"

# Admin dashboard
RECENT_ITEMS_COUNT = 5

# Secure API proxy
ALLOWED_PROXY_ENDPOINTS = ("openai", "calendar", "notifications")
