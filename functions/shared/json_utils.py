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
import time
from dataclasses import asdict, fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Type, TypeVar

from dacite import Config, from_dict

T = TypeVar("T")

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")

DACITE_CONFIG = Config(check_types=False, cast=[Enum])


def _camel_to_snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def _snake_to_camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def convert_keys(obj: Any, direction: str) -> Any:
    """
    Recursively converts dictionary keys between camelCase and snake_case.

    Args:
        obj: A dict, list or scalar value.
        direction: Either "camel_to_snake" or "snake_to_camel".
    """
    if direction == "camel_to_snake":
        convert = _camel_to_snake
    elif direction == "snake_to_camel":
        convert = _snake_to_camel
    else:
        raise ValueError(f"Unknown direction: {direction}")

    def _convert(value):
        if isinstance(value, dict):
            return {
                convert(k) if isinstance(k, str) else k: _convert(v)
                for k, v in value.items()
            }
        if isinstance(value, list):
            return [_convert(v) for v in value]
        return value

    return _convert(obj)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def to_document(obj: Any, exclude: tuple[str, ...] = ("id",)) -> dict:
    """Serializes a dataclass into a camelCase Firestore document."""
    data = _plain(asdict(obj))
    for key in exclude:
        data.pop(key, None)
    # Dictionaries keyed by data (e.g. availability dates) keep their keys.
    result = {}
    for key, value in data.items():
        camel_key = _snake_to_camel(key)
        if isinstance(value, dict) and key in ("availability", "counts"):
            result[camel_key] = value
        else:
            result[camel_key] = convert_keys(value, "snake_to_camel")
    return result


def from_document(data_class: Type[T], data: dict, doc_id: str | None = None) -> T:
    """Builds a dataclass from a camelCase Firestore document."""
    snake = {}
    for key, value in (data or {}).items():
        snake_key = _camel_to_snake(key)
        if isinstance(value, dict) and snake_key in ("availability", "counts"):
            snake[snake_key] = value
        else:
            snake[snake_key] = convert_keys(value, "camel_to_snake")
    if doc_id is not None and is_dataclass(data_class):
        field_names = {f.name for f in fields(data_class)}
        for id_field in ("id", "uid"):
            if id_field in field_names:
                snake.setdefault(id_field, doc_id)
                break
    return from_dict(data_class=data_class, data=snake, config=DACITE_CONFIG)


def now_millis() -> int:
    return int(time.time() * 1000)


def timestamp_millis(value: Any, default: int | None = None) -> int:
    """
    Normalizes the timestamp shapes found in documents to epoch millis.

    Handles Firestore timestamps (datetime subclasses), `{seconds: ...}` maps,
    plain millis and missing values (which fall back to `default` or now).
    """
    if isinstance(value, datetime):
        return int(value.timestamp() * 1000)
    if isinstance(value, bool):
        return default if default is not None else now_millis()
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, dict) and "seconds" in value:
        return int(value["seconds"]) * 1000
    if hasattr(value, "timestamp"):
        return int(value.timestamp() * 1000)
    return default if default is not None else now_millis()


def json_safe(value: Any) -> Any:
    """Converts enums and timestamps in a document into JSON friendly values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime) or (
        hasattr(value, "timestamp") and not isinstance(value, (int, float, str))
    ):
        return timestamp_millis(value)
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value


def to_response(obj: Any) -> dict:
    """Serializes a dataclass for a JSON response, keeping its id."""
    return json_safe(to_document(obj, exclude=()))
