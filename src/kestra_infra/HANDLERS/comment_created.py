# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
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

"""
Handles Jira "comment created" events: reports whether the comment
mentions the AI bot.
"""
import json
import logging
import os
from datetime import datetime, timezone

MENTION = "@ai-bot"

logger = logging.getLogger(__name__)
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())


def _lookup(data, *path, default=""):
    """
    Walks nested mappings, returning default at the first missing or
    non-mapping step.
    """
    for key in path:
        if not isinstance(data, dict) or data.get(key) is None:
            return default
        data = data[key]
    return data


def _timestamp():
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def handler(event, context=None):
    logger.info("Comment Created Event: %s", json.dumps(event, indent=2, default=str))

    body = str(_lookup(event, "comment", "body"))
    author = str(_lookup(event, "comment", "author", "displayName"))
    mentioned = MENTION in body

    if mentioned:
        logger.info("AI mention detected by %s", author)
    else:
        logger.info("No AI mention in comment by %s", author)

    return {
        "status": "ok",
        "action": "comment_created",
        "mentioned": mentioned,
        "author": author,
        "timestamp": _timestamp(),
    }
