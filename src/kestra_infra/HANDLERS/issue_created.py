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
Handles Jira "issue created" events.
"""
import json
import logging
import os
from datetime import datetime, timezone

logger = logging.getLogger(__name__)
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())


def handler(event, context=None):
    logger.info("Issue Created Event: %s", json.dumps(event, indent=2, default=str))

    issue = event.get("issue") if isinstance(event, dict) else None
    issue_key = issue.get("key") if isinstance(issue, dict) else None
    if issue_key is None:
        issue_key = "unknown"
    issue_key = str(issue_key)

    logger.info("Processing issue: %s", issue_key)

    return {
        "status": "ok",
        "action": "issue_created",
        "message": f"Processed Jira issue {issue_key}",
        "issueKey": issue_key,
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    }
