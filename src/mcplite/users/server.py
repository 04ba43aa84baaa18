"""User directory provider.

Exposes a user store through every capability kind: the whole directory
and single profiles as resources, user creation as tools (one of them
asking the host to invent the user through sampling), and a prompt that
seeds a fake-user generation.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from ..config import Settings, load_settings
from ..errors import CapabilityNotSupportedError, McpError, UnsupportedContentError
from ..provider import Provider
from ..sampling import result_text
from ..tools import ToolFailure
from .store import JsonUserStore, StoreError, UserStore

logger = logging.getLogger(__name__)

USER_FIELDS = ("name", "email", "address", "phone")

USER_SCHEMA = {
    "type": "object",
    "properties": {field: {"type": "string"} for field in USER_FIELDS},
    "required": list(USER_FIELDS),
}

USER_TOOL_HINTS = {
    "readOnlyHint": False,
    "destructiveHint": False,
    "idempotentHint": False,
    "openWorldHint": True,
}

RANDOM_USER_PROMPT = "Generate a fake user with random name, email, address, and phone number."

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def parse_generated_user(text: str) -> Dict[str, str]:
    """Parse a generated user, tolerating a Markdown code fence around the JSON.

    Raises:
        ValueError: If the text is not a JSON object with the user fields
    """
    user = json.loads(_FENCE.sub("", text.strip()).strip())
    if not isinstance(user, dict):
        raise ValueError("Generated user is not a JSON object")
    missing = [field for field in USER_FIELDS if not isinstance(user.get(field), str)]
    if missing:
        raise ValueError(f"Generated user lacks {missing}")
    return {field: user[field] for field in USER_FIELDS}


def build_provider(store: UserStore, settings: Optional[Settings] = None) -> Provider:
    """Create the user directory provider on top of ``store``."""
    provider = Provider("mcplite-users", "1.0.0", settings=settings)

    def all_users(uri: str) -> Any:
        return store.load()

    def user_details(uri: str, userID: str) -> Any:
        try:
            wanted = int(userID)
        except ValueError:
            wanted = None
        for user in store.load():
            if user.get("id") == wanted:
                return user
        return {"error": "User not found"}

    def create_user(name: str, email: str, address: str, phone: str) -> Any:
        try:
            user_id = store.append({"name": name, "email": email, "address": address, "phone": phone})
        except (StoreError, OSError) as e:
            logger.warning("Failed to save user: %s", e)
            return ToolFailure("Failed to save user")
        return f"User {user_id} created successfully"

    async def create_random_user() -> Any:
        try:
            result = await provider.request_sampling(RANDOM_USER_PROMPT, 500)
            user = parse_generated_user(result_text(result))
            user_id = store.append(user)
        except CapabilityNotSupportedError:
            return ToolFailure("Failed to generate user data: the host does not support sampling")
        except UnsupportedContentError as e:
            logger.warning("Unusable sampling result: %s", e.message)
            return ToolFailure("Failed to generate user data")
        except (ValueError, StoreError, OSError, McpError) as e:
            logger.warning("Random user creation failed: %s", e)
            return ToolFailure("Failed to generate user data")
        return f"User {user_id} created successfully"

    def generate_fake_user(name: str) -> Any:
        return [{
            "role": "user",
            "content": f"Generate a fake user with the name {name}. "
                       "Provide the email, address, and phone number."
        }]

    provider.add_resource(
        "users", "users://all", all_users,
        title="Users",
        description="Get all users data from the database",
        mime_type="application/json",
    )
    provider.add_resource(
        "user-details", "users://{userID}/profile", user_details,
        title="User Details",
        description="Get a user's details from the database",
        mime_type="application/json",
    )
    provider.add_tool(
        "create-user", create_user,
        description="Create a new user in the database",
        input_schema=USER_SCHEMA,
        hints=USER_TOOL_HINTS,
        title="Create User",
    )
    provider.add_tool(
        "create-random-user", create_random_user,
        description="Create a random user with fake data",
        input_schema={"type": "object", "properties": {}},
        hints=USER_TOOL_HINTS,
        title="Create Random User",
    )
    provider.add_prompt(
        "generate-fake-user", generate_fake_user,
        description="Generate a fake user based on a given name",
        arguments=[{"name": "name", "description": "Name of the user", "required": True}],
    )
    return provider


def main(settings: Optional[Settings] = None) -> None:
    """Serve the user directory over stdio."""
    settings = settings or load_settings()
    build_provider(JsonUserStore(settings.users_file), settings).run_stdio()
