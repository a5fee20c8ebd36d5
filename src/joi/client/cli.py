"""CLI client for the Joi API."""

from __future__ import annotations

import logging
from datetime import (
    datetime,
    timezone,
)
from typing import (
    Any,
    Dict,
    List,
    Tuple,
    cast,
)

import httpx

from joi.common import (
    AnsiColors,
    colored_print,
    print_agent_reply,
)
from joi.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    import signal  # pylint: disable=import-outside-toplevel

    # Ensure SIGINT breaks out of slow system calls such as read()
    signal.siginterrupt(signal.SIGINT, True)

    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def call_api(
    endpoint: str,
    data: Dict[str, Any],
    user_id: str | None = None,
    max_retries: int = 5,
) -> Dict[str, Any]:
    """Make a POST request to the API and return the response with retries."""
    api_url = f"http://localhost:{settings.API_PORT}{endpoint}"
    headers = {"X-User-Id": user_id} if user_id else {}

    for attempt in range(max_retries):
        response = None
        try:
            with httpx.Client(timeout=settings.LLM_TIMEOUT_SECONDS * 4) as client:
                response = client.post(api_url, json=data, headers=headers)
                response.raise_for_status()
                return cast(Dict[str, Any], response.json())
        except httpx.HTTPError as e:
            # On connection refused, retry with exponential backoff
            if isinstance(e, httpx.ConnectError) and attempt < max_retries - 1:
                retry_delay = 0.5 * (2**attempt)  # 0.5s, 1s, 2s, 4s...
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                import time  # pylint: disable=import-outside-toplevel

                time.sleep(retry_delay)
                continue

            logger.error("API request error: %s", str(e))
            error_msg = f"Error connecting to API: {str(e)}"
            if response is not None:
                try:
                    error_data = response.json()
                except ValueError:
                    error_data = {}
                if isinstance(error_data, dict) and "detail" in error_data:
                    error_msg = f"API error: {error_data['detail']}"
            return {"error": error_msg}

    return {"error": f"Failed to connect to API after {max_retries} attempts"}


def run_cli(user_id: str | None = None) -> None:
    """
    Run the CLI client that communicates with the API.

    The server keeps no conversation state, so the visible history is kept here and sent in full
    with every query.
    """
    history: List[Dict[str, str]] = []

    colored_print("\nJoi support shell - type 'exit' or 'quit' (or Ctrl+C) to exit", AnsiColors.GREEN)
    if not user_id:
        colored_print("No user id given; requests will be rejected (use --user-id).", AnsiColors.RED)

    while True:
        colored_print("\nYou: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if user_msg.lower() in {"exit", "quit"}:
            break
        if not user_msg:
            continue

        response = call_api("/agent", {"query": user_msg, "history": history}, user_id=user_id)
        if "error" in response:
            colored_print(response["error"], AnsiColors.RED)
            continue

        state = response.get("state", {})
        reply = response.get("response", "No response from API")
        print_agent_reply(reply, state.get("status"), state.get("transitions", []))

        now = datetime.now(timezone.utc).isoformat()
        history.append({"role": "user", "content": user_msg, "timestamp": now})
        history.append({"role": "assistant", "content": reply, "timestamp": now})


if __name__ == "__main__":
    run_cli()
